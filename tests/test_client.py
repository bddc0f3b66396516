import json

import pytest
import requests

from catalog import CatalogQuery, CatalogResult, Pagination, query_products
from client import CatalogClient, CatalogSnapshot, StoreClient
from errors import RemoteUnavailable
from settings import get_settings
from shop import Storefront


class FakeResponse:
    def __init__(self, status_code=200, body=None, invalid_json=False):
        self.status_code = status_code
        self._body = body
        self._invalid = invalid_json

    def json(self):
        if self._invalid:
            raise ValueError("Expecting value")
        return self._body


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        if self.error:
            raise self.error
        return self.response


class FakeStore:
    def __init__(self, results=None, error=None):
        self.results = list(results or [])
        self.error = error

    def fetch_products(self, query):
        if self.error:
            raise self.error
        return self.results.pop(0)


def result_of(products):
    return CatalogResult(items=products, pagination=Pagination.build(len(products), 1, 100))


class TestStoreClient:
    def test_fetch_products_sends_wire_params(self, products):
        body = {
            "success": True,
            "data": [p.model_dump(mode="json", by_alias=True) for p in products[:2]],
            "pagination": {"total": 8, "page": 1, "pages": 4, "limit": 2},
        }
        session = FakeSession(FakeResponse(body=body))
        client = StoreClient(api_url="http://shop/api/", timeout=3, session=session)

        result = client.fetch_products(CatalogQuery.from_params(category="laundry", in_stock="false", limit=2))

        method, url, kwargs = session.calls[0]
        assert (method, url) == ("GET", "http://shop/api/products")
        assert kwargs["params"]["category"] == "laundry"
        assert kwargs["params"]["inStock"] == "false"
        assert kwargs["timeout"] == 3
        assert [p.id for p in result.items] == ["p1", "p2"]
        assert result.pagination.pages == 4

    @pytest.mark.parametrize(
        "session",
        [
            FakeSession(error=requests.ConnectionError("refused")),
            FakeSession(error=requests.Timeout("slow")),
            FakeSession(FakeResponse(status_code=502, body={"success": False})),
            FakeSession(FakeResponse(invalid_json=True)),
        ],
    )
    def test_failures_raise_remote_unavailable(self, session):
        client = StoreClient(api_url="http://shop/api", session=session)
        with pytest.raises(RemoteUnavailable):
            client.create_order({"items": []})

    def test_create_order_returns_body_for_client_errors(self):
        session = FakeSession(FakeResponse(status_code=400, body={"success": False, "message": "No items in order"}))
        body = StoreClient(api_url="http://shop/api", session=session).create_order({"items": []})
        assert body["success"] is False


    @pytest.mark.parametrize("body", [[{"success": True}], "ok", None, 42])
    def test_non_object_body_raises_remote_unavailable(self, body):
        session = FakeSession(FakeResponse(status_code=201, body=body))
        with pytest.raises(RemoteUnavailable):
            StoreClient(api_url="http://shop/api", session=session).create_order({"items": []})


class CatalogServer:
    """Answers queries over a fixed product list, like the real API would."""

    def __init__(self, products):
        self.products = list(products)
        self.queries = []

    def fetch_products(self, query):
        self.queries.append(query)
        return query_products(self.products, query)


class TestCatalogClient:
    def test_refresh_catalog_replaces_snapshot(self, products):
        client = CatalogClient(FakeStore([result_of(products)]), fallback_path="")
        snapshot = client.refresh_catalog()
        assert len(snapshot) == 8
        assert snapshot.get("p3").name.en == "Floor Cleaner"
        assert "p9" not in snapshot

    def test_refresh_catalog_walks_every_page(self, products, monkeypatch):
        monkeypatch.setenv("MAX_PAGE_LIMIT", "3")
        get_settings.cache_clear()
        try:
            server = CatalogServer(products)
            snapshot = CatalogClient(server, fallback_path="").refresh_catalog()
        finally:
            get_settings.cache_clear()
        assert len(snapshot) == 8
        assert [(q.page, q.limit) for q in server.queries] == [(1, 3), (2, 3), (3, 3)]

    def test_filtered_refresh_keeps_other_products(self, products):
        server = CatalogServer(products)
        client = CatalogClient(server, fallback_path="")
        client.refresh_catalog()

        result = client.refresh(CatalogQuery.from_params(category="laundry"))

        assert {p.id for p in result.items} == {"p2", "p6", "p8"}
        assert client.last_result is result
        assert len(client.snapshot) == 8
        assert client.snapshot.get("p1").price == 25

    def test_filtered_refresh_updates_fetched_prices(self, products):
        server = CatalogServer(products)
        client = CatalogClient(server, fallback_path="")
        client.refresh_catalog()

        server.products = [p.model_copy(update={"price": 99}) if p.id == "p2" else p for p in products]
        client.refresh(CatalogQuery.from_params(category="laundry"))

        assert client.snapshot.get("p2").price == 99
        assert client.snapshot.get("p1").price == 25

    def test_stale_response_is_discarded(self, products):
        client = CatalogClient(FakeStore(), fallback_path="")
        older = client.begin()
        newer = client.begin()

        assert client.apply(newer, result_of(products[:2])) is True
        assert client.apply(older, result_of(products)) is False
        assert [p.id for p in client.snapshot.products] == ["p1", "p2"]
        assert [p.id for p in client.last_result.items] == ["p1", "p2"]

    def test_unreachable_api_uses_fallback_file(self, tmp_path, products):
        path = tmp_path / "products.json"
        path.write_text(json.dumps({"products": [p.model_dump(mode="json", by_alias=True) for p in products]}), encoding="utf-8")
        client = CatalogClient(FakeStore(error=RemoteUnavailable("down")), fallback_path=str(path))
        assert len(client.refresh_catalog()) == 8

    def test_unreachable_api_without_fallback_keeps_snapshot(self, products):
        store = FakeStore([result_of(products)])
        client = CatalogClient(store, fallback_path="/does/not/exist.json")
        client.refresh_catalog()
        store.error = RemoteUnavailable("down")
        assert len(client.refresh_catalog()) == 8

    def test_browse_runs_over_snapshot(self, products):
        client = CatalogClient(FakeStore([result_of(products)]), fallback_path="")
        client.refresh_catalog()
        result = client.browse(CatalogQuery.from_params(category="bathroom", in_stock="true"))
        assert [p.id for p in result.items] == ["p7"]


def test_snapshot_lookup_coerces_ids(products):
    snapshot = CatalogSnapshot(products)
    assert snapshot.get("p1") is products[0]
    assert snapshot.get("missing") is None


def test_snapshot_merge_replaces_by_id_and_appends(products):
    snapshot = CatalogSnapshot(products[:2])
    repriced = products[1].model_copy(update={"price": 1})
    merged = snapshot.merged([repriced, products[2]])
    assert [p.id for p in merged.products] == ["p1", "p2", "p3"]
    assert merged.get("p2").price == 1
    assert snapshot.get("p2").price == 85


class DownForOrders(CatalogServer):
    def create_order(self, payload):
        raise RemoteUnavailable("down")


def make_shop(tmp_path, server, opened):
    return Storefront(
        store_client=server,
        local_store_path=str(tmp_path / "storage.json"),
        fallback_path="",
        opener=opened.append,
    )


def test_storefront_end_to_end_with_api_down(tmp_path, products):
    opened = []
    shop = make_shop(tmp_path, DownForOrders(products), opened)
    shop.catalog.refresh_catalog()
    shop.cart.add("p1", quantity=2)

    outcome = shop.orders.submit({"name": "Ali", "phone": "0111"}, lang="en")

    assert outcome.remote_saved is False
    assert outcome.order.total == 50
    assert shop.cart.is_empty()
    assert len(shop.history.list()) == 1
    assert opened == [outcome.handoff_url]


def test_browsing_another_category_keeps_cart_prices(tmp_path, products):
    opened = []
    shop = make_shop(tmp_path, DownForOrders(products), opened)
    shop.catalog.refresh_catalog()
    shop.cart.add("p1", quantity=2)
    assert shop.cart.total() == 50

    shop.catalog.refresh(CatalogQuery.from_params(category="laundry"))
    shop.catalog.refresh(CatalogQuery.from_params(page=2, limit=3))

    assert shop.cart.total() == 50
    outcome = shop.orders.submit({"name": "Ali", "phone": "0111"}, lang="en")
    assert [(i.name, i.price, i.quantity) for i in outcome.order.items] == [("Dish Soap", 25, 2)]
    assert outcome.order.total == 50
