"""
Shopper-side access to the storefront API.

StoreClient is the thin HTTP layer. CatalogClient owns the catalog snapshot
the cart resolves prices against and decides which fetched page becomes the
current snapshot.
"""

import itertools
import json
import os
import threading
from typing import Any, Dict, Iterable, List, Optional

import requests
import structlog

from catalog import CatalogQuery, CatalogResult, Pagination, query_products
from errors import RemoteUnavailable
from schemas import Product
from settings import get_settings

logger = structlog.get_logger(__name__)


class CatalogSnapshot:
    """Immutable set of products as last fetched."""

    def __init__(self, products: Iterable[Product] = ()):
        self._products = tuple(products)
        self._by_id = {p.id: p for p in self._products if p.id is not None}

    @property
    def products(self) -> List[Product]:
        return list(self._products)

    def get(self, product_id: str) -> Optional[Product]:
        return self._by_id.get(str(product_id))

    def __len__(self):
        return len(self._products)

    def __contains__(self, product_id):
        return str(product_id) in self._by_id

    def merged(self, products: Iterable[Product]) -> "CatalogSnapshot":
        """A new snapshot with `products` replacing same-id entries; unknown ones are appended."""
        fresh = {p.id: p for p in products if p.id is not None}
        kept = [fresh.pop(p.id, p) for p in self._products]
        return CatalogSnapshot(kept + list(fresh.values()))


class StoreClient:
    def __init__(self, api_url: Optional[str] = None, timeout: Optional[float] = None, session: Optional[requests.Session] = None):
        settings = get_settings()
        self.api_url = (api_url or settings.api_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.request_timeout
        self.session = session or requests.Session()

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        url = f"{self.api_url}{path}"
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
            body = response.json()
        except (requests.RequestException, ValueError) as e:
            raise RemoteUnavailable(f"{method} {url} failed: {e}")
        if response.status_code >= 500:
            raise RemoteUnavailable(f"{method} {url} returned {response.status_code}")
        if not isinstance(body, dict):
            raise RemoteUnavailable(f"{method} {url} returned an unexpected body")
        return body

    def fetch_products(self, query: CatalogQuery) -> CatalogResult:
        params = {
            "search": query.search or None,
            "sort": query.sort.value,
            "page": query.page,
            "limit": query.limit,
            "lang": query.lang,
        }
        if query.category is not None:
            params["category"] = query.category.value
        if query.in_stock is not None:
            params["inStock"] = "true" if query.in_stock else "false"
        body = self._request("GET", "/products", params=params)
        if not body.get("success"):
            raise RemoteUnavailable(body.get("message") or "Catalog request rejected")
        return CatalogResult(
            items=[Product.model_validate(p) for p in body.get("data") or []],
            pagination=Pagination.model_validate(body["pagination"]),
        )

    def fetch_categories(self) -> List[Dict[str, Any]]:
        body = self._request("GET", "/products/categories")
        return body.get("data") or []

    def create_order(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", "/orders", json=payload)


def load_fallback_catalog(path: Optional[str]) -> List[Product]:
    if not path or not os.path.exists(path):
        return []
    try:
        with open(path, encoding="utf-8") as fh:
            data = json.load(fh)
        return [Product.model_validate(p) for p in data.get("products", [])]
    except (OSError, ValueError, AttributeError) as e:
        logger.error("Failed to load fallback catalog", path=path, error=str(e))
        return []


class CatalogClient:
    """Holds the catalog snapshot the cart is priced against.

    The snapshot always covers the whole catalog. `refresh_catalog` replaces
    it with every product the API knows; `refresh` fetches one filtered page
    for display, keeps it as `last_result` and only updates the snapshot
    entries of the products it returned.

    Each fetch takes a ticket; a response is applied only if no newer fetch
    of the same kind has started since, so a slow request that finishes late
    cannot overwrite a newer view.
    """

    def __init__(self, store: Optional[StoreClient] = None, fallback_path: Optional[str] = None):
        self.store = store or StoreClient()
        self.fallback_path = fallback_path if fallback_path is not None else get_settings().catalog_fallback_path
        self._snapshot = CatalogSnapshot()
        self._last_result: Optional[CatalogResult] = None
        self._tickets = itertools.count(1)
        self._latest = 0
        self._catalog_tickets = itertools.count(1)
        self._catalog_latest = 0
        self._lock = threading.Lock()

    @property
    def snapshot(self) -> CatalogSnapshot:
        return self._snapshot

    @property
    def last_result(self) -> Optional[CatalogResult]:
        return self._last_result

    def begin(self) -> int:
        with self._lock:
            self._latest = next(self._tickets)
            return self._latest

    def apply(self, ticket: int, result: CatalogResult) -> bool:
        with self._lock:
            if ticket != self._latest:
                logger.debug("Discarding stale catalog response", ticket=ticket, latest=self._latest)
                return False
            self._snapshot = self._snapshot.merged(result.items)
            self._last_result = result
            return True

    def refresh(self, query: Optional[CatalogQuery] = None) -> CatalogResult:
        """Fetch one page of a (possibly filtered) view."""
        query = query or CatalogQuery()
        ticket = self.begin()
        try:
            result = self.store.fetch_products(query)
        except RemoteUnavailable as e:
            logger.warning("Catalog fetch failed, using fallback catalog", error=str(e))
            result = query_products(load_fallback_catalog(self.fallback_path), query)
        self.apply(ticket, result)
        return result

    def _fetch_all(self) -> List[Product]:
        limit = get_settings().max_page_limit
        page, products = 1, []
        while True:
            result = self.store.fetch_products(CatalogQuery(page=page, limit=limit))
            products += result.items
            if page >= result.pagination.pages:
                return products
            page += 1

    def refresh_catalog(self) -> CatalogSnapshot:
        """Replace the snapshot with the full, unfiltered catalog."""
        with self._lock:
            self._catalog_latest = ticket = next(self._catalog_tickets)
        try:
            products = self._fetch_all()
        except RemoteUnavailable as e:
            logger.warning("Catalog fetch failed, using fallback catalog", error=str(e))
            products = load_fallback_catalog(self.fallback_path)
            if not products:
                # nothing better to price against, keep what we have
                return self._snapshot
        with self._lock:
            if ticket != self._catalog_latest:
                logger.debug("Discarding stale catalog response", ticket=ticket, latest=self._catalog_latest)
            else:
                self._snapshot = CatalogSnapshot(products)
        return self._snapshot

    def browse(self, query: CatalogQuery) -> CatalogResult:
        """Run a query over the current snapshot without a network call."""
        return query_products(self._snapshot.products, query)
