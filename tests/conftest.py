from datetime import datetime, timedelta, timezone

import pytest

from client import CatalogSnapshot
from local_store import LocalStore
from schemas import Product

BASE_TIME = datetime(2026, 1, 1, tzinfo=timezone.utc)

CATALOG = [
    # id, ar, en, category, price, in_stock
    ("p1", "صابون أطباق", "Dish Soap", "kitchen", 25, True),
    ("p2", "مسحوق غسيل", "Laundry Powder", "laundry", 85, True),
    ("p3", "منظف أرضيات", "Floor Cleaner", "floor", 35, True),
    ("p4", "منظف زجاج", "Glass Cleaner", "kitchen", 30, True),
    ("p5", "مطهر", "Disinfectant", "bathroom", 40, False),
    ("p6", "منعم ملابس", "Fabric Softener", "laundry", 45, True),
    ("p7", "منظف الحمام", "Bathroom Cleaner", "bathroom", 38, True),
    ("p8", "سائل غسيل", "Liquid Detergent", "laundry", 75, True),
]


def make_product(pid, ar, en, category, price, in_stock=True, created_at=None, variants=None):
    data = {
        "id": pid,
        "name": {"ar": ar, "en": en},
        "category": category,
        "price": price,
        "inStock": in_stock,
        "createdAt": created_at,
    }
    if variants:
        data["hasVariants"] = True
        data["variants"] = variants
    return Product.model_validate(data)


@pytest.fixture()
def products():
    # p1 is the oldest, p8 the newest
    return [
        make_product(pid, ar, en, cat, price, stock, created_at=BASE_TIME + timedelta(hours=i))
        for i, (pid, ar, en, cat, price, stock) in enumerate(CATALOG)
    ]


@pytest.fixture()
def variant_product():
    return make_product(
        "pv",
        "صابون سائل",
        "Liquid Soap",
        "kitchen",
        20,
        created_at=BASE_TIME + timedelta(days=1),
        variants=[
            {"name": {"ar": "صغير", "en": "Small"}, "price": 25, "inStock": True},
            {"name": {"ar": "كبير", "en": "Large"}, "price": 40, "image": "images/large.svg", "inStock": False},
        ],
    )


@pytest.fixture()
def local_store(tmp_path):
    return LocalStore(str(tmp_path / "storage.json"))


class SnapshotHolder:
    """Stands in for CatalogClient: a swappable current snapshot."""

    def __init__(self, products):
        self.snapshot = CatalogSnapshot(products)

    def replace(self, products):
        self.snapshot = CatalogSnapshot(products)

    def __call__(self):
        return self.snapshot


@pytest.fixture()
def catalog(products, variant_product):
    return SnapshotHolder(products + [variant_product])
