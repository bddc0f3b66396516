"""
Catalog query contract.

A CatalogQuery is executed either in memory over a list of products
(`query_products`, used by the shopper client over its snapshot) or against
the MongoDB product collection (`CatalogStore`). Both honour the same rules:
filters compose with AND, sorting is stable with newest-first as the base
order, and pagination is applied after filtering and sorting.
"""

import math
import re
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Union

from pydantic import BaseModel, Field

from errors import InvalidQuery
from schemas import FALLBACK_LANGUAGE, LANGUAGES, PRIMARY_LANGUAGE, Category, Product

ALL = "all"
DEFAULT_LIMIT = 12


class SortKey(str, Enum):
    default = "default"
    price_asc = "price-asc"
    price_desc = "price-desc"
    name = "name"


class CatalogQuery(BaseModel):
    category: Optional[Category] = None
    in_stock: Optional[bool] = None
    search: str = ""
    sort: SortKey = SortKey.default
    page: int = 1
    limit: int = DEFAULT_LIMIT
    lang: str = PRIMARY_LANGUAGE

    @classmethod
    def from_params(
        cls,
        category: Optional[str] = None,
        in_stock: Optional[Union[str, bool]] = None,
        search: Optional[str] = None,
        sort: Optional[str] = None,
        page: Union[int, str, None] = 1,
        limit: Union[int, str, None] = DEFAULT_LIMIT,
        lang: Optional[str] = None,
        max_limit: Optional[int] = None,
    ) -> "CatalogQuery":
        """Build a query from loosely typed request parameters.

        "all" (or nothing) for category/in_stock means no filter. Raises
        InvalidQuery for anything malformed; a limit above `max_limit` is
        clamped to it.
        """
        if category in (None, "", ALL):
            category_value = None
        else:
            try:
                category_value = Category(category)
            except ValueError:
                raise InvalidQuery(f"Unknown category: {category}")

        if in_stock in (None, "", ALL):
            stock_value = None
        elif isinstance(in_stock, bool):
            stock_value = in_stock
        elif str(in_stock).lower() in ("true", "false"):
            stock_value = str(in_stock).lower() == "true"
        else:
            raise InvalidQuery(f"inStock must be true, false or all, got: {in_stock}")

        try:
            sort_value = SortKey(sort or SortKey.default.value)
        except ValueError:
            raise InvalidQuery(f"Unknown sort key: {sort}")

        try:
            page_num = int(page if page not in (None, "") else 1)
            limit_num = int(limit if limit not in (None, "") else DEFAULT_LIMIT)
        except (TypeError, ValueError):
            raise InvalidQuery("page and limit must be integers")
        if page_num < 1:
            raise InvalidQuery("page must be at least 1")
        if limit_num <= 0:
            raise InvalidQuery("limit must be greater than 0")
        if max_limit is not None:
            limit_num = min(limit_num, max_limit)

        lang_value = lang if lang in LANGUAGES else PRIMARY_LANGUAGE

        return cls(
            category=category_value,
            in_stock=stock_value,
            search=(search or "").strip(),
            sort=sort_value,
            page=page_num,
            limit=limit_num,
            lang=lang_value,
        )

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit


class Pagination(BaseModel):
    total: int
    page: int
    pages: int
    limit: int

    @classmethod
    def build(cls, total: int, page: int, limit: int) -> "Pagination":
        if limit <= 0:
            raise InvalidQuery("limit must be greater than 0")
        return cls(total=total, page=page, pages=math.ceil(total / limit), limit=limit)


class CatalogResult(BaseModel):
    items: List[Product] = Field(default_factory=list)
    pagination: Pagination


# In-memory execution

def matches(product: Product, query: CatalogQuery) -> bool:
    if query.category is not None and product.category != query.category:
        return False
    if query.in_stock is not None and product.in_stock != query.in_stock:
        return False
    if query.search:
        needle = query.search.lower()
        names = (product.name.ar or "", product.name.en or "")
        if not any(needle in n.lower() for n in names):
            return False
    return True


def sort_products(products: Iterable[Product], sort: SortKey, lang: str = PRIMARY_LANGUAGE) -> List[Product]:
    # `products` is expected newest first; every sort below is stable on top of it
    ordered = list(products)
    if sort == SortKey.price_asc:
        ordered.sort(key=lambda p: p.price)
    elif sort == SortKey.price_desc:
        ordered.sort(key=lambda p: p.price, reverse=True)
    elif sort == SortKey.name:
        ordered.sort(key=lambda p: (getattr(p.name, lang, "") or p.name.en or "").casefold())
    return ordered


def by_recency(products: Iterable[Product]) -> List[Product]:
    """Newest first; products without a timestamp keep their relative order at the end."""
    products = list(products)
    stamped = [p for p in products if p.created_at is not None]
    unstamped = [p for p in products if p.created_at is None]
    stamped.sort(key=lambda p: p.created_at, reverse=True)
    return stamped + unstamped


def query_products(products: Iterable[Product], query: CatalogQuery) -> CatalogResult:
    if query.limit <= 0:
        raise InvalidQuery("limit must be greater than 0")
    filtered = [p for p in by_recency(products) if matches(p, query)]
    ordered = sort_products(filtered, query.sort, query.lang)
    page_items = ordered[query.skip:query.skip + query.limit]
    return CatalogResult(
        items=page_items,
        pagination=Pagination.build(len(ordered), query.page, query.limit),
    )


# MongoDB execution

def build_filter(query: CatalogQuery) -> Dict[str, Any]:
    mongo_filter: Dict[str, Any] = {}
    if query.category is not None:
        mongo_filter["category"] = query.category.value
    if query.in_stock is not None:
        mongo_filter["in_stock"] = query.in_stock
    if query.search:
        pattern = re.escape(query.search)
        mongo_filter["$or"] = [
            {f"name.{lang}": {"$regex": pattern, "$options": "i"}} for lang in LANGUAGES
        ]
    return mongo_filter


def build_sort(query: CatalogQuery) -> List[tuple]:
    tie_breakers = [("created_at", -1), ("_id", -1)]
    if query.sort == SortKey.price_asc:
        return [("price", 1)] + tie_breakers
    if query.sort == SortKey.price_desc:
        return [("price", -1)] + tie_breakers
    if query.sort == SortKey.name:
        # both names are required on stored products, so no fallback is needed here
        lang = query.lang if query.lang in LANGUAGES else FALLBACK_LANGUAGE
        return [(f"name.{lang}", 1)] + tie_breakers
    return tie_breakers


def document_to_product(doc: Dict[str, Any]) -> Product:
    d = dict(doc)
    if d.get("_id") is not None:
        d["id"] = str(d.pop("_id"))
    return Product.model_validate(d)


class CatalogStore:
    """Read side of the product collection."""

    def __init__(self, database, collection_name: str = "product"):
        self.collection = database[collection_name]

    def query(self, query: CatalogQuery) -> CatalogResult:
        if query.limit <= 0:
            raise InvalidQuery("limit must be greater than 0")
        mongo_filter = build_filter(query)
        cursor = (
            self.collection.find(mongo_filter)
            .sort(build_sort(query))
            .skip(query.skip)
            .limit(query.limit)
        )
        items = [document_to_product(d) for d in cursor]
        total = self.collection.count_documents(mongo_filter)
        return CatalogResult(items=items, pagination=Pagination.build(total, query.page, query.limit))
