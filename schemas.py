"""
Database Schemas for the Al-Sahaba storefront

Each Pydantic model represents a collection in MongoDB (or an embedded
document of one). Field names are snake_case in the database and camelCase
on the wire, e.g. `in_stock` <-> `inStock`.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

LANGUAGES = ("ar", "en")
PRIMARY_LANGUAGE = "ar"
FALLBACK_LANGUAGE = "en"

DEFAULT_IMAGE = "images/default-product.svg"
UNKNOWN_PRODUCT_NAME = "Unknown Product"


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Category(str, Enum):
    kitchen = "kitchen"
    laundry = "laundry"
    floor = "floor"
    bathroom = "bathroom"


class OrderStatus(str, Enum):
    pending = "pending"
    confirmed = "confirmed"
    delivered = "delivered"
    cancelled = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not OrderStatus.pending


class LocalizedText(WireModel):
    ar: str = ""
    en: str = ""

    def get(self, lang: str = PRIMARY_LANGUAGE) -> str:
        return getattr(self, lang, "") or self.en or ""


class RequiredLocalizedText(LocalizedText):
    ar: str = Field(..., min_length=1, description="Arabic text")
    en: str = Field(..., min_length=1, description="English text")


class ProductVariant(WireModel):
    name: LocalizedText
    price: float = Field(..., ge=0, description="Variant price")
    image: Optional[str] = Field(None, description="Image override for this variant")
    in_stock: bool = Field(True, description="Whether this variant is in stock")


class Product(WireModel):
    """
    Products collection schema
    Collection name: "product"
    """
    id: Optional[str] = None
    name: RequiredLocalizedText
    description: LocalizedText = Field(default_factory=LocalizedText)
    price: float = Field(..., ge=0, description="Base price in EGP")
    image: str = Field(DEFAULT_IMAGE, description="Image reference")
    category: Category
    in_stock: bool = Field(True, description="Whether product is in stock")
    has_variants: bool = False
    variants: List[ProductVariant] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def variant(self, index: Optional[int]) -> Optional[ProductVariant]:
        if index is None or not self.has_variants:
            return None
        if 0 <= index < len(self.variants):
            return self.variants[index]
        return None


class ProductUpdate(WireModel):
    name: Optional[RequiredLocalizedText] = None
    description: Optional[LocalizedText] = None
    price: Optional[float] = Field(None, ge=0)
    image: Optional[str] = None
    category: Optional[Category] = None
    in_stock: Optional[bool] = None
    has_variants: Optional[bool] = None
    variants: Optional[List[ProductVariant]] = None


class CartLine(WireModel):
    product_id: str
    variant_index: Optional[int] = None
    quantity: int = Field(1, ge=1)

    @property
    def key(self):
        return (self.product_id, self.variant_index)


class ResolvedCartLine(WireModel):
    product_id: str
    variant_index: Optional[int] = None
    quantity: int
    name: str
    unit_price: float
    image: str

    @property
    def subtotal(self) -> float:
        return self.unit_price * self.quantity


class OrderItem(WireModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    product_id: Optional[str] = None
    variant_index: Optional[int] = None
    name: str
    price: float = Field(..., ge=0)
    quantity: int = Field(..., ge=1)


class Customer(WireModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    name: str = Field(..., description="Customer name")
    phone: str = Field(..., description="Customer phone")
    address: Optional[str] = Field(None, description="Address or delivery notes")

    @field_validator("name", "phone")
    @classmethod
    def not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be empty")
        return v


class Order(WireModel):
    """
    Orders collection schema
    Collection name: "order"
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    items: List[OrderItem]
    total: float
    customer: Customer
    status: OrderStatus = OrderStatus.pending
    created_at: Optional[datetime] = None


class HistoryEntry(WireModel):
    id: str
    date: str
    items: List[OrderItem]
    total: float
    customer: Optional[Customer] = None
