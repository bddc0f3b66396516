"""
Cart ledger.

The ledger stores intentions only: which product, which variant, how many.
Names, prices and images are looked up in the catalog snapshot every time the
cart is read, so a refetched catalog changes the cart total without any cart
mutation.
"""

from typing import Callable, List, Optional, Tuple

import structlog
from pydantic import ValidationError as PydanticValidationError

from client import CatalogSnapshot
from errors import CorruptLocalState, NotFound, OutOfStock, ValidationError
from local_store import LocalStore, namespaced
from schemas import PRIMARY_LANGUAGE, CartLine, Product, ResolvedCartLine

logger = structlog.get_logger(__name__)

CART_KEY = namespaced("cart")


def resolve_line(line: CartLine, snapshot: CatalogSnapshot, lang: str = PRIMARY_LANGUAGE) -> Optional[ResolvedCartLine]:
    """Join a cart line against the snapshot; None when it no longer resolves."""
    product = snapshot.get(line.product_id)
    if product is None:
        return None

    name = product.name.get(lang)
    price = product.price
    image = product.image

    if line.variant_index is not None:
        variant = product.variant(line.variant_index)
        if variant is None:
            return None
        name = f"{name} - {variant.name.get(lang)}"
        price = variant.price
        if variant.image:
            image = variant.image

    return ResolvedCartLine(
        product_id=line.product_id,
        variant_index=line.variant_index,
        quantity=line.quantity,
        name=name,
        unit_price=price,
        image=image,
    )


def check_available(product: Optional[Product], variant_index: Optional[int]) -> None:
    if product is None:
        raise NotFound("Product not found")
    if variant_index is None:
        if not product.in_stock:
            raise OutOfStock()
        return
    variant = product.variant(variant_index)
    if variant is None:
        raise NotFound("Variant not found")
    if not variant.in_stock:
        raise OutOfStock()


class CartLedger:
    def __init__(self, store: LocalStore, snapshot: Callable[[], CatalogSnapshot]):
        """`snapshot` returns the catalog snapshot current at call time."""
        self.store = store
        self._snapshot = snapshot
        self._lines: List[CartLine] = self._load()

    def _load(self) -> List[CartLine]:
        try:
            raw = self.store.get(CART_KEY)
        except CorruptLocalState as e:
            logger.warning("Cart storage corrupt, starting empty", error=str(e))
            return []
        if not raw:
            return []
        try:
            lines = [CartLine.model_validate(item) for item in raw]
        except (PydanticValidationError, TypeError) as e:
            logger.warning("Cart storage corrupt, starting empty", error=str(e))
            return []
        merged: List[CartLine] = []
        for line in lines:
            existing = _find(merged, line.key)
            if existing is None:
                merged.append(line)
            else:
                merged[merged.index(existing)] = existing.model_copy(update={"quantity": existing.quantity + line.quantity})
        return merged

    def _commit(self, lines: List[CartLine]) -> None:
        # persist first; memory only changes once the write went through
        self.store.set(CART_KEY, [line.model_dump(by_alias=True) for line in lines])
        self._lines = lines

    def lines(self) -> List[CartLine]:
        return list(self._lines)

    def add(self, product_id: str, variant_index: Optional[int] = None, quantity: int = 1) -> CartLine:
        if quantity <= 0:
            raise ValidationError("Quantity must be greater than 0")
        product_id = str(product_id)
        check_available(self._snapshot().get(product_id), variant_index)

        lines = self.lines()
        existing = _find(lines, (product_id, variant_index))
        if existing is None:
            line = CartLine(product_id=product_id, variant_index=variant_index, quantity=quantity)
            lines.append(line)
        else:
            line = existing.model_copy(update={"quantity": existing.quantity + quantity})
            lines[lines.index(existing)] = line
        self._commit(lines)
        logger.debug("Cart line added", product_id=product_id, variant_index=variant_index, quantity=line.quantity)
        return line

    def remove(self, product_id: str, variant_index: Optional[int] = None) -> None:
        key = (str(product_id), variant_index)
        lines = [line for line in self._lines if line.key != key]
        if len(lines) != len(self._lines):
            self._commit(lines)

    def set_quantity(self, product_id: str, variant_index: Optional[int], quantity: int) -> None:
        if quantity <= 0:
            self.remove(product_id, variant_index)
            return
        lines = self.lines()
        existing = _find(lines, (str(product_id), variant_index))
        if existing is None:
            return
        lines[lines.index(existing)] = existing.model_copy(update={"quantity": quantity})
        self._commit(lines)

    def clear(self) -> None:
        self.store.remove(CART_KEY)
        self._lines = []

    def resolved_lines(self, snapshot: Optional[CatalogSnapshot] = None, lang: str = PRIMARY_LANGUAGE) -> List[ResolvedCartLine]:
        snapshot = snapshot if snapshot is not None else self._snapshot()
        resolved = (resolve_line(line, snapshot, lang) for line in self._lines)
        return [r for r in resolved if r is not None]

    def total(self, snapshot: Optional[CatalogSnapshot] = None) -> float:
        return sum(r.subtotal for r in self.resolved_lines(snapshot))

    def count(self) -> int:
        return sum(line.quantity for line in self._lines)

    def is_empty(self) -> bool:
        return not self._lines

    def __len__(self):
        return len(self._lines)


def _find(lines: List[CartLine], key: Tuple[str, Optional[int]]) -> Optional[CartLine]:
    for line in lines:
        if line.key == key:
            return line
    return None
