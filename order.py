"""
Order submission.

An order the shopper submitted is never silently lost: it is always written
to the local history even when the remote store cannot be reached, the cart
is cleared either way, and the WhatsApp handoff is produced exactly once.
Whether the remote write succeeded is reported back, not retried.
"""

import webbrowser
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import quote

import structlog
from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError

from cart import CartLedger, resolve_line
from client import CatalogSnapshot, StoreClient
from errors import RemoteUnavailable, ValidationError
from history import HistoryLog
from schemas import PRIMARY_LANGUAGE, UNKNOWN_PRODUCT_NAME, Customer, Order, OrderItem
from settings import get_settings

logger = structlog.get_logger(__name__)

SEPARATOR = "━━━━━━━━━━━━━━━"

NOTICES = {
    "ar": {"remote": "تم حفظ الطلب بنجاح", "local": "تم حفظ الطلب محلياً"},
    "en": {"remote": "Order saved successfully", "local": "Order saved locally"},
}

_TEMPLATES = {
    "ar": {
        "title": "🛒 *طلب جديد من الصحابه*",
        "details": "📋 *تفاصيل الطلب:*",
        "currency": "جنيه",
        "total": "💰 *الإجمالي: {total} {currency}*",
        "customer": "👤 *بيانات العميل:*",
        "name": "الاسم: {value}",
        "phone": "الهاتف: {value}",
        "address": "العنوان/ملاحظات: {value}",
    },
    "en": {
        "title": "🛒 *New Order from Al-Sahaba*",
        "details": "📋 *Order Details:*",
        "currency": "EGP",
        "total": "💰 *Total: {total} {currency}*",
        "customer": "👤 *Customer Info:*",
        "name": "Name: {value}",
        "phone": "Phone: {value}",
        "address": "Address/Notes: {value}",
    },
}


def format_amount(value: float) -> str:
    value = round(value, 2)
    return str(int(value)) if value == int(value) else f"{value:.2f}"


def format_order_message(items: List[OrderItem], total: float, customer: Customer, lang: str = PRIMARY_LANGUAGE) -> str:
    t = _TEMPLATES.get(lang, _TEMPLATES[PRIMARY_LANGUAGE])
    lines = [t["title"], SEPARATOR, "", t["details"]]
    for item in items:
        subtotal = format_amount(item.price * item.quantity)
        lines.append(f"• {item.name} × {item.quantity} = {subtotal} {t['currency']}")
    lines += ["", SEPARATOR, t["total"].format(total=format_amount(total), currency=t["currency"]), ""]
    lines.append(t["customer"])
    lines.append(t["name"].format(value=customer.name))
    if customer.phone:
        lines.append(t["phone"].format(value=customer.phone))
    if customer.address:
        lines.append(t["address"].format(value=customer.address))
    return "\n".join(lines) + "\n"


def whatsapp_link(message: str, phone: Optional[str] = None) -> str:
    phone = phone or get_settings().whatsapp_phone
    return f"https://wa.me/{phone}?text={quote(message, safe='')}"


def snapshot_items(cart: CartLedger, snapshot: CatalogSnapshot, lang: str = PRIMARY_LANGUAGE) -> List[OrderItem]:
    """Freeze the cart into order items; lines that no longer resolve keep a placeholder."""
    items = []
    for line in cart.lines():
        resolved = resolve_line(line, snapshot, lang)
        items.append(OrderItem(
            product_id=line.product_id,
            variant_index=line.variant_index,
            name=resolved.name if resolved else UNKNOWN_PRODUCT_NAME,
            price=resolved.unit_price if resolved else 0,
            quantity=line.quantity,
        ))
    return items


class SubmissionOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    order: Order
    remote_saved: bool
    remote_order_id: Optional[str] = None
    handoff_url: str
    message: str

    def notice(self, lang: str = PRIMARY_LANGUAGE) -> str:
        texts = NOTICES.get(lang, NOTICES[PRIMARY_LANGUAGE])
        return texts["remote"] if self.remote_saved else texts["local"]


class RemoteOrderWriter:
    def __init__(self, store: StoreClient):
        self.store = store

    def save(self, order: Order) -> Optional[str]:
        """Write the order remotely and return its id; raise RemoteUnavailable otherwise."""
        payload = order_payload(order)
        body = self.store.create_order(payload)
        if not isinstance(body, dict):
            raise RemoteUnavailable("Unexpected response from server")
        if not body.get("success"):
            raise RemoteUnavailable(body.get("message") or "Order rejected by server")
        remote = body.get("order")
        if not isinstance(remote, dict) or remote.get("id") is None:
            return None
        return str(remote["id"])


def order_payload(order: Order) -> Dict[str, Any]:
    return {
        "items": [item.model_dump(by_alias=True) for item in order.items],
        "total": order.total,
        "customer": order.customer.model_dump(by_alias=True, exclude_none=True),
    }


class OrderCoordinator:
    def __init__(
        self,
        cart: CartLedger,
        history: HistoryLog,
        remote: RemoteOrderWriter,
        snapshot: Callable[[], CatalogSnapshot],
        opener: Optional[Callable[[str], Any]] = None,
        whatsapp_phone: Optional[str] = None,
    ):
        self.cart = cart
        self.history = history
        self.remote = remote
        self._snapshot = snapshot
        self.opener = opener if opener is not None else webbrowser.open_new_tab
        self.whatsapp_phone = whatsapp_phone

    def summary_text(self, customer: Dict[str, Any], lang: str = PRIMARY_LANGUAGE) -> str:
        """The message that `submit` would hand off, without submitting."""
        info = _customer(customer)
        items = snapshot_items(self.cart, self._snapshot(), lang)
        return format_order_message(items, _total(items), info, lang)

    def submit(self, customer: Dict[str, Any], lang: str = PRIMARY_LANGUAGE) -> SubmissionOutcome:
        info = _customer(customer)

        items = snapshot_items(self.cart, self._snapshot(), lang)
        order = Order(
            items=items,
            total=_total(items),
            customer=info,
            created_at=datetime.now(timezone.utc),
        )
        log = logger.bind(lines=len(items), total=order.total)

        message = format_order_message(items, order.total, info, lang)
        url = whatsapp_link(message, self.whatsapp_phone)

        if not items:
            log.info("Empty cart submitted, nothing to record")
            return SubmissionOutcome(order=order, remote_saved=False, handoff_url=url, message=message)

        remote_saved, remote_id = False, None
        try:
            remote_id = self.remote.save(order)
            remote_saved = True
        except RemoteUnavailable as e:
            log.warning("Remote order write failed, keeping local copy only", error=str(e))

        try:
            self.history.record(order)
        except OSError as e:
            log.error("Could not write order history", error=str(e))

        try:
            self.cart.clear()
        except OSError as e:
            log.error("Could not clear persisted cart", error=str(e))

        try:
            self.opener(url)
        except (webbrowser.Error, OSError) as e:
            log.error("Handoff opener failed", error=str(e))

        log.info("Order submitted", remote_saved=remote_saved, remote_order_id=remote_id)
        return SubmissionOutcome(
            order=order,
            remote_saved=remote_saved,
            remote_order_id=remote_id,
            handoff_url=url,
            message=message,
        )


def _customer(customer: Dict[str, Any]) -> Customer:
    if isinstance(customer, Customer):
        return customer
    try:
        return Customer.model_validate(customer)
    except PydanticValidationError:
        raise ValidationError("Customer name and phone are required")


def _total(items: List[OrderItem]) -> float:
    return round(sum(item.price * item.quantity for item in items), 2)
