"""Wiring of the shopper-side pieces around one local store and one API client."""

from typing import Callable, Optional

from cart import CartLedger
from client import CatalogClient, StoreClient
from history import HistoryLog
from local_store import LocalStore
from order import OrderCoordinator, RemoteOrderWriter
from settings import get_settings


class Storefront:
    def __init__(
        self,
        store_client: Optional[StoreClient] = None,
        local_store_path: Optional[str] = None,
        fallback_path: Optional[str] = None,
        opener: Optional[Callable[[str], object]] = None,
    ):
        settings = get_settings()
        self.api = store_client or StoreClient()
        self.local = LocalStore(local_store_path or settings.local_store_path)
        self.catalog = CatalogClient(self.api, fallback_path=fallback_path)
        self.cart = CartLedger(self.local, lambda: self.catalog.snapshot)
        self.history = HistoryLog(self.local)
        self.orders = OrderCoordinator(
            cart=self.cart,
            history=self.history,
            remote=RemoteOrderWriter(self.api),
            snapshot=lambda: self.catalog.snapshot,
            opener=opener,
            whatsapp_phone=settings.whatsapp_phone,
        )
