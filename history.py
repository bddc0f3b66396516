"""Local order history, most recent first, capped at MAX_ENTRIES."""

import uuid
from datetime import datetime, timezone
from typing import List

import structlog
from pydantic import ValidationError as PydanticValidationError

from errors import CorruptLocalState
from local_store import LocalStore, namespaced
from schemas import HistoryEntry, Order

logger = structlog.get_logger(__name__)

HISTORY_KEY = namespaced("orders")
MAX_ENTRIES = 50


class HistoryLog:
    def __init__(self, store: LocalStore, max_entries: int = MAX_ENTRIES):
        self.store = store
        self.max_entries = max_entries

    def list(self) -> List[HistoryEntry]:
        try:
            raw = self.store.get(HISTORY_KEY)
        except CorruptLocalState as e:
            logger.warning("Order history corrupt, treating as empty", error=str(e))
            return []
        if not raw:
            return []
        try:
            return [HistoryEntry.model_validate(entry) for entry in raw]
        except (PydanticValidationError, TypeError) as e:
            logger.warning("Order history corrupt, treating as empty", error=str(e))
            return []

    def record(self, order: Order) -> HistoryEntry:
        created = order.created_at or datetime.now(timezone.utc)
        entry = HistoryEntry(
            id=uuid.uuid4().hex,
            date=created.isoformat(),
            items=order.items,
            total=order.total,
            customer=order.customer,
        )
        entries = [entry] + self.list()
        del entries[self.max_entries:]
        self.store.set(HISTORY_KEY, [e.model_dump(mode="json", by_alias=True) for e in entries])
        return entry

    def clear(self) -> None:
        self.store.remove(HISTORY_KEY)
