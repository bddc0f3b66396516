import json
from datetime import datetime, timezone

from history import HISTORY_KEY, MAX_ENTRIES, HistoryLog
from schemas import Customer, Order, OrderItem


def make_order(n, total=10):
    return Order(
        items=[OrderItem(product_id="p1", name=f"Item {n}", price=total, quantity=1)],
        total=total,
        customer=Customer(name=f"Customer {n}", phone="0100"),
        created_at=datetime(2026, 3, 1, 12, n % 60, tzinfo=timezone.utc),
    )


def test_record_and_list_most_recent_first(local_store):
    log = HistoryLog(local_store)
    log.record(make_order(1))
    log.record(make_order(2))
    entries = log.list()
    assert [e.customer.name for e in entries] == ["Customer 2", "Customer 1"]
    assert entries[0].date == "2026-03-01T12:02:00+00:00"
    assert entries[0].id != entries[1].id


def test_cap_drops_oldest(local_store):
    log = HistoryLog(local_store)
    for n in range(MAX_ENTRIES + 5):
        log.record(make_order(n))
    entries = log.list()
    assert len(entries) == MAX_ENTRIES
    assert entries[0].customer.name == f"Customer {MAX_ENTRIES + 4}"
    assert entries[-1].customer.name == "Customer 5"


def test_clear(local_store):
    log = HistoryLog(local_store)
    log.record(make_order(1))
    log.clear()
    assert log.list() == []
    assert local_store.get(HISTORY_KEY) is None


def test_corrupt_history_reads_empty_and_recovers(local_store):
    with open(local_store.path, "w") as fh:
        json.dump({HISTORY_KEY: [{"id": 1}]}, fh)
    log = HistoryLog(local_store)
    assert log.list() == []
    log.record(make_order(1))
    assert len(log.list()) == 1


def test_history_does_not_touch_other_keys(local_store):
    local_store.set("elsahaba_lang", "en")
    HistoryLog(local_store).record(make_order(1))
    assert local_store.get("elsahaba_lang") == "en"
