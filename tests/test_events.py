import pytest

from stockroom.errors import InsufficientStockError
from stockroom.services.events import CREATED, STOCK_ADDED, STOCK_REMOVED, ProductChanged, ProductEvents


def _event(kind="updated"):
    return ProductChanged(kind=kind, owner_id="u1", product_id="p1")


def test_subscribe_and_unsubscribe():
    events = ProductEvents()
    seen = []
    unsubscribe = events.subscribe(seen.append)
    events.publish(_event())
    unsubscribe()
    events.publish(_event())
    assert len(seen) == 1
    assert events.subscriber_count == 0


def test_unsubscribe_unknown_callback_is_noop():
    events = ProductEvents()
    events.unsubscribe(print)
    assert events.subscriber_count == 0


def test_failing_subscriber_does_not_block_others(caplog):
    events = ProductEvents()
    seen = []

    def broken(event):
        raise RuntimeError("boom")

    events.subscribe(broken)
    events.subscribe(seen.append)
    events.publish(_event())
    assert len(seen) == 1
    assert "Subscriber" in caplog.text


def test_ledger_publishes_after_commit(ledger, owner, events):
    seen = []
    events.subscribe(seen.append)
    p = ledger.register_product(owner.id, "Widget", initial_quantity=2, initial_unit_cost=1.0)
    ledger.record_add_movement(owner.id, p.id, 3, 2.0, "2024-01-01")
    ledger.record_remove_movement(owner.id, p.id, 1, "2024-01-02")
    assert [e.kind for e in seen] == [CREATED, STOCK_ADDED, STOCK_REMOVED]
    assert seen[-1].quantity == 4
    assert all(e.product_id == p.id for e in seen)


def test_rejected_movement_publishes_nothing(ledger, owner, product, events):
    seen = []
    events.subscribe(seen.append)
    with pytest.raises(InsufficientStockError):
        ledger.record_remove_movement(owner.id, product.id, 99, "2024-01-02")
    assert seen == []


def test_event_payload():
    data = _event(CREATED).to_dict()
    assert data["kind"] == CREATED
    assert data["product_id"] == "p1"
    assert "occurred_at" in data
