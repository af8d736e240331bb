"""Two sessions writing the same product: the stale writer must lose."""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from stockroom.database import Base
from stockroom.errors import ConcurrentUpdateError
from stockroom.models.movement import StockMovement
from stockroom.models.product import Product
from stockroom.models.user import User
from stockroom.services.ledger_service import StockLedger


@pytest.fixture
def session_factory(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'race.db'}", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def sessions(session_factory):
    first, second = session_factory(), session_factory()
    yield first, second
    first.close()
    second.close()


@pytest.fixture
def seeded(sessions):
    _, second = sessions
    owner = User(email="race@example.com", password_hash="x")
    second.add(owner)
    second.commit()
    product = StockLedger(second).register_product(owner.id, "Widget", initial_quantity=10, initial_unit_cost=5.0)
    return owner.id, product.id


def test_stale_write_is_rejected(session_factory, sessions, seeded, monkeypatch):
    first, second = sessions
    owner_id, product_id = seeded

    # SQLite ignores FOR UPDATE, so another writer can commit between the read and the write
    ledger = StockLedger(first)
    load = ledger._load_for_update

    def load_then_interleave(owner, pid):
        product = load(owner, pid)
        StockLedger(second).record_add_movement(owner_id, product_id, 5, 8.0, "2024-01-10")
        return product

    monkeypatch.setattr(ledger, "_load_for_update", load_then_interleave)
    with pytest.raises(ConcurrentUpdateError):
        ledger.record_add_movement(owner_id, product_id, 1, 100.0, "2024-01-10")
    monkeypatch.undo()

    check = session_factory()
    fresh = check.get(Product, product_id)
    assert fresh.quantity == 15
    assert fresh.cost == pytest.approx(6.0)
    assert check.query(StockMovement).filter(StockMovement.product_id == product_id).count() == 2
    check.close()

    # after the conflict the first session sees current state and can retry
    retried, _ = StockLedger(first).record_add_movement(owner_id, product_id, 1, 100.0, "2024-01-10")
    assert retried.quantity == 16


def test_earlier_read_is_refreshed_under_lock(sessions, seeded):
    first, second = sessions
    owner_id, product_id = seeded

    stale = first.get(Product, product_id)
    assert stale.quantity == 10
    StockLedger(second).record_add_movement(owner_id, product_id, 5, 8.0, "2024-01-10")

    product, _ = StockLedger(first).record_add_movement(owner_id, product_id, 1, 100.0, "2024-01-11")
    assert product is stale
    assert product.quantity == 16
    assert product.cost == pytest.approx((15 * 6.0 + 100.0) / 16)
