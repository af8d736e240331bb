"""
Pytest fixtures for the stockroom test suite.

Every test gets a fresh in-memory SQLite schema. Service tests use the
``db`` session directly; API tests go through ``client``, which is logged
in as a freshly registered account.
"""

import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("SECRET_KEY", "test-secret")
os.environ.setdefault("WEBHOOK_URLS", "")

import pytest
from fastapi.testclient import TestClient

from stockroom.database import SessionLocal, drop_db, init_db
from stockroom.main import app
from stockroom.services import auth_service
from stockroom.services.events import ProductEvents
from stockroom.services.ledger_service import StockLedger


@pytest.fixture
def db():
    drop_db()
    init_db()
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def owner(db):
    return auth_service.register_user(db, "owner@example.com", "secret123", "Owner")


@pytest.fixture
def events():
    return ProductEvents()


@pytest.fixture
def ledger(db, events):
    return StockLedger(db, events)


@pytest.fixture
def product(ledger, owner):
    """A product holding 10 units at an average cost of 5.00."""
    return ledger.register_product(owner.id, "Widget", "Tools", initial_quantity=10, initial_unit_cost=5.0)


@pytest.fixture
def anon_client(db):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def client(anon_client):
    resp = anon_client.post(
        "/api/v1/auth/register",
        json={"email": "shop@example.com", "password": "secret123", "display_name": "Shop"},
    )
    assert resp.status_code == 201
    return anon_client
