"""Pytest fixtures for shopfront tests."""

import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from shopfront.cart_store import CartStore
from shopfront.catalog import ItemCatalog
from shopfront.documents import JsonDocumentStore
from shopfront.models import ShippingInfo
from shopfront.order_ledger import OrderLedger

ITEM_DESCRIPTION = "A sturdy item that is described at length here."

SHIPPING = {
    "fullName": "Ada Lovelace",
    "email": "ada@shopfront.io",
    "phone": "555-0100",
    "address": "12 Analytical Way",
    "city": "London",
    "state": "LDN",
    "zipCode": "10001",
}


@pytest.fixture
def temp_dir():
    """Create a temporary directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def store(temp_dir):
    return JsonDocumentStore(temp_dir)


@pytest.fixture
def catalog(store):
    return ItemCatalog(store)


@pytest.fixture
def carts(store, catalog):
    return CartStore(store, catalog)


class StepClock:
    """Deterministic clock that advances one second per call."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


@pytest.fixture
def clock():
    return StepClock()


@pytest.fixture
def ledger(store, catalog, carts, clock):
    return OrderLedger(store, catalog, carts, clock=clock)


@pytest.fixture
def make_item(catalog):
    """Create catalog items with valid defaults."""

    def _make(title="Widget", price=10.0, **overrides):
        fields = {
            "description": ITEM_DESCRIPTION,
            "image": "https://cdn.shopfront.io/items/widget.png",
            "discounted": 0.0,
            "total_price": price,
            "quantity": 5,
        }
        fields.update(overrides)
        return catalog.create(title=title, price=price, **fields)

    return _make


@pytest.fixture
def shipping_info():
    return ShippingInfo.from_dict(SHIPPING)


@pytest.fixture
def data_dir(temp_dir, monkeypatch):
    """Point the app's settings at a fresh JSON data directory."""
    monkeypatch.setenv("SHOPFRONT_DATA_DIR", str(temp_dir))
    monkeypatch.delenv("SHOPFRONT_DATABASE_URL", raising=False)
    monkeypatch.delenv("SHOPFRONT_IMAGEKIT_PRIVATE_KEY", raising=False)
    return temp_dir


@pytest.fixture
def api_client(data_dir):
    """Anonymous test client against a fresh data directory."""
    from fastapi.testclient import TestClient

    from shopfront.api import app

    return TestClient(app)


def register(client, email="ada@shopfront.io", name="Ada", password="secret123"):
    response = client.post(
        "/api/auth/register", json={"name": name, "email": email, "password": password}
    )
    assert response.status_code == 201, response.text
    return response.json()["data"]["user"]


@pytest.fixture
def register_user():
    return register


@pytest.fixture
def auth_client(api_client):
    """Test client holding a session cookie for a freshly registered user."""
    register(api_client)
    return api_client


@pytest.fixture
def seeded_item(data_dir):
    """Insert one item directly through the catalog the app will read."""
    return ItemCatalog(JsonDocumentStore(data_dir)).create(
        title="Desk Lamp",
        description=ITEM_DESCRIPTION,
        image="https://cdn.shopfront.io/items/lamp.png",
        price=19.99,
        discounted=0.0,
        total_price=19.99,
        quantity=10,
    )
