"""Pytest fixtures for schoolshop tests."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from schoolshop.app import create_app
from schoolshop.config import OrderPolicy, Settings
from schoolshop.models import CatalogItem, LineRequest, PaymentMethod, ShippingAddress
from schoolshop.service import OrderService
from schoolshop.store import MemoryStore


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 9, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def policy():
    return OrderPolicy()


@pytest.fixture
def catalog():
    return [
        CatalogItem(id=1, title="Composition Notebook", unit_price=Decimal("10.00"),
                    available_stock=10, image="notebook.png"),
        CatalogItem(id=2, title="Gel Pen 4-Pack", unit_price=Decimal("5.00"),
                    available_stock=10, image="pens.png"),
        CatalogItem(id=3, title="Backpack", unit_price=Decimal("30.00"),
                    available_stock=5, image="backpack.png"),
        CatalogItem(id=4, title="Discontinued Ruler", unit_price=Decimal("2.50"),
                    available_stock=50, is_active=False),
    ]


@pytest.fixture
def store(catalog):
    return MemoryStore(catalog)


@pytest.fixture
def service(store, policy, clock):
    return OrderService(store, policy, clock)


@pytest.fixture
def address():
    return ShippingAddress(
        name="Ada Lovelace",
        street="12 School Lane",
        city="Springfield",
        state="IL",
        zip_code="62704",
    )


@pytest.fixture
def place_order(service, address):
    """Create an order for customer ``cust-1`` from ``(item_id, quantity)`` pairs."""

    def _place(*lines, customer_id="cust-1", **kwargs):
        return service.create_order(
            customer_id,
            [LineRequest(catalog_item_id=i, quantity=q) for i, q in lines],
            address,
            PaymentMethod.CREDIT_CARD,
            **kwargs,
        )

    return _place


@pytest.fixture
def client(store, policy, clock):
    settings = Settings(store_backend="memory", policy=policy)
    return TestClient(create_app(store=store, settings=settings, clock=clock))
