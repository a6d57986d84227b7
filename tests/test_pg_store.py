"""PostgreSQL store tests; run only when TEST_DATABASE_URL points at a scratch database."""

import os
from decimal import Decimal

import pytest

from schoolshop.errors import ConcurrentUpdate, InsufficientStock
from schoolshop.models import CatalogItem, LineRequest, OrderStatus, PaymentMethod
from schoolshop.service import OrderService

DATABASE_URL = os.getenv("TEST_DATABASE_URL")

pytestmark = pytest.mark.skipif(not DATABASE_URL, reason="TEST_DATABASE_URL not set")


@pytest.fixture
def pg_store():
    from schoolshop.db import execute, get_conn
    from schoolshop.pg_store import PostgresStore

    store = PostgresStore(DATABASE_URL, min_size=1, max_size=8)
    store.open()
    with get_conn(store.pool) as conn:
        execute(conn, "DROP TABLE IF EXISTS order_items, orders, catalog_items CASCADE")
        execute(conn, "DROP SEQUENCE IF EXISTS order_number_seq")
        conn.commit()
    store.init_schema()
    with store.transaction() as tx:
        tx.put_item(CatalogItem(id=1, title="Notebook", unit_price=Decimal("10.00"), available_stock=10))
        tx.put_item(CatalogItem(id=2, title="Pens", unit_price=Decimal("5.00"), available_stock=10))
    yield store
    store.close()


@pytest.fixture
def pg_service(pg_store, clock):
    return OrderService(pg_store, clock=clock)


def create(service, address, *lines):
    return service.create_order(
        "cust-1",
        [LineRequest(catalog_item_id=i, quantity=q) for i, q in lines],
        address,
        PaymentMethod.DEBIT_CARD,
    )


def stock(store, item_id):
    with store.transaction() as tx:
        return tx.get_item(item_id).available_stock


def test_round_trip(pg_service, pg_store, address):
    order = create(pg_service, address, (1, 2), (2, 1))

    stored = pg_service.get_order(order.id)
    assert stored.total == Decimal("36.99")
    assert stored.items == order.items
    assert stored.shipping_address == address
    assert stock(pg_store, 1) == 8


def test_insufficient_stock_rolls_back(pg_service, pg_store, address):
    with pytest.raises(InsufficientStock):
        create(pg_service, address, (1, 2), (2, 11))
    assert stock(pg_store, 1) == 10
    assert pg_service.order_stats().total_orders == 0


def test_cancel_restores(pg_service, pg_store, address):
    order = create(pg_service, address, (1, 3))
    pg_service.update_order_status(order.id, OrderStatus.CONFIRMED)
    cancelled = pg_service.cancel_order(order.id, "no longer needed")
    assert cancelled.version == 3
    assert stock(pg_store, 1) == 10


def test_version_precondition(pg_service, pg_store, address):
    order = create(pg_service, address, (1, 1))
    pg_service.update_order_status(order.id, OrderStatus.CONFIRMED)
    with pytest.raises(ConcurrentUpdate):
        with pg_store.transaction() as tx:
            pg_service.lifecycle.update_status(tx, order, OrderStatus.CANCELLED)
    assert stock(pg_store, 1) == 9


def test_concurrent_reservations(pg_service, pg_store, address):
    from concurrent.futures import ThreadPoolExecutor

    def attempt(_):
        try:
            return create(pg_service, address, (2, 1))
        except InsufficientStock as e:
            return e

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(attempt, range(25)))

    assert sum(not isinstance(r, Exception) for r in results) == 10
    assert stock(pg_store, 2) == 0


def test_stats(pg_service, address):
    order = create(pg_service, address, (1, 2), (2, 1))
    for status in (OrderStatus.CONFIRMED, OrderStatus.PROCESSING, OrderStatus.SHIPPED,
                   OrderStatus.DELIVERED):
        pg_service.update_order_status(order.id, status)
    create(pg_service, address, (2, 3))

    stats = pg_service.order_stats()

    assert stats.total_orders == 2
    assert stats.total_revenue == Decimal("36.99")
    assert stats.monthly.count == 1
    assert stats.yearly.revenue == Decimal("36.99")
    assert [(t.catalog_item_id, t.total_sold, t.total_revenue) for t in stats.top_selling] == [
        (2, 4, Decimal("20.00")),
        (1, 2, Decimal("20.00")),
    ]
