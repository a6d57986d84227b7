"""Storage contract for catalog stock and the order ledger.

A ``Store`` hands out transactions. Everything done through one ``StoreTx``
becomes visible together when the ``transaction()`` block exits normally and
is discarded when it raises.
"""
import itertools
import logging
import threading
from collections import defaultdict
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from typing import ContextManager, Iterable, Optional, Protocol

from .errors import ConcurrentUpdate, ItemNotFound
from .models import (
    CatalogItem,
    Order,
    OrderStats,
    OrderStatus,
    PeriodStat,
    StatusStat,
    TopSeller,
)
from .pricing import ZERO, money

logger = logging.getLogger(__name__)


class StoreTx(Protocol):
    def get_item(self, item_id: int) -> Optional[CatalogItem]: ...

    def lock_items(self, item_ids: Iterable[int]) -> dict[int, CatalogItem]:
        """Lock the given catalog rows (ascending id order) and return those that exist."""
        ...

    def put_item(self, item: CatalogItem) -> CatalogItem: ...

    def reserve_stock(self, item_id: int, quantity: int) -> bool:
        """Decrement stock by ``quantity`` only if enough is available."""
        ...

    def release_stock(self, item_id: int, quantity: int) -> None: ...

    def next_order_sequence(self) -> int: ...

    def insert_order(self, order: Order) -> Order: ...

    def get_order(self, order_id: int, *, lock: bool = False) -> Optional[Order]: ...

    def update_order(self, order: Order, expected_version: int) -> Order:
        """Write ``order`` if the stored version still equals ``expected_version``."""
        ...

    def order_stats(self, now: datetime) -> OrderStats:
        """Per-status totals, delivered figures for the month and year of ``now``, top sellers."""
        ...


class Store(Protocol):
    def transaction(self) -> ContextManager[StoreTx]: ...

    def ping(self) -> bool: ...

    def open(self) -> None: ...

    def close(self) -> None: ...


TOP_SELLERS = 10


def period_starts(now: datetime) -> tuple[datetime, datetime]:
    """Start of the month and of the year containing ``now``, in its timezone."""
    month = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    return month, month.replace(month=1)


def build_stats(orders: Iterable[Order], now: datetime) -> OrderStats:
    start_of_month, start_of_year = period_starts(now)
    counts: dict[OrderStatus, int] = defaultdict(int)
    values: dict[OrderStatus, Decimal] = defaultdict(lambda: ZERO)
    monthly, yearly = PeriodStat(), PeriodStat()
    sold: dict[int, list] = {}
    revenue = ZERO
    total = 0
    for order in orders:
        total += 1
        counts[order.order_status] += 1
        values[order.order_status] += order.total
        if order.order_status == OrderStatus.DELIVERED:
            revenue += order.total
            for period, start in ((monthly, start_of_month), (yearly, start_of_year)):
                if order.created_at >= start:
                    period.count += 1
                    period.revenue += order.total
        # every order counts toward top sellers, cancelled ones included
        for line in order.items:
            entry = sold.setdefault(line.catalog_item_id, [line.title_snapshot, 0, ZERO])
            entry[1] += line.quantity
            entry[2] += line.line_total

    by_status = [
        StatusStat(status=status, count=counts[status], total_value=values[status])
        for status in OrderStatus
        if counts[status]
    ]
    ranked = sorted(sold.items(), key=lambda kv: (-kv[1][1], kv[0]))[:TOP_SELLERS]
    top_selling = [
        TopSeller(catalog_item_id=item_id, title=title, total_sold=qty, total_revenue=money(amount))
        for item_id, (title, qty, amount) in ranked
    ]
    return OrderStats(
        by_status=by_status,
        total_orders=total,
        total_revenue=revenue,
        monthly=monthly,
        yearly=yearly,
        top_selling=top_selling,
    )


class _MemoryTx:
    def __init__(self, items: dict[int, CatalogItem], orders: dict[int, Order], ids, sequence):
        self.items = items
        self.orders = orders
        self._ids = ids
        self._sequence = sequence

    def get_item(self, item_id):
        return self.items.get(item_id)

    def lock_items(self, item_ids):
        return {i: self.items[i] for i in sorted(set(item_ids)) if i in self.items}

    def put_item(self, item):
        self.items[item.id] = item
        return item

    def reserve_stock(self, item_id, quantity):
        item = self.items.get(item_id)
        if item is None or not item.is_active or item.available_stock < quantity:
            return False
        self.items[item_id] = item.model_copy(
            update={"available_stock": item.available_stock - quantity}
        )
        return True

    def release_stock(self, item_id, quantity):
        item = self.items.get(item_id)
        if item is None:
            raise ItemNotFound(item_id)
        self.items[item_id] = item.model_copy(
            update={"available_stock": item.available_stock + quantity}
        )

    def next_order_sequence(self):
        return next(self._sequence)

    def insert_order(self, order):
        stored = order.evolve(id=next(self._ids), version=1)
        self.orders[stored.id] = stored
        return stored

    def get_order(self, order_id, *, lock=False):
        return self.orders.get(order_id)

    def update_order(self, order, expected_version):
        current = self.orders.get(order.id)
        if current is None or current.version != expected_version:
            raise ConcurrentUpdate(order.id, expected_version)
        stored = order.evolve(version=expected_version + 1)
        self.orders[stored.id] = stored
        return stored

    def order_stats(self, now):
        return build_stats(self.orders.values(), now)


class MemoryStore:
    """In-process store; transactions are serialised on a single lock.

    Each transaction works on copies of the catalog and ledger maps, which
    replace the live maps only on commit.
    """

    def __init__(self, items: Iterable[CatalogItem] = ()):
        self._lock = threading.Lock()
        self._items: dict[int, CatalogItem] = {item.id: item for item in items}
        self._orders: dict[int, Order] = {}
        # both counters survive rollbacks, like database sequences
        self._ids = itertools.count(1)
        self._sequence = itertools.count(1)

    @contextmanager
    def transaction(self):
        with self._lock:
            tx = _MemoryTx(dict(self._items), dict(self._orders), self._ids, self._sequence)
            yield tx
            self._items = tx.items
            self._orders = tx.orders

    def ping(self) -> bool:
        return True

    def open(self) -> None:
        pass

    def close(self) -> None:
        pass

    def item(self, item_id: int) -> Optional[CatalogItem]:
        return self._items.get(item_id)

    def order_count(self) -> int:
        return len(self._orders)
