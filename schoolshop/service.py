# schoolshop/service.py
import logging
from typing import Callable, Optional, Sequence

from .config import OrderPolicy
from .errors import InsufficientStock, ItemNotFound, OrderNotFound
from .lifecycle import OrderLifecycle
from .models import (
    CatalogItem,
    CatalogItemIn,
    GiftOptions,
    LineRequest,
    Order,
    OrderStats,
    OrderStatus,
    PaymentMethod,
    ShippingAddress,
    utcnow,
)
from .store import Store, StoreTx
from .workflow import OrderWorkflow

logger = logging.getLogger(__name__)


class OrderService:
    """Order operations by id; each call runs in exactly one store transaction."""

    def __init__(self, store: Store, policy: Optional[OrderPolicy] = None, clock: Callable = utcnow):
        self.store = store
        self.clock = clock
        self.policy = policy or OrderPolicy()
        self.workflow = OrderWorkflow(self.policy, clock)
        self.lifecycle = OrderLifecycle(self.policy, clock)

    # Catalog

    def put_catalog_item(self, item_id: int, body: CatalogItemIn) -> CatalogItem:
        with self.store.transaction() as tx:
            return tx.put_item(CatalogItem(id=item_id, **body.model_dump()))

    def get_catalog_item(self, item_id: int) -> CatalogItem:
        with self.store.transaction() as tx:
            item = tx.get_item(item_id)
        if item is None:
            raise ItemNotFound(item_id)
        return item

    # Orders

    def create_order(
        self,
        customer_id: str,
        lines: Sequence[LineRequest],
        shipping_address: ShippingAddress,
        payment_method: PaymentMethod,
        gift: Optional[GiftOptions] = None,
        notes: Optional[str] = None,
    ) -> Order:
        try:
            with self.store.transaction() as tx:
                return self.workflow.create_order(
                    tx, customer_id, lines, shipping_address, payment_method, gift, notes
                )
        except InsufficientStock as e:
            logger.warning("order for %s rejected: %s", customer_id, e.message)
            raise

    def get_order(self, order_id: int, customer_id: Optional[str] = None) -> Order:
        with self.store.transaction() as tx:
            return self._load(tx, order_id, customer_id)

    def update_order_status(
        self,
        order_id: int,
        new_status: OrderStatus,
        notes: Optional[str] = None,
        tracking_number: Optional[str] = None,
        tracking_url: Optional[str] = None,
    ) -> Order:
        with self.store.transaction() as tx:
            order = self._load(tx, order_id, lock=True)
            order = self.lifecycle.update_status(tx, order, new_status, notes)
            if tracking_number and order.order_status == OrderStatus.SHIPPED:
                order = self.lifecycle.add_tracking(tx, order, tracking_number, tracking_url)
            return order

    def cancel_order(
        self, order_id: int, reason: Optional[str] = None, customer_id: Optional[str] = None
    ) -> Order:
        with self.store.transaction() as tx:
            order = self._load(tx, order_id, customer_id, lock=True)
            return self.lifecycle.cancel(tx, order, reason)

    def add_tracking(
        self, order_id: int, tracking_number: str, tracking_url: Optional[str] = None
    ) -> Order:
        with self.store.transaction() as tx:
            order = self._load(tx, order_id, lock=True)
            return self.lifecycle.add_tracking(tx, order, tracking_number, tracking_url)

    def process_refund(self, order_id: int, refund_amount, reason: Optional[str] = None) -> Order:
        with self.store.transaction() as tx:
            order = self._load(tx, order_id, lock=True)
            return self.lifecycle.process_refund(tx, order, refund_amount, reason)

    def can_be_returned(self, order_id: int) -> bool:
        return self.lifecycle.can_be_returned(self.get_order(order_id))

    def order_stats(self) -> OrderStats:
        with self.store.transaction() as tx:
            return tx.order_stats(self.clock())

    def _load(
        self, tx: StoreTx, order_id: int, customer_id: Optional[str] = None, lock: bool = False
    ) -> Order:
        order = tx.get_order(order_id, lock=lock)
        if order is None or (customer_id is not None and order.customer_id != customer_id):
            raise OrderNotFound(order_id)
        return order
