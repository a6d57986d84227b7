"""Order status state machine and the side effects of each transition.

Every change to a persisted order goes through ``OrderLifecycle``. Each
operation checks its precondition against the order as read inside the
caller's transaction, writes the new state with a version precondition,
and applies compensating stock moves in the same transaction.
"""
import logging
from decimal import Decimal
from typing import Callable, Optional

from .config import OrderPolicy
from .errors import (
    ConcurrentUpdate,
    InvalidRefund,
    InvalidState,
    InvalidTransition,
    OrderNotCancellable,
    RefundExceedsTotal,
)
from .models import Order, OrderStatus, PaymentStatus, utcnow
from .pricing import money
from .store import StoreTx

logger = logging.getLogger(__name__)

TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
    OrderStatus.DELIVERED: frozenset({OrderStatus.RETURNED}),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.RETURNED: frozenset(),
}


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in TRANSITIONS[current]


class OrderLifecycle:
    def __init__(self, policy: OrderPolicy, clock: Callable = utcnow):
        self.policy = policy
        self.clock = clock

    def update_status(
        self, tx: StoreTx, order: Order, new_status: OrderStatus, notes: Optional[str] = None
    ) -> Order:
        try:
            new_status = OrderStatus(new_status)
        except ValueError:
            raise InvalidTransition(order.order_status.value, str(new_status)) from None
        if not can_transition(order.order_status, new_status):
            raise InvalidTransition(order.order_status.value, new_status.value)

        now = self.clock()
        changes = {"order_status": new_status}
        if new_status == OrderStatus.DELIVERED:
            changes["delivered_at"] = now
        elif new_status == OrderStatus.CANCELLED:
            changes["cancelled_at"] = now
            self._release_reservation(tx, order)
        if notes:
            changes["notes"] = notes

        # TODO: decide whether delivered -> returned should restock; it does not today.
        updated = self._save(tx, order, changes, now)
        logger.info("order %s: %s -> %s", order.order_number, order.order_status.value, new_status.value)
        return updated

    def cancel(self, tx: StoreTx, order: Order, reason: Optional[str] = None) -> Order:
        if not order.can_be_cancelled:
            raise OrderNotCancellable(order.order_status.value)

        now = self.clock()
        self._release_reservation(tx, order)
        updated = self._save(tx, order, {
            "order_status": OrderStatus.CANCELLED,
            "cancelled_at": now,
            "cancellation_reason": reason,
        }, now)
        logger.info("order %s cancelled (was %s)", order.order_number, order.order_status.value)
        return updated

    def add_tracking(
        self, tx: StoreTx, order: Order, tracking_number: str, tracking_url: Optional[str] = None
    ) -> Order:
        if order.order_status != OrderStatus.SHIPPED:
            raise InvalidState(
                f"Can only add tracking to shipped orders (order is {order.order_status.value})"
            )
        return self._save(tx, order, {
            "tracking_number": tracking_number,
            "tracking_url": tracking_url,
        }, self.clock())

    def process_refund(
        self, tx: StoreTx, order: Order, refund_amount, reason: Optional[str] = None
    ) -> Order:
        amount = Decimal(refund_amount)
        if amount <= 0:
            raise InvalidRefund(amount)
        if amount > order.total:
            raise RefundExceedsTotal(amount, order.total)
        if amount != money(amount):
            raise InvalidRefund(amount, "cannot have fractions of a cent")
        amount = money(amount)

        now = self.clock()
        status = PaymentStatus.REFUNDED if amount == order.total else PaymentStatus.PARTIALLY_REFUNDED
        updated = self._save(tx, order, {
            "refund_amount": amount,
            "refund_reason": reason,
            "refunded_at": now,
            "payment_status": status,
        }, now)
        logger.info("order %s refunded %s (%s)", order.order_number, amount, status.value)
        return updated

    def can_be_returned(self, order: Order) -> bool:
        return order.can_be_returned(self.clock(), self.policy.return_window_days)

    def _release_reservation(self, tx: StoreTx, order: Order) -> None:
        for line in sorted(order.items, key=lambda l: l.catalog_item_id):
            tx.release_stock(line.catalog_item_id, line.quantity)

    def _save(self, tx: StoreTx, order: Order, changes: dict, now) -> Order:
        changes["updated_at"] = now
        try:
            return tx.update_order(order.evolve(**changes), expected_version=order.version)
        except ConcurrentUpdate:
            logger.warning("order %s changed concurrently, update rejected", order.order_number)
            raise
