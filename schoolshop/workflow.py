"""Order creation: validate lines, snapshot the catalog, price, persist, reserve."""
import logging
from collections import Counter
from typing import Callable, Optional, Sequence

from .config import OrderPolicy
from .errors import EmptyOrder, InsufficientStock, ItemNotFound
from .models import (
    GiftOptions,
    LineRequest,
    Order,
    OrderLineItem,
    PaymentMethod,
    ShippingAddress,
    utcnow,
)
from .pricing import ZERO, format_order_number, money, shipping_cost, tax
from .store import StoreTx

logger = logging.getLogger(__name__)


class OrderWorkflow:
    def __init__(self, policy: OrderPolicy, clock: Callable = utcnow):
        self.policy = policy
        self.clock = clock

    def create_order(
        self,
        tx: StoreTx,
        customer_id: str,
        lines: Sequence[LineRequest],
        shipping_address: ShippingAddress,
        payment_method: PaymentMethod,
        gift: Optional[GiftOptions] = None,
        notes: Optional[str] = None,
    ) -> Order:
        """Create a pending order and reserve its stock inside ``tx``.

        All lines are checked before anything is written. The ledger insert
        and the stock decrements share the transaction, so a failure in
        either leaves no trace once the caller's transaction rolls back.
        """
        if not lines:
            raise EmptyOrder()
        gift = gift or GiftOptions()

        demand = Counter()
        for line in lines:
            demand[line.catalog_item_id] += line.quantity

        catalog = tx.lock_items(demand)
        for item_id, quantity in demand.items():
            item = catalog.get(item_id)
            if item is None or not item.is_active:
                raise ItemNotFound(item_id)
            if quantity > item.available_stock:
                raise InsufficientStock(item_id, item.title, quantity, item.available_stock)

        items = tuple(
            OrderLineItem(
                catalog_item_id=line.catalog_item_id,
                title_snapshot=catalog[line.catalog_item_id].title,
                unit_price_snapshot=catalog[line.catalog_item_id].unit_price,
                quantity=line.quantity,
                image_snapshot=catalog[line.catalog_item_id].image,
            )
            for line in lines
        )
        subtotal = money(sum((item.line_total for item in items), ZERO))

        now = self.clock()
        order = Order(
            order_number=format_order_number(tx.next_order_sequence(), now),
            customer_id=customer_id,
            items=items,
            shipping_address=shipping_address,
            payment_method=payment_method,
            shipping_cost=shipping_cost(subtotal, self.policy),
            tax=tax(subtotal, self.policy),
            gift_wrap_cost=money(gift.gift_wrap_cost),
            currency=self.policy.currency,
            notes=notes,
            is_gift=gift.is_gift,
            gift_message=gift.gift_message,
            is_gift_wrapped=gift.is_gift_wrapped,
            created_at=now,
            updated_at=now,
        )
        order = tx.insert_order(order)

        for item_id in sorted(demand):
            if not tx.reserve_stock(item_id, demand[item_id]):
                current = tx.get_item(item_id)
                available = current.available_stock if current else 0
                logger.warning("stock reservation lost for item %s on %s", item_id, order.order_number)
                raise InsufficientStock(item_id, catalog[item_id].title, demand[item_id], available)

        logger.info("order %s created for %s, total %s", order.order_number, customer_id, order.total)
        return order
