# schoolshop/models.py
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field

from .pricing import ZERO, money, order_total


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    RETURNED = "returned"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially_refunded"


class PaymentMethod(str, Enum):
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    PAYPAL = "paypal"
    STRIPE = "stripe"
    CASH_ON_DELIVERY = "cash_on_delivery"


CANCELLABLE_STATUSES = frozenset(
    {OrderStatus.PENDING, OrderStatus.CONFIRMED, OrderStatus.PROCESSING}
)

# Catalog


class CatalogItemIn(BaseModel):
    title: str = Field(min_length=1)
    unit_price: Decimal = Field(ge=0, decimal_places=2)
    available_stock: int = Field(ge=0)
    image: Optional[str] = None
    is_active: bool = True


class CatalogItem(CatalogItemIn):
    model_config = ConfigDict(frozen=True)

    id: int


# Order ledger


class ShippingAddress(BaseModel):
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    name: str = Field(min_length=1)
    street: str = Field(min_length=1)
    city: str = Field(min_length=1)
    state: str = Field(min_length=1)
    zip_code: str = Field(min_length=1)
    country: str = Field(default="United States", min_length=1)
    phone: Optional[str] = None


class OrderLineItem(BaseModel):
    """Catalog data copied at purchase time; never re-read from the live catalog."""

    model_config = ConfigDict(frozen=True)

    catalog_item_id: int
    title_snapshot: str
    unit_price_snapshot: Decimal = Field(ge=0)
    quantity: int = Field(ge=1, le=100)
    image_snapshot: Optional[str] = None

    @property
    def line_total(self) -> Decimal:
        return money(self.unit_price_snapshot * self.quantity)


class Order(BaseModel):
    """One persisted purchase.

    ``subtotal`` and ``total`` are derived from the line items and fees on
    every access, so they cannot drift from ``items``. Instances are frozen;
    use ``evolve`` to produce a re-validated copy with changes applied.
    """

    model_config = ConfigDict(frozen=True)

    id: Optional[int] = None
    order_number: str
    customer_id: str
    items: tuple[OrderLineItem, ...] = Field(min_length=1)
    shipping_address: ShippingAddress
    payment_method: PaymentMethod
    shipping_cost: Decimal = Field(default=ZERO, ge=0)
    tax: Decimal = Field(default=ZERO, ge=0)
    discount: Decimal = Field(default=ZERO, ge=0)
    gift_wrap_cost: Decimal = Field(default=ZERO, ge=0)
    currency: str = "USD"
    order_status: OrderStatus = OrderStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.PENDING
    notes: Optional[str] = Field(default=None, max_length=500)
    tracking_number: Optional[str] = None
    tracking_url: Optional[str] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    refund_amount: Decimal = Field(default=ZERO, ge=0)
    refund_reason: Optional[str] = None
    refunded_at: Optional[datetime] = None
    is_gift: bool = False
    gift_message: Optional[str] = Field(default=None, max_length=200)
    is_gift_wrapped: bool = False
    version: int = 1
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @computed_field
    @property
    def subtotal(self) -> Decimal:
        return money(sum((item.line_total for item in self.items), ZERO))

    @computed_field
    @property
    def total(self) -> Decimal:
        return order_total(
            self.subtotal, self.shipping_cost, self.tax, self.gift_wrap_cost, self.discount
        )

    @property
    def can_be_cancelled(self) -> bool:
        return self.order_status in CANCELLABLE_STATUSES

    @property
    def is_delivered(self) -> bool:
        return self.order_status == OrderStatus.DELIVERED

    @property
    def is_cancelled(self) -> bool:
        return self.order_status == OrderStatus.CANCELLED

    @property
    def summary(self) -> dict:
        return {
            "item_count": sum(item.quantity for item in self.items),
            "total_items": len(self.items),
            "total_value": self.total,
            "status": self.order_status,
        }

    def can_be_returned(self, now: Optional[datetime] = None, window_days: int = 30) -> bool:
        if self.order_status != OrderStatus.DELIVERED or self.delivered_at is None:
            return False
        now = now or utcnow()
        return now - self.delivered_at <= timedelta(days=window_days)

    def evolve(self, **changes) -> "Order":
        data = self.model_dump(exclude={"subtotal", "total"})
        data.update(changes)
        return type(self).model_validate(data)


# Request bodies


class LineRequest(BaseModel):
    catalog_item_id: int
    quantity: int = Field(ge=1, le=100)


class GiftOptions(BaseModel):
    is_gift: bool = False
    gift_message: Optional[str] = Field(default=None, max_length=200)
    is_gift_wrapped: bool = False
    gift_wrap_cost: Decimal = Field(default=ZERO, ge=0)


class OrderIn(BaseModel):
    items: list[LineRequest] = Field(default_factory=list)
    shipping_address: ShippingAddress
    payment_method: PaymentMethod
    gift: GiftOptions = Field(default_factory=GiftOptions)
    notes: Optional[str] = Field(default=None, max_length=500)


class StatusPatch(BaseModel):
    status: OrderStatus
    notes: Optional[str] = Field(default=None, max_length=500)
    tracking_number: Optional[str] = None
    tracking_url: Optional[str] = None


class CancelPatch(BaseModel):
    reason: Optional[str] = None


class TrackingPatch(BaseModel):
    tracking_number: str = Field(min_length=1)
    tracking_url: Optional[str] = None


class RefundPatch(BaseModel):
    refund_amount: Decimal
    reason: Optional[str] = None


# Reports


class StatusStat(BaseModel):
    status: OrderStatus
    count: int
    total_value: Decimal


class PeriodStat(BaseModel):
    count: int = 0
    revenue: Decimal = ZERO


class TopSeller(BaseModel):
    catalog_item_id: int
    title: str
    total_sold: int
    total_revenue: Decimal


class OrderStats(BaseModel):
    by_status: list[StatusStat]
    total_orders: int
    total_revenue: Decimal
    monthly: PeriodStat = Field(default_factory=PeriodStat)
    yearly: PeriodStat = Field(default_factory=PeriodStat)
    top_selling: list[TopSeller] = Field(default_factory=list)
