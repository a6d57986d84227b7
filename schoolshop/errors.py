"""Errors raised by order operations.

Every error carries a machine-readable ``kind`` that the HTTP layer maps
to a status code, and a human-readable message.
"""


class OrderError(Exception):
    """Base exception for all order operation failures."""

    kind = "OrderError"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class EmptyOrder(OrderError):
    kind = "EmptyOrder"

    def __init__(self):
        super().__init__("Order must contain at least one item")


class ItemNotFound(OrderError):
    """Raised when a catalog item is missing or inactive."""

    kind = "ItemNotFound"

    def __init__(self, item_id: int):
        self.item_id = item_id
        super().__init__(f"Catalog item with ID {item_id} not found")


class InsufficientStock(OrderError):
    kind = "InsufficientStock"

    def __init__(self, item_id: int, title: str, requested: int, available: int):
        self.item_id = item_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for {title}. Requested: {requested}, available: {available}"
        )


class RefundExceedsTotal(OrderError):
    kind = "RefundExceedsTotal"

    def __init__(self, amount, total):
        self.amount = amount
        self.total = total
        super().__init__(f"Refund amount {amount} cannot exceed order total {total}")


class InvalidRefund(OrderError):
    kind = "InvalidRefund"

    def __init__(self, amount, reason: str = "must be positive"):
        self.amount = amount
        super().__init__(f"Refund amount {reason}, got {amount}")


class InvalidTransition(OrderError):
    kind = "InvalidTransition"

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Invalid status transition from {current} to {target}")


class OrderNotCancellable(OrderError):
    kind = "OrderNotCancellable"

    def __init__(self, status: str):
        self.status = status
        super().__init__(f"Order cannot be cancelled in its current status ({status})")


class InvalidState(OrderError):
    kind = "InvalidState"


class OrderNotFound(OrderError):
    kind = "NotFound"

    def __init__(self, order_id: int):
        self.order_id = order_id
        super().__init__(f"No order found with ID {order_id}")


class ConcurrentUpdate(OrderError):
    """Raised when an order changed between read and write."""

    kind = "ConcurrentUpdate"

    def __init__(self, order_id: int, expected_version: int):
        self.order_id = order_id
        self.expected_version = expected_version
        super().__init__(
            f"Order {order_id} was modified concurrently (expected version {expected_version})"
        )


class PersistenceFailure(OrderError):
    """Raised when the store fails mid-operation; the transaction was rolled back."""

    kind = "PersistenceFailure"

    def __init__(self, operation: str, cause: Exception | None = None):
        self.operation = operation
        self.cause = cause
        msg = f"{operation} failed and was rolled back"
        if cause is not None:
            msg = f"{msg}: {cause}"
        super().__init__(msg)
