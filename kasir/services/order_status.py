"""Order status machine."""
from kasir.models import Order, OrderStatus
from kasir.exceptions import (
    InvalidStatusTransitionError, OrderNotModifiableError, OrderNotCancellableError
)

# Back-and-forth moves are allowed for operational corrections; cancelled is terminal.
ALLOWED_TRANSITIONS = {
    OrderStatus.OPEN: {
        OrderStatus.IN_PROGRESS, OrderStatus.SERVED, OrderStatus.PAID, OrderStatus.CANCELLED
    },
    OrderStatus.IN_PROGRESS: {
        OrderStatus.SERVED, OrderStatus.PAID, OrderStatus.CANCELLED, OrderStatus.OPEN
    },
    OrderStatus.SERVED: {
        OrderStatus.PAID, OrderStatus.IN_PROGRESS, OrderStatus.CANCELLED, OrderStatus.OPEN
    },
    OrderStatus.PAID: {
        OrderStatus.SERVED, OrderStatus.IN_PROGRESS, OrderStatus.OPEN
    },
    OrderStatus.CANCELLED: set(),
}

FINAL_STATUSES = {OrderStatus.PAID, OrderStatus.CANCELLED}


def parse_status(value) -> OrderStatus:
    """Return the OrderStatus for a raw value, or raise ValueError."""
    if isinstance(value, OrderStatus):
        return value
    return OrderStatus(str(value).strip().lower())


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, set())


def validate_transition(current: OrderStatus, target: OrderStatus) -> None:
    """Raise InvalidStatusTransitionError for any move not in the table."""
    if not can_transition(current, target):
        raise InvalidStatusTransitionError(current.value, target.value)


def ensure_modifiable(order: Order) -> None:
    """Items, stock, totals and promotions only change while the order is open."""
    if order.status != OrderStatus.OPEN:
        raise OrderNotModifiableError(
            f"Order {order.id} cannot be modified in status '{order.status.value}'"
        )


def ensure_cancellable(order: Order) -> None:
    if order.status != OrderStatus.OPEN:
        raise OrderNotCancellableError(
            f"Order {order.id} cannot be cancelled in status '{order.status.value}'"
        )


def is_final_for_gateway(order: Order) -> bool:
    """
    True once a gateway notification must leave the order alone.

    Settlement is tracked apart from the operational status: a paid order
    may have moved back to served or in_progress and is still final.
    """
    return order.is_settled or order.status in FINAL_STATUSES
