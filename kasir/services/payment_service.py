"""
Payment reconciliation rules.

Manual settlement (cash change calculation) and the mapping of gateway
transaction statuses onto order statuses.
"""
from typing import Optional, Tuple

from kasir.models import Order, OrderStatus
from kasir.exceptions import InvalidInputError, OrderNotModifiableError

# Gateway transaction_status values
GATEWAY_PAID_STATUSES = {'settlement', 'capture'}
GATEWAY_CANCELLED_STATUSES = {'cancel', 'deny', 'expire'}


def ensure_payable(order: Order) -> None:
    """Manual payment is refused for cancelled or already settled orders."""
    if order.status == OrderStatus.CANCELLED:
        raise OrderNotModifiableError(f'Order {order.id} is cancelled')
    if order.is_settled:
        raise OrderNotModifiableError('Order has already been paid')


def calculate_cash_payment(
    net_total: int,
    cash_received: Optional[int],
    is_cash: bool
) -> Tuple[Optional[int], Optional[int]]:
    """
    Compute (cash_received, change_due) for a manual payment.

    A cash payment without an amount (None or 0) is taken as exact change.
    A non-cash payment without an amount records no cash figures.

    Raises:
        InvalidInputError: If the amount is negative or below the net total
    """
    if cash_received is not None and cash_received < 0:
        raise InvalidInputError('Cash received cannot be negative')

    if not cash_received:
        if is_cash:
            return net_total, 0
        return None, None

    if cash_received < net_total:
        raise InvalidInputError(
            f'Cash received ({cash_received}) is less than the net total ({net_total})'
        )
    return cash_received, cash_received - net_total


def map_gateway_status(transaction_status: Optional[str]) -> Optional[OrderStatus]:
    """Order status for a gateway transaction status, None for statuses that change nothing."""
    status = (transaction_status or '').strip().lower()
    if status in GATEWAY_PAID_STATUSES:
        return OrderStatus.PAID
    if status in GATEWAY_CANCELLED_STATUSES:
        return OrderStatus.CANCELLED
    return None
