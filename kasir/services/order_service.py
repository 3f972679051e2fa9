"""
Order transaction service.

Every mutating entry point runs as one unit of work: the order row is locked,
product rows are locked through the stock guard before any stock change,
items/totals/ledger are written, and the unit commits or rolls back as a
whole. The activity log event is emitted after the commit and can never fail
the call. Each entry point returns the order detail projection.
"""
import json
import logging
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from kasir.database import get_session, unit_of_work
from kasir.exceptions import (
    NotFoundError, InvalidInputError, InvalidSignatureError,
    OrderNotModifiableError, InternalError
)
from kasir.models import (
    Order, OrderItem, OrderItemOption, OrderStatus, OrderType,
    ProductOption, PaymentMethod, CancellationReason,
    StockChangeType, LogActionType, LogEntityType
)
from kasir.services.order_status import (
    is_final_for_gateway, parse_status, validate_transition, ensure_modifiable, ensure_cancellable
)
from kasir.services.payment_service import ensure_payable, calculate_cash_payment, map_gateway_status
from kasir.services.promotion_service import evaluate_promotion
from kasir.services.stock_service import lock_products, apply_stock_deltas
from kasir.utils.pagination import normalize_page, build_pagination

logger = logging.getLogger(__name__)


class OrderService:
    """Entry points of the order transaction engine."""

    def __init__(self, gateway, activity_logger, session_factory=None,
                 default_limit: int = 10, max_limit: int = 100):
        """
        Args:
            gateway: Payment gateway (create_charge, cancel, verify_signature)
            activity_logger: Fire-and-forget sink with log(actor_id, action, entity_type, entity_id, details)
            session_factory: Callable returning a session; defaults to the scoped session registry
            default_limit: Page size used when list_orders gets none
            max_limit: Upper bound for the list_orders page size
        """
        self.gateway = gateway
        self.activity_logger = activity_logger
        self._session_factory = session_factory
        self.default_limit = default_limit
        self.max_limit = max_limit

    # ------------------------------------------------------------------
    # Create / update items
    # ------------------------------------------------------------------

    def create_order(self, actor_id: Optional[UUID], order_type, items: List[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Create an open order, snapshot prices and take the stock.

        Args:
            actor_id: User creating the order (may be None)
            order_type: 'dine_in' or 'takeaway'
            items: [{product_id, quantity, options: [product_option_id, ...]}]

        Raises:
            InvalidInputError: Empty item list, bad quantity, type or option
            NotFoundError: Unknown or deleted product
            InsufficientStockError: Not enough stock for a product
        """
        self._check_actor(actor_id, 'create order')
        order_type = _parse_order_type(order_type)
        lines = _normalize_lines(items)

        with unit_of_work(self._session()) as session:
            order = Order(
                user_id=actor_id,
                type=order_type,
                status=OrderStatus.OPEN,
                gross_total=0,
                discount_amount=0,
                net_total=0,
            )
            session.add(order)
            session.flush()

            products = lock_products(session, [line['product_id'] for line in lines])
            options = _resolve_options(session, lines)

            deltas = defaultdict(int)
            for line_number, line in enumerate(lines, start=1):
                item = _build_item(line, products[line['product_id']], options, line_number)
                order.items.append(item)
                deltas[line['product_id']] -= line['quantity']

            apply_stock_deltas(
                session, products, dict(deltas), order.id, actor_id,
                note=f'Order {order.id} created', change_type=StockChangeType.SALE
            )

            gross_total = sum(item.subtotal for item in order.items)
            _set_totals(order, gross_total, 0)

        result = order.to_dict()
        logger.info(f"Order {result['id']} created with {len(lines)} line(s), gross_total={result['gross_total']}")
        self._audit(actor_id, LogActionType.CREATE, result['id'], {
            'status': result['status'],
            'type': result['type'],
            'gross_total': result['gross_total'],
        })
        return result

    def update_order_items(self, actor_id: Optional[UUID], order_id, items: List[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Replace the quantities of an open order.

        Requested quantities are diffed against the existing lines by product:
        increases take stock, decreases and removed products return it.
        Totals are recomputed from the lines and any applied promotion is
        cleared.
        """
        self._check_actor(actor_id, 'update order items')
        order_id = _to_uuid(order_id, 'order id', NotFoundError)
        requested = _normalize_lines(items)

        requested_ids = [line['product_id'] for line in requested]
        if len(set(requested_ids)) != len(requested_ids):
            raise InvalidInputError('Each product may appear only once when updating order items')

        with unit_of_work(self._session()) as session:
            order = _lock_order(session, order_id)
            ensure_modifiable(order)

            existing = defaultdict(list)
            for item in order.items:
                existing[item.product_id].append(item)
            next_line = max((item.line_number for item in order.items), default=0) + 1

            # Products already on the order may have been deleted since; their stock still has to move
            products = lock_products(session, set(existing) | set(requested_ids), include_deleted=True)
            new_lines = [line for line in requested if line['product_id'] not in existing]
            for line in new_lines:
                if products[line['product_id']].is_deleted:
                    raise NotFoundError(f"Product {line['product_id']} not found")
            options = _resolve_options(session, new_lines)

            deltas = {}
            for line in requested:
                product_id = line['product_id']
                current_items = existing.get(product_id)

                if not current_items:
                    order.items.append(_build_item(line, products[product_id], options, next_line))
                    next_line += 1
                    deltas[product_id] = -line['quantity']
                    continue

                diff = line['quantity'] - sum(item.quantity for item in current_items)
                if diff > 0 and products[product_id].is_deleted:
                    raise NotFoundError(f'Product {product_id} not found')
                if diff > 0:
                    last = current_items[-1]
                    last.set_quantity(last.quantity + diff)
                elif diff < 0:
                    _reduce_items(order, current_items, -diff)
                if diff:
                    deltas[product_id] = -diff

            for product_id, current_items in existing.items():
                if product_id in requested_ids:
                    continue
                deltas[product_id] = sum(item.quantity for item in current_items)
                for item in current_items:
                    order.items.remove(item)

            apply_stock_deltas(
                session, products, deltas, order.id, actor_id,
                note=f'Order {order.id} items updated'
            )

            # Edits invalidate a previously applied promotion
            order.applied_promotion_id = None
            _set_totals(order, sum(item.subtotal for item in order.items), 0)

        result = order.to_dict()
        self._audit(actor_id, LogActionType.UPDATE, result['id'], {
            'items': [{'product_id': str(line['product_id']), 'quantity': line['quantity']} for line in requested],
            'gross_total': result['gross_total'],
        })
        return result

    # ------------------------------------------------------------------
    # Cancel / status
    # ------------------------------------------------------------------

    def cancel_order(self, actor_id: Optional[UUID], order_id, cancellation_reason_id, notes: Optional[str] = None) -> Dict[str, Any]:
        """
        Cancel an open order and return its stock.

        An outstanding gateway transaction is cancelled first; if that fails
        the whole cancellation is rolled back.

        Raises:
            OrderNotCancellableError: Order is not open
            InvalidInputError: Unknown or inactive cancellation reason
            PaymentFailedError: Gateway cancellation failed
        """
        self._check_actor(actor_id, 'cancel order')
        order_id = _to_uuid(order_id, 'order id', NotFoundError)
        reason_id = _to_int(cancellation_reason_id, 'cancellation reason id')

        with unit_of_work(self._session()) as session:
            order = _lock_order(session, order_id)
            ensure_cancellable(order)

            reason = session.get(CancellationReason, reason_id)
            if not reason or not reason.is_active:
                raise InvalidInputError(f'Cancellation reason {reason_id} not found')

            self._cancel_locked(session, order, actor_id)
            order.cancellation_reason_id = reason.id
            order.cancellation_notes = notes

        result = order.to_dict()
        logger.info(f"Order {result['id']} cancelled (reason {reason_id})")
        self._audit(actor_id, LogActionType.CANCEL, result['id'], {
            'cancellation_reason_id': reason_id,
            'notes': notes,
        })
        return result

    def update_operational_status(self, actor_id: Optional[UUID], order_id, status) -> Dict[str, Any]:
        """
        Move an order through its operational states.

        A move to cancelled returns stock exactly like cancel_order.

        Raises:
            InvalidInputError: Unknown status value
            InvalidStatusTransitionError: Move not allowed from the current status
        """
        self._check_actor(actor_id, 'update order status')
        order_id = _to_uuid(order_id, 'order id', NotFoundError)
        try:
            target = parse_status(status)
        except ValueError:
            raise InvalidInputError(f"Unknown order status '{status}'")

        with unit_of_work(self._session()) as session:
            order = _lock_order(session, order_id)
            previous = order.status
            validate_transition(previous, target)

            if target == OrderStatus.CANCELLED:
                self._cancel_locked(session, order, actor_id)
            else:
                order.status = target

        result = order.to_dict()
        logger.info(f"Order {result['id']} status {previous.value} -> {target.value}")
        self._audit(actor_id, LogActionType.UPDATE_STATUS, result['id'], {
            'from': previous.value,
            'to': target.value,
        })
        return result

    def _cancel_locked(self, session, order: Order, actor_id: Optional[UUID]) -> None:
        """Cancel a locked order: gateway first, then status and stock."""
        if order.payment_gateway_reference and not order.is_settled:
            # Raises PaymentFailedError; the caller's unit of work rolls back
            self.gateway.cancel(str(order.id))

        order.status = OrderStatus.CANCELLED
        self._return_stock(session, order, actor_id, f'Order {order.id} cancelled')

    def _return_stock(self, session, order: Order, actor_id: Optional[UUID], note: str) -> None:
        deltas = defaultdict(int)
        for item in order.items:
            deltas[item.product_id] += item.quantity
        if not deltas:
            return
        products = lock_products(session, deltas.keys(), include_deleted=True)
        apply_stock_deltas(
            session, products, dict(deltas), order.id, actor_id,
            note=note, change_type=StockChangeType.RETURN
        )

    # ------------------------------------------------------------------
    # Promotions
    # ------------------------------------------------------------------

    def apply_promotion(self, actor_id: Optional[UUID], order_id, promotion_id) -> Dict[str, Any]:
        """
        Apply a promotion to an open order, replacing any previous one.

        Raises:
            OrderNotModifiableError: Order is not open
            NotFoundError: Unknown order or promotion
            PromotionNotApplicableError: Window or a rule rejects the order
        """
        self._check_actor(actor_id, 'apply promotion')
        order_id = _to_uuid(order_id, 'order id', NotFoundError)
        promotion_id = _to_uuid(promotion_id, 'promotion id')

        with unit_of_work(self._session()) as session:
            order = _lock_order(session, order_id)
            ensure_modifiable(order)

            evaluation = evaluate_promotion(session, order, list(order.items), promotion_id)

            order.applied_promotion_id = evaluation.promotion.id
            _set_totals(order, order.gross_total, evaluation.discount_amount)

        result = order.to_dict()
        self._audit(actor_id, LogActionType.APPLY_PROMOTION, result['id'], {
            'promotion_id': str(promotion_id),
            'discount_amount': result['discount_amount'],
            'net_total': result['net_total'],
        })
        return result

    # ------------------------------------------------------------------
    # Payment
    # ------------------------------------------------------------------

    def confirm_manual_payment(self, actor_id: Optional[UUID], order_id, payment_method_id,
                               cash_received: Optional[int] = None) -> Dict[str, Any]:
        """
        Settle an order at the counter.

        Raises:
            OrderNotModifiableError: Order cancelled or already paid
            InvalidInputError: Unknown payment method or insufficient cash
        """
        self._check_actor(actor_id, 'confirm manual payment')
        order_id = _to_uuid(order_id, 'order id', NotFoundError)
        method_id = _to_int(payment_method_id, 'payment method id')
        if cash_received is not None:
            cash_received = _to_int(cash_received, 'cash received')

        with unit_of_work(self._session()) as session:
            order = _lock_order(session, order_id)
            ensure_payable(order)

            method = session.get(PaymentMethod, method_id)
            if not method or not method.is_active:
                raise InvalidInputError(f'Payment method {method_id} not found')

            cash, change = calculate_cash_payment(order.net_total, cash_received, method.is_cash)

            order.payment_method_id = method.id
            order.cash_received = cash
            order.change_due = change
            order.status = OrderStatus.PAID
            order.paid_at = datetime.now(timezone.utc)

        result = order.to_dict()
        logger.info(f"Order {result['id']} paid manually with method {method_id}")
        self._audit(actor_id, LogActionType.PROCESS_PAYMENT, result['id'], {
            'payment_method_id': method_id,
            'net_total': result['net_total'],
            'cash_received': result['cash_received'],
            'change_due': result['change_due'],
        })
        return result

    def initiate_gateway_payment(self, actor_id: Optional[UUID], order_id) -> Dict[str, Any]:
        """
        Create a QRIS charge for the order's net total.

        An order that already carries a gateway reference is not charged
        again; the stored charge is returned instead.

        Returns:
            Dict with order_id, transaction_id, gross_amount, actions, qr_string, expiry_time
        """
        self._check_actor(actor_id, 'initiate gateway payment')
        order_id = _to_uuid(order_id, 'order id', NotFoundError)
        created = False

        with unit_of_work(self._session()) as session:
            order = _lock_order(session, order_id)
            if order.status == OrderStatus.CANCELLED:
                raise OrderNotModifiableError(f'Order {order.id} is cancelled')
            if order.is_settled:
                raise OrderNotModifiableError('Order has already been paid')
            if order.net_total <= 0:
                raise InvalidInputError('Order has nothing to charge')

            if order.payment_gateway_reference:
                charge = {
                    'transaction_id': order.payment_gateway_reference,
                    'gross_amount': order.net_total,
                    'actions': json.loads(order.payment_url) if order.payment_url else [],
                    'qr_string': None,
                    'expiry_time': None,
                }
            else:
                charge = self.gateway.create_charge(str(order.id), order.net_total)
                if not charge.get('transaction_id'):
                    raise InternalError('Payment gateway returned no transaction id')
                order.payment_gateway_reference = charge['transaction_id']
                order.payment_url = json.dumps(charge.get('actions') or [])
                created = True

        result = {
            'order_id': str(order_id),
            'transaction_id': charge['transaction_id'],
            'gross_amount': charge.get('gross_amount'),
            'actions': charge.get('actions') or [],
            'qr_string': charge.get('qr_string'),
            'expiry_time': charge.get('expiry_time'),
        }
        if created:
            self._audit(actor_id, LogActionType.PROCESS_PAYMENT, str(order_id), {
                'gateway': 'midtrans',
                'transaction_id': result['transaction_id'],
            })
        return result

    def handle_gateway_notification(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Reconcile an order with a gateway notification.

        Notifications for orders already paid or cancelled are acknowledged
        without changes, as are unknown transaction statuses.

        Returns:
            Dict with order_id, status and whether the order was updated

        Raises:
            InvalidSignatureError: Signature verification failed
            NotFoundError: Unparseable order id, unknown order or gateway reference
        """
        if not self.gateway.verify_signature(payload):
            raise InvalidSignatureError()

        order_id = _to_uuid(payload.get('order_id'), 'order id', NotFoundError)
        transaction_status = payload.get('transaction_status')
        target = map_gateway_status(transaction_status)

        with unit_of_work(self._session()) as session:
            order = _lock_order(session, order_id)
            owner_id = order.user_id

            if is_final_for_gateway(order):
                logger.info(
                    f"Notification for order {order_id} ignored: already settled or cancelled "
                    f"(status {order.status.value})"
                )
                return {'order_id': str(order_id), 'status': order.status.value, 'updated': False}

            if target is None:
                logger.warning(
                    f"Ignoring gateway status '{transaction_status}' for order {order_id}"
                )
                return {'order_id': str(order_id), 'status': order.status.value, 'updated': False}

            transaction_id = payload.get('transaction_id')
            if not transaction_id or order.payment_gateway_reference != str(transaction_id):
                raise NotFoundError(f'No order {order_id} with gateway reference {transaction_id}')

            previous = order.status
            order.status = target
            if target == OrderStatus.PAID:
                order.paid_at = datetime.now(timezone.utc)
            else:
                self._return_stock(session, order, owner_id, f'Order {order.id} cancelled by payment gateway')

        logger.info(f"Order {order_id} {previous.value} -> {target.value} from gateway status '{transaction_status}'")
        action = LogActionType.PROCESS_PAYMENT if target == OrderStatus.PAID else LogActionType.CANCEL
        self._audit(owner_id, action, str(order_id), {
            'gateway': 'midtrans',
            'transaction_id': transaction_id,
            'transaction_status': transaction_status,
        })
        return {'order_id': str(order_id), 'status': target.value, 'updated': True}

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_order(self, order_id) -> Dict[str, Any]:
        order_id = _to_uuid(order_id, 'order id', NotFoundError)
        order = self._session().get(Order, order_id)
        if not order:
            raise NotFoundError(f'Order {order_id} not found')
        return order.to_dict()

    def list_orders(self, page=1, limit=None, status=None, user_id=None) -> Dict[str, Any]:
        """
        Page of orders, newest first.

        The page and the total count are read concurrently, each on its own
        session; the call fails if either read fails.
        """
        page, limit = normalize_page(page, limit, self.default_limit, self.max_limit)
        filters = {}
        if status:
            try:
                filters['status'] = parse_status(status)
            except ValueError:
                raise InvalidInputError(f"Unknown order status '{status}'")
        if user_id:
            filters['user_id'] = _to_uuid(user_id, 'user id')

        offset = (page - 1) * limit
        with ThreadPoolExecutor(max_workers=2, thread_name_prefix='order-list') as executor:
            orders_future = executor.submit(self._read_in_worker, _fetch_orders, filters, limit, offset)
            count_future = executor.submit(self._read_in_worker, _count_orders, filters)
            orders = orders_future.result()
            total = count_future.result()

        return {
            'orders': orders,
            'pagination': build_pagination(page, total, limit),
        }

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _session(self):
        if self._session_factory is not None:
            return self._session_factory()
        return get_session()()

    def _read_in_worker(self, fn, *args):
        registry = None
        if self._session_factory is not None:
            session = self._session_factory()
        else:
            registry = get_session()
            session = registry()
        try:
            return fn(session, *args)
        except SQLAlchemyError as e:
            raise InternalError(f'Database error: {e}') from e
        finally:
            if registry is not None:
                registry.remove()
            else:
                session.close()

    def _check_actor(self, actor_id, operation: str) -> None:
        if actor_id is None:
            logger.warning(f"No actor for {operation}; proceeding without a user id")

    def _audit(self, actor_id, action: LogActionType, order_id: str, details: Dict[str, Any]) -> None:
        try:
            self.activity_logger.log(actor_id, action, LogEntityType.ORDER, order_id, details)
        except Exception as e:
            logger.error(f"Failed to emit activity log for order {order_id}: {e}")


def _lock_order(session, order_id: UUID) -> Order:
    order = (
        session.query(Order)
        .filter(Order.id == order_id)
        .with_for_update()
        .populate_existing()
        .first()
    )
    if not order:
        raise NotFoundError(f'Order {order_id} not found')
    return order


def _set_totals(order: Order, gross_total: int, discount_amount: int) -> None:
    discount_amount = max(0, min(discount_amount, gross_total))
    order.gross_total = gross_total
    order.discount_amount = discount_amount
    order.net_total = gross_total - discount_amount


def _build_item(line: Dict[str, Any], product, options: Dict[UUID, ProductOption], line_number: int) -> OrderItem:
    selected = [options[option_id] for option_id in line['options']]
    price_at_sale = product.price + sum(option.additional_price for option in selected)
    subtotal = price_at_sale * line['quantity']

    item = OrderItem(
        product_id=product.id,
        line_number=line_number,
        quantity=line['quantity'],
        price_at_sale=price_at_sale,
        subtotal=subtotal,
        discount_amount=0,
        net_subtotal=subtotal,
        cost_price_at_sale=product.cost_price or 0,
    )
    item.product = product
    item.options = [
        OrderItemOption(product_option_id=option.id, price_at_sale=option.additional_price)
        for option in selected
    ]
    return item


def _reduce_items(order: Order, items: List[OrderItem], amount: int) -> None:
    """Take amount units off a product's lines, newest line first."""
    for item in reversed(items):
        if amount <= 0:
            break
        taken = min(item.quantity, amount)
        if taken == item.quantity:
            order.items.remove(item)
        else:
            item.set_quantity(item.quantity - taken)
        amount -= taken


def _resolve_options(session, lines: List[Dict[str, Any]]) -> Dict[UUID, ProductOption]:
    """Load every selected option in one query and check it belongs to its line's product."""
    option_ids = {option_id for line in lines for option_id in line['options']}
    if not option_ids:
        return {}

    options = session.query(ProductOption).filter(
        ProductOption.id.in_(option_ids),
        ProductOption.deleted_at.is_(None)
    ).all()
    options_dict = {option.id: option for option in options}

    for line in lines:
        for option_id in line['options']:
            option = options_dict.get(option_id)
            if option is None:
                raise InvalidInputError(f'Product option {option_id} not found')
            if option.product_id != line['product_id']:
                raise InvalidInputError(
                    f"Product option {option_id} does not belong to product {line['product_id']}"
                )
    return options_dict


def _normalize_lines(items) -> List[Dict[str, Any]]:
    if not items or not isinstance(items, (list, tuple)):
        raise InvalidInputError('Order must contain at least one item')

    lines = []
    for raw in items:
        if not isinstance(raw, dict):
            raise InvalidInputError('Each item must be an object')
        quantity = _to_int(raw.get('quantity'), 'quantity')
        if quantity <= 0:
            raise InvalidInputError('Quantity must be greater than 0')

        option_ids = [_to_uuid(option_id, 'product option id') for option_id in (raw.get('options') or [])]
        if len(set(option_ids)) != len(option_ids):
            raise InvalidInputError('An option may be selected only once per item')

        lines.append({
            'product_id': _to_uuid(raw.get('product_id'), 'product id'),
            'quantity': quantity,
            'options': option_ids,
        })
    return lines


def _parse_order_type(value) -> OrderType:
    if isinstance(value, OrderType):
        return value
    try:
        return OrderType(str(value).strip().lower())
    except ValueError:
        raise InvalidInputError(f"Unknown order type '{value}'")


def _to_uuid(value, label: str, error=InvalidInputError) -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        raise error(f'Invalid {label}: {value}')


def _to_int(value, label: str) -> int:
    if isinstance(value, bool):
        raise InvalidInputError(f'Invalid {label}: {value}')
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidInputError(f'Invalid {label}: {value}')


def _fetch_orders(session, filters: Dict[str, Any], limit: int, offset: int) -> List[Dict[str, Any]]:
    query = _filtered(session.query(Order), filters)
    orders = query.order_by(Order.created_at.desc(), Order.id).limit(limit).offset(offset).all()
    return [order.to_dict(include_items=False) for order in orders]


def _count_orders(session, filters: Dict[str, Any]) -> int:
    return _filtered(session.query(func.count(Order.id)), filters).scalar()


def _filtered(query, filters: Dict[str, Any]):
    if 'status' in filters:
        query = query.filter(Order.status == filters['status'])
    if 'user_id' in filters:
        query = query.filter(Order.user_id == filters['user_id'])
    return query
