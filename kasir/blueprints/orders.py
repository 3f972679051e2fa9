"""Orders blueprint - JSON surface of the order transaction engine."""
from flask import Blueprint, request, jsonify, current_app
from kasir.middleware import get_actor_id
from kasir.exceptions import InvalidInputError

orders_bp = Blueprint('orders', __name__, url_prefix='/orders')


def _service():
    return current_app.extensions['order_service']


def _json_body(expected=dict):
    data = request.get_json(silent=True)
    if not isinstance(data, expected):
        raise InvalidInputError('Invalid request body')
    return data


def _ok(message, data, status=200):
    return jsonify({'status': 'success', 'message': message, 'data': data}), status


@orders_bp.route('', methods=['POST'])
def create_order():
    """Create an order. Body: {type, items: [{product_id, quantity, options}]}"""
    data = _json_body()
    order = _service().create_order(get_actor_id(), data.get('type'), data.get('items'))
    return _ok('Order created successfully', order, 201)


@orders_bp.route('', methods=['GET'])
def list_orders():
    """List orders with ?page, ?limit, ?status and ?user_id filters."""
    result = _service().list_orders(
        page=request.args.get('page'),
        limit=request.args.get('limit'),
        status=request.args.get('status') or None,
        user_id=request.args.get('user_id') or None,
    )
    return _ok('Orders retrieved successfully', result)


@orders_bp.route('/<uuid:order_id>', methods=['GET'])
def get_order(order_id):
    return _ok('Order retrieved successfully', _service().get_order(order_id))


@orders_bp.route('/<uuid:order_id>/items', methods=['PUT'])
def update_order_items(order_id):
    """Replace item quantities. Body: [{product_id, quantity, options}]"""
    items = _json_body(list)
    order = _service().update_order_items(get_actor_id(), order_id, items)
    return _ok('Order items updated successfully', order)


@orders_bp.route('/<uuid:order_id>/cancel', methods=['POST'])
def cancel_order(order_id):
    data = _json_body()
    order = _service().cancel_order(
        get_actor_id(), order_id, data.get('cancellation_reason_id'), data.get('notes')
    )
    return _ok('Order cancelled successfully', order)


@orders_bp.route('/<uuid:order_id>/apply-promotion', methods=['POST'])
def apply_promotion(order_id):
    data = _json_body()
    order = _service().apply_promotion(get_actor_id(), order_id, data.get('promotion_id'))
    return _ok('Promotion applied successfully', order)


@orders_bp.route('/<uuid:order_id>/update-status', methods=['POST'])
def update_status(order_id):
    data = _json_body()
    order = _service().update_operational_status(get_actor_id(), order_id, data.get('status'))
    return _ok('Order status updated successfully', order)


@orders_bp.route('/<uuid:order_id>/pay/manual', methods=['POST'])
def confirm_manual_payment(order_id):
    """Body: {payment_method_id, cash_received}"""
    data = _json_body()
    order = _service().confirm_manual_payment(
        get_actor_id(), order_id, data.get('payment_method_id'), data.get('cash_received')
    )
    return _ok('Payment confirmed successfully', order)


@orders_bp.route('/<uuid:order_id>/pay/midtrans', methods=['POST'])
def initiate_midtrans_payment(order_id):
    charge = _service().initiate_gateway_payment(get_actor_id(), order_id)
    return _ok('Payment initiated successfully', charge)
