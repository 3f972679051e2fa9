"""
Webhooks Blueprint for payment gateway notifications.
"""

import logging
from flask import Blueprint, request, jsonify, current_app
from kasir.exceptions import InvalidSignatureError, NotFoundError

logger = logging.getLogger(__name__)

webhooks_bp = Blueprint('webhooks', __name__, url_prefix='/webhooks')


@webhooks_bp.route('/midtrans', methods=['POST'])
def midtrans_webhook():
    """
    Handle Midtrans transaction notifications.

    Returns 200 for processed, duplicate and ignored notifications so the
    gateway stops redelivering them; 401 for a bad signature and 404 for an
    unknown order.
    """
    data = request.get_json(silent=True)
    if not data or not isinstance(data, dict):
        logger.warning("Empty Midtrans webhook payload")
        return jsonify({'status': 'error', 'message': 'Empty payload'}), 400

    logger.info(
        f"Received Midtrans webhook: order_id={data.get('order_id')}, "
        f"transaction_status={data.get('transaction_status')}"
    )

    try:
        result = current_app.extensions['order_service'].handle_gateway_notification(data)
    except InvalidSignatureError:
        logger.warning(f"Invalid Midtrans signature for order {data.get('order_id')}")
        raise
    except NotFoundError as e:
        logger.warning(f"Midtrans webhook for unknown order: {e.message}")
        raise

    return jsonify({'status': 'success', 'message': 'Notification processed', 'data': result}), 200
