"""Products blueprint - stock ledger queries."""
from flask import Blueprint, request, jsonify, current_app
from kasir.database import get_session
from kasir.services.stock_service import get_stock_history
from kasir.utils.pagination import normalize_page

products_bp = Blueprint('products', __name__, url_prefix='/products')


@products_bp.route('/<uuid:product_id>/stock-history', methods=['GET'])
def stock_history(product_id):
    """Paginated stock ledger of a product, newest entry first."""
    page, limit = normalize_page(
        request.args.get('page'),
        request.args.get('limit'),
        current_app.config.get('ORDER_LIST_DEFAULT_LIMIT', 10),
        current_app.config.get('ORDER_LIST_MAX_LIMIT', 100),
    )
    db_session = get_session()
    result = get_stock_history(db_session, product_id, page, limit)
    return jsonify({'status': 'success', 'message': 'Stock history retrieved successfully', 'data': result})
