"""
Stock guard and stock ledger.

Every stock mutation goes through apply_stock_deltas: the product rows are
locked first (lock_products), the change is written as a relative delta and
paired with a StockHistory entry in the same unit of work.
"""
import logging
from typing import Dict, Iterable, List, Optional, Any
from uuid import UUID

from sqlalchemy import case, update, func

from kasir.models import Product, StockHistory, StockChangeType
from kasir.exceptions import NotFoundError, InsufficientStockError, InternalError
from kasir.utils.pagination import build_pagination

logger = logging.getLogger(__name__)


def lock_products(
    session,
    product_ids: Iterable[UUID],
    include_deleted: bool = False
) -> Dict[UUID, Product]:
    """
    Lock product rows FOR UPDATE and return them keyed by id.

    Rows are locked in id order so concurrent orders touching the same
    products acquire locks in the same sequence. Soft-deleted products are
    only returned with include_deleted, which stock restoration needs.
    """
    ids = sorted(set(product_ids), key=str)
    if not ids:
        return {}

    query = session.query(Product).filter(Product.id.in_(ids))
    if not include_deleted:
        query = query.filter(Product.deleted_at.is_(None))

    products = (
        query
        .order_by(Product.id)
        .with_for_update()
        .populate_existing()
        .all()
    )
    products_dict = {p.id: p for p in products}

    missing = [pid for pid in ids if pid not in products_dict]
    if missing:
        raise NotFoundError(f'Product {missing[0]} not found')

    return products_dict


def apply_stock_deltas(
    session,
    products: Dict[UUID, Product],
    deltas: Dict[UUID, int],
    reference_id: Optional[UUID],
    actor_id: Optional[UUID],
    note: Optional[str] = None,
    change_type: Optional[StockChangeType] = None,
) -> List[Dict[str, Any]]:
    """
    Apply signed stock deltas to locked products and record the ledger.

    Args:
        session: Session of the enclosing unit of work
        products: Locked products from lock_products
        deltas: {product_id: signed change}; zero deltas are skipped
        reference_id: Order that caused the change
        actor_id: User performing the change (may be None)
        note: Free text stored on each ledger entry
        change_type: Forced change type; by default negative deltas are
            'sale' and positive deltas are 'return'

    Returns:
        List of the applied changes with previous/current stock

    Raises:
        InsufficientStockError: If a decrement exceeds the locked stock
    """
    changes = []
    for product_id, delta in deltas.items():
        if not delta:
            continue
        product = products.get(product_id)
        if product is None:
            raise InternalError(f'Product {product_id} was not locked before a stock change')

        previous = product.stock
        current = previous + delta
        if current < 0:
            raise InsufficientStockError(product.name, -delta, previous)

        changes.append({
            'product_id': product_id,
            'change_amount': delta,
            'previous_stock': previous,
            'current_stock': current,
            'change_type': change_type or (StockChangeType.SALE if delta < 0 else StockChangeType.RETURN),
        })

    if not changes:
        return []

    # One relative UPDATE for the whole batch, never an absolute overwrite
    stock_delta = case(
        *[(Product.id == c['product_id'], c['change_amount']) for c in changes],
        else_=0
    )
    session.execute(
        update(Product)
        .where(Product.id.in_([c['product_id'] for c in changes]))
        .values(stock=Product.stock + stock_delta)
        .execution_options(synchronize_session=False)
    )
    for c in changes:
        session.expire(products[c['product_id']], ['stock'])

    record_stock_changes(session, changes, reference_id, actor_id, note)
    return changes


def record_stock_changes(
    session,
    changes: List[Dict[str, Any]],
    reference_id: Optional[UUID],
    actor_id: Optional[UUID],
    note: Optional[str] = None,
) -> None:
    """Append one StockHistory entry per change (batch insert)."""
    entries = []
    for c in changes:
        if c['previous_stock'] + c['change_amount'] != c['current_stock']:
            raise InternalError(f"Inconsistent stock change for product {c['product_id']}")
        entries.append(StockHistory(
            product_id=c['product_id'],
            change_amount=c['change_amount'],
            previous_stock=c['previous_stock'],
            current_stock=c['current_stock'],
            change_type=c['change_type'],
            reference_id=reference_id,
            note=note,
            created_by=actor_id,
        ))
    session.add_all(entries)
    session.flush()


def replay_stock_history(session, product_id: UUID) -> Optional[int]:
    """
    Replay a product's ledger in creation order.

    Returns:
        Stock after the last entry, or None if the product has no entries

    Raises:
        InternalError: If an entry breaks the chain
    """
    entries = (
        session.query(StockHistory)
        .filter(StockHistory.product_id == product_id)
        .order_by(StockHistory.id)
        .all()
    )

    running = None
    for entry in entries:
        if entry.previous_stock + entry.change_amount != entry.current_stock:
            raise InternalError(f'Stock history entry {entry.id} does not add up')
        if running is not None and entry.previous_stock != running:
            raise InternalError(
                f'Stock history chain broken at entry {entry.id}: '
                f'expected previous stock {running}, found {entry.previous_stock}'
            )
        running = entry.current_stock

    return running


def verify_product_stock(session, product: Product) -> Dict[str, Any]:
    """Compare live stock with the stock reconstructed from the ledger."""
    try:
        ledger_stock = replay_stock_history(session, product.id)
        error = None
    except InternalError as e:
        ledger_stock = None
        error = e.message

    consistent = error is None and (ledger_stock is None or ledger_stock == product.stock)
    return {
        'product_id': str(product.id),
        'name': product.name,
        'live_stock': product.stock,
        'ledger_stock': ledger_stock,
        'consistent': consistent,
        'error': error,
    }


def get_stock_history(session, product_id: UUID, page: int = 1, limit: int = 10) -> Dict[str, Any]:
    """Paginated stock history of a product, newest first."""
    product = session.get(Product, product_id)
    if not product:
        raise NotFoundError(f'Product {product_id} not found')

    offset = (page - 1) * limit
    history = (
        session.query(StockHistory)
        .filter(StockHistory.product_id == product_id)
        .order_by(StockHistory.id.desc())
        .limit(limit)
        .offset(offset)
        .all()
    )
    total = (
        session.query(func.count(StockHistory.id))
        .filter(StockHistory.product_id == product_id)
        .scalar()
    )

    return {
        'history': [h.to_dict() for h in history],
        'pagination': build_pagination(page, total, limit),
    }
