"""Models package - exports all SQLAlchemy models."""
# Catalog
from kasir.models.category import Category
from kasir.models.product import Product, ProductOption
from kasir.models.stock_history import StockHistory, StockChangeType

# Reference data
from kasir.models.payment_method import PaymentMethod, CASH_METHOD_NAME
from kasir.models.cancellation_reason import CancellationReason

# Orders
from kasir.models.promotion import (
    Promotion, PromotionRule, PromotionTarget,
    PromotionScope, DiscountType, PromotionRuleType, PromotionTargetType
)
from kasir.models.order import Order, OrderStatus, OrderType
from kasir.models.order_item import OrderItem, OrderItemOption

# Audit
from kasir.models.activity_log import ActivityLog, LogActionType, LogEntityType

__all__ = [
    # Catalog
    'Category', 'Product', 'ProductOption', 'StockHistory', 'StockChangeType',
    # Reference data
    'PaymentMethod', 'CASH_METHOD_NAME', 'CancellationReason',
    # Orders
    'Promotion', 'PromotionRule', 'PromotionTarget',
    'PromotionScope', 'DiscountType', 'PromotionRuleType', 'PromotionTargetType',
    'Order', 'OrderStatus', 'OrderType', 'OrderItem', 'OrderItemOption',
    # Audit
    'ActivityLog', 'LogActionType', 'LogEntityType',
]
