"""
Promotion evaluation for orders.

Validates that a promotion applies to an order (active window and rules)
and computes the discount. Rule values are stored as strings; values that
cannot be decoded are logged and the rule is skipped.
"""
import logging
from datetime import datetime, timezone
from typing import List, NamedTuple, Optional
from uuid import UUID

from kasir.models import (
    Order, OrderItem, OrderType, Promotion,
    PromotionScope, DiscountType, PromotionRuleType, PromotionTargetType
)
from kasir.exceptions import NotFoundError, PromotionNotApplicableError

logger = logging.getLogger(__name__)


class PromotionResult(NamedTuple):
    promotion: Promotion
    discount_amount: int
    base_amount: int


def evaluate_promotion(
    session,
    order: Order,
    items: List[OrderItem],
    promotion_id: UUID,
    now: Optional[datetime] = None
) -> PromotionResult:
    """
    Check a promotion against an order and compute its discount.

    Args:
        session: Session of the enclosing unit of work
        order: Order being discounted (gross_total must be current)
        items: Order lines with their product loaded
        promotion_id: Promotion to apply
        now: Evaluation time, defaults to the current UTC time

    Returns:
        PromotionResult with the clamped discount amount

    Raises:
        NotFoundError: If the promotion does not exist or was deleted
        PromotionNotApplicableError: If the window or a rule rejects the order
    """
    promotion = session.query(Promotion).filter(
        Promotion.id == promotion_id,
        Promotion.deleted_at.is_(None)
    ).first()
    if not promotion:
        raise NotFoundError(f'Promotion {promotion_id} not found')

    _check_active(promotion, _as_utc(now or datetime.now(timezone.utc)))

    for rule in promotion.rules:
        _check_rule(rule, order, items)

    base = _discount_base(promotion, order, items)
    discount = calculate_discount(promotion, base, order.gross_total)

    logger.info(
        f"Promotion {promotion.id} evaluated for order {order.id}: base={base}, discount={discount}"
    )
    return PromotionResult(promotion, discount, base)


def calculate_discount(promotion: Promotion, base: int, gross_total: int) -> int:
    """
    Discount for a base amount, clamped to the promotion cap and to the gross total.

    Examples:
        10% of 20000, no cap -> 2000
        10% of 500000, cap 20000 -> 20000
        fixed 30000 on a 20000 order -> 20000
    """
    if promotion.discount_type == DiscountType.PERCENTAGE:
        discount = (base * promotion.discount_value) // 100
    else:
        discount = promotion.discount_value

    # A cap of zero means no cap
    if promotion.max_discount_amount and promotion.max_discount_amount > 0:
        discount = min(discount, promotion.max_discount_amount)

    return max(0, min(discount, gross_total))


def _as_utc(value: datetime) -> datetime:
    # Some backends hand back naive datetimes for timezone-aware columns
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _check_active(promotion: Promotion, now: datetime) -> None:
    if not promotion.is_active:
        raise PromotionNotApplicableError('promotion is not active')
    if now < _as_utc(promotion.start_date):
        raise PromotionNotApplicableError('promotion has not started yet')
    if now >= _as_utc(promotion.end_date):
        raise PromotionNotApplicableError('promotion has expired')


def _check_rule(rule, order: Order, items: List[OrderItem]) -> None:
    """Raise PromotionNotApplicableError if the rule is not met."""
    try:
        rule_type = PromotionRuleType(rule.rule_type.strip().lower())
    except ValueError:
        logger.warning(f"Unknown promotion rule type '{rule.rule_type}' (rule {rule.id}), skipping")
        return

    value = (rule.rule_value or '').strip()
    try:
        if rule_type == PromotionRuleType.MINIMUM_ORDER_AMOUNT:
            minimum = int(value)
            if order.gross_total < minimum:
                raise PromotionNotApplicableError(
                    f'order total {order.gross_total} is below the minimum of {minimum}'
                )

        elif rule_type == PromotionRuleType.REQUIRED_PRODUCT:
            product_id = UUID(value)
            if not any(item.product_id == product_id for item in items):
                raise PromotionNotApplicableError(f'order does not contain required product {product_id}')

        elif rule_type == PromotionRuleType.REQUIRED_CATEGORY:
            category_id = int(value)
            if not any(item.product and item.product.category_id == category_id for item in items):
                raise PromotionNotApplicableError(f'order does not contain a product of category {category_id}')

        elif rule_type == PromotionRuleType.ALLOWED_ORDER_TYPE:
            allowed = {OrderType(v.strip().lower()) for v in value.split(',') if v.strip()}
            if allowed and order.type not in allowed:
                raise PromotionNotApplicableError(f"order type '{order.type.value}' is not allowed")

        elif rule_type == PromotionRuleType.ALLOWED_PAYMENT_METHOD:
            allowed = {int(v) for v in value.split(',') if v.strip()}
            # Only checkable once a payment method has been chosen
            if order.payment_method_id is not None and allowed and order.payment_method_id not in allowed:
                raise PromotionNotApplicableError('payment method is not allowed for this promotion')

    except (ValueError, TypeError) as e:
        logger.warning(
            f"Unparseable value '{rule.rule_value}' for promotion rule {rule_type.value} "
            f"(rule {rule.id}): {e}. Skipping rule."
        )


def _discount_base(promotion: Promotion, order: Order, items: List[OrderItem]) -> int:
    if promotion.scope == PromotionScope.ORDER:
        return order.gross_total

    product_ids = set()
    category_ids = set()
    for target in promotion.targets:
        target_type = (target.target_type or '').strip().lower()
        try:
            if target_type == PromotionTargetType.PRODUCT.value:
                product_ids.add(UUID(target.target_id))
            elif target_type == PromotionTargetType.CATEGORY.value:
                category_ids.add(int(target.target_id))
            else:
                logger.warning(f"Unknown promotion target type '{target.target_type}', skipping")
        except (ValueError, TypeError):
            logger.warning(f"Unparseable promotion target '{target.target_id}' ({target_type}), skipping")

    base = sum(
        item.subtotal for item in items
        if item.product_id in product_ids
        or (item.product is not None and item.product.category_id in category_ids)
    )
    if base == 0:
        raise PromotionNotApplicableError('no order items match the promotion targets')
    return base
