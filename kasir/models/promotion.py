"""Promotion models."""
import enum
import uuid

from sqlalchemy import Column, BigInteger, Boolean, String, Text, DateTime, Enum, ForeignKey, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from kasir.database import Base


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class PromotionScope(enum.Enum):
    """Whether a discount applies to the whole order or to matching lines."""
    ORDER = "order"
    ITEM = "item"


class DiscountType(enum.Enum):
    PERCENTAGE = "percentage"
    FIXED_AMOUNT = "fixed_amount"


class PromotionRuleType(enum.Enum):
    MINIMUM_ORDER_AMOUNT = "minimum_order_amount"
    REQUIRED_PRODUCT = "required_product"
    REQUIRED_CATEGORY = "required_category"
    ALLOWED_PAYMENT_METHOD = "allowed_payment_method"
    ALLOWED_ORDER_TYPE = "allowed_order_type"


class PromotionTargetType(enum.Enum):
    PRODUCT = "product"
    CATEGORY = "category"


class Promotion(Base):
    """Promotion with its applicability rules and item-scope targets."""

    __tablename__ = 'promotions'

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    scope = Column(Enum(PromotionScope, name='promotion_scope', values_callable=_enum_values), nullable=False)
    discount_type = Column(Enum(DiscountType, name='discount_type', values_callable=_enum_values), nullable=False)
    discount_value = Column(BigInteger, nullable=False)
    max_discount_amount = Column(BigInteger, nullable=True)
    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    rules = relationship('PromotionRule', back_populates='promotion', cascade='all, delete-orphan')
    targets = relationship('PromotionTarget', back_populates='promotion', cascade='all, delete-orphan')

    def __repr__(self):
        return f"<Promotion(id={self.id}, name='{self.name}', scope={self.scope.value})>"


class PromotionRule(Base):
    """Applicability rule. rule_value is a string decoded according to rule_type."""

    __tablename__ = 'promotion_rules'

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    promotion_id = Column(Uuid, ForeignKey('promotions.id', ondelete='CASCADE'), nullable=False, index=True)
    # Plain string so rows written by newer versions still load
    rule_type = Column(String(50), nullable=False)
    rule_value = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    promotion = relationship('Promotion', back_populates='rules')

    def __repr__(self):
        return f"<PromotionRule(type={self.rule_type}, value='{self.rule_value}')>"


class PromotionTarget(Base):
    """Product or category an item-scope promotion discounts."""

    __tablename__ = 'promotion_targets'

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    promotion_id = Column(Uuid, ForeignKey('promotions.id', ondelete='CASCADE'), nullable=False, index=True)
    target_type = Column(String(20), nullable=False)
    target_id = Column(String(100), nullable=False)

    promotion = relationship('Promotion', back_populates='targets')

    def __repr__(self):
        return f"<PromotionTarget(type={self.target_type}, target_id='{self.target_id}')>"
