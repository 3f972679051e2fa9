"""Order model."""
import enum
import uuid

from sqlalchemy import Column, BigInteger, Integer, String, Text, DateTime, Enum, ForeignKey, Uuid, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from kasir.database import Base


class OrderType(enum.Enum):
    """Order type enum."""
    DINE_IN = "dine_in"
    TAKEAWAY = "takeaway"


class OrderStatus(enum.Enum):
    """Order status enum."""
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    SERVED = "served"
    PAID = "paid"
    CANCELLED = "cancelled"


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class Order(Base):
    """
    Order header. Totals are integer minor currency units and always satisfy
    net_total = gross_total - discount_amount with discount_amount <= gross_total.
    """

    __tablename__ = 'orders'
    __table_args__ = (
        CheckConstraint('discount_amount <= gross_total', name='ck_orders_discount_le_gross'),
        CheckConstraint('net_total >= 0', name='ck_orders_net_non_negative'),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=True, index=True)
    type = Column(Enum(OrderType, name='order_type', values_callable=_enum_values), nullable=False)
    status = Column(
        Enum(OrderStatus, name='order_status', values_callable=_enum_values),
        nullable=False, default=OrderStatus.OPEN, index=True
    )
    gross_total = Column(BigInteger, nullable=False, default=0)
    discount_amount = Column(BigInteger, nullable=False, default=0)
    net_total = Column(BigInteger, nullable=False, default=0)
    applied_promotion_id = Column(Uuid, ForeignKey('promotions.id'), nullable=True)

    # Settlement
    payment_method_id = Column(Integer, ForeignKey('payment_methods.id'), nullable=True)
    payment_gateway_reference = Column(String(100), nullable=True, unique=True)
    payment_url = Column(Text, nullable=True)  # JSON-encoded gateway actions
    cash_received = Column(BigInteger, nullable=True)
    change_due = Column(BigInteger, nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)

    # Cancellation
    cancellation_reason_id = Column(Integer, ForeignKey('cancellation_reasons.id'), nullable=True)
    cancellation_notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    items = relationship(
        'OrderItem', back_populates='order', cascade='all, delete-orphan', order_by='OrderItem.line_number'
    )
    applied_promotion = relationship('Promotion')
    payment_method = relationship('PaymentMethod')
    cancellation_reason = relationship('CancellationReason')

    def __repr__(self):
        return f"<Order(id={self.id}, status={self.status.value}, net_total={self.net_total})>"

    @property
    def is_settled(self):
        """Payment already recorded, manually or by the gateway."""
        return self.payment_method_id is not None or self.paid_at is not None

    def to_dict(self, include_items=True):
        """Detail projection of the order."""
        data = {
            'id': str(self.id),
            'user_id': str(self.user_id) if self.user_id else None,
            'type': self.type.value,
            'status': self.status.value,
            'gross_total': self.gross_total,
            'discount_amount': self.discount_amount,
            'net_total': self.net_total,
            'applied_promotion_id': str(self.applied_promotion_id) if self.applied_promotion_id else None,
            'payment_method_id': self.payment_method_id,
            'payment_gateway_reference': self.payment_gateway_reference,
            'cash_received': self.cash_received,
            'change_due': self.change_due,
            'paid_at': self.paid_at.isoformat() if self.paid_at else None,
            'cancellation_reason_id': self.cancellation_reason_id,
            'cancellation_notes': self.cancellation_notes,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_items:
            data['items'] = [item.to_dict() for item in self.items]
        return data
