"""Order Item models."""
import uuid

from sqlalchemy import Column, BigInteger, Integer, DateTime, ForeignKey, Uuid, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from kasir.database import Base


class OrderItem(Base):
    """
    Order line. price_at_sale, cost_price_at_sale and the option prices are
    snapshots taken when the line was created; later catalog price changes
    never touch them.
    """

    __tablename__ = 'order_items'
    __table_args__ = (
        CheckConstraint('quantity > 0', name='ck_order_items_quantity_positive'),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    order_id = Column(Uuid, ForeignKey('orders.id', ondelete='CASCADE'), nullable=False, index=True)
    product_id = Column(Uuid, ForeignKey('products.id'), nullable=False)
    line_number = Column(Integer, nullable=False)  # Position within the order
    quantity = Column(Integer, nullable=False)
    price_at_sale = Column(BigInteger, nullable=False)  # Product price + option surcharges
    subtotal = Column(BigInteger, nullable=False)
    discount_amount = Column(BigInteger, nullable=False, default=0)
    net_subtotal = Column(BigInteger, nullable=False)
    cost_price_at_sale = Column(BigInteger, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    order = relationship('Order', back_populates='items')
    product = relationship('Product')
    options = relationship('OrderItemOption', back_populates='order_item', cascade='all, delete-orphan')

    def __repr__(self):
        return f"<OrderItem(id={self.id}, product_id={self.product_id}, quantity={self.quantity})>"

    def set_quantity(self, quantity):
        """Change quantity and recompute the line totals from the price snapshot."""
        self.quantity = quantity
        self.subtotal = self.price_at_sale * quantity
        self.net_subtotal = self.subtotal - (self.discount_amount or 0)

    def to_dict(self):
        return {
            'id': str(self.id),
            'product_id': str(self.product_id),
            'quantity': self.quantity,
            'price_at_sale': self.price_at_sale,
            'subtotal': self.subtotal,
            'discount_amount': self.discount_amount,
            'net_subtotal': self.net_subtotal,
            'cost_price_at_sale': self.cost_price_at_sale,
            'options': [option.to_dict() for option in self.options],
        }


class OrderItemOption(Base):
    """Selected product option of an order line, with its price snapshot."""

    __tablename__ = 'order_item_options'

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    order_item_id = Column(Uuid, ForeignKey('order_items.id', ondelete='CASCADE'), nullable=False, index=True)
    product_option_id = Column(Uuid, ForeignKey('product_options.id'), nullable=False)
    price_at_sale = Column(BigInteger, nullable=False)

    order_item = relationship('OrderItem', back_populates='options')

    def __repr__(self):
        return f"<OrderItemOption(order_item_id={self.order_item_id}, product_option_id={self.product_option_id})>"

    def to_dict(self):
        return {
            'product_option_id': str(self.product_option_id),
            'price_at_sale': self.price_at_sale,
        }
