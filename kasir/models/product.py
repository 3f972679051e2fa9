"""Product and product option models."""
import uuid

from sqlalchemy import Column, BigInteger, Integer, String, DateTime, ForeignKey, Uuid, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from kasir.database import Base


class Product(Base):
    """Product sold at the counter. Prices are integer minor currency units."""

    __tablename__ = 'products'
    __table_args__ = (
        CheckConstraint('stock >= 0', name='ck_products_stock_non_negative'),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(100), nullable=False)
    category_id = Column(Integer, ForeignKey('categories.id'), nullable=True)
    price = Column(BigInteger, nullable=False)
    cost_price = Column(BigInteger, nullable=False, default=0, server_default='0')  # Snapshot source for margins
    stock = Column(Integer, nullable=False, default=0, server_default='0')
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    category = relationship('Category', foreign_keys=[category_id])
    options = relationship('ProductOption', back_populates='product', cascade='all, delete-orphan')

    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}', stock={self.stock})>"

    @property
    def is_deleted(self):
        return self.deleted_at is not None


class ProductOption(Base):
    """Selectable variant of a product with its own surcharge."""

    __tablename__ = 'product_options'

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    product_id = Column(Uuid, ForeignKey('products.id'), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    additional_price = Column(BigInteger, nullable=False, default=0, server_default='0')
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    product = relationship('Product', back_populates='options')

    def __repr__(self):
        return f"<ProductOption(id={self.id}, product_id={self.product_id}, name='{self.name}')>"
