"""Stock History model (append-only stock ledger)."""
import enum

from sqlalchemy import Column, BigInteger, Integer, Text, DateTime, Enum, ForeignKey, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from kasir.database import Base


class StockChangeType(enum.Enum):
    """Reason for a stock change."""
    SALE = "sale"
    RETURN = "return"
    CORRECTION = "correction"


class StockHistory(Base):
    """
    One stock delta with the before/after quantities taken from the locked
    product row. Rows are never updated or deleted; the id order is the
    replay order of a product's chain.
    """

    __tablename__ = 'stock_history'

    id = Column(BigInteger().with_variant(Integer, 'sqlite'), primary_key=True, autoincrement=True)
    product_id = Column(Uuid, ForeignKey('products.id'), nullable=False, index=True)
    change_amount = Column(Integer, nullable=False)
    previous_stock = Column(Integer, nullable=False)
    current_stock = Column(Integer, nullable=False)
    change_type = Column(
        Enum(StockChangeType, name='stock_change_type', values_callable=lambda e: [m.value for m in e]),
        nullable=False
    )
    reference_id = Column(Uuid, nullable=True, index=True)
    note = Column(Text, nullable=True)
    created_by = Column(Uuid, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    product = relationship('Product')

    def __repr__(self):
        return (
            f"<StockHistory(product_id={self.product_id}, change={self.change_amount}, "
            f"{self.previous_stock}->{self.current_stock}, type={self.change_type.value})>"
        )

    def to_dict(self):
        return {
            'id': self.id,
            'product_id': str(self.product_id),
            'change_amount': self.change_amount,
            'previous_stock': self.previous_stock,
            'current_stock': self.current_stock,
            'change_type': self.change_type.value,
            'reference_id': str(self.reference_id) if self.reference_id else None,
            'note': self.note,
            'created_by': str(self.created_by) if self.created_by else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
