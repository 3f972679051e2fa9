"""Payment Method model."""
from sqlalchemy import Column, Integer, String, Boolean
from kasir.database import Base

CASH_METHOD_NAME = 'cash'


class PaymentMethod(Base):
    """Payment method selectable at manual settlement."""

    __tablename__ = 'payment_methods'

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(50), nullable=False, unique=True)
    is_active = Column(Boolean, nullable=False, default=True)

    def __repr__(self):
        return f"<PaymentMethod(id={self.id}, name='{self.name}')>"

    @property
    def is_cash(self):
        return (self.name or '').strip().lower() == CASH_METHOD_NAME
