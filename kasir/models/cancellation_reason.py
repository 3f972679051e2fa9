"""Cancellation Reason model."""
from sqlalchemy import Column, Integer, String, Boolean
from kasir.database import Base


class CancellationReason(Base):
    __tablename__ = 'cancellation_reasons'

    id = Column(Integer, primary_key=True, autoincrement=True)
    reason = Column(String(100), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    def __repr__(self):
        return f"<CancellationReason(id={self.id}, reason='{self.reason}')>"
