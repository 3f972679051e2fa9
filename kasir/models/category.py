"""Category model."""
from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.sql import func
from kasir.database import Base


class Category(Base):
    """Product Category."""

    __tablename__ = 'categories'

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    def __repr__(self):
        return f"<Category(id={self.id}, name='{self.name}')>"
