"""
Activity Log model for tracking order actions.
Written asynchronously by the activity log service.
"""
from sqlalchemy import Column, BigInteger, Integer, String, Text, DateTime, Uuid, Enum as SQLEnum
from datetime import datetime, timezone
import enum

from kasir.database import Base


class LogActionType(enum.Enum):
    """Enumeration of auditable actions."""
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    CANCEL = "CANCEL"
    APPLY_PROMOTION = "APPLY_PROMOTION"
    PROCESS_PAYMENT = "PROCESS_PAYMENT"
    UPDATE_STATUS = "UPDATE_STATUS"


class LogEntityType(enum.Enum):
    ORDER = "ORDER"
    PRODUCT = "PRODUCT"
    PROMOTION = "PROMOTION"


class ActivityLog(Base):
    """
    Activity log entry. user_id is nullable: actions without an actor are
    still recorded.
    """
    __tablename__ = 'activity_logs'

    id = Column(BigInteger().with_variant(Integer, 'sqlite'), primary_key=True, autoincrement=True)
    user_id = Column(Uuid, nullable=True, index=True)
    action_type = Column(SQLEnum(LogActionType), nullable=False, index=True)
    entity_type = Column(SQLEnum(LogEntityType), nullable=False)
    entity_id = Column(String(64), nullable=False, index=True)
    details = Column(Text)  # JSON with additional details
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False, index=True)

    def __repr__(self):
        return f"<ActivityLog {self.action_type.value} {self.entity_type.value} {self.entity_id} by {self.user_id}>"
