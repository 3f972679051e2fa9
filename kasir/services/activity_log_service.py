"""
Activity logging service.

log() returns immediately: the entry is written on a daemon thread with its
own session, and any failure is logged and dropped. Audit failures must
never break business logic.
"""
import json
import logging
import threading
from typing import Any, Dict, Optional
from uuid import UUID

from kasir.models import ActivityLog, LogActionType, LogEntityType

logger = logging.getLogger(__name__)


class ActivityLogService:
    """Fire-and-forget writer of ActivityLog rows."""

    def __init__(self, session_factory=None):
        """
        Args:
            session_factory: Callable returning a new session; defaults to the
                application's scoped session registry
        """
        self._session_factory = session_factory

    def log(
        self,
        actor_id: Optional[UUID],
        action: LogActionType,
        entity_type: LogEntityType,
        entity_id: str,
        details: Optional[Dict[str, Any]] = None
    ) -> threading.Thread:
        """
        Queue an activity log entry.

        Args:
            actor_id: User performing the action (may be None)
            action: LogActionType enum value
            entity_type: Type of entity affected
            entity_id: ID of the affected entity
            details: Dict with additional details (will be JSON encoded)
        """
        details_json = None
        if details:
            try:
                details_json = json.dumps(details, default=str)
            except Exception as e:
                logger.warning(f"Failed to serialize activity log details: {e}")
                details_json = str(details)

        worker = threading.Thread(
            target=self._write,
            args=(actor_id, action, entity_type, str(entity_id), details_json),
            name=f'activity-log-{entity_id}',
            daemon=True
        )
        try:
            worker.start()
        except RuntimeError as e:
            logger.error(f"Failed to start activity log writer: {e}")
        return worker

    def _write(self, actor_id, action, entity_type, entity_id, details_json):
        from kasir.database import get_session

        registry = None
        if self._session_factory is not None:
            session = self._session_factory()
        else:
            registry = get_session()
            session = registry()

        try:
            session.add(ActivityLog(
                user_id=actor_id,
                action_type=action,
                entity_type=entity_type,
                entity_id=entity_id,
                details=details_json,
            ))
            session.commit()
            logger.info(f"Activity log created: {action.value} {entity_type.value} {entity_id} by user {actor_id}")
        except Exception as e:
            session.rollback()
            logger.error(f"Failed to create activity log: {e}")
        finally:
            if registry is not None:
                registry.remove()
            else:
                session.close()


def get_activity_logs(
    session,
    entity_type: LogEntityType = None,
    entity_id: str = None,
    user_id: UUID = None,
    limit: int = 100,
    offset: int = 0
):
    """
    Retrieve activity logs with optional filters, newest first.

    Returns:
        List of ActivityLog objects
    """
    query = session.query(ActivityLog)

    if entity_type:
        query = query.filter(ActivityLog.entity_type == entity_type)

    if entity_id:
        query = query.filter(ActivityLog.entity_id == str(entity_id))

    if user_id:
        query = query.filter(ActivityLog.user_id == user_id)

    query = query.order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())
    query = query.limit(limit).offset(offset)

    return query.all()
