"""
Integration tests for the asynchronous activity log writer.
"""

import json
import uuid

from kasir.models import ActivityLog, LogActionType, LogEntityType
from kasir.services.activity_log_service import ActivityLogService, get_activity_logs


class TestActivityLogService:
    """Tests for ActivityLogService."""

    def test_entry_is_written_in_background(self, session):
        session.remove()
        actor = uuid.uuid4()
        entity_id = str(uuid.uuid4())

        worker = ActivityLogService().log(
            actor, LogActionType.CREATE, LogEntityType.ORDER, entity_id, {'status': 'open', 'net_total': 20000}
        )
        worker.join(timeout=10)

        logs = get_activity_logs(session, entity_type=LogEntityType.ORDER, entity_id=entity_id)
        assert len(logs) == 1
        assert logs[0].user_id == actor
        assert logs[0].action_type == LogActionType.CREATE
        assert json.loads(logs[0].details) == {'status': 'open', 'net_total': 20000}

    def test_entry_without_actor(self, session):
        session.remove()
        entity_id = str(uuid.uuid4())

        ActivityLogService().log(None, LogActionType.CANCEL, LogEntityType.ORDER, entity_id).join(timeout=10)

        log = session.query(ActivityLog).filter_by(entity_id=entity_id).one()
        assert log.user_id is None
        assert log.details is None

    def test_details_are_serialized_with_str_fallback(self, session):
        session.remove()
        entity_id = uuid.uuid4()

        ActivityLogService().log(
            None, LogActionType.UPDATE, LogEntityType.ORDER, entity_id, {'promotion_id': entity_id}
        ).join(timeout=10)

        log = session.query(ActivityLog).filter_by(entity_id=str(entity_id)).one()
        assert json.loads(log.details) == {'promotion_id': str(entity_id)}

    def test_write_failure_is_swallowed(self, session, caplog):
        class BrokenSession:
            def add(self, entry):
                raise RuntimeError('database unavailable')

            def rollback(self):
                pass

            def close(self):
                pass

        worker = ActivityLogService(session_factory=BrokenSession).log(
            None, LogActionType.CREATE, LogEntityType.ORDER, 'x'
        )
        worker.join(timeout=10)

        assert 'Failed to create activity log' in caplog.text
        assert session.query(ActivityLog).count() == 0

    def test_filters_and_order(self, session):
        session.remove()
        service = ActivityLogService()
        actor = uuid.uuid4()
        for action in (LogActionType.CREATE, LogActionType.UPDATE, LogActionType.CANCEL):
            service.log(actor, action, LogEntityType.ORDER, 'order-1').join(timeout=10)
        service.log(uuid.uuid4(), LogActionType.CREATE, LogEntityType.ORDER, 'order-2').join(timeout=10)

        logs = get_activity_logs(session, user_id=actor)
        assert [log.action_type for log in logs] == [
            LogActionType.CANCEL, LogActionType.UPDATE, LogActionType.CREATE
        ]
        assert len(get_activity_logs(session, entity_id='order-2')) == 1
        assert len(get_activity_logs(session, limit=2)) == 2
