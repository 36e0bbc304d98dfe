"""
Unit Tests for the audit sink and the record_audit_event task

Tests cover:
- Enqueueing with JSON-safe payloads
- Broker failures never propagate
- The Celery task writes an AuditLog row
"""

import pytest
from contextlib import contextmanager
from datetime import datetime
from unittest.mock import Mock

from bpmn_admin.core.audit import AuditLogger
from bpmn_admin.models import AuditLog


@pytest.mark.unit
def test_record_enqueues_serializable_payload():
    """Test events are sent with JSON-safe payloads"""
    task = Mock()
    audit = AuditLogger(task=task)

    audit.record("user-copied-bpmn-workflow", {"at": datetime(2026, 1, 1), "toTemplateId": 456})

    task.delay.assert_called_once_with(
        "user-copied-bpmn-workflow",
        {"at": "2026-01-01T00:00:00", "toTemplateId": 456}
    )


@pytest.mark.unit
def test_record_without_payload():
    """Test a missing payload is sent as an empty object"""
    task = Mock()

    AuditLogger(task=task).record("user-deleted-bpmn-workflow")

    task.delay.assert_called_once_with("user-deleted-bpmn-workflow", {})


@pytest.mark.unit
def test_record_swallows_broker_errors(capture_logs):
    """Test an unavailable broker doesn't fail the caller"""
    task = Mock()
    task.delay.side_effect = ConnectionError("broker down")

    AuditLogger(task=task).record("user-imported-bpmn-workflow", {})

    assert "Failed to record audit event user-imported-bpmn-workflow" in capture_logs.text


@pytest.mark.integration
def test_record_audit_event_task(db_session, monkeypatch):
    """Test the task persists event, payload and user ID"""
    from bpmn_admin.workers import tasks

    @contextmanager
    def test_db():
        yield db_session

    monkeypatch.setattr(tasks, "get_db", test_db)

    payload = {"user": {"userId": "alice"}, "fromTemplateId": 123, "toTemplateId": 456}
    audit_log_id = tasks.record_audit_event("user-copied-bpmn-workflow", payload)

    entry = db_session.get(AuditLog, audit_log_id)
    assert entry.event == "user-copied-bpmn-workflow"
    assert entry.user_id == "alice"
    assert entry.payload["toTemplateId"] == 456


@pytest.mark.integration
def test_record_audit_event_without_user(db_session, monkeypatch):
    """Test events without user metadata are stored with no user ID"""
    from bpmn_admin.workers import tasks

    @contextmanager
    def test_db():
        yield db_session

    monkeypatch.setattr(tasks, "get_db", test_db)

    audit_log_id = tasks.record_audit_event("user-deleted-bpmn-workflow")

    assert db_session.get(AuditLog, audit_log_id).user_id is None
