"""
Celery Tasks for BPMN Admin

- record_audit_event: persist one audit trail entry
"""

import logging
from typing import Any, Dict, Optional

from .celery_app import celery_app
from ..database import get_db
from ..models import AuditLog

logger = logging.getLogger(__name__)


def _user_id_from(payload: Optional[Dict[str, Any]]) -> Optional[str]:
    user = (payload or {}).get("user")
    if isinstance(user, dict):
        return user.get("userId")
    return None


@celery_app.task(
    bind=True,
    name="record_audit_event",
    max_retries=3,
    default_retry_delay=10,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_backoff_max=300,
    retry_jitter=True,
)
def record_audit_event(self, event: str, payload: Optional[Dict[str, Any]] = None) -> int:
    """
    Write an AuditLog row.

    Args:
        event: Event name, e.g. "user-copied-bpmn-workflow"
        payload: JSON payload ({"user": {...}, ...})

    Returns:
        AuditLog ID
    """
    with get_db() as db:
        entry = AuditLog(event=event, payload=payload, user_id=_user_id_from(payload))
        db.add(entry)
        db.commit()
        db.refresh(entry)

    logger.info(
        f"Audit event recorded: {event}",
        extra={"audit_event": event, "audit_log_id": entry.id, "task_id": self.request.id}
    )
    return entry.id
