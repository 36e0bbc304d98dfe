"""
Audit sink

Mutation boundaries (import, save version, copy, delete...) are recorded
fire-and-forget through Celery. A broken broker must never fail the business
operation, so enqueue errors are logged and dropped.
"""

import logging
from typing import Any, Dict, Optional

from .serialization import make_json_serializable

logger = logging.getLogger(__name__)


class AuditLogger:
    """Enqueues record_audit_event"""

    def __init__(self, task=None):
        self._task = task

    @property
    def task(self):
        if self._task is None:
            # Importing the worker module configures Celery
            from ..workers.tasks import record_audit_event
            self._task = record_audit_event
        return self._task

    def record(self, event: str, payload: Optional[Dict[str, Any]] = None) -> None:
        try:
            self.task.delay(event, make_json_serializable(payload or {}))
        except Exception as e:
            logger.warning(f"Failed to record audit event {event}: {e}", extra={"audit_event": event})
            return

        logger.debug(f"Audit event enqueued: {event}", extra={"audit_event": event})
