"""
Celery Application Configuration for BPMN Admin

Celery carries the audit trail: business operations enqueue
record_audit_event and return without waiting for the write.

Architecture:
- Message Broker: Redis
- Result Backend: Redis
- Workers: Separate service (`celery -A bpmn_admin.workers.celery_app worker`)

Key Features:
- Automatic retry on transient failures
- JSON serialization (safe, debuggable)
- Short result expiration (audit results are never read)
"""

import logging

from celery import Celery
from kombu import Queue, Exchange

from ..config import get_settings

logger = logging.getLogger(__name__)

REDIS_URL = get_settings().redis_url

celery_app = Celery("bpmn_admin")

celery_app.conf.update(
    # ============================================================================
    # BROKER & BACKEND
    # ============================================================================
    broker_url=REDIS_URL,
    result_backend=REDIS_URL,

    broker_connection_retry_on_startup=True,
    broker_connection_retry=True,
    broker_connection_max_retries=10,

    # ============================================================================
    # SERIALIZATION
    # ============================================================================
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],

    # ============================================================================
    # TIMEZONE
    # ============================================================================
    timezone="UTC",
    enable_utc=True,

    # ============================================================================
    # TASK EXECUTION
    # ============================================================================
    # Acknowledge tasks AFTER execution (ensures no lost audit records)
    task_acks_late=True,
    worker_prefetch_multiplier=4,

    task_time_limit=60,
    task_soft_time_limit=50,

    # ============================================================================
    # RESULTS
    # ============================================================================
    task_ignore_result=True,
    result_expires=3600,

    # ============================================================================
    # TASK ROUTING
    # ============================================================================
    task_default_queue="audit",
    task_default_exchange="audit",
    task_default_routing_key="audit.record",

    task_queues=(
        Queue(
            "audit",
            Exchange("audit"),
            routing_key="audit.record",
        ),
    ),

    task_routes={
        "record_audit_event": {
            "queue": "audit",
            "routing_key": "audit.record",
        },
    },

    # ============================================================================
    # WORKER CONFIGURATION
    # ============================================================================
    worker_pool="prefork",
    worker_concurrency=2,
    worker_max_tasks_per_child=1000,

    # ============================================================================
    # MONITORING & LOGGING
    # ============================================================================
    worker_send_task_events=True,
    task_send_sent_event=True,

    worker_log_format="[%(asctime)s: %(levelname)s/%(processName)s] %(message)s",
    worker_task_log_format="[%(asctime)s: %(levelname)s/%(processName)s][%(task_name)s(%(task_id)s)] %(message)s",
)

logger.debug(f"Celery broker: {REDIS_URL.split('@')[1] if '@' in REDIS_URL else 'configured'}")

# ============================================================================
# IMPORT TASKS (so they get registered when worker starts)
# ============================================================================
# This import MUST come AFTER celery_app is configured
from . import tasks  # noqa: F401, E402
