"""
Audit Log Model
Database model for the user action audit trail
"""

from sqlalchemy import Column, Integer, String, JSON, DateTime
from datetime import datetime
from . import Base


class AuditLog(Base):
    """
    Audit Log Model

    Written asynchronously by the record_audit_event Celery task.
    Records who did what (import, save version, copy, delete...).
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)

    # Example: "user-copied-bpmn-workflow"
    event = Column(String(255), nullable=False, index=True)

    # Example: {"user": {...}, "fromTemplateId": 123, "toTemplateId": 456}
    payload = Column(JSON, nullable=True)

    user_id = Column(String(255), nullable=True, index=True)

    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, event='{self.event}')>"
