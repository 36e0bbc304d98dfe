"""
Workflow History Model
Append-only version ledger of workflow templates
"""

from sqlalchemy import Column, Integer, String, Text, JSON, DateTime, Boolean, ForeignKey
from datetime import datetime
from . import Base, SerializableMixin


class WorkflowHistory(SerializableMixin, Base):
    """
    Workflow History Model

    One row per explicit save, auto-save, import or copy. Rows are never
    updated except for is_current_version, which is cleared on every new
    commit so that at most one row per template is current.
    """
    __tablename__ = "workflow_histories"

    __serialized__ = {
        "id": "id",
        "workflow_template_id": "workflowTemplateId",
        "user_id": "userId",
        "data": "data",
        "version": "version",
        "is_current_version": "isCurrentVersion",
        "meta": "meta",
        "name": "name",
        "description": "description",
        "created_at": "createdAt",
        "updated_at": "updatedAt",
    }

    id = Column(Integer, primary_key=True, index=True)
    workflow_template_id = Column(Integer, ForeignKey("workflow_templates.id"), nullable=False, index=True)
    user_id = Column(String(255), nullable=True)

    # Full snapshot: {"workflowTemplate": {...}, "taskTemplates": [...], ...}
    data = Column(JSON, nullable=False)

    # "major.minor.patch"; legacy rows may hold a bare integer ("7")
    version = Column(String(32), nullable=True, index=True)
    is_current_version = Column(Boolean, nullable=False, default=False)

    # Request context: {"userId", "remoteAddress", "xForwardedFor", "userAgent"}
    meta = Column(JSON, nullable=True)

    # Commit message
    name = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self):
        return (
            f"<WorkflowHistory(id={self.id}, workflow_template_id={self.workflow_template_id}, "
            f"version='{self.version}', current={self.is_current_version})>"
        )
