"""
Workflow Model
Live workflow instances started from a workflow template
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from datetime import datetime
from . import Base


class Workflow(Base):
    """
    Workflow Model

    A running (or finished) process. The foreign key to workflow_templates is
    what prevents deleting a template some process has already started from.
    """
    __tablename__ = "workflows"

    id = Column(Integer, primary_key=True, index=True)
    workflow_template_id = Column(Integer, ForeignKey("workflow_templates.id"), nullable=False, index=True)
    name = Column(String(255), nullable=True)

    # Status: running, finished, failed
    status = Column(String(50), nullable=False, default="running", index=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<Workflow(id={self.id}, workflow_template_id={self.workflow_template_id}, status='{self.status}')>"
