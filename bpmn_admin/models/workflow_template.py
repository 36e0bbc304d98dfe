"""
Workflow Template Model
Database models for BPMN workflow templates and their categories
"""

from sqlalchemy import Column, Integer, String, Text, JSON, DateTime, Boolean, ForeignKey
from datetime import datetime
from . import Base, SerializableMixin


class WorkflowTemplateCategory(SerializableMixin, Base):
    """Grouping of workflow templates shown in the editor"""
    __tablename__ = "workflow_template_categories"

    __serialized__ = {
        "id": "id",
        "parent_id": "parentId",
        "name": "name",
        "created_at": "createdAt",
        "updated_at": "updatedAt",
    }

    id = Column(Integer, primary_key=True, index=True)
    parent_id = Column(Integer, nullable=True)
    name = Column(String(255), nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<WorkflowTemplateCategory(id={self.id}, name='{self.name}')>"


class WorkflowTemplate(SerializableMixin, Base):
    """
    Workflow Template Model

    Stores a BPMN process definition. The raw XML is the source of truth for
    structure: task, gateway and event templates belong to a workflow template
    only by being referenced from its sequence flows (task-<id>, gateway-<id>,
    event-<id>), and their IDs are prefixed with the workflow template ID
    (workflow 123 owns task 123045).
    """
    __tablename__ = "workflow_templates"

    __serialized__ = {
        "id": "id",
        "workflow_template_category_id": "workflowTemplateCategoryId",
        "name": "name",
        "description": "description",
        "xml_bpmn_schema": "xmlBpmnSchema",
        "data": "data",
        "is_active": "isActive",
        "access_units": "accessUnits",
        "errors_subscribers": "errorsSubscribers",
        "created_at": "createdAt",
        "updated_at": "updatedAt",
    }

    # IDs are assigned by the caller (latest + 1 or explicit)
    id = Column(Integer, primary_key=True, autoincrement=False, index=True)
    workflow_template_category_id = Column(
        Integer, ForeignKey("workflow_template_categories.id"), nullable=True, index=True
    )
    name = Column(String(255), nullable=True, index=True)
    description = Column(Text, nullable=True)
    xml_bpmn_schema = Column(Text, nullable=True)

    # Free-form editor data, e.g. {"numberTemplateId": 7, ...}
    data = Column(JSON, nullable=True)

    is_active = Column(Boolean, nullable=False, default=True)
    access_units = Column(JSON, nullable=False, default=list)

    # [{"id": "<userId>", "email": "..."}], never exported or copied
    errors_subscribers = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<WorkflowTemplate(id={self.id}, name='{self.name}')>"
