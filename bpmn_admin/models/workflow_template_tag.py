"""
Workflow Template Tag Models
Colored labels used to group and filter workflow templates in the editor
"""

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey
from datetime import datetime
from . import Base, SerializableMixin


class WorkflowTemplateTag(SerializableMixin, Base):
    """Tag names are unique (checked on create)"""
    __tablename__ = "workflow_template_tags"

    __serialized__ = {
        "id": "id",
        "name": "name",
        "color": "color",
        "description": "description",
        "created_by": "createdBy",
        "updated_by": "updatedBy",
        "created_at": "createdAt",
        "updated_at": "updatedAt",
    }

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False, index=True)
    color = Column(String(32), nullable=True)
    description = Column(Text, nullable=True)

    created_by = Column(Text, nullable=False, default="system")
    updated_by = Column(Text, nullable=False, default="system")

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def to_short_dict(self):
        return {"id": self.id, "name": self.name, "color": self.color, "description": self.description}

    def __repr__(self):
        return f"<WorkflowTemplateTag(id={self.id}, name='{self.name}')>"


class WorkflowTemplateTagMap(Base):
    """Many-to-many link between workflow templates and tags"""
    __tablename__ = "workflow_template_tag_map"

    workflow_template_id = Column(
        Integer, ForeignKey("workflow_templates.id"), primary_key=True, index=True
    )
    workflow_template_tag_id = Column(
        Integer, ForeignKey("workflow_template_tags.id"), primary_key=True, index=True
    )

    def __repr__(self):
        return (
            f"<WorkflowTemplateTagMap(workflow_template_id={self.workflow_template_id}, "
            f"workflow_template_tag_id={self.workflow_template_tag_id})>"
        )
