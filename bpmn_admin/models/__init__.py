"""
Models module - SQLAlchemy database models
"""

from datetime import datetime
from typing import Any, Dict, Iterable

from sqlalchemy.orm import declarative_base

Base = declarative_base()

# Regenerated by the database on every import/copy, never carried over
VOLATILE_FIELDS = ("createdAt", "updatedAt")


class SerializableMixin:
    """
    Conversion between rows and the portable camelCase document format
    used by exports, history snapshots and staged copies.

    Subclasses list their columns in __serialized__ as
    {attribute_name: document_key}.
    """
    __serialized__: Dict[str, str] = {}

    def to_dict(self, exclude: Iterable[str] = ()) -> Dict[str, Any]:
        result = {}
        for attribute, key in self.__serialized__.items():
            if key in exclude:
                continue
            value = getattr(self, attribute)
            if isinstance(value, datetime):
                value = value.isoformat()
            result[key] = value
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]):
        kwargs = {
            attribute: data[key]
            for attribute, key in cls.__serialized__.items()
            if key in data and key not in VOLATILE_FIELDS
        }
        return cls(**kwargs)


# Import models after Base is defined to avoid circular imports
from .workflow_template import WorkflowTemplate, WorkflowTemplateCategory
from .workflow_template_tag import WorkflowTemplateTag, WorkflowTemplateTagMap
from .templates import TaskTemplate, DocumentTemplate, GatewayTemplate, EventTemplate, NumberTemplate
from .workflow_history import WorkflowHistory
from .unit import Unit
from .workflow import Workflow
from .audit_log import AuditLog

__all__ = [
    "Base",
    "SerializableMixin",
    "VOLATILE_FIELDS",
    "WorkflowTemplate",
    "WorkflowTemplateCategory",
    "WorkflowTemplateTag",
    "WorkflowTemplateTagMap",
    "TaskTemplate",
    "DocumentTemplate",
    "GatewayTemplate",
    "EventTemplate",
    "NumberTemplate",
    "WorkflowHistory",
    "Unit",
    "Workflow",
    "AuditLog",
]
