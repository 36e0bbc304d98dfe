"""
Repositories - persistence access per entity kind

Every repository works on the caller's Session; the session is the unit of
work, so nothing here commits.
"""

from .base import BaseRepository
from .workflow_template import WorkflowTemplateRepository
from .workflow_history import WorkflowHistoryRepository
from .workflow_template_tag import WorkflowTemplateTagRepository, WorkflowTemplateTagMapRepository
from .templates import (
    TaskTemplateRepository,
    DocumentTemplateRepository,
    GatewayTemplateRepository,
    EventTemplateRepository,
    NumberTemplateRepository,
    WorkflowTemplateCategoryRepository,
    UnitRepository,
)

__all__ = [
    "BaseRepository",
    "WorkflowTemplateRepository",
    "WorkflowHistoryRepository",
    "WorkflowTemplateTagRepository",
    "WorkflowTemplateTagMapRepository",
    "TaskTemplateRepository",
    "DocumentTemplateRepository",
    "GatewayTemplateRepository",
    "EventTemplateRepository",
    "NumberTemplateRepository",
    "WorkflowTemplateCategoryRepository",
    "UnitRepository",
]
