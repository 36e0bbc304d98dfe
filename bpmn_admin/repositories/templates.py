"""
Repositories of the templates a workflow template depends on
"""

from ..models import (
    TaskTemplate,
    DocumentTemplate,
    GatewayTemplate,
    EventTemplate,
    NumberTemplate,
    WorkflowTemplateCategory,
    Unit,
)
from .base import BaseRepository


class TaskTemplateRepository(BaseRepository[TaskTemplate]):
    model = TaskTemplate


class DocumentTemplateRepository(BaseRepository[DocumentTemplate]):
    model = DocumentTemplate


class GatewayTemplateRepository(BaseRepository[GatewayTemplate]):
    model = GatewayTemplate


class EventTemplateRepository(BaseRepository[EventTemplate]):
    model = EventTemplate


class NumberTemplateRepository(BaseRepository[NumberTemplate]):
    model = NumberTemplate


class WorkflowTemplateCategoryRepository(BaseRepository[WorkflowTemplateCategory]):
    model = WorkflowTemplateCategory


class UnitRepository(BaseRepository[Unit]):
    model = Unit
