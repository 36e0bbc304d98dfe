from typing import Iterable, List, Optional, Tuple

from sqlalchemy import or_

from ..models import WorkflowTemplate, WorkflowTemplateTagMap
from .base import BaseRepository


class WorkflowTemplateRepository(BaseRepository[WorkflowTemplate]):
    model = WorkflowTemplate

    def get_latest(self) -> Optional[WorkflowTemplate]:
        """Template with the highest ID (None on an empty table)"""
        return self.db.query(WorkflowTemplate).order_by(WorkflowTemplate.id.desc()).first()

    def get_latest_id(self) -> int:
        latest = self.get_latest()
        return latest.id if latest else 0

    def get_all_with_pagination(
        self,
        offset: int = 0,
        limit: int = 20,
        name: Optional[str] = None,
        tag_ids: Optional[Iterable[int]] = None
    ) -> Tuple[List[WorkflowTemplate], int]:
        """
        Newest first.

        Args:
            name: Name or description fragment (case-insensitive); a numeric
                value also matches the template ID
            tag_ids: Keep templates carrying at least one of these tags
        """
        query = self.db.query(WorkflowTemplate)

        if name:
            conditions = [WorkflowTemplate.name.ilike(f"%{name}%"), WorkflowTemplate.description.ilike(f"%{name}%")]
            if name.strip().isdigit():
                conditions.append(WorkflowTemplate.id == int(name))
            query = query.filter(or_(*conditions))

        tag_ids = list(tag_ids or [])
        if tag_ids:
            tagged = (
                self.db.query(WorkflowTemplateTagMap.workflow_template_id)
                .filter(WorkflowTemplateTagMap.workflow_template_tag_id.in_(tag_ids))
            )
            query = query.filter(WorkflowTemplate.id.in_(tagged))

        total = query.count()
        rows = query.order_by(WorkflowTemplate.id.desc()).offset(offset).limit(limit).all()
        return rows, total

    def get_short(self) -> List[Tuple[int, Optional[str]]]:
        """(id, name) of every template, by ID"""
        return self.db.query(WorkflowTemplate.id, WorkflowTemplate.name).order_by(WorkflowTemplate.id).all()
