from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import or_

from ..models import WorkflowTemplateTag, WorkflowTemplateTagMap
from .base import BaseRepository


class WorkflowTemplateTagRepository(BaseRepository[WorkflowTemplateTag]):
    model = WorkflowTemplateTag

    def find_by_name(self, name: str) -> Optional[WorkflowTemplateTag]:
        return self.db.query(WorkflowTemplateTag).filter(WorkflowTemplateTag.name == name).first()

    def find_by_ids(self, ids: Iterable[int]) -> List[WorkflowTemplateTag]:
        ids = list(ids)
        if not ids:
            return []
        return self.db.query(WorkflowTemplateTag).filter(WorkflowTemplateTag.id.in_(ids)).all()

    def get_all_ordered_by_name(self) -> List[WorkflowTemplateTag]:
        return self.db.query(WorkflowTemplateTag).order_by(WorkflowTemplateTag.name).all()

    def get_all_with_pagination(
        self,
        offset: int = 0,
        limit: int = 10,
        search: Optional[str] = None
    ) -> Tuple[List[WorkflowTemplateTag], int]:
        """Search matches a name fragment (case-insensitive) or an exact ID"""
        query = self.db.query(WorkflowTemplateTag)
        if search:
            conditions = [WorkflowTemplateTag.name.ilike(f"%{search}%")]
            if search.strip().isdigit():
                conditions.append(WorkflowTemplateTag.id == int(search))
            query = query.filter(or_(*conditions))

        total = query.count()
        rows = query.order_by(WorkflowTemplateTag.id).offset(offset).limit(limit).all()
        return rows, total

    def get_all_by_workflow_template_id(self, workflow_template_id: int) -> List[WorkflowTemplateTag]:
        return (
            self.db.query(WorkflowTemplateTag)
            .join(WorkflowTemplateTagMap, WorkflowTemplateTagMap.workflow_template_tag_id == WorkflowTemplateTag.id)
            .filter(WorkflowTemplateTagMap.workflow_template_id == workflow_template_id)
            .order_by(WorkflowTemplateTag.name)
            .all()
        )

    def update(self, id: int, data: Dict[str, Any]) -> Optional[WorkflowTemplateTag]:
        """Set the given camelCase fields; None if the tag doesn't exist"""
        tag = self.find_by_id(id)
        if tag is None:
            return None

        for attribute, key in WorkflowTemplateTag.__serialized__.items():
            if key in data and key not in ("id", "createdAt", "updatedAt", "createdBy"):
                setattr(tag, attribute, data[key])
        self.db.flush()
        return tag


class WorkflowTemplateTagMapRepository(BaseRepository[WorkflowTemplateTagMap]):
    model = WorkflowTemplateTagMap

    def insert_many(self, workflow_template_id: int, tag_ids: Iterable[int]) -> List[WorkflowTemplateTagMap]:
        rows = [
            WorkflowTemplateTagMap(workflow_template_id=workflow_template_id, workflow_template_tag_id=tag_id)
            for tag_id in tag_ids
        ]
        self.db.add_all(rows)
        self.db.flush()
        return rows

    def delete_by_workflow_template_id(self, workflow_template_id: int) -> int:
        deleted = (
            self.db.query(WorkflowTemplateTagMap)
            .filter(WorkflowTemplateTagMap.workflow_template_id == workflow_template_id)
            .delete(synchronize_session=False)
        )
        self.db.flush()
        return deleted

    def delete_by_tag_id(self, tag_id: int) -> int:
        deleted = (
            self.db.query(WorkflowTemplateTagMap)
            .filter(WorkflowTemplateTagMap.workflow_template_tag_id == tag_id)
            .delete(synchronize_session=False)
        )
        self.db.flush()
        return deleted
