from typing import List, Optional

from ..models import WorkflowHistory
from .base import BaseRepository


class WorkflowHistoryRepository(BaseRepository[WorkflowHistory]):
    model = WorkflowHistory

    def _by_template(self, workflow_template_id: int):
        return self.db.query(WorkflowHistory).filter(WorkflowHistory.workflow_template_id == workflow_template_id)

    def find_last_by_workflow_template_id(self, workflow_template_id: int) -> Optional[WorkflowHistory]:
        """Most recently created row, current or not"""
        return (
            self._by_template(workflow_template_id)
            .order_by(WorkflowHistory.created_at.desc(), WorkflowHistory.id.desc())
            .first()
        )

    def find_last_version_by_workflow_template_id(self, workflow_template_id: int) -> Optional[WorkflowHistory]:
        """Most recently created row that carries a version"""
        return (
            self._by_template(workflow_template_id)
            .filter(WorkflowHistory.version.isnot(None))
            .order_by(WorkflowHistory.created_at.desc(), WorkflowHistory.id.desc())
            .first()
        )

    def delete_is_current_version_by_workflow_template_id(self, workflow_template_id: int) -> int:
        """Clear the current-version flag on every row of the template"""
        updated = self._by_template(workflow_template_id).update(
            {WorkflowHistory.is_current_version: False}, synchronize_session="fetch"
        )
        self.db.flush()
        return updated

    def delete_by_workflow_template_id(self, workflow_template_id: int) -> int:
        deleted = self._by_template(workflow_template_id).delete(synchronize_session=False)
        self.db.flush()
        return deleted

    def get_versions_by_workflow_template_id(self, workflow_template_id: int) -> List[WorkflowHistory]:
        """Version-bearing rows, newest first"""
        return (
            self._by_template(workflow_template_id)
            .filter(WorkflowHistory.version.isnot(None))
            .order_by(WorkflowHistory.created_at.desc(), WorkflowHistory.id.desc())
            .all()
        )

    def find_version_by_workflow_template_id_and_version(
        self, workflow_template_id: int, version: str
    ) -> Optional[WorkflowHistory]:
        return (
            self._by_template(workflow_template_id)
            .filter(WorkflowHistory.version == version)
            .order_by(WorkflowHistory.id.desc())
            .first()
        )
