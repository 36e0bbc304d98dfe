"""
BPMN workflow business

Entry point for everything that works on a whole workflow template graph:
resolution, export/import, versions and copies. Built per request from the
request's Session and the process-wide ServiceContainer.
"""

from typing import Any, Dict, Iterable, List, Optional, Union

from sqlalchemy.orm import Session

from ..models import WorkflowHistory
from .container import ServiceContainer
from .copy_engine import CopyEngine
from .graph_resolver import BpmnWorkflowGraph, GraphResolver
from .import_export import ImportExportEngine
from .versioning import UserContext, VersionManager


class BpmnWorkflowBusiness:

    def __init__(self, db: Session, container: ServiceContainer):
        self.db = db
        self.container = container
        self.resolver = GraphResolver(db, container.xml_converter)
        self.versions = VersionManager(
            db, self.resolver, auto_save_version_after=container.settings.auto_save_version_after
        )
        self.import_export = ImportExportEngine(db, container, self.resolver, self.versions)
        self.copier = CopyEngine(db, container, self.resolver, self.versions)

    def get_bpmn_workflow_references(self, workflow_template_id: int) -> BpmnWorkflowGraph:
        return self.resolver.resolve(workflow_template_id)

    def export(self, workflow_template_id: int) -> Optional[Dict[str, Any]]:
        return self.import_export.export(workflow_template_id)

    def import_workflow(
        self,
        data: Union[str, bytes, Dict[str, Any]],
        force: bool = False,
        bump_type: Optional[str] = None,
        name: Optional[str] = None,
        description: Optional[str] = None,
        user: Optional[UserContext] = None
    ) -> bool:
        return self.import_export.import_workflow(
            data, force=force, bump_type=bump_type, name=name, description=description, user=user
        )

    def save_version(
        self,
        workflow_template_id: int,
        bump_type: Optional[str] = None,
        name: Optional[str] = None,
        description: Optional[str] = None,
        user: Optional[UserContext] = None
    ) -> WorkflowHistory:
        history = self.versions.save_version(
            workflow_template_id, bump_type=bump_type, name=name, description=description, user=user
        )
        self.container.audit.record("user-saved-bpmn-workflow-version", {
            "user": (user or UserContext()).to_meta(),
            "workflowTemplateId": workflow_template_id,
            "version": history.version,
        })
        return history

    def auto_save_version(self, workflow_template_id: int, user: Optional[UserContext] = None) -> Optional[WorkflowHistory]:
        return self.versions.auto_save_version(workflow_template_id, user=user)

    def get_versions(self, workflow_template_id: int) -> List[WorkflowHistory]:
        return self.versions.get_versions(workflow_template_id)

    def find_version(self, workflow_template_id: int, version: str) -> Optional[WorkflowHistory]:
        return self.versions.find_version(workflow_template_id, version)

    def prepare_copy(self, workflow_template_id: int) -> Dict[str, Any]:
        return self.copier.prepare_copy(workflow_template_id)

    def copy(
        self,
        workflow_template_id: int,
        request_token: str,
        excluded_diff_ids: Iterable[str] = (),
        user: Optional[UserContext] = None
    ) -> Dict[str, int]:
        return self.copier.commit_copy(workflow_template_id, request_token, excluded_diff_ids, user=user)
