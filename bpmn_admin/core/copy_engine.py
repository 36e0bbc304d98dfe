"""
Copy Engine

Copying a workflow template is a two-step protocol:

1. prepare_copy: resolve the graph, look for every `<oldId><ddd>` literal in
   the dependent templates' JSON schemas, stage the graph and the diffs that
   need review in Redis, return {requestToken, diffs, diffCount}.
2. commit_copy: the user sends back the IDs of the diffs that must NOT be
   rewritten. Everything is rewritten to a freshly allocated workflow
   template ID and inserted in one transaction, together with a 1.0.0
   history row. The staged entry is consumed on success and kept on failure
   so the commit can be retried without preparing again.

The destination ID is `latest + 1`, read fresh at commit. Rows are inserted
strictly, so a concurrent allocation of the same ID surfaces as an
IntegrityError; the whole transaction is then rolled back and retried with a
new read, up to copy_id_allocation_attempts times.
"""

import logging
import re
import secrets
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..models import (
    VOLATILE_FIELDS,
    WorkflowTemplate,
    TaskTemplate,
    DocumentTemplate,
    GatewayTemplate,
    EventTemplate,
)
from ..repositories import (
    WorkflowTemplateRepository,
    TaskTemplateRepository,
    DocumentTemplateRepository,
    GatewayTemplateRepository,
    EventTemplateRepository,
)
from .container import ServiceContainer
from .exceptions import IdAllocationError, StagedCopyNotFoundError
from .graph_resolver import GraphResolver
from .id_rewriter import find_diffs, remap_template_id, replace_references
from .staging_cache import staged_copy_key
from .versioning import INITIAL_VERSION, UserContext, VersionManager

logger = logging.getLogger(__name__)

# Fields never carried into a copy
COPY_EXCLUDED_WORKFLOW_FIELDS = ("errorsSubscribers",) + VOLATILE_FIELDS
COPY_EXCLUDED_TEMPLATE_FIELDS = ("jsonSchemaRaw",) + VOLATILE_FIELDS

# (diff type, staged collection) in insertion order: documents first because
# task templates reference them
DEPENDENT_TEMPLATES = (
    ("documentTemplate", "documentTemplates"),
    ("taskTemplate", "taskTemplates"),
    ("gatewayTemplate", "gatewayTemplates"),
    ("eventTemplate", "eventTemplates"),
)

BPMN_NODE_PREFIXES = ("task", "event", "gateway")


def rewrite_bpmn_schema(xml_bpmn_schema: Optional[str], prev_id: int, new_id: int) -> Optional[str]:
    """task-123045 → task-456045 (and event-/gateway-), case-insensitive"""
    if xml_bpmn_schema is None:
        return None
    for prefix in BPMN_NODE_PREFIXES:
        xml_bpmn_schema = re.sub(
            rf"{prefix}-{prev_id}",
            f"{prefix}-{new_id}",
            xml_bpmn_schema,
            flags=re.IGNORECASE,
        )
    return xml_bpmn_schema


class CopyEngine:
    """Prepares and commits copies of workflow templates"""

    def __init__(
        self,
        db: Session,
        container: ServiceContainer,
        resolver: GraphResolver,
        versions: VersionManager
    ):
        self.db = db
        self.container = container
        self.settings = container.settings
        self.staged_copies = container.staged_copies
        self.resolver = resolver
        self.versions = versions

        self.workflow_templates = WorkflowTemplateRepository(db)
        self.repositories = {
            "documentTemplate": DocumentTemplateRepository(db),
            "taskTemplate": TaskTemplateRepository(db),
            "gatewayTemplate": GatewayTemplateRepository(db),
            "eventTemplate": EventTemplateRepository(db),
        }
        self.models = {
            "documentTemplate": DocumentTemplate,
            "taskTemplate": TaskTemplate,
            "gatewayTemplate": GatewayTemplate,
            "eventTemplate": EventTemplate,
        }

    def next_workflow_template_id(self) -> int:
        return self.workflow_templates.get_latest_id() + 1

    # ========================================================================
    # PREPARE
    # ========================================================================

    def prepare_copy(self, workflow_template_id: int) -> Dict[str, Any]:
        """
        Stage a copy of a workflow template.

        Args:
            workflow_template_id: Source workflow template ID

        Returns:
            {"requestToken": str, "diffs": [...], "diffCount": int}

        Raises:
            NotFoundError: If the workflow template doesn't exist
            InvalidXmlError: If its BPMN schema is invalid
        """
        graph = self.resolver.resolve(workflow_template_id)
        staged = graph.to_dict(
            exclude_workflow_fields=COPY_EXCLUDED_WORKFLOW_FIELDS,
            exclude_template_fields=COPY_EXCLUDED_TEMPLATE_FIELDS,
        )
        staged.pop("workflowTemplateCategory", None)

        # Preview only, commit allocates its own ID
        new_workflow_template_id = self.next_workflow_template_id()

        diffs = []
        for template_type, collection in (
            ("taskTemplate", "taskTemplates"),
            ("documentTemplate", "documentTemplates"),
            ("gatewayTemplate", "gatewayTemplates"),
            ("eventTemplate", "eventTemplates"),
        ):
            diffs.extend(find_diffs(staged[collection], template_type, workflow_template_id, new_workflow_template_id))
        staged["diffs"] = diffs

        request_token = secrets.token_hex(16)
        self.staged_copies.set(staged_copy_key(workflow_template_id, request_token), staged)

        logger.info(
            f"Copy of workflow template {workflow_template_id} prepared: {len(diffs)} diff(s) to review",
            extra={"workflow_template_id": workflow_template_id, "diff_count": len(diffs)}
        )
        return {"requestToken": request_token, "diffs": diffs, "diffCount": len(diffs)}

    # ========================================================================
    # COMMIT
    # ========================================================================

    def commit_copy(
        self,
        workflow_template_id: int,
        request_token: str,
        excluded_diff_ids: Iterable[str] = (),
        user: Optional[UserContext] = None
    ) -> Dict[str, int]:
        """
        Commit a prepared copy.

        Args:
            workflow_template_id: Source workflow template ID
            request_token: Token returned by prepare_copy
            excluded_diff_ids: Diffs to leave unrewritten
            user: Acting user

        Returns:
            {"newWorkflowTemplateId": int}

        Raises:
            StagedCopyNotFoundError: If the staged copy expired or never existed
            IdAllocationError: If no free ID could be allocated
        """
        user = user or UserContext()
        key = staged_copy_key(workflow_template_id, request_token)

        staged = self.staged_copies.get(key)
        if not staged:
            raise StagedCopyNotFoundError()

        excluded_diff_ids = set(excluded_diff_ids or ())
        excluded_diffs = [diff for diff in staged.get("diffs") or [] if diff.get("id") in excluded_diff_ids]

        attempts = max(1, self.settings.copy_id_allocation_attempts)
        for attempt in range(1, attempts + 1):
            new_workflow_template_id = self.next_workflow_template_id()
            if new_workflow_template_id > self.settings.max_workflow_template_id:
                raise IdAllocationError(
                    f"Workflow template ID {new_workflow_template_id} exceeds the maximum "
                    f"{self.settings.max_workflow_template_id}."
                )

            try:
                self._write_copy(staged, workflow_template_id, new_workflow_template_id, excluded_diffs, user)
                self.db.commit()
                break
            except IntegrityError as e:
                self.db.rollback()
                if self.workflow_templates.find_by_id(new_workflow_template_id) is None:
                    # Not an ID collision
                    raise
                logger.warning(
                    f"Copy ID {new_workflow_template_id} collided (attempt {attempt}/{attempts}): {e.orig}",
                    extra={"workflow_template_id": workflow_template_id, "new_workflow_template_id": new_workflow_template_id}
                )
            except Exception:
                self.db.rollback()
                raise
        else:
            raise IdAllocationError(
                f"Couldn't allocate a workflow template ID for the copy after {attempts} attempt(s)."
            )

        self.staged_copies.delete(key)

        logger.info(
            f"Workflow template {workflow_template_id} copied to {new_workflow_template_id}",
            extra={
                "workflow_template_id": workflow_template_id,
                "new_workflow_template_id": new_workflow_template_id,
                "excluded_diffs": len(excluded_diffs),
            }
        )
        self.container.audit.record("user-copied-bpmn-workflow", {
            "user": user.to_meta(),
            "fromTemplateId": workflow_template_id,
            "toTemplateId": new_workflow_template_id,
        })
        return {"newWorkflowTemplateId": new_workflow_template_id}

    def _write_copy(
        self,
        staged: Dict[str, Any],
        prev_id: int,
        new_id: int,
        excluded_diffs: List[Dict[str, Any]],
        user: UserContext
    ) -> None:
        """Insert the rewritten graph and its 1.0.0 history row (no commit)"""
        snapshot: Dict[str, Any] = {
            "workflowTemplate": self._copy_workflow_template(staged["workflowTemplate"], prev_id, new_id),
            "taskTemplates": [],
            "documentTemplates": [],
            "gatewayTemplates": [],
            "eventTemplates": [],
        }
        self.workflow_templates.insert(WorkflowTemplate.from_dict(snapshot["workflowTemplate"]))

        for template_type, collection in DEPENDENT_TEMPLATES:
            for template in staged.get(collection) or []:
                excluded_offsets = [
                    diff["index"] for diff in excluded_diffs
                    if diff.get("type") == template_type and diff.get("templateId") == template.get("id")
                ]
                new_template = dict(template)
                new_template["id"] = remap_template_id(template.get("id"), prev_id, new_id)
                if template_type == "taskTemplate":
                    new_template["documentTemplateId"] = remap_template_id(
                        template.get("documentTemplateId"), prev_id, new_id
                    )
                new_template["jsonSchema"] = replace_references(
                    template.get("jsonSchema"), prev_id, new_id, excluded_offsets
                )

                self.repositories[template_type].insert(self.models[template_type].from_dict(new_template))
                snapshot[collection].append(new_template)

        self.versions.commit_version(new_id, snapshot, INITIAL_VERSION, user=user)

    def _copy_workflow_template(self, workflow_template: Dict[str, Any], prev_id: int, new_id: int) -> Dict[str, Any]:
        prefix = self.settings.copy_name_prefix
        name = workflow_template.get("name")
        description = workflow_template.get("description")

        new_workflow_template = dict(workflow_template)
        new_workflow_template.update({
            "id": new_id,
            "name": f"{prefix}{name}" if name else name,
            "description": f"{prefix}{description}" if description else description,
            "xmlBpmnSchema": rewrite_bpmn_schema(workflow_template.get("xmlBpmnSchema"), prev_id, new_id),
            "data": replace_references(workflow_template.get("data"), prev_id, new_id),
        })
        return new_workflow_template
