"""
Import/Export Engine

Export turns a resolved graph into a portable document. Import writes such a
document back in one transaction and validates it against this environment:
register keys (keyId), units (performerUnits) and number templates.

Validation problems don't stop the import at the first one. Every row is
created, every problem collected, and if anything was found the transaction
is rolled back with a single WorkflowImportError listing all of them.

Document format:
    {
        "workflowTemplate": {...},
        "workflowTemplateCategory": {...} | null,
        "taskTemplates": [...],
        "documentTemplates": [...],
        "gatewayTemplates": [...],
        "eventTemplates": [...],
        "numberTemplates": [...]            # optional
    }
"""

import copy
import json
import logging
from typing import Any, Dict, List, Optional, Set, Union

from sqlalchemy.orm import Session

from ..models import (
    WorkflowTemplate,
    WorkflowTemplateCategory,
    TaskTemplate,
    DocumentTemplate,
    GatewayTemplate,
    EventTemplate,
    NumberTemplate,
)
from ..repositories import (
    WorkflowTemplateRepository,
    WorkflowTemplateCategoryRepository,
    TaskTemplateRepository,
    DocumentTemplateRepository,
    GatewayTemplateRepository,
    EventTemplateRepository,
    NumberTemplateRepository,
    UnitRepository,
)
from .container import ServiceContainer
from .exceptions import AlreadyCommittedError, InvalidDataError, WorkflowError, WorkflowImportError
from .graph_resolver import GraphResolver, TEMPLATE_COLLECTIONS
from .serialization import flatten, iter_descendant_objects, iter_key_values, parse_int
from .versioning import BUMP_MAJOR, BUMP_MINOR, UserContext, VersionManager

logger = logging.getLogger(__name__)

EXCLUDED_FIELDS = ("errorsSubscribers",)


def validate_document(data: Any) -> None:
    """
    Raises:
        InvalidDataError: If the document lacks a section or a template list
            isn't a list
    """
    if not isinstance(data, dict):
        raise InvalidDataError()
    if not isinstance(data.get("workflowTemplate"), dict) or "workflowTemplateCategory" not in data:
        raise InvalidDataError()
    for collection in TEMPLATE_COLLECTIONS:
        if not isinstance(data.get(collection), list):
            raise InvalidDataError()


class ImportExportEngine:
    """Export and import of workflow template graphs"""

    def __init__(
        self,
        db: Session,
        container: ServiceContainer,
        resolver: GraphResolver,
        versions: VersionManager
    ):
        self.db = db
        self.container = container
        self.resolver = resolver
        self.versions = versions

        self.workflow_templates = WorkflowTemplateRepository(db)
        self.categories = WorkflowTemplateCategoryRepository(db)
        self.task_templates = TaskTemplateRepository(db)
        self.document_templates = DocumentTemplateRepository(db)
        self.gateway_templates = GatewayTemplateRepository(db)
        self.event_templates = EventTemplateRepository(db)
        self.number_templates = NumberTemplateRepository(db)
        self.units = UnitRepository(db)

    # ========================================================================
    # EXPORT
    # ========================================================================

    def export(self, workflow_template_id: int) -> Optional[Dict[str, Any]]:
        """
        Portable document of a workflow template graph.

        Returns:
            Document without errorsSubscribers, or None if the workflow
            template doesn't exist

        Raises:
            InvalidXmlError: If the BPMN schema is invalid
        """
        if self.workflow_templates.find_by_id(workflow_template_id) is None:
            return None

        graph = self.resolver.resolve(workflow_template_id)
        logger.info(f"Exporting workflow template {workflow_template_id}", extra={"workflow_template_id": workflow_template_id})
        return graph.to_dict(exclude_workflow_fields=EXCLUDED_FIELDS)

    # ========================================================================
    # IMPORT
    # ========================================================================

    def import_workflow(
        self,
        data: Union[str, bytes, Dict[str, Any]],
        force: bool = False,
        bump_type: Optional[str] = None,
        name: Optional[str] = None,
        description: Optional[str] = None,
        user: Optional[UserContext] = None
    ) -> bool:
        """
        Import a workflow template graph.

        Args:
            data: Document (JSON string or already decoded)
            force: Overwrite an existing workflow template with the same ID
            bump_type: "major" for a major version, otherwise minor
            name: Commit message title
            description: Commit message body
            user: Acting user

        Returns:
            True

        Raises:
            InvalidDataError: If the document is malformed
            AlreadyCommittedError: If the workflow template exists and force is False
            WorkflowImportError: If the document references register keys,
                units or number templates missing here (nothing persisted)
            ExternalServiceError: If register keys can't be fetched
        """
        user = user or UserContext()
        data = self._decode(data)
        validate_document(data)

        workflow_template_data = data["workflowTemplate"]
        for excluded in EXCLUDED_FIELDS:
            workflow_template_data.pop(excluded, None)

        workflow_template_id = workflow_template_data.get("id")
        if self.workflow_templates.find_by_id(workflow_template_id) is not None and not force:
            raise AlreadyCommittedError(AlreadyCommittedError.Messages.WORKFLOW)

        logger.info(
            f"Importing workflow template {workflow_template_id}",
            extra={"workflow_template_id": workflow_template_id, "force": force, "user_id": user.user_id}
        )

        try:
            register_key_ids = self._get_register_key_ids()
            register_errors: List[WorkflowError] = []

            category = data.get("workflowTemplateCategory")
            if category:
                logger.info(f"Importing workflow template category {category.get('id')}")
                self.categories.create(WorkflowTemplateCategory.from_dict(category))

            for number_template in data.get("numberTemplates") or []:
                logger.info(f"Importing number template {number_template.get('id')}")
                self.number_templates.create(NumberTemplate.from_dict(number_template))

            number_template_error = self._check_number_template(workflow_template_data)

            logger.info(f"Importing workflow template row {workflow_template_id}")
            self.workflow_templates.create(WorkflowTemplate.from_dict(workflow_template_data))

            for document_template in data["documentTemplates"]:
                register_errors.extend(self._check_document_register_keys(document_template, register_key_ids))
                logger.info(f"Importing document template {document_template.get('id')}")
                self.document_templates.create(DocumentTemplate.from_dict(document_template))

            unit_errors: List[WorkflowError] = []
            for task_template in data["taskTemplates"]:
                unit_errors.extend(self._check_performer_units(task_template))
                logger.info(f"Importing task template {task_template.get('id')}")
                self.task_templates.create(TaskTemplate.from_dict(task_template))

            for gateway_template in data["gatewayTemplates"]:
                logger.info(f"Importing gateway template {gateway_template.get('id')}")
                self.gateway_templates.create(GatewayTemplate.from_dict(gateway_template))

            for event_template in data["eventTemplates"]:
                register_errors.extend(self._check_register_keys(
                    event_template, register_key_ids, "event_template_id"
                ))
                logger.info(f"Importing event template {event_template.get('id')}")
                self.event_templates.create(EventTemplate.from_dict(event_template))

            errors = register_errors + unit_errors + ([number_template_error] if number_template_error else [])
            if errors:
                raise WorkflowImportError(errors)

            version = self.versions.compute_next_version(
                workflow_template_id,
                BUMP_MAJOR if bump_type == BUMP_MAJOR else BUMP_MINOR,
                increment_patch=False,
            )
            self.versions.commit_version(
                workflow_template_id,
                data,
                version,
                user=user,
                name=name,
                description=description,
            )
            self.db.commit()

        except WorkflowImportError as e:
            self.db.rollback()
            logger.warning(
                f"Import of workflow template {workflow_template_id} rejected: {len(e.errors)} problem(s)",
                extra={"workflow_template_id": workflow_template_id, "problems": e.details}
            )
            raise
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"Workflow template {workflow_template_id} imported as version {version}",
            extra={"workflow_template_id": workflow_template_id, "version": version}
        )
        self.container.audit.record("user-imported-bpmn-workflow", {"user": user.to_meta(), "data": data})
        return True

    # ========================================================================
    # VALIDATION HELPERS
    # ========================================================================

    @staticmethod
    def _decode(data: Union[str, bytes, Dict[str, Any]]) -> Dict[str, Any]:
        if isinstance(data, (str, bytes, bytearray)):
            try:
                return json.loads(data)
            except ValueError as e:
                raise InvalidDataError() from e
        # Callers keep their copy; errorsSubscribers is stripped in place
        return copy.deepcopy(data)

    def _get_register_key_ids(self) -> Set[int]:
        keys = self.container.register_client.get_keys(limit=self.container.settings.register_keys_limit)
        key_ids = set()
        for key in (keys or {}).get("data") or []:
            key_id = parse_int(key.get("id")) if isinstance(key, dict) else None
            if key_id is not None:
                key_ids.add(key_id)
        return key_ids

    def _check_number_template(self, workflow_template_data: Dict[str, Any]) -> Optional[WorkflowError]:
        workflow_data = workflow_template_data.get("data")
        number_template_id = workflow_data.get("numberTemplateId") if isinstance(workflow_data, dict) else None
        if not number_template_id:
            return None
        if self.number_templates.find_by_id(number_template_id) is not None:
            return None
        return WorkflowError(f"Number template {number_template_id} doesn't exist but exists in workflow.")

    @staticmethod
    def _check_register_keys(template: Dict[str, Any], register_key_ids: Set[int], id_label: str) -> List[WorkflowError]:
        """Numeric keyId values (123 or "123") missing from the register"""
        errors = []
        for key_id in flatten(list(iter_key_values(template.get("jsonSchema"), "keyId"))):
            parsed = parse_int(key_id)
            if parsed is not None and parsed > 0 and parsed not in register_key_ids:
                errors.append(WorkflowError(
                    f"Register key {key_id} doesn't exist but exists in {id_label} {template.get('id')}."
                ))
        return errors

    def _check_document_register_keys(self, document_template: Dict[str, Any], register_key_ids: Set[int]) -> List[WorkflowError]:
        """
        keyId check plus the whiteList check: a control whose keyId is a
        function ("() => 123") may only offer whitelisted keys that exist.
        """
        errors = self._check_register_keys(document_template, register_key_ids, "document_template_id")

        for control in iter_descendant_objects(document_template.get("jsonSchema")):
            key_id = control.get("keyId")
            white_list = control.get("whiteList")
            if not key_id or not white_list or not isinstance(white_list, list):
                continue
            if not self.container.function_detector.is_function(key_id):
                continue

            white_list_numeric = [parse_int(value) for value in white_list]
            missing = [value for value in white_list_numeric if value is not None and value not in register_key_ids]
            if missing:
                errors.append(WorkflowError(
                    f"Register keys {','.join(str(value) for value in missing)} don't exist but exist in "
                    f"document_template_id {document_template.get('id')} in whiteList option "
                    f"{','.join(str(value) for value in white_list)}."
                ))
        return errors

    def _check_performer_units(self, task_template: Dict[str, Any]) -> List[WorkflowError]:
        json_schema = task_template.get("jsonSchema")
        permissions = json_schema.get("setPermissions") if isinstance(json_schema, dict) else None
        if not isinstance(permissions, list):
            return []

        errors = []
        for permission in permissions:
            performer_units = permission.get("performerUnits") if isinstance(permission, dict) else None
            if not isinstance(performer_units, list):
                continue
            for unit_id in performer_units:
                if self.units.find_by_id(unit_id) is None:
                    errors.append(WorkflowError(
                        f"Unit {unit_id} doesn't exist but exists in task_template_id {task_template.get('id')}."
                    ))
        return errors
