"""
Workflow template lifecycle

Create, update (with auto-save versioning), delete (with cascade over the
resolved graph), listing and schema search, tags and errors subscriptions.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..models import WorkflowHistory, WorkflowTemplate, WorkflowTemplateTag
from ..repositories import (
    WorkflowTemplateRepository,
    WorkflowHistoryRepository,
    TaskTemplateRepository,
    DocumentTemplateRepository,
    GatewayTemplateRepository,
    EventTemplateRepository,
    WorkflowTemplateTagRepository,
    WorkflowTemplateTagMapRepository,
)
from .bpmn_workflow import BpmnWorkflowBusiness
from .container import ServiceContainer
from .exceptions import (
    AccessError,
    AlreadyCommittedError,
    ConstraintError,
    IdAllocationError,
    InvalidDataError,
    InvalidXmlError,
    NotFoundError,
    StaleVersionError,
)
from .schema_search import SchemaSearch
from .versioning import UserContext

logger = logging.getLogger(__name__)

MAX_TAGS_PER_WORKFLOW_TEMPLATE = 10


class WorkflowBusiness:
    """Workflow template CRUD"""

    def __init__(self, db: Session, container: ServiceContainer, bpmn_workflow: Optional[BpmnWorkflowBusiness] = None):
        self.db = db
        self.container = container
        self.settings = container.settings
        self.bpmn_workflow = bpmn_workflow or BpmnWorkflowBusiness(db, container)

        self.workflow_templates = WorkflowTemplateRepository(db)
        self.histories = WorkflowHistoryRepository(db)
        self.task_templates = TaskTemplateRepository(db)
        self.document_templates = DocumentTemplateRepository(db)
        self.gateway_templates = GatewayTemplateRepository(db)
        self.event_templates = EventTemplateRepository(db)
        self.tags = WorkflowTemplateTagRepository(db)
        self.tag_map = WorkflowTemplateTagMapRepository(db)
        self.schema_search = SchemaSearch(db)

    def check_editor_enabled(self) -> None:
        if self.settings.workflow_editor_disabled:
            raise AccessError(AccessError.Messages.WORKFLOW_EDITOR)

    def check_last_history_header(self, workflow_template_id: int, last_workflow_history_id: Optional[Union[int, str]]) -> None:
        """
        Optimistic concurrency check, done before any mutation.

        Raises:
            StaleVersionError: If the header doesn't match the last history row
        """
        last = self.histories.find_last_by_workflow_template_id(workflow_template_id)
        if last is None:
            return
        if last_workflow_history_id is None or str(last.id) != str(last_workflow_history_id).strip():
            raise StaleVersionError(last.to_dict(exclude=("data",)))

    # ========================================================================
    # CRUD
    # ========================================================================

    def create(self, data: Dict[str, Any]) -> WorkflowTemplate:
        """
        Create a workflow template. Without an ID it gets `latest + 1`.

        Raises:
            AlreadyCommittedError: If the ID is taken
            IdAllocationError: If the ID is above the ceiling
        """
        self.check_editor_enabled()

        data = dict(data)
        if not data.get("id"):
            data["id"] = self.workflow_templates.get_latest_id() + 1
        if data["id"] > self.settings.max_workflow_template_id:
            raise IdAllocationError(
                f"Workflow template ID {data['id']} exceeds the maximum {self.settings.max_workflow_template_id}."
            )
        if self.workflow_templates.find_by_id(data["id"]) is not None:
            raise AlreadyCommittedError(AlreadyCommittedError.Messages.WORKFLOW)

        try:
            workflow_template = self.workflow_templates.insert(WorkflowTemplate.from_dict(data))
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Workflow template {workflow_template.id} created", extra={"workflow_template_id": workflow_template.id})
        return workflow_template

    def update(
        self,
        workflow_template_id: int,
        data: Dict[str, Any],
        user: Optional[UserContext] = None,
        last_workflow_history_id: Optional[Union[int, str]] = None
    ) -> Tuple[WorkflowTemplate, Optional[int]]:
        """
        Replace a workflow template and auto-save a version.

        Returns:
            (workflow template, Last-Workflow-History-Id to send back)

        Raises:
            StaleVersionError: If the header is stale (nothing written)
            NotFoundError: If the workflow template doesn't exist
        """
        self.check_editor_enabled()

        if self.workflow_templates.find_by_id(workflow_template_id) is None:
            raise NotFoundError(NotFoundError.Messages.WORKFLOW_TEMPLATE)

        self.check_last_history_header(workflow_template_id, last_workflow_history_id)

        data = dict(data)
        data["id"] = workflow_template_id
        data.pop("errorsSubscribers", None)

        try:
            workflow_template = self.workflow_templates.create(WorkflowTemplate.from_dict(data))
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Workflow template {workflow_template_id} updated", extra={"workflow_template_id": workflow_template_id})
        self.container.audit.record("user-updated-workflow", {
            "user": (user or UserContext()).to_meta(),
            "data": workflow_template.to_dict(exclude=("errorsSubscribers",)),
        })

        history = self.bpmn_workflow.auto_save_version(workflow_template_id, user=user)
        if history is not None:
            return workflow_template, history.id

        last = self.histories.find_last_by_workflow_template_id(workflow_template_id)
        return workflow_template, last.id if last else None

    def find_by_id(self, workflow_template_id: int) -> Optional[WorkflowTemplate]:
        return self.workflow_templates.find_by_id(workflow_template_id)

    def _with_last_change(self, workflow_template: WorkflowTemplate) -> Dict[str, Any]:
        """List row: no BPMN schema, author and time of the last history row, tags"""
        item = workflow_template.to_dict(exclude=("xmlBpmnSchema",))
        last = self.histories.find_last_by_workflow_template_id(workflow_template.id)
        item["updatedBy"] = last.user_id if last else None
        if last is not None and last.created_at is not None:
            item["updatedAt"] = last.created_at.isoformat()
        item["tags"] = [tag.to_short_dict() for tag in self.tags.get_all_by_workflow_template_id(workflow_template.id)]
        return item

    def list(
        self,
        page: int = 1,
        count: int = 20,
        name: Optional[str] = None,
        tag_ids: Optional[List[int]] = None
    ) -> Dict[str, Any]:
        page = max(1, page)
        count = max(1, count)
        rows, total = self.workflow_templates.get_all_with_pagination(
            offset=(page - 1) * count, limit=count, name=name, tag_ids=tag_ids
        )
        return {
            "data": [self._with_last_change(row) for row in rows],
            "pagination": {"total": total, "page": page, "perPage": count},
        }

    def search_by_schema(self, search: str, page: int = 1, count: int = 20) -> Dict[str, Any]:
        """
        Workflow templates whose task, document, gateway or event schemas
        contain `search`. Each row carries `matches`, the excerpts found.

        Raises:
            InvalidDataError: If the search text is empty
        """
        if not search or not search.strip():
            raise InvalidDataError("Search text is required.")

        page = max(1, page)
        count = max(1, count)
        found, total = self.schema_search.search(search.strip(), offset=(page - 1) * count, limit=count)

        data = []
        for workflow_template, matches in found:
            item = self._with_last_change(workflow_template)
            item["matches"] = matches
            data.append(item)
        return {"data": data, "pagination": {"total": total, "page": page, "perPage": count}}

    def get_short(self) -> List[Dict[str, Any]]:
        return [{"id": id, "name": name} for id, name in self.workflow_templates.get_short()]

    def find_last_workflow_history(self, workflow_template_id: int) -> Optional[WorkflowHistory]:
        return self.histories.find_last_by_workflow_template_id(workflow_template_id)

    def delete_by_id(self, workflow_template_id: int, user: Optional[UserContext] = None) -> None:
        """
        Delete a workflow template and every template it references.

        A template with an invalid BPMN schema has no discoverable dependents,
        so only its own row and its history are deleted.

        Raises:
            NotFoundError: If the workflow template doesn't exist
            ConstraintError: If a workflow was started from it
        """
        self.check_editor_enabled()

        try:
            graph = self.bpmn_workflow.get_bpmn_workflow_references(workflow_template_id)
        except InvalidXmlError:
            logger.warning(
                f"Workflow template {workflow_template_id} has invalid XML, deleting without cascade",
                extra={"workflow_template_id": workflow_template_id}
            )
            graph = None

        try:
            if graph is not None:
                for task_template in graph.task_templates:
                    self.task_templates.delete_by_id(task_template.id)
                for document_template in graph.document_templates:
                    self.document_templates.delete_by_id(document_template.id)
                for gateway_template in graph.gateway_templates:
                    self.gateway_templates.delete_by_id(gateway_template.id)
                for event_template in graph.event_templates:
                    self.event_templates.delete_by_id(event_template.id)

            self.histories.delete_by_workflow_template_id(workflow_template_id)
            self.tag_map.delete_by_workflow_template_id(workflow_template_id)
            self.workflow_templates.delete_by_id(workflow_template_id)
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            logger.warning(
                f"Workflow template {workflow_template_id} is in use: {e.orig}",
                extra={"workflow_template_id": workflow_template_id}
            )
            raise ConstraintError() from e
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Workflow template {workflow_template_id} deleted", extra={"workflow_template_id": workflow_template_id})
        self.container.audit.record("user-deleted-bpmn-workflow", {
            "user": (user or UserContext()).to_meta(),
            "workflowTemplateId": workflow_template_id,
        })

    # ========================================================================
    # TAGS
    # ========================================================================

    def get_tags_by_workflow_template_id(self, workflow_template_id: int) -> List[WorkflowTemplateTag]:
        return self.tags.get_all_by_workflow_template_id(workflow_template_id)

    def set_workflow_template_tags(self, workflow_template_id: int, tag_ids: List[int]) -> List[WorkflowTemplateTag]:
        """
        Replace the tags of a workflow template.

        Raises:
            InvalidDataError: If more than MAX_TAGS_PER_WORKFLOW_TEMPLATE tags are given
            NotFoundError: If the workflow template or one of the tags doesn't exist
        """
        self.check_editor_enabled()

        tag_ids = list(dict.fromkeys(tag_ids))
        if len(tag_ids) > MAX_TAGS_PER_WORKFLOW_TEMPLATE:
            raise InvalidDataError(f"Maximum tags per workflow template is {MAX_TAGS_PER_WORKFLOW_TEMPLATE}.")

        self._get_or_raise(workflow_template_id)
        if len(self.tags.find_by_ids(tag_ids)) != len(tag_ids):
            raise NotFoundError(NotFoundError.Messages.TAG)

        try:
            self.tag_map.delete_by_workflow_template_id(workflow_template_id)
            self.tag_map.insert_many(workflow_template_id, tag_ids)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"Workflow template {workflow_template_id} tagged with {tag_ids}",
            extra={"workflow_template_id": workflow_template_id}
        )
        return self.tags.get_all_by_workflow_template_id(workflow_template_id)

    def create_tag(self, data: Dict[str, Any], user: Optional[UserContext] = None) -> WorkflowTemplateTag:
        """
        Raises:
            AlreadyCommittedError: If a tag with the same name exists
        """
        self.check_editor_enabled()

        if self.tags.find_by_name(data["name"]) is not None:
            raise AlreadyCommittedError(AlreadyCommittedError.Messages.TAG)

        author = (user or UserContext()).user_id or "system"
        data = {key: value for key, value in data.items() if key != "id"}
        data["createdBy"] = author
        data["updatedBy"] = author

        try:
            tag = self.tags.insert(WorkflowTemplateTag.from_dict(data))
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Workflow template tag {tag.id} created", extra={"tag_id": tag.id})
        return tag

    def update_tag(self, tag_id: int, data: Dict[str, Any], user: Optional[UserContext] = None) -> WorkflowTemplateTag:
        """
        Raises:
            NotFoundError: If the tag doesn't exist
            AlreadyCommittedError: If another tag already has the new name
        """
        self.check_editor_enabled()

        if self.tags.find_by_id(tag_id) is None:
            raise NotFoundError(NotFoundError.Messages.TAG)
        if data.get("name") is not None:
            same_name = self.tags.find_by_name(data["name"])
            if same_name is not None and same_name.id != tag_id:
                raise AlreadyCommittedError(AlreadyCommittedError.Messages.TAG)

        # name is required, a null one leaves it unchanged
        data = {key: value for key, value in data.items() if not (key == "name" and value is None)}
        data["updatedBy"] = (user or UserContext()).user_id or "system"

        try:
            tag = self.tags.update(tag_id, data)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Workflow template tag {tag_id} updated", extra={"tag_id": tag_id})
        return tag

    def get_all_tags(
        self,
        page: int = 1,
        count: int = 10,
        short: bool = False,
        search: Optional[str] = None
    ) -> Union[List[Dict[str, Any]], Dict[str, Any]]:
        """Short form: every tag by name, without pagination"""
        if short:
            return [tag.to_short_dict() for tag in self.tags.get_all_ordered_by_name()]

        page = max(1, page)
        count = max(1, count)
        rows, total = self.tags.get_all_with_pagination(offset=(page - 1) * count, limit=count, search=search)
        return {
            "data": [row.to_dict() for row in rows],
            "pagination": {"total": total, "page": page, "perPage": count},
        }

    def get_tag_by_id(self, tag_id: int) -> WorkflowTemplateTag:
        tag = self.tags.find_by_id(tag_id)
        if tag is None:
            raise NotFoundError(NotFoundError.Messages.TAG)
        return tag

    def delete_tag(self, tag_id: int) -> None:
        """Delete a tag and detach it from every workflow template"""
        self.check_editor_enabled()
        self.get_tag_by_id(tag_id)

        try:
            self.tag_map.delete_by_tag_id(tag_id)
            self.tags.delete_by_id(tag_id)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Workflow template tag {tag_id} deleted", extra={"tag_id": tag_id})

    # ========================================================================
    # ERRORS SUBSCRIBERS
    # ========================================================================

    def _get_or_raise(self, workflow_template_id: int) -> WorkflowTemplate:
        workflow_template = self.workflow_templates.find_by_id(workflow_template_id)
        if workflow_template is None:
            raise NotFoundError(NotFoundError.Messages.WORKFLOW_TEMPLATE)
        return workflow_template

    def _set_errors_subscribers(self, workflow_template: WorkflowTemplate, subscribers: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        try:
            workflow_template.errors_subscribers = subscribers
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return subscribers

    def subscribe_on_errors(self, workflow_template_id: int, user_id: str, email: str) -> List[Dict[str, Any]]:
        """
        Raises:
            InvalidDataError: If the user or the e-mail is already subscribed
        """
        workflow_template = self._get_or_raise(workflow_template_id)
        subscribers = list(workflow_template.errors_subscribers or [])

        if any(subscriber.get("id") == user_id for subscriber in subscribers):
            raise InvalidDataError("User already subscribed on workflow errors.")
        if any(subscriber.get("email") == email for subscriber in subscribers):
            raise InvalidDataError("Email already subscribed on workflow errors.")

        logger.info(f"User {user_id} subscribed on errors of workflow template {workflow_template_id}")
        return self._set_errors_subscribers(workflow_template, subscribers + [{"id": user_id, "email": email}])

    def unsubscribe_from_errors(self, workflow_template_id: int, user_id: str) -> List[Dict[str, Any]]:
        """
        Raises:
            InvalidDataError: If the user isn't subscribed
        """
        workflow_template = self._get_or_raise(workflow_template_id)
        subscribers = list(workflow_template.errors_subscribers or [])

        if not any(subscriber.get("id") == user_id for subscriber in subscribers):
            raise InvalidDataError("User didn't subscribe on workflow errors. Can't unsubscribe.")

        logger.info(f"User {user_id} unsubscribed from errors of workflow template {workflow_template_id}")
        return self._set_errors_subscribers(
            workflow_template, [subscriber for subscriber in subscribers if subscriber.get("id") != user_id]
        )
