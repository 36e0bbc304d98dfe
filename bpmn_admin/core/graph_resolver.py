"""
BPMN Graph Resolver

Discovers the templates a workflow template is made of. Membership is never
declared: a task/gateway/event template belongs to a workflow template only
because one of its BPMN sequence flows points at `task-<id>`, `gateway-<id>`
or `event-<id>`.

Flow:
1. Load workflow template (NotFoundError if missing)
2. Rewrite legacy bpmn2: prefix to bpmn:
3. Parse XML (InvalidXmlError on failure or missing definitions/process)
4. Collect sourceRef/targetRef of every bpmn:sequenceFlow
5. Fetch referenced templates, skipping zero IDs and missing rows
6. Fetch the document template of every task template
7. Fetch the category (nullable)
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from ..models import (
    WorkflowTemplate,
    WorkflowTemplateCategory,
    TaskTemplate,
    DocumentTemplate,
    GatewayTemplate,
    EventTemplate,
)
from ..repositories import (
    WorkflowTemplateRepository,
    WorkflowTemplateCategoryRepository,
    TaskTemplateRepository,
    DocumentTemplateRepository,
    GatewayTemplateRepository,
    EventTemplateRepository,
)
from .exceptions import NotFoundError, InvalidXmlError
from .xml_converter import XmlJsConverter, XmlConversionError, ATTRIBUTES_KEY

logger = logging.getLogger(__name__)

DEFINITIONS_TAG = "bpmn:definitions"
PROCESS_TAG = "bpmn:process"
SEQUENCE_FLOW_TAG = "bpmn:sequenceFlow"

NODE_REFERENCE = re.compile(r"^(task|gateway|event)-([0-9]+)$", re.IGNORECASE)

# Dependent template collections in snapshot order
TEMPLATE_COLLECTIONS = ("taskTemplates", "documentTemplates", "gatewayTemplates", "eventTemplates")


@dataclass
class BpmnWorkflowGraph:
    """A workflow template together with every template it references"""
    workflow_template: WorkflowTemplate
    workflow_template_category: Optional[WorkflowTemplateCategory] = None
    task_templates: List[TaskTemplate] = field(default_factory=list)
    document_templates: List[DocumentTemplate] = field(default_factory=list)
    gateway_templates: List[GatewayTemplate] = field(default_factory=list)
    event_templates: List[EventTemplate] = field(default_factory=list)

    def template_ids(self) -> Dict[str, List[int]]:
        return {
            "taskTemplates": [t.id for t in self.task_templates],
            "documentTemplates": [t.id for t in self.document_templates],
            "gatewayTemplates": [t.id for t in self.gateway_templates],
            "eventTemplates": [t.id for t in self.event_templates],
        }

    def to_dict(
        self,
        exclude_workflow_fields: Iterable[str] = (),
        exclude_template_fields: Iterable[str] = ()
    ) -> Dict[str, Any]:
        """
        Portable document of the graph (export, history snapshot, staged copy).

        Args:
            exclude_workflow_fields: Keys dropped from the workflow template
            exclude_template_fields: Keys dropped from every dependent template
        """
        exclude_template_fields = tuple(exclude_template_fields)
        category = self.workflow_template_category
        return {
            "workflowTemplate": self.workflow_template.to_dict(exclude=tuple(exclude_workflow_fields)),
            "workflowTemplateCategory": category.to_dict() if category is not None else None,
            "taskTemplates": [t.to_dict(exclude_template_fields) for t in self.task_templates],
            "documentTemplates": [t.to_dict(exclude_template_fields) for t in self.document_templates],
            "gatewayTemplates": [t.to_dict(exclude_template_fields) for t in self.gateway_templates],
            "eventTemplates": [t.to_dict(exclude_template_fields) for t in self.event_templates],
        }


def extract_node_references(bpmn_schema: Any) -> List[str]:
    """
    Ordered, deduplicated, non-empty sourceRef/targetRef values of the first
    process' sequence flows.

    Raises:
        InvalidXmlError: If definitions/process is missing
    """
    definitions = bpmn_schema.get(DEFINITIONS_TAG) if isinstance(bpmn_schema, dict) else None
    processes = definitions.get(PROCESS_TAG) if isinstance(definitions, dict) else None
    if not isinstance(processes, list) or not processes or not processes[0]:
        raise InvalidXmlError()

    process = processes[0]
    references = []
    sequence_flows = process.get(SEQUENCE_FLOW_TAG) if isinstance(process, dict) else None
    if isinstance(sequence_flows, list):
        for sequence_flow in sequence_flows:
            attributes = sequence_flow.get(ATTRIBUTES_KEY, {}) if isinstance(sequence_flow, dict) else {}
            references.append(attributes.get("sourceRef"))
            references.append(attributes.get("targetRef"))

    return [reference for reference in dict.fromkeys(references) if reference]


class GraphResolver:
    """
    Resolves the template graph of a workflow template.

    Used by export, version snapshots, deletion cascade and copy preparation.
    """

    def __init__(self, db: Session, converter: XmlJsConverter):
        self.db = db
        self.converter = converter
        self.workflow_templates = WorkflowTemplateRepository(db)
        self.categories = WorkflowTemplateCategoryRepository(db)
        self.task_templates = TaskTemplateRepository(db)
        self.document_templates = DocumentTemplateRepository(db)
        self.gateway_templates = GatewayTemplateRepository(db)
        self.event_templates = EventTemplateRepository(db)

    def parse(self, xml_bpmn_schema: Optional[str]) -> List[str]:
        """
        Parse a BPMN schema and return its node references.

        Raises:
            InvalidXmlError: If the schema can't be parsed or has no process
        """
        if not isinstance(xml_bpmn_schema, str):
            raise InvalidXmlError()

        try:
            bpmn_schema = self.converter.convert(xml_bpmn_schema.replace("bpmn2:", "bpmn:"))
        except XmlConversionError as e:
            raise InvalidXmlError() from e

        return extract_node_references(bpmn_schema)

    def resolve(self, workflow_template_id: int) -> BpmnWorkflowGraph:
        """
        Resolve the template graph.

        Args:
            workflow_template_id: Workflow template ID

        Returns:
            BpmnWorkflowGraph

        Raises:
            NotFoundError: If the workflow template doesn't exist
            InvalidXmlError: If its BPMN schema is invalid
        """
        workflow_template = self.workflow_templates.find_by_id(workflow_template_id)
        if workflow_template is None:
            raise NotFoundError(NotFoundError.Messages.WORKFLOW_TEMPLATE)

        references = self.parse(workflow_template.xml_bpmn_schema)

        graph = BpmnWorkflowGraph(
            workflow_template=workflow_template,
            workflow_template_category=self.categories.find_by_id(workflow_template.workflow_template_category_id),
        )
        seen = {"task": set(), "document": set(), "gateway": set(), "event": set()}

        for reference in references:
            match = NODE_REFERENCE.match(reference)
            if not match:
                continue

            kind = match.group(1).lower()
            template_id = int(match.group(2))
            # task-0 and friends are editor placeholders
            if not template_id or template_id in seen[kind]:
                continue

            if kind == "task":
                task_template = self.task_templates.find_by_id(template_id)
                if task_template is None:
                    continue
                seen["task"].add(template_id)
                graph.task_templates.append(task_template)

                document_template_id = task_template.document_template_id
                if document_template_id is not None and document_template_id not in seen["document"]:
                    document_template = self.document_templates.find_by_id(document_template_id)
                    if document_template is not None:
                        seen["document"].add(document_template_id)
                        graph.document_templates.append(document_template)

            elif kind == "gateway":
                gateway_template = self.gateway_templates.find_by_id(template_id)
                if gateway_template is None:
                    continue
                seen["gateway"].add(template_id)
                graph.gateway_templates.append(gateway_template)

            else:
                event_template = self.event_templates.find_by_id(template_id)
                if event_template is None:
                    continue
                seen["event"].add(template_id)
                graph.event_templates.append(event_template)

        logger.debug(
            f"Resolved workflow template {workflow_template_id}",
            extra={"workflow_template_id": workflow_template_id, **{k: len(v) for k, v in graph.template_ids().items()}}
        )
        return graph
