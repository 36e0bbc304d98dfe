"""
Workflow template search by schema content

A workflow template matches when the JSON schema of a task, document,
gateway or event template one of its BPMN nodes points at (or a document's
additional data to sign) contains the search text, ignoring case. Each hit
is reported as an excerpt around its first occurrence:

    Task 123002 Approve ...", "label": "Ref to 123045 in descri...

Node IDs are read from the raw XML (id, sourceRef and targetRef attributes
of the form "task-<id>"), so a template whose schema no longer parses can
still be found.
"""

import json
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from ..models import WorkflowTemplate
from ..repositories import (
    WorkflowTemplateRepository,
    TaskTemplateRepository,
    DocumentTemplateRepository,
    GatewayTemplateRepository,
    EventTemplateRepository,
)

logger = logging.getLogger(__name__)

_NODE_ID = re.compile(r'\b(?:id|sourceRef|targetRef)="(task|gateway|event)-(\d+)', re.IGNORECASE)

EXCERPT_MARGIN = 20


def excerpt(text: str, search: str) -> str:
    """Text around the first case-insensitive occurrence of `search`"""
    position = text.lower().find(search.lower())
    if position < 0:
        return ""
    start = max(0, position - EXCERPT_MARGIN)
    return text[start:position + len(search) + EXCERPT_MARGIN]


def node_template_ids(xml_bpmn_schema: Optional[str]) -> Dict[str, List[int]]:
    """{"task": [...], "gateway": [...], "event": [...]} in document order, deduplicated"""
    result: Dict[str, List[int]] = {"task": [], "gateway": [], "event": []}
    for kind, template_id in _NODE_ID.findall(xml_bpmn_schema or ""):
        ids = result[kind.lower()]
        template_id = int(template_id)
        if template_id and template_id not in ids:
            ids.append(template_id)
    return result


def _schema_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


class SchemaSearch:

    def __init__(self, db: Session):
        self.db = db
        self.workflow_templates = WorkflowTemplateRepository(db)
        self.task_templates = TaskTemplateRepository(db)
        self.document_templates = DocumentTemplateRepository(db)
        self.gateway_templates = GatewayTemplateRepository(db)
        self.event_templates = EventTemplateRepository(db)

    def find_matches(self, workflow_template: WorkflowTemplate, search: str) -> List[str]:
        """Excerpts of every template schema of the workflow template containing `search`"""
        needle = search.lower()
        matches: List[str] = []

        def check(label: str, template_id: int, name: Optional[str], text: str) -> None:
            if needle in text.lower():
                matches.append(f"{label} {template_id} {name or ''} ...{excerpt(text, search)}...")

        ids = node_template_ids(workflow_template.xml_bpmn_schema)

        for event_id in ids["event"]:
            event_template = self.event_templates.find_by_id(event_id)
            if event_template is not None:
                check("Event", event_template.id, event_template.name, _schema_text(event_template.json_schema))

        for task_id in ids["task"]:
            task_template = self.task_templates.find_by_id(task_id)
            if task_template is None:
                continue
            check("Task", task_template.id, task_template.name, _schema_text(task_template.json_schema))

            document_template = self.document_templates.find_by_id(task_template.document_template_id)
            if document_template is not None:
                check("Document", document_template.id, document_template.name, _schema_text(document_template.json_schema))
                check(
                    "Document", document_template.id, document_template.name,
                    _schema_text(document_template.additional_data_to_sign)
                )

        for gateway_id in ids["gateway"]:
            gateway_template = self.gateway_templates.find_by_id(gateway_id)
            if gateway_template is not None:
                check("Gateway", gateway_template.id, gateway_template.name, _schema_text(gateway_template.json_schema))

        return matches

    def search(self, search: str, offset: int = 0, limit: int = 20) -> Tuple[List[Tuple[WorkflowTemplate, List[str]]], int]:
        """
        Matching workflow templates by ID with their excerpts.

        Returns:
            (page of (workflow template, excerpts), total number of matches)
        """
        found = []
        for workflow_template in self.workflow_templates.find_all():
            matches = self.find_matches(workflow_template, search)
            if matches:
                found.append((workflow_template, matches))

        logger.info(
            f"Schema search matched {len(found)} workflow template(s)",
            extra={"search": search, "matched": len(found)}
        )
        return found[offset:offset + limit], len(found)
