"""
Pytest fixtures for BPMN Admin tests

This module provides shared fixtures for all tests:
- Database session fixtures (in-memory SQLite with foreign keys)
- Fake Redis and register service
- Service container wired with the fakes
- BPMN XML builder
- Seeded workflow template graph (workflow 123)
"""

import dataclasses
import pytest
from unittest.mock import Mock
from typing import Iterable, Tuple

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from bpmn_admin.config import Settings
from bpmn_admin.core.audit import AuditLogger
from bpmn_admin.core.container import ServiceContainer
from bpmn_admin.core.sandbox import FunctionLiteralDetector
from bpmn_admin.core.staging_cache import StagedCopyStore
from bpmn_admin.core.xml_converter import XmlJsConverter
from bpmn_admin.models import (
    Base,
    WorkflowTemplate,
    WorkflowTemplateCategory,
    TaskTemplate,
    DocumentTemplate,
    GatewayTemplate,
    EventTemplate,
    NumberTemplate,
    Unit,
)


# ============================================================================
# DATABASE FIXTURES
# ============================================================================

@pytest.fixture(scope="function")
def engine():
    """
    In-memory SQLite engine shared by every connection of the test
    (StaticPool), with foreign keys enforced.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )

    @event.listens_for(engine, "connect")
    def enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(engine)

    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture(scope="function")
def db_session(engine):
    """
    Each test gets a fresh database that's torn down after the test.
    """
    SessionLocal = sessionmaker(bind=engine, autoflush=False)
    session = SessionLocal()

    try:
        yield session
    finally:
        session.close()


# ============================================================================
# FAKE SERVICES
# ============================================================================

class FakeRedis:
    """Just enough of redis.Redis for StagedCopyStore"""

    def __init__(self):
        self.data = {}
        self.ttls = {}

    def set(self, key, value, ex=None):
        self.data[key] = value
        self.ttls[key] = ex
        return True

    def get(self, key):
        return self.data.get(key)

    def delete(self, *keys):
        deleted = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                deleted += 1
            self.ttls.pop(key, None)
        return deleted


class FakeRegisterClient:
    """Register service that knows a fixed set of key IDs"""

    def __init__(self, keys: Iterable[int] = (10, 11)):
        self.keys = set(keys)
        self.calls = []

    def get_keys(self, limit: int = 100000):
        self.calls.append(limit)
        return {"data": [{"id": key_id, "name": f"Register {key_id}"} for key_id in sorted(self.keys)]}


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def register_client():
    return FakeRegisterClient(keys={10, 11})


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def container(settings, fake_redis, register_client):
    """
    Service container with fakes for Redis and the register service and a
    Mock audit sink (assert on container.audit.record).
    """
    return ServiceContainer(
        settings=settings,
        staged_copies=StagedCopyStore(fake_redis, ttl=settings.copy_staging_ttl),
        register_client=register_client,
        function_detector=FunctionLiteralDetector(),
        xml_converter=XmlJsConverter(),
        audit=Mock(spec=AuditLogger),
    )


@pytest.fixture
def make_container(container):
    """Same container with overridden settings: make_container(workflow_editor_disabled=True)"""
    def _make(**overrides):
        return dataclasses.replace(container, settings=dataclasses.replace(container.settings, **overrides))
    return _make


# ============================================================================
# BPMN FIXTURES
# ============================================================================

def build_bpmn_xml(flows: Iterable[Tuple[str, str]], prefix: str = "bpmn") -> str:
    """
    Minimal BPMN document whose first process holds one sequence flow per
    (sourceRef, targetRef) pair.
    """
    sequence_flows = "\n".join(
        f'    <{prefix}:sequenceFlow id="Flow_{index}" sourceRef="{source}" targetRef="{target}" />'
        for index, (source, target) in enumerate(flows, start=1)
    )
    return (
        f'<{prefix}:definitions xmlns:{prefix}="http://www.omg.org/spec/BPMN/20100524/MODEL" '
        f'id="Definitions_1" targetNamespace="http://bpmn.io/schema/bpmn">\n'
        f'  <{prefix}:process id="Process_1" isExecutable="false">\n'
        f'    <{prefix}:startEvent id="StartEvent_1" />\n'
        f'{sequence_flows}\n'
        f'  </{prefix}:process>\n'
        f'</{prefix}:definitions>'
    )


@pytest.fixture
def bpmn_xml():
    return build_bpmn_xml


# event-123004 → task-123002 → gateway-123003, plus placeholders, a dangling
# reference and a duplicate flow
SEEDED_FLOWS = [
    ("StartEvent_1", "event-123004"),
    ("event-123004", "task-123002"),
    ("task-123002", "gateway-123003"),
    ("gateway-123003", "task-999999"),
    ("event-0", "task-123002"),
    ("event-123004", "task-123002"),
]


@pytest.fixture
def seeded_workflow(db_session):
    """
    Workflow template 123 with its graph:
    - category 1, number template 7, unit 1
    - document 123001 (register keyId 10, URL with an ID reference)
    - task 123002 (document 123001, a free-text ID reference, performer unit 1)
    - gateway 123003 (formula comparing documentTemplateId)
    - event 123004 (register keyId 11)
    - errors subscriber u-1
    """
    db_session.add_all([
        WorkflowTemplateCategory(id=1, name="HR"),
        NumberTemplate(id=7, name="Orders", template="HR-{number}"),
        Unit(id=1, name="Human resources"),
    ])
    db_session.flush()

    db_session.add(WorkflowTemplate(
        id=123,
        workflow_template_category_id=1,
        name="Vacation request",
        description="Request and approve a vacation",
        xml_bpmn_schema=build_bpmn_xml(SEEDED_FLOWS),
        data={"numberTemplateId": 7, "startTaskTemplateId": 123002},
        is_active=True,
        access_units=[1],
        errors_subscribers=[{"id": "u-1", "email": "hr@example.com"}],
    ))
    db_session.add(DocumentTemplate(
        id=123001,
        name="Vacation form",
        json_schema={
            "controls": [{"control": "register", "keyId": 10}],
            "link": "https://example.com/docs/123001",
        },
        json_schema_raw='{"controls": []}',
    ))
    db_session.flush()

    db_session.add_all([
        TaskTemplate(
            id=123002,
            name="Fill vacation form",
            document_template_id=123001,
            json_schema={
                "documentTemplateId": 123001,
                "label": "Ref to 123045 in description",
                "setPermissions": [{"performerUnits": [1]}],
            },
        ),
        GatewayTemplate(
            id=123003,
            name="Approved?",
            json_schema={"formula": "(documents) => documents.documentTemplateId === 123001"},
        ),
        EventTemplate(
            id=123004,
            name="Start",
            json_schema={"controls": [{"control": "register", "keyId": 11}]},
        ),
    ])
    db_session.commit()

    return {
        "workflow_template_id": 123,
        "document_template_id": 123001,
        "task_template_id": 123002,
        "gateway_template_id": 123003,
        "event_template_id": 123004,
    }


@pytest.fixture
def import_document():
    """
    Exported workflow template 777 that only references entities the seeded
    environment has (register keys 10/11, unit 1, number template 7).
    """
    return {
        "workflowTemplate": {
            "id": 777,
            "workflowTemplateCategoryId": 2,
            "name": "Business trip",
            "description": "Business trip approval",
            "xmlBpmnSchema": build_bpmn_xml([
                ("StartEvent_1", "event-777004"),
                ("event-777004", "task-777002"),
                ("task-777002", "gateway-777003"),
            ]),
            "data": {"numberTemplateId": 7},
            "isActive": True,
            "accessUnits": [1],
            "createdAt": "2026-01-01T00:00:00",
            "updatedAt": "2026-01-02T00:00:00",
        },
        "workflowTemplateCategory": {"id": 2, "parentId": None, "name": "Travel"},
        "taskTemplates": [{
            "id": 777002,
            "name": "Fill trip form",
            "documentTemplateId": 777001,
            "jsonSchema": {"setPermissions": [{"performerUnits": [1]}]},
        }],
        "documentTemplates": [{
            "id": 777001,
            "name": "Trip form",
            "jsonSchema": {"controls": [{"keyId": 10}, {"keyId": "() => 11", "whiteList": [10, 11]}]},
        }],
        "gatewayTemplates": [{"id": 777003, "name": "Approved?", "jsonSchema": {}}],
        "eventTemplates": [{"id": 777004, "name": "Start", "jsonSchema": {"keyId": "11"}}],
    }


# ============================================================================
# UTILITY FIXTURES
# ============================================================================

@pytest.fixture
def capture_logs(caplog):
    """
    Fixture to capture logs for testing
    """
    import logging
    caplog.set_level(logging.DEBUG)
    return caplog
