"""
Tests for the two-step workflow template copy

Tests cover:
- prepare_copy: staged graph, diffs to review, TTL
- commit_copy: rewritten IDs, XML node references, schemas and names
- Excluded diffs left unrewritten
- Initial 1.0.0 history row and staged entry consumption
- Expired/unknown tokens, ID ceiling and ID collision retry
"""

import json
import pytest
from unittest.mock import patch

from bpmn_admin.core.bpmn_workflow import BpmnWorkflowBusiness
from bpmn_admin.core.copy_engine import CopyEngine, rewrite_bpmn_schema
from bpmn_admin.core.exceptions import IdAllocationError, NotFoundError, StagedCopyNotFoundError
from bpmn_admin.core.staging_cache import staged_copy_key
from bpmn_admin.core.versioning import UserContext
from bpmn_admin.models import (
    WorkflowHistory,
    WorkflowTemplate,
    TaskTemplate,
    DocumentTemplate,
    GatewayTemplate,
    EventTemplate,
)


@pytest.fixture
def business(db_session, container):
    return BpmnWorkflowBusiness(db_session, container)


@pytest.fixture
def copy_target(db_session, seeded_workflow):
    """Template 455 makes 456 the next free workflow template ID"""
    db_session.add(WorkflowTemplate(id=455, name="Placeholder"))
    db_session.commit()
    return 456


@pytest.fixture
def user():
    return UserContext(user_id="alice", name="Alice", x_forwarded_for="10.0.0.1")


# ============================================================================
# BPMN SCHEMA
# ============================================================================

@pytest.mark.unit
def test_rewrite_bpmn_schema():
    """Test node references move to the new workflow template ID"""
    xml = '<a sourceRef="task-123002" targetRef="Gateway-123003"/><b id="event-123004"/><c ref="task-999999"/>'

    rewritten = rewrite_bpmn_schema(xml, 123, 456)

    assert 'sourceRef="task-456002"' in rewritten
    assert 'targetRef="gateway-456003"' in rewritten
    assert 'id="event-456004"' in rewritten
    assert 'ref="task-999999"' in rewritten
    assert rewrite_bpmn_schema(None, 123, 456) is None


# ============================================================================
# PREPARE
# ============================================================================

@pytest.mark.integration
def test_prepare_copy_returns_diffs(business, fake_redis, seeded_workflow, copy_target):
    """Test free-text references become diffs, structural ones don't"""
    prepared = business.prepare_copy(123)

    assert len(prepared["requestToken"]) == 32
    assert prepared["diffCount"] == 2
    assert [(diff["type"], diff["templateId"]) for diff in prepared["diffs"]] == [
        ("taskTemplate", 123002),
        ("documentTemplate", 123001),
    ]
    assert "Ref to 456045" in prepared["diffs"][0]["afterReplacing"]
    assert "https://example.com/docs/456001" in prepared["diffs"][1]["afterReplacing"]


@pytest.mark.integration
def test_prepare_copy_stages_graph(business, fake_redis, container, seeded_workflow, copy_target):
    """Test the staged entry holds the graph and diffs, with the TTL"""
    prepared = business.prepare_copy(123)
    key = staged_copy_key(123, prepared["requestToken"])

    staged = json.loads(fake_redis.data[key])

    assert fake_redis.ttls[key] == container.settings.copy_staging_ttl
    assert staged["workflowTemplate"]["id"] == 123
    assert "errorsSubscribers" not in staged["workflowTemplate"]
    assert "createdAt" not in staged["workflowTemplate"]
    assert "workflowTemplateCategory" not in staged
    assert "jsonSchemaRaw" not in staged["documentTemplates"][0]
    assert [diff["id"] for diff in staged["diffs"]] == [diff["id"] for diff in prepared["diffs"]]


@pytest.mark.integration
def test_prepare_copy_not_found(business):
    """Test preparing a copy of a missing template raises NotFoundError"""
    with pytest.raises(NotFoundError):
        business.prepare_copy(404)


# ============================================================================
# COMMIT
# ============================================================================

@pytest.mark.integration
def test_copy_rewrites_graph(business, db_session, seeded_workflow, copy_target, user):
    """Test the copy gets new IDs everywhere"""
    prepared = business.prepare_copy(123)

    result = business.copy(123, prepared["requestToken"], [], user=user)

    assert result == {"newWorkflowTemplateId": 456}

    workflow_template = db_session.get(WorkflowTemplate, 456)
    assert workflow_template.name == "Копія - Vacation request"
    assert workflow_template.description == "Копія - Request and approve a vacation"
    assert workflow_template.workflow_template_category_id == 1
    assert workflow_template.data == {"numberTemplateId": 7, "startTaskTemplateId": 456002}
    assert workflow_template.errors_subscribers == []
    assert "task-456002" in workflow_template.xml_bpmn_schema
    assert "gateway-456003" in workflow_template.xml_bpmn_schema
    assert "event-456004" in workflow_template.xml_bpmn_schema
    assert "task-123002" not in workflow_template.xml_bpmn_schema
    assert "task-999999" in workflow_template.xml_bpmn_schema

    task_template = db_session.get(TaskTemplate, 456002)
    assert task_template.document_template_id == 456001
    assert task_template.json_schema["documentTemplateId"] == 456001
    assert task_template.json_schema["label"] == "Ref to 456045 in description"

    document_template = db_session.get(DocumentTemplate, 456001)
    assert document_template.json_schema["link"] == "https://example.com/docs/456001"
    assert document_template.json_schema_raw is None

    gateway_template = db_session.get(GatewayTemplate, 456003)
    assert gateway_template.json_schema["formula"] == "(documents) => documents.documentTemplateId === 456001"

    assert db_session.get(EventTemplate, 456004) is not None


@pytest.mark.integration
def test_copy_leaves_source_untouched(business, db_session, seeded_workflow, copy_target):
    """Test the source graph is unchanged by a copy"""
    prepared = business.prepare_copy(123)
    business.copy(123, prepared["requestToken"])

    db_session.expire_all()
    assert db_session.get(WorkflowTemplate, 123).name == "Vacation request"
    assert db_session.get(TaskTemplate, 123002).json_schema["label"] == "Ref to 123045 in description"
    assert db_session.get(WorkflowTemplate, 123).errors_subscribers == [{"id": "u-1", "email": "hr@example.com"}]


@pytest.mark.integration
def test_copy_resolves_as_a_graph(business, seeded_workflow, copy_target):
    """Test the copy's XML references its own templates"""
    prepared = business.prepare_copy(123)
    business.copy(123, prepared["requestToken"])

    graph = business.get_bpmn_workflow_references(456)

    assert graph.template_ids() == {
        "taskTemplates": [456002],
        "documentTemplates": [456001],
        "gatewayTemplates": [456003],
        "eventTemplates": [456004],
    }


@pytest.mark.integration
def test_copy_excluded_diffs(business, db_session, seeded_workflow, copy_target):
    """Test excluded diffs keep the old ID, others are rewritten"""
    prepared = business.prepare_copy(123)
    task_diff = prepared["diffs"][0]

    business.copy(123, prepared["requestToken"], [task_diff["id"]])

    task_template = db_session.get(TaskTemplate, 456002)
    assert task_template.json_schema["label"] == "Ref to 123045 in description"
    # Structural references are rewritten regardless
    assert task_template.json_schema["documentTemplateId"] == 456001
    assert db_session.get(DocumentTemplate, 456001).json_schema["link"] == "https://example.com/docs/456001"


@pytest.mark.integration
def test_copy_records_initial_version(business, db_session, container, seeded_workflow, copy_target, user):
    """Test the copy starts its history at 1.0.0"""
    prepared = business.prepare_copy(123)
    business.copy(123, prepared["requestToken"], user=user)

    rows = db_session.query(WorkflowHistory).filter(WorkflowHistory.workflow_template_id == 456).all()
    assert len(rows) == 1
    assert rows[0].version == "1.0.0"
    assert rows[0].is_current_version is True
    assert rows[0].user_id == "alice"
    assert rows[0].data["workflowTemplate"]["id"] == 456
    assert [t["id"] for t in rows[0].data["taskTemplates"]] == [456002]

    container.audit.record.assert_called_once_with("user-copied-bpmn-workflow", {
        "user": user.to_meta(),
        "fromTemplateId": 123,
        "toTemplateId": 456,
    })


@pytest.mark.integration
def test_copy_consumes_staged_entry(business, fake_redis, seeded_workflow, copy_target):
    """Test a token can be committed only once"""
    prepared = business.prepare_copy(123)
    business.copy(123, prepared["requestToken"])

    assert staged_copy_key(123, prepared["requestToken"]) not in fake_redis.data
    with pytest.raises(StagedCopyNotFoundError):
        business.copy(123, prepared["requestToken"])


@pytest.mark.integration
def test_copy_unknown_token(business, seeded_workflow):
    """Test an expired or unknown token raises StagedCopyNotFoundError"""
    with pytest.raises(StagedCopyNotFoundError):
        business.copy(123, "0" * 32)


@pytest.mark.integration
def test_copy_token_bound_to_source(business, seeded_workflow, copy_target):
    """Test a token prepared for one template can't commit another"""
    prepared = business.prepare_copy(123)

    with pytest.raises(StagedCopyNotFoundError):
        business.copy(455, prepared["requestToken"])


@pytest.mark.integration
def test_copy_allocates_at_commit(business, db_session, seeded_workflow, copy_target):
    """Test the ID is read again at commit, not taken from the preview"""
    prepared = business.prepare_copy(123)
    db_session.add(WorkflowTemplate(id=456, name="Created meanwhile"))
    db_session.commit()

    result = business.copy(123, prepared["requestToken"])

    assert result == {"newWorkflowTemplateId": 457}
    assert db_session.get(TaskTemplate, 457002) is not None


@pytest.mark.integration
def test_copy_above_ceiling(db_session, make_container, fake_redis, seeded_workflow, copy_target):
    """Test the copy fails when the next ID exceeds the maximum"""
    business = BpmnWorkflowBusiness(db_session, make_container(max_workflow_template_id=455))
    prepared = business.prepare_copy(123)

    with pytest.raises(IdAllocationError):
        business.copy(123, prepared["requestToken"])

    # Kept for a retry
    assert staged_copy_key(123, prepared["requestToken"]) in fake_redis.data
    assert db_session.get(WorkflowTemplate, 456) is None


@pytest.mark.integration
def test_copy_retries_on_id_collision(business, db_session, seeded_workflow, copy_target):
    """Test a concurrently taken ID is retried with a fresh one"""
    prepared = business.prepare_copy(123)
    db_session.expunge_all()

    with patch.object(CopyEngine, "next_workflow_template_id", side_effect=[455, 456]):
        result = business.copy(123, prepared["requestToken"])

    assert result == {"newWorkflowTemplateId": 456}
    assert db_session.get(WorkflowTemplate, 455).name == "Placeholder"
    assert db_session.get(TaskTemplate, 456002) is not None
    assert db_session.get(TaskTemplate, 455002) is None


@pytest.mark.integration
def test_copy_gives_up_after_attempts(business, db_session, fake_redis, seeded_workflow, copy_target):
    """Test IdAllocationError after every attempt collided"""
    prepared = business.prepare_copy(123)
    db_session.expunge_all()

    with patch.object(CopyEngine, "next_workflow_template_id", return_value=455):
        with pytest.raises(IdAllocationError):
            business.copy(123, prepared["requestToken"])

    assert staged_copy_key(123, prepared["requestToken"]) in fake_redis.data
    assert db_session.get(TaskTemplate, 455002) is None
