"""
Integration Tests for the REST API

These tests drive complete flows through FastAPI with an in-memory database:
- Workflow template CRUD with the Last-Workflow-History-Id header
- Listing filters, short list and schema search
- Tags
- Versions (save, list, fetch)
- Export → import round trip
- Two-step copy (prepare, review diffs, commit)
- Error envelope {"error", "status_code", "details"}
"""

import pytest
from fastapi.testclient import TestClient

from bpmn_admin.api.main import app, get_container, get_db, LAST_WORKFLOW_HISTORY_HEADER
from bpmn_admin.models import WorkflowTemplate


@pytest.fixture
def client(db_session, container):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_container] = lambda: container

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


ALICE = {"X-User-Id": "alice", "X-User-Name": "Alice", "X-Forwarded-For": "10.0.0.1"}


# ============================================================================
# HEALTH
# ============================================================================

@pytest.mark.integration
def test_health(client):
    """Test health check and request ID header"""
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.headers["X-Request-ID"]


# ============================================================================
# WORKFLOW TEMPLATES
# ============================================================================

@pytest.mark.integration
def test_create_and_get_workflow(client, seeded_workflow):
    """Test a created template can be fetched"""
    created = client.post("/workflows", json={"name": "Onboarding", "data": {"numberTemplateId": 7}})

    assert created.status_code == 201
    assert created.json()["id"] == 124

    fetched = client.get("/workflows/124")
    assert fetched.status_code == 200
    assert fetched.json()["name"] == "Onboarding"
    assert "errorsSubscribers" not in fetched.json()
    assert LAST_WORKFLOW_HISTORY_HEADER not in fetched.headers


@pytest.mark.integration
def test_create_duplicate_workflow(client, seeded_workflow):
    """Test an existing ID is a conflict"""
    response = client.post("/workflows", json={"id": 123, "name": "Duplicate"})

    assert response.status_code == 409
    assert response.json() == {
        "error": "Workflow template with this ID already exists.",
        "status_code": 409,
        "details": [],
    }


@pytest.mark.integration
def test_get_missing_workflow(client):
    """Test the error envelope of a missing template"""
    response = client.get("/workflows/404")

    assert response.status_code == 404
    assert response.json()["error"] == "Workflow template not found."


@pytest.mark.integration
def test_list_workflows(client, seeded_workflow):
    """Test the list omits XML and carries pagination"""
    response = client.get("/workflows", params={"page": 1, "count": 10})

    body = response.json()
    assert response.status_code == 200
    assert [row["id"] for row in body["data"]] == [123]
    assert "xmlBpmnSchema" not in body["data"][0]
    assert body["pagination"]["total"] == 1


@pytest.mark.integration
def test_list_workflows_last_change_and_filters(client, seeded_workflow):
    """Test rows carry the last editor and the list filters by name and tags"""
    client.put("/workflows/123", json={"name": "Renamed"}, headers=ALICE)
    client.post("/workflows", json={"id": 200, "name": "Onboarding"})
    tag_id = client.post("/workflow-template-tags", json={"name": "HR"}).json()["id"]
    client.put("/workflows/200/tags", json={"tagIds": [tag_id]})

    rows = {row["id"]: row for row in client.get("/workflows").json()["data"]}
    assert rows[123]["updatedBy"] == "alice"
    assert rows[200]["tags"] == [{"id": tag_id, "name": "HR", "color": None, "description": None}]

    by_name = client.get("/workflows", params={"name": "renamed"}).json()
    assert [row["id"] for row in by_name["data"]] == [123]

    by_tag = client.get("/workflows", params=[("tags", tag_id), ("tags", 404)]).json()
    assert [row["id"] for row in by_tag["data"]] == [200]


@pytest.mark.integration
def test_short_workflows(client, seeded_workflow):
    """Test the short list is not taken for a workflow ID"""
    response = client.get("/workflows/short")

    assert response.status_code == 200
    assert response.json() == {"data": [{"id": 123, "name": "Vacation request"}]}


@pytest.mark.integration
def test_search_workflows(client, seeded_workflow):
    """Test schema search returns matching templates with excerpts"""
    response = client.get("/workflows/search", params={"search": "123045"})

    body = response.json()
    assert response.status_code == 200
    assert [row["id"] for row in body["data"]] == [123]
    assert body["data"][0]["matches"][0].startswith("Task 123002")
    assert body["pagination"]["total"] == 1

    assert client.get("/workflows/search").status_code == 422


@pytest.mark.integration
def test_update_flow_with_header(client, seeded_workflow):
    """Test the header round trip and the stale header conflict"""
    first = client.put("/workflows/123", json={"name": "Renamed"}, headers=ALICE)
    assert first.status_code == 200
    assert first.json()["name"] == "Renamed"
    last_workflow_history_id = first.headers[LAST_WORKFLOW_HISTORY_HEADER]

    fetched = client.get("/workflows/123")
    assert fetched.headers[LAST_WORKFLOW_HISTORY_HEADER] == last_workflow_history_id
    assert fetched.json()["lastWorkflowHistory"]["version"] == "1.0.0"

    second = client.put(
        "/workflows/123",
        json={"name": "Renamed again"},
        headers={**ALICE, LAST_WORKFLOW_HISTORY_HEADER: last_workflow_history_id},
    )
    assert second.status_code == 200

    stale = client.put(
        "/workflows/123",
        json={"name": "Lost update"},
        headers={**ALICE, LAST_WORKFLOW_HISTORY_HEADER: "0"},
    )
    assert stale.status_code == 409
    assert stale.json()["error"] == "Header Last-Workflow-History-Id expired."
    assert stale.json()["details"][0]["lastWorkflowHistory"]["userId"] == "alice"
    assert client.get("/workflows/123").json()["name"] == "Renamed again"


@pytest.mark.integration
def test_delete_workflow(client, db_session, seeded_workflow):
    """Test delete cascades and the template is gone"""
    response = client.delete("/workflows/123", headers=ALICE)

    assert response.status_code == 202
    assert client.get("/workflows/123").status_code == 404


@pytest.mark.integration
def test_errors_subscribers(client, seeded_workflow):
    """Test subscribing requires a user and rejects duplicates"""
    anonymous = client.post("/workflows/123/errors-subscribers", json={"email": "ops@example.com"})
    assert anonymous.status_code == 401
    assert anonymous.json()["error"] == "X-User-Id header is required"

    subscribed = client.post("/workflows/123/errors-subscribers", json={"email": "ops@example.com"}, headers=ALICE)
    assert subscribed.status_code == 200
    assert {"id": "alice", "email": "ops@example.com"} in subscribed.json()["errorsSubscribers"]

    again = client.post("/workflows/123/errors-subscribers", json={"email": "ops2@example.com"}, headers=ALICE)
    assert again.status_code == 400
    assert again.json()["error"] == "User already subscribed on workflow errors."

    unsubscribed = client.delete("/workflows/123/errors-subscribers", headers=ALICE)
    assert unsubscribed.status_code == 200
    assert unsubscribed.json()["errorsSubscribers"] == [{"id": "u-1", "email": "hr@example.com"}]


# ============================================================================
# TAGS
# ============================================================================

@pytest.mark.integration
def test_tag_crud(client):
    """Test create, fetch, update, list and delete of a tag"""
    created = client.post("/workflow-template-tags", json={"name": "HR", "color": "#1E88E5"}, headers=ALICE)
    assert created.status_code == 201
    tag_id = created.json()["id"]
    assert created.json()["createdBy"] == "alice"

    duplicate = client.post("/workflow-template-tags", json={"name": "HR"})
    assert duplicate.status_code == 409
    assert duplicate.json()["error"] == "Workflow template tag with this name already exists."

    updated = client.put(f"/workflow-template-tags/{tag_id}", json={"description": "People"})
    assert updated.status_code == 200
    assert updated.json()["description"] == "People"
    assert updated.json()["name"] == "HR"

    assert client.get(f"/workflow-template-tags/{tag_id}").json()["color"] == "#1E88E5"

    listed = client.get("/workflow-template-tags", params={"search": "h"}).json()
    assert [row["id"] for row in listed["data"]] == [tag_id]
    assert listed["pagination"] == {"total": 1, "page": 1, "perPage": 10}

    short = client.get("/workflow-template-tags", params={"short": "true"}).json()
    assert short == {"data": [{"id": tag_id, "name": "HR", "color": "#1E88E5", "description": "People"}]}

    deleted = client.delete(f"/workflow-template-tags/{tag_id}")
    assert deleted.status_code == 200
    assert client.get(f"/workflow-template-tags/{tag_id}").status_code == 404


@pytest.mark.integration
def test_missing_tag(client):
    """Test the error envelope of a missing tag"""
    response = client.put("/workflow-template-tags/404", json={"name": "Ghost"})

    assert response.status_code == 404
    assert response.json() == {"error": "Workflow template tag not found.", "status_code": 404, "details": []}


@pytest.mark.integration
def test_workflow_tags(client, seeded_workflow):
    """Test tags are set on a template, shown with it and capped at 10"""
    tag_ids = [client.post("/workflow-template-tags", json={"name": f"Tag {index:02d}"}).json()["id"] for index in range(11)]

    response = client.put("/workflows/123/tags", json={"tagIds": tag_ids[:2]})
    assert response.status_code == 200
    assert [tag["name"] for tag in response.json()["data"]] == ["Tag 00", "Tag 01"]
    assert [tag["id"] for tag in client.get("/workflows/123").json()["tags"]] == tag_ids[:2]

    too_many = client.put("/workflows/123/tags", json={"tagIds": tag_ids})
    assert too_many.status_code == 400
    assert too_many.json()["error"] == "Maximum tags per workflow template is 10."

    assert client.put("/workflows/404/tags", json={"tagIds": []}).status_code == 404


# ============================================================================
# VERSIONS
# ============================================================================

@pytest.mark.integration
def test_save_and_fetch_versions(client, seeded_workflow):
    """Test saved versions are listed and fetched with their snapshot"""
    first = client.post("/workflows/123/versions", headers=ALICE)
    assert first.status_code == 201
    assert first.json()["version"] == "1.0.0"
    assert first.headers[LAST_WORKFLOW_HISTORY_HEADER] == str(first.json()["id"])

    second = client.post(
        "/workflows/123/versions",
        json={"type": "minor", "name": "Release", "description": "Approved by HR"},
        headers=ALICE,
    )
    assert second.json()["version"] == "1.1.0"
    assert second.json()["name"] == "Release"

    listed = client.get("/workflows/123/versions").json()["data"]
    assert [row["version"] for row in listed] == ["1.1.0", "1.0.0"]
    assert "data" not in listed[0]

    fetched = client.get("/workflows/123/versions/1.1.0")
    assert fetched.status_code == 200
    assert fetched.json()["data"]["workflowTemplate"]["id"] == 123

    missing = client.get("/workflows/123/versions/9.9.9")
    assert missing.status_code == 404
    assert missing.json()["error"] == "Workflow history not found."


@pytest.mark.integration
def test_save_version_invalid_type(client, seeded_workflow):
    """Test unknown bump types are rejected"""
    response = client.post("/workflows/123/versions", json={"type": "huge"})

    assert response.status_code == 422


# ============================================================================
# EXPORT / IMPORT
# ============================================================================

@pytest.mark.integration
def test_export_import_round_trip(client, seeded_workflow):
    """Test an export can be imported back with force and a major version"""
    exported = client.get("/workflows/123/export")
    assert exported.status_code == 200
    assert "attachment" in exported.headers["Content-Disposition"]
    document = exported.json()
    assert "errorsSubscribers" not in document["workflowTemplate"]

    conflict = client.post("/workflows/import", json=document)
    assert conflict.status_code == 409

    imported = client.post(
        "/workflows/import",
        params={"force": "true", "type": "major", "name": "Restore"},
        json=document,
        headers=ALICE,
    )
    assert imported.status_code == 201

    versions = client.get("/workflows/123/versions").json()["data"]
    assert versions[0]["version"] == "1.0.0"
    assert versions[0]["name"] == "Restore"


@pytest.mark.integration
def test_import_reports_problems(client, db_session, seeded_workflow, import_document):
    """Test validation problems come back as details"""
    import_document["taskTemplates"][0]["jsonSchema"] = {"setPermissions": [{"performerUnits": [42]}]}

    response = client.post("/workflows/import", json=import_document)

    assert response.status_code == 400
    assert response.json()["error"] == "Workflow import failed."
    assert response.json()["details"] == ["Unit 42 doesn't exist but exists in task_template_id 777002."]
    assert db_session.get(WorkflowTemplate, 777) is None


@pytest.mark.integration
def test_import_invalid_type(client, import_document):
    """Test only major and minor bumps are accepted on import"""
    response = client.post("/workflows/import", params={"type": "patch"}, json=import_document)

    assert response.status_code == 422


@pytest.mark.integration
def test_export_missing_workflow(client):
    """Test exporting a missing template is a 404"""
    assert client.get("/workflows/404/export").status_code == 404


# ============================================================================
# COPY
# ============================================================================

@pytest.mark.integration
def test_copy_flow(client, db_session, seeded_workflow):
    """Test prepare → review → commit"""
    db_session.add(WorkflowTemplate(id=455, name="Placeholder"))
    db_session.commit()

    prepared = client.post("/workflows/123/copy/prepare")
    assert prepared.status_code == 200
    body = prepared.json()
    assert body["diffCount"] == 2
    task_diff = next(diff for diff in body["diffs"] if diff["type"] == "taskTemplate")

    committed = client.post(
        "/workflows/123/copy",
        json={"requestToken": body["requestToken"], "excludedDiffIds": [task_diff["id"]]},
        headers=ALICE,
    )
    assert committed.status_code == 201
    assert committed.json() == {"newWorkflowTemplateId": 456}

    copied = client.get("/workflows/456")
    assert copied.json()["name"] == "Копія - Vacation request"
    assert copied.json()["lastWorkflowHistory"]["version"] == "1.0.0"

    replayed = client.post("/workflows/123/copy", json={"requestToken": body["requestToken"]})
    assert replayed.status_code == 404


@pytest.mark.integration
def test_copy_invalid_xml(client, db_session):
    """Test preparing a copy of a template with broken XML is a 400"""
    db_session.add(WorkflowTemplate(id=5, name="Broken", xml_bpmn_schema="<bpmn:definitions"))
    db_session.commit()

    response = client.post("/workflows/5/copy/prepare")

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid XML."
