from main import app
from testbridge.core.dependencies import Container, get_container

API = "/api/v1"

NEW_TEST = {
    "test": {
        "summary": "Valid login redirects to dashboard",
        "priority": "3",
        "test_type": "Automated",
        "steps": [{"step": "Log in with valid credentials", "result": "Dashboard is shown"}],
    },
    "story_key": "proj-1",
}


def test_health_check(test_client):
    """Test health check endpoint"""
    response = test_client.get(f"{API}/health/")
    assert response.status_code == 200

    data = response.json()
    assert data["status"] == "healthy"
    assert "timestamp" in data
    assert "version" in data
    assert "environment" in data


def test_readiness_check(test_client):
    """Test readiness check endpoint"""
    response = test_client.get(f"{API}/health/readiness")
    assert response.status_code == 200

    data = response.json()
    assert data["status"] in ("ready", "not_ready")
    assert set(data["checks"]) == {"database", "jira", "metadata"}


def test_field_descriptors_for_issue_type(test_client):
    response = test_client.get(f"{API}/metadata/issue-types/Test/fields")
    assert response.status_code == 200

    body = response.json()
    assert body["success"] is True
    keys = [field["key"] for field in body["data"]]
    assert keys[:4] == ["summary", "issuetype", "project", "customfield_13900"]
    assert "priority" in keys
    assert len(keys) == len(set(keys))


def test_reference_lists(test_client):
    priorities = test_client.get(f"{API}/metadata/priorities").json()["data"]
    assert [p["name"] for p in priorities] == ["High", "Medium", "Low"]

    suggestions = test_client.get(f"{API}/metadata/components/suggest", params={"query": "end"}).json()["data"]
    assert suggestions == ["Backend", "Frontend"]

    link_types = test_client.get(f"{API}/metadata/link-types").json()["data"]
    assert [t["name"] for t in link_types] == ["Tests", "Relates"]


def test_unknown_issue_type_uses_error_envelope(test_client):
    response = test_client.get(f"{API}/metadata/issue-types/Epic/fields")
    assert response.status_code == 404

    body = response.json()
    assert body["success"] is False
    assert body["data"] is None
    assert body["error"]["kind"] == "not_found"
    assert body["error"]["message"] == "Issue type Epic not found"


def test_request_validation_uses_error_envelope(test_client):
    response = test_client.post(f"{API}/records/tests", json={"test": {"summary": "abc", "steps": []}})
    assert response.status_code == 400

    body = response.json()
    assert body["success"] is False
    assert body["error"]["kind"] == "validation_error"
    assert body["error"]["details"]


def test_validate_issues(test_client):
    response = test_client.post(
        f"{API}/issues/validate",
        json={"keys": ["PROJ-1", "PROJ-404", "nope"], "accepted_types": ["Story"]},
    )
    assert response.status_code == 200

    results = response.json()["data"]
    assert results["PROJ-1"]["valid"] is True
    assert results["PROJ-404"]["exists"] is False
    assert results["nope"]["error"] == "Invalid issue key format (expected: ABC-123)"

    single = test_client.get(f"{API}/issues/PROJ-2/validate", params={"accepted_types": ["Story"]}).json()["data"]
    assert single["valid"] is False
    assert single["error"] == "Expected Story, got Test Plan"


def test_create_test(test_client, fake_jira):
    response = test_client.post(f"{API}/records/tests", json=NEW_TEST)
    assert response.status_code == 201

    data = response.json()["data"]
    assert data["key"] == "PROJ-100"
    assert data["state"] == "linked"
    assert data["failed_operations"] == []
    created = fake_jira.calls("POST", "/rest/api/2/issue")[0][2]["fields"]
    assert created["customfield_13900"] == {"value": "Automated"}


def test_create_test_remote_rejection(test_client, fake_jira):
    fake_jira.reject(
        lambda method, path, body: method == "POST" and path == "/rest/api/2/issue",
        status_code=401,
    )

    response = test_client.post(f"{API}/records/tests", json=NEW_TEST)
    assert response.status_code == 401
    assert response.json()["error"] == {"kind": "auth_failed", "message": "Invalid credentials", "details": {
        "errorMessages": ["Internal server error"],
    }}


def test_batch_create_reports_partial_results(test_client, fake_jira):
    fake_jira.reject(
        lambda method, path, body: method == "POST" and path == "/rest/api/2/issue"
        and body["fields"]["summary"] == "Second test fails here",
        status_code=400,
        body={"errorMessages": ["Summary is not unique"]},
    )
    tests = [dict(NEW_TEST["test"], summary=summary) for summary in ("First test passes", "Second test fails here")]

    response = test_client.post(f"{API}/records/tests/batch", json={"tests": tests})
    assert response.status_code == 200

    data = response.json()["data"]
    assert data["created_keys"] == ["PROJ-100"]
    assert data["failed"][0]["index"] == 1
    assert data["failed"][0]["error"]["message"] == "Summary is not unique"


def test_templates_crud(test_client):
    template = {
        "name": "Checkout Test",
        "issue_type": "Test",
        "fields": {"summary": "Checkout - {{scenario}}", "labels": ["checkout"]},
        "variables": [{"name": "scenario", "label": "Scenario", "required": True}],
    }

    created = test_client.post(f"{API}/templates/", json=template)
    assert created.status_code == 201
    template_id = created.json()["data"]["id"]

    listed = test_client.get(f"{API}/templates/", params={"issue_type": "Test"}).json()["data"]
    assert [t["id"] for t in listed] == [template_id]

    applied = test_client.post(
        f"{API}/templates/{template_id}/apply", json={"variable_values": {"scenario": "Gift card"}}
    ).json()["data"]
    assert applied["fields"]["summary"] == "Checkout - Gift card"

    assert test_client.delete(f"{API}/templates/{template_id}").status_code == 200
    missing = test_client.get(f"{API}/templates/{template_id}")
    assert missing.status_code == 404
    assert missing.json()["error"]["kind"] == "not_found"


def test_template_with_reserved_variable_is_rejected(test_client):
    template = {
        "name": "Bad",
        "issue_type": "TestSet",
        "fields": {"summary": "Set {{user}}"},
        "variables": [{"name": "user", "label": "User"}],
    }

    response = test_client.post(f"{API}/templates/", json=template)
    assert response.status_code == 400
    assert response.json()["error"]["message"] == 'Variable name "user" is reserved. Use a different name.'


def test_blank_issue_keys_are_rejected_before_any_remote_call(test_client, fake_jira):
    workflow = {
        "story_key": "   ",
        "tests": [NEW_TEST["test"]],
        "test_execution": {"summary": "Login execution"},
    }
    response = test_client.post(f"{API}/records/workflow", json=workflow)
    assert response.status_code == 400
    assert response.json()["error"]["kind"] == "validation_error"

    test_set = {"test_set": {"summary": "Regression set for 1.1"}, "test_keys": ["PROJ-10", "  "]}
    response = test_client.post(f"{API}/records/test-sets", json=test_set)
    assert response.status_code == 400
    assert response.json()["error"]["kind"] == "validation_error"

    assert fake_jira.calls("POST") == []


def test_session_status_and_reset(test_client, jira_session):
    session_container = Container(jira_session)
    app.dependency_overrides[get_container] = lambda: session_container

    status = test_client.get(f"{API}/session/").json()["data"]
    assert status["connected"] is True
    assert status["base_url"] == "https://jira.example.com"
    assert status["project_key"] == "PROJ"
    assert status["username"] == "qa.user"
    assert status["metadata_loaded"] is False

    reset = test_client.delete(f"{API}/session/")
    assert reset.status_code == 200
    assert reset.json()["data"]["connected"] is False
    assert session_container.active_session is None
    assert test_client.get(f"{API}/session/").json()["data"]["connected"] is False
