import asyncio
import json
import re
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from main import app
from testbridge.core.database import get_database
from testbridge.core.dependencies import get_jira_session
from testbridge.core.session import JiraSession
from testbridge.models.database import Base

# Test database
SQLALCHEMY_DATABASE_URL = "sqlite://"

PROJECT_KEY = "PROJ"
BASE_URL = "https://jira.example.com"

ISSUE_TYPES = [
    {"id": "10001", "name": "Story"},
    {"id": "10100", "name": "Test"},
    {"id": "10101", "name": "Test Set"},
    {"id": "10102", "name": "Test Execution"},
    {"id": "10103", "name": "Test Plan"},
]
PRIORITIES = [{"id": "1", "name": "High"}, {"id": "3", "name": "Medium"}, {"id": "4", "name": "Low"}]
COMPONENTS = [{"id": "200", "name": "Backend"}, {"id": "201", "name": "Frontend"}, {"id": "202", "name": "Billing"}]
VERSIONS = [{"id": "300", "name": "1.0"}, {"id": "301", "name": "1.1"}]
FIELDS = [
    {"id": "summary", "name": "Summary", "schema": {"type": "string", "system": "summary"}},
    {"id": "customfield_10020", "name": "Sprint", "schema": {"type": "array", "items": "string"}},
]
LINK_TYPES = {"issueLinkTypes": [{"id": "1", "name": "Tests"}, {"id": "2", "name": "Relates"}]}


def _field(key, name, schema_type, items=None, required=False, **extra):
    schema = {"type": schema_type}
    if items:
        schema["items"] = items
    return {"fieldId": key, "name": name, "required": required, "schema": schema, **extra}


def _base_fields():
    return [
        _field("summary", "Summary", "string", required=True),
        _field("issuetype", "Issue Type", "issuetype", required=True),
        _field("project", "Project", "project", required=True),
        _field("description", "Description", "string"),
        _field("priority", "Priority", "priority", hasDefaultValue=True),
        _field("labels", "Labels", "array", items="string"),
    ]


def default_create_meta() -> Dict[str, List[Dict[str, Any]]]:
    return {
        "10100": _base_fields() + [
            _field("components", "Component/s", "array", items="component"),
            _field("fixVersions", "Fix Version/s", "array", items="version"),
            _field(
                "customfield_13900", "Test Type", "option", required=True,
                allowedValues=[{"id": "1", "value": "Manual"}, {"id": "2", "value": "Automated"}],
            ),
            _field("customfield_12425", "Environments", "array", items="string"),
            _field("duedate", "Due Date", "date"),
        ],
        "10101": _base_fields() + [
            _field("components", "Component/s", "array", items="component"),
        ],
        "10102": _base_fields() + [
            _field("fixVersions", "Fix Version/s", "array", items="version"),
            _field("customfield_12425", "Environments", "array", items="string"),
        ],
    }


Predicate = Callable[[str, str, Any], bool]


class FakeJira:
    """In-process JIRA/Xray double served through ``httpx.MockTransport``"""

    def __init__(self):
        self.requests: List[Tuple[str, str, Any]] = []
        self.create_meta = default_create_meta()
        self.issues: Dict[str, Dict[str, Any]] = {
            "PROJ-1": {"key": "PROJ-1", "fields": {"summary": "User can log in", "issuetype": {"name": "Story"}}},
            "PROJ-2": {"key": "PROJ-2", "fields": {"summary": "Release plan", "issuetype": {"name": "Test Plan"}}},
        }
        self.next_issue_number = 100
        self.delay = 0.0
        self.in_flight = 0
        self.peak = 0
        self._rejections: List[Tuple[Predicate, int, Any]] = []

    def reject(self, predicate: Predicate, status_code: int = 500, body: Any = None) -> None:
        """Answer matching requests with an error response"""
        self._rejections.append((predicate, status_code, body or {"errorMessages": ["Internal server error"]}))

    def calls(self, method: Optional[str] = None, path: str = "") -> List[Tuple[str, str, Any]]:
        return [
            request for request in self.requests
            if (method is None or request[0] == method) and request[1].startswith(path)
        ]

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    async def handle(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else None
        method, path = request.method, request.url.path
        self.requests.append((method, path, body))
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            for predicate, status_code, payload in self._rejections:
                if predicate(method, path, body):
                    if isinstance(payload, str):
                        return httpx.Response(status_code, text=payload, headers={"content-type": "text/html"})
                    return httpx.Response(status_code, json=payload)
            return self._route(method, path, body, request.url.params)
        finally:
            self.in_flight -= 1

    def _route(self, method: str, path: str, body: Any, params) -> httpx.Response:
        api = "/rest/api/2"
        xray = "/rest/raven/1.0/api"

        if method == "GET" and path == f"{api}/issuetype":
            return httpx.Response(200, json=ISSUE_TYPES)
        if method == "GET" and path == f"{api}/priority":
            return httpx.Response(200, json=PRIORITIES)
        if method == "GET" and path == f"{api}/project/{PROJECT_KEY}/components":
            return httpx.Response(200, json=COMPONENTS)
        if method == "GET" and path == f"{api}/project/{PROJECT_KEY}/versions":
            return httpx.Response(200, json=VERSIONS)
        if method == "GET" and path == f"{api}/project/{PROJECT_KEY}":
            return httpx.Response(200, json={"id": "10000", "key": PROJECT_KEY, "name": "Project"})
        if method == "GET" and path == f"{api}/field":
            return httpx.Response(200, json=FIELDS)
        if method == "GET" and path == f"{api}/issueLinkType":
            return httpx.Response(200, json=LINK_TYPES)

        match = re.fullmatch(rf"{api}/issue/createmeta/{PROJECT_KEY}/issuetypes/(\d+)", path)
        if method == "GET" and match:
            values = self.create_meta.get(match.group(1))
            if values is None:
                return httpx.Response(404, json={"errorMessages": ["Issue type not found"]})
            return httpx.Response(200, json={"values": values, "total": len(values)})

        if method == "POST" and path == f"{api}/issue":
            return self._create_issue(body["fields"])

        match = re.fullmatch(rf"{api}/issue/([A-Z]+-\d+)", path)
        if match:
            issue = self.issues.get(match.group(1))
            if issue is None:
                return httpx.Response(404, json={"errorMessages": ["Issue Does Not Exist"]})
            if method == "GET":
                return httpx.Response(200, json=issue)
            if method == "PUT":
                return httpx.Response(204)

        if method == "POST" and path == f"{api}/issueLink":
            return httpx.Response(201)
        if method == "GET" and path == f"{api}/search":
            keys = [key for key, issue in self.issues.items() if issue["fields"]["issuetype"]["name"] == "Test"]
            return httpx.Response(200, json={"issues": [
                {"key": key, "fields": {"summary": self.issues[key]["fields"]["summary"]}} for key in keys
            ]})

        if re.fullmatch(rf"{xray}/test/[A-Z]+-\d+/step", path):
            return httpx.Response(200, json=[] if method == "GET" else {})
        if path == f"{xray}/testcoverage" and method == "PUT":
            return httpx.Response(200)

        return httpx.Response(404, json={"errorMessages": [f"No route for {method} {path}"]})

    def _create_issue(self, fields: Dict[str, Any]) -> httpx.Response:
        type_names = {item["id"]: item["name"] for item in ISSUE_TYPES}
        key = f"{PROJECT_KEY}-{self.next_issue_number}"
        issue_id = str(10000 + self.next_issue_number)
        self.next_issue_number += 1
        self.issues[key] = {
            "key": key,
            "fields": {
                "summary": fields.get("summary", ""),
                "issuetype": {"name": type_names.get(fields["issuetype"]["id"], "Unknown")},
            },
        }
        return httpx.Response(201, json={"id": issue_id, "key": key, "self": f"{BASE_URL}/rest/api/2/issue/{issue_id}"})


@pytest.fixture
def fake_jira():
    return FakeJira()


@pytest.fixture
def jira_session(fake_jira):
    """JIRA session wired to the fake; metadata is not loaded yet"""
    return JiraSession(
        base_url=BASE_URL,
        project_key=PROJECT_KEY,
        auth_token="dXNlcjp0b2tlbg==",
        username="qa.user",
        preload_issue_types=["Test", "Test Set", "Test Execution"],
        transport=fake_jira.transport(),
    )


@pytest.fixture
def db_engine():
    engine = create_engine(
        SQLALCHEMY_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(db_engine):
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def test_client(db_engine, jira_session):
    """Synchronous test client against the fake JIRA and an in-memory database"""
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    async def override_get_jira_session():
        await jira_session.initialize_metadata()
        return jira_session

    app.dependency_overrides[get_database] = override_get_db
    app.dependency_overrides[get_jira_session] = override_get_jira_session
    yield TestClient(app)
    app.dependency_overrides.clear()
