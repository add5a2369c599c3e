import re
from typing import Optional, List, Dict, Any
import structlog

from testbridge.core.remote_client import RemoteClient
from testbridge.models.schemas import ISSUE_KEY_PATTERN, TestStepInput, TestSummary
from testbridge.repositories.interfaces.jira_service import IJiraService
from testbridge.config.settings import settings

logger = structlog.get_logger()

API = "/rest/api/2"
XRAY_API = "/rest/raven/1.0/api"
ISSUE_KEY_RE = re.compile(ISSUE_KEY_PATTERN)


def jql_string(value: str) -> str:
    """Quote a value as a JQL string literal"""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


class XrayJiraService(IJiraService):
    """JIRA Server/DC REST v2 + Xray implementation of JIRA service"""

    def __init__(
        self,
        client: RemoteClient,
        project_key: str,
        tests_in_set_field: Optional[str] = None,
        tests_in_execution_field: Optional[str] = None,
        test_plans_field: Optional[str] = None,
    ):
        self.client = client
        self.project_key = project_key
        self.tests_in_set_field = tests_in_set_field or settings.tests_in_set_field
        self.tests_in_execution_field = tests_in_execution_field or settings.tests_in_execution_field
        self.test_plans_field = test_plans_field or settings.test_plans_field

    # ---- issues ----

    async def get_issue(self, issue_key: str, fields: Optional[str] = None) -> Dict[str, Any]:
        params = {"fields": fields} if fields else None
        return await self.client.get(f"{API}/issue/{issue_key}", params=params) or {}

    async def create_issue(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        created = await self.client.post(f"{API}/issue", {"fields": fields}) or {}
        logger.info(
            "JIRA issue created",
            issue_key=created.get("key") if isinstance(created, dict) else None,
            field_count=len(fields),
        )
        return created

    async def update_issue_fields(self, issue_key: str, fields: Dict[str, Any]) -> None:
        await self.client.put(f"{API}/issue/{issue_key}", {"fields": fields})
        logger.info("JIRA issue updated", issue_key=issue_key, fields=list(fields))

    async def link_issues(self, link_type: str, inward_key: str, outward_key: str) -> None:
        await self.client.post(
            f"{API}/issueLink",
            {
                "type": {"name": link_type},
                "inwardIssue": {"key": inward_key},
                "outwardIssue": {"key": outward_key},
            },
        )
        logger.info("JIRA issues linked", link_type=link_type, inward=inward_key, outward=outward_key)

    async def search_tests_by_label(self, label: str) -> List[str]:
        jql = f'project = {self.project_key} AND issuetype = Test AND labels = {jql_string(label)}'
        data = await self.client.get(
            f"{API}/search", params={"jql": jql, "fields": "key", "maxResults": 100}
        ) or {}
        return [issue["key"] for issue in data.get("issues", [])]

    async def get_tests_by_keys(self, keys: List[str]) -> List[TestSummary]:
        keys = [key for key in keys if ISSUE_KEY_RE.match(key)]
        if not keys:
            return []
        jql = f"key in ({','.join(keys)})"
        data = await self.client.get(
            f"{API}/search", params={"jql": jql, "fields": "key,summary", "maxResults": len(keys)}
        ) or {}
        return [
            TestSummary(key=issue["key"], summary=(issue.get("fields") or {}).get("summary", ""))
            for issue in data.get("issues", [])
        ]

    # ---- Xray ----

    async def add_test_step(self, test_key: str, step: TestStepInput) -> None:
        await self.client.put(
            f"{XRAY_API}/test/{test_key}/step",
            {"step": step.step, "data": step.data, "result": step.result},
        )

    async def get_test_steps(self, test_key: str) -> List[Dict[str, Any]]:
        return await self.client.get(f"{XRAY_API}/test/{test_key}/step") or []

    async def add_tests_to_set(self, test_set_key: str, test_keys: List[str]) -> None:
        await self.update_issue_fields(test_set_key, {self.tests_in_set_field: list(test_keys)})

    async def add_tests_to_execution(self, execution_key: str, test_keys: List[str]) -> None:
        await self.update_issue_fields(execution_key, {self.tests_in_execution_field: list(test_keys)})

    async def link_to_test_plan(self, execution_key: str, test_plan_key: str) -> None:
        await self.update_issue_fields(execution_key, {self.test_plans_field: [test_plan_key]})

    async def add_test_coverage(self, test_key: str, story_key: str) -> None:
        await self.client.put(f"{XRAY_API}/testcoverage", {"test": test_key, "add": [story_key]})

    async def remove_test_coverage(self, test_key: str, story_key: str) -> None:
        await self.client.put(f"{XRAY_API}/testcoverage", {"test": test_key, "remove": [story_key]})

    async def get_test_coverage(self, test_key: str) -> List[Any]:
        return await self.client.get(f"{XRAY_API}/test/{test_key}/testcoverage") or []

    # ---- metadata ----

    async def get_issue_types(self) -> List[Dict[str, Any]]:
        return await self.client.get(f"{API}/issuetype") or []

    async def get_all_fields(self) -> List[Dict[str, Any]]:
        return await self.client.get(f"{API}/field") or []

    async def get_create_meta(self, issue_type_id: str) -> Any:
        return await self.client.get(f"{API}/issue/createmeta/{self.project_key}/issuetypes/{issue_type_id}")

    async def get_priorities(self) -> List[Dict[str, Any]]:
        return await self.client.get(f"{API}/priority") or []

    async def get_components(self) -> List[Dict[str, Any]]:
        return await self.client.get(f"{API}/project/{self.project_key}/components") or []

    async def get_versions(self) -> List[Dict[str, Any]]:
        return await self.client.get(f"{API}/project/{self.project_key}/versions") or []

    async def get_issue_link_types(self) -> List[Dict[str, Any]]:
        data = await self.client.get(f"{API}/issueLinkType") or {}
        # Server answers {"issueLinkTypes": [...]}
        if isinstance(data, dict):
            return data.get("issueLinkTypes", [])
        return data

    async def get_project(self, project_key: Optional[str] = None) -> Dict[str, Any]:
        return await self.client.get(f"{API}/project/{project_key or self.project_key}") or {}

    async def get_label_suggestions(self, query: str = "") -> List[Dict[str, Any]]:
        data = await self.client.get("/rest/api/1.0/labels/suggest", params={"query": query}) or {}
        return data.get("suggestions", []) if isinstance(data, dict) else []
