"""Template storage and ``{{variable}}`` interpolation.

Templates hold logical field values (the same names the record inputs use)
that may contain placeholders. Applying a template substitutes user values,
declared defaults and the built-in variables ``date``, ``time``,
``datetime``, ``user`` and ``project``; unknown placeholders are kept as is.
"""
import json
import re
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

import structlog

from testbridge.config.settings import settings
from testbridge.core.errors import ErrorKind, ServiceError, validation_error
from testbridge.models.schemas import (
    AppliedTemplate,
    Template,
    TemplateBase,
    TemplateCreate,
    TemplateIssueType,
    TemplateVariable,
)
from testbridge.repositories.interfaces.template_repository import ITemplateRepository

logger = structlog.get_logger()

VARIABLE_RE = re.compile(r"\{\{(\w+)\}\}")
SCRIPT_RE = re.compile(r"<script[^>]*>.*?</script>", re.IGNORECASE | re.DOTALL)
TAG_RE = re.compile(r"<[^>]+>")
BUILT_IN_VARIABLES = ("date", "time", "datetime", "user", "project")


def sanitize_value(value: str) -> str:
    """Strip script blocks and markup from a substituted value"""
    return TAG_RE.sub("", SCRIPT_RE.sub("", str(value))).strip()


def interpolate(text: str, variables: Dict[str, str]) -> str:
    def replace(match: "re.Match[str]") -> str:
        name = match.group(1)
        if name not in variables:
            return match.group(0)
        return sanitize_value(variables[name])

    return VARIABLE_RE.sub(replace, text)


def interpolate_value(value: Any, variables: Dict[str, str]) -> Any:
    if isinstance(value, str):
        return interpolate(value, variables)
    if isinstance(value, list):
        return [interpolate_value(item, variables) for item in value]
    if isinstance(value, dict):
        return {key: interpolate_value(item, variables) for key, item in value.items()}
    return value


def extract_variables(text: str) -> List[str]:
    return VARIABLE_RE.findall(text)


def uses_variable(template: TemplateBase, name: str) -> bool:
    return f"{{{{{name}}}}}" in json.dumps(template.fields)


def validate_template(template: TemplateBase) -> None:
    if not template.name or not template.name.strip():
        raise validation_error("Template name is required")
    if not template.issue_type:
        raise validation_error("Template issue type is required")
    if not template.fields.get("summary"):
        raise validation_error("Template must have a summary field")

    reserved = {name.lower() for name in BUILT_IN_VARIABLES}
    for variable in template.variables:
        if not variable.name or not variable.label:
            raise validation_error("Each template variable must have a name and label")
        if variable.name.lower() in reserved:
            raise validation_error(f'Variable name "{variable.name}" is reserved. Use a different name.')


class TemplateService:
    def __init__(
        self,
        repository: ITemplateRepository,
        username: Optional[str] = None,
        project_key: Optional[str] = None,
        max_templates: Optional[int] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.repository = repository
        self.username = username or ""
        self.project_key = project_key or ""
        self.max_templates = max_templates if max_templates is not None else settings.max_templates
        self._clock = clock

    def built_in_variables(self) -> Dict[str, str]:
        now = self._clock()
        return {
            "date": now.strftime("%Y-%m-%d"),
            "time": now.strftime("%H:%M"),
            "datetime": now.isoformat(timespec="seconds"),
            "user": self.username,
            "project": self.project_key,
        }

    async def list_templates(self, issue_type: Optional[TemplateIssueType] = None) -> List[Template]:
        return await self.repository.get_all(issue_type)

    async def get_template(self, template_id: str) -> Template:
        template = await self.repository.get_by_id(template_id)
        if template is None:
            raise ServiceError(ErrorKind.NOT_FOUND, "Template not found", {"template_id": template_id})
        return template

    async def save_template(self, template: TemplateCreate) -> Template:
        validate_template(template)

        is_update = bool(template.id) and await self.repository.get_by_id(template.id) is not None
        if not is_update and await self.repository.count() >= self.max_templates:
            raise validation_error(f"Maximum {self.max_templates} templates allowed")

        saved = await self.repository.save(template)
        logger.info("Template saved", template_id=saved.id, updated=is_update)
        return saved

    async def delete_template(self, template_id: str) -> None:
        if not await self.repository.delete(template_id):
            raise ServiceError(ErrorKind.NOT_FOUND, "Template not found", {"template_id": template_id})
        logger.info("Template deleted", template_id=template_id)

    async def apply_template(self, template_id: str, variable_values: Dict[str, str]) -> AppliedTemplate:
        template = await self.get_template(template_id)
        return self.apply(template, variable_values)

    def apply(self, template: Template, variable_values: Dict[str, str]) -> AppliedTemplate:
        variables = self.built_in_variables()
        for variable in template.variables:
            if variable.default_value is not None:
                variables[variable.name] = variable.default_value
        variables.update({k: v for k, v in variable_values.items() if v is not None and str(v).strip()})

        missing = [v.name for v in template.variables if v.required and v.name not in variables]
        if missing:
            raise validation_error(
                "Missing required template variables: " + ", ".join(missing), {"missing": missing}
            )

        fields = interpolate_value(template.fields, variables)
        unresolved = sorted({name for name in extract_variables(json.dumps(fields))})
        return AppliedTemplate(
            template_id=template.id,
            issue_type=template.issue_type,
            fields=fields,
            unresolved_variables=unresolved,
        )

    async def seed_defaults(self) -> int:
        """Store the built-in templates that are not present yet"""
        created = 0
        for template in DEFAULT_TEMPLATES:
            if await self.repository.get_by_id(template.id) is None:
                await self.repository.save(template)
                created += 1
        if created:
            logger.info("Default templates seeded", count=created)
        return created


def _select(name: str, label: str, options: List[str], required: bool = True,
            default: Optional[str] = None) -> TemplateVariable:
    return TemplateVariable(name=name, label=label, type="select", required=required,
                            options=options, default_value=default)


def _text(name: str, label: str, required: bool = True, placeholder: Optional[str] = None) -> TemplateVariable:
    return TemplateVariable(name=name, label=label, type="text", required=required, placeholder=placeholder)


ENVIRONMENTS = ["UAT", "Staging", "Production"]

DEFAULT_TEMPLATES: List[TemplateCreate] = [
    TemplateCreate(
        id="karate-api-test",
        name="Karate API Test",
        issue_type=TemplateIssueType.TEST,
        description="Template for Karate API testing",
        fields={
            "summary": "Test - API - {{endpoint}} - {{method}}",
            "description": "API test for {{endpoint}} endpoint using {{method}} method",
            "test_type": "Automated",
            "priority": "{{priority}}",
        },
        variables=[
            _text("endpoint", "API Endpoint", placeholder="/api/users"),
            _select("method", "HTTP Method", ["GET", "POST", "PUT", "DELETE", "PATCH"]),
            _select("priority", "Priority", ["High", "Medium", "Low"], required=False, default="Medium"),
        ],
    ),
    TemplateCreate(
        id="performance-test",
        name="Performance Test",
        issue_type=TemplateIssueType.TEST,
        description="Template for performance testing",
        fields={
            "summary": "Test - Performance - {{feature}} - {{loadType}}",
            "description": "Performance test for {{feature}} under {{loadType}} load",
            "test_type": "Automated",
            "priority": "High",
        },
        variables=[
            _text("feature", "Feature Name"),
            _select("loadType", "Load Type", ["Stress", "Load", "Spike", "Endurance"]),
        ],
    ),
    TemplateCreate(
        id="default-test",
        name="Standard Test",
        issue_type=TemplateIssueType.TEST,
        description="Standard test case template",
        fields={
            "summary": "Test - {{scenario}} - {{priority}}",
            "description": "Validates {{functionality}} in {{environment}}",
            "test_type": "Manual",
            "priority": "Medium",
            "labels": ["automated-test"],
        },
        variables=[
            _text("scenario", "Test Scenario", placeholder="e.g., Valid Login, Invalid Password"),
            _select("priority", "Priority", ["High", "Medium", "Low"], default="Medium"),
            _text("functionality", "Functionality Being Tested", placeholder="e.g., user authentication"),
            _select("environment", "Test Environment", ENVIRONMENTS, required=False, default="UAT"),
        ],
    ),
    TemplateCreate(
        id="regression-testset",
        name="Regression Test Set",
        issue_type=TemplateIssueType.TEST_SET,
        description="Template for regression test sets",
        fields={
            "summary": "TestSet - Regression - {{release}}",
            "description": "Regression testing for release {{release}}",
            "priority": "High",
        },
        variables=[_text("release", "Release Version", placeholder="v2.0")],
    ),
    TemplateCreate(
        id="smoke-testset",
        name="Smoke Test Set",
        issue_type=TemplateIssueType.TEST_SET,
        description="Template for smoke test sets",
        fields={
            "summary": "TestSet - SmokeTest - {{environment}}",
            "description": "Smoke tests for {{environment}} environment",
            "priority": "Highest",
        },
        variables=[_select("environment", "Environment", ENVIRONMENTS)],
    ),
    TemplateCreate(
        id="default-testset",
        name="E2E Test Set",
        issue_type=TemplateIssueType.TEST_SET,
        description="End-to-end test set template",
        fields={
            "summary": "TestSet - E2ETesting - {{feature}}",
            "description": "Test set for {{feature}} - Sprint {{sprint}}",
            "priority": "High",
            "labels": ["e2e", "regression"],
        },
        variables=[
            _text("feature", "Feature Name", placeholder="e.g., Login Flow, Payment Processing"),
            _text("sprint", "Sprint Number", required=False, placeholder="e.g., Sprint 10"),
        ],
    ),
    TemplateCreate(
        id="release-execution",
        name="Release Execution",
        issue_type=TemplateIssueType.TEST_EXECUTION,
        description="Template for release test executions",
        fields={
            "summary": "Execution - Release {{version}} - {{environment}}",
            "description": "Release testing for version {{version}} in {{environment}}",
        },
        variables=[
            _text("version", "Release Version", placeholder="v2.0.1"),
            _select("environment", "Environment", ENVIRONMENTS),
        ],
    ),
    TemplateCreate(
        id="hotfix-execution",
        name="Hotfix Execution",
        issue_type=TemplateIssueType.TEST_EXECUTION,
        description="Template for hotfix test executions",
        fields={
            "summary": "Execution - Hotfix - {{ticketId}} - {{environment}}",
            "description": "Hotfix testing for {{ticketId}}",
        },
        variables=[
            _text("ticketId", "Ticket ID", placeholder="MTD-12345"),
            _select("environment", "Environment", ["UAT", "Production"]),
        ],
    ),
    TemplateCreate(
        id="default-execution",
        name="Sprint Execution",
        issue_type=TemplateIssueType.TEST_EXECUTION,
        description="Sprint test execution template",
        fields={
            "summary": "Execution - Sprint {{sprint}} - {{environment}}",
            "description": "Test execution for {{release}} in {{environment}}",
            "environments": ["{{environment}}"],
            "labels": ["sprint-{{sprint}}"],
        },
        variables=[
            _text("sprint", "Sprint Number", placeholder="e.g., 10"),
            _select("environment", "Environment", ENVIRONMENTS, default="UAT"),
            _text("release", "Release Version", required=False, placeholder="e.g., v2.5.0"),
        ],
    ),
]
