import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional

import structlog

from testbridge.config.settings import settings
from testbridge.core.errors import ErrorKind, ServiceError, validation_error
from testbridge.models.metadata import FieldDescriptor, NamedItem
from testbridge.models.schemas import (
    BatchCreationResult,
    CreatedIssue,
    CreateTestExecutionInput,
    CreateTestInput,
    CreateTestSetInput,
    ErrorPayload,
    FailedRecord,
    OperationOutcome,
    RecordCreationResult,
    RecordInputBase,
    RecordState,
    RecordType,
    TestStepInput,
    TestSummary,
    WorkflowInput,
    WorkflowResult,
)
from testbridge.repositories.interfaces.jira_service import IJiraService
from testbridge.services.field_mapping import map_logical_values, schema_hints
from testbridge.services.field_transformer import build_wire_fields, missing_required_fields
from testbridge.services.issue_validator import IssueValidator
from testbridge.services.metadata_cache import MetadataCache

logger = structlog.get_logger()

PARTIAL_STATES = {RecordState.STEPS_PARTIAL, RecordState.LINK_PARTIAL}


def _error_payload(error: ServiceError) -> ErrorPayload:
    return ErrorPayload(**error.to_payload())


def _advance(result: RecordCreationResult, new_state: RecordState) -> None:
    """Record a state transition; a partial state is never downgraded to a success state."""
    result.history.append(new_state)
    if result.state in PARTIAL_STATES and new_state not in PARTIAL_STATES:
        return
    result.state = new_state


class OrchestrationService:
    """Create test records and their follow-up operations, best effort.

    Creation failure aborts the record and raises the classified error.
    After creation every follow-up call (steps, members, links) is attempted
    in program order; failures are recorded by name in the result and are
    never retried or rolled back.
    """

    def __init__(
        self,
        jira_service: IJiraService,
        metadata_cache: MetadataCache,
        validator: IssueValidator,
        project_key: str,
        test_link_type: Optional[str] = None,
        relates_link_type: Optional[str] = None,
    ):
        self.jira_service = jira_service
        self.metadata_cache = metadata_cache
        self.validator = validator
        self.project_key = project_key
        self.test_link_type = test_link_type or settings.test_link_type
        self.relates_link_type = relates_link_type or settings.relates_link_type

    # ---- schema ----

    async def resolve_issue_type(self, type_name: str) -> NamedItem:
        issue_type = self.metadata_cache.find_issue_type(type_name)
        if issue_type is None and not self.metadata_cache.is_ready:
            # Session not initialized yet: ask the tracker directly
            for raw in await self.jira_service.get_issue_types():
                if str(raw.get("name", "")).casefold() == type_name.casefold():
                    issue_type = NamedItem.from_remote(raw)
                    break
        if issue_type is None:
            raise ServiceError(ErrorKind.NOT_FOUND, f"Issue type {type_name} not found")
        return issue_type

    async def get_fields_for_issue_type(self, type_name: str) -> List[FieldDescriptor]:
        issue_type = await self.resolve_issue_type(type_name)
        await self.metadata_cache.ensure_issue_type_metadata(issue_type.id, issue_type.name)
        return self.metadata_cache.get_field_descriptors(issue_type.id)

    async def build_create_fields(self, record_type: RecordType, record_input: RecordInputBase) -> Dict[str, Any]:
        """Wire ``fields`` payload for a new record, checked against required fields."""
        issue_type = await self.resolve_issue_type(record_type.value)
        metadata = await self.metadata_cache.ensure_issue_type_metadata(issue_type.id, issue_type.name)
        hints = schema_hints(record_type)

        def resolve(key: str) -> Optional[FieldDescriptor]:
            return self.metadata_cache.get_field_descriptor(key, issue_type.id) or hints.get(key)

        values = map_logical_values(record_type, record_input.logical_values())
        values.update(record_input.extra_fields)
        self._resolve_priority_name(values)

        fields = build_wire_fields(values, resolve)
        fields["project"] = {"key": self.project_key}
        fields["issuetype"] = {"id": issue_type.id}

        required = [metadata.fields[key] for key in metadata.required_keys]
        missing = missing_required_fields(required, fields)
        if missing:
            raise validation_error(
                "Missing required fields: " + ", ".join(descriptor.name for descriptor in missing),
                {"missing": [descriptor.key for descriptor in missing], "issue_type": issue_type.name},
            )
        return fields

    def _resolve_priority_name(self, values: Dict[str, Any]) -> None:
        """Swap a priority given by name (e.g. from a template) for its id."""
        priority = values.get("priority")
        if not isinstance(priority, str) or self.metadata_cache.get_priority_by_id(priority):
            return
        match = self.metadata_cache.get_priority_by_name(priority.strip())
        if match:
            values["priority"] = match.id

    # ---- single records ----

    async def create_test(self, test_input: CreateTestInput, story_key: Optional[str] = None) -> RecordCreationResult:
        result = await self._create_record(RecordType.TEST, test_input)
        test_key = result.key

        attached = [
            await self._attempt(result, f"add_step_{index}", self.jira_service.add_test_step, test_key, step)
            for index, step in enumerate(test_input.steps, start=1)
        ]
        if attached:
            _advance(result, RecordState.STEPS_ATTACHED if all(attached) else RecordState.STEPS_PARTIAL)

        if story_key:
            linked = await self._attempt(
                result, "link_story", self.jira_service.link_issues, self.test_link_type, test_key, story_key
            )
            _advance(result, RecordState.LINKED if linked else RecordState.LINK_PARTIAL)

        self._log_result(result)
        return result

    async def create_test_set(
        self,
        test_set_input: CreateTestSetInput,
        test_keys: Optional[List[str]] = None,
        story_key: Optional[str] = None,
    ) -> RecordCreationResult:
        result = await self._create_record(RecordType.TEST_SET, test_set_input)
        set_key = result.key

        if test_keys:
            added = await self._attempt(
                result, "add_tests_to_set", self.jira_service.add_tests_to_set, set_key, list(test_keys)
            )
            _advance(result, RecordState.STEPS_ATTACHED if added else RecordState.STEPS_PARTIAL)

        if story_key:
            linked = await self._attempt(
                result, "link_story", self.jira_service.link_issues, self.relates_link_type, set_key, story_key
            )
            _advance(result, RecordState.LINKED if linked else RecordState.LINK_PARTIAL)

        self._log_result(result)
        return result

    async def create_test_execution(
        self,
        execution_input: CreateTestExecutionInput,
        test_keys: Optional[List[str]] = None,
        story_key: Optional[str] = None,
        test_plan_key: Optional[str] = None,
    ) -> RecordCreationResult:
        result = await self._create_record(RecordType.TEST_EXECUTION, execution_input)
        execution_key = result.key

        if test_keys:
            added = await self._attempt(
                result,
                "add_tests_to_execution",
                self.jira_service.add_tests_to_execution,
                execution_key,
                list(test_keys),
            )
            _advance(result, RecordState.STEPS_ATTACHED if added else RecordState.STEPS_PARTIAL)

        links = []
        if story_key:
            links.append(await self._attempt(
                result, "link_story", self.jira_service.link_issues, self.relates_link_type, execution_key, story_key
            ))
        if test_plan_key:
            links.append(await self._attempt(
                result,
                "link_test_plan",
                self.jira_service.link_issues,
                self.relates_link_type,
                execution_key,
                test_plan_key,
            ))
        if links:
            _advance(result, RecordState.LINKED if all(links) else RecordState.LINK_PARTIAL)

        self._log_result(result)
        return result

    # ---- batches ----

    async def create_tests(
        self, test_inputs: List[CreateTestInput], story_key: Optional[str] = None
    ) -> BatchCreationResult:
        """Create many tests concurrently; each record keeps its own call order."""
        outcomes = await asyncio.gather(
            *(self._create_test_or_failure(index, test_input, story_key) for index, test_input in enumerate(test_inputs))
        )

        batch = BatchCreationResult()
        for outcome in outcomes:
            if isinstance(outcome, FailedRecord):
                batch.failed.append(outcome)
            else:
                batch.created.append(outcome)

        logger.info("Test batch completed", created=len(batch.created), failed=len(batch.failed))
        return batch

    async def execute_workflow(self, workflow: WorkflowInput) -> WorkflowResult:
        """Story check, tests, optional test set, execution, optional plan link."""
        story = await self.validator.validate_one(workflow.story_key)
        result = WorkflowResult(story=story)
        if not story.valid:
            logger.warning("Workflow aborted: story is not valid", story_key=workflow.story_key, error=story.error)
            return result

        result.tests = await self.create_tests(workflow.tests, story_key=story.key)
        test_keys = result.tests.created_keys

        if workflow.test_set is not None:
            try:
                result.test_set = await self.create_test_set(workflow.test_set, test_keys, story.key)
            except ServiceError as e:
                logger.warning("Workflow test set creation failed", kind=e.kind.value, error=e.message)
                result.test_set_error = _error_payload(e)

        try:
            result.test_execution = await self.create_test_execution(
                workflow.test_execution, test_keys, story.key, workflow.test_plan_key
            )
        except ServiceError as e:
            logger.warning("Workflow test execution creation failed", kind=e.kind.value, error=e.message)
            result.test_execution_error = _error_payload(e)

        result.completed = (
            not result.tests.failed
            and result.test_set_error is None
            and result.test_execution_error is None
            and all(
                not record.failed_operations
                for record in [*result.tests.created, result.test_set, result.test_execution]
                if record is not None
            )
        )
        logger.info(
            "Workflow completed",
            story_key=story.key,
            tests=len(test_keys),
            test_set=result.test_set.key if result.test_set else None,
            test_execution=result.test_execution.key if result.test_execution else None,
            completed=result.completed,
        )
        return result

    # ---- passthroughs ----

    async def add_test_step(self, test_key: str, step: TestStepInput) -> None:
        await self.jira_service.add_test_step(test_key, step)

    async def get_test_steps(self, test_key: str) -> List[Dict[str, Any]]:
        return await self.jira_service.get_test_steps(test_key)

    async def link_issues(self, link_type: str, inward_key: str, outward_key: str) -> None:
        await self.jira_service.link_issues(link_type, inward_key, outward_key)

    async def link_test_to_story(self, test_key: str, story_key: str) -> None:
        await self.jira_service.add_test_coverage(test_key, story_key)

    async def unlink_test_from_story(self, test_key: str, story_key: str) -> None:
        await self.jira_service.remove_test_coverage(test_key, story_key)

    async def get_test_coverage(self, test_key: str) -> List[Any]:
        return await self.jira_service.get_test_coverage(test_key)

    async def associate_test_plan(self, execution_key: str, test_plan_key: str) -> None:
        await self.jira_service.link_to_test_plan(execution_key, test_plan_key)

    async def search_tests_by_label(self, label: str) -> List[str]:
        return await self.jira_service.search_tests_by_label(label)

    async def get_tests_by_keys(self, keys: List[str]) -> List[TestSummary]:
        return await self.jira_service.get_tests_by_keys(keys)

    async def get_label_suggestions(self, query: str = "") -> List[Dict[str, Any]]:
        return await self.jira_service.get_label_suggestions(query)

    async def get_component_suggestions(self, query: str = "") -> List[str]:
        if self.metadata_cache.is_ready and self.metadata_cache.components:
            return self.metadata_cache.suggest_components(query)
        components = [NamedItem.from_remote(raw) for raw in await self.jira_service.get_components()]
        lowered = query.casefold()
        return [c.name for c in components if not query or lowered in c.name.casefold()]

    # ---- internals ----

    async def _create_record(self, record_type: RecordType, record_input: RecordInputBase) -> RecordCreationResult:
        result = RecordCreationResult(record_type=record_type, history=[RecordState.PENDING])
        try:
            fields = await self.build_create_fields(record_type, record_input)
            created = await self.jira_service.create_issue(fields)
        except ServiceError as e:
            logger.error(
                "Record creation failed",
                record_type=record_type.value,
                summary=record_input.summary,
                kind=e.kind.value,
                error=e.message,
            )
            raise

        if not isinstance(created, dict) or not created.get("key"):
            raise ServiceError(ErrorKind.REMOTE_ERROR, "Create response did not include an issue key", created)

        result.issue = CreatedIssue(
            id=str(created.get("id", "")),
            key=created["key"],
            self_url=created.get("self"),
        )
        _advance(result, RecordState.CREATED)
        return result

    async def _attempt(
        self,
        result: RecordCreationResult,
        name: str,
        operation: Callable[..., Awaitable[Any]],
        *args: Any,
    ) -> bool:
        try:
            await operation(*args)
        except ServiceError as e:
            logger.warning(
                "Follow-up operation failed",
                issue_key=result.key,
                operation=name,
                kind=e.kind.value,
                error=e.message,
            )
            result.operations.append(OperationOutcome(name=name, succeeded=False, error=_error_payload(e)))
            return False
        result.operations.append(OperationOutcome(name=name, succeeded=True))
        return True

    async def _create_test_or_failure(self, index: int, test_input: CreateTestInput, story_key: Optional[str]):
        try:
            return await self.create_test(test_input, story_key)
        except ServiceError as e:
            return FailedRecord(index=index, summary=test_input.summary, error=_error_payload(e))

    @staticmethod
    def _log_result(result: RecordCreationResult) -> None:
        logger.info(
            "Record created",
            record_type=result.record_type.value,
            issue_key=result.key,
            state=result.state.value,
            failed_operations=result.failed_operations,
        )
