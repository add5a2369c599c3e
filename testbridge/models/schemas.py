from pydantic import AfterValidator, BaseModel, Field, computed_field
from typing import Annotated, Any, Dict, Generic, List, Optional, TypeVar
from datetime import datetime
from enum import Enum

ISSUE_KEY_PATTERN = r"^[A-Z]+-\d+$"
DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"

T = TypeVar("T")


class RecordType(str, Enum):
    TEST = "Test"
    TEST_SET = "Test Set"
    TEST_EXECUTION = "Test Execution"


class TestType(str, Enum):
    MANUAL = "Manual"
    AUTOMATED = "Automated"


class RecordState(str, Enum):
    PENDING = "pending"
    CREATED = "created"
    STEPS_ATTACHED = "steps_attached"
    STEPS_PARTIAL = "steps_partial"
    LINKED = "linked"
    LINK_PARTIAL = "link_partial"
    CREATION_FAILED = "creation_failed"


class ErrorPayload(BaseModel):
    kind: str
    message: str
    details: Optional[Any] = None


class ApiResponse(BaseModel, Generic[T]):
    success: bool = True
    data: Optional[T] = None
    error: Optional[ErrorPayload] = None


def _normalize_key(value: str) -> str:
    value = value.strip().upper()
    if not value:
        raise ValueError("Issue key must not be blank")
    return value


IssueKey = Annotated[str, AfterValidator(_normalize_key)]

# Logical names on record inputs that are not remote fields
NON_FIELD_NAMES = {"extra_fields", "steps"}


# ---- record inputs ----


class TestStepInput(BaseModel):
    step: str = Field(..., min_length=1, max_length=1000, description="Action to perform")
    data: str = Field(default="", max_length=2000, description="Test data for the step")
    result: str = Field(..., min_length=1, max_length=1000, description="Expected result")


class RecordInputBase(BaseModel):
    summary: str = Field(..., min_length=5, max_length=255)
    description: Optional[str] = Field(None, max_length=5000)
    priority: Optional[str] = Field(None, description="Priority id")
    assignee: Optional[str] = None
    reporter: Optional[str] = None
    labels: List[str] = Field(default_factory=list, max_length=20)
    extra_fields: Dict[str, Any] = Field(
        default_factory=dict,
        description="Schema-driven fields keyed by remote field id",
    )

    def logical_values(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude=NON_FIELD_NAMES, exclude_none=True)


class CreateTestInput(RecordInputBase):
    test_type: TestType = TestType.MANUAL
    components: List[str] = Field(default_factory=list)
    fix_versions: List[str] = Field(default_factory=list)
    environments: List[str] = Field(default_factory=list)
    due_date: Optional[str] = Field(None, pattern=DATE_PATTERN)
    steps: List[TestStepInput] = Field(..., min_length=1, max_length=100)


class CreateTestSetInput(RecordInputBase):
    components: List[str] = Field(default_factory=list)


class CreateTestExecutionInput(RecordInputBase):
    fix_versions: List[str] = Field(default_factory=list)
    environments: List[str] = Field(default_factory=list)


class CreateTestRequest(BaseModel):
    test: CreateTestInput
    story_key: Optional[IssueKey] = None


class BatchCreateTestsRequest(BaseModel):
    tests: List[CreateTestInput] = Field(..., min_length=1, max_length=50)
    story_key: Optional[IssueKey] = None


class CreateTestSetRequest(BaseModel):
    test_set: CreateTestSetInput
    test_keys: List[IssueKey] = Field(default_factory=list, max_length=500)
    story_key: Optional[IssueKey] = None


class CreateTestExecutionRequest(BaseModel):
    test_execution: CreateTestExecutionInput
    test_keys: List[IssueKey] = Field(default_factory=list, max_length=1000)
    story_key: Optional[IssueKey] = None
    test_plan_key: Optional[IssueKey] = None


class WorkflowInput(BaseModel):
    story_key: IssueKey
    tests: List[CreateTestInput] = Field(..., min_length=1, max_length=50)
    test_set: Optional[CreateTestSetInput] = None
    test_execution: CreateTestExecutionInput
    test_plan_key: Optional[IssueKey] = None


class ValidateIssuesRequest(BaseModel):
    keys: List[str] = Field(..., min_length=1, max_length=1000)
    accepted_types: Optional[List[str]] = Field(
        None, description="Issue type names accepted as valid, e.g. ['Story', 'Bug']"
    )


class LinkIssuesRequest(BaseModel):
    link_type: str = Field(..., min_length=1)
    inward_key: IssueKey
    outward_key: IssueKey


class CoverageRequest(BaseModel):
    test_key: IssueKey
    story_key: IssueKey


# ---- results ----


class ValidationResult(BaseModel):
    key: str
    valid: bool
    exists: bool
    issue_type: Optional[str] = None
    summary: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None


class SessionStatus(BaseModel):
    configured: bool
    connected: bool
    base_url: Optional[str] = None
    project_key: Optional[str] = None
    username: Optional[str] = None
    metadata_loaded: bool = False


class CreatedIssue(BaseModel):
    id: str
    key: str
    self_url: Optional[str] = None


class OperationOutcome(BaseModel):
    name: str
    succeeded: bool
    error: Optional[ErrorPayload] = None


class RecordCreationResult(BaseModel):
    record_type: RecordType
    issue: Optional[CreatedIssue] = None
    state: RecordState = RecordState.PENDING
    history: List[RecordState] = Field(default_factory=list)
    operations: List[OperationOutcome] = Field(default_factory=list)

    @computed_field
    @property
    def key(self) -> Optional[str]:
        return self.issue.key if self.issue else None

    @computed_field
    @property
    def failed_operations(self) -> List[str]:
        return [op.name for op in self.operations if not op.succeeded]

    @property
    def succeeded_operations(self) -> List[str]:
        return [op.name for op in self.operations if op.succeeded]


class FailedRecord(BaseModel):
    index: int
    summary: str
    error: ErrorPayload
    state: RecordState = RecordState.CREATION_FAILED


class BatchCreationResult(BaseModel):
    created: List[RecordCreationResult] = Field(default_factory=list)
    failed: List[FailedRecord] = Field(default_factory=list)

    @computed_field
    @property
    def created_keys(self) -> List[str]:
        return [record.key for record in self.created if record.key]


class WorkflowResult(BaseModel):
    story: ValidationResult
    tests: BatchCreationResult = Field(default_factory=BatchCreationResult)
    test_set: Optional[RecordCreationResult] = None
    test_set_error: Optional[ErrorPayload] = None
    test_execution: Optional[RecordCreationResult] = None
    test_execution_error: Optional[ErrorPayload] = None
    completed: bool = False


class TestSummary(BaseModel):
    key: str
    summary: str


# ---- templates ----


class TemplateIssueType(str, Enum):
    TEST = "Test"
    TEST_SET = "TestSet"
    TEST_EXECUTION = "TestExecution"


class TemplateVariable(BaseModel):
    name: str
    label: str
    type: str = Field(default="text", description="text, select or date")
    required: bool = False
    default_value: Optional[str] = None
    options: Optional[List[str]] = None
    placeholder: Optional[str] = None


class TemplateBase(BaseModel):
    name: str = Field(..., max_length=255)
    issue_type: TemplateIssueType
    description: Optional[str] = None
    fields: Dict[str, Any] = Field(default_factory=dict)
    variables: List[TemplateVariable] = Field(default_factory=list)


class TemplateCreate(TemplateBase):
    id: Optional[str] = Field(None, description="Existing id to update, omitted to create")


class Template(TemplateBase):
    id: str
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class TemplateApplication(BaseModel):
    variable_values: Dict[str, str] = Field(default_factory=dict)


class AppliedTemplate(BaseModel):
    template_id: str
    issue_type: TemplateIssueType
    fields: Dict[str, Any]
    unresolved_variables: List[str] = Field(default_factory=list)
