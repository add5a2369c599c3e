from typing import Any, Dict, List
from fastapi import APIRouter, Depends, Query, status
import structlog

from testbridge.core.dependencies import get_orchestration_service
from testbridge.models.schemas import (
    ApiResponse,
    BatchCreateTestsRequest,
    BatchCreationResult,
    CoverageRequest,
    CreateTestExecutionRequest,
    CreateTestRequest,
    CreateTestSetRequest,
    LinkIssuesRequest,
    RecordCreationResult,
    TestStepInput,
    TestSummary,
    WorkflowInput,
    WorkflowResult,
)
from testbridge.services.orchestration_service import OrchestrationService

logger = structlog.get_logger()

router = APIRouter(prefix="/records", tags=["records"])


@router.post("/tests", response_model=ApiResponse[RecordCreationResult], status_code=status.HTTP_201_CREATED)
async def create_test(
    request: CreateTestRequest,
    service: OrchestrationService = Depends(get_orchestration_service),
):
    """Create a Test, attach its steps and link it to a story"""
    logger.info("Creating test", summary=request.test.summary[:100], story_key=request.story_key)
    result = await service.create_test(request.test, request.story_key)
    return ApiResponse(data=result)


@router.post("/tests/batch", response_model=ApiResponse[BatchCreationResult])
async def create_tests(
    request: BatchCreateTestsRequest,
    service: OrchestrationService = Depends(get_orchestration_service),
):
    """Create several Tests; one failure does not stop the others"""
    logger.info("Creating test batch", count=len(request.tests), story_key=request.story_key)
    result = await service.create_tests(request.tests, request.story_key)
    return ApiResponse(data=result)


@router.post("/test-sets", response_model=ApiResponse[RecordCreationResult], status_code=status.HTTP_201_CREATED)
async def create_test_set(
    request: CreateTestSetRequest,
    service: OrchestrationService = Depends(get_orchestration_service),
):
    logger.info("Creating test set", summary=request.test_set.summary[:100], tests=len(request.test_keys))
    result = await service.create_test_set(request.test_set, request.test_keys, request.story_key)
    return ApiResponse(data=result)


@router.post(
    "/test-executions", response_model=ApiResponse[RecordCreationResult], status_code=status.HTTP_201_CREATED
)
async def create_test_execution(
    request: CreateTestExecutionRequest,
    service: OrchestrationService = Depends(get_orchestration_service),
):
    logger.info(
        "Creating test execution",
        summary=request.test_execution.summary[:100],
        tests=len(request.test_keys),
        test_plan_key=request.test_plan_key,
    )
    result = await service.create_test_execution(
        request.test_execution, request.test_keys, request.story_key, request.test_plan_key
    )
    return ApiResponse(data=result)


@router.post("/test-executions/{execution_key}/test-plan/{test_plan_key}", response_model=ApiResponse[None])
async def associate_test_plan(
    execution_key: str,
    test_plan_key: str,
    service: OrchestrationService = Depends(get_orchestration_service),
):
    """Set the execution's Test Plan field"""
    await service.associate_test_plan(execution_key.upper(), test_plan_key.upper())
    return ApiResponse()


@router.post("/workflow", response_model=ApiResponse[WorkflowResult])
async def execute_workflow(
    workflow: WorkflowInput,
    service: OrchestrationService = Depends(get_orchestration_service),
):
    """Story check, Tests, optional Test Set, Test Execution and Test Plan link"""
    logger.info("Executing workflow", story_key=workflow.story_key, tests=len(workflow.tests))
    result = await service.execute_workflow(workflow)
    return ApiResponse(data=result)


@router.post("/links", response_model=ApiResponse[None], status_code=status.HTTP_201_CREATED)
async def link_issues(
    request: LinkIssuesRequest,
    service: OrchestrationService = Depends(get_orchestration_service),
):
    await service.link_issues(request.link_type, request.inward_key, request.outward_key)
    return ApiResponse()


@router.get("/tests/search", response_model=ApiResponse[List[str]])
async def search_tests_by_label(
    label: str = Query(..., min_length=1),
    service: OrchestrationService = Depends(get_orchestration_service),
):
    return ApiResponse(data=await service.search_tests_by_label(label))


@router.get("/tests", response_model=ApiResponse[List[TestSummary]])
async def get_tests_by_keys(
    keys: List[str] = Query(...),
    service: OrchestrationService = Depends(get_orchestration_service),
):
    return ApiResponse(data=await service.get_tests_by_keys([key.strip().upper() for key in keys]))


@router.get("/tests/{test_key}/steps", response_model=ApiResponse[List[Dict[str, Any]]])
async def get_test_steps(
    test_key: str,
    service: OrchestrationService = Depends(get_orchestration_service),
):
    return ApiResponse(data=await service.get_test_steps(test_key.upper()))


@router.post("/tests/{test_key}/steps", response_model=ApiResponse[None], status_code=status.HTTP_201_CREATED)
async def add_test_step(
    test_key: str,
    step: TestStepInput,
    service: OrchestrationService = Depends(get_orchestration_service),
):
    await service.add_test_step(test_key.upper(), step)
    return ApiResponse()


@router.get("/tests/{test_key}/coverage", response_model=ApiResponse[List[Any]])
async def get_test_coverage(
    test_key: str,
    service: OrchestrationService = Depends(get_orchestration_service),
):
    return ApiResponse(data=await service.get_test_coverage(test_key.upper()))


@router.post("/coverage", response_model=ApiResponse[None])
async def link_test_to_story(
    request: CoverageRequest,
    service: OrchestrationService = Depends(get_orchestration_service),
):
    """Mark a Test as covering a story"""
    await service.link_test_to_story(request.test_key, request.story_key)
    return ApiResponse()


@router.post("/coverage/remove", response_model=ApiResponse[None])
async def unlink_test_from_story(
    request: CoverageRequest,
    service: OrchestrationService = Depends(get_orchestration_service),
):
    await service.unlink_test_from_story(request.test_key, request.story_key)
    return ApiResponse()
