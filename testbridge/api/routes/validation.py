from typing import Dict, List, Optional
from fastapi import APIRouter, Depends, Query
import structlog

from testbridge.core.dependencies import get_issue_validator
from testbridge.models.schemas import ApiResponse, ValidateIssuesRequest, ValidationResult
from testbridge.services.issue_validator import IssueValidator

logger = structlog.get_logger()

router = APIRouter(prefix="/issues", tags=["validation"])


@router.get("/{issue_key}/validate", response_model=ApiResponse[ValidationResult])
async def validate_issue(
    issue_key: str,
    accepted_types: Optional[List[str]] = Query(None),
    validator: IssueValidator = Depends(get_issue_validator),
):
    """Check that an issue exists, optionally restricted to some issue types"""
    result = await validator.validate_one(issue_key, accepted_types)
    return ApiResponse(data=result)


@router.post("/validate", response_model=ApiResponse[Dict[str, ValidationResult]])
async def validate_issues(
    request: ValidateIssuesRequest,
    validator: IssueValidator = Depends(get_issue_validator),
):
    """Validate many issue keys concurrently; one result per key"""
    logger.info("Batch validating issues", count=len(request.keys), accepted_types=request.accepted_types)
    results = await validator.validate_many(request.keys, request.accepted_types)
    return ApiResponse(data=results)
