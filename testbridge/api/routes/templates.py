from typing import List, Optional
from fastapi import APIRouter, Depends, status
import structlog

from testbridge.core.dependencies import get_template_service
from testbridge.models.schemas import (
    ApiResponse,
    AppliedTemplate,
    Template,
    TemplateApplication,
    TemplateCreate,
    TemplateIssueType,
)
from testbridge.services.template_service import TemplateService

logger = structlog.get_logger()

router = APIRouter(prefix="/templates", tags=["templates"])


@router.get("/", response_model=ApiResponse[List[Template]])
async def list_templates(
    issue_type: Optional[TemplateIssueType] = None,
    service: TemplateService = Depends(get_template_service),
):
    """List stored templates, optionally for one record type"""
    return ApiResponse(data=await service.list_templates(issue_type))


@router.get("/{template_id}", response_model=ApiResponse[Template])
async def get_template(template_id: str, service: TemplateService = Depends(get_template_service)):
    return ApiResponse(data=await service.get_template(template_id))


@router.post("/", response_model=ApiResponse[Template], status_code=status.HTTP_201_CREATED)
async def save_template(template: TemplateCreate, service: TemplateService = Depends(get_template_service)):
    """Create a template, or update it when the id already exists"""
    logger.info("Saving template", name=template.name, template_id=template.id)
    return ApiResponse(data=await service.save_template(template))


@router.delete("/{template_id}", response_model=ApiResponse[None])
async def delete_template(template_id: str, service: TemplateService = Depends(get_template_service)):
    await service.delete_template(template_id)
    return ApiResponse()


@router.post("/{template_id}/apply", response_model=ApiResponse[AppliedTemplate])
async def apply_template(
    template_id: str,
    application: TemplateApplication,
    service: TemplateService = Depends(get_template_service),
):
    """Fill a template's placeholders with variable values"""
    logger.info("Applying template", template_id=template_id, variables=list(application.variable_values))
    return ApiResponse(data=await service.apply_template(template_id, application.variable_values))
