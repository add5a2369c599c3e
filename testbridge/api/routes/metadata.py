from typing import Any, Dict, List
from fastapi import APIRouter, Depends
import structlog

from testbridge.core.dependencies import (
    get_jira_session,
    get_metadata_cache,
    get_orchestration_service,
)
from testbridge.core.errors import ErrorKind, ServiceError
from testbridge.core.session import JiraSession
from testbridge.models.metadata import FieldDescriptor, NamedItem
from testbridge.models.schemas import ApiResponse
from testbridge.services.metadata_cache import MetadataCache
from testbridge.services.orchestration_service import OrchestrationService

logger = structlog.get_logger()

router = APIRouter(prefix="/metadata", tags=["metadata"])


@router.get("/issue-types", response_model=ApiResponse[List[NamedItem]])
async def list_issue_types(cache: MetadataCache = Depends(get_metadata_cache)):
    """Issue types available in the configured project"""
    return ApiResponse(data=cache.issue_types)


@router.get("/issue-types/{type_name}/fields", response_model=ApiResponse[List[FieldDescriptor]])
async def get_fields_for_issue_type(
    type_name: str,
    all_fields: bool = False,
    service: OrchestrationService = Depends(get_orchestration_service),
):
    """Field descriptors for an issue type: required fields first, then common ones"""
    logger.info("Fetching field descriptors", issue_type=type_name, all_fields=all_fields)
    fields = await service.get_fields_for_issue_type(type_name)
    if all_fields:
        issue_type = service.metadata_cache.find_issue_type(type_name)
        fields = service.metadata_cache.get_all_fields(issue_type.id) if issue_type else fields
    return ApiResponse(data=fields)


@router.get("/fields/{field_key}", response_model=ApiResponse[FieldDescriptor])
async def get_field(field_key: str, cache: MetadataCache = Depends(get_metadata_cache)):
    """Single field descriptor from any cached issue type or the global dictionary"""
    descriptor = cache.get_field_descriptor(field_key)
    if descriptor is None:
        raise ServiceError(ErrorKind.NOT_FOUND, f"Field {field_key} not found")
    return ApiResponse(data=descriptor)


@router.get("/priorities", response_model=ApiResponse[List[NamedItem]])
async def list_priorities(cache: MetadataCache = Depends(get_metadata_cache)):
    return ApiResponse(data=cache.priorities)


@router.get("/components", response_model=ApiResponse[List[NamedItem]])
async def list_components(cache: MetadataCache = Depends(get_metadata_cache)):
    return ApiResponse(data=cache.components)


@router.get("/components/suggest", response_model=ApiResponse[List[str]])
async def suggest_components(query: str = "", service: OrchestrationService = Depends(get_orchestration_service)):
    return ApiResponse(data=await service.get_component_suggestions(query))


@router.get("/versions", response_model=ApiResponse[List[NamedItem]])
async def list_versions(cache: MetadataCache = Depends(get_metadata_cache)):
    return ApiResponse(data=cache.versions)


@router.get("/labels/suggest", response_model=ApiResponse[List[Dict[str, Any]]])
async def suggest_labels(query: str = "", service: OrchestrationService = Depends(get_orchestration_service)):
    return ApiResponse(data=await service.get_label_suggestions(query))


@router.get("/link-types", response_model=ApiResponse[List[Dict[str, Any]]])
async def list_link_types(session: JiraSession = Depends(get_jira_session)):
    return ApiResponse(data=await session.jira_service.get_issue_link_types())


@router.get("/project", response_model=ApiResponse[Dict[str, Any]])
async def get_project(session: JiraSession = Depends(get_jira_session)):
    return ApiResponse(data=await session.jira_service.get_project())


@router.post("/refresh", response_model=ApiResponse[Dict[str, int]])
async def refresh_metadata(session: JiraSession = Depends(get_jira_session)):
    """Drop the cached schema and load it again from JIRA"""
    logger.info("Refreshing metadata", project_key=session.project_key)
    session.metadata_cache.clear()
    await session.initialize_metadata()
    cache = session.metadata_cache
    return ApiResponse(data={
        "issue_types": len(cache.issue_types),
        "priorities": len(cache.priorities),
        "components": len(cache.components),
        "versions": len(cache.versions),
    })
