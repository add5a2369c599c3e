from fastapi import APIRouter, Depends
import structlog

from testbridge.core.dependencies import Container, get_container
from testbridge.models.schemas import ApiResponse, SessionStatus

logger = structlog.get_logger()

router = APIRouter(prefix="/session", tags=["session"])


@router.get("/", response_model=ApiResponse[SessionStatus])
async def get_session(container: Container = Depends(get_container)):
    """Report the active JIRA connection, if any"""
    return ApiResponse(data=container.session_status())


@router.delete("/", response_model=ApiResponse[SessionStatus])
async def reset_session(container: Container = Depends(get_container)):
    """Close the JIRA connection and drop every cache that belongs to it"""
    previous = container.session_status()
    await container.shutdown()
    logger.info("JIRA session reset", project_key=previous.project_key, username=previous.username)
    return ApiResponse(data=container.session_status())
