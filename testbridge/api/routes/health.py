from fastapi import APIRouter, status
from pydantic import BaseModel
from datetime import datetime, timezone
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
import structlog

from testbridge.config.settings import settings
from testbridge.core.database import SessionLocal
from testbridge.core.dependencies import container

logger = structlog.get_logger()

router = APIRouter(prefix="/health", tags=["health"])


class HealthResponse(BaseModel):
    status: str
    timestamp: datetime
    version: str
    environment: str


@router.get("/", response_model=HealthResponse, status_code=status.HTTP_200_OK)
async def health_check():
    """Health check endpoint"""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(timezone.utc),
        version="1.0.0",
        environment=settings.environment
    )


@router.get("/readiness")
async def readiness_check():
    """Readiness check: template database and JIRA session state"""
    checks = {}

    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except SQLAlchemyError as e:
        logger.error("Database readiness check failed", error=str(e))
        checks["database"] = "error"
    finally:
        db.close()

    checks["jira"] = "ok" if container.jira_configured else "not_configured"

    session = container.active_session
    checks["metadata"] = "ok" if session is not None and session.metadata_cache.is_ready else "not_loaded"

    ready = checks["database"] == "ok" and checks["jira"] == "ok"
    return {
        "status": "ready" if ready else "not_ready",
        "checks": checks,
        "timestamp": datetime.now(timezone.utc)
    }
