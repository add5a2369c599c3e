from fastapi import APIRouter
from testbridge.api.routes import health, metadata, records, session, templates, validation

api_router = APIRouter()

# Include all route modules
api_router.include_router(health.router)
api_router.include_router(session.router)
api_router.include_router(metadata.router)
api_router.include_router(validation.router)
api_router.include_router(records.router)
api_router.include_router(templates.router)
