from typing import Optional
from fastapi import Depends
from sqlalchemy.orm import Session

from testbridge.config.settings import settings
from testbridge.core.database import get_database
from testbridge.core.session import JiraSession
from testbridge.models.schemas import SessionStatus
from testbridge.repositories.interfaces.template_repository import ITemplateRepository
from testbridge.repositories.implementations.sql_template_repository import SQLTemplateRepository
from testbridge.services.issue_validator import IssueValidator
from testbridge.services.metadata_cache import MetadataCache
from testbridge.services.orchestration_service import OrchestrationService
from testbridge.services.template_service import TemplateService


class Container:
    """Dependency injection container"""

    def __init__(self, jira_session: Optional[JiraSession] = None):
        self._jira_session = jira_session

    @property
    def active_session(self) -> Optional[JiraSession]:
        """The JIRA session if one was created, without creating it"""
        return self._jira_session

    def jira_session(self) -> JiraSession:
        """Get the JIRA session (one per process, built from settings on first use)"""
        if self._jira_session is None:
            self._jira_session = JiraSession.from_settings(settings)
        return self._jira_session

    @property
    def jira_configured(self) -> bool:
        if self._jira_session is not None:
            return True
        return bool(settings.jira_base_url and settings.jira_project_key and (
            settings.jira_auth_token or (settings.jira_username and settings.jira_api_token)
        ))

    def session_status(self) -> SessionStatus:
        """Describe the active session without opening one"""
        session = self._jira_session
        if session is None:
            return SessionStatus(configured=self.jira_configured, connected=False)
        return SessionStatus(
            configured=True,
            connected=True,
            base_url=session.client.base_url,
            project_key=session.project_key,
            username=session.username,
            metadata_loaded=session.metadata_cache.is_ready,
        )

    async def ready_jira_session(self) -> JiraSession:
        """Get the JIRA session with its metadata loaded"""
        session = self.jira_session()
        if not session.metadata_cache.is_ready:
            await session.initialize_metadata()
        return session

    def template_repository(self, db: Session) -> ITemplateRepository:
        return SQLTemplateRepository(db)

    def template_service(self, db: Session) -> TemplateService:
        return TemplateService(
            repository=self.template_repository(db),
            username=settings.jira_username,
            project_key=settings.jira_project_key,
        )

    async def shutdown(self) -> None:
        if self._jira_session is not None:
            await self._jira_session.close()
            self._jira_session = None


# Global container instance
container = Container()


# Dependency providers for FastAPI
def get_container() -> Container:
    """FastAPI dependency for the container itself"""
    return container


async def get_jira_session() -> JiraSession:
    """FastAPI dependency for the initialized JIRA session"""
    return await container.ready_jira_session()


def get_orchestration_service(session: JiraSession = Depends(get_jira_session)) -> OrchestrationService:
    """FastAPI dependency for record orchestration"""
    return session.orchestrator


def get_metadata_cache(session: JiraSession = Depends(get_jira_session)) -> MetadataCache:
    """FastAPI dependency for the session metadata cache"""
    return session.metadata_cache


def get_issue_validator(session: JiraSession = Depends(get_jira_session)) -> IssueValidator:
    """FastAPI dependency for issue key validation"""
    return session.validator


def get_template_service(db: Session = Depends(get_database)) -> TemplateService:
    """FastAPI dependency for template service"""
    return container.template_service(db)
