import asyncio
from typing import List, Optional

import httpx
import structlog

from testbridge.config.settings import Settings, settings
from testbridge.core.errors import ErrorKind, ServiceError, validation_error
from testbridge.core.remote_client import RemoteClient, build_basic_token
from testbridge.models.metadata import MetadataSnapshot, NamedItem
from testbridge.repositories.implementations.jira_service import XrayJiraService
from testbridge.services.issue_validator import IssueValidator
from testbridge.services.metadata_cache import MetadataCache
from testbridge.services.orchestration_service import OrchestrationService

logger = structlog.get_logger()


class JiraSession:
    """One configured connection and every cache that belongs to it.

    The remote client, metadata cache and validation cache live exactly as
    long as the session; a new session starts with empty caches.
    """

    def __init__(
        self,
        base_url: str,
        project_key: str,
        auth_token: Optional[str],
        auth_scheme: str = "Basic",
        username: Optional[str] = None,
        max_concurrency: int = 5,
        timeout: float = 30.0,
        preload_issue_types: Optional[List[str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not project_key or not project_key.strip():
            raise validation_error("JIRA project key is required")

        self.project_key = project_key.strip().upper()
        self.username = username
        self.preload_issue_types = list(preload_issue_types or [])

        self.client = RemoteClient(
            base_url,
            auth_token,
            auth_scheme=auth_scheme,
            max_concurrency=max_concurrency,
            timeout=timeout,
            transport=transport,
        )
        self.jira_service = XrayJiraService(self.client, self.project_key)
        self.metadata_cache = MetadataCache(create_meta_loader=self.jira_service.get_create_meta)
        self.validator = IssueValidator(self.jira_service)
        self.orchestrator = OrchestrationService(
            jira_service=self.jira_service,
            metadata_cache=self.metadata_cache,
            validator=self.validator,
            project_key=self.project_key,
        )

    @classmethod
    def from_settings(
        cls, config: Settings = settings, transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> "JiraSession":
        token = config.jira_auth_token
        if not token and config.jira_username and config.jira_api_token:
            token = build_basic_token(config.jira_username, config.jira_api_token)
        if not config.jira_base_url or not config.jira_project_key or not token:
            raise ServiceError(ErrorKind.AUTH_FAILED, "JIRA connection is not configured")

        return cls(
            base_url=config.jira_base_url,
            project_key=config.jira_project_key,
            auth_token=token,
            auth_scheme=config.jira_auth_scheme,
            username=config.jira_username,
            max_concurrency=config.max_concurrent_requests,
            timeout=config.request_timeout_seconds,
            preload_issue_types=config.preload_issue_types,
            transport=transport,
        )

    async def initialize_metadata(self) -> None:
        """Load reference lists and preload the creation schema of the test types.

        Reference list failures propagate; a failure to preload one issue
        type only logs a warning, that type is loaded lazily later.
        """
        if self.metadata_cache.is_ready:
            return

        logger.info("Initializing metadata", project_key=self.project_key)
        issue_types, priorities, components, versions, fields = await asyncio.gather(
            self.jira_service.get_issue_types(),
            self.jira_service.get_priorities(),
            self.jira_service.get_components(),
            self.jira_service.get_versions(),
            self.jira_service.get_all_fields(),
        )
        self.metadata_cache.initialize(MetadataSnapshot(
            issue_types=[NamedItem.from_remote(raw) for raw in issue_types],
            priorities=[NamedItem.from_remote(raw) for raw in priorities],
            components=[NamedItem.from_remote(raw) for raw in components],
            versions=[NamedItem.from_remote(raw) for raw in versions],
            fields=list(fields),
        ))

        for type_name in self.preload_issue_types:
            issue_type = self.metadata_cache.find_issue_type(type_name)
            if issue_type is None:
                logger.warning("Issue type not available in project", issue_type=type_name)
                continue
            try:
                await self.metadata_cache.ensure_issue_type_metadata(issue_type.id, issue_type.name)
            except ServiceError as e:
                logger.warning(
                    "Failed to cache issue type metadata",
                    issue_type=type_name,
                    kind=e.kind.value,
                    error=e.message,
                )

        logger.info("Metadata initialization complete", project_key=self.project_key)

    async def close(self) -> None:
        await self.client.aclose()
        self.metadata_cache.clear()
        self.validator.clear_cache()
