from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    # API Configuration
    debug: bool = False
    environment: str = "development"
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_prefix: str = "/api/v1"

    # JIRA connection (configure via environment)
    jira_base_url: Optional[str] = None
    jira_project_key: Optional[str] = None
    jira_username: Optional[str] = None
    jira_api_token: Optional[str] = None
    # Pre-encoded credential; takes precedence over username/api token
    jira_auth_token: Optional[str] = None
    jira_auth_scheme: str = "Basic"

    # Remote client limits
    max_concurrent_requests: int = 5
    request_timeout_seconds: float = 30.0

    # Xray custom fields
    test_type_field: str = "customfield_13900"
    tests_in_execution_field: str = "customfield_12415"
    tests_in_set_field: str = "customfield_12412"
    test_plans_field: str = "customfield_12409"
    environments_field: str = "customfield_12425"

    # Link type names
    test_link_type: str = "Tests"
    relates_link_type: str = "Relates"

    # Issue types whose creation schema is cached at session start
    preload_issue_types: list[str] = ["Test", "Test Set", "Test Execution"]

    # Template storage
    database_url: str = "sqlite:///./data/templates.db"
    max_templates: int = 100

    # Logging
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = False


# Global settings instance
settings = Settings()
