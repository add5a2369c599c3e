"""
testbridge

FastAPI backend that creates Xray test records (Test, Test Set, Test Execution)
in JIRA from templates and the project's live field schema, and links them to
stories, test plans and each other.

Usage:
1. Create a .env with JIRA_BASE_URL, JIRA_PROJECT_KEY, JIRA_USERNAME and
   JIRA_API_TOKEN (or a pre-encoded JIRA_AUTH_TOKEN)
2. Install: pip install -e ".[test]"
3. Run the application: python main.py
4. Access API docs at: http://localhost:8000/api/v1/docs

API Endpoints:
- GET  /api/v1/metadata/issue-types/{name}/fields - Field descriptors for a type
- GET  /api/v1/metadata/priorities|components|versions|link-types - Reference lists
- POST /api/v1/issues/validate - Validate many issue keys at once
- POST /api/v1/records/tests - Create a Test with steps and a story link
- POST /api/v1/records/tests/batch - Create many Tests
- POST /api/v1/records/test-sets - Create a Test Set with members
- POST /api/v1/records/test-executions - Create a Test Execution with members
- POST /api/v1/records/workflow - Tests, Test Set and Test Execution for a story
- GET/POST/DELETE /api/v1/templates - Template storage
- POST /api/v1/templates/{id}/apply - Fill a template's variables
- GET  /api/v1/health - Health check

Architecture Components:

1. Controllers (testbridge/api/routes/):
   - HTTP endpoints, every response is {success, data, error}

2. Services (testbridge/services/):
   - Metadata cache, field value transformer, issue validator,
     record orchestration and templates

3. Repositories (testbridge/repositories/):
   - JIRA/Xray REST endpoints and SQL template storage behind interfaces

4. Models (testbridge/models/):
   - Pydantic schemas, field descriptors and SQLAlchemy models

5. Core (testbridge/core/):
   - Bounded-concurrency remote client, error taxonomy, session,
     database and dependency injection

6. Configuration (testbridge/config/):
   - Environment-based settings
"""

__version__ = "1.0.0"
__description__ = "Schema-driven creation and linking of Xray test records in JIRA"
