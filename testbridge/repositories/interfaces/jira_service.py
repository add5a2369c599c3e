from abc import ABC, abstractmethod
from typing import Optional, List, Dict, Any

from testbridge.models.schemas import TestStepInput, TestSummary


class IJiraService(ABC):
    """Interface for JIRA / Xray operations.

    Implementations raise :class:`~testbridge.core.errors.ServiceError` on
    failure; they never return sentinel values for errors.
    """

    # ---- issues ----

    @abstractmethod
    async def get_issue(self, issue_key: str, fields: Optional[str] = None) -> Dict[str, Any]:
        """Get an issue, optionally limited to a comma separated field list"""
        pass

    @abstractmethod
    async def create_issue(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Create an issue from a wire ``fields`` payload; returns ``{id, key, self}``"""
        pass

    @abstractmethod
    async def update_issue_fields(self, issue_key: str, fields: Dict[str, Any]) -> None:
        pass

    @abstractmethod
    async def link_issues(self, link_type: str, inward_key: str, outward_key: str) -> None:
        pass

    @abstractmethod
    async def search_tests_by_label(self, label: str) -> List[str]:
        pass

    @abstractmethod
    async def get_tests_by_keys(self, keys: List[str]) -> List[TestSummary]:
        pass

    # ---- Xray ----

    @abstractmethod
    async def add_test_step(self, test_key: str, step: TestStepInput) -> None:
        pass

    @abstractmethod
    async def get_test_steps(self, test_key: str) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    async def add_tests_to_set(self, test_set_key: str, test_keys: List[str]) -> None:
        pass

    @abstractmethod
    async def add_tests_to_execution(self, execution_key: str, test_keys: List[str]) -> None:
        pass

    @abstractmethod
    async def link_to_test_plan(self, execution_key: str, test_plan_key: str) -> None:
        pass

    @abstractmethod
    async def add_test_coverage(self, test_key: str, story_key: str) -> None:
        pass

    @abstractmethod
    async def remove_test_coverage(self, test_key: str, story_key: str) -> None:
        pass

    @abstractmethod
    async def get_test_coverage(self, test_key: str) -> List[Any]:
        pass

    # ---- metadata ----

    @abstractmethod
    async def get_issue_types(self) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    async def get_all_fields(self) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    async def get_create_meta(self, issue_type_id: str) -> Any:
        pass

    @abstractmethod
    async def get_priorities(self) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    async def get_components(self) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    async def get_versions(self) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    async def get_issue_link_types(self) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    async def get_project(self, project_key: Optional[str] = None) -> Dict[str, Any]:
        pass

    @abstractmethod
    async def get_label_suggestions(self, query: str = "") -> List[Dict[str, Any]]:
        pass
