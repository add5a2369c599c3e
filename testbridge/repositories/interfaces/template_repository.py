from abc import ABC, abstractmethod
from typing import List, Optional
from testbridge.models.schemas import Template, TemplateCreate, TemplateIssueType


class ITemplateRepository(ABC):
    """Interface for template storage operations"""

    @abstractmethod
    async def save(self, template: TemplateCreate) -> Template:
        """Create a template, or update it when ``template.id`` exists"""
        pass

    @abstractmethod
    async def get_by_id(self, template_id: str) -> Optional[Template]:
        pass

    @abstractmethod
    async def get_all(self, issue_type: Optional[TemplateIssueType] = None) -> List[Template]:
        pass

    @abstractmethod
    async def delete(self, template_id: str) -> bool:
        pass

    @abstractmethod
    async def count(self) -> int:
        pass
