import re
import uuid
from typing import List, Optional
from sqlalchemy.orm import Session
from testbridge.repositories.interfaces.template_repository import ITemplateRepository
from testbridge.models.database import TemplateModel
from testbridge.models.schemas import Template, TemplateCreate, TemplateIssueType


def _slugify(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug or "template"


class SQLTemplateRepository(ITemplateRepository):
    """SQLAlchemy implementation of template repository"""

    def __init__(self, db: Session):
        self.db = db

    async def save(self, template: TemplateCreate) -> Template:
        """Create a new template or update an existing one"""
        data = template.model_dump(exclude={"id"})
        db_template = None
        if template.id:
            db_template = self.db.query(TemplateModel).filter(TemplateModel.id == template.id).first()

        if db_template is None:
            template_id = template.id or f"{_slugify(template.name)}-{uuid.uuid4().hex[:8]}"
            db_template = TemplateModel(id=template_id, **data)
            self.db.add(db_template)
        else:
            for field, value in data.items():
                setattr(db_template, field, value)

        self.db.commit()
        self.db.refresh(db_template)
        return Template.model_validate(db_template)

    async def get_by_id(self, template_id: str) -> Optional[Template]:
        db_template = self.db.query(TemplateModel).filter(TemplateModel.id == template_id).first()
        if db_template:
            return Template.model_validate(db_template)
        return None

    async def get_all(self, issue_type: Optional[TemplateIssueType] = None) -> List[Template]:
        query = self.db.query(TemplateModel)
        if issue_type is not None:
            query = query.filter(TemplateModel.issue_type == issue_type)
        return [Template.model_validate(t) for t in query.order_by(TemplateModel.created_at, TemplateModel.id).all()]

    async def delete(self, template_id: str) -> bool:
        db_template = self.db.query(TemplateModel).filter(TemplateModel.id == template_id).first()
        if not db_template:
            return False

        self.db.delete(db_template)
        self.db.commit()
        return True

    async def count(self) -> int:
        return self.db.query(TemplateModel).count()
