from sqlalchemy import Column, String, Text, DateTime, Enum, JSON
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func
from testbridge.models.schemas import TemplateIssueType

Base = declarative_base()


class TemplateModel(Base):
    __tablename__ = "templates"

    id = Column(String(100), primary_key=True, index=True)
    name = Column(String(255), nullable=False, index=True)
    issue_type = Column(
        Enum(TemplateIssueType, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        index=True,
    )
    description = Column(Text, nullable=True)
    # Field values may contain {{variable}} placeholders
    fields = Column(JSON, nullable=False, default=dict)
    variables = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<Template(id='{self.id}', name='{self.name}', issue_type='{self.issue_type}')>"
