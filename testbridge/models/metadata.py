from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
from enum import Enum


class FieldShape(str, Enum):
    """How a field's value is represented on the wire."""
    SCALAR = "scalar"
    SCALAR_LIST = "scalar_list"
    SINGLE_REFERENCE = "single_reference"
    REFERENCE_LIST = "reference_list"
    FALLBACK = "fallback"


class FieldSchema(BaseModel):
    type: str = "string"
    items_type: Optional[str] = None
    system: Optional[str] = None
    custom: Optional[str] = None

    class Config:
        frozen = True


class FieldDescriptor(BaseModel):
    key: str = Field(..., description="Remote field id, e.g. 'priority' or 'customfield_13900'")
    name: str
    required: bool = False
    field_schema: FieldSchema = Field(default_factory=FieldSchema)
    allowed_values: Optional[List[Any]] = None
    has_default: bool = False
    shape: FieldShape = FieldShape.FALLBACK
    wrapper_key: Optional[str] = Field(None, description="Key used to wrap reference values, e.g. 'id'")

    class Config:
        frozen = True


class IssueTypeMetadata(BaseModel):
    id: str
    name: str
    fields: Dict[str, FieldDescriptor] = Field(default_factory=dict)
    required_keys: List[str] = Field(default_factory=list)


class NamedItem(BaseModel):
    id: str
    name: str
    description: Optional[str] = None

    @classmethod
    def from_remote(cls, raw: Dict[str, Any]) -> "NamedItem":
        return cls(
            id=str(raw.get("id", "")),
            name=str(raw.get("name", "")),
            description=raw.get("description"),
        )


class MetadataSnapshot(BaseModel):
    """Everything fetched in bulk at session start."""
    issue_types: List[NamedItem] = Field(default_factory=list)
    priorities: List[NamedItem] = Field(default_factory=list)
    components: List[NamedItem] = Field(default_factory=list)
    versions: List[NamedItem] = Field(default_factory=list)
    fields: List[Dict[str, Any]] = Field(default_factory=list, description="Raw /field dictionary entries")
