"""Logical record field names and the remote fields they map to.

The remote createmeta is authoritative for field shapes. The schema hints
below are only used when the live schema does not describe a field (for
example when createmeta omits a field that the screen still accepts).
"""
from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel

from testbridge.config.settings import settings
from testbridge.models.metadata import FieldDescriptor
from testbridge.models.schemas import RecordType
from testbridge.services.metadata_cache import normalize_field


class LogicalField(BaseModel):
    name: str
    field_key: str
    schema_type: str
    items_type: Optional[str] = None

    def hint_descriptor(self) -> FieldDescriptor:
        schema: Dict[str, Any] = {"type": self.schema_type}
        if self.items_type:
            schema["items"] = self.items_type
        return normalize_field({"key": self.field_key, "name": self.name, "schema": schema})


def _common_fields() -> Dict[str, LogicalField]:
    return {
        "summary": LogicalField(name="summary", field_key="summary", schema_type="string"),
        "description": LogicalField(name="description", field_key="description", schema_type="string"),
        "priority": LogicalField(name="priority", field_key="priority", schema_type="priority"),
        "assignee": LogicalField(name="assignee", field_key="assignee", schema_type="user"),
        "reporter": LogicalField(name="reporter", field_key="reporter", schema_type="user"),
        "labels": LogicalField(name="labels", field_key="labels", schema_type="array", items_type="string"),
    }


def logical_fields_for(record_type: RecordType) -> Dict[str, LogicalField]:
    fields = _common_fields()
    if record_type is RecordType.TEST:
        fields.update({
            "test_type": LogicalField(name="test_type", field_key=settings.test_type_field, schema_type="option"),
            "components": LogicalField(
                name="components", field_key="components", schema_type="array", items_type="component"
            ),
            "fix_versions": LogicalField(
                name="fix_versions", field_key="fixVersions", schema_type="array", items_type="version"
            ),
            "environments": LogicalField(
                name="environments", field_key=settings.environments_field, schema_type="array", items_type="string"
            ),
            "due_date": LogicalField(name="due_date", field_key="duedate", schema_type="date"),
        })
    elif record_type is RecordType.TEST_SET:
        fields["components"] = LogicalField(
            name="components", field_key="components", schema_type="array", items_type="component"
        )
    elif record_type is RecordType.TEST_EXECUTION:
        fields.update({
            "fix_versions": LogicalField(
                name="fix_versions", field_key="fixVersions", schema_type="array", items_type="version"
            ),
            "environments": LogicalField(
                name="environments", field_key=settings.environments_field, schema_type="array", items_type="string"
            ),
        })
    return fields


def map_logical_values(record_type: RecordType, values: Dict[str, Any]) -> Dict[str, Any]:
    """Rename logical keys to remote field keys; unknown names pass through."""
    mapping = logical_fields_for(record_type)
    remote: Dict[str, Any] = {}
    for name, value in values.items():
        logical = mapping.get(name)
        remote[logical.field_key if logical else name] = value
    return remote


def schema_hints(record_type: RecordType) -> Dict[str, FieldDescriptor]:
    return {field.field_key: field.hint_descriptor() for field in logical_fields_for(record_type).values()}
