from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

import structlog

from testbridge.config.settings import settings
from testbridge.core.errors import ErrorKind, ServiceError
from testbridge.models.metadata import (
    FieldDescriptor,
    FieldSchema,
    FieldShape,
    IssueTypeMetadata,
    MetadataSnapshot,
    NamedItem,
)

logger = structlog.get_logger()

CreateMetaLoader = Callable[[str], Awaitable[Any]]

SCALAR_TYPES = {"string", "number", "date", "datetime"}

# Wrapper key the remote expects for each reference type
REFERENCE_WRAPPERS = {
    "priority": "id",
    "issuetype": "id",
    "securitylevel": "id",
    "user": "name",
    "group": "name",
    "version": "name",
    "component": "name",
    "resolution": "name",
    "option": "value",
    "project": "key",
}


def default_common_fields() -> Tuple[str, ...]:
    return (
        "summary",
        "description",
        "priority",
        "assignee",
        "reporter",
        "labels",
        "components",
        "fixVersions",
        "duedate",
        "environment",
        settings.test_type_field,
        settings.environments_field,
    )


def classify_shape(
    schema_type: Optional[str], items_type: Optional[str]
) -> Tuple[FieldShape, Optional[str]]:
    """Resolve a remote schema type to a :class:`FieldShape` and wrapper key."""
    if schema_type == "array":
        if items_type in REFERENCE_WRAPPERS:
            return FieldShape.REFERENCE_LIST, REFERENCE_WRAPPERS[items_type]
        return FieldShape.SCALAR_LIST, None
    if schema_type in REFERENCE_WRAPPERS:
        return FieldShape.SINGLE_REFERENCE, REFERENCE_WRAPPERS[schema_type]
    if schema_type in SCALAR_TYPES:
        return FieldShape.SCALAR, None
    return FieldShape.FALLBACK, None


def normalize_field(raw: Any, key_hint: Optional[str] = None) -> Optional[FieldDescriptor]:
    """Turn one remote field payload into a :class:`FieldDescriptor`.

    Fields whose schema cannot be classified are kept as ``fallback``
    string fields instead of being dropped.
    """
    if not isinstance(raw, dict):
        return None
    key = raw.get("fieldId") or raw.get("key") or raw.get("id") or key_hint
    if not key:
        return None

    schema = raw.get("schema") if isinstance(raw.get("schema"), dict) else {}
    schema_type = schema.get("type")
    items_type = schema.get("items")
    shape, wrapper_key = classify_shape(schema_type, items_type)

    if shape is FieldShape.FALLBACK:
        field_schema = FieldSchema(type="string", system=schema.get("system"), custom=schema.get("custom"))
    else:
        field_schema = FieldSchema(
            type=schema_type,
            items_type=items_type,
            system=schema.get("system"),
            custom=schema.get("custom"),
        )

    allowed_values = raw.get("allowedValues")
    return FieldDescriptor(
        key=str(key),
        name=str(raw.get("name") or key),
        required=bool(raw.get("required", False)),
        field_schema=field_schema,
        allowed_values=list(allowed_values) if isinstance(allowed_values, list) else None,
        has_default=bool(raw.get("hasDefaultValue", False)),
        shape=shape,
        wrapper_key=wrapper_key,
    )


def _iter_raw_fields(payload: Any) -> Iterable[Tuple[Optional[str], Any]]:
    # createmeta/{project}/issuetypes/{id} -> {"values": [...]}
    if isinstance(payload, dict) and isinstance(payload.get("values"), list):
        return [(None, item) for item in payload["values"]]
    # legacy createmeta?expand=projects.issuetypes.fields
    if isinstance(payload, dict) and isinstance(payload.get("projects"), list):
        for project in payload["projects"]:
            for issue_type in project.get("issuetypes") or []:
                return _iter_raw_fields(issue_type)
        return []
    if isinstance(payload, dict) and isinstance(payload.get("fields"), dict):
        return list(payload["fields"].items())
    if isinstance(payload, dict) and isinstance(payload.get("fields"), list):
        return [(None, item) for item in payload["fields"]]
    if isinstance(payload, list):
        return [(None, item) for item in payload]
    return []


def normalize_create_meta(payload: Any) -> List[FieldDescriptor]:
    """Normalize any of the createmeta payload variants, keeping remote order."""
    descriptors: List[FieldDescriptor] = []
    seen = set()
    for key_hint, raw in _iter_raw_fields(payload):
        descriptor = normalize_field(raw, key_hint)
        if descriptor is None or descriptor.key in seen:
            continue
        seen.add(descriptor.key)
        descriptors.append(descriptor)
    return descriptors


class MetadataCache:
    """Session-scoped store of the remote field schema.

    Owned by a :class:`~testbridge.core.session.JiraSession`; nothing here is
    shared between sessions. Per-type schemas are loaded lazily through the
    injected ``create_meta_loader`` and never invalidated until :meth:`clear`.
    """

    def __init__(
        self,
        create_meta_loader: Optional[CreateMetaLoader] = None,
        common_fields: Optional[Sequence[str]] = None,
    ) -> None:
        self._loader = create_meta_loader
        self._common_fields = tuple(common_fields) if common_fields is not None else default_common_fields()
        self._issue_type_metadata: Dict[str, IssueTypeMetadata] = {}
        self._issue_types: List[NamedItem] = []
        self._priorities: List[NamedItem] = []
        self._components: List[NamedItem] = []
        self._versions: List[NamedItem] = []
        self._global_fields: Dict[str, FieldDescriptor] = {}
        self._initialized = False

    # ---- population ----

    def initialize(self, snapshot: MetadataSnapshot) -> None:
        if self._initialized:
            logger.warning("Metadata cache already initialized; ignoring snapshot")
            return

        self._issue_types = list(snapshot.issue_types)
        self._priorities = list(snapshot.priorities)
        self._components = list(snapshot.components)
        self._versions = list(snapshot.versions)
        for raw in snapshot.fields:
            descriptor = normalize_field(raw)
            if descriptor is not None:
                self._global_fields[descriptor.key] = descriptor

        self._initialized = True
        logger.info(
            "Metadata cache initialized",
            issue_types=len(self._issue_types),
            priorities=len(self._priorities),
            components=len(self._components),
            versions=len(self._versions),
            fields=len(self._global_fields),
        )

    def cache_issue_type_metadata(self, type_id: str, type_name: str, create_meta: Any) -> IssueTypeMetadata:
        descriptors = normalize_create_meta(create_meta)
        metadata = IssueTypeMetadata(
            id=str(type_id),
            name=type_name,
            fields={d.key: d for d in descriptors},
            required_keys=[d.key for d in descriptors if d.required],
        )
        self._issue_type_metadata[metadata.id] = metadata
        logger.info(
            "Cached issue type metadata",
            issue_type=type_name,
            type_id=metadata.id,
            fields=len(descriptors),
            required=len(metadata.required_keys),
        )
        return metadata

    async def ensure_issue_type_metadata(self, type_id: str, type_name: str) -> IssueTypeMetadata:
        cached = self._issue_type_metadata.get(str(type_id))
        if cached is not None:
            return cached
        if self._loader is None:
            raise ServiceError(ErrorKind.UNKNOWN, f"No schema loader configured for issue type {type_name}")
        create_meta = await self._loader(str(type_id))
        return self.cache_issue_type_metadata(type_id, type_name, create_meta)

    def clear(self) -> None:
        self._issue_type_metadata.clear()
        self._issue_types = []
        self._priorities = []
        self._components = []
        self._versions = []
        self._global_fields.clear()
        self._initialized = False
        logger.info("Metadata cache cleared")

    @property
    def is_ready(self) -> bool:
        return self._initialized

    # ---- field lookups ----

    def get_issue_type_metadata(self, type_id: str) -> Optional[IssueTypeMetadata]:
        return self._issue_type_metadata.get(str(type_id))

    def get_field_descriptors(self, type_id: str) -> List[FieldDescriptor]:
        """Required fields first, then allowlisted common fields, each once."""
        metadata = self._issue_type_metadata.get(str(type_id))
        if metadata is None:
            return []

        ordered = [metadata.fields[key] for key in metadata.required_keys]
        seen = set(metadata.required_keys)
        for key in self._common_fields:
            if key in metadata.fields and key not in seen:
                ordered.append(metadata.fields[key])
                seen.add(key)
        return ordered

    def get_all_fields(self, type_id: str) -> List[FieldDescriptor]:
        metadata = self._issue_type_metadata.get(str(type_id))
        return list(metadata.fields.values()) if metadata else []

    def get_field_descriptor(self, key: str, type_id: Optional[str] = None) -> Optional[FieldDescriptor]:
        if type_id is not None:
            metadata = self._issue_type_metadata.get(str(type_id))
            if metadata and key in metadata.fields:
                return metadata.fields[key]
        for metadata in self._issue_type_metadata.values():
            if key in metadata.fields:
                return metadata.fields[key]
        return self._global_fields.get(key)

    # ---- reference lists ----

    @property
    def issue_types(self) -> List[NamedItem]:
        return list(self._issue_types)

    @property
    def priorities(self) -> List[NamedItem]:
        return list(self._priorities)

    @property
    def components(self) -> List[NamedItem]:
        return list(self._components)

    @property
    def versions(self) -> List[NamedItem]:
        return list(self._versions)

    def find_issue_type(self, name: str) -> Optional[NamedItem]:
        for issue_type in self._issue_types:
            if issue_type.name == name:
                return issue_type
        lowered = name.casefold()
        for issue_type in self._issue_types:
            if issue_type.name.casefold() == lowered:
                return issue_type
        return None

    def get_priority_by_id(self, priority_id: str) -> Optional[NamedItem]:
        return next((p for p in self._priorities if p.id == str(priority_id)), None)

    def get_priority_by_name(self, name: str) -> Optional[NamedItem]:
        lowered = name.casefold()
        return next((p for p in self._priorities if p.name.casefold() == lowered), None)

    def get_component_by_id(self, component_id: str) -> Optional[NamedItem]:
        return next((c for c in self._components if c.id == str(component_id)), None)

    def get_version_by_name(self, name: str) -> Optional[NamedItem]:
        return next((v for v in self._versions if v.name == name), None)

    def suggest_components(self, query: str = "") -> List[str]:
        if not query:
            return [c.name for c in self._components]
        lowered = query.casefold()
        return [c.name for c in self._components if lowered in c.name.casefold()]
