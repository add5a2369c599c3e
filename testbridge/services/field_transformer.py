"""Conversion between logical field values and the tracker's wire format.

``to_wire`` and ``from_wire`` are pure. The descriptor's shape decides the
wrapper; list shapes wrap each element. An empty logical value maps to
``None``, which payload builders treat as "leave the field out" so partial
updates never clobber remote values with an explicit null.
"""
from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Callable, Dict, List, Optional

from testbridge.core.errors import validation_error
from testbridge.models.metadata import FieldDescriptor, FieldSchema, FieldShape

DescriptorResolver = Callable[[str], Optional[FieldDescriptor]]

_UNWRAP_KEYS = ("name", "value", "key", "id")


def is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set, frozenset)):
        return len(value) == 0
    return False


def fallback_descriptor(key: str) -> FieldDescriptor:
    return FieldDescriptor(key=key, name=key, field_schema=FieldSchema(type="string"), shape=FieldShape.FALLBACK)


def _as_list(value: Any) -> List[Any]:
    if isinstance(value, (list, tuple, set, frozenset)):
        return list(value)
    return [value]


def _wrap(value: Any, descriptor: FieldDescriptor) -> Any:
    wrapper_key = descriptor.wrapper_key or "id"
    if isinstance(value, Mapping):
        # Already wrapped: leave as is
        if wrapper_key in value:
            return dict(value)
        raise validation_error(
            f"Field '{descriptor.name}' expects a value wrapped as {{'{wrapper_key}': ...}}",
            {"field": descriptor.key, "value": dict(value)},
        )
    return {wrapper_key: value}


def _unwrap(value: Any, descriptor: FieldDescriptor) -> Any:
    if not isinstance(value, Mapping):
        return value
    wrapper_key = descriptor.wrapper_key or "id"
    if wrapper_key in value:
        return value[wrapper_key]
    for key in _UNWRAP_KEYS:
        if key in value:
            return value[key]
    return dict(value)


def to_wire(value: Any, descriptor: FieldDescriptor) -> Any:
    """Logical value -> wire value, or ``None`` to omit the field."""
    if is_empty(value):
        return None

    shape = descriptor.shape
    if shape is FieldShape.SCALAR:
        if isinstance(value, (list, tuple, set, frozenset)):
            raise validation_error(
                f"Field '{descriptor.name}' expects a single value", {"field": descriptor.key}
            )
        return value

    if shape is FieldShape.SINGLE_REFERENCE:
        if isinstance(value, (list, tuple, set, frozenset)):
            raise validation_error(
                f"Field '{descriptor.name}' expects a single value", {"field": descriptor.key}
            )
        return _wrap(value, descriptor)

    if shape is FieldShape.SCALAR_LIST:
        items = [item for item in _as_list(value) if not is_empty(item)]
        return items or None

    if shape is FieldShape.REFERENCE_LIST:
        items = [_wrap(item, descriptor) for item in _as_list(value) if not is_empty(item)]
        return items or None

    # fallback: unknown remote shape, sent through untouched
    return value


def from_wire(wire: Any, descriptor: FieldDescriptor) -> Any:
    """Wire value -> logical value."""
    if wire is None:
        return None

    shape = descriptor.shape
    if shape is FieldShape.SINGLE_REFERENCE:
        return _unwrap(wire, descriptor)
    if shape is FieldShape.REFERENCE_LIST:
        return [_unwrap(item, descriptor) for item in _as_list(wire)]
    if shape is FieldShape.SCALAR_LIST:
        return _as_list(wire)
    return wire


def build_wire_fields(values: Mapping, resolve: DescriptorResolver) -> Dict[str, Any]:
    """Build a ``fields`` payload from ``{remote_key: logical_value}``.

    Keys without a known descriptor are treated as fallback string fields.
    """
    fields: Dict[str, Any] = {}
    for key, value in values.items():
        descriptor = resolve(key) or fallback_descriptor(key)
        wire = to_wire(value, descriptor)
        if wire is not None:
            fields[key] = wire
    return fields


def read_wire_fields(wire_fields: Mapping, resolve: DescriptorResolver) -> Dict[str, Any]:
    logical: Dict[str, Any] = {}
    for key, wire in wire_fields.items():
        descriptor = resolve(key) or fallback_descriptor(key)
        logical[key] = from_wire(wire, descriptor)
    return logical


def missing_required_fields(
    required: List[FieldDescriptor],
    wire_fields: Mapping,
    skip: tuple = ("project", "issuetype"),
) -> List[FieldDescriptor]:
    return [
        descriptor
        for descriptor in required
        if descriptor.key not in skip
        and not descriptor.has_default
        and descriptor.key not in wire_fields
    ]
