from unittest.mock import AsyncMock

import pytest

from testbridge.core.errors import ErrorKind, ServiceError
from testbridge.models.metadata import FieldShape, MetadataSnapshot, NamedItem
from testbridge.services.metadata_cache import MetadataCache, normalize_create_meta

COMMON = ("summary", "description", "priority", "labels")

CREATE_META = {
    "values": [
        {"fieldId": "description", "name": "Description", "required": False, "schema": {"type": "string"}},
        {"fieldId": "customfield_500", "name": "Team", "required": True, "schema": {"type": "string"}},
        {"fieldId": "summary", "name": "Summary", "required": True, "schema": {"type": "string"}},
        {"fieldId": "labels", "name": "Labels", "required": False, "schema": {"type": "array", "items": "string"}},
        {"fieldId": "priority", "name": "Priority", "required": False, "schema": {"type": "priority"}},
        {"fieldId": "customfield_777", "name": "Notes", "required": False, "schema": {"type": "any"}},
    ]
}


def snapshot(**overrides) -> MetadataSnapshot:
    data = {
        "issue_types": [NamedItem(id="10100", name="Test"), NamedItem(id="10101", name="Test Set")],
        "priorities": [NamedItem(id="1", name="High"), NamedItem(id="3", name="Medium")],
        "components": [NamedItem(id="200", name="Backend"), NamedItem(id="202", name="Billing")],
        "versions": [NamedItem(id="300", name="1.0")],
        "fields": [{"id": "customfield_10020", "name": "Sprint", "schema": {"type": "array", "items": "string"}}],
    }
    data.update(overrides)
    return MetadataSnapshot(**data)


def test_descriptors_required_first_then_common_fields():
    cache = MetadataCache(common_fields=COMMON)
    cache.cache_issue_type_metadata("10100", "Test", CREATE_META)

    keys = [d.key for d in cache.get_field_descriptors("10100")]

    assert keys == ["customfield_500", "summary", "description", "priority", "labels"]
    assert len(keys) == len(set(keys))
    assert len(cache.get_all_fields("10100")) == 6


def test_unknown_schema_is_kept_as_string():
    cache = MetadataCache(common_fields=COMMON)
    cache.cache_issue_type_metadata("10100", "Test", CREATE_META)

    notes = cache.get_field_descriptor("customfield_777", "10100")
    assert notes.shape is FieldShape.FALLBACK
    assert notes.field_schema.type == "string"


def test_initialize_is_idempotent():
    cache = MetadataCache()
    cache.initialize(snapshot())
    cache.initialize(snapshot(priorities=[NamedItem(id="9", name="Blocker")]))

    assert cache.is_ready
    assert [p.name for p in cache.priorities] == ["High", "Medium"]


def test_field_lookup_falls_back_to_global_dictionary():
    cache = MetadataCache(common_fields=COMMON)
    cache.initialize(snapshot())
    cache.cache_issue_type_metadata("10100", "Test", CREATE_META)

    assert cache.get_field_descriptor("customfield_500", "10101").name == "Team"
    sprint = cache.get_field_descriptor("customfield_10020", "10100")
    assert sprint.shape is FieldShape.SCALAR_LIST
    assert cache.get_field_descriptor("customfield_404") is None


@pytest.mark.asyncio
async def test_schema_is_loaded_lazily_once():
    loader = AsyncMock(return_value=CREATE_META)
    cache = MetadataCache(create_meta_loader=loader, common_fields=COMMON)

    first = await cache.ensure_issue_type_metadata("10100", "Test")
    second = await cache.ensure_issue_type_metadata("10100", "Test")

    loader.assert_awaited_once_with("10100")
    assert first is second
    assert first.required_keys == ["customfield_500", "summary"]


@pytest.mark.asyncio
async def test_missing_loader_is_reported():
    cache = MetadataCache()
    with pytest.raises(ServiceError) as exc_info:
        await cache.ensure_issue_type_metadata("10100", "Test")
    assert exc_info.value.kind is ErrorKind.UNKNOWN


def test_reference_lookups():
    cache = MetadataCache()
    cache.initialize(snapshot())

    assert cache.find_issue_type("test set").id == "10101"
    assert cache.find_issue_type("Epic") is None
    assert cache.get_priority_by_id("3").name == "Medium"
    assert cache.get_priority_by_name("high").id == "1"
    assert cache.get_component_by_id("202").name == "Billing"
    assert cache.get_version_by_name("1.0").id == "300"
    assert cache.suggest_components("bil") == ["Billing"]
    assert cache.suggest_components() == ["Backend", "Billing"]


def test_clear_drops_everything():
    cache = MetadataCache(common_fields=COMMON)
    cache.initialize(snapshot())
    cache.cache_issue_type_metadata("10100", "Test", CREATE_META)

    cache.clear()

    assert not cache.is_ready
    assert cache.issue_types == []
    assert cache.get_field_descriptors("10100") == []
    cache.initialize(snapshot(versions=[]))
    assert cache.versions == []


def test_create_meta_variants_normalize_the_same():
    legacy = {
        "projects": [{
            "key": "PROJ",
            "issuetypes": [{
                "id": "10100",
                "fields": {
                    "summary": {"name": "Summary", "required": True, "schema": {"type": "string"}},
                    "components": {"name": "Component/s", "schema": {"type": "array", "items": "component"}},
                },
            }],
        }]
    }
    current = {
        "values": [
            {"fieldId": "summary", "name": "Summary", "required": True, "schema": {"type": "string"}},
            {"fieldId": "components", "name": "Component/s", "schema": {"type": "array", "items": "component"}},
        ]
    }

    assert normalize_create_meta(legacy) == normalize_create_meta(current)
