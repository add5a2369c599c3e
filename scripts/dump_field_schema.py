"""
Print the creation schema JIRA reports for the test record types.

Connects with the settings from .env, loads the project metadata and prints
each issue type's field descriptors in the order the API serves them
(required fields first, then the common fields). Handy when a new required
custom field starts rejecting record creation.

Usage examples:
  python scripts/dump_field_schema.py
  python scripts/dump_field_schema.py --issue-type "Test Execution" --all
  python scripts/dump_field_schema.py --json > schema.json
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

# Ensure repo root on sys.path
ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from testbridge.config.settings import settings
from testbridge.core.errors import ServiceError
from testbridge.core.session import JiraSession


async def dump(issue_types, all_fields: bool, as_json: bool) -> int:
    session = JiraSession.from_settings(settings)
    try:
        await session.initialize_metadata()
        output = {}
        for type_name in issue_types:
            try:
                fields = await session.orchestrator.get_fields_for_issue_type(type_name)
            except ServiceError as e:
                print(f"{type_name}: {e.kind.value}: {e.message}", file=sys.stderr)
                continue
            if all_fields:
                issue_type = session.metadata_cache.find_issue_type(type_name)
                fields = session.metadata_cache.get_all_fields(issue_type.id)
            output[type_name] = [field.model_dump(mode="json") for field in fields]

        if as_json:
            print(json.dumps(output, indent=2))
            return 0

        for type_name, fields in output.items():
            print(f"== {type_name} ({len(fields)} fields)")
            for field in fields:
                marker = "*" if field["required"] else " "
                wrapper = f" wrap={field['wrapper_key']}" if field["wrapper_key"] else ""
                print(f" {marker} {field['key']:<22} {field['name']:<28} {field['shape']}{wrapper}")
        return 0
    finally:
        await session.close()


def main() -> int:
    parser = argparse.ArgumentParser(description="Print JIRA creation schema for test record types")
    parser.add_argument(
        "--issue-type",
        action="append",
        dest="issue_types",
        help="Issue type name (repeatable). Defaults to PRELOAD_ISSUE_TYPES.",
    )
    parser.add_argument("--all", action="store_true", help="Print every field, not only required and common ones")
    parser.add_argument("--json", action="store_true", help="Print JSON instead of a table")
    args = parser.parse_args()

    issue_types = args.issue_types or settings.preload_issue_types
    try:
        return asyncio.run(dump(issue_types, args.all, args.json))
    except ServiceError as e:
        print(f"Error: {e.kind.value}: {e.message}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
