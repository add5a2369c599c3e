import asyncio
import re
from typing import Dict, Iterable, List, Optional

import structlog

from testbridge.core.cache import SessionCache
from testbridge.core.errors import ErrorKind, ServiceError
from testbridge.models.schemas import ISSUE_KEY_PATTERN, ValidationResult
from testbridge.repositories.interfaces.jira_service import IJiraService

logger = structlog.get_logger()

ISSUE_KEY_RE = re.compile(ISSUE_KEY_PATTERN)
FORMAT_ERROR = "Invalid issue key format (expected: ABC-123)"
LOOKUP_FIELDS = "key,summary,issuetype,status"


def normalize_issue_key(key: Optional[str]) -> str:
    return (key or "").strip().upper()


class IssueValidator:
    """Resolve issue keys against the tracker with a per-session cache.

    The cache holds the raw lookup (exists, type, summary) keyed by the
    normalized key only. Issue type allowlists are applied on every call on
    top of the cached lookup, so a verdict is never reused across allowlists.
    "Not found" is cached; transient failures are reported but not cached.
    """

    def __init__(self, jira_service: IJiraService, cache: Optional[SessionCache] = None):
        self.jira_service = jira_service
        self._cache = cache if cache is not None else SessionCache()

    async def validate_one(self, key: str, accepted_types: Optional[Iterable[str]] = None) -> ValidationResult:
        normalized = normalize_issue_key(key)
        if not ISSUE_KEY_RE.match(normalized):
            return ValidationResult(
                key=normalized or (key or ""),
                valid=False,
                exists=False,
                error=FORMAT_ERROR,
                error_kind=ErrorKind.VALIDATION_ERROR.value,
            )

        lookup = self._cache.get(normalized)
        if lookup is None:
            lookup = await self._lookup(normalized)
        return self._apply_type_filter(lookup, accepted_types)

    async def validate_many(
        self, keys: List[str], accepted_types: Optional[Iterable[str]] = None
    ) -> Dict[str, ValidationResult]:
        """One result per input key; duplicates share a single lookup."""
        accepted = list(accepted_types) if accepted_types else None
        unique = list(dict.fromkeys(normalize_issue_key(key) for key in keys))

        logger.info("Validating issue keys", requested=len(keys), unique=len(unique))
        results = await asyncio.gather(*(self.validate_one(key, accepted) for key in unique))
        by_key = dict(zip(unique, results))
        return {key: by_key[normalize_issue_key(key)] for key in keys}

    def clear_cache(self) -> None:
        self._cache.clear()

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    async def _lookup(self, key: str) -> ValidationResult:
        try:
            issue = await self.jira_service.get_issue(key, fields=LOOKUP_FIELDS)
        except ServiceError as e:
            if e.kind is ErrorKind.NOT_FOUND:
                result = ValidationResult(
                    key=key,
                    valid=False,
                    exists=False,
                    error=f"Issue {key} does not exist",
                    error_kind=e.kind.value,
                )
                self._cache.set(key, result)
                return result

            logger.warning("Issue lookup failed", issue_key=key, kind=e.kind.value, error=e.message)
            return ValidationResult(key=key, valid=False, exists=False, error=e.message, error_kind=e.kind.value)

        if not isinstance(issue, dict):
            logger.warning("Issue lookup returned an unexpected body", issue_key=key)
            return ValidationResult(
                key=key,
                valid=False,
                exists=False,
                error="Unexpected response for issue lookup",
                error_kind=ErrorKind.REMOTE_ERROR.value,
            )

        fields = issue.get("fields") or {}
        result = ValidationResult(
            key=key,
            valid=True,
            exists=True,
            issue_type=(fields.get("issuetype") or {}).get("name"),
            summary=fields.get("summary"),
        )
        self._cache.set(key, result)
        return result

    @staticmethod
    def _apply_type_filter(lookup: ValidationResult, accepted_types: Optional[Iterable[str]]) -> ValidationResult:
        accepted = list(accepted_types) if accepted_types else []
        if not accepted or not lookup.exists:
            return lookup.model_copy()

        actual = lookup.issue_type or ""
        if actual.casefold() in {name.casefold() for name in accepted}:
            return lookup.model_copy()

        return lookup.model_copy(update={
            "valid": False,
            "error": f"Expected {' or '.join(accepted)}, got {actual or 'unknown type'}",
            "error_kind": ErrorKind.VALIDATION_ERROR.value,
        })
