from __future__ import annotations

import time
from base64 import b64encode
from typing import Any, Dict, Optional, Tuple

import httpx
import structlog

from testbridge.core.concurrency import ConcurrencyGate
from testbridge.core.errors import (
    ErrorKind,
    ServiceError,
    classify_exception,
    classify_response,
    validation_error,
)

logger = structlog.get_logger()

DEFAULT_MAX_CONCURRENCY = 5
DEFAULT_TIMEOUT_SECONDS = 30.0


def build_basic_token(username: str, api_token: str) -> str:
    """Encode ``username:api_token`` for a Basic ``Authorization`` header"""
    return b64encode(f"{username}:{api_token}".encode()).decode()


def normalize_base_url(base_url: Optional[str]) -> str:
    """Validate the configured URL and reduce it to ``scheme://host[:port]``."""
    if not base_url or not base_url.strip():
        raise validation_error("JIRA base URL is required")
    try:
        url = httpx.URL(base_url.strip())
    except httpx.InvalidURL as e:
        raise validation_error(f"Invalid JIRA URL: {base_url}", {"error": str(e)}) from e
    if url.scheme not in ("http", "https") or not url.host:
        raise validation_error(f"Invalid JIRA URL: {base_url}")
    return f"{url.scheme}://{url.netloc.decode('ascii')}"


class RemoteClient:
    """Bounded-concurrency JSON client for the remote tracker.

    Every call goes through one shared :class:`ConcurrencyGate`. Failures
    never escape as raw ``httpx`` exceptions; they are classified into a
    :class:`~testbridge.core.errors.ServiceError` here and nowhere else. Nothing is retried.
    """

    def __init__(
        self,
        base_url: str,
        auth_token: Optional[str],
        auth_scheme: str = "Basic",
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = normalize_base_url(base_url)
        self.gate = ConcurrencyGate(max_concurrency)
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        if auth_token:
            headers["Authorization"] = f"{auth_scheme} {auth_token}"
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def call(
        self,
        method: str,
        path: str,
        body: Any = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Issue one request and return the parsed body (``None`` when empty)."""
        async with self.gate:
            start_time = time.time()
            try:
                response = await self._client.request(method, path, json=body, params=params)
            except Exception as e:
                error = classify_exception(e)
                logger.error(
                    "Remote call failed",
                    method=method,
                    path=path,
                    kind=error.kind.value,
                    error=str(e),
                )
                raise error from e

            duration = time.time() - start_time
            payload, is_json = self._parse_body(response)

            if response.is_success and is_json:
                logger.debug(
                    "Remote call completed",
                    method=method,
                    path=path,
                    status_code=response.status_code,
                    duration=duration,
                )
                return payload

            if response.is_success:
                # e.g. an SSO login page served with 200
                error = ServiceError(
                    ErrorKind.REMOTE_ERROR,
                    "Unexpected non-JSON response",
                    {"content_type": response.headers.get("content-type"), "body": payload[:500]},
                    response.status_code,
                )
            else:
                error = classify_response(response.status_code, payload)
            logger.warning(
                "Remote call rejected",
                method=method,
                path=path,
                status_code=response.status_code,
                kind=error.kind.value,
                message=error.message,
                duration=duration,
            )
            raise error

    async def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return await self.call("GET", path, params=params)

    async def post(self, path: str, body: Any = None) -> Any:
        return await self.call("POST", path, body=body)

    async def put(self, path: str, body: Any = None) -> Any:
        return await self.call("PUT", path, body=body)

    async def aclose(self) -> None:
        await self._client.aclose()

    @staticmethod
    def _parse_body(response: httpx.Response) -> Tuple[Any, bool]:
        """Parsed body and whether it was JSON; an empty body counts as JSON ``None``."""
        if not response.content:
            return None, True
        try:
            return response.json(), True
        except ValueError:
            return response.text, False
