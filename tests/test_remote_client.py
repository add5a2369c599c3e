import asyncio

import httpx
import pytest

from testbridge.core.concurrency import ConcurrencyGate
from testbridge.core.errors import ErrorKind, ServiceError
from testbridge.core.remote_client import RemoteClient, build_basic_token, normalize_base_url


def make_client(handler, **kwargs) -> RemoteClient:
    return RemoteClient(
        "https://jira.example.com",
        build_basic_token("user", "token"),
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


@pytest.mark.parametrize(
    "status_code, body, kind, message",
    [
        (401, {"errorMessages": ["Login required"]}, ErrorKind.AUTH_FAILED, "Invalid credentials"),
        (403, {}, ErrorKind.FORBIDDEN, "Access forbidden - check your permissions"),
        (404, {"errorMessages": ["Issue Does Not Exist"]}, ErrorKind.NOT_FOUND, "Issue Does Not Exist"),
        (429, {}, ErrorKind.RATE_LIMITED, "Rate limit exceeded - please try again later"),
        (
            400,
            {"errorMessages": [], "errors": {"summary": "Summary is required", "priority": "Bad priority"}},
            ErrorKind.VALIDATION_ERROR,
            "Summary is required, Bad priority",
        ),
        (500, {"errorMessages": ["NullPointerException"]}, ErrorKind.REMOTE_ERROR, "HTTP 500: NullPointerException"),
        (502, None, ErrorKind.REMOTE_ERROR, "HTTP 502: Unknown error"),
    ],
)
@pytest.mark.asyncio
async def test_error_responses_are_classified(status_code, body, kind, message):
    def handler(request):
        if body is None:
            return httpx.Response(status_code, text="")
        return httpx.Response(status_code, json=body)

    client = make_client(handler)
    with pytest.raises(ServiceError) as exc_info:
        await client.get("/rest/api/2/issue/PROJ-1")
    await client.aclose()

    assert exc_info.value.kind is kind
    assert exc_info.value.message == message
    assert exc_info.value.status_code == status_code


@pytest.mark.asyncio
async def test_transport_failures_are_network_errors():
    def refused(request):
        raise httpx.ConnectError("Connection refused", request=request)

    def slow(request):
        raise httpx.ReadTimeout("Read timed out", request=request)

    for handler, message in ((refused, "Network error - unable to reach server"), (slow, "Request timed out")):
        client = make_client(handler)
        with pytest.raises(ServiceError) as exc_info:
            await client.get("/rest/api/2/priority")
        await client.aclose()
        assert exc_info.value.kind is ErrorKind.NETWORK_ERROR
        assert exc_info.value.message == message
        assert client.gate.in_flight == 0


@pytest.mark.asyncio
async def test_unexpected_exception_is_unknown():
    def broken(request):
        raise RuntimeError("boom")

    client = make_client(broken)
    with pytest.raises(ServiceError) as exc_info:
        await client.get("/rest/api/2/priority")
    await client.aclose()
    assert exc_info.value.kind is ErrorKind.UNKNOWN


@pytest.mark.asyncio
async def test_successful_calls_send_auth_and_parse_bodies():
    seen = []

    def handler(request):
        seen.append(request)
        if request.method == "PUT":
            return httpx.Response(204)
        return httpx.Response(200, json={"key": "PROJ-1"})

    client = make_client(handler)
    assert await client.get("/rest/api/2/issue/PROJ-1", params={"fields": "key"}) == {"key": "PROJ-1"}
    assert await client.put("/rest/api/2/issue/PROJ-1", {"fields": {"summary": "x"}}) is None
    await client.aclose()

    assert seen[0].headers["Authorization"] == "Basic dXNlcjp0b2tlbg=="
    assert seen[0].url.params["fields"] == "key"
    assert str(seen[0].url).startswith("https://jira.example.com/rest/api/2/issue/PROJ-1")


@pytest.mark.asyncio
async def test_at_most_five_calls_in_flight():
    in_flight = 0
    peak = 0

    async def handler(request):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.02)
        in_flight -= 1
        return httpx.Response(200, json={"path": request.url.path})

    client = make_client(handler)
    results = await asyncio.gather(*(client.get(f"/rest/api/2/issue/PROJ-{i}") for i in range(1, 9)))
    await client.aclose()

    assert len(results) == 8
    assert peak <= 5
    assert client.gate.peak == 5
    assert client.gate.in_flight == 0


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("https://jira.example.com/secure/Dashboard.jspa", "https://jira.example.com"),
        ("http://localhost:8080/", "http://localhost:8080"),
        ("  https://jira.example.com  ", "https://jira.example.com"),
    ],
)
def test_base_url_is_reduced_to_origin(raw, expected):
    assert normalize_base_url(raw) == expected


@pytest.mark.parametrize("raw", ["", None, "ftp://jira.example.com", "jira.example.com/path"])
def test_invalid_base_url_is_rejected(raw):
    with pytest.raises(ServiceError) as exc_info:
        normalize_base_url(raw)
    assert exc_info.value.kind is ErrorKind.VALIDATION_ERROR


@pytest.mark.asyncio
async def test_gate_admits_waiters_in_arrival_order():
    gate = ConcurrencyGate(1)
    order = []

    async def worker(index):
        async with gate:
            order.append(index)
            await asyncio.sleep(0)

    await gate.acquire()
    tasks = [asyncio.create_task(worker(i)) for i in range(3)]
    await asyncio.sleep(0)
    assert gate.waiting == 3

    gate.release()
    await asyncio.gather(*tasks)

    assert order == [0, 1, 2]
    assert gate.in_flight == 0
    assert gate.peak == 1


@pytest.mark.asyncio
async def test_cancelled_waiter_does_not_take_a_slot():
    gate = ConcurrencyGate(1)
    await gate.acquire()

    waiter = asyncio.create_task(gate.acquire())
    await asyncio.sleep(0)
    waiter.cancel()
    with pytest.raises(asyncio.CancelledError):
        await waiter

    assert gate.waiting == 0
    gate.release()
    assert gate.in_flight == 0


@pytest.mark.asyncio
async def test_non_json_success_body_is_a_remote_error():
    def login_page(request):
        return httpx.Response(200, text="<html>Please log in</html>", headers={"content-type": "text/html"})

    client = make_client(login_page)
    with pytest.raises(ServiceError) as exc_info:
        await client.get("/rest/api/2/issue/PROJ-1")
    await client.aclose()

    assert exc_info.value.kind is ErrorKind.REMOTE_ERROR
    assert exc_info.value.message == "Unexpected non-JSON response"
    assert exc_info.value.details["content_type"] == "text/html"
    assert exc_info.value.status_code == 200
    assert client.gate.in_flight == 0
