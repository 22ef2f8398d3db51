import httpx
import pytest

from captaindata_mcp.captaindata import CaptainDataClient
from captaindata_mcp.config import settings
from captaindata_mcp.errors import MCPError


@pytest.fixture(autouse=True)
def _no_retry_delay(monkeypatch):
    monkeypatch.setattr(settings, "retry_delay_seconds", 0)


@pytest.mark.asyncio
async def test_request_sends_api_key_and_relays_pagination():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["key"] = request.headers["x-api-key"]
        return httpx.Response(
            200,
            json=[{"id": 1}],
            headers={"x-pagination-next": "/next", "x-other": "dropped"},
        )

    client = CaptainDataClient(transport=httpx.MockTransport(handler))
    result = await client.request(
        "GET", "/v1/people/search", "key-1", params={"query": "cto"}
    )
    await client.close()

    assert result.ok
    assert result.payload == [{"id": 1}]
    assert result.headers == {"x-pagination-next": "/next"}
    assert seen["key"] == "key-1"
    assert seen["url"].endswith("/v1/people/search?query=cto")


@pytest.mark.asyncio
async def test_transport_errors_are_retried(monkeypatch):
    monkeypatch.setattr(settings, "max_retries", 2)
    attempts = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(1)
        if len(attempts) < 3:
            raise httpx.ConnectError("refused", request=request)
        return httpx.Response(200, json={"ok": True})

    client = CaptainDataClient(transport=httpx.MockTransport(handler))
    result = await client.request("GET", "/v1/quotas", "key-1")
    await client.close()

    assert result.payload == {"ok": True}
    assert len(attempts) == 3


@pytest.mark.asyncio
async def test_exhausted_retries_raise_service_unavailable(monkeypatch):
    monkeypatch.setattr(settings, "max_retries", 1)

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    client = CaptainDataClient(transport=httpx.MockTransport(handler))
    with pytest.raises(MCPError) as exc:
        await client.request("GET", "/v1/quotas", "key-1")
    await client.close()

    assert exc.value.code == "service_unavailable"
    assert exc.value.status == 503


@pytest.mark.asyncio
async def test_timeout_raises_timeout_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    client = CaptainDataClient(transport=httpx.MockTransport(handler))
    with pytest.raises(MCPError) as exc:
        await client.request("GET", "/v1/quotas", "key-1")
    await client.close()

    assert exc.value.code == "timeout"
    assert exc.value.status == 408


@pytest.mark.asyncio
async def test_non_json_body_is_invalid_response():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>")

    client = CaptainDataClient(transport=httpx.MockTransport(handler))
    with pytest.raises(MCPError) as exc:
        await client.request("GET", "/v1/quotas", "key-1")
    await client.close()

    assert exc.value.code == "invalid_response"


@pytest.mark.asyncio
async def test_validate_api_key():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v4/workspaces"
        if request.headers["x-api-key"] == "good":
            return httpx.Response(200, json=[])
        return httpx.Response(401, json={"message": "unauthorized"})

    client = CaptainDataClient(transport=httpx.MockTransport(handler))
    assert await client.validate_api_key("good") is True
    assert await client.validate_api_key("bad") is False
    await client.close()
