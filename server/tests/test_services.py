import httpx
import pytest

from captaindata_mcp.cache import InMemorySessionStore
from captaindata_mcp.captaindata import UpstreamResponse
from captaindata_mcp.config import settings
from captaindata_mcp.context import RequestContext
from captaindata_mcp.errors import MCPError, SessionFeatureDisabled
from captaindata_mcp.services import AuthService, ToolService
from captaindata_mcp.session import SessionManager
from captaindata_mcp.token_store import RedisSessionStore


class FakeClient:
    def __init__(self, valid=True, error=None, response=None):
        self.valid = valid
        self.error = error
        self.response = response or UpstreamResponse(status=200, payload={})
        self.validated = []
        self.requests = []

    async def validate_api_key(self, api_key):
        self.validated.append(api_key)
        if self.error:
            raise self.error
        return self.valid

    async def request(self, method, path, api_key, params=None):
        self.requests.append((method, path, api_key, params))
        return self.response


def _sessions(enabled=True) -> SessionManager:
    return SessionManager(RedisSessionStore(None), InMemorySessionStore(), enabled=enabled)


@pytest.mark.asyncio
async def test_authenticate_issues_token():
    sessions = _sessions()
    service = AuthService(sessions, FakeClient())

    issued = await service.authenticate(" key-1 ")

    assert issued.expires_in == 86400
    assert await sessions.get_session_token(issued.session_token) == "key-1"


@pytest.mark.asyncio
@pytest.mark.parametrize("api_key", [None, "", "   "])
async def test_authenticate_requires_key(api_key):
    service = AuthService(_sessions(), FakeClient())
    with pytest.raises(MCPError) as exc:
        await service.authenticate(api_key)
    assert exc.value.code == "missing_input"
    assert exc.value.status == 400


@pytest.mark.asyncio
async def test_authenticate_rejects_invalid_key(monkeypatch):
    monkeypatch.setattr(settings, "validate_api_keys", True)
    client = FakeClient(valid=False)
    service = AuthService(_sessions(), client)

    with pytest.raises(MCPError) as exc:
        await service.authenticate("bad")

    assert exc.value.code == "invalid_api_key"
    assert exc.value.status == 401
    assert client.validated == ["bad"]


@pytest.mark.asyncio
async def test_authenticate_proceeds_when_validation_unreachable(monkeypatch):
    monkeypatch.setattr(settings, "validate_api_keys", True)
    sessions = _sessions()
    service = AuthService(sessions, FakeClient(error=httpx.ConnectError("refused")))

    issued = await service.authenticate("key-1")

    assert await sessions.get_session_token(issued.session_token) == "key-1"


@pytest.mark.asyncio
async def test_authenticate_when_sessions_disabled():
    service = AuthService(_sessions(enabled=False), FakeClient())
    with pytest.raises(SessionFeatureDisabled):
        await service.authenticate("key-1")


@pytest.mark.asyncio
async def test_execute_wraps_list_payload():
    client = FakeClient(
        response=UpstreamResponse(
            status=200, payload=[{"id": 1}, {"id": 2}], headers={"x-pagination-next": "n"}
        )
    )
    service = ToolService(client)
    ctx = RequestContext("req-1")

    status, body, headers = await service.execute(
        "search_people", {"query": "cto"}, "key-1", ctx
    )

    assert status == 200
    assert body["data"] == [{"id": 1}, {"id": 2}]
    assert body["_metadata"]["request_id"] == "req-1"
    assert body["_metadata"]["tool"] == "search_people"
    assert body["_metadata"]["count"] == 2
    assert headers == {"x-pagination-next": "n"}
    assert client.requests[0][1] == "/v1/people/search"


@pytest.mark.asyncio
async def test_execute_relays_upstream_errors_untouched():
    client = FakeClient(
        response=UpstreamResponse(status=402, payload={"error_label": "no_credits"})
    )
    service = ToolService(client)

    status, body, headers = await service.execute(
        "get_quotas", {}, "key-1", RequestContext()
    )

    assert status == 402
    assert body == {"error_label": "no_credits"}
    assert headers == {}


@pytest.mark.asyncio
async def test_execute_unknown_tool():
    service = ToolService(FakeClient())
    with pytest.raises(MCPError) as exc:
        await service.execute("nope", {}, "key-1", RequestContext())
    assert exc.value.code == "unknown_tool"
    assert exc.value.status == 404
