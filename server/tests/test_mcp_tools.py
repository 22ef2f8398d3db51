import json
from types import SimpleNamespace

import pytest
from mcp.server.fastmcp.exceptions import ToolError

from captaindata_mcp import app as app_module
from captaindata_mcp.captaindata import UpstreamResponse


class FakeUpstream:
    def __init__(self, response: UpstreamResponse):
        self.response = response
        self.calls = []

    async def __call__(self, method, path, api_key, params=None):
        self.calls.append((method, path, api_key, params))
        return self.response


def _use_headers(monkeypatch, headers: dict[str, str]) -> None:
    context = SimpleNamespace(
        request_context=SimpleNamespace(request=SimpleNamespace(headers=headers))
    )
    monkeypatch.setattr(app_module.server, "get_context", lambda: context)


@pytest.fixture
def upstream(monkeypatch):
    fake = FakeUpstream(UpstreamResponse(status=200, payload={"credits": 42}))
    monkeypatch.setattr(app_module.captain_data, "request", fake)
    return fake


def _payload(exc_info) -> dict:
    return json.loads(str(exc_info.value))


@pytest.mark.asyncio
async def test_direct_api_key_from_mcp_request(monkeypatch, upstream):
    _use_headers(monkeypatch, {"x-api-key": "direct-key"})

    body = await app_module._run_mcp_tool("get_quotas", {})

    assert body["credits"] == 42
    assert body["_metadata"]["tool"] == "get_quotas"
    assert upstream.calls == [("GET", "/v1/quotas", "direct-key", None)]


@pytest.mark.asyncio
async def test_session_token_from_mcp_request(monkeypatch, upstream):
    issued = await app_module.sessions.issue_token("cd-key-1")
    _use_headers(monkeypatch, {"authorization": f"Bearer {issued.session_token}"})

    await app_module._run_mcp_tool(
        "enrich_company", {"li_company_url": "https://linkedin.com/company/x"}
    )

    assert upstream.calls[0][1] == "/v1/companies/enrich"
    assert upstream.calls[0][2] == "cd-key-1"


@pytest.mark.asyncio
async def test_missing_credentials_become_tool_error(monkeypatch, upstream):
    _use_headers(monkeypatch, {})

    with pytest.raises(ToolError) as exc:
        await app_module._run_mcp_tool("get_quotas", {})

    payload = _payload(exc)
    assert payload["code"] == "mcp_auth_error"
    assert payload["request_id"].startswith("req-")
    assert upstream.calls == []


@pytest.mark.asyncio
async def test_unknown_token_error_keeps_details(monkeypatch, upstream):
    _use_headers(monkeypatch, {"authorization": "Bearer not-a-real-token"})

    with pytest.raises(ToolError) as exc:
        await app_module._run_mcp_tool("get_quotas", {})

    payload = _payload(exc)
    assert payload["code"] == "session_token_expired"
    assert payload["details"] == {"token_prefix": "not-a-re..."}
    assert "not-a-real-token" not in str(exc.value)


@pytest.mark.asyncio
async def test_upstream_error_status_becomes_tool_error(monkeypatch):
    fake = FakeUpstream(UpstreamResponse(status=402, payload={"error_label": "no_credits"}))
    monkeypatch.setattr(app_module.captain_data, "request", fake)
    _use_headers(monkeypatch, {"x-api-key": "direct-key"})

    with pytest.raises(ToolError) as exc:
        await app_module._run_mcp_tool("get_quotas", {})

    payload = _payload(exc)
    assert payload["code"] == "upstream_error"
    assert payload["details"] == {"error_label": "no_credits"}
    assert payload["request_id"].startswith("req-")


@pytest.mark.asyncio
async def test_tool_input_error_becomes_tool_error(monkeypatch, upstream):
    _use_headers(monkeypatch, {"x-api-key": "direct-key"})

    with pytest.raises(ToolError) as exc:
        await app_module._run_mcp_tool("search_company_employees", {"company_uid": None})

    payload = _payload(exc)
    assert payload["code"] == "missing_input"
    assert payload["request_id"].startswith("req-")
