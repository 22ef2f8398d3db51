import json
import os
import sys
import uuid
from typing import Any

import httpx

BASE_URL = os.getenv("CAPTAINDATA_MCP_URL", "http://localhost:8080")
API_KEY = os.getenv("CAPTAINDATA_API_KEY", "")
MCP_ACCEPT = "application/json, text/event-stream"


def _parse_text_content(text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return text


def _normalize_tool_result(result: dict[str, Any]) -> Any:
    content = result.get("content") or []
    if result.get("isError"):
        first = content[0] if content else {}
        raise RuntimeError(first.get("text", "Unknown MCP tool error"))

    structured = result.get("structuredContent")
    if structured is not None:
        return structured

    if content and content[0].get("type") == "text":
        return _parse_text_content(content[0].get("text", ""))
    return result


def exchange_api_key(base_url: str, api_key: str, *, timeout: float = 30.0) -> str:
    """Trade a Captain Data API key for a session token."""
    response = httpx.post(f"{base_url}/auth", json={"api_key": api_key}, timeout=timeout)
    response.raise_for_status()
    return response.json()["session_token"]


def call_tool(
    base_url: str,
    session_token: str,
    name: str,
    arguments: dict[str, Any],
    *,
    timeout: float = 30.0,
) -> Any:
    payload = {
        "jsonrpc": "2.0",
        "id": str(uuid.uuid4()),
        "method": "tools/call",
        "params": {"name": name, "arguments": arguments},
    }
    headers = {"Authorization": f"Bearer {session_token}", "Accept": MCP_ACCEPT}
    response = httpx.post(
        f"{base_url}/mcp/", json=payload, headers=headers, timeout=timeout
    )
    response.raise_for_status()
    data = response.json()
    if "error" in data:
        raise RuntimeError(json.dumps(data["error"], indent=2))
    result = data.get("result", data)
    if isinstance(result, dict) and ("content" in result or "structuredContent" in result):
        return _normalize_tool_result(result)
    return result


if __name__ == "__main__":
    if not API_KEY:
        sys.exit("Set CAPTAINDATA_API_KEY first.")
    token = exchange_api_key(BASE_URL, API_KEY)
    print(json.dumps(call_tool(BASE_URL, token, "get_quotas", {}), indent=2))
