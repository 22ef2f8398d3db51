import httpx
import structlog

from .captaindata import CaptainDataClient
from .config import settings
from .context import RequestContext
from .errors import (
    INVALID_API_KEY,
    MISSING_INPUT,
    UNKNOWN_TOOL,
    MCPError,
    SessionFeatureDisabled,
)
from .session import IssuedToken, SessionManager
from .telemetry import tool_span
from .tools.catalog import get_tool

logger = structlog.get_logger(__name__)


class AuthService:
    def __init__(self, sessions: SessionManager, client: CaptainDataClient) -> None:
        self._sessions = sessions
        self._client = client

    async def authenticate(self, api_key: str | None) -> IssuedToken:
        if not api_key or not api_key.strip():
            raise MCPError(MISSING_INPUT, "Missing Captain Data API key", status=400)
        if not self._sessions.enabled:
            raise SessionFeatureDisabled()
        api_key = api_key.strip()

        if settings.validate_api_keys:
            try:
                valid = await self._client.validate_api_key(api_key)
            except httpx.HTTPError as exc:
                # Upstream unreachable: issue the token anyway.
                logger.warning("api_key_validation_skipped", error=str(exc))
            else:
                if not valid:
                    raise MCPError(
                        INVALID_API_KEY, "Invalid Captain Data API key", status=401
                    )

        return await self._sessions.issue_token(api_key, settings.session_ttl_seconds)


class ToolService:
    def __init__(self, client: CaptainDataClient) -> None:
        self._client = client

    def ensure_known(self, alias: str) -> None:
        if get_tool(alias) is None:
            raise MCPError(UNKNOWN_TOOL, f"Tool '{alias}' not supported", status=404)

    async def execute(
        self, alias: str, params: dict, api_key: str, ctx: RequestContext
    ) -> tuple[int, dict, dict[str, str]]:
        """Run a tool upstream and return ``(status, body, relayed_headers)``.

        Upstream errors are passed through untouched; successful bodies get a
        ``_metadata`` block.
        """
        tool = get_tool(alias)
        if tool is None:
            raise MCPError(UNKNOWN_TOOL, f"Tool '{alias}' not supported", status=404)

        logger.info("tool_execute", tool=alias, param_keys=sorted(params))
        with tool_span(alias, ctx.request_id) as span:
            upstream = await tool.handler(self._client, api_key, params)
            span.set_attribute("http.status_code", upstream.status)
        if not upstream.ok:
            logger.info("tool_upstream_error", tool=alias, status=upstream.status)
            return upstream.status, upstream.payload, {}

        metadata = {
            "request_id": ctx.request_id,
            "execution_time": ctx.elapsed_ms(),
            "tool": alias,
        }
        if isinstance(upstream.payload, list):
            metadata["count"] = len(upstream.payload)
            body = {"data": upstream.payload, "_metadata": metadata}
        elif isinstance(upstream.payload, dict):
            body = {**upstream.payload, "_metadata": metadata}
        else:
            body = {"data": upstream.payload, "_metadata": metadata}
        logger.info("tool_completed", tool=alias, status=upstream.status)
        return upstream.status, body, upstream.headers
