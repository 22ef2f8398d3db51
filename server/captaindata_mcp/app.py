import json
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

import structlog
from fastapi import Body, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .auth import API_KEY_HEADER, AUTHORIZATION_HEADER, extract_api_key
from .cache import InMemorySessionStore
from .captaindata import CaptainDataClient
from .config import settings
from .context import RequestContext, new_request_id
from .errors import (
    INVALID_INPUT,
    RATE_LIMITED,
    UPSTREAM_ERROR,
    AuthError,
    MCPError,
    as_error_payload,
    classify_auth_error,
)
from .logging import configure_logging
from .ratelimit import FixedWindowRateLimiter
from .services import AuthService, ToolService
from .session import SessionManager
from .telemetry import (
    configure_telemetry,
    instrument_fastapi,
    shutdown_telemetry,
    telemetry_enabled,
)
from .token_store import RedisSessionStore
from .tools.catalog import TOOLS, list_definitions

try:
    from mcp.server import FastMCP
    from mcp.server.fastmcp.exceptions import ToolError
except ImportError as exc:  # pragma: no cover - runtime guard
    raise RuntimeError(
        "MCP SDK not installed. Install the official MCP Python SDK."
    ) from exc


configure_logging()
logger = structlog.get_logger(__name__)

if settings.otel_exporter_otlp_endpoint:
    configure_telemetry(
        "captaindata-mcp", settings.otel_exporter_otlp_endpoint, settings.datadog_api_key
    )

sessions = SessionManager(
    RedisSessionStore(
        settings.redis_url,
        max_connection_attempts=settings.redis_max_connection_attempts,
        reconnect_delay_seconds=settings.redis_reconnect_delay_seconds,
        max_reconnect_delay_seconds=settings.redis_max_reconnect_delay_seconds,
        health_check_interval_seconds=settings.redis_health_check_interval_seconds,
        connect_timeout_seconds=settings.redis_connect_timeout_seconds,
        command_timeout_seconds=settings.redis_command_timeout_seconds,
    ),
    InMemorySessionStore(
        capacity=settings.memory_store_capacity,
        sweep_interval_seconds=settings.memory_store_sweep_interval_seconds,
    ),
    default_ttl_seconds=settings.session_ttl_seconds,
    enabled=settings.session_tokens_enabled,
)
captain_data = CaptainDataClient()
auth_service = AuthService(sessions, captain_data)
tool_service = ToolService(captain_data)
rate_limiter = FixedWindowRateLimiter(
    settings.rate_limit_max, settings.rate_limit_window_seconds
)
_started_at = time.monotonic()

server = FastMCP(
    name="captaindata-mcp",
    streamable_http_path="/",
    json_response=True,
    stateless_http=True,
)
mcp_app = server.streamable_http_app()


def _tool_error(err: MCPError) -> ToolError:
    # MCP clients only see the message text, so it carries the whole payload.
    return ToolError(json.dumps(as_error_payload(err), default=str))


def _mcp_request_headers() -> dict[str, str]:
    try:
        request = server.get_context().request_context.request
    except (LookupError, ValueError):  # pragma: no cover - request context missing
        return {}
    if not request:  # pragma: no cover - transport without request
        return {}
    return dict(request.headers)


async def _run_mcp_tool(alias: str, params: dict[str, Any]) -> dict[str, Any]:
    ctx = RequestContext()
    try:
        api_key = await extract_api_key(_mcp_request_headers(), sessions)
    except AuthError as exc:
        logger.warning("mcp_authentication_failed", tool=alias, reason=type(exc).__name__)
        raise _tool_error(classify_auth_error(exc, ctx.request_id)) from exc
    provided = {key: value for key, value in params.items() if value is not None}
    try:
        status, body, _ = await tool_service.execute(alias, provided, api_key, ctx)
    except MCPError as exc:
        exc.correlation_id = exc.correlation_id or ctx.request_id
        raise _tool_error(exc) from exc
    if status >= 400:
        raise _tool_error(
            MCPError(
                UPSTREAM_ERROR,
                f"Captain Data API returned {status}",
                status=status,
                correlation_id=ctx.request_id,
                details=body,
            )
        )
    return body


@server.tool("find_person", description=TOOLS["find_person"].description)
async def mcp_find_person(full_name: str, company_name: str | None = None) -> dict[str, Any]:
    return await _run_mcp_tool(
        "find_person", {"full_name": full_name, "company_name": company_name}
    )


@server.tool("search_people", description=TOOLS["search_people"].description)
async def mcp_search_people(
    query: str, page: int | None = None, page_size: int | None = None
) -> dict[str, Any]:
    return await _run_mcp_tool(
        "search_people", {"query": query, "page": page, "page_size": page_size}
    )


@server.tool("enrich_person", description=TOOLS["enrich_person"].description)
async def mcp_enrich_person(
    li_profile_url: str, full_enrich: bool | None = None
) -> dict[str, Any]:
    return await _run_mcp_tool(
        "enrich_person", {"li_profile_url": li_profile_url, "full_enrich": full_enrich}
    )


@server.tool("find_company", description=TOOLS["find_company"].description)
async def mcp_find_company(company_name: str) -> dict[str, Any]:
    return await _run_mcp_tool("find_company", {"company_name": company_name})


@server.tool("search_companies", description=TOOLS["search_companies"].description)
async def mcp_search_companies(
    query: str, page: int | None = None, page_size: int | None = None
) -> dict[str, Any]:
    return await _run_mcp_tool(
        "search_companies", {"query": query, "page": page, "page_size": page_size}
    )


@server.tool("enrich_company", description=TOOLS["enrich_company"].description)
async def mcp_enrich_company(li_company_url: str) -> dict[str, Any]:
    return await _run_mcp_tool("enrich_company", {"li_company_url": li_company_url})


@server.tool(
    "search_company_employees", description=TOOLS["search_company_employees"].description
)
async def mcp_search_company_employees(
    company_uid: str, page: int | None = None, page_size: int | None = None
) -> dict[str, Any]:
    return await _run_mcp_tool(
        "search_company_employees",
        {"company_uid": company_uid, "page": page, "page_size": page_size},
    )


@server.tool("get_quotas", description=TOOLS["get_quotas"].description)
async def mcp_get_quotas() -> dict[str, Any]:
    return await _run_mcp_tool("get_quotas", {})


@asynccontextmanager
async def lifespan(_app: FastAPI):
    await sessions.start()
    try:
        async with server.session_manager.run():
            yield
    finally:
        await sessions.close()
        await captain_data.close()
        shutdown_telemetry()


app = FastAPI(title="Captain Data MCP API", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list or ["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


def _ctx(request: Request) -> RequestContext:
    ctx = getattr(request.state, "ctx", None)
    if ctx is None:
        ctx = RequestContext()
        request.state.ctx = ctx
    return ctx


_RATE_LIMITED_PREFIXES = ("/auth", "/tools/", "/mcp")


@app.middleware("http")
async def enforce_rate_limit(request: Request, call_next):
    if not settings.rate_limit_enabled or not request.url.path.startswith(
        _RATE_LIMITED_PREFIXES
    ):
        return await call_next(request)

    client_key = request.client.host if request.client else "unknown"
    decision = rate_limiter.hit(client_key)
    if not decision.allowed:
        err = MCPError(
            RATE_LIMITED,
            f"Rate limit exceeded, retry in {decision.reset_after} seconds",
            status=429,
            correlation_id=_ctx(request).request_id,
            details={"limit": decision.limit, "retry_after": decision.reset_after},
        )
        return JSONResponse(
            status_code=err.status, content=as_error_payload(err), headers=decision.headers()
        )
    response = await call_next(request)
    response.headers.update(decision.headers())
    return response


@app.middleware("http")
async def bind_request_context(request: Request, call_next):
    ctx = RequestContext(request.headers.get("x-request-id") or new_request_id())
    request.state.ctx = ctx
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=ctx.request_id)
    logger.info("incoming_request", method=request.method, path=request.url.path)
    response = await call_next(request)
    response.headers["x-request-id"] = ctx.request_id
    logger.info(
        "request_completed", status=response.status_code, execution_time=ctx.elapsed_ms()
    )
    return response


@app.exception_handler(MCPError)
async def handle_mcp_error(request: Request, exc: MCPError):
    if exc.correlation_id is None:
        exc.correlation_id = _ctx(request).request_id
    return JSONResponse(status_code=exc.status, content=as_error_payload(exc))


@app.exception_handler(AuthError)
async def handle_auth_error(request: Request, exc: AuthError):
    logger.warning(
        "authentication_failed",
        reason=type(exc).__name__,
        has_api_key_header=API_KEY_HEADER in request.headers,
        has_authorization_header=AUTHORIZATION_HEADER in request.headers,
    )
    err = classify_auth_error(exc, _ctx(request).request_id)
    return JSONResponse(status_code=err.status, content=as_error_payload(err))


@app.exception_handler(RequestValidationError)
async def handle_validation_error(request: Request, exc: RequestValidationError):
    err = MCPError(
        INVALID_INPUT,
        "Invalid request",
        status=400,
        correlation_id=_ctx(request).request_id,
        details=jsonable_encoder(exc.errors()),
    )
    return JSONResponse(status_code=err.status, content=as_error_payload(err))


class AuthRequest(BaseModel):
    api_key: str | None = None


@app.get("/health")
async def health(request: Request) -> dict[str, Any]:
    ctx = _ctx(request)
    durable = sessions.durable
    return {
        "status": "healthy",
        "uptime": round(time.monotonic() - _started_at, 3),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "redis": {
            "configured": durable.configured,
            "available": durable.is_available(),
            **durable.get_status().as_dict(),
            "ping": await durable.ping(),
        },
        "_metadata": ctx.metadata(),
    }


@app.post("/auth")
async def authenticate(request: Request, body: AuthRequest | None = None) -> dict[str, Any]:
    ctx = _ctx(request)
    issued = await auth_service.authenticate(body.api_key if body else None)
    return {
        "session_token": issued.session_token,
        "expires_in": issued.expires_in,
        "_metadata": ctx.metadata(),
    }


@app.get("/introspect")
async def introspect(v: str | None = None) -> dict[str, Any]:
    return {"tools": list_definitions(full=v == "full")}


@app.post("/tools/{alias}")
async def run_tool(
    alias: str, request: Request, params: dict[str, Any] | None = Body(default=None)
):
    ctx = _ctx(request)
    tool_service.ensure_known(alias)
    api_key = await extract_api_key(request.headers, sessions)
    status, body, headers = await tool_service.execute(alias, params or {}, api_key, ctx)
    return JSONResponse(status_code=status, content=body, headers=headers)


app.mount("/mcp", mcp_app)
if telemetry_enabled():
    instrument_fastapi(app)
