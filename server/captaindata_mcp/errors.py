from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

MCP_AUTH_ERROR = "mcp_auth_error"
INVALID_API_KEY = "invalid_api_key"
SESSION_TOKEN_EXPIRED = "session_token_expired"
UNKNOWN_TOOL = "unknown_tool"
MISSING_INPUT = "missing_input"
INVALID_INPUT = "invalid_input"
TIMEOUT = "timeout"
SERVICE_UNAVAILABLE = "service_unavailable"
INVALID_RESPONSE = "invalid_response"
INTERNAL_ERROR = "internal_error"
UPSTREAM_ERROR = "upstream_error"
RATE_LIMITED = "rate_limit_exceeded"


@dataclass
class MCPError(Exception):
    code: str
    message: str
    status: int = 400
    correlation_id: str | None = None
    details: Any = None

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


def as_error_payload(err: MCPError) -> dict:
    payload = {
        "code": err.code,
        "message": err.message,
        "request_id": err.correlation_id,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if err.details is not None:
        payload["details"] = err.details
    return payload


class StoreUnavailable(Exception):
    """Raised by the durable session store when it cannot serve a command."""


class AuthError(Exception):
    """Base class for credential extraction failures."""


class MissingAuthentication(AuthError):
    def __init__(self) -> None:
        super().__init__(
            "Missing authentication: either X-API-Key header or Authorization header required"
        )


class InvalidAuthorizationFormat(AuthError):
    def __init__(self) -> None:
        super().__init__('Invalid Authorization header format: expected "Bearer <token>"')


class InvalidOrExpiredToken(AuthError):
    def __init__(self, token: str | None = None) -> None:
        super().__init__("Invalid or expired session token")
        self.token_prefix = redact_token(token) if token else None


class SessionFeatureDisabled(AuthError):
    def __init__(self) -> None:
        super().__init__("Session tokens are disabled")


def redact_token(token: str, visible: int = 8) -> str:
    """Short, non-reversible hint of a token for logs and error details."""
    if len(token) <= visible:
        return "***"
    return f"{token[:visible]}..."


def classify_auth_error(error: Exception, request_id: str | None) -> MCPError:
    if isinstance(error, MissingAuthentication):
        return MCPError(
            MCP_AUTH_ERROR,
            "Missing authentication: provide a Captain Data key in the x-api-key header "
            "or a session token in the Authorization header",
            status=401,
            correlation_id=request_id,
        )
    if isinstance(error, InvalidAuthorizationFormat):
        return MCPError(
            MCP_AUTH_ERROR,
            'Invalid Authorization header format: expected "Bearer <token>"',
            status=401,
            correlation_id=request_id,
        )
    if isinstance(error, InvalidOrExpiredToken):
        details = None
        if error.token_prefix:
            details = {"token_prefix": error.token_prefix}
        return MCPError(
            SESSION_TOKEN_EXPIRED,
            "Invalid or expired session token. Please re-authenticate using the /auth endpoint",
            status=401,
            correlation_id=request_id,
            details=details,
        )
    if isinstance(error, SessionFeatureDisabled):
        return MCPError(
            INVALID_API_KEY,
            "Session tokens not available. Please use the X-API-Key header for authentication",
            status=401,
            correlation_id=request_id,
        )
    return MCPError(
        INTERNAL_ERROR, "Authentication error", status=500, correlation_id=request_id
    )


def create_auth_error_response(error: Exception, request_id: str | None) -> dict:
    return as_error_payload(classify_auth_error(error, request_id))
