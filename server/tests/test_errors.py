from captaindata_mcp.errors import (
    InvalidAuthorizationFormat,
    InvalidOrExpiredToken,
    MCPError,
    MissingAuthentication,
    SessionFeatureDisabled,
    as_error_payload,
    classify_auth_error,
    create_auth_error_response,
    redact_token,
)


def test_missing_authentication_payload():
    payload = create_auth_error_response(MissingAuthentication(), "req-1")
    assert payload["code"] == "mcp_auth_error"
    assert payload["request_id"] == "req-1"
    assert "timestamp" in payload
    assert classify_auth_error(MissingAuthentication(), "req-1").status == 401


def test_invalid_format_payload():
    err = classify_auth_error(InvalidAuthorizationFormat(), "req-1")
    assert err.code == "mcp_auth_error"
    assert err.status == 401
    assert "Invalid Authorization header format" in err.message


def test_invalid_token_payload_only_echoes_prefix():
    token = "0123456789abcdefghijklmnop"
    payload = create_auth_error_response(InvalidOrExpiredToken(token), "req-1")
    assert payload["code"] == "session_token_expired"
    assert "Invalid or expired" in payload["message"]
    assert payload["details"] == {"token_prefix": "01234567..."}
    assert token not in str(payload)


def test_session_feature_disabled_payload():
    err = classify_auth_error(SessionFeatureDisabled(), "req-1")
    assert err.code == "invalid_api_key"
    assert err.status == 401
    assert "X-API-Key" in err.message


def test_unexpected_error_is_internal():
    err = classify_auth_error(RuntimeError("boom"), "req-1")
    assert err.code == "internal_error"
    assert err.status == 500
    assert "boom" not in err.message


def test_error_payload_omits_empty_details():
    payload = as_error_payload(MCPError("unknown_tool", "nope", status=404))
    assert "details" not in payload
    assert payload["request_id"] is None


def test_redact_short_token():
    assert redact_token("abc") == "***"
