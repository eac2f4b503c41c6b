"""
Unit Tests for the Kratos Client
================================

Tests for gateway/auth/kratos.py

Kratos is replaced by an httpx.MockTransport that records each request and
answers from a per-test handler.

Run tests:
----------
    pytest gateway/tests/test_kratos.py -v
"""

import json
from typing import List

import httpx
import pytest

from gateway.auth.kratos import KratosClient, KratosError, extract_error_message


BASE_URL = "http://kratos:4433"


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def requests_seen() -> List[httpx.Request]:
    return []


def make_client(requests_seen, handler) -> KratosClient:
    def record(request: httpx.Request) -> httpx.Response:
        requests_seen.append(request)
        return handler(request)

    http_client = httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(record))
    return KratosClient(BASE_URL, http_client=http_client)


def body_of(request: httpx.Request):
    return json.loads(request.content) if request.content else None


# ============================================================================
# Sessions
# ============================================================================

@pytest.mark.asyncio
async def test_validate_session_sends_token_header(requests_seen, session_payload):
    """Test whoami call shape and Session decoding"""
    kratos = make_client(requests_seen, lambda r: httpx.Response(200, json=session_payload))

    session = await kratos.validate_session("tok")

    request = requests_seen[0]
    assert request.method == "GET"
    assert request.url.path == "/sessions/whoami"
    assert request.headers["X-Session-Token"] == "tok"
    assert session.id == "sess-123"
    assert session.email == "test@example.com"
    # Unknown provider fields survive for pass-through
    assert session.to_response()["authenticator_assurance_level"] == "aal1"


@pytest.mark.asyncio
async def test_validate_session_empty_token_makes_no_call(requests_seen):
    """Test that an empty token is rejected locally"""
    kratos = make_client(requests_seen, lambda r: httpx.Response(200, json={}))

    with pytest.raises(KratosError) as exc_info:
        await kratos.validate_session("")

    assert exc_info.value.is_unauthorized
    assert requests_seen == []


@pytest.mark.asyncio
async def test_validate_session_401_is_unauthorized(requests_seen):
    """Test that 401 from Kratos is classified as unauthorized"""
    kratos = make_client(
        requests_seen,
        lambda r: httpx.Response(
            401,
            json={"error": {"code": 401, "status": "Unauthorized", "reason": "No valid session credentials found"}},
        ),
    )

    with pytest.raises(KratosError) as exc_info:
        await kratos.validate_session("expired")

    error = exc_info.value
    assert error.status_code == 401
    assert error.is_unauthorized
    assert error.message == "No valid session credentials found"


@pytest.mark.asyncio
async def test_validate_session_server_error_is_not_unauthorized(requests_seen):
    kratos = make_client(requests_seen, lambda r: httpx.Response(500, json={"error": {"message": "boom"}}))

    with pytest.raises(KratosError) as exc_info:
        await kratos.validate_session("tok")

    assert exc_info.value.status_code == 500
    assert not exc_info.value.is_unauthorized


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, json={"unexpected": True}),
        httpx.Response(200, text="<html>not kratos</html>"),
        httpx.Response(200),
    ],
)
@pytest.mark.asyncio
async def test_validate_session_non_session_body_raises_kratos_error(requests_seen, response):
    """Test that a 2xx body which is not a session is reported as a KratosError"""
    kratos = make_client(requests_seen, lambda r: response)

    with pytest.raises(KratosError) as exc_info:
        await kratos.validate_session("tok")

    error = exc_info.value
    assert error.status_code == 200
    assert error.message == "invalid session payload"
    assert not error.is_unreachable


@pytest.mark.asyncio
async def test_perform_logout_sends_token_in_body(requests_seen):
    """Test native logout call shape"""
    kratos = make_client(requests_seen, lambda r: httpx.Response(204))

    result = await kratos.perform_logout("tok")

    request = requests_seen[0]
    assert result is None
    assert request.method == "DELETE"
    assert request.url.path == "/self-service/logout/api"
    assert body_of(request) == {"session_token": "tok"}


@pytest.mark.asyncio
async def test_browser_logout_forwards_cookie(requests_seen):
    kratos = make_client(
        requests_seen,
        lambda r: httpx.Response(200, json={"logout_url": "http://x/logout", "logout_token": "lt"}),
    )

    result = await kratos.create_browser_logout_flow("ory_kratos_session=abc")

    assert requests_seen[0].url.path == "/self-service/logout/browser"
    assert requests_seen[0].headers["Cookie"] == "ory_kratos_session=abc"
    assert result["logout_token"] == "lt"


# ============================================================================
# Flows
# ============================================================================

@pytest.mark.asyncio
@pytest.mark.parametrize(
    "method_name, path",
    [
        ("create_login_flow", "/self-service/login/api"),
        ("create_registration_flow", "/self-service/registration/api"),
        ("create_verification_flow", "/self-service/verification/api"),
        ("create_recovery_flow", "/self-service/recovery/api"),
    ],
)
async def test_create_flow_paths(requests_seen, method_name, path):
    """Test that create calls hit the native API endpoints"""
    kratos = make_client(requests_seen, lambda r: httpx.Response(200, json={"id": "f1"}))

    flow = await getattr(kratos, method_name)()

    assert flow == {"id": "f1"}
    assert requests_seen[0].method == "GET"
    assert requests_seen[0].url.path == path


@pytest.mark.asyncio
async def test_create_login_flow_refresh_sends_token(requests_seen):
    kratos = make_client(requests_seen, lambda r: httpx.Response(200, json={"id": "f1"}))

    await kratos.create_login_flow(refresh=True, token="tok")

    request = requests_seen[0]
    assert request.url.params["refresh"] == "true"
    assert request.headers["X-Session-Token"] == "tok"


@pytest.mark.asyncio
async def test_get_login_flow_passes_id(requests_seen):
    kratos = make_client(requests_seen, lambda r: httpx.Response(200, json={"id": "f1"}))

    await kratos.get_login_flow("f1")

    assert requests_seen[0].url.path == "/self-service/login/flows"
    assert requests_seen[0].url.params["id"] == "f1"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "method_name, path",
    [
        ("submit_login_flow", "/self-service/login"),
        ("submit_registration_flow", "/self-service/registration"),
        ("submit_verification_flow", "/self-service/verification"),
        ("submit_recovery_flow", "/self-service/recovery"),
    ],
)
async def test_submit_flow_shape(requests_seen, method_name, path):
    """Test that submits POST the body with the flow id as query parameter"""
    kratos = make_client(requests_seen, lambda r: httpx.Response(200, json={"ok": True}))
    body = {"method": "code", "code": "123456"}

    result = await getattr(kratos, method_name)("flow-9", body)

    request = requests_seen[0]
    assert result == {"ok": True}
    assert request.method == "POST"
    assert request.url.path == path
    assert request.url.params["flow"] == "flow-9"
    assert body_of(request) == body


@pytest.mark.asyncio
async def test_settings_flow_calls_are_authenticated(requests_seen):
    """Test that settings create and submit carry the session token"""
    kratos = make_client(requests_seen, lambda r: httpx.Response(200, json={"id": "s1"}))

    await kratos.create_settings_flow("tok")
    await kratos.submit_settings_flow("s1", {"method": "password", "password": "newpass123"}, "tok")

    create, submit = requests_seen
    assert create.url.path == "/self-service/settings/api"
    assert create.headers["X-Session-Token"] == "tok"
    assert submit.url.path == "/self-service/settings"
    assert submit.url.params["flow"] == "s1"
    assert submit.headers["X-Session-Token"] == "tok"
    assert "csrf_token" not in body_of(submit)


# ============================================================================
# Error Handling
# ============================================================================

@pytest.mark.asyncio
async def test_rejected_submit_surfaces_status_and_ui_message(requests_seen):
    """Test that form rejections keep the status and Kratos message"""
    flow_with_error = {
        "id": "f1",
        "ui": {
            "messages": [{"id": 4000006, "type": "error", "text": "The provided credentials are invalid."}],
            "nodes": [],
        },
    }
    kratos = make_client(requests_seen, lambda r: httpx.Response(400, json=flow_with_error))

    with pytest.raises(KratosError) as exc_info:
        await kratos.submit_login_flow("f1", {"method": "password"})

    error = exc_info.value
    assert error.status_code == 400
    assert error.is_client_error
    assert error.message == "The provided credentials are invalid."
    assert error.payload == flow_with_error


@pytest.mark.asyncio
async def test_connect_error_is_unreachable(requests_seen):
    """Test that transport failures carry no status code"""
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    kratos = make_client(requests_seen, refuse)

    with pytest.raises(KratosError) as exc_info:
        await kratos.create_login_flow()

    assert exc_info.value.status_code is None
    assert exc_info.value.is_unreachable


@pytest.mark.asyncio
async def test_timeout_is_unreachable(requests_seen):
    def slow(request):
        raise httpx.ReadTimeout("timed out", request=request)

    kratos = make_client(requests_seen, slow)

    with pytest.raises(KratosError) as exc_info:
        await kratos.submit_recovery_flow("f1", {})

    assert exc_info.value.is_unreachable


@pytest.mark.asyncio
async def test_submit_is_not_retried(requests_seen):
    """Test that a failing flow submission is sent exactly once"""
    kratos = make_client(requests_seen, lambda r: httpx.Response(502, text="bad gateway"))

    with pytest.raises(KratosError):
        await kratos.submit_registration_flow("f1", {"method": "password"})

    assert len(requests_seen) == 1


def test_extract_error_message_falls_back_to_node_messages():
    payload = {
        "ui": {
            "messages": [],
            "nodes": [
                {"messages": [{"text": "password is too short"}]},
            ],
        }
    }

    assert extract_error_message(payload, "default") == "password is too short"
    assert extract_error_message("not json", "default") == "default"
    assert extract_error_message({"error": {"message": "m"}}, "default") == "m"
