"""
Shared fixtures for gateway tests.

The Kratos and LLM clients are replaced with AsyncMock objects built from
the real classes, so a test fails if a route calls a method that does not
exist on the client.
"""

from typing import Any, Dict
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from gateway.auth.kratos import KratosClient
from gateway.config import Settings
from gateway.llm.client import LLMClient
from gateway.main import create_app
from gateway.models import Session


SESSION_TOKEN = "ory_st_test_session_token"


# ============================================================================
# Settings
# ============================================================================

@pytest.fixture
def mock_settings():
    """Create settings for testing"""
    return Settings(
        ENVIRONMENT="test",
        KRATOS_PUBLIC_URL="http://kratos:4433",
        LLM_PROVIDER="ollama",
        LLM_MODEL="llama2",
        ALLOWED_ORIGINS="http://localhost:3000",
        LOG_LEVEL="DEBUG",
    )


# ============================================================================
# Kratos Payloads
# ============================================================================

@pytest.fixture
def session_payload() -> Dict[str, Any]:
    """Session record as returned by /sessions/whoami"""
    return {
        "id": "sess-123",
        "active": True,
        "expires_at": "2030-01-01T00:00:00Z",
        "authenticated_at": "2026-01-01T00:00:00Z",
        "authenticator_assurance_level": "aal1",
        "identity": {
            "id": "identity-123",
            "schema_id": "default",
            "state": "active",
            "traits": {
                "email": "test@example.com",
                "name": {"first": "Test", "last": "User"},
            },
        },
    }


@pytest.fixture
def registration_flow() -> Dict[str, Any]:
    """Registration flow with a CSRF node, three inputs and a text node"""
    return {
        "id": "reg-flow-1",
        "type": "api",
        "expires_at": "2030-01-01T00:10:00Z",
        "ui": {
            "action": "http://kratos:4433/self-service/registration?flow=reg-flow-1",
            "method": "POST",
            "nodes": [
                {
                    "type": "input",
                    "group": "default",
                    "attributes": {
                        "name": "csrf_token",
                        "type": "hidden",
                        "required": True,
                        "value": "csrf-abc",
                    },
                    "meta": {},
                },
                {
                    "type": "input",
                    "group": "default",
                    "attributes": {
                        "name": "traits.email",
                        "type": "email",
                        "required": True,
                    },
                    "meta": {"label": {"id": 1070002, "text": "E-Mail"}},
                },
                {
                    "type": "input",
                    "group": "password",
                    "attributes": {
                        "name": "password",
                        "type": "password",
                        "required": True,
                    },
                    "meta": {"label": {"id": 1070001, "text": "Password"}},
                },
                {
                    "type": "text",
                    "group": "default",
                    "attributes": {"id": "notice", "text": {"text": "Welcome"}},
                    "meta": {},
                },
            ],
        },
    }


# ============================================================================
# Clients
# ============================================================================

@pytest.fixture
def mock_kratos(session_payload):
    """Kratos client double; sessions validate by default"""
    kratos = AsyncMock(spec=KratosClient)
    kratos.validate_session.return_value = Session.model_validate(session_payload)
    return kratos


@pytest.fixture
def mock_llm():
    """LLM client double"""
    llm = AsyncMock(spec=LLMClient)
    llm.chat.return_value = "Hello from the model"
    llm.generate.return_value = "Generated text"
    return llm


@pytest.fixture
def app(mock_settings, mock_kratos, mock_llm):
    """Create test FastAPI application"""
    return create_app(settings=mock_settings, kratos=mock_kratos, llm=mock_llm)


@pytest.fixture
def client(app):
    """Create test client"""
    return TestClient(app)


@pytest.fixture
def auth_headers():
    """Headers carrying a session token"""
    return {"X-Session-Token": SESSION_TOKEN}


@pytest.fixture
def assert_error():
    """Return a helper asserting the error envelope of a response"""
    def check(response, status_code: int, code: str, message: str = None):
        assert response.status_code == status_code, response.text
        error = response.json()["error"]
        assert error["code"] == code
        if message is not None:
            assert error["message"] == message
        return error
    return check
