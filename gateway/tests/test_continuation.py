"""
Unit Tests for Recovery Continuation
====================================

Tests for gateway/auth/continuation.py

Test Coverage:
--------------
1. continue_with parsing into typed actions (known, unknown, malformed)
2. No actions: recovery result returned unchanged, no settings call
3. Token + settings flow: exactly one authenticated settings submission
4. Only one of the two actions: INTERNAL_ERROR before any settings call
5. Settings submission failure: INTERNAL_ERROR

Run tests:
----------
    pytest gateway/tests/test_continuation.py -v
"""

from unittest.mock import AsyncMock

import pytest

from gateway.auth.continuation import (
    BrowserRedirect,
    SessionTokenGrant,
    SettingsFlowRef,
    UnknownAction,
    VerificationFlowRef,
    parse_continue_with,
    resolve_recovery_continuation,
)
from gateway.auth.kratos import KratosClient, KratosError
from gateway.errors import AppError, ErrorKind


TOKEN_ACTION = {"action": "set_ory_session_token", "ory_session_token": "ory_st_recovered"}
SETTINGS_ACTION = {
    "action": "show_settings_ui",
    "flow": {"id": "settings-flow-1", "url": "http://kratos:4433/self-service/settings?flow=settings-flow-1"},
}


@pytest.fixture
def kratos():
    client = AsyncMock(spec=KratosClient)
    client.submit_settings_flow.return_value = {"id": "settings-flow-1", "state": "success"}
    return client


# ============================================================================
# Parsing
# ============================================================================

def test_parse_known_actions():
    actions = parse_continue_with([
        TOKEN_ACTION,
        SETTINGS_ACTION,
        {"action": "show_verification_ui", "flow": {"id": "v1", "verifiable_address": "a@example.com"}},
        {"action": "redirect_browser_to", "redirect_browser_to": "http://app/home"},
    ])

    assert isinstance(actions[0], SessionTokenGrant)
    assert actions[0].ory_session_token == "ory_st_recovered"
    assert isinstance(actions[1], SettingsFlowRef)
    assert actions[1].flow.id == "settings-flow-1"
    assert isinstance(actions[2], VerificationFlowRef)
    assert actions[2].flow.verifiable_address == "a@example.com"
    assert isinstance(actions[3], BrowserRedirect)


def test_parse_unknown_and_malformed_actions_are_kept():
    """Test that unrecognized entries are not silently dropped"""
    actions = parse_continue_with([
        {"action": "show_passkey_ui", "flow": {"id": "p1"}},
        {"action": "show_settings_ui"},
    ])

    assert [type(a) for a in actions] == [UnknownAction, UnknownAction]
    assert actions[0].action == "show_passkey_ui"
    assert actions[1].raw == {"action": "show_settings_ui"}


def test_parse_empty():
    assert parse_continue_with(None) == []
    assert parse_continue_with([]) == []


# ============================================================================
# Resolution
# ============================================================================

@pytest.mark.asyncio
async def test_no_actions_returns_result_unchanged(kratos):
    """Test the single-step configuration"""
    recovery_result = {"id": "rec-1", "state": "passed_challenge"}

    result = await resolve_recovery_continuation(kratos, recovery_result, "newpass123")

    assert result is recovery_result
    kratos.submit_settings_flow.assert_not_called()


@pytest.mark.asyncio
async def test_only_unrelated_actions_returns_result_unchanged(kratos):
    recovery_result = {
        "id": "rec-1",
        "continue_with": [{"action": "redirect_browser_to", "redirect_browser_to": "http://app"}],
    }

    result = await resolve_recovery_continuation(kratos, recovery_result, "newpass123")

    assert result is recovery_result
    kratos.submit_settings_flow.assert_not_called()


@pytest.mark.asyncio
async def test_token_and_settings_submit_once_with_token(kratos):
    """Test that the settings flow is submitted with the granted token"""
    recovery_result = {"id": "rec-1", "continue_with": [SETTINGS_ACTION, TOKEN_ACTION]}

    result = await resolve_recovery_continuation(kratos, recovery_result, "newpass123")

    kratos.submit_settings_flow.assert_awaited_once_with(
        "settings-flow-1",
        {"method": "password", "password": "newpass123"},
        "ory_st_recovered",
    )
    assert result["settings_flow"] == {"id": "settings-flow-1", "state": "success"}
    assert result["id"] == "rec-1"
    assert result["continue_with"] == recovery_result["continue_with"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "continue_with, missing",
    [
        ([SETTINGS_ACTION], "without a session token"),
        ([TOKEN_ACTION], "without a settings flow"),
        ([{"action": "set_ory_session_token", "ory_session_token": ""}, SETTINGS_ACTION], "without a session token"),
    ],
)
async def test_partial_continuation_fails_fast(kratos, continue_with, missing):
    """Test that one action without the other never reaches Kratos"""
    with pytest.raises(AppError) as exc_info:
        await resolve_recovery_continuation(
            kratos, {"id": "rec-1", "continue_with": continue_with}, "newpass123"
        )

    assert exc_info.value.kind is ErrorKind.INTERNAL_ERROR
    assert missing in exc_info.value.details
    kratos.submit_settings_flow.assert_not_called()


@pytest.mark.asyncio
async def test_settings_failure_is_internal_error(kratos):
    kratos.submit_settings_flow.side_effect = KratosError(
        "submit_settings_flow", 400, "The password can not be used"
    )

    with pytest.raises(AppError) as exc_info:
        await resolve_recovery_continuation(
            kratos, {"continue_with": [TOKEN_ACTION, SETTINGS_ACTION]}, "newpass123"
        )

    assert exc_info.value.kind is ErrorKind.INTERNAL_ERROR
    assert exc_info.value.status_code == 500
    assert exc_info.value.details == "The password can not be used"
