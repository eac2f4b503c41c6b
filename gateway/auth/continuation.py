"""
Continuation Actions and Recovery Resolution
============================================

Kratos flow submissions may answer with a ``continue_with`` list telling the
caller what has to happen next. Each entry is tagged by its ``action``
field; this module parses the list into typed models and resolves the one
case the gateway completes on the client's behalf: finishing a password
reset after a recovery code was accepted.

Recovery with the ``code`` method splits the reset across two flows:

    POST /self-service/recovery?flow=R   {"method": "code", "code": ...}
        -> continue_with: [set_ory_session_token, show_settings_ui]
    POST /self-service/settings?flow=S   {"method": "password", ...}
        X-Session-Token: <token from set_ory_session_token>

The resolver requires both actions before touching the settings flow.
"""

import logging
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, ValidationError

from ..errors import AppError
from .flows import build_settings_password_body
from .kratos import KratosClient, KratosError

logger = logging.getLogger(__name__)


# =============================================================================
# Action Models
# =============================================================================

class FlowRef(BaseModel):
    id: str
    url: Optional[str] = None
    verifiable_address: Optional[str] = None


class SessionTokenGrant(BaseModel):
    """A session token issued mid-flow (``set_ory_session_token``)."""

    action: Literal["set_ory_session_token"] = "set_ory_session_token"
    ory_session_token: str


class SettingsFlowRef(BaseModel):
    """A settings flow the client should continue with (``show_settings_ui``)."""

    action: Literal["show_settings_ui"] = "show_settings_ui"
    flow: FlowRef


class VerificationFlowRef(BaseModel):
    action: Literal["show_verification_ui"] = "show_verification_ui"
    flow: FlowRef


class RecoveryFlowRef(BaseModel):
    action: Literal["show_recovery_ui"] = "show_recovery_ui"
    flow: FlowRef


class BrowserRedirect(BaseModel):
    action: Literal["redirect_browser_to"] = "redirect_browser_to"
    redirect_browser_to: str


class UnknownAction(BaseModel):
    """Action kind this gateway does not understand; kept for logging."""

    action: str
    raw: Dict[str, Any] = Field(default_factory=dict)


ContinuationAction = Union[
    SessionTokenGrant,
    SettingsFlowRef,
    VerificationFlowRef,
    RecoveryFlowRef,
    BrowserRedirect,
    UnknownAction,
]

_ACTION_MODELS = {
    "set_ory_session_token": SessionTokenGrant,
    "show_settings_ui": SettingsFlowRef,
    "show_verification_ui": VerificationFlowRef,
    "show_recovery_ui": RecoveryFlowRef,
    "redirect_browser_to": BrowserRedirect,
}


def parse_continue_with(items: Optional[List[Any]]) -> List[ContinuationAction]:
    """
    Parse a ``continue_with`` list into typed actions.

    Entries with an unknown ``action`` or a malformed shape become
    ``UnknownAction`` and are logged.

    Args:
        items: Raw ``continue_with`` value (may be None)

    Returns:
        Actions in the order Kratos sent them
    """
    actions: List[ContinuationAction] = []
    for item in items or []:
        if not isinstance(item, dict):
            logger.warning("Ignoring non-object continuation action")
            continue

        name = str(item.get("action", ""))
        model = _ACTION_MODELS.get(name)
        if model is None:
            logger.warning(
                "Unknown continuation action",
                extra={"action": name}
            )
            actions.append(UnknownAction(action=name, raw=item))
            continue

        try:
            actions.append(model.model_validate(item))
        except ValidationError:
            logger.warning(
                "Malformed continuation action",
                extra={"action": name}
            )
            actions.append(UnknownAction(action=name, raw=item))

    return actions


# =============================================================================
# Recovery Resolution
# =============================================================================

async def resolve_recovery_continuation(
    kratos: KratosClient,
    recovery_result: Dict[str, Any],
    new_password: str,
) -> Dict[str, Any]:
    """
    Finish a password reset after Kratos accepted a recovery code.

    Args:
        kratos: Kratos client
        recovery_result: Response of the recovery code submission
        new_password: Already validated new password

    Returns:
        The recovery result unchanged when Kratos asked for nothing more,
        otherwise the recovery result with the settings flow outcome
        attached under ``settings_flow``

    Raises:
        AppError: INTERNAL_ERROR if only one of the two required actions is
            present or the settings submission fails
    """
    token: Optional[str] = None
    settings_flow: Optional[FlowRef] = None

    for action in parse_continue_with(recovery_result.get("continue_with")):
        match action:
            case SessionTokenGrant(ory_session_token=granted):
                token = granted or None
            case SettingsFlowRef(flow=flow):
                settings_flow = flow
            case VerificationFlowRef() | RecoveryFlowRef() | BrowserRedirect():
                logger.debug(
                    "Continuation action left to the client",
                    extra={"action": action.action}
                )
            case UnknownAction():
                pass

    if token is None and settings_flow is None:
        return recovery_result

    if token is None:
        raise AppError.internal(
            "failed to complete password recovery",
            details="settings flow returned without a session token",
        )
    if settings_flow is None:
        raise AppError.internal(
            "failed to complete password recovery",
            details="session token returned without a settings flow",
        )

    logger.info(
        "Completing password recovery via settings flow",
        extra={"settings_flow_id": settings_flow.id}
    )

    try:
        settings_result = await kratos.submit_settings_flow(
            settings_flow.id,
            build_settings_password_body(new_password),
            token,
        )
    except KratosError as e:
        raise AppError.internal("failed to update password", details=e.message)

    return {**recovery_result, "settings_flow": settings_result}


__all__ = [
    "FlowRef",
    "SessionTokenGrant",
    "SettingsFlowRef",
    "VerificationFlowRef",
    "RecoveryFlowRef",
    "BrowserRedirect",
    "UnknownAction",
    "ContinuationAction",
    "parse_continue_with",
    "resolve_recovery_continuation",
]
