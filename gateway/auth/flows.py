"""
Flow Body Builders
==================

Pure functions that turn validated request models into Kratos submission
payloads, plus helpers that simplify Kratos flow objects for API clients.

Every body carries exactly one ``method`` tag:
- ``password`` for login, registration and settings
- ``code`` for verification and recovery

Request-a-code and submit-a-code steps use different shapes. A code
submission must never include the email: Kratos reads an email in that
step as "send a new code" and ignores the code.
"""

from typing import Any, Dict, List, Optional

from ..models import FormField, RegistrationFlowResponse

METHOD_PASSWORD = "password"
METHOD_CODE = "code"

CSRF_FIELD_NAME = "csrf_token"


# =============================================================================
# Body Builders
# =============================================================================

def build_login_body(email: str, password: str) -> Dict[str, Any]:
    return {
        "method": METHOD_PASSWORD,
        "identifier": email,
        "password": password,
    }


def build_registration_body(
    email: str,
    password: str,
    first_name: str,
    last_name: str,
) -> Dict[str, Any]:
    return {
        "method": METHOD_PASSWORD,
        "password": password,
        "traits": {
            "email": email,
            "name": {
                "first": first_name,
                "last": last_name,
            },
        },
    }


def build_verification_request_body(email: str) -> Dict[str, Any]:
    return {"method": METHOD_CODE, "email": email}


def build_verification_code_body(code: str) -> Dict[str, Any]:
    return {"method": METHOD_CODE, "code": code}


def build_recovery_request_body(email: str) -> Dict[str, Any]:
    return {"method": METHOD_CODE, "email": email}


def build_recovery_code_body(code: str) -> Dict[str, Any]:
    return {"method": METHOD_CODE, "code": code}


def build_settings_password_body(password: str) -> Dict[str, Any]:
    return {"method": METHOD_PASSWORD, "password": password}


# =============================================================================
# Flow Simplification
# =============================================================================

def _input_nodes(flow: Dict[str, Any]) -> List[Dict[str, Any]]:
    ui = flow.get("ui") or {}
    return [
        node for node in ui.get("nodes") or []
        if isinstance(node, dict)
        and node.get("type") == "input"
        and isinstance(node.get("attributes"), dict)
    ]


def extract_csrf_token(flow: Dict[str, Any]) -> str:
    """
    Find the anti-forgery token among a flow's form inputs.

    Args:
        flow: Kratos flow object

    Returns:
        Value of the ``csrf_token`` input, or "" if absent
    """
    for node in _input_nodes(flow):
        attributes = node["attributes"]
        if attributes.get("name") == CSRF_FIELD_NAME:
            return attributes.get("value") or ""
    return ""


def _node_label(node: Dict[str, Any]) -> Optional[str]:
    label = (node.get("meta") or {}).get("label")
    if isinstance(label, dict):
        return label.get("text")
    return None


def extract_form_fields(flow: Dict[str, Any]) -> List[FormField]:
    """
    Flatten a flow's input nodes into simple form fields.

    Non-input nodes (text, images, scripts) are skipped.

    Args:
        flow: Kratos flow object

    Returns:
        One FormField per input node, in UI order
    """
    fields = []
    for node in _input_nodes(flow):
        attributes = node["attributes"]
        fields.append(
            FormField(
                name=attributes.get("name", ""),
                type=attributes.get("type", ""),
                required=bool(attributes.get("required", False)),
                value=attributes.get("value"),
                label=_node_label(node),
            )
        )
    return fields


def simplify_registration_flow(flow: Dict[str, Any]) -> RegistrationFlowResponse:
    """
    Reduce a Kratos registration flow to what an API client needs.

    Args:
        flow: Kratos registration flow object

    Returns:
        RegistrationFlowResponse with flow id, CSRF token, expiry, form
        action and method, and the input fields
    """
    ui = flow.get("ui") or {}
    return RegistrationFlowResponse(
        flow_id=flow.get("id", ""),
        csrf_token=extract_csrf_token(flow),
        expires_at=flow.get("expires_at"),
        action=ui.get("action", ""),
        method=ui.get("method", ""),
        fields=extract_form_fields(flow),
    )


__all__ = [
    "METHOD_PASSWORD",
    "METHOD_CODE",
    "build_login_body",
    "build_registration_body",
    "build_verification_request_body",
    "build_verification_code_body",
    "build_recovery_request_body",
    "build_recovery_code_body",
    "build_settings_password_body",
    "extract_csrf_token",
    "extract_form_fields",
    "simplify_registration_flow",
]
