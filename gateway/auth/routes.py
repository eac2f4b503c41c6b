"""
Authentication Flow Routes
==========================

REST surface over the Kratos self-service flows. Each submit handler runs
the same four steps:

1. read the ``flow`` query parameter (BAD_REQUEST if empty)
2. validate the JSON body (VALIDATION_ERROR naming the field)
3. build the Kratos payload and call the client
4. classify any Kratos failure into a client-facing error kind

Validation always completes before Kratos is called.

Endpoints (mounted under /api/v1):
----------------------------------
users_router (/users):
- GET  /auth/login                  create login flow
- GET  /auth/login/flow?flow=       fetch login flow
- POST /auth/login/flow?flow=       submit credentials
- GET  /auth/registration           create registration flow (simplified)
- POST /auth/registration/flow?flow= submit registration (201)
- POST /auth/logout/browser         browser (cookie) logout flow
- GET  /verification                create verification flow (session)
- POST /verification/flow?flow=     send verification code (session)
- POST /verification/code?flow=     submit verification code (session)
- GET  /recovery                    create recovery flow
- POST /recovery/flow?flow=         send recovery code
- POST /recovery/code?flow=         submit code and set new password

account_router (/app):
- GET|POST /misc/whoami             current session
- GET|POST /misc/logout             revoke current session
- GET  /settings                    create settings flow
- POST /settings/password?flow=     change password
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Query, Request, status

from ..errors import AppError
from ..models import (
    EmailRequest,
    LoginRequest,
    MessageResponse,
    PasswordChangeRequest,
    RecoveryCodeRequest,
    RegistrationRequest,
    Session,
    VerificationCodeRequest,
)
from .continuation import resolve_recovery_continuation
from .flows import (
    build_login_body,
    build_recovery_code_body,
    build_recovery_request_body,
    build_registration_body,
    build_settings_password_body,
    build_verification_code_body,
    build_verification_request_body,
    simplify_registration_flow,
)
from .kratos import KratosClient, KratosError
from .session import (
    extract_session_token,
    get_kratos_client,
    optional_session,
    require_session,
)

logger = logging.getLogger(__name__)

IDENTITY_PROVIDER = "identity provider"


# =============================================================================
# Router Setup
# =============================================================================

users_router = APIRouter(
    prefix="/users",
    tags=["authentication"],
)

account_router = APIRouter(
    prefix="/app",
    tags=["account"],
)


# =============================================================================
# Helpers
# =============================================================================

def require_flow_id(flow: str = Query("", description="Kratos flow id")) -> str:
    """
    Dependency returning the non-empty ``flow`` query parameter.

    Raises:
        AppError: BAD_REQUEST if missing or blank
    """
    flow_id = flow.strip()
    if not flow_id:
        raise AppError.bad_request("flow parameter is required")
    return flow_id


def provider_unavailable(error: KratosError) -> AppError:
    return AppError.service_unavailable(IDENTITY_PROVIDER, details=error.message)


# =============================================================================
# Login
# =============================================================================

@users_router.get("/auth/login")
async def create_login_flow(
    request: Request,
    refresh: bool = Query(False, description="Re-authenticate an existing session"),
    kratos: KratosClient = Depends(get_kratos_client),
) -> Dict[str, Any]:
    """
    Create a native login flow.

    With ``refresh=true`` and a valid session, the flow re-authenticates
    that session instead of starting a new one. The session is only looked
    up when a refresh is requested.
    """
    token = None
    if refresh and await optional_session(request, kratos) is not None:
        token = extract_session_token(request.headers)

    try:
        return await kratos.create_login_flow(refresh=refresh, token=token)
    except KratosError as e:
        raise provider_unavailable(e)


@users_router.get("/auth/login/flow")
async def get_login_flow(
    flow_id: str = Depends(require_flow_id),
    kratos: KratosClient = Depends(get_kratos_client),
) -> Dict[str, Any]:
    """Fetch an existing login flow (e.g. to re-render errors)."""
    try:
        return await kratos.get_login_flow(flow_id)
    except KratosError as e:
        if e.is_unreachable:
            raise provider_unavailable(e)
        if e.status_code == status.HTTP_410_GONE:
            raise AppError.bad_request("login flow expired", details=e.message)
        if e.is_client_error:
            raise AppError.not_found("login flow")
        raise AppError.internal("failed to fetch login flow", details=e.message)


@users_router.post("/auth/login/flow")
async def submit_login_flow(
    payload: LoginRequest,
    flow_id: str = Depends(require_flow_id),
    kratos: KratosClient = Depends(get_kratos_client),
) -> Dict[str, Any]:
    """
    Submit email and password to a login flow.

    Returns:
        Kratos login result including ``session_token`` and ``session``
    """
    body = build_login_body(payload.email, payload.password)

    try:
        result = await kratos.submit_login_flow(flow_id, body)
    except KratosError as e:
        if e.is_unreachable:
            raise provider_unavailable(e)
        if e.is_client_error:
            raise AppError.unauthorized("invalid credentials")
        raise AppError.internal("login failed", details=e.message)

    logger.info("Login succeeded", extra={"flow_id": flow_id})
    return result


# =============================================================================
# Registration
# =============================================================================

@users_router.get("/auth/registration")
async def create_registration_flow(
    kratos: KratosClient = Depends(get_kratos_client),
) -> Dict[str, Any]:
    """
    Create a registration flow and return its simplified form.

    Returns:
        ``{flow_id, csrf_token, expires_at, action, method, fields}``
    """
    try:
        flow = await kratos.create_registration_flow()
    except KratosError as e:
        raise provider_unavailable(e)

    return simplify_registration_flow(flow).model_dump()


@users_router.post("/auth/registration/flow", status_code=status.HTTP_201_CREATED)
async def submit_registration_flow(
    payload: RegistrationRequest,
    flow_id: str = Depends(require_flow_id),
    kratos: KratosClient = Depends(get_kratos_client),
) -> Dict[str, Any]:
    body = build_registration_body(
        payload.email,
        payload.password,
        payload.first_name,
        payload.last_name,
    )

    try:
        result = await kratos.submit_registration_flow(flow_id, body)
    except KratosError as e:
        raise AppError.internal("registration failed", details=e.message)

    logger.info("Registration succeeded", extra={"flow_id": flow_id})
    return result


# =============================================================================
# Browser Logout
# =============================================================================

@users_router.post("/auth/logout/browser")
async def create_browser_logout_flow(
    request: Request,
    kratos: KratosClient = Depends(get_kratos_client),
) -> Dict[str, Any]:
    """
    Create a logout flow for a browser session identified by its cookie.

    Returns:
        ``{logout_url, logout_token}`` from Kratos
    """
    cookie = request.headers.get("cookie")
    if not cookie:
        raise AppError.bad_request("session cookie is required")

    try:
        return await kratos.create_browser_logout_flow(cookie)
    except KratosError as e:
        if e.is_unreachable:
            raise provider_unavailable(e)
        if e.is_unauthorized:
            raise AppError.unauthorized("invalid or expired session")
        raise AppError.internal("failed to create logout flow", details=e.message)


# =============================================================================
# Verification
# =============================================================================

@users_router.get("/verification")
async def create_verification_flow(
    session: Session = Depends(require_session),
    kratos: KratosClient = Depends(get_kratos_client),
) -> Dict[str, Any]:
    try:
        return await kratos.create_verification_flow()
    except KratosError as e:
        raise provider_unavailable(e)


@users_router.post("/verification/flow")
async def request_verification_code(
    payload: EmailRequest,
    flow_id: str = Depends(require_flow_id),
    session: Session = Depends(require_session),
    kratos: KratosClient = Depends(get_kratos_client),
) -> Dict[str, Any]:
    """Ask Kratos to email a verification code."""
    try:
        return await kratos.submit_verification_flow(
            flow_id, build_verification_request_body(payload.email)
        )
    except KratosError as e:
        raise AppError.internal("failed to send verification code", details=e.message)


@users_router.post("/verification/code")
async def submit_verification_code(
    payload: VerificationCodeRequest,
    flow_id: str = Depends(require_flow_id),
    session: Session = Depends(require_session),
    kratos: KratosClient = Depends(get_kratos_client),
) -> Dict[str, Any]:
    """
    Submit a verification code.

    Any Kratos rejection means the code was wrong or expired, so it is
    always reported as BAD_REQUEST.
    """
    try:
        return await kratos.submit_verification_flow(
            flow_id, build_verification_code_body(payload.code)
        )
    except KratosError as e:
        raise AppError.bad_request("invalid or expired verification code", details=e.message)


# =============================================================================
# Recovery
# =============================================================================

@users_router.get("/recovery")
async def create_recovery_flow(
    kratos: KratosClient = Depends(get_kratos_client),
) -> Dict[str, Any]:
    try:
        return await kratos.create_recovery_flow()
    except KratosError as e:
        raise provider_unavailable(e)


@users_router.post("/recovery/flow")
async def request_recovery_code(
    payload: EmailRequest,
    flow_id: str = Depends(require_flow_id),
    kratos: KratosClient = Depends(get_kratos_client),
) -> Dict[str, Any]:
    """Ask Kratos to email a recovery code."""
    try:
        return await kratos.submit_recovery_flow(
            flow_id, build_recovery_request_body(payload.email)
        )
    except KratosError as e:
        raise AppError.internal("failed to send recovery code", details=e.message)


@users_router.post("/recovery/code")
async def submit_recovery_code(
    payload: RecoveryCodeRequest,
    flow_id: str = Depends(require_flow_id),
    kratos: KratosClient = Depends(get_kratos_client),
) -> Dict[str, Any]:
    """
    Submit a recovery code and apply the new password.

    A rejected code is BAD_REQUEST. If the code is accepted but the
    follow-up settings flow fails, the result is INTERNAL_ERROR.
    """
    try:
        result = await kratos.submit_recovery_flow(
            flow_id, build_recovery_code_body(payload.code)
        )
    except KratosError as e:
        raise AppError.bad_request("invalid or expired recovery code", details=e.message)

    return await resolve_recovery_continuation(kratos, result or {}, payload.password)


# =============================================================================
# Session (whoami / logout)
# =============================================================================

@account_router.api_route("/misc/whoami", methods=["GET", "POST"])
async def whoami(session: Session = Depends(require_session)) -> Dict[str, Any]:
    """Return the current Kratos session."""
    return session.to_response()


@account_router.api_route("/misc/logout", methods=["GET", "POST"], response_model=MessageResponse)
async def logout(
    request: Request,
    session: Session = Depends(require_session),
    kratos: KratosClient = Depends(get_kratos_client),
) -> MessageResponse:
    """Revoke the session token used for this request."""
    token = extract_session_token(request.headers)

    try:
        await kratos.perform_logout(token)
    except KratosError as e:
        raise AppError.internal("failed to logout", details=e.message)

    logger.info("Session revoked", extra={"session_id": session.id})
    return MessageResponse(message="Successfully logged out")


# =============================================================================
# Settings
# =============================================================================

@account_router.get("/settings")
async def create_settings_flow(
    request: Request,
    session: Session = Depends(require_session),
    kratos: KratosClient = Depends(get_kratos_client),
) -> Dict[str, Any]:
    try:
        return await kratos.create_settings_flow(extract_session_token(request.headers))
    except KratosError as e:
        raise provider_unavailable(e)


@account_router.post("/settings/password")
async def change_password(
    request: Request,
    payload: PasswordChangeRequest,
    flow_id: str = Depends(require_flow_id),
    session: Session = Depends(require_session),
    kratos: KratosClient = Depends(get_kratos_client),
) -> Dict[str, Any]:
    token = extract_session_token(request.headers)

    try:
        return await kratos.submit_settings_flow(
            flow_id, build_settings_password_body(payload.password), token
        )
    except KratosError as e:
        if e.is_client_error:
            raise AppError.bad_request("password change rejected", details=e.message)
        raise AppError.internal("failed to change password", details=e.message)


__all__ = [
    "users_router",
    "account_router",
    "require_flow_id",
]
