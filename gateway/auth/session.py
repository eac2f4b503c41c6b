"""
Session Gating
==============

Extracts the session credential from incoming requests and resolves it to a
Kratos session. Exposed as FastAPI dependencies:

- ``require_session``: protected routes; 401 if the token is missing or
  rejected, and the route handler never runs
- ``optional_session``: the route always runs and receives the session or
  None

Credential transport (single extraction path for every route):
1. ``X-Session-Token: <token>``
2. ``Authorization: Bearer <token>`` (fallback)

Cookies and query parameters are not accepted here.
"""

import logging
from typing import Mapping, Optional

from fastapi import Depends, Request

from ..errors import AppError
from ..models import Session
from .kratos import SESSION_TOKEN_HEADER, KratosClient, KratosError

logger = logging.getLogger(__name__)


# =============================================================================
# Token Extraction
# =============================================================================

def extract_session_token(headers: Mapping[str, str]) -> str:
    """
    Extract the session token from request headers.

    Args:
        headers: Request headers (case-insensitive mapping)

    Returns:
        Token string, or "" if none is present or the Authorization header
        is malformed

    Example:
        >>> extract_session_token({"Authorization": "Bearer abc"})
        'abc'
        >>> extract_session_token({"Authorization": "Basic abc"})
        ''
    """
    token = (headers.get(SESSION_TOKEN_HEADER) or "").strip()
    if token:
        return token

    authorization = headers.get("Authorization") or ""
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return ""

    return parts[1]


# =============================================================================
# Dependencies
# =============================================================================

def get_kratos_client(request: Request) -> KratosClient:
    """
    Dependency returning the shared Kratos client from app state.

    Raises:
        AppError: SERVICE_UNAVAILABLE if the client was never initialized
    """
    kratos = getattr(request.app.state, "kratos", None)
    if kratos is None:
        raise AppError.service_unavailable("identity provider")
    return kratos


async def require_session(
    request: Request,
    kratos: KratosClient = Depends(get_kratos_client),
) -> Session:
    """
    Dependency for protected routes.

    Args:
        request: FastAPI request
        kratos: Kratos client

    Returns:
        Resolved Session

    Raises:
        AppError: UNAUTHORIZED if the token is missing, invalid or expired
    """
    token = extract_session_token(request.headers)
    if not token:
        raise AppError.unauthorized("missing session token")

    try:
        session = await kratos.validate_session(token)
    except KratosError as e:
        logger.info(
            "Session rejected",
            extra={"path": request.url.path, "status_code": e.status_code}
        )
        raise AppError.unauthorized("invalid or expired session")

    request.state.session = session
    return session


async def optional_session(
    request: Request,
    kratos: KratosClient = Depends(get_kratos_client),
) -> Optional[Session]:
    """
    Dependency for routes that work with or without a session.

    Returns:
        Session if the token is present and valid, otherwise None
    """
    token = extract_session_token(request.headers)
    if not token:
        return None

    try:
        session = await kratos.validate_session(token)
    except KratosError:
        return None

    request.state.session = session
    return session


__all__ = [
    "extract_session_token",
    "get_kratos_client",
    "require_session",
    "optional_session",
]
