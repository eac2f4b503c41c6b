"""
Ory Kratos Public API Client
============================

Typed async wrapper around the Kratos native (API-client) self-service
endpoints. One method per flow operation; each method issues exactly one
HTTP call through a shared ``httpx.AsyncClient`` and returns the decoded
JSON payload.

Failures raise ``KratosError`` carrying the HTTP status so route handlers
can decide how to classify them:

- ``status_code is None``  provider unreachable (connect error / timeout)
- ``status_code == 401``   credential rejected
- anything else            provider rejected or failed the request

Flow submissions are never retried: Kratos flow steps are not idempotent.

Endpoints used:
    GET    /sessions/whoami
    GET    /self-service/{login,registration,verification,recovery,settings}/api
    GET    /self-service/login/flows?id=
    POST   /self-service/{login,registration,verification,recovery,settings}?flow=
    DELETE /self-service/logout/api
    GET    /self-service/logout/browser
"""

import logging
from typing import Any, Dict, Optional, Tuple

import httpx
from pydantic import ValidationError

from ..models import Session

logger = logging.getLogger(__name__)

SESSION_TOKEN_HEADER = "X-Session-Token"


# =============================================================================
# Exceptions
# =============================================================================

class KratosError(Exception):
    """
    A Kratos call failed.

    Attributes:
        operation: Client method name (e.g. "submit_login_flow")
        status_code: HTTP status from Kratos, or None if unreachable
        message: Best-effort message extracted from the Kratos payload
        payload: Decoded error body, if any
    """

    def __init__(
        self,
        operation: str,
        status_code: Optional[int],
        message: str,
        payload: Optional[Any] = None,
    ):
        super().__init__(f"{operation} failed ({status_code}): {message}")
        self.operation = operation
        self.status_code = status_code
        self.message = message
        self.payload = payload

    @property
    def is_unreachable(self) -> bool:
        return self.status_code is None

    @property
    def is_unauthorized(self) -> bool:
        return self.status_code == 401

    @property
    def is_client_error(self) -> bool:
        return self.status_code is not None and 400 <= self.status_code < 500


def extract_error_message(payload: Any, default: str) -> str:
    """
    Pull a readable message out of a Kratos error or flow payload.

    Kratos answers either with a generic error object
    (``{"error": {"message", "reason"}}``) or, for rejected form
    submissions, with the flow itself carrying ``ui.messages``.

    Args:
        payload: Decoded response body
        default: Message used when nothing better is found

    Returns:
        Message string
    """
    if not isinstance(payload, dict):
        return default

    error = payload.get("error")
    if isinstance(error, dict):
        return error.get("reason") or error.get("message") or default

    ui = payload.get("ui")
    if isinstance(ui, dict):
        messages = ui.get("messages") or []
        for message in messages:
            if isinstance(message, dict) and message.get("text"):
                return message["text"]
        for node in ui.get("nodes") or []:
            for message in node.get("messages") or []:
                if isinstance(message, dict) and message.get("text"):
                    return message["text"]

    return default


# =============================================================================
# Client
# =============================================================================

class KratosClient:
    """
    Async client for the Kratos public API.

    Holds only immutable configuration and a pooled HTTP client; safe to
    share across concurrent requests.

    Example:
        >>> kratos = KratosClient("http://localhost:4433")
        >>> flow = await kratos.create_login_flow()
        >>> result = await kratos.submit_login_flow(flow["id"], body)
        >>> await kratos.aclose()
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 15.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout, connect=min(timeout, 10.0)),
            headers={"Accept": "application/json"},
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _request(self, operation: str, method: str, path: str, **kwargs: Any) -> Any:
        """Issue one call to Kratos and return the decoded body (None when empty)."""
        _, payload = await self._send(operation, method, path, **kwargs)
        return payload

    async def _send(
        self,
        operation: str,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Any] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Tuple[httpx.Response, Any]:
        """
        Issue one call to Kratos and decode the response.

        Returns:
            (response, decoded JSON body or None for empty/non-JSON bodies)

        Raises:
            KratosError: On transport failure or non-2xx status
        """
        try:
            response = await self._client.request(
                method,
                path,
                params=params,
                json=json,
                headers=headers,
            )
        except httpx.TimeoutException:
            logger.error(
                "Kratos request timeout",
                extra={"operation": operation, "path": path}
            )
            raise KratosError(operation, None, "identity provider timeout")
        except httpx.TransportError as e:
            logger.error(
                f"Kratos network error: {e}",
                extra={"operation": operation, "path": path}
            )
            raise KratosError(operation, None, "identity provider unreachable")

        payload = None
        if response.content:
            try:
                payload = response.json()
            except ValueError:
                payload = None

        if response.is_success:
            return response, payload

        message = extract_error_message(payload, response.reason_phrase or "request failed")
        logger.warning(
            f"Kratos rejected {operation}: {response.status_code}",
            extra={
                "operation": operation,
                "status_code": response.status_code,
                "error_message": message,
            }
        )
        raise KratosError(operation, response.status_code, message, payload)

    # =========================================================================
    # Sessions
    # =========================================================================

    async def validate_session(self, token: str) -> Session:
        """
        Resolve a session token to its session record.

        Args:
            token: Session token (empty is rejected without a network call)

        Returns:
            Session

        Raises:
            KratosError: 401 if missing or rejected, the response status if
                Kratos answers 2xx with something that is not a session,
                other statuses otherwise
        """
        if not token:
            raise KratosError("validate_session", 401, "missing session token")

        response, payload = await self._send(
            "validate_session",
            "GET",
            "/sessions/whoami",
            headers={SESSION_TOKEN_HEADER: token},
        )
        try:
            return Session.model_validate(payload)
        except ValidationError as e:
            logger.warning(
                f"Kratos returned an invalid session payload: {e.error_count()} error(s)",
                extra={"operation": "validate_session", "status_code": response.status_code}
            )
            raise KratosError("validate_session", response.status_code, "invalid session payload", payload)

    async def perform_logout(self, token: str) -> None:
        """
        Revoke a session token.

        Raises:
            KratosError: If Kratos refuses (e.g. token already revoked)
        """
        await self._request(
            "perform_logout",
            "DELETE",
            "/self-service/logout/api",
            json={"session_token": token},
        )

    async def create_browser_logout_flow(self, cookie: str) -> Dict[str, Any]:
        """
        Create a browser logout flow from a session cookie.

        Returns:
            ``{"logout_url", "logout_token"}``
        """
        return await self._request(
            "create_browser_logout_flow",
            "GET",
            "/self-service/logout/browser",
            headers={"Cookie": cookie},
        )

    # =========================================================================
    # Login
    # =========================================================================

    async def create_login_flow(
        self,
        refresh: bool = False,
        token: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Create a native login flow.

        Args:
            refresh: Ask for re-authentication of an existing session
            token: Session token to refresh (only sent with refresh)
        """
        params = None
        headers = None
        if refresh:
            params = {"refresh": "true"}
            if token:
                headers = {SESSION_TOKEN_HEADER: token}
        return await self._request(
            "create_login_flow",
            "GET",
            "/self-service/login/api",
            params=params,
            headers=headers,
        )

    async def get_login_flow(self, flow_id: str) -> Dict[str, Any]:
        return await self._request(
            "get_login_flow", "GET", "/self-service/login/flows", params={"id": flow_id}
        )

    async def submit_login_flow(self, flow_id: str, body: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request(
            "submit_login_flow",
            "POST",
            "/self-service/login",
            params={"flow": flow_id},
            json=body,
        )

    # =========================================================================
    # Registration
    # =========================================================================

    async def create_registration_flow(self) -> Dict[str, Any]:
        return await self._request(
            "create_registration_flow", "GET", "/self-service/registration/api"
        )

    async def submit_registration_flow(self, flow_id: str, body: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request(
            "submit_registration_flow",
            "POST",
            "/self-service/registration",
            params={"flow": flow_id},
            json=body,
        )

    # =========================================================================
    # Verification
    # =========================================================================

    async def create_verification_flow(self) -> Dict[str, Any]:
        return await self._request(
            "create_verification_flow", "GET", "/self-service/verification/api"
        )

    async def submit_verification_flow(self, flow_id: str, body: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request(
            "submit_verification_flow",
            "POST",
            "/self-service/verification",
            params={"flow": flow_id},
            json=body,
        )

    # =========================================================================
    # Recovery
    # =========================================================================

    async def create_recovery_flow(self) -> Dict[str, Any]:
        return await self._request(
            "create_recovery_flow", "GET", "/self-service/recovery/api"
        )

    async def submit_recovery_flow(self, flow_id: str, body: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request(
            "submit_recovery_flow",
            "POST",
            "/self-service/recovery",
            params={"flow": flow_id},
            json=body,
        )

    # =========================================================================
    # Settings
    # =========================================================================

    async def create_settings_flow(self, token: str) -> Dict[str, Any]:
        return await self._request(
            "create_settings_flow",
            "GET",
            "/self-service/settings/api",
            headers={SESSION_TOKEN_HEADER: token},
        )

    async def submit_settings_flow(
        self,
        flow_id: str,
        body: Dict[str, Any],
        token: str,
    ) -> Dict[str, Any]:
        """
        Submit a settings flow authenticated by a session token.

        No CSRF token is needed for native (API) flows.
        """
        return await self._request(
            "submit_settings_flow",
            "POST",
            "/self-service/settings",
            params={"flow": flow_id},
            json=body,
            headers={SESSION_TOKEN_HEADER: token},
        )


__all__ = [
    "KratosClient",
    "KratosError",
    "SESSION_TOKEN_HEADER",
    "extract_error_message",
]
