"""
Authentication Package

This package fronts Ory Kratos for the gateway.

Key responsibilities:
- Session token extraction and session gating dependencies
- Kratos public API client (flows, sessions, logout)
- Flow body builders and registration flow simplification
- Recovery continuation (code accepted -> settings flow -> new password)

Modules:
- routes: Public flow endpoints (/users/...) and account endpoints (/app/...)
- session: Token extraction, require_session / optional_session
- kratos: KratosClient and KratosError
- flows: Pure payload builders
- continuation: continue_with parsing and recovery resolution
"""

from .kratos import KratosClient, KratosError
from .routes import account_router, users_router
from .session import extract_session_token, optional_session, require_session

__all__ = [
    "KratosClient",
    "KratosError",
    "users_router",
    "account_router",
    "extract_session_token",
    "require_session",
    "optional_session",
]
