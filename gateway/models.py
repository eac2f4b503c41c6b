"""
Request and Response Models
===========================

Pydantic models for every request body the gateway accepts and the few
responses it shapes itself. Provider flow objects are passed through as
plain dicts and are not modelled here.

Validation messages name the offending field (e.g. "email is required",
"password must be at least 8 characters") and are surfaced verbatim in the
VALIDATION_ERROR envelope.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, validate_email
from pydantic_core import PydanticCustomError


LOGIN_PASSWORD_MIN_LENGTH = 6
REGISTRATION_PASSWORD_MIN_LENGTH = 8
CODE_MIN_LENGTH = 6

CHAT_ROLES = ("system", "user", "assistant")


# ============================================================================
# Field Checks
# ============================================================================

def check_email(value: Optional[str]) -> str:
    """
    Validate an email address.

    Args:
        value: Raw email string

    Returns:
        Normalized email

    Raises:
        ValueError: If empty or not a valid address
    """
    value = (value or "").strip()
    if not value:
        raise ValueError("email is required")
    try:
        _, email = validate_email(value)
    except PydanticCustomError:
        raise ValueError("invalid email format")
    return email


def check_password(value: Optional[str], min_length: int) -> str:
    if not value:
        raise ValueError("password is required")
    if len(value) < min_length:
        raise ValueError(f"password must be at least {min_length} characters")
    return value


def check_required(value: Optional[str], field: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValueError(f"{field} is required")
    return value


# ============================================================================
# Authentication Requests
# ============================================================================

class LoginRequest(BaseModel):
    """
    Login credentials.

    The password is sent by clients under the key ``pass``.
    """

    model_config = ConfigDict(populate_by_name=True)

    email: str = Field(default="", validate_default=True)
    password: str = Field(default="", alias="pass", validate_default=True)

    @field_validator("email")
    @classmethod
    def validate_email_field(cls, v: str) -> str:
        return check_email(v)

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return check_password(v, LOGIN_PASSWORD_MIN_LENGTH)


class RegistrationRequest(BaseModel):
    """New account details: credentials plus first and last name traits."""

    model_config = ConfigDict(populate_by_name=True)

    email: str = Field(default="", validate_default=True)
    password: str = Field(default="", alias="pass", validate_default=True)
    first_name: str = Field(default="", validate_default=True)
    last_name: str = Field(default="", validate_default=True)

    @field_validator("email")
    @classmethod
    def validate_email_field(cls, v: str) -> str:
        return check_email(v)

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return check_password(v, REGISTRATION_PASSWORD_MIN_LENGTH)

    @field_validator("first_name")
    @classmethod
    def validate_first_name(cls, v: str) -> str:
        return check_required(v, "first_name")

    @field_validator("last_name")
    @classmethod
    def validate_last_name(cls, v: str) -> str:
        return check_required(v, "last_name")


class EmailRequest(BaseModel):
    """Request that a verification or recovery code be sent to an address."""

    email: str = Field(default="", validate_default=True)

    @field_validator("email")
    @classmethod
    def validate_email_field(cls, v: str) -> str:
        return check_email(v)


class VerificationCodeRequest(BaseModel):
    """
    Verification code submission.

    The email is accepted for client convenience but is never forwarded with
    the code, since Kratos treats an email in this step as a resend request.
    """

    email: Optional[str] = None
    code: str = Field(default="", validate_default=True)

    @field_validator("email")
    @classmethod
    def validate_optional_email(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        return check_email(v)

    @field_validator("code")
    @classmethod
    def validate_code(cls, v: str) -> str:
        v = check_required(v, "code")
        if len(v) < CODE_MIN_LENGTH:
            raise ValueError(f"code must be at least {CODE_MIN_LENGTH} characters")
        return v


class RecoveryCodeRequest(BaseModel):
    """Recovery code plus the new password applied once the code is accepted."""

    model_config = ConfigDict(populate_by_name=True)

    code: str = Field(default="", validate_default=True)
    password: str = Field(default="", validate_default=True)

    @field_validator("code")
    @classmethod
    def validate_code(cls, v: str) -> str:
        v = check_required(v, "code")
        if len(v) < CODE_MIN_LENGTH:
            raise ValueError(f"code must be at least {CODE_MIN_LENGTH} characters")
        return v

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return check_password(v, REGISTRATION_PASSWORD_MIN_LENGTH)


class PasswordChangeRequest(BaseModel):
    """New password for an authenticated settings flow."""

    password: str = Field(default="", validate_default=True)

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return check_password(v, REGISTRATION_PASSWORD_MIN_LENGTH)


# ============================================================================
# LLM Requests
# ============================================================================

class ChatMessage(BaseModel):
    """
    One chat turn.

    Unknown roles are treated as ``user``.
    """

    role: str = "user"
    content: str = ""

    @field_validator("role", mode="before")
    @classmethod
    def normalize_role(cls, v: Any) -> str:
        role = str(v or "").strip().lower()
        return role if role in CHAT_ROLES else "user"


class ChatRequest(BaseModel):
    messages: List[ChatMessage] = Field(default_factory=list, validate_default=True)

    @field_validator("messages")
    @classmethod
    def validate_messages(cls, v: List[ChatMessage]) -> List[ChatMessage]:
        if not v:
            raise ValueError("messages array cannot be empty")
        for index, message in enumerate(v):
            if not message.content.strip():
                raise ValueError(f"message at index {index} has empty content")
        return v


class GenerateRequest(BaseModel):
    prompt: str = Field(default="", validate_default=True)

    @field_validator("prompt")
    @classmethod
    def validate_prompt(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("prompt cannot be empty")
        return v


# ============================================================================
# Session
# ============================================================================

class Identity(BaseModel):
    """Identity attached to a Kratos session. Unknown fields are kept."""

    model_config = ConfigDict(extra="allow")

    id: str
    schema_id: Optional[str] = None
    state: Optional[str] = None
    traits: Dict[str, Any] = Field(default_factory=dict)

    @property
    def email(self) -> Optional[str]:
        return self.traits.get("email")


class Session(BaseModel):
    """
    Kratos session record as returned by ``/sessions/whoami``.

    Unknown provider fields are preserved so whoami can pass the session
    through unchanged.
    """

    model_config = ConfigDict(extra="allow")

    id: str
    active: Optional[bool] = None
    expires_at: Optional[datetime] = None
    authenticated_at: Optional[datetime] = None
    identity: Optional[Identity] = None

    @property
    def identity_id(self) -> Optional[str]:
        return self.identity.id if self.identity else None

    @property
    def email(self) -> Optional[str]:
        return self.identity.email if self.identity else None

    def to_response(self) -> Dict[str, Any]:
        """Session as a JSON-ready dict containing only provider fields."""
        return self.model_dump(mode="json", exclude_unset=True)


# ============================================================================
# Responses
# ============================================================================

class FormField(BaseModel):
    name: str
    type: str
    required: bool = False
    value: Any = None
    label: Optional[str] = None


class RegistrationFlowResponse(BaseModel):
    """Simplified registration flow returned to API clients."""

    flow_id: str
    csrf_token: str = ""
    expires_at: Optional[str] = None
    action: str = ""
    method: str = ""
    fields: List[FormField] = Field(default_factory=list)


class ContentResponse(BaseModel):
    content: str


class MessageResponse(BaseModel):
    message: str


class HealthResponse(BaseModel):
    status: str
    version: str
