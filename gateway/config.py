"""
Configuration module for the API Gateway.

This module uses Pydantic Settings to load and validate environment variables
for the identity provider (Ory Kratos), the language-model provider, the HTTP
server and CORS settings.

Environment variables are loaded from .env file or system environment.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


SUPPORTED_LLM_PROVIDERS = ("ollama", "openai")
SUPPORTED_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Every value has a development-friendly default so the gateway starts
    against a local Kratos and Ollama without any .env file.
    """

    # =========================================================================
    # Server Configuration
    # =========================================================================

    ENVIRONMENT: str = Field(
        default="development",
        description="Deployment environment (development, staging, production)",
    )

    HOST: str = Field(
        default="0.0.0.0",
        description="Host to bind the gateway server",
    )

    PORT: int = Field(
        default=8080,
        description="Port to bind the gateway server",
        ge=1,
        le=65535,
    )

    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    # =========================================================================
    # Identity Provider (Ory Kratos)
    # =========================================================================

    KRATOS_PUBLIC_URL: HttpUrl = Field(
        default="http://localhost:4433",
        description="Kratos public API base URL (e.g., http://kratos:4433)",
    )

    KRATOS_TIMEOUT_SECONDS: float = Field(
        default=15.0,
        description="Timeout for a single Kratos call in seconds",
        ge=1,
        le=120,
    )

    # =========================================================================
    # Language Model Provider
    # =========================================================================

    LLM_PROVIDER: str = Field(
        default="ollama",
        description="Language-model provider: 'ollama' or 'openai'",
    )

    LLM_MODEL: str = Field(
        default="llama2",
        description="Model name passed to the provider",
        min_length=1,
    )

    LLM_BASE_URL: Optional[str] = Field(
        default=None,
        description=(
            "Provider base URL (Ollama host, or OpenAI-compatible /v1 root). "
            "Defaults to http://localhost:11434 for ollama and the public "
            "OpenAI API for openai"
        ),
    )

    LLM_API_KEY: Optional[str] = Field(
        default=None,
        description="API key for the provider (required for openai)",
    )

    LLM_TIMEOUT_SECONDS: float = Field(
        default=60.0,
        description="Timeout for a single generation call in seconds",
        ge=1,
        le=600,
    )

    # =========================================================================
    # CORS Configuration
    # =========================================================================

    ALLOWED_ORIGINS: Optional[str] = Field(
        default="http://localhost:3000",
        description="Comma-separated list of allowed CORS origins (leave empty for no CORS)",
    )

    # =========================================================================
    # Pydantic Settings Configuration
    # =========================================================================

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",  # Ignore extra env vars not defined here
    )

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def allowed_origins_list(self) -> List[str]:
        """
        Parse and return ALLOWED_ORIGINS as a list.

        Returns:
            List of allowed origin URLs, or empty list if not configured.
        """
        if not self.ALLOWED_ORIGINS:
            return []

        return [
            origin.strip()
            for origin in self.ALLOWED_ORIGINS.split(",")
            if origin.strip()
        ]

    @property
    def kratos_public_url_str(self) -> str:
        """Kratos public URL as string without trailing slash."""
        return str(self.KRATOS_PUBLIC_URL).rstrip("/")

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT.lower() == "development"

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("LLM_PROVIDER")
    @classmethod
    def validate_llm_provider(cls, v: str) -> str:
        """
        Validate the language-model provider name.

        Args:
            v: Provider name

        Returns:
            Normalized lowercase provider name

        Raises:
            ValueError: If provider is not supported
        """
        provider = v.strip().lower()

        if provider not in SUPPORTED_LLM_PROVIDERS:
            raise ValueError(
                f"LLM_PROVIDER must be one of {list(SUPPORTED_LLM_PROVIDERS)}, got: {v}"
            )

        return provider

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.strip().upper()

        if level not in SUPPORTED_LOG_LEVELS:
            raise ValueError(
                f"LOG_LEVEL must be one of {list(SUPPORTED_LOG_LEVELS)}, got: {v}"
            )

        return level

    @field_validator("LLM_MODEL")
    @classmethod
    def validate_llm_model(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("LLM_MODEL is required")
        return v.strip()


# =============================================================================
# Settings Singleton
# =============================================================================

@lru_cache()
def get_settings() -> Settings:
    """
    Get or create a singleton Settings instance.

    This function is cached so that the settings are loaded only once
    during the application lifecycle.

    Returns:
        Settings instance with all configuration loaded and validated.

    Raises:
        ValidationError: If an environment variable is invalid.

    Example:
        >>> from gateway.config import get_settings
        >>> settings = get_settings()
        >>> print(settings.KRATOS_PUBLIC_URL)
    """
    return Settings()


# =============================================================================
# Configuration Helpers
# =============================================================================

def validate_configuration(settings: Optional[Settings] = None) -> dict:
    """
    Validate critical configuration settings and return a status report.

    Called during application startup; errors are logged but do not stop
    the service.

    Args:
        settings: Settings to check (defaults to the cached instance)

    Returns:
        Dictionary with validation status, errors and warnings.

    Example:
        >>> status = validate_configuration()
        >>> if not status["valid"]:
        ...     print(status["errors"])
    """
    settings = settings or get_settings()
    errors = []
    warnings = []

    if settings.LLM_PROVIDER == "openai" and not settings.LLM_API_KEY:
        errors.append("LLM_API_KEY is required when LLM_PROVIDER is 'openai'")

    if settings.is_production:
        if "localhost" in settings.kratos_public_url_str or "127.0.0.1" in settings.kratos_public_url_str:
            warnings.append("KRATOS_PUBLIC_URL points to localhost in production")

        if "*" in settings.allowed_origins_list:
            warnings.append("ALLOWED_ORIGINS allows any origin in production")

    if not settings.allowed_origins_list:
        warnings.append("ALLOWED_ORIGINS is empty (CORS disabled)")

    return {
        "valid": len(errors) == 0,
        "errors": errors,
        "warnings": warnings,
        "environment": settings.ENVIRONMENT,
        "llm_provider": settings.LLM_PROVIDER,
    }
