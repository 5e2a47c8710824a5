"""
Configuration module for the federated login portal.

This module uses Pydantic Settings to load and validate environment variables
for session cookie signing, the three identity providers (Google, Facebook,
GitHub), provider timeouts and server settings.

Environment variables are loaded from .env file or system environment.
"""

from dataclasses import dataclass
from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from portal.app.models import Provider


@dataclass(frozen=True)
class ProviderCredentials:
    """OAuth client registration for a single identity provider."""

    client_id: str
    client_secret: str
    callback_url: str


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    A provider is enabled when both its client ID and client secret are set.
    Its callback URL defaults to ``{PUBLIC_BASE_URL}/auth/{provider}/redirect``.
    """

    # =========================================================================
    # Session Configuration
    # =========================================================================

    SESSION_SECRET: str = Field(
        ...,
        description="Secret used to sign session cookies",
        min_length=16,
    )

    SESSION_JWT_ALGORITHM: str = Field(
        default="HS256",
        description="Signing algorithm for the session cookie (HS256, HS384 or HS512)",
    )

    SESSION_COOKIE_NAME: str = Field(
        default="portal_session",
        description="Name of the cookie carrying the signed session id",
        min_length=1,
    )

    SESSION_MAX_AGE_SECONDS: int = Field(
        default=86400,
        description="Session lifetime in seconds (cookie max-age and store TTL)",
        ge=60,
        le=2592000,  # 30 days
    )

    SESSION_COOKIE_SECURE: bool = Field(
        default=False,
        description="Mark the session cookie Secure (enable behind HTTPS)",
    )

    # =========================================================================
    # Identity Providers
    # =========================================================================

    PUBLIC_BASE_URL: str = Field(
        default="http://localhost:3000",
        description="Externally visible base URL, used to derive callback URLs",
    )

    PROVIDER_TIMEOUT_SECONDS: float = Field(
        default=10.0,
        description="Upper bound for one provider round trip (token exchange + profile)",
        gt=0,
        le=120,
    )

    GOOGLE_CLIENT_ID: Optional[str] = None
    GOOGLE_CLIENT_SECRET: Optional[str] = None
    GOOGLE_CALLBACK_URL: Optional[str] = None

    FACEBOOK_CLIENT_ID: Optional[str] = None
    FACEBOOK_CLIENT_SECRET: Optional[str] = None
    FACEBOOK_CALLBACK_URL: Optional[str] = None

    GITHUB_CLIENT_ID: Optional[str] = None
    GITHUB_CLIENT_SECRET: Optional[str] = None
    GITHUB_CALLBACK_URL: Optional[str] = None

    # =========================================================================
    # Server Configuration
    # =========================================================================

    HOST: str = Field(default="0.0.0.0", description="Host to bind the server")

    PORT: int = Field(default=3000, description="Port to bind the server", ge=1, le=65535)

    LOG_LEVEL: str = Field(default="INFO", description="Logging level")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # =========================================================================
    # Computed Properties
    # =========================================================================

    def provider_credentials(self, provider: Provider) -> Optional[ProviderCredentials]:
        """
        Return the OAuth client registration for a provider.

        Args:
            provider: Provider to look up

        Returns:
            ProviderCredentials, or None if the provider is not configured.
        """
        prefix = provider.value.upper()
        client_id = (getattr(self, f"{prefix}_CLIENT_ID") or "").strip()
        client_secret = (getattr(self, f"{prefix}_CLIENT_SECRET") or "").strip()
        if not client_id or not client_secret:
            return None

        callback_url = (getattr(self, f"{prefix}_CALLBACK_URL") or "").strip()
        if not callback_url:
            callback_url = f"{self.PUBLIC_BASE_URL}/auth/{provider.value}/redirect"

        return ProviderCredentials(
            client_id=client_id,
            client_secret=client_secret,
            callback_url=callback_url,
        )

    @property
    def enabled_providers(self) -> List[Provider]:
        """Providers with complete client credentials, in declaration order."""
        return [p for p in Provider if self.provider_credentials(p) is not None]

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("SESSION_JWT_ALGORITHM")
    @classmethod
    def validate_jwt_algorithm(cls, v: str) -> str:
        """
        Validate the cookie signing algorithm is one of the HMAC algorithms.

        Raises:
            ValueError: If algorithm is not supported
        """
        allowed_algorithms = ["HS256", "HS384", "HS512"]

        if v not in allowed_algorithms:
            raise ValueError(
                f"JWT algorithm must be one of {allowed_algorithms}, got: {v}"
            )

        return v

    @field_validator("PUBLIC_BASE_URL")
    @classmethod
    def validate_public_base_url(cls, v: str) -> str:
        v = v.strip().rstrip("/")
        if not v.startswith(("http://", "https://")):
            raise ValueError(
                f"PUBLIC_BASE_URL must start with http:// or https://, got: {v}"
            )
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid LOG_LEVEL: {v}")
        return level


# =============================================================================
# Settings Singleton
# =============================================================================

@lru_cache()
def get_settings() -> Settings:
    """
    Get or create a singleton Settings instance.

    Cached so that the settings are loaded only once during the application
    lifecycle.

    Raises:
        ValidationError: If required environment variables are missing
                        or invalid.
    """
    return Settings()


# =============================================================================
# Configuration Helpers
# =============================================================================

def validate_configuration(settings: Settings) -> dict:
    """
    Validate configuration and return a status report.

    Called during application startup so that missing providers and insecure
    cookie settings show up in the logs.

    Example:
        >>> status = validate_configuration(get_settings())
        >>> if not status["valid"]:
        ...     print(status["errors"])
    """
    errors = []
    warnings = []

    enabled = settings.enabled_providers
    if not enabled:
        errors.append("No identity provider configured (set <PROVIDER>_CLIENT_ID and <PROVIDER>_CLIENT_SECRET)")

    for provider in Provider:
        prefix = provider.value.upper()
        has_id = bool(getattr(settings, f"{prefix}_CLIENT_ID"))
        has_secret = bool(getattr(settings, f"{prefix}_CLIENT_SECRET"))
        if has_id != has_secret:
            warnings.append(f"{prefix} is partially configured and will be disabled")

    if settings.PUBLIC_BASE_URL.startswith("https://") and not settings.SESSION_COOKIE_SECURE:
        warnings.append("PUBLIC_BASE_URL is https but SESSION_COOKIE_SECURE is off")

    if len(settings.SESSION_SECRET) < 32:
        warnings.append("SESSION_SECRET is shorter than recommended (32+ chars)")

    return {
        "valid": len(errors) == 0,
        "errors": errors,
        "warnings": warnings,
        "enabled_providers": [p.value for p in enabled],
    }
