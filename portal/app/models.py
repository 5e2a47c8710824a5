"""
Data Models Module

This module defines the identity, login-result and response models shared
by the authentication and page layers.

Models are organized by functional area:
- Providers (supported identity providers and the unsupported-provider error)
- Identity models (normalized user identity)
- Login models (redirect instruction, success and failure results)
- Health and error response models
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# Providers
# ============================================================================

class UnsupportedProviderError(ValueError):
    """Raised for a provider name that is unknown or not configured."""

    def __init__(self, provider: str, message: Optional[str] = None):
        self.provider = provider
        super().__init__(message or f"Unsupported identity provider: {provider!r}")


class Provider(str, Enum):
    """Identity providers the portal can delegate login to."""

    GOOGLE = "google"
    FACEBOOK = "facebook"
    GITHUB = "github"

    @classmethod
    def parse(cls, name: Union[str, "Provider"]) -> "Provider":
        """
        Map a provider name (e.g. a URL path segment) to a Provider.

        Raises:
            UnsupportedProviderError: If the name is not a supported provider
        """
        if isinstance(name, Provider):
            return name
        try:
            return cls(str(name).strip().lower())
        except ValueError:
            raise UnsupportedProviderError(str(name)) from None


class AuthFailureReason(str, Enum):
    """Why a login attempt did not produce an identity."""

    DENIED = "denied"
    INVALID_CODE = "invalid_code"
    NETWORK = "network"
    TIMEOUT = "timeout"


# ============================================================================
# Identity Models
# ============================================================================

class NormalizedIdentity(BaseModel):
    """Provider-agnostic description of the signed-in user."""

    model_config = ConfigDict(frozen=True)

    provider: Provider = Field(..., description="Provider that authenticated the user")
    provider_user_id: str = Field(..., description="User id at the provider", min_length=1)
    display_name: str = Field(..., description="Name to show in pages")
    email: Optional[str] = Field(None, description="Email address, if the provider shared one")


# ============================================================================
# Login Models
# ============================================================================

class LoginRedirect(BaseModel):
    """Where to send the browser to start a login with a provider."""

    model_config = ConfigDict(frozen=True)

    provider: Provider
    url: str = Field(..., description="Provider authorization URL")
    scope: List[str] = Field(default_factory=list, description="Requested scopes")


class LoginSuccess(BaseModel):
    """A completed login: the identity and the session now holding it."""

    model_config = ConfigDict(frozen=True)

    identity: NormalizedIdentity
    session_id: str = Field(..., description="Opaque id of the newly created session")


class AuthFailure(BaseModel):
    """A failed login. Carries only a reason code, never provider internals."""

    model_config = ConfigDict(frozen=True)

    provider: Provider
    reason: AuthFailureReason


LoginResult = Union[LoginSuccess, AuthFailure]


# ============================================================================
# Health Check Models
# ============================================================================

class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(..., description="Service health status")
    service: str = Field(..., description="Service name")
    version: str = Field(..., description="Service version")


# ============================================================================
# Error Models
# ============================================================================

class ErrorResponse(BaseModel):
    """Standardized error response model."""
    error: str = Field(..., description="Error type or code")
    message: str = Field(..., description="Human-readable error message")
    timestamp: datetime = Field(default_factory=_utcnow, description="Error timestamp")
