"""
Session Cookie Module
=====================

Signs the opaque session id into the browser cookie and verifies it on the
way back in. The cookie carries nothing but the session id, an issue time,
an expiry and the issuer; the identity itself stays in the session store.

Cookies are HS256/384/512 JWTs signed with ``SESSION_SECRET``.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError

from portal.app.config import Settings

logger = logging.getLogger("portal.auth.session")

SESSION_ISSUER = "portal-session"


# =============================================================================
# Encoding
# =============================================================================

def encode_session_cookie(session_id: str, settings: Settings) -> str:
    """
    Create the signed cookie value for a session id.

    Args:
        session_id: Opaque id issued by the session store
        settings: Application settings (secret, algorithm, max age)

    Returns:
        Encoded JWT string

    Example:
        >>> value = encode_session_cookie("abc123", settings)
        >>> decode_session_cookie(value, settings)
        'abc123'
    """
    if not session_id:
        raise ValueError("session_id must not be empty")

    now = datetime.now(timezone.utc)
    payload = {
        "sid": session_id,
        "iat": now,
        "exp": now + timedelta(seconds=settings.SESSION_MAX_AGE_SECONDS),
        "iss": SESSION_ISSUER,
    }
    return jwt.encode(payload, settings.SESSION_SECRET, algorithm=settings.SESSION_JWT_ALGORITHM)


# =============================================================================
# Verification
# =============================================================================

def decode_session_cookie(value: Optional[str], settings: Settings) -> Optional[str]:
    """
    Verify a cookie value and return the session id it carries.

    Tampered, expired or foreign cookies resolve to None, which the caller
    treats as an anonymous request.

    Args:
        value: Raw cookie value (may be None or empty)
        settings: Application settings

    Returns:
        Session id, or None if the cookie is missing or invalid
    """
    if not value:
        return None

    try:
        claims = jwt.decode(
            value,
            settings.SESSION_SECRET,
            algorithms=[settings.SESSION_JWT_ALGORITHM],
            issuer=SESSION_ISSUER,
            options={"require": ["exp", "iat", "iss", "sid"]},
        )
    except ExpiredSignatureError:
        logger.debug("Session cookie expired")
        return None
    except InvalidTokenError as e:
        logger.warning(f"Rejected session cookie: {e}")
        return None

    session_id = claims.get("sid")
    if not isinstance(session_id, str) or not session_id:
        logger.warning("Session cookie carries no usable session id")
        return None
    return session_id


# =============================================================================
# Cookie Attributes
# =============================================================================

def session_cookie_kwargs(settings: Settings, value: str) -> Dict[str, Any]:
    """Keyword arguments for ``Response.set_cookie`` when starting a session."""
    return {
        "key": settings.SESSION_COOKIE_NAME,
        "value": value,
        "max_age": settings.SESSION_MAX_AGE_SECONDS,
        "httponly": True,
        "secure": settings.SESSION_COOKIE_SECURE,
        "samesite": "lax",
        "path": "/",
    }


def clear_session_cookie_kwargs(settings: Settings) -> Dict[str, Any]:
    """Keyword arguments for ``Response.set_cookie`` that expire the cookie."""
    return {
        "key": settings.SESSION_COOKIE_NAME,
        "value": "",
        "max_age": 0,
        "httponly": True,
        "secure": settings.SESSION_COOKIE_SECURE,
        "samesite": "lax",
        "path": "/",
    }


__all__ = [
    "SESSION_ISSUER",
    "encode_session_cookie",
    "decode_session_cookie",
    "session_cookie_kwargs",
    "clear_session_cookie_kwargs",
]
