"""
Authentication routes for federated login and logout.

This module implements the browser side of the OAuth 2.0 authorization
code flow with Google, Facebook and GitHub:

- GET /auth/{provider}           redirect to the provider's login page
- GET /auth/{provider}/redirect  provider callback; start a session
- GET /logout                    end the session
"""

import logging
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import RedirectResponse

from portal.app.auth.manager import AuthenticationSessionManager, get_auth_manager
from portal.app.auth.session import (
    clear_session_cookie_kwargs,
    encode_session_cookie,
    session_cookie_kwargs,
)
from portal.app.models import AuthFailure, UnsupportedProviderError

logger = logging.getLogger("portal.auth.routes")


# =============================================================================
# Router Setup
# =============================================================================

auth_router = APIRouter(tags=["authentication"])


# =============================================================================
# Login Endpoint
# =============================================================================

@auth_router.get("/auth/{provider}", response_class=RedirectResponse)
async def login(
    provider: str,
    manager: AuthenticationSessionManager = Depends(get_auth_manager),
):
    """
    Start a login by redirecting to the provider's authorization endpoint.

    Path Parameters:
        provider: google, facebook or github

    Returns:
        302 RedirectResponse to the provider; 404 for unsupported providers
    """
    try:
        redirect = manager.begin_login(provider)
    except UnsupportedProviderError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    return RedirectResponse(url=redirect.url, status_code=status.HTTP_302_FOUND)


# =============================================================================
# Callback Endpoint
# =============================================================================

@auth_router.get("/auth/{provider}/redirect", response_class=RedirectResponse)
async def callback(
    provider: str,
    request: Request,
    manager: AuthenticationSessionManager = Depends(get_auth_manager),
):
    """
    Handle the provider's redirect back to the portal.

    On success the session cookie is set and the browser goes to /profile.
    On failure the browser goes home with only a reason code in the query;
    provider error details are logged, never shown.
    """
    try:
        result = await manager.complete_login(provider, dict(request.query_params), request)
    except UnsupportedProviderError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    if isinstance(result, AuthFailure):
        query = urlencode({"login_error": result.reason.value})
        return RedirectResponse(url=f"/?{query}", status_code=status.HTTP_302_FOUND)

    response = RedirectResponse(url="/profile", status_code=status.HTTP_302_FOUND)
    cookie_value = encode_session_cookie(result.session_id, manager.settings)
    response.set_cookie(**session_cookie_kwargs(manager.settings, cookie_value))
    return response


# =============================================================================
# Logout Endpoint
# =============================================================================

@auth_router.get("/logout", response_class=RedirectResponse)
async def logout(
    request: Request,
    manager: AuthenticationSessionManager = Depends(get_auth_manager),
):
    """End the current session (if any) and go home."""
    await manager.logout(request)

    response = RedirectResponse(url="/", status_code=status.HTTP_302_FOUND)
    response.set_cookie(**clear_session_cookie_kwargs(manager.settings))
    return response
