"""
Page routes: home and profile.

Both pages render for anonymous and signed-in visitors alike; the session
only decides which view is shown.
"""

import logging
from html import escape
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import HTMLResponse

from portal.app.auth.manager import (
    AuthenticationSessionManager,
    get_auth_manager,
    get_current_identity,
)
from portal.app.models import AuthFailureReason, NormalizedIdentity, Provider

logger = logging.getLogger("portal.pages")

pages_router = APIRouter(tags=["pages"])

PROVIDER_LABELS = {
    Provider.GOOGLE: "Google",
    Provider.FACEBOOK: "Facebook",
    Provider.GITHUB: "GitHub",
}

LOGIN_ERROR_MESSAGES = {
    AuthFailureReason.DENIED: "Sign-in was cancelled.",
    AuthFailureReason.INVALID_CODE: "That sign-in attempt expired. Please try again.",
    AuthFailureReason.NETWORK: "We could not reach the sign-in provider. Please try again.",
    AuthFailureReason.TIMEOUT: "The sign-in provider took too long to respond. Please try again.",
}


# =============================================================================
# Endpoints
# =============================================================================

@pages_router.get("/", response_class=HTMLResponse)
async def home(
    login_error: Optional[str] = Query(None, description="Reason code of a failed login"),
    identity: Optional[NormalizedIdentity] = Depends(get_current_identity),
    manager: AuthenticationSessionManager = Depends(get_auth_manager),
) -> HTMLResponse:
    """Home page: login links when anonymous, a welcome when signed in."""
    return _render_home_page(identity, manager.enabled_providers, _login_error_message(login_error))


@pages_router.get("/profile", response_class=HTMLResponse)
async def profile(
    identity: Optional[NormalizedIdentity] = Depends(get_current_identity),
) -> HTMLResponse:
    """Profile page for the signed-in user; anonymous view otherwise."""
    return _render_profile_page(identity)


def _login_error_message(code: Optional[str]) -> Optional[str]:
    if not code:
        return None
    try:
        return LOGIN_ERROR_MESSAGES[AuthFailureReason(code)]
    except ValueError:
        return None


# =============================================================================
# HTML Response Templates
# =============================================================================

def _render_home_page(
    identity: Optional[NormalizedIdentity],
    providers: List[Provider],
    error_message: Optional[str] = None,
) -> HTMLResponse:
    """
    Render the home page.

    Args:
        identity: Signed-in user, or None
        providers: Providers to offer login links for
        error_message: Message for a failed login attempt

    Returns:
        HTMLResponse with the home view
    """
    if identity is not None:
        body = f"""
            <h1>Welcome, {escape(identity.display_name)}</h1>
            <p class="message">You are signed in with {PROVIDER_LABELS[identity.provider]}.</p>
            <a href="/profile" class="button">View profile</a>
            <a href="/logout" class="button secondary">Log out</a>
        """
    else:
        links = "\n".join(
            f'<a href="/auth/{p.value}" class="button provider-{p.value}">'
            f"Sign in with {PROVIDER_LABELS[p]}</a>"
            for p in providers
        )
        body = f"""
            <h1>Welcome</h1>
            <p class="message">Sign in to see your profile.</p>
            {links or '<p class="message">No sign-in provider is configured.</p>'}
        """

    error_block = f'<p class="error">{escape(error_message)}</p>' if error_message else ""
    return HTMLResponse(content=_page("Home", error_block + body), status_code=200)


def _render_profile_page(identity: Optional[NormalizedIdentity]) -> HTMLResponse:
    """Render the profile page for ``identity`` or the anonymous view."""
    if identity is None:
        body = """
            <h1>Profile</h1>
            <p class="message">You are not signed in.</p>
            <a href="/" class="button">Sign in</a>
        """
    else:
        email = (
            f'<p class="email">{escape(identity.email)}</p>' if identity.email else ""
        )
        body = f"""
            <h1>{escape(identity.display_name)}</h1>
            {email}
            <p class="message">Signed in with {PROVIDER_LABELS[identity.provider]}
                (id {escape(identity.provider_user_id)})</p>
            <a href="/" class="button">Home</a>
            <a href="/logout" class="button secondary">Log out</a>
        """

    return HTMLResponse(content=_page("Profile", body), status_code=200)


def _page(title: str, body: str) -> str:
    return f"""
    <!DOCTYPE html>
    <html lang="en">
    <head>
        <meta charset="UTF-8">
        <meta name="viewport" content="width=device-width, initial-scale=1.0">
        <title>{escape(title)}</title>
        <style>
            * {{ margin: 0; padding: 0; box-sizing: border-box; }}
            body {{
                font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, Helvetica, Arial, sans-serif;
                background: #f3f4f6;
                min-height: 100vh;
                display: flex;
                align-items: center;
                justify-content: center;
                padding: 20px;
            }}
            .container {{
                background: white;
                border-radius: 12px;
                padding: 40px;
                max-width: 500px;
                width: 100%;
                box-shadow: 0 10px 40px rgba(0,0,0,0.1);
                text-align: center;
            }}
            h1 {{ color: #1f2937; font-size: 26px; margin-bottom: 12px; }}
            .message {{ color: #6b7280; font-size: 16px; margin-bottom: 24px; }}
            .email {{ color: #9ca3af; font-size: 14px; margin-bottom: 16px; }}
            .error {{
                background: #fee2e2;
                color: #991b1b;
                padding: 12px;
                border-radius: 8px;
                margin-bottom: 24px;
            }}
            .button {{
                display: block;
                background: #667eea;
                color: white;
                padding: 12px 24px;
                border-radius: 8px;
                text-decoration: none;
                font-weight: 600;
                margin-top: 12px;
            }}
            .button.secondary {{ background: #9ca3af; }}
        </style>
    </head>
    <body>
        <div class="container">
            {body}
        </div>
    </body>
    </html>
    """
