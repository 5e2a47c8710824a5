"""
Authentication Package

This package handles federated login with Google, Facebook and GitHub and
the session that remembers the signed-in user.

Modules:
- routes: Public endpoints (/auth/{provider}, /auth/{provider}/redirect, /logout)
- manager: AuthenticationSessionManager and its FastAPI dependencies
- providers: One OAuth client per identity provider
- session: Signed session cookie encoding and verification
- store: Session store contract and the in-memory implementation

The authentication flow:
1. Browser visits /auth/{provider} and is redirected to the provider
2. User signs in and consents at the provider
3. Provider redirects to /auth/{provider}/redirect with a code
4. Portal exchanges the code for a profile and stores it in a new session
5. Browser presents the signed session cookie on later requests
"""

from .routes import auth_router

__all__ = [
    "auth_router",
]
