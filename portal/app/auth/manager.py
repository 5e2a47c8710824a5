"""
Authentication Session Manager
==============================

Mediates between incoming requests, the identity provider clients and the
session store:

- decides whether a request is authenticated
- starts a login by pointing the browser at a provider
- finalizes a login by exchanging the callback for an identity and
  storing it in a fresh session
- terminates sessions on logout

Per-browser lifecycle::

    Anonymous --begin_login--> PendingProvider --success--> Authenticated
    PendingProvider --failure--> Anonymous
    Authenticated --logout / expiry--> Anonymous

Nothing is written to the store before a login succeeds. The manager holds
no lock while waiting on a provider.
"""

import asyncio
import logging
from typing import Dict, List, Mapping, Optional, Union

from fastapi import Depends, HTTPException, Request, status

from portal.app.auth.providers import IdentityProviderClient, ProviderError
from portal.app.auth.session import decode_session_cookie
from portal.app.auth.store import SessionStore
from portal.app.config import Settings
from portal.app.models import (
    AuthFailure,
    AuthFailureReason,
    LoginRedirect,
    LoginResult,
    LoginSuccess,
    NormalizedIdentity,
    Provider,
    UnsupportedProviderError,
)

logger = logging.getLogger("portal.auth.manager")


class AuthenticationSessionManager:
    """
    Explicitly constructed authentication core.

    Attributes:
        settings: Application settings
        store: Session store holding authenticated identities
    """

    def __init__(
        self,
        settings: Settings,
        store: SessionStore,
        clients: Mapping[Provider, IdentityProviderClient],
    ):
        self.settings = settings
        self.store = store
        self._clients: Dict[Provider, IdentityProviderClient] = dict(clients)

    @property
    def enabled_providers(self) -> List[Provider]:
        return [p for p in Provider if p in self._clients]

    def client_for(self, provider: Union[str, Provider]) -> IdentityProviderClient:
        """
        Resolve a provider name to its configured client.

        Raises:
            UnsupportedProviderError: Unknown name, or provider not configured
        """
        parsed = Provider.parse(provider)
        client = self._clients.get(parsed)
        if client is None:
            raise UnsupportedProviderError(
                parsed.value,
                f"Identity provider {parsed.value!r} is not configured",
            )
        return client

    # =========================================================================
    # Session resolution
    # =========================================================================

    def session_id(self, request: Request) -> Optional[str]:
        """Session id carried by the request's cookie, if it verifies."""
        return decode_session_cookie(
            request.cookies.get(self.settings.SESSION_COOKIE_NAME),
            self.settings,
        )

    async def current_identity(self, request: Request) -> Optional[NormalizedIdentity]:
        """
        Resolve the request's session to an identity.

        Raises:
            SessionStoreError: If the store cannot be read
        """
        session_id = self.session_id(request)
        if not session_id:
            return None

        record = await self.store.read(session_id)
        if record is None:
            return None
        return record.identity

    async def is_authenticated(self, request: Request) -> bool:
        """True iff the request's cookie resolves to a session with an identity."""
        return await self.current_identity(request) is not None

    # =========================================================================
    # Login
    # =========================================================================

    def begin_login(self, provider: Union[str, Provider]) -> LoginRedirect:
        """
        Build the redirect that starts a login with ``provider``.

        Raises:
            UnsupportedProviderError: If ``provider`` is not google, facebook
                or github, or has no credentials configured
        """
        client = self.client_for(provider)
        url = client.authorization_url()

        logger.info("Starting login", extra={"provider": client.provider.value})
        return LoginRedirect(provider=client.provider, url=url, scope=list(client.scope))

    async def complete_login(
        self,
        provider: Union[str, Provider],
        callback_params: Mapping[str, str],
        request: Optional[Request] = None,
    ) -> LoginResult:
        """
        Finish a login from the provider's callback.

        On success a new session holding the identity is created and any
        session the request already carried is destroyed. On failure the
        existing session, if any, is left as it was.

        Args:
            provider: Provider the callback came from
            callback_params: Callback query parameters
            request: Incoming request, used to find a previous session

        Returns:
            LoginSuccess, or AuthFailure with the reason

        Raises:
            UnsupportedProviderError: For unknown or unconfigured providers
            SessionStoreError: If the new session cannot be stored
        """
        client = self.client_for(provider)

        try:
            identity = await asyncio.wait_for(
                client.authenticate(callback_params),
                timeout=self.settings.PROVIDER_TIMEOUT_SECONDS,
            )
        except asyncio.TimeoutError:
            return self._failure(client.provider, AuthFailureReason.TIMEOUT, "round trip timed out")
        except ProviderError as e:
            return self._failure(client.provider, e.reason, str(e))

        previous_session_id = self.session_id(request) if request is not None else None

        record = await self.store.create(identity)
        if previous_session_id:
            await self.store.destroy(previous_session_id)

        logger.info(
            "Login succeeded",
            extra={
                "provider": identity.provider.value,
                "provider_user_id": identity.provider_user_id,
            },
        )
        return LoginSuccess(identity=identity, session_id=record.session_id)

    def _failure(self, provider: Provider, reason: AuthFailureReason, detail: str) -> AuthFailure:
        logger.warning(
            f"Login failed: {detail}",
            extra={"provider": provider.value, "reason": reason.value},
        )
        return AuthFailure(provider=provider, reason=reason)

    # =========================================================================
    # Logout
    # =========================================================================

    async def logout(self, request: Request) -> None:
        """
        Destroy the request's session. Safe to call repeatedly or without one.

        Raises:
            SessionStoreError: If the store cannot be written
        """
        session_id = self.session_id(request)
        if not session_id:
            return

        removed = await self.store.destroy(session_id)
        logger.info("Logged out", extra={"session_removed": removed})


# =============================================================================
# FastAPI Dependencies
# =============================================================================

def get_auth_manager(request: Request) -> AuthenticationSessionManager:
    """
    FastAPI dependency returning the manager attached to ``app.state``.

    Usage in routes:
        @router.get("/me")
        async def me(manager: AuthenticationSessionManager = Depends(get_auth_manager)):
            ...
    """
    manager = getattr(request.app.state, "auth_manager", None)
    if manager is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Authentication service is not initialized",
        )
    return manager


async def get_current_identity(
    request: Request,
    manager: AuthenticationSessionManager = Depends(get_auth_manager),
) -> Optional[NormalizedIdentity]:
    """FastAPI dependency for optional authentication: identity or None."""
    return await manager.current_identity(request)


__all__ = [
    "AuthenticationSessionManager",
    "get_auth_manager",
    "get_current_identity",
]
