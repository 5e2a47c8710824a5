"""
Identity provider clients for the OAuth 2.0 authorization code flow.

This module handles:
- Building the authorization URL for each provider
- Exchanging the callback code for an access token
- Fetching the provider profile and normalizing it

One IdentityProviderClient subclass exists per Provider member; clients are
looked up by the enum, never by string. Every failure to talk to a provider
is raised as ProviderError carrying an AuthFailureReason.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional, Type
from urllib.parse import urlencode

import httpx

from portal.app.config import ProviderCredentials, Settings
from portal.app.models import AuthFailureReason, NormalizedIdentity, Provider

logger = logging.getLogger("portal.auth.providers")

# Provider callback ``error`` values that mean the outage is on their side.
_PROVIDER_OUTAGE_ERRORS = {"server_error", "temporarily_unavailable"}


# =============================================================================
# Exceptions
# =============================================================================

class ProviderError(Exception):
    """A login round trip with a provider failed."""

    def __init__(self, reason: AuthFailureReason, message: Optional[str] = None):
        self.reason = reason
        super().__init__(message or reason.value)


# =============================================================================
# Base Client
# =============================================================================

class IdentityProviderClient(ABC):
    """
    Authorization code flow against a single provider.

    Subclasses declare their endpoints and scopes and implement ``normalize``.
    """

    provider: Provider
    authorize_endpoint: str
    token_endpoint: str
    profile_endpoint: str
    scope: List[str] = []
    scope_separator: str = " "
    token_method: str = "POST"

    def __init__(
        self,
        credentials: ProviderCredentials,
        http_client: httpx.AsyncClient,
        timeout: float = 10.0,
    ):
        self.credentials = credentials
        self._http = http_client
        self._timeout = timeout

    # -------------------------------------------------------------------------
    # Authorization URL
    # -------------------------------------------------------------------------

    def authorization_url(self) -> str:
        """Build the URL the browser is redirected to in order to log in."""
        params = {
            "client_id": self.credentials.client_id,
            "redirect_uri": self.credentials.callback_url,
            "response_type": "code",
        }
        if self.scope:
            params["scope"] = self.scope_separator.join(self.scope)

        return f"{self.authorize_endpoint}?{urlencode(params)}"

    # -------------------------------------------------------------------------
    # Callback handling
    # -------------------------------------------------------------------------

    async def authenticate(self, callback_params: Mapping[str, str]) -> NormalizedIdentity:
        """
        Turn the provider's callback query into a normalized identity.

        Args:
            callback_params: Query parameters the provider redirected back with

        Returns:
            NormalizedIdentity for the user

        Raises:
            ProviderError: If consent was denied, the code is unusable, or
                the provider could not be reached
        """
        error = callback_params.get("error")
        if error:
            reason = (
                AuthFailureReason.NETWORK
                if error in _PROVIDER_OUTAGE_ERRORS
                else AuthFailureReason.DENIED
            )
            raise ProviderError(reason, f"{self.provider.value} returned error={error}")

        code = callback_params.get("code")
        if not code:
            raise ProviderError(AuthFailureReason.INVALID_CODE, "Callback is missing the authorization code")

        access_token = await self.exchange_code(code)
        profile = await self.fetch_profile(access_token)
        return self.normalize(profile)

    async def exchange_code(self, code: str) -> str:
        """
        Exchange an authorization code for an access token.

        Raises:
            ProviderError: INVALID_CODE if the provider rejects the code,
                NETWORK/TIMEOUT for transport problems
        """
        form = {
            "client_id": self.credentials.client_id,
            "client_secret": self.credentials.client_secret,
            "code": code,
            "redirect_uri": self.credentials.callback_url,
            "grant_type": "authorization_code",
        }
        if self.token_method == "GET":
            request_kwargs: Dict[str, Any] = {"params": form}
        else:
            request_kwargs = {"data": form}

        response = await self._request(
            self.token_method,
            self.token_endpoint,
            headers={"Accept": "application/json"},
            **request_kwargs,
        )
        payload = _json_body(response)

        if response.status_code >= 500:
            raise ProviderError(
                AuthFailureReason.NETWORK,
                f"Token endpoint failed (status={response.status_code})",
            )
        # GitHub reports a bad code with HTTP 200 and an ``error`` field.
        if response.status_code >= 400 or "error" in payload:
            raise ProviderError(
                AuthFailureReason.INVALID_CODE,
                f"Token exchange rejected (status={response.status_code})",
            )

        access_token = payload.get("access_token")
        if not access_token:
            raise ProviderError(AuthFailureReason.NETWORK, "Token response missing access_token")
        return str(access_token)

    async def fetch_profile(self, access_token: str) -> Dict[str, Any]:
        """Fetch the raw user profile with an access token."""
        return await self._get_json(self.profile_endpoint, access_token, params=self.profile_params())

    def profile_params(self) -> Optional[Dict[str, str]]:
        return None

    @abstractmethod
    def normalize(self, profile: Mapping[str, Any]) -> NormalizedIdentity:
        """Map a provider profile to a NormalizedIdentity."""

    # -------------------------------------------------------------------------
    # HTTP helpers
    # -------------------------------------------------------------------------

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._http.request(method, url, timeout=self._timeout, **kwargs)
        except httpx.TimeoutException as e:
            raise ProviderError(AuthFailureReason.TIMEOUT, f"{self.provider.value} timed out") from e
        except httpx.HTTPError as e:
            raise ProviderError(
                AuthFailureReason.NETWORK,
                f"Unable to reach {self.provider.value}: {type(e).__name__}",
            ) from e

    async def _get_json(
        self,
        url: str,
        access_token: str,
        params: Optional[Dict[str, str]] = None,
        accept: str = "application/json",
    ) -> Any:
        response = await self._request(
            "GET",
            url,
            params=params,
            headers={"Authorization": f"Bearer {access_token}", "Accept": accept},
        )
        if not response.is_success:
            raise ProviderError(
                AuthFailureReason.NETWORK,
                f"Profile request failed (status={response.status_code})",
            )
        try:
            return response.json()
        except ValueError as e:
            raise ProviderError(AuthFailureReason.NETWORK, "Profile response is not JSON") from e

    def _require_id(self, profile: Mapping[str, Any], key: str) -> str:
        if not isinstance(profile, Mapping):
            raise ProviderError(AuthFailureReason.NETWORK, "Profile response is not an object")
        value = profile.get(key)
        if value is None or str(value).strip() == "":
            raise ProviderError(AuthFailureReason.NETWORK, f"Profile is missing '{key}'")
        return str(value)


def _json_body(response: httpx.Response) -> Dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def _fallback_name(email: Optional[str]) -> Optional[str]:
    if email and "@" in email:
        return email.split("@")[0].title()
    return None


# =============================================================================
# Google
# =============================================================================

class GoogleClient(IdentityProviderClient):
    provider = Provider.GOOGLE
    authorize_endpoint = "https://accounts.google.com/o/oauth2/v2/auth"
    token_endpoint = "https://oauth2.googleapis.com/token"
    profile_endpoint = "https://www.googleapis.com/oauth2/v3/userinfo"
    scope = ["profile", "email"]

    def normalize(self, profile: Mapping[str, Any]) -> NormalizedIdentity:
        user_id = self._require_id(profile, "sub")

        email = profile.get("email")
        # Unverified addresses are not attributed to the user.
        if profile.get("email_verified") is False:
            email = None

        name = profile.get("name") or profile.get("given_name") or _fallback_name(email) or "User"
        return NormalizedIdentity(
            provider=self.provider,
            provider_user_id=user_id,
            display_name=str(name),
            email=str(email).lower() if email else None,
        )


# =============================================================================
# Facebook
# =============================================================================

class FacebookClient(IdentityProviderClient):
    provider = Provider.FACEBOOK
    authorize_endpoint = "https://www.facebook.com/v19.0/dialog/oauth"
    token_endpoint = "https://graph.facebook.com/v19.0/oauth/access_token"
    profile_endpoint = "https://graph.facebook.com/v19.0/me"
    scope = ["public_profile", "email"]
    scope_separator = ","
    token_method = "GET"

    def profile_params(self) -> Optional[Dict[str, str]]:
        return {"fields": "id,name,email"}

    def normalize(self, profile: Mapping[str, Any]) -> NormalizedIdentity:
        user_id = self._require_id(profile, "id")
        email = profile.get("email")
        name = profile.get("name") or _fallback_name(email) or "User"
        return NormalizedIdentity(
            provider=self.provider,
            provider_user_id=user_id,
            display_name=str(name),
            email=str(email).lower() if email else None,
        )


# =============================================================================
# GitHub
# =============================================================================

class GitHubClient(IdentityProviderClient):
    provider = Provider.GITHUB
    authorize_endpoint = "https://github.com/login/oauth/authorize"
    token_endpoint = "https://github.com/login/oauth/access_token"
    profile_endpoint = "https://api.github.com/user"
    emails_endpoint = "https://api.github.com/user/emails"
    scope = ["read:user", "user:email"]

    async def fetch_profile(self, access_token: str) -> Dict[str, Any]:
        profile = await self._get_json(
            self.profile_endpoint, access_token, accept="application/vnd.github+json"
        )
        if isinstance(profile, dict) and not profile.get("email"):
            # The public profile omits private addresses; ask for the primary one.
            try:
                emails = await self._get_json(
                    self.emails_endpoint, access_token, accept="application/vnd.github+json"
                )
            except ProviderError as e:
                logger.warning(f"GitHub email lookup failed, continuing without email: {e}")
                emails = []
            profile = {**profile, "email": _primary_github_email(emails)}
        return profile

    def normalize(self, profile: Mapping[str, Any]) -> NormalizedIdentity:
        user_id = self._require_id(profile, "id")
        email = profile.get("email")
        name = profile.get("name") or profile.get("login") or _fallback_name(email) or "User"
        return NormalizedIdentity(
            provider=self.provider,
            provider_user_id=user_id,
            display_name=str(name),
            email=str(email).lower() if email else None,
        )


def _primary_github_email(emails: Any) -> Optional[str]:
    if not isinstance(emails, list):
        return None
    for entry in emails:
        if isinstance(entry, dict) and entry.get("primary") and entry.get("verified"):
            return entry.get("email")
    return None


# =============================================================================
# Registry
# =============================================================================

PROVIDER_CLIENTS: Dict[Provider, Type[IdentityProviderClient]] = {
    Provider.GOOGLE: GoogleClient,
    Provider.FACEBOOK: FacebookClient,
    Provider.GITHUB: GitHubClient,
}


def build_provider_clients(
    settings: Settings,
    http_client: httpx.AsyncClient,
) -> Dict[Provider, IdentityProviderClient]:
    """
    Instantiate a client for every configured provider.

    Providers without credentials are skipped; logins to them are rejected
    as unsupported.
    """
    clients: Dict[Provider, IdentityProviderClient] = {}
    for provider in Provider:
        credentials = settings.provider_credentials(provider)
        if credentials is None:
            logger.info(f"Identity provider {provider.value} not configured, skipping")
            continue
        clients[provider] = PROVIDER_CLIENTS[provider](
            credentials,
            http_client,
            timeout=settings.PROVIDER_TIMEOUT_SECONDS,
        )
    return clients
