"""
Authentication Tests
====================

Tests the identity provider clients (authorization URLs, code exchange,
profile normalization, error mapping) and the AuthenticationSessionManager
login / logout lifecycle.
"""

import asyncio
from urllib.parse import parse_qs, urlparse

import pytest

from portal.app.auth.manager import AuthenticationSessionManager
from portal.app.auth.providers import (
    FacebookClient,
    GitHubClient,
    GoogleClient,
    ProviderError,
    build_provider_clients,
)
from portal.app.auth.session import encode_session_cookie
from portal.app.models import (
    AuthFailure,
    AuthFailureReason,
    LoginSuccess,
    NormalizedIdentity,
    Provider,
    UnsupportedProviderError,
)

from portal.app.tests.fakes import VALID_CODE, make_request, make_settings


def _query(url: str) -> dict:
    parsed = urlparse(url)
    return {k: v[0] for k, v in parse_qs(parsed.query).items()}


@pytest.fixture
def clients(settings, http_client):
    return build_provider_clients(settings, http_client)


@pytest.fixture
def manager(settings, session_store, clients):
    return AuthenticationSessionManager(settings, session_store, clients)


# ============================================================================
# Provider Clients
# ============================================================================

class TestAuthorizationUrls:
    """Authorization URLs point at the right provider with the right scope"""

    def test_google_requests_profile_and_email(self, clients):
        url = clients[Provider.GOOGLE].authorization_url()
        params = _query(url)

        assert url.startswith("https://accounts.google.com/o/oauth2/v2/auth?")
        assert params["scope"] == "profile email"
        assert params["response_type"] == "code"
        assert params["client_id"] == "google-client-id"
        assert params["redirect_uri"] == "http://testserver/auth/google/redirect"

    def test_facebook_uses_comma_separated_scope(self, clients):
        params = _query(clients[Provider.FACEBOOK].authorization_url())
        assert params["scope"] == "public_profile,email"

    def test_github_requests_user_and_email(self, clients):
        url = clients[Provider.GITHUB].authorization_url()
        assert url.startswith("https://github.com/login/oauth/authorize?")
        assert _query(url)["scope"] == "read:user user:email"

    def test_explicit_callback_url_wins(self, http_client):
        settings = make_settings(GITHUB_CALLBACK_URL="https://portal.example.com/auth/github/redirect")
        client = build_provider_clients(settings, http_client)[Provider.GITHUB]
        assert _query(client.authorization_url())["redirect_uri"] == "https://portal.example.com/auth/github/redirect"

    def test_unconfigured_providers_are_skipped(self, http_client):
        settings = make_settings(FACEBOOK_CLIENT_ID=None, GITHUB_CLIENT_SECRET="")
        clients = build_provider_clients(settings, http_client)
        assert set(clients) == {Provider.GOOGLE}


class TestProviderAuthenticate:
    """Callback exchange and normalization per provider"""

    @pytest.mark.asyncio
    async def test_google_profile_is_normalized(self, clients):
        identity = await clients[Provider.GOOGLE].authenticate({"code": VALID_CODE})

        assert identity == NormalizedIdentity(
            provider=Provider.GOOGLE,
            provider_user_id="123",
            display_name="Alice",
            email="alice@example.com",
        )

    def test_google_unverified_email_is_dropped(self, settings, http_client):
        client = GoogleClient(settings.provider_credentials(Provider.GOOGLE), http_client)
        identity = client.normalize({"sub": "9", "name": "Eve", "email": "eve@example.com", "email_verified": False})
        assert identity.email is None

    @pytest.mark.asyncio
    async def test_facebook_sends_code_as_query_and_asks_for_fields(self, clients, fake_providers):
        identity = await clients[Provider.FACEBOOK].authenticate({"code": VALID_CODE})

        assert identity.provider_user_id == "fb-456"
        assert identity.display_name == "Bob"

        token_request, profile_request = fake_providers.requests
        assert token_request.method == "GET"
        assert token_request.url.params["code"] == VALID_CODE
        assert profile_request.url.params["fields"] == "id,name,email"

    @pytest.mark.asyncio
    async def test_github_falls_back_to_login_and_primary_email(self, clients):
        identity = await clients[Provider.GITHUB].authenticate({"code": VALID_CODE})

        assert identity.provider_user_id == "789"
        assert identity.display_name == "carol"
        assert identity.email == "carol@example.com"

    @pytest.mark.asyncio
    async def test_github_email_lookup_failure_keeps_login(self, clients, fake_providers):
        fake_providers.github_emails_status = 500

        identity = await clients[Provider.GITHUB].authenticate({"code": VALID_CODE})

        assert identity.provider_user_id == "789"
        assert identity.email is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("provider", list(Provider))
    async def test_rejected_code_is_invalid_code(self, clients, provider):
        with pytest.raises(ProviderError) as exc_info:
            await clients[provider].authenticate({"code": "expired-code"})
        assert exc_info.value.reason == AuthFailureReason.INVALID_CODE

    @pytest.mark.asyncio
    async def test_missing_code_is_invalid_code(self, clients, fake_providers):
        with pytest.raises(ProviderError) as exc_info:
            await clients[Provider.GOOGLE].authenticate({})

        assert exc_info.value.reason == AuthFailureReason.INVALID_CODE
        assert fake_providers.requests == []

    @pytest.mark.asyncio
    async def test_access_denied_is_denied(self, clients, fake_providers):
        with pytest.raises(ProviderError) as exc_info:
            await clients[Provider.FACEBOOK].authenticate(
                {"error": "access_denied", "error_reason": "user_denied"}
            )

        assert exc_info.value.reason == AuthFailureReason.DENIED
        assert fake_providers.requests == []

    @pytest.mark.asyncio
    async def test_provider_outage_error_is_network(self, clients):
        with pytest.raises(ProviderError) as exc_info:
            await clients[Provider.GOOGLE].authenticate({"error": "temporarily_unavailable"})
        assert exc_info.value.reason == AuthFailureReason.NETWORK

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "fail_with,reason",
        [
            ("timeout", AuthFailureReason.TIMEOUT),
            ("network", AuthFailureReason.NETWORK),
            ("server_error", AuthFailureReason.NETWORK),
        ],
    )
    async def test_transport_failures_are_mapped(self, clients, fake_providers, fail_with, reason):
        fake_providers.fail_with = fail_with

        with pytest.raises(ProviderError) as exc_info:
            await clients[Provider.GITHUB].authenticate({"code": VALID_CODE})

        assert exc_info.value.reason == reason

    def test_profile_without_id_is_rejected(self, settings, http_client):
        client = FacebookClient(settings.provider_credentials(Provider.FACEBOOK), http_client)
        with pytest.raises(ProviderError) as exc_info:
            client.normalize({"name": "No Id"})
        assert exc_info.value.reason == AuthFailureReason.NETWORK

    def test_display_name_falls_back_to_email(self, settings, http_client):
        client = GitHubClient(settings.provider_credentials(Provider.GITHUB), http_client)
        identity = client.normalize({"id": 1, "email": "dave.smith@example.com"})
        assert identity.display_name == "Dave.Smith"


# ============================================================================
# Authentication Session Manager
# ============================================================================

class TestSessionManager:
    """Login / logout lifecycle of the session manager"""

    @pytest.mark.asyncio
    async def test_request_without_cookie_is_anonymous(self, manager):
        assert await manager.is_authenticated(make_request()) is False
        assert await manager.current_identity(make_request()) is None

    @pytest.mark.asyncio
    async def test_request_with_forged_cookie_is_anonymous(self, manager, settings):
        forged = encode_session_cookie("made-up", make_settings(SESSION_SECRET="another-secret-0123456789"))
        request = make_request({settings.SESSION_COOKIE_NAME: forged})
        assert await manager.is_authenticated(request) is False

    @pytest.mark.asyncio
    async def test_cookie_for_unknown_session_is_anonymous(self, manager, settings):
        cookie = encode_session_cookie("never-created", settings)
        request = make_request({settings.SESSION_COOKIE_NAME: cookie})
        assert await manager.is_authenticated(request) is False

    def test_begin_login_returns_provider_redirect(self, manager):
        redirect = manager.begin_login("google")

        assert redirect.provider == Provider.GOOGLE
        assert redirect.scope == ["profile", "email"]
        assert _query(redirect.url)["scope"] == "profile email"

    @pytest.mark.parametrize("name", ["twitter", "", "GOOGLE2", "linkedin"])
    def test_begin_login_rejects_unsupported_provider(self, manager, name):
        with pytest.raises(UnsupportedProviderError):
            manager.begin_login(name)

    def test_begin_login_rejects_unconfigured_provider(self, settings, session_store, http_client):
        settings = make_settings(GITHUB_CLIENT_ID=None)
        manager = AuthenticationSessionManager(
            settings, session_store, build_provider_clients(settings, http_client)
        )
        with pytest.raises(UnsupportedProviderError) as exc_info:
            manager.begin_login(Provider.GITHUB)
        assert "not configured" in str(exc_info.value)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("provider", list(Provider))
    async def test_successful_login_authenticates_session(self, manager, settings, provider):
        result = await manager.complete_login(provider.value, {"code": VALID_CODE}, make_request())

        assert isinstance(result, LoginSuccess)
        assert result.identity.provider == provider

        request = make_request({settings.SESSION_COOKIE_NAME: encode_session_cookie(result.session_id, settings)})
        assert await manager.is_authenticated(request) is True
        assert (await manager.current_identity(request)).provider == provider

    @pytest.mark.asyncio
    async def test_google_login_yields_alice(self, manager):
        result = await manager.complete_login("google", {"code": VALID_CODE})

        assert result.identity.provider == Provider.GOOGLE
        assert result.identity.provider_user_id == "123"
        assert result.identity.display_name == "Alice"

    @pytest.mark.asyncio
    async def test_invalid_code_returns_failure_and_stores_nothing(self, manager, session_store):
        result = await manager.complete_login("google", {"code": "expired-code"}, make_request())

        assert result == AuthFailure(provider=Provider.GOOGLE, reason=AuthFailureReason.INVALID_CODE)
        assert len(session_store) == 0

    @pytest.mark.asyncio
    async def test_failed_login_leaves_existing_session(self, manager, settings, session_store):
        first = await manager.complete_login("google", {"code": VALID_CODE})
        cookies = {settings.SESSION_COOKIE_NAME: encode_session_cookie(first.session_id, settings)}

        result = await manager.complete_login("github", {"error": "access_denied"}, make_request(cookies))

        assert isinstance(result, AuthFailure)
        assert result.reason == AuthFailureReason.DENIED
        assert await manager.is_authenticated(make_request(cookies)) is True

    @pytest.mark.asyncio
    async def test_new_login_replaces_previous_session(self, manager, settings, session_store):
        first = await manager.complete_login("google", {"code": VALID_CODE})
        old_cookies = {settings.SESSION_COOKIE_NAME: encode_session_cookie(first.session_id, settings)}

        second = await manager.complete_login("github", {"code": VALID_CODE}, make_request(old_cookies))

        assert second.session_id != first.session_id
        assert await manager.is_authenticated(make_request(old_cookies)) is False
        assert len(session_store) == 1

    @pytest.mark.asyncio
    async def test_complete_login_rejects_unsupported_provider(self, manager):
        with pytest.raises(UnsupportedProviderError):
            await manager.complete_login("twitter", {"code": VALID_CODE})

    @pytest.mark.asyncio
    async def test_slow_provider_times_out(self, session_store, http_client):
        settings = make_settings(PROVIDER_TIMEOUT_SECONDS=0.05)

        class SlowGoogleClient(GoogleClient):
            async def authenticate(self, callback_params):
                await asyncio.sleep(1)

        manager = AuthenticationSessionManager(
            settings,
            session_store,
            {Provider.GOOGLE: SlowGoogleClient(settings.provider_credentials(Provider.GOOGLE), http_client)},
        )

        result = await manager.complete_login("google", {"code": VALID_CODE})

        assert result == AuthFailure(provider=Provider.GOOGLE, reason=AuthFailureReason.TIMEOUT)
        assert len(session_store) == 0

    @pytest.mark.asyncio
    async def test_logout_ends_session_and_is_idempotent(self, manager, settings):
        result = await manager.complete_login("facebook", {"code": VALID_CODE})
        request = make_request({settings.SESSION_COOKIE_NAME: encode_session_cookie(result.session_id, settings)})

        await manager.logout(request)
        assert await manager.is_authenticated(request) is False

        await manager.logout(request)
        assert await manager.is_authenticated(request) is False

    @pytest.mark.asyncio
    async def test_logout_without_session_is_noop(self, manager):
        await manager.logout(make_request())
        assert await manager.is_authenticated(make_request()) is False
