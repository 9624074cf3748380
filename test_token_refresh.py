"""Tests for token set storage, refresh and login completion."""

import pytest

from conftest import make_request, make_token_set
from idm.core.exceptions import InvalidStateError, ProviderError, ValidationError
from idm.models.domain import SessionCredentials, TokenSet
from idm.services.refresh import TokenRefresher
from idm.services.token_store import TokenSetStore


@pytest.fixture
def token_store(session_cache) -> TokenSetStore:
    return TokenSetStore(session_cache, ttl_ms=86400000)


@pytest.fixture
def refresher(client_factory, token_store) -> TokenRefresher:
    return TokenRefresher(client_factory, token_store)


class TestTokenSetStore:
    async def test_stores_credentials_under_sub(self, token_store, session_cache) -> None:
        request = make_request()
        token_set = make_token_set(sub="user-1")

        sub = await token_store.store_token_set_response(request, token_set)

        assert sub == "user-1"
        credentials = SessionCredentials.model_validate(session_cache.data["user-1"])
        assert credentials.claims == token_set.claims
        assert credentials.token_set.access_token == "access-token"
        assert session_cache.ttls["user-1"] == 86400000
        assert request.state.cookie_auth.payload == {"sub": "user-1"}

    async def test_missing_sub(self, token_store, session_cache) -> None:
        request = make_request()

        with pytest.raises(ValidationError):
            await token_store.store_token_set_response(request, TokenSet(claims={"exp": 1}))

        assert session_cache.data == {}
        assert request.state.cookie_auth.payload is None


class TestTokenRefresher:
    async def test_refresh_replaces_credentials(
        self, refresher, client_factory, session_cache
    ) -> None:
        client = client_factory.client("b2c_1a_signin")
        client.token_set = make_token_set(sub="user-1", exp_in=7200)
        session_cache.data["user-1"] = {"claims": {"sub": "user-1", "exp": 0}}
        request = make_request({"sub": "user-1"})

        await refresher.refresh(request, "old-refresh-token", "b2c_1a_signin")

        assert client.refreshed == ["old-refresh-token"]
        credentials = SessionCredentials.model_validate(session_cache.data["user-1"])
        assert credentials.is_expired() is False
        assert request.state.cookie_auth.payload == {"sub": "user-1"}

    async def test_refresh_uses_policy_client(self, refresher, client_factory) -> None:
        client_factory.client("b2c_1a_signup").token_set = make_token_set()

        await refresher.refresh(make_request(), "refresh-token", "b2c_1a_signup")

        assert client_factory.clients["b2c_1a_signup"].refreshed == ["refresh-token"]

    async def test_provider_failure_propagates(
        self, refresher, client_factory, session_cache
    ) -> None:
        client_factory.client("b2c_1a_signin").error = ProviderError(
            "Token request failed", status_code=400
        )
        request = make_request({"sub": "user-1"})

        with pytest.raises(ProviderError) as exc_info:
            await refresher.refresh(request, "expired-refresh-token", "b2c_1a_signin")

        assert exc_info.value.status_code == 400
        assert session_cache.data == {}
        assert request.state.cookie_auth.payload is None

    async def test_identity_manager_refresh(self, identity, client_factory, session_cache) -> None:
        client_factory.client("b2c_1a_signin").token_set = make_token_set(sub="user-9")

        await identity.refresh_token(make_request(), "refresh-token", "b2c_1a_signin")

        assert "user-9" in session_cache.data


class TestCompleteAuthAttempt:
    async def test_exchanges_code_and_consumes_state(
        self, identity, client_factory, state_cache, session_cache
    ) -> None:
        client = client_factory.client("b2c_1a_signup")
        client.token_set = make_token_set(sub="user-1")
        state, _ = await identity.correlator.begin_auth_attempt(
            policy_name="b2c_1a_signup", back_to_path="/account"
        )
        request = make_request()

        back_to_path = await identity.complete_auth_attempt(request, state, "auth-code")

        assert back_to_path == "/account"
        assert client.exchanged == [
            {"redirect_uri": "https://app.example.com/login/return", "code": "auth-code"}
        ]
        assert state not in state_cache.data
        assert "user-1" in session_cache.data
        assert request.state.cookie_auth.payload == {"sub": "user-1"}

    async def test_unknown_state(self, identity) -> None:
        with pytest.raises(InvalidStateError):
            await identity.complete_auth_attempt(make_request(), "never-issued", "auth-code")

    async def test_state_is_single_use(self, identity, client_factory) -> None:
        client_factory.client("b2c_1a_signin").token_set = make_token_set()
        state, _ = await identity.correlator.begin_auth_attempt()

        await identity.complete_auth_attempt(make_request(), state, "auth-code")

        with pytest.raises(InvalidStateError):
            await identity.complete_auth_attempt(make_request(), state, "auth-code")

    async def test_missing_code(self, identity, state_cache) -> None:
        state, _ = await identity.correlator.begin_auth_attempt()

        with pytest.raises(ValidationError):
            await identity.complete_auth_attempt(make_request(), state, None)

        assert state not in state_cache.data

    async def test_unsafe_back_to_path(self, identity, client_factory) -> None:
        client_factory.client("b2c_1a_signin").token_set = make_token_set()
        state, _ = await identity.correlator.begin_auth_attempt(
            back_to_path="https://evil.example.com/"
        )

        back_to_path = await identity.complete_auth_attempt(make_request(), state, "auth-code")

        assert back_to_path == "/"
