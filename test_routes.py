"""End-to-end tests for the login, return, logout and session routes."""

from typing import AsyncIterator
from urllib.parse import parse_qs, urlsplit

import pytest
from httpx import ASGITransport, AsyncClient

from conftest import make_token_set
from idm.core.exceptions import ProviderError
from idm.main import create_app


@pytest.fixture
def app(app_settings, identity):
    return create_app(settings=app_settings, identity=identity)


@pytest.fixture
async def client(app) -> AsyncIterator[AsyncClient]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac


def state_of(location: str) -> str:
    return parse_qs(urlsplit(location).query)["state"][0]


async def log_in(client: AsyncClient, client_factory, back_to_path: str = "/account") -> str:
    client_factory.client("b2c_1a_signin").token_set = make_token_set(sub="user-1")
    outbound = await client.get("/login/out", params={"backToPath": back_to_path})
    state = state_of(outbound.headers["location"])
    response = await client.post("/login/return", data={"state": state, "code": "auth-code"})
    return response.headers["location"]


class TestOutbound:
    async def test_redirects_to_provider(self, client, state_cache) -> None:
        response = await client.get(
            "/login/out",
            params={"backToPath": "/account", "forceLogin": "yes", "journey": "signup"},
        )

        assert response.status_code == 302
        location = response.headers["location"]
        assert location.startswith("https://login.example.com/b2c_1a_signin/")
        query = parse_qs(urlsplit(location).query)
        assert query["prompt"] == ["login"]
        assert query["journey"] == ["signup"]
        assert state_cache.data[query["state"][0]]["back_to_path"] == "/account"

    async def test_policy_from_query(self, client) -> None:
        response = await client.get("/login/out", params={"policyName": "b2c_1a_signup"})

        assert response.headers["location"].startswith("https://login.example.com/b2c_1a_signup/")


class TestLoginReturn:
    async def test_sets_session_cookie(self, client, client_factory, session_cache) -> None:
        client_factory.client("b2c_1a_signin").token_set = make_token_set(sub="user-1")
        outbound = await client.get("/login/out", params={"backToPath": "/account"})
        state = state_of(outbound.headers["location"])

        response = await client.post(
            "/login/return", data={"state": state, "code": "auth-code"}
        )

        assert response.status_code == 302
        assert response.headers["location"] == "/account"
        assert "idm=" in response.headers["set-cookie"]
        assert "user-1" in session_cache.data

    async def test_unknown_state(self, client) -> None:
        response = await client.post(
            "/login/return", data={"state": "never-issued", "code": "auth-code"}
        )

        assert response.status_code == 302
        assert response.headers["location"] == "/error"
        assert "set-cookie" not in response.headers

    async def test_provider_error_form(self, client, state_cache) -> None:
        outbound = await client.get("/login/out")
        state = state_of(outbound.headers["location"])

        response = await client.post(
            "/login/return",
            data={"state": state, "error": "access_denied", "error_description": "cancelled"},
        )

        assert response.headers["location"] == "/error"
        assert state not in state_cache.data

    async def test_failed_code_exchange(self, client, client_factory) -> None:
        client_factory.client("b2c_1a_signin").error = ProviderError("invalid_grant", 400)
        outbound = await client.get("/login/out")

        response = await client.post(
            "/login/return",
            data={"state": state_of(outbound.headers["location"]), "code": "auth-code"},
        )

        assert response.headers["location"] == "/error"


class TestSession:
    async def test_session_after_login(self, client, client_factory) -> None:
        await log_in(client, client_factory)

        response = await client.get("/session")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["claims"]["sub"] == "user-1"
        assert data["expired"] is False

    async def test_without_session(self, client) -> None:
        response = await client.get("/session")

        assert response.status_code == 302
        assert response.headers["location"] == "/error"

    async def test_tampered_cookie(self, client) -> None:
        client.cookies.set("idm", "not-a-valid-cookie")

        response = await client.get("/session")

        assert response.headers["location"] == "/error"

    async def test_login_on_disallow(self, app_settings, client, identity) -> None:
        app_settings.identity.login_on_disallow = True

        response = await client.get("/session")

        assert response.status_code == 302
        location = urlsplit(response.headers["location"])
        assert location.netloc == "app.example.com"
        assert location.path == "/login/out"
        assert parse_qs(location.query)["backToPath"] == ["/session"]


class TestLogout:
    async def test_logout_clears_session(self, client, client_factory, session_cache) -> None:
        await log_in(client, client_factory)

        response = await client.get("/logout")

        assert response.status_code == 302
        assert response.headers["location"] == "/"
        assert 'idm=""' in response.headers["set-cookie"]
        assert session_cache.data == {}

        assert (await client.get("/session")).status_code == 302

    async def test_logout_without_session(self, client) -> None:
        response = await client.get("/logout")

        assert response.status_code == 302
        assert "idm=" in response.headers["set-cookie"]


class TestHealth:
    async def test_health(self, client) -> None:
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["data"]["status"] == "healthy"

    async def test_ready(self, app_settings, identity, database) -> None:
        app = create_app(settings=app_settings, identity=identity, database=database)
        transport = ASGITransport(app=app)

        async with AsyncClient(transport=transport, base_url="http://testserver") as client:
            response = await client.get("/health/ready")

        assert response.status_code == 200
        assert response.json()["data"]["cache_store"] == "connected"

    async def test_request_id_echoed(self, client) -> None:
        response = await client.get("/health", headers={"X-Request-ID": "req-123"})

        assert response.headers["x-request-id"] == "req-123"
