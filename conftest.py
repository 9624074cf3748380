"""Shared test fixtures."""

import time
from types import SimpleNamespace
from typing import Any, AsyncIterator, Dict, List, Optional
from urllib.parse import urlencode

import pytest

from idm.config import (
    AppSettings,
    CacheSettings,
    CookieSettings,
    CORSSettings,
    DatabaseSettings,
    IdentitySettings,
    OidcSettings,
)
from idm.db.base import DatabaseSessionManager
from idm.middleware.session_cookie import CookieAuth
from idm.models.domain import TokenSet
from idm.services.identity import IdentityManager
from idm.services.token_store import TokenSetStore

ENCRYPTION_KEY = "0123456789abcdef0123456789abcdef0123456789abcdef0123456789abcdef"
COOKIE_SECRET = "test-cookie-secret-that-is-long-enough"
AUTHORIZE_ENDPOINT = "https://login.example.com/{policy}/oauth2/v2.0/authorize"


class FakeCache:
    """In-memory stand-in for SegmentCache."""

    def __init__(self, segment: str = "idm:test"):
        self.segment = segment
        self.data: Dict[str, Any] = {}
        self.ttls: Dict[str, Optional[int]] = {}
        self.error: Optional[Exception] = None

    async def get(self, key: str) -> Optional[Any]:
        if self.error:
            raise self.error
        return self.data.get(key)

    async def set(self, key: str, value: Any, ttl_ms: Optional[int] = None) -> None:
        if self.error:
            raise self.error
        self.data[key] = value
        self.ttls[key] = ttl_ms

    async def drop(self, key: str) -> bool:
        if self.error:
            raise self.error
        return self.data.pop(key, None) is not None

    async def take(self, key: str) -> Optional[Any]:
        if self.error:
            raise self.error
        return self.data.pop(key, None)


class FakeOidcClient:
    """OidcClient stand-in returning canned token sets."""

    def __init__(self, policy_name: str, client_id: str = "oidc-client"):
        self.policy_name = policy_name
        self.client_id = client_id
        self.token_set: Optional[TokenSet] = None
        self.error: Optional[Exception] = None
        self.refreshed: List[str] = []
        self.exchanged: List[Dict[str, str]] = []

    def authorization_url(self, redirect_uri, scope, response_mode, state) -> str:
        params = {
            "client_id": self.client_id,
            "response_type": "code",
            "redirect_uri": redirect_uri,
            "scope": scope,
            "response_mode": response_mode,
            "state": state,
        }
        return AUTHORIZE_ENDPOINT.format(policy=self.policy_name) + "?" + urlencode(params)

    async def refresh(self, refresh_token: str) -> TokenSet:
        self.refreshed.append(refresh_token)
        if self.error:
            raise self.error
        return self.token_set

    async def callback(self, redirect_uri: str, code: str) -> TokenSet:
        self.exchanged.append({"redirect_uri": redirect_uri, "code": code})
        if self.error:
            raise self.error
        return self.token_set


class FakeClientFactory:
    """OidcClientFactory stand-in handing out one FakeOidcClient per policy."""

    def __init__(self):
        self.clients: Dict[str, FakeOidcClient] = {}
        self.closed = False

    async def get_client(self, policy_name: str) -> FakeOidcClient:
        return self.client(policy_name)

    def client(self, policy_name: str) -> FakeOidcClient:
        if policy_name not in self.clients:
            self.clients[policy_name] = FakeOidcClient(policy_name)
        return self.clients[policy_name]

    async def close(self) -> None:
        self.closed = True


def make_request(cookie: Any = None, cookie_name: str = "idm") -> SimpleNamespace:
    """Request-like object carrying a decoded session cookie in its state."""
    state = SimpleNamespace(cookie_auth=CookieAuth())
    setattr(state, cookie_name, cookie)
    return SimpleNamespace(state=state)


def make_token_set(sub: str = "user-1", exp_in: int = 3600, **claims: Any) -> TokenSet:
    exp = int(time.time()) + exp_in
    return TokenSet(
        access_token="access-token",
        refresh_token="refresh-token",
        id_token="id-token",
        token_type="Bearer",
        expires_at=exp,
        claims={"sub": sub, "exp": exp, **claims},
    )


@pytest.fixture
def identity_settings() -> IdentitySettings:
    return IdentitySettings(
        app_domain="https://app.example.com",
        identity_app_url="https://idm.example.com",
        default_policy="b2c_1a_signin",
        default_journey="default",
        client_id="idm-client",
        service_id="service-1",
    )


@pytest.fixture
def app_settings(identity_settings: IdentitySettings, tmp_path) -> AppSettings:
    return AppSettings(
        database=DatabaseSettings(url=f"sqlite+aiosqlite:///{tmp_path / 'idm.db'}"),
        identity=identity_settings,
        oidc=OidcSettings(tenant="example", client_id="oidc-client", client_secret="secret"),
        cookie=CookieSettings(secret=COOKIE_SECRET, is_secure=False),
        cache=CacheSettings(encryption_key=ENCRYPTION_KEY),
        cors=CORSSettings(),
    )


@pytest.fixture
def state_cache() -> FakeCache:
    return FakeCache("idm:state")


@pytest.fixture
def session_cache() -> FakeCache:
    return FakeCache("idm:session")


@pytest.fixture
def client_factory() -> FakeClientFactory:
    return FakeClientFactory()


@pytest.fixture
def identity(
    identity_settings: IdentitySettings,
    state_cache: FakeCache,
    session_cache: FakeCache,
    client_factory: FakeClientFactory,
) -> IdentityManager:
    """Identity manager over in-memory caches and a fake provider."""
    return IdentityManager(
        identity=identity_settings,
        state_cache=state_cache,
        session_cache=session_cache,
        client_factory=client_factory,
        token_store=TokenSetStore(session_cache, ttl_ms=86400000),
        cookie_name="idm",
    )


@pytest.fixture
async def database(app_settings: AppSettings) -> AsyncIterator[DatabaseSessionManager]:
    """SQLite-backed database session manager with the schema created."""
    manager = DatabaseSessionManager()
    manager.init(app_settings.database.url)
    await manager.create_all()
    yield manager
    await manager.close()
