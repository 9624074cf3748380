"""Session credential resolution and termination."""

from collections.abc import Mapping
from typing import Any, Dict, NamedTuple, Optional

from idm.core.guards import guard_request
from idm.core.logging import get_logger
from idm.models.domain import SessionCredentials
from idm.services.cache import SegmentCache

logger = get_logger(__name__)

COOKIE_ABSENT = "cookie_absent"
COOKIE_MALFORMED = "cookie_malformed"
CLAIM_ABSENT = "claim_absent"


class SessionKeyLookup(NamedTuple):
    """Result of reading the session key from a request.

    ``key`` is None when there is no usable session; ``reason`` then says why.
    """

    key: Optional[str]
    reason: Optional[str] = None


def _read(container: Any, name: str) -> Any:
    if isinstance(container, Mapping):
        return container.get(name)
    return getattr(container, name, None)


def lookup_session_key(request: Any, cookie_name: str) -> SessionKeyLookup:
    """Read ``request.state.<cookie_name>.sub`` without raising."""
    state = getattr(request, "state", None)
    if state is None:
        return SessionKeyLookup(None, COOKIE_ABSENT)

    cookie = _read(state, cookie_name)
    if cookie is None:
        return SessionKeyLookup(None, COOKIE_ABSENT)
    if not isinstance(cookie, Mapping):
        return SessionKeyLookup(None, COOKIE_MALFORMED)

    sub = cookie.get("sub")
    if not sub:
        return SessionKeyLookup(None, CLAIM_ABSENT)
    if not isinstance(sub, str):
        return SessionKeyLookup(None, COOKIE_MALFORMED)

    return SessionKeyLookup(sub)


def extract_session_key(request: Any, cookie_name: str) -> Optional[str]:
    """Session cache key of the request, or None if it has no session."""
    lookup = lookup_session_key(request, cookie_name)
    if lookup.key is None:
        logger.debug("session_key_missing", reason=lookup.reason)
    return lookup.key


class SessionResolver:
    """Resolves the cached credentials of the request's session."""

    def __init__(self, cache: SegmentCache, cookie_name: str):
        self.cache = cache
        self.cookie_name = cookie_name

    async def resolve_credentials(self, request: Any) -> Optional[SessionCredentials]:
        """Cached credentials of the request's session, or None."""
        with guard_request(request, "get_credentials"):
            key = extract_session_key(request, self.cookie_name)

        if not key:
            return None

        data = await self.cache.get(key)
        if not isinstance(data, dict):
            logger.debug("credentials_not_cached")
            return None

        credentials = SessionCredentials.model_validate(data)
        logger.debug("credentials_resolved", expired=credentials.is_expired())
        return credentials

    async def get_claims(self, request: Any) -> Optional[Dict[str, Any]]:
        """Identity claims of the request's session, or None."""
        with guard_request(request, "get_claims"):
            credentials = await self.resolve_credentials(request)

        if credentials is None:
            return None
        return credentials.claims


class SessionTerminator:
    """Logs a session out by dropping its credentials and clearing its cookie."""

    def __init__(self, cache: SegmentCache, cookie_name: str):
        self.cache = cache
        self.cookie_name = cookie_name

    async def logout(self, request: Any) -> None:
        """Drop the session's cached credentials, then clear the session cookie.

        The cookie is cleared even when no session key can be read or the
        cache drop fails; a cache error still propagates afterwards.
        """
        with guard_request(request, "logout"):
            key = extract_session_key(request, self.cookie_name)

        try:
            if key:
                await self.cache.drop(key)
        finally:
            _read(request.state, "cookie_auth").clear()
            logger.info("logout", had_session=key is not None)
