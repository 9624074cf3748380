"""Persistence of token sets into session credentials."""

from typing import Any

from idm.core.guards import guard_not_none
from idm.core.logging import get_logger
from idm.models.domain import SessionCredentials, TokenSet
from idm.services.cache import SegmentCache

logger = get_logger(__name__)


class TokenSetStore:
    """Stores a token set as the session credentials of the request's user."""

    def __init__(self, cache: SegmentCache, ttl_ms: int):
        self.cache = cache
        self.ttl_ms = ttl_ms

    async def store_token_set_response(self, request: Any, token_set: TokenSet) -> str:
        """Cache the credentials under the ``sub`` claim and set the session cookie.

        Returns:
            The session key the credentials were stored under

        Raises:
            ValidationError: If the token set carries no ``sub`` claim
        """
        claims = token_set.claims or {}

        with guard_not_none(claims.get("sub"), "Token set missing required claim: sub") as sub:
            credentials = SessionCredentials(claims=claims, token_set=token_set)
            await self.cache.set(sub, credentials.model_dump(mode="json"), ttl_ms=self.ttl_ms)

            request.state.cookie_auth.set({"sub": sub})

        logger.info("token_set_stored", exp=claims.get("exp"))
        return sub
