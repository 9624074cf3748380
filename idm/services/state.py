"""Authentication attempt state correlation."""

import secrets
from typing import Any, Dict, Optional, Tuple

from idm.config import IdentitySettings
from idm.core.logging import get_logger
from idm.models.domain import RequestState
from idm.services.cache import SegmentCache
from idm.services.urls import decode_force_login

logger = get_logger(__name__)

STATE_BYTES = 16


def generate_state() -> str:
    """Generate an unguessable 128-bit state identifier."""
    return secrets.token_urlsafe(STATE_BYTES)


class StateCorrelator:
    """Creates and reads the per-attempt state stored under a state identifier."""

    def __init__(self, cache: SegmentCache, identity: IdentitySettings):
        self.cache = cache
        self.identity = identity

    async def begin_auth_attempt(
        self,
        policy_name: Optional[str] = None,
        journey: Optional[str] = None,
        force_login: Any = False,
        back_to_path: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
        state: Optional[str] = None,
    ) -> Tuple[str, RequestState]:
        """Persist state for a new authentication attempt.

        Args:
            policy_name: Broker policy; defaults to the configured policy
            journey: Broker journey; defaults to the configured journey
            force_login: Boolean, or the query-string flag ``"yes"``
            back_to_path: Where to send the user after logging in
            extra: Caller data stored with the state. Its fields take
                precedence over the computed ones.
            state: Explicit state identifier, for callers resuming a known flow

        Returns:
            Tuple of (state identifier, persisted RequestState)

        Raises:
            Any cache error; nothing is retried.
        """
        defaults = {
            "policy_name": policy_name or self.identity.default_policy,
            "journey": journey or self.identity.default_journey,
            "force_login": decode_force_login(force_login),
            "back_to_path": back_to_path,
        }
        record = RequestState.model_validate({**defaults, **(extra or {})})
        state = state or generate_state()

        await self.cache.set(state, record.model_dump())

        logger.info(
            "auth_attempt_started",
            policy_name=record.policy_name,
            journey=record.journey,
            force_login=record.force_login,
            extra_fields=sorted((extra or {}).keys()),
        )

        return state, record

    async def resume(self, state: Optional[str]) -> Optional[RequestState]:
        """Load the state of an attempt, or None if unknown or expired."""
        if not state:
            return None

        data = await self.cache.get(state)
        if not isinstance(data, dict):
            logger.warning("auth_attempt_state_missing")
            return None

        return RequestState.model_validate(data)

    async def consume(self, state: Optional[str]) -> Optional[RequestState]:
        """Load and remove the state of an attempt in one step.

        Returns None if the state is unknown, expired or was already consumed
        by a concurrent request.
        """
        if not state:
            return None

        data = await self.cache.take(state)
        if not isinstance(data, dict):
            logger.warning("auth_attempt_state_missing")
            return None

        return RequestState.model_validate(data)

    async def discard(self, state: str) -> None:
        """Drop the state of a completed attempt."""
        await self.cache.drop(state)
