"""Identity manager: the operations offered to the rest of the application."""

from typing import Any, Dict, Optional, Tuple, Union

from idm.config import IdentitySettings
from idm.core.exceptions import InvalidStateError
from idm.core.guards import guard_not_none
from idm.core.logging import get_logger
from idm.models.domain import SessionCredentials
from idm.services.cache import SegmentCache
from idm.services.oidc import OidcClientFactory
from idm.services.refresh import TokenRefresher
from idm.services.session import SessionResolver, SessionTerminator
from idm.services.state import StateCorrelator
from idm.services.token_store import TokenSetStore
from idm.services.urls import (
    OutboundUrl,
    decode_force_login,
    decorate_authorization_url,
    first_stage_url,
    outbound_path_url,
    safe_back_to_path,
)

logger = get_logger(__name__)

AUTHORIZATION_SCOPE = "openid offline_access"
AUTHORIZATION_RESPONSE_MODE = "form_post"


class IdentityManager:
    """Authentication state machine over the state and session caches.

    All collaborators are injected; the manager itself holds no per-request
    state.
    """

    def __init__(
        self,
        identity: IdentitySettings,
        state_cache: SegmentCache,
        session_cache: SegmentCache,
        client_factory: OidcClientFactory,
        token_store: TokenSetStore,
        cookie_name: str,
    ):
        self.identity = identity
        self.state_cache = state_cache
        self.session_cache = session_cache
        self.client_factory = client_factory
        self.token_store = token_store

        self.correlator = StateCorrelator(state_cache, identity)
        self.resolver = SessionResolver(session_cache, cookie_name)
        self.terminator = SessionTerminator(session_cache, cookie_name)
        self.refresher = TokenRefresher(client_factory, token_store)

    async def get_credentials(self, request: Any) -> Optional[SessionCredentials]:
        """The user's cached session credentials (tokens, claims, expiry), or None."""
        return await self.resolver.resolve_credentials(request)

    async def get_claims(self, request: Any) -> Optional[Dict[str, Any]]:
        """The user's identity claims, or None."""
        return await self.resolver.get_claims(request)

    def generate_authentication_url(
        self,
        back_to_path: Optional[str] = None,
        *,
        policy_name: Optional[str] = None,
        journey: Optional[str] = None,
        force_login: bool = False,
        return_url_object: bool = False,
    ) -> Union[str, OutboundUrl]:
        """Link to the outbound route that starts a login.

        Args:
            back_to_path: Where to send the user after logging in
            policy_name: Broker policy to log in with
            journey: Broker journey to log in with
            force_login: Ignore an existing session at the identity provider
            return_url_object: Return an :class:`OutboundUrl` instead of a string
        """
        url = outbound_path_url(
            self.identity,
            back_to_path or self.identity.default_back_to_path,
            policy_name=policy_name,
            journey=journey,
            force_login=force_login,
        )

        if return_url_object:
            return url
        return url.format()

    async def logout(self, request: Any) -> None:
        """Log the user out."""
        await self.terminator.logout(request)

    async def refresh_token(self, request: Any, refresh_token: str, policy_name: str) -> None:
        """Refresh the user's tokens with the refresh token of their credentials.

        Args:
            request: Current request
            refresh_token: Refresh token from :meth:`get_credentials`
            policy_name: Policy the user authenticated with
        """
        await self.refresher.refresh(request, refresh_token, policy_name)

    async def generate_first_stage_outbound_redirect_url(
        self,
        back_to_path: Optional[str] = None,
        policy_name: Optional[str] = None,
        force_login: Any = False,
        journey: Optional[str] = None,
        *,
        state: Optional[str] = None,
        state_cache_data: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Save the attempt state and return the identity broker's ``/auth`` URL."""
        policy_name, journey, force_login = self._defaults(policy_name, journey, force_login)
        state, _ = await self.correlator.begin_auth_attempt(
            policy_name=policy_name,
            journey=journey,
            force_login=force_login,
            back_to_path=back_to_path,
            extra=state_cache_data,
            state=state,
        )

        logger.info("first_stage_url_generated", policy_name=policy_name, journey=journey)
        return first_stage_url(
            self.identity,
            policy_name=policy_name,
            journey=journey,
            force_login=force_login,
            state=state,
        )

    async def generate_final_outbound_redirect_url(
        self,
        back_to_path: Optional[str] = None,
        policy_name: Optional[str] = None,
        force_login: Any = False,
        journey: Optional[str] = None,
        *,
        state: Optional[str] = None,
        state_cache_data: Optional[Dict[str, Any]] = None,
        redirect_uri: Optional[str] = None,
        client_id: Optional[str] = None,
    ) -> str:
        """Save the attempt state and return the identity provider's authorization URL.

        Args:
            back_to_path: Where to send the user after logging in
            policy_name: Broker policy to log in with
            force_login: Ignore an existing session at the identity provider
            journey: Broker journey to log in with
            state: Explicit state identifier to store the attempt under
            state_cache_data: Extra data stored with the attempt, for example
                when the user is sent on a password reset journey
            redirect_uri: Callback URL; defaults to the configured one
            client_id: Client identifier overriding the one in the URL
        """
        policy_name, journey, force_login = self._defaults(policy_name, journey, force_login)
        state, _ = await self.correlator.begin_auth_attempt(
            policy_name=policy_name,
            journey=journey,
            force_login=force_login,
            back_to_path=back_to_path,
            extra=state_cache_data,
            state=state,
        )

        client = await self.client_factory.get_client(policy_name)

        authorization_url = client.authorization_url(
            redirect_uri=redirect_uri or self.identity.redirect_uri,
            scope=AUTHORIZATION_SCOPE,
            response_mode=AUTHORIZATION_RESPONSE_MODE,
            state=state,
        )

        logger.info(
            "authorization_url_generated",
            policy_name=policy_name,
            journey=journey,
            force_login=force_login,
            client_id_override=client_id is not None,
        )
        return decorate_authorization_url(
            authorization_url,
            journey=journey,
            force_login=force_login,
            client_id=client_id,
        )

    async def complete_auth_attempt(
        self, request: Any, state: Optional[str], code: Optional[str]
    ) -> str:
        """Finish a login on the return route.

        Consumes the attempt state, exchanges the authorization code with the
        attempt's policy and stores the resulting token set.

        Returns:
            The local path to send the user to

        Raises:
            InvalidStateError: If the state is unknown, expired or already used,
                including by a concurrent request
            ProviderError: If the code exchange fails
        """
        record = await self.correlator.consume(state)
        if record is None:
            raise InvalidStateError("Unknown or expired authentication state")

        with guard_not_none(code, "Authorization code is required") as code:
            client = await self.client_factory.get_client(record.policy_name)
            token_set = await client.callback(self.identity.redirect_uri, code)

        await self.token_store.store_token_set_response(request, token_set)

        logger.info("auth_attempt_completed", policy_name=record.policy_name, journey=record.journey)
        return safe_back_to_path(record.back_to_path, self.identity.default_back_to_path)

    def _defaults(
        self, policy_name: Optional[str], journey: Optional[str], force_login: Any
    ) -> Tuple[str, str, bool]:
        # URLs use the caller's values; state_cache_data only changes what is stored
        return (
            policy_name or self.identity.default_policy,
            journey or self.identity.default_journey,
            decode_force_login(force_login),
        )

    def get_config(self) -> IdentitySettings:
        return self.identity

    def get_cache(self) -> SegmentCache:
        return self.state_cache

    def get_session_cache(self) -> SegmentCache:
        return self.session_cache
