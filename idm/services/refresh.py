"""Access credential refresh."""

from typing import Any

from idm.core.logging import get_logger
from idm.services.oidc import OidcClientFactory
from idm.services.token_store import TokenSetStore

logger = get_logger(__name__)


class TokenRefresher:
    """Exchanges a refresh token and hands the new token set to the token store."""

    def __init__(self, client_factory: OidcClientFactory, token_store: TokenSetStore):
        self.client_factory = client_factory
        self.token_store = token_store

    async def refresh(self, request: Any, refresh_token: str, policy_name: str) -> None:
        """Refresh the session's tokens through the policy's token endpoint.

        Failures of the exchange propagate unchanged; nothing is retried.
        """
        client = await self.client_factory.get_client(policy_name)

        token_set = await client.refresh(refresh_token)

        await self.token_store.store_token_set_response(request, token_set)

        logger.info(
            "token_refreshed",
            policy_name=policy_name,
            expires_at=token_set.expires_at,
            claims_exp=(token_set.claims or {}).get("exp"),
        )
