"""OpenID Connect client service."""

import asyncio
import time
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx
import jwt

from idm.config import OidcSettings
from idm.core.exceptions import ProviderError
from idm.core.logging import get_logger
from idm.models.domain import ProviderMetadata, TokenSet

logger = get_logger(__name__)

ID_TOKEN_ALGORITHMS = ["RS256"]


class OidcClient:
    """Client for one policy's OpenID Connect endpoints."""

    def __init__(
        self,
        policy_name: str,
        metadata: ProviderMetadata,
        settings: OidcSettings,
        http_client: httpx.AsyncClient,
    ):
        """Initialize the client.

        Args:
            policy_name: Policy the provider metadata belongs to
            metadata: Discovery document of the policy
            settings: OIDC client credentials
            http_client: Shared HTTP client
        """
        self.policy_name = policy_name
        self.metadata = metadata
        self.settings = settings
        self.http_client = http_client
        self._jwks = jwt.PyJWKClient(metadata.jwks_uri)

    def authorization_url(
        self,
        redirect_uri: str,
        scope: str,
        response_mode: str,
        state: str,
    ) -> str:
        """Build the provider authorization URL for an authorization code flow."""
        params = {
            "client_id": self.settings.client_id,
            "response_type": "code",
            "redirect_uri": redirect_uri,
            "scope": scope,
            "response_mode": response_mode,
            "state": state,
        }
        return f"{self.metadata.authorization_endpoint}?{urlencode(params)}"

    async def refresh(self, refresh_token: str) -> TokenSet:
        """Exchange a refresh token for a new token set.

        Raises:
            ProviderError: If the token endpoint rejects the request or the
                returned id_token is invalid
        """
        data = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": self.settings.client_id,
            "client_secret": self.settings.client_secret,
        }

        return await self._token_request("refresh_token", data)

    async def callback(self, redirect_uri: str, code: str) -> TokenSet:
        """Exchange an authorization code for a token set.

        Raises:
            ProviderError: If the code exchange fails or the id_token is invalid
        """
        data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
            "client_id": self.settings.client_id,
            "client_secret": self.settings.client_secret,
        }

        return await self._token_request("exchange_code_for_token", data)

    async def _token_request(self, operation: str, data: Dict[str, str]) -> TokenSet:
        logger.info(
            operation,
            endpoint=self.metadata.token_endpoint,
            policy_name=self.policy_name,
        )

        response = await self.http_client.post(self.metadata.token_endpoint, data=data)

        if response.status_code != 200:
            logger.error(
                f"{operation}_failed",
                status_code=response.status_code,
                error=response.text,
                policy_name=self.policy_name,
            )
            raise ProviderError(
                f"Token request failed: {response.text}", status_code=response.status_code
            )

        logger.info(f"{operation}_success", status_code=response.status_code)

        return await self._token_set(response.json())

    async def _token_set(self, payload: Dict[str, Any]) -> TokenSet:
        token_set = TokenSet.model_validate(payload)

        if token_set.expires_at is None and isinstance(payload.get("expires_in"), int):
            token_set.expires_at = int(time.time()) + payload["expires_in"]

        if token_set.id_token:
            token_set.claims = await self._verify_id_token(token_set.id_token)

        return token_set

    async def _verify_id_token(self, id_token: str) -> Dict[str, Any]:
        try:
            signing_key = await asyncio.to_thread(
                self._jwks.get_signing_key_from_jwt, id_token
            )
            return jwt.decode(
                id_token,
                signing_key.key,
                algorithms=ID_TOKEN_ALGORITHMS,
                audience=self.settings.client_id,
                issuer=self.metadata.issuer,
            )
        except jwt.PyJWTError as e:
            logger.error("id_token_invalid", error=str(e), policy_name=self.policy_name)
            raise ProviderError(f"Invalid id_token: {str(e)}", status_code=401)


class OidcClientFactory:
    """Creates one :class:`OidcClient` per policy, fetching discovery on first use."""

    def __init__(self, settings: OidcSettings, http_client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self.http_client = http_client or httpx.AsyncClient(timeout=settings.timeout)
        self._clients: Dict[str, OidcClient] = {}

    async def get_client(self, policy_name: str) -> OidcClient:
        """Client bound to ``policy_name``.

        Raises:
            ProviderError: If the discovery document cannot be fetched
        """
        client = self._clients.get(policy_name)
        if client is None:
            metadata = await self._discover(policy_name)
            client = OidcClient(policy_name, metadata, self.settings, self.http_client)
            self._clients[policy_name] = client
        return client

    async def _discover(self, policy_name: str) -> ProviderMetadata:
        url = self.settings.discovery_url(policy_name)
        logger.info("discover_provider", endpoint=url, policy_name=policy_name)

        response = await self.http_client.get(url)

        if response.status_code != 200:
            logger.error(
                "discover_provider_failed",
                status_code=response.status_code,
                error=response.text,
                policy_name=policy_name,
            )
            raise ProviderError(
                f"Provider discovery failed: {response.text}", status_code=response.status_code
            )

        logger.info("discover_provider_success", policy_name=policy_name)
        return ProviderMetadata.model_validate(response.json())

    async def close(self) -> None:
        """Close HTTP client and cleanup resources."""
        await self.http_client.aclose()
