"""Domain models."""

import time
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict


class CacheRecord(BaseModel):
    """Cache table row as seen by the cache facade."""

    model_config = ConfigDict(from_attributes=True)

    segment: str
    key_hash: str
    encrypted_value: str
    nonce: str
    expires_at_ms: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class RequestState(BaseModel):
    """Per-attempt state stored under the state identifier.

    Extra fields supplied by callers (for example a password reset journey)
    are kept alongside the standard ones.
    """

    model_config = ConfigDict(extra="allow")

    policy_name: str
    journey: str
    force_login: bool = False
    back_to_path: Optional[str] = None


class TokenSet(BaseModel):
    """Token endpoint response, with the verified id_token claims."""

    model_config = ConfigDict(extra="allow")

    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    id_token: Optional[str] = None
    token_type: Optional[str] = None
    expires_at: Optional[int] = None
    scope: Optional[str] = None
    claims: Optional[Dict[str, Any]] = None


class SessionCredentials(BaseModel):
    """Cached credentials for an authenticated user, keyed by the ``sub`` claim."""

    model_config = ConfigDict(frozen=True)

    claims: Optional[Dict[str, Any]] = None
    token_set: Optional[TokenSet] = None

    def is_expired(self, now: Optional[float] = None) -> bool:
        """Whether the credentials are expired at ``now`` (epoch seconds).

        Missing claims or a missing ``exp`` claim count as expired.
        """
        if not self.claims:
            return True

        exp = self.claims.get("exp")
        if not isinstance(exp, (int, float)):
            return True

        if now is None:
            now = time.time()
        return exp < now


class ProviderMetadata(BaseModel):
    """Subset of an OpenID Connect discovery document."""

    model_config = ConfigDict(extra="ignore")

    issuer: str
    authorization_endpoint: str
    token_endpoint: str
    jwks_uri: str
    end_session_endpoint: Optional[str] = None
