"""Pydantic models for domain objects, requests and responses."""

from idm.models.domain import (
    CacheRecord,
    ProviderMetadata,
    RequestState,
    SessionCredentials,
    TokenSet,
)
from idm.models.requests import CallbackForm, OutboundRequest
from idm.models.responses import ErrorResponse, SessionResponse, SuccessResponse

__all__ = [
    # Request models
    "CallbackForm",
    "OutboundRequest",
    # Response models
    "ErrorResponse",
    "SessionResponse",
    "SuccessResponse",
    # Domain models
    "CacheRecord",
    "ProviderMetadata",
    "RequestState",
    "SessionCredentials",
    "TokenSet",
]
