"""Pydantic response models."""

from typing import Any, Dict, Generic, Optional, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class ErrorResponse(BaseModel):
    """Standard error response model."""

    error: str = Field(..., description="Human-readable error message")
    code: str = Field(..., description="Machine-readable error code")
    reason: Optional[str] = Field(default=None, description="Additional error reason or context")


class SuccessResponse(BaseModel, Generic[T]):
    """Standard success response wrapper."""

    data: T = Field(..., description="Response data")


class SessionResponse(BaseModel):
    """Current session summary."""

    claims: Dict[str, Any] = Field(..., description="Identity claims of the session")
    expired: bool = Field(..., description="Whether the access credentials have expired")
