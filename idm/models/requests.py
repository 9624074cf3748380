"""Pydantic request models."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class OutboundRequest(BaseModel):
    """Query parameters accepted by the outbound route."""

    model_config = ConfigDict(populate_by_name=True)

    back_to_path: Optional[str] = Field(default=None, alias="backToPath")
    policy_name: Optional[str] = Field(default=None, alias="policyName")
    journey: Optional[str] = Field(default=None)
    force_login: Optional[str] = Field(
        default=None, alias="forceLogin", description="'yes' to bypass an existing IdP session"
    )


class CallbackForm(BaseModel):
    """Form fields posted by the identity provider to the return route."""

    state: Optional[str] = None
    code: Optional[str] = None
    error: Optional[str] = None
    error_description: Optional[str] = None
