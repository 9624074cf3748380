"""Redirect URL construction.

URLs are handled as :class:`OutboundUrl` values whose query is always an
ordered mapping; it is serialised exactly once, in :meth:`OutboundUrl.format`.
"""

from typing import Any, Dict, Optional, Union
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from pydantic import BaseModel, Field

from idm.config import IdentitySettings

FORCE_LOGIN_FLAG = "yes"
IDENTITY_APP_AUTH_PATH = "/auth"


class OutboundUrl(BaseModel):
    """Structured URL with an ordered query mapping."""

    scheme: str = ""
    netloc: str = ""
    path: str = ""
    query: Dict[str, Optional[str]] = Field(default_factory=dict)
    fragment: str = ""

    @classmethod
    def parse(cls, url: Union[str, "OutboundUrl"]) -> "OutboundUrl":
        """Parse a URL string; an :class:`OutboundUrl` is copied as-is."""
        if isinstance(url, OutboundUrl):
            return url.model_copy(deep=True)

        parts = urlsplit(url)
        return cls(
            scheme=parts.scheme,
            netloc=parts.netloc,
            path=parts.path,
            query=dict(parse_qsl(parts.query, keep_blank_values=True)),
            fragment=parts.fragment,
        )

    def with_params(self, **params: Optional[str]) -> "OutboundUrl":
        """Copy with ``params`` merged into the query, replacing existing keys."""
        return self.model_copy(update={"query": {**self.query, **params}})

    def format(self) -> str:
        """Serialise the URL. Query entries whose value is None are omitted."""
        query = urlencode({k: v for k, v in self.query.items() if v is not None})
        return urlunsplit((self.scheme, self.netloc, self.path, query, self.fragment))

    def __str__(self) -> str:
        return self.format()


def decode_force_login(value: Any) -> bool:
    """Decode a force-login flag from its query-string form.

    ``"yes"`` and ``True`` mean force login; anything else does not.
    """
    if isinstance(value, bool):
        return value
    return value == FORCE_LOGIN_FLAG


def encode_force_login(force_login: bool) -> Optional[str]:
    """Encode a force-login flag for a query string (omitted when false)."""
    return FORCE_LOGIN_FLAG if force_login else None


def safe_back_to_path(back_to_path: Optional[str], default: str) -> str:
    """``back_to_path`` if it is a local absolute path, otherwise ``default``."""
    if not back_to_path or not back_to_path.startswith("/") or back_to_path.startswith("//"):
        return default
    if "\\" in back_to_path:
        return default
    return back_to_path


def outbound_path_url(
    identity: IdentitySettings,
    back_to_path: Optional[str],
    policy_name: Optional[str] = None,
    journey: Optional[str] = None,
    force_login: bool = False,
) -> OutboundUrl:
    """Link to this application's outbound route."""
    url = OutboundUrl.parse(identity.app_domain)
    return url.model_copy(
        update={
            "path": identity.outbound_path,
            "query": {
                "backToPath": back_to_path,
                "policyName": policy_name,
                "journey": journey,
                "forceLogin": encode_force_login(force_login),
            },
        }
    )


def first_stage_url(
    identity: IdentitySettings,
    *,
    policy_name: str,
    journey: str,
    force_login: bool,
    state: str,
) -> str:
    """URL sending the user to the identity broker's own ``/auth`` route."""
    url = OutboundUrl.parse(identity.identity_app_url)
    url = url.model_copy(
        update={
            "path": IDENTITY_APP_AUTH_PATH,
            "query": {
                "redirect_uri": identity.redirect_uri,
                "forceLogin": encode_force_login(force_login),
                "policyName": policy_name,
                "journey": journey,
                "state": state,
                "client_id": identity.client_id,
                "serviceId": identity.service_id,
            },
        }
    )
    return url.format()


def decorate_authorization_url(
    authorization_url: Union[str, OutboundUrl],
    *,
    journey: str,
    force_login: bool,
    client_id: Optional[str] = None,
) -> str:
    """Add broker-specific parameters to a provider authorization URL.

    Adds ``journey``, adds ``prompt=login`` when forcing login and replaces
    ``client_id`` when an override is given.
    """
    url = OutboundUrl.parse(authorization_url).with_params(journey=journey)

    if force_login:
        url = url.with_params(prompt="login")

    if client_id:
        url = url.with_params(client_id=client_id)

    return url.format()
