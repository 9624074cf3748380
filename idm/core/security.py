"""Session authentication dependencies."""

from typing import Annotated

from fastapi import Depends, Request

from idm.core.exceptions import LoginRequiredError
from idm.core.logging import get_logger
from idm.dependencies import IdentityDep
from idm.models.domain import SessionCredentials

logger = get_logger(__name__)


async def require_credentials(request: Request, identity: IdentityDep) -> SessionCredentials:
    """Resolve the session credentials of the current request.

    Credentials are returned even when expired; callers decide whether to
    refresh them.

    Raises:
        LoginRequiredError: If the request has no session. The redirect points
            at the outbound route when ``login_on_disallow`` is set, and at
            the disallowed path otherwise.

    Example:
        @router.get("/account")
        async def account(credentials: Credentials):
            return credentials.claims
    """
    credentials = await identity.get_credentials(request)
    if credentials is not None:
        return credentials

    config = identity.get_config()
    if config.login_on_disallow:
        location = identity.generate_authentication_url(request.url.path)
    else:
        location = config.disallowed_redirect_path

    logger.info("login_required", path=request.url.path, login_on_disallow=config.login_on_disallow)
    raise LoginRequiredError(location)


# Type alias for the session credentials dependency
Credentials = Annotated[SessionCredentials, Depends(require_credentials)]
