"""Login, login return, logout and session endpoints."""

from fastapi import APIRouter, Request, status
from fastapi.responses import RedirectResponse

from idm.config import IdentitySettings
from idm.core.exceptions import InvalidStateError, ProviderError, ValidationError
from idm.core.logging import get_logger
from idm.core.security import Credentials
from idm.dependencies import IdentityDep
from idm.models.requests import CallbackForm, OutboundRequest
from idm.models.responses import SessionResponse, SuccessResponse

logger = get_logger(__name__)


def _redirect(location: str) -> RedirectResponse:
    return RedirectResponse(url=location, status_code=status.HTTP_302_FOUND)


async def outbound(request: Request, identity: IdentityDep) -> RedirectResponse:
    """Store the attempt state and send the user to the identity provider."""
    query = OutboundRequest.model_validate(dict(request.query_params))

    authorization_url = await identity.generate_final_outbound_redirect_url(
        back_to_path=query.back_to_path,
        policy_name=query.policy_name,
        force_login=query.force_login,
        journey=query.journey,
    )
    return _redirect(authorization_url)


async def login_return(request: Request, identity: IdentityDep) -> RedirectResponse:
    """Handle the form post from the identity provider.

    Failed or unknown attempts go to the disallowed path; successful ones to
    the path stored with the attempt.
    """
    form = CallbackForm.model_validate(dict(await request.form()))
    config = identity.get_config()

    if form.error:
        logger.warning(
            "login_return_provider_error",
            error=form.error,
            error_description=form.error_description,
        )
        if form.state:
            await identity.correlator.discard(form.state)
        return _redirect(config.disallowed_redirect_path)

    try:
        back_to_path = await identity.complete_auth_attempt(request, form.state, form.code)
    except (InvalidStateError, ProviderError, ValidationError) as e:
        logger.warning("login_return_failed", error_code=e.code, error=e.message)
        return _redirect(config.disallowed_redirect_path)

    return _redirect(back_to_path)


async def logout(request: Request, identity: IdentityDep) -> RedirectResponse:
    """Log the user out and send them to the default path."""
    await identity.logout(request)
    return _redirect(identity.get_config().default_back_to_path)


async def session(credentials: Credentials) -> SuccessResponse[SessionResponse]:
    """Claims of the current session."""
    return SuccessResponse(
        data=SessionResponse(claims=credentials.claims or {}, expired=credentials.is_expired())
    )


def make_router(identity: IdentitySettings) -> APIRouter:
    """Router for the auth endpoints at their configured paths."""
    router = APIRouter(tags=["auth"])

    router.add_api_route(
        identity.outbound_path,
        outbound,
        methods=["GET"],
        summary="Start a login",
        response_class=RedirectResponse,
    )
    router.add_api_route(
        identity.return_uri,
        login_return,
        methods=["POST"],
        summary="Complete a login (form_post callback)",
        response_class=RedirectResponse,
    )
    router.add_api_route(
        identity.logout_path,
        logout,
        methods=["GET"],
        summary="Log out",
        response_class=RedirectResponse,
    )
    router.add_api_route(
        "/session",
        session,
        methods=["GET"],
        summary="Current session",
        response_model=SuccessResponse[SessionResponse],
    )

    return router
