"""Authentication routes: local login, logout, session, SSO and callback."""

import logging
from typing import Any
from urllib.parse import quote

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse, RedirectResponse

from inventory_gateway.api.dependencies import (
    GatewayServices,
    get_services,
    request_origin,
)
from inventory_gateway.api.models import LoginRequest
from inventory_gateway.domain.exceptions import (
    AuthenticationError,
    ConfigurationError,
    GatewayError,
)
from inventory_gateway.domain.services.oauth import CallbackOutcomeKind
from inventory_gateway.infra.session.cookies import (
    OAUTH_STATE_COOKIE,
    OAUTH_VERIFIER_COOKIE,
)
from inventory_gateway.security.pkce import LINKING_MODE

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

LOGIN_PATH = "/login"
DEFAULT_SSO_PATH = "/api/auth/sso"


@router.post("/login")
async def login(
    body: LoginRequest,
    services: GatewayServices = Depends(get_services),
) -> JSONResponse:
    """Authenticate with username and password and issue session cookies."""
    session = await services.authenticator.login(body.username, body.password)
    response = JSONResponse(
        {
            "success": True,
            "user": session.user.to_cookie(),
            "axpertProfile": session.profile.to_cookie() if session.profile else None,
        }
    )
    services.cookies.issue(response, session)
    return response


@router.post("/logout")
async def logout(services: GatewayServices = Depends(get_services)) -> JSONResponse:
    """Clear every session cookie. Always succeeds."""
    response = JSONResponse({"success": True})
    services.cookies.clear(response)
    return response


@router.get("/session")
async def session(
    request: Request,
    services: GatewayServices = Depends(get_services),
) -> JSONResponse:
    """Describe the current session without contacting the data service."""
    view = services.cookies.introspect(request.cookies)
    status_code = status.HTTP_401_UNAUTHORIZED if view.error else status.HTTP_200_OK
    return JSONResponse(view.to_response(), status_code=status_code)


@router.get("/sso")
async def sso(
    request: Request,
    mode: str | None = Query(default=None),
    services: GatewayServices = Depends(get_services),
) -> RedirectResponse:
    """Redirect to the external provider (``mode=linking`` links the current account)."""
    current_user = None
    if mode == LINKING_MODE:
        current_user = services.cookies.read_user(request.cookies)

    redirect = services.oauth.begin_authorization(
        request_origin(request), mode=mode, current_user=current_user
    )
    response = RedirectResponse(redirect.url, status_code=status.HTTP_302_FOUND)
    services.cookies.set_oauth_cookies(response, redirect.state, redirect.verifier)
    return response


@router.get("/callback")
async def callback(
    request: Request,
    code: str | None = Query(default=None),
    state: str | None = Query(default=None),
    error: str | None = Query(default=None),
    services: GatewayServices = Depends(get_services),
) -> RedirectResponse:
    """Complete the provider redirect.

    Failures send the browser back to the login page with a generic message;
    configuration errors surface as 500.
    """
    cookies = services.cookies
    access_token = cookies.read_access_token(request.cookies)
    try:
        current_user = cookies.read_user(request.cookies) if access_token else None
    except AuthenticationError:
        current_user = None

    try:
        outcome = await services.oauth.complete_authorization(
            request_origin(request),
            code=code,
            state=state,
            error=error,
            cookie_state=request.cookies.get(OAUTH_STATE_COOKIE),
            cookie_verifier=request.cookies.get(OAUTH_VERIFIER_COOKIE),
            current_user=current_user,
        )
    except ConfigurationError:
        raise
    except GatewayError as e:
        logger.warning(
            f"OAuth callback failed: {e.message}",
            extra={"error_code": e.error_code},
        )
        response = RedirectResponse(
            f"{LOGIN_PATH}?error={quote(e.public_message)}",
            status_code=status.HTTP_302_FOUND,
        )
        cookies.clear_oauth_cookies(response)
        return response

    response = RedirectResponse(outcome.redirect_to, status_code=status.HTTP_302_FOUND)
    cookies.clear_oauth_cookies(response)

    if outcome.kind is CallbackOutcomeKind.LOGGED_IN:
        cookies.issue(response, outcome.session)  # type: ignore[arg-type]
    elif outcome.kind is CallbackOutcomeKind.PENDING:
        cookies.set_pending_user(response, outcome.pending_user)  # type: ignore[arg-type]
    else:
        cookies.refresh_identity(
            response,
            outcome.linked_user,  # type: ignore[arg-type]
            access_token,  # type: ignore[arg-type]
            profile=outcome.profile,
        )
    return response


@router.get("/check-status")
async def check_status(
    user_id: str | None = Query(default=None, alias="userId"),
    services: GatewayServices = Depends(get_services),
) -> dict[str, Any]:
    """Activation flags for the pending-approval page."""
    return await services.approval.check_status(user_id)


@router.get("/sso-entry")
async def sso_entry(services: GatewayServices = Depends(get_services)) -> dict[str, str]:
    """Target of the login page's SSO button."""
    return {"ssoUrl": services.settings.sso_entry_url or DEFAULT_SSO_PATH}
