# social_connect/routers/oauth_router.py
from typing import Optional
from urllib.parse import urlencode

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse

from social_connect.config import Settings
from social_connect.dependencies.auth import get_current_user_id
from social_connect.dependencies.services import get_scheduler, get_service, get_settings
from social_connect.errors import SocialConnectError
from social_connect.oauth.base import BaseOAuthService
from social_connect.services.refresh_scheduler import TokenRefreshScheduler

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/oauth", tags=["oauth"])

GENERIC_FAILURE_MESSAGE = "Failed to connect account"


def frontend_redirect(
    settings: Settings,
    service: BaseOAuthService,
    outcome: str,
    message: Optional[str] = None,
    username: Optional[str] = None,
) -> RedirectResponse:
    params = {"oauth": service.platform.slug, "status": outcome}
    if message:
        params["message"] = message
    if username:
        params["username"] = username
    return RedirectResponse(f"{settings.frontend_url}/account?{urlencode(params)}", status_code=302)


@router.get("/{platform}/authorize")
async def authorize(
    user_id: str = Depends(get_current_user_id),
    service: BaseOAuthService = Depends(get_service),
    settings: Settings = Depends(get_settings),
):
    try:
        auth = await service.generate_authorization_url(user_id)
    except SocialConnectError as e:
        logger.warning("oauth_authorize_failed", platform=service.platform.value, error_type=type(e).__name__)
        return frontend_redirect(settings, service, "error", e.public_message)
    return RedirectResponse(auth.auth_url, status_code=302)


@router.get("/{platform}/callback")
async def callback(
    request: Request,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    service: BaseOAuthService = Depends(get_service),
    settings: Settings = Depends(get_settings),
    scheduler: TokenRefreshScheduler = Depends(get_scheduler),
):
    if error:
        logger.info("oauth_denied", platform=service.platform.value, error=error)
        return frontend_redirect(settings, service, "denied")

    ip_address = request.client.host if request.client else None
    try:
        result = await service.handle_callback(code, state, ip_address=ip_address)
    except SocialConnectError as e:
        logger.warning("oauth_callback_failed", platform=service.platform.value, error_type=type(e).__name__)
        return frontend_redirect(settings, service, "error", e.public_message)
    except Exception:
        logger.exception("oauth_callback_error", platform=service.platform.value)
        return frontend_redirect(settings, service, "error", GENERIC_FAILURE_MESSAGE)

    scheduler.schedule(service, result.user_id)
    return frontend_redirect(
        settings,
        service,
        "success",
        username=result.user_info.platform_username or "Connected",
    )
