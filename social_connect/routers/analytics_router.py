# social_connect/routers/analytics_router.py
from typing import Awaitable

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, status

from social_connect.dependencies.auth import get_current_user_id
from social_connect.dependencies.services import get_services
from social_connect.errors import PlatformAPIError, PlatformNotConnected
from social_connect.models.connected_platform import Platform
from social_connect.oauth.x import XOAuthService
from social_connect.oauth.youtube import YouTubeOAuthService

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/analytics", tags=["analytics"])


def get_youtube(request: Request) -> YouTubeOAuthService:
    return get_services(request)[Platform.YOUTUBE]


def get_x(request: Request) -> XOAuthService:
    return get_services(request)[Platform.X]


async def _platform_call(platform: Platform, call: Awaitable):
    try:
        return await call
    except PlatformNotConnected as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "NotConnected", "message": e.public_message},
        )
    except PlatformAPIError as e:
        logger.warning("analytics_fetch_failed", platform=platform.value)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={"error": "PlatformAPIError", "message": e.public_message},
        )


@router.get("/youtube/stats")
async def youtube_stats(
    user_id: str = Depends(get_current_user_id),
    service: YouTubeOAuthService = Depends(get_youtube),
):
    stats = await _platform_call(Platform.YOUTUBE, service.get_channel_analytics(user_id))
    return {"success": True, "stats": stats}


@router.get("/x/stats")
async def x_stats(
    user_id: str = Depends(get_current_user_id),
    service: XOAuthService = Depends(get_x),
):
    stats = await _platform_call(Platform.X, service.get_user_analytics(user_id))
    return {"success": True, "stats": stats}


@router.get("/x/timeline")
async def x_timeline(
    user_id: str = Depends(get_current_user_id),
    service: XOAuthService = Depends(get_x),
):
    tweets = await _platform_call(Platform.X, service.get_user_timeline(user_id))
    return {"success": True, "tweets": tweets}


@router.get("/x/mentions")
async def x_mentions(
    user_id: str = Depends(get_current_user_id),
    service: XOAuthService = Depends(get_x),
):
    mentions = await _platform_call(Platform.X, service.get_mentions(user_id))
    return {"success": True, "mentions": mentions}
