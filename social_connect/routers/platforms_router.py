# social_connect/routers/platforms_router.py
import structlog
from fastapi import APIRouter, Depends, HTTPException, status

from social_connect.dependencies.auth import get_current_user_id
from social_connect.dependencies.services import get_repo, get_scheduler, get_service
from social_connect.errors import EncryptionError, TokenRefreshFailed
from social_connect.infrastructure.platforms_repo import PlatformsRepository
from social_connect.oauth.base import BaseOAuthService
from social_connect.schemas.platform_schema import ConnectionRead, SyncStatus
from social_connect.services.refresh_scheduler import TokenRefreshScheduler

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/platforms", tags=["platforms"])


def _not_connected(service: BaseOAuthService) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail={"error": "NotConnected", "message": f"{service.platform.slug} is not connected"},
    )


@router.get("/connected")
async def connected_platforms(
    user_id: str = Depends(get_current_user_id),
    repo: PlatformsRepository = Depends(get_repo),
):
    connections = await repo.list_by_user(user_id)
    return {
        "success": True,
        "connections": [ConnectionRead.model_validate(cp, from_attributes=True) for cp in connections],
    }


@router.delete("/{platform}/disconnect")
async def disconnect(
    user_id: str = Depends(get_current_user_id),
    service: BaseOAuthService = Depends(get_service),
    scheduler: TokenRefreshScheduler = Depends(get_scheduler),
):
    await service.disconnect(user_id)
    scheduler.cancel(user_id, service.platform)
    return {"success": True, "message": f"{service.platform.slug} disconnected successfully"}


@router.post("/{platform}/refresh")
async def refresh(
    user_id: str = Depends(get_current_user_id),
    service: BaseOAuthService = Depends(get_service),
    scheduler: TokenRefreshScheduler = Depends(get_scheduler),
):
    try:
        connection = await service.get_connection(user_id)
    except EncryptionError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "RefreshFailed", "message": e.public_message},
        )
    if connection is None or not connection.is_active:
        raise _not_connected(service)

    token = await service.refresh_connection(user_id)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "RefreshFailed", "message": TokenRefreshFailed.public_message},
        )

    # restart the proactive schedule from the fresh token
    scheduler.schedule(service, user_id)
    return {"success": True, "message": "Token refreshed successfully"}


@router.get("/{platform}/sync-status")
async def sync_status(
    user_id: str = Depends(get_current_user_id),
    service: BaseOAuthService = Depends(get_service),
    repo: PlatformsRepository = Depends(get_repo),
):
    cp = await repo.find_connection(user_id, service.platform)
    if cp is None:
        raise _not_connected(service)

    body = SyncStatus(
        platform=service.platform,
        is_active=cp.is_active,
        is_expired=service.is_token_expired(cp.token_expires_at),
        last_synced=cp.last_synced,
        token_expires_at=cp.token_expires_at,
    )
    return {"success": True, **body.model_dump()}
