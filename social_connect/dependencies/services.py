# social_connect/dependencies/services.py
"""Accessors for the long-lived components built at startup (see main.create_app)."""
from typing import Dict

from fastapi import HTTPException, Request, status

from social_connect.config import Settings
from social_connect.infrastructure.platforms_repo import PlatformsRepository
from social_connect.models.connected_platform import Platform
from social_connect.oauth.base import BaseOAuthService
from social_connect.services.refresh_scheduler import TokenRefreshScheduler


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_services(request: Request) -> Dict[Platform, BaseOAuthService]:
    return request.app.state.services


def get_repo(request: Request) -> PlatformsRepository:
    return request.app.state.repo


def get_scheduler(request: Request) -> TokenRefreshScheduler:
    return request.app.state.scheduler


def resolve_platform(platform: str) -> Platform:
    try:
        return Platform.from_slug(platform)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "InvalidPlatform", "message": "Invalid platform specified"},
        )


def get_service(platform: str, request: Request) -> BaseOAuthService:
    return get_services(request)[resolve_platform(platform)]
