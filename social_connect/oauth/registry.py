# social_connect/oauth/registry.py
from typing import Dict, Optional, Type

from social_connect.config import Settings
from social_connect.infrastructure.http_client import ExternalAPIClient
from social_connect.infrastructure.platforms_repo import OAuthAttemptRepository, PlatformsRepository
from social_connect.models.connected_platform import Platform
from social_connect.oauth.base import BaseOAuthService
from social_connect.oauth.encryption import TokenCipher
from social_connect.oauth.instagram import InstagramOAuthService
from social_connect.oauth.state_store import OAuthStateStore
from social_connect.oauth.tiktok import TikTokOAuthService
from social_connect.oauth.x import XOAuthService
from social_connect.oauth.youtube import YouTubeOAuthService

SERVICE_CLASSES: Dict[Platform, Type[BaseOAuthService]] = {
    Platform.YOUTUBE: YouTubeOAuthService,
    Platform.TIKTOK: TikTokOAuthService,
    Platform.INSTAGRAM: InstagramOAuthService,
    Platform.X: XOAuthService,
}


def build_services(
    settings: Settings,
    repo: PlatformsRepository,
    cipher: TokenCipher,
    state_store: OAuthStateStore,
    attempts: Optional[OAuthAttemptRepository] = None,
    http: Optional[ExternalAPIClient] = None,
) -> Dict[Platform, BaseOAuthService]:
    """One service per platform, sharing repository, cipher, state store and HTTP client."""
    if http is None:
        http = ExternalAPIClient(timeout=settings.http_timeout_seconds)
    return {
        platform: cls(
            settings.credentials_for(platform),
            repo,
            cipher,
            state_store,
            attempts=attempts,
            http=http,
        )
        for platform, cls in SERVICE_CLASSES.items()
    }
