# social_connect/config.py
import os
from typing import Dict, Optional

from pydantic import BaseModel

from social_connect.models.connected_platform import Platform

# values shipped in .env.example; treated the same as an unset variable
PLACEHOLDER_VALUES = {
    "your_client_id",
    "your_client_secret",
    "your_tiktok_client_key",
    "your_tiktok_client_secret",
    "change_me_now",
}


class PlatformCredentials(BaseModel):
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    redirect_uri: Optional[str] = None

    def is_configured(self) -> bool:
        values = (self.client_id, self.client_secret, self.redirect_uri)
        return all(v and v not in PLACEHOLDER_VALUES for v in values)


class Settings(BaseModel):
    """
    Process configuration. Built once at startup with Settings.from_env()
    and handed to the components that need it.
    """

    environment: str = "development"
    database_url: str = "sqlite+aiosqlite:///./social_connect.db"
    redis_url: str = "redis://localhost:6379/0"
    frontend_url: str = "http://localhost:3000"

    # 64 hex chars (32 bytes), generate with: openssl rand -hex 32
    encryption_key: Optional[str] = None

    secret_key: str = "change_me_now"
    algorithm: str = "HS256"

    oauth_state_backend: str = "memory"  # memory | redis
    oauth_state_ttl_seconds: int = 600
    http_timeout_seconds: float = 30.0
    preserve_connected_at: bool = True

    platforms: Dict[Platform, PlatformCredentials] = {}

    def credentials_for(self, platform: Platform) -> PlatformCredentials:
        return self.platforms.get(platform) or PlatformCredentials()

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            environment=os.getenv("ENVIRONMENT", "development").lower(),
            database_url=os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./social_connect.db"),
            redis_url=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
            frontend_url=os.getenv("FRONTEND_URL", "http://localhost:3000"),
            encryption_key=os.getenv("ENCRYPTION_KEY"),
            secret_key=os.getenv("SECRET_KEY", "change_me_now"),
            algorithm=os.getenv("ALGORITHM", "HS256"),
            oauth_state_backend=os.getenv("OAUTH_STATE_BACKEND", "memory").lower(),
            oauth_state_ttl_seconds=int(os.getenv("OAUTH_STATE_TTL_SECONDS", "600")),
            http_timeout_seconds=float(os.getenv("HTTP_TIMEOUT_SECONDS", "30")),
            preserve_connected_at=os.getenv("PRESERVE_CONNECTED_AT", "true").lower() == "true",
            platforms={
                Platform.YOUTUBE: PlatformCredentials(
                    client_id=os.getenv("YOUTUBE_CLIENT_ID"),
                    client_secret=os.getenv("YOUTUBE_CLIENT_SECRET"),
                    redirect_uri=os.getenv("YOUTUBE_REDIRECT_URI"),
                ),
                Platform.TIKTOK: PlatformCredentials(
                    client_id=os.getenv("TIKTOK_CLIENT_KEY"),
                    client_secret=os.getenv("TIKTOK_CLIENT_SECRET"),
                    redirect_uri=os.getenv("TIKTOK_REDIRECT_URI"),
                ),
                Platform.INSTAGRAM: PlatformCredentials(
                    client_id=os.getenv("INSTAGRAM_CLIENT_ID"),
                    client_secret=os.getenv("INSTAGRAM_CLIENT_SECRET"),
                    redirect_uri=os.getenv("INSTAGRAM_REDIRECT_URI"),
                ),
                Platform.X: PlatformCredentials(
                    client_id=os.getenv("X_CLIENT_ID"),
                    client_secret=os.getenv("X_CLIENT_SECRET"),
                    redirect_uri=os.getenv("X_REDIRECT_URI"),
                ),
            },
        )
