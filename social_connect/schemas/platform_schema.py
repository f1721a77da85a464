# social_connect/schemas/platform_schema.py
from pydantic import BaseModel
from typing import List, Optional
import uuid
from datetime import datetime

from social_connect.models.connected_platform import Platform


class OAuthTokens(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None  # seconds
    token_type: Optional[str] = "Bearer"
    scope: Optional[str] = None

    def __repr__(self) -> str:
        # keep tokens out of logs and tracebacks
        return f"OAuthTokens(expires_in={self.expires_in!r}, token_type={self.token_type!r})"

    __str__ = __repr__


class OAuthUserInfo(BaseModel):
    platform_user_id: str
    platform_username: Optional[str] = None
    email: Optional[str] = None


class AuthorizationRequest(BaseModel):
    auth_url: str
    state: str


class ConnectionRecord(BaseModel):
    """A PlatformConnection with its tokens decrypted. Never serialize this to a client."""

    id: uuid.UUID
    user_id: str
    platform: Platform
    access_token: str
    refresh_token: Optional[str] = None
    token_expires_at: Optional[datetime] = None
    platform_user_id: Optional[str] = None
    platform_username: Optional[str] = None
    scopes_granted: List[str] = []
    connected_at: datetime
    last_synced: Optional[datetime] = None
    is_active: bool

    def __repr__(self) -> str:
        return f"ConnectionRecord(user_id={self.user_id!r}, platform={self.platform!r}, is_active={self.is_active!r})"

    __str__ = __repr__


class ConnectionRead(BaseModel):
    id: uuid.UUID
    platform: Platform
    platform_user_id: Optional[str]
    platform_username: Optional[str]
    scopes_granted: List[str]
    connected_at: datetime
    last_synced: Optional[datetime]
    is_active: bool
    token_expires_at: Optional[datetime]


class SyncStatus(BaseModel):
    platform: Platform
    is_active: bool
    is_expired: bool
    last_synced: Optional[datetime]
    token_expires_at: Optional[datetime]
