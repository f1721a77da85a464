# social_connect/models/connected_platform.py
import enum
import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import JSON, String, Text, UniqueConstraint
from sqlmodel import Column, Field, SQLModel

from social_connect.models.types import UTCDateTime
from social_connect.utils import utcnow


class Platform(str, enum.Enum):
    YOUTUBE = "YOUTUBE"
    TIKTOK = "TIKTOK"
    INSTAGRAM = "INSTAGRAM"
    X = "X"

    @classmethod
    def from_slug(cls, slug: str) -> "Platform":
        """'youtube' -> Platform.YOUTUBE; raises ValueError for unknown slugs."""
        return cls(slug.upper())

    @property
    def slug(self) -> str:
        return self.value.lower()

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]


_DISPLAY_NAMES = {
    Platform.YOUTUBE: "YouTube",
    Platform.TIKTOK: "TikTok",
    Platform.INSTAGRAM: "Instagram",
    Platform.X: "X",
}


class PlatformConnection(SQLModel, table=True):
    __tablename__ = "platform_connection"
    __table_args__ = (UniqueConstraint("user_id", "platform", name="uq_connection_user_platform"),)

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: str = Field(sa_column=Column(String, index=True, nullable=False))
    platform: Platform = Field(sa_column=Column(String(16), nullable=False))

    # encrypted at rest, see oauth/encryption.py
    access_token_enc: str = Field(sa_column=Column(Text, nullable=False))
    refresh_token_enc: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    token_expires_at: Optional[datetime] = Field(default=None, sa_column=Column(UTCDateTime, nullable=True))

    platform_user_id: Optional[str] = None
    platform_username: Optional[str] = None
    scopes_granted: List[str] = Field(default_factory=list, sa_column=Column(JSON))

    connected_at: datetime = Field(default_factory=utcnow, sa_column=Column(UTCDateTime, nullable=False))
    last_synced: Optional[datetime] = Field(default=None, sa_column=Column(UTCDateTime, nullable=True))
    is_active: bool = Field(default=True)
    updated_at: datetime = Field(default_factory=utcnow, sa_column=Column(UTCDateTime, nullable=False))
