# social_connect/models/oauth_attempt.py
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import String
from sqlmodel import Column, Field, SQLModel

from social_connect.models.types import UTCDateTime
from social_connect.utils import utcnow


class OAuthAttempt(SQLModel, table=True):
    __tablename__ = "oauth_attempt"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: Optional[str] = Field(default=None, sa_column=Column(String, index=True, nullable=True))
    platform: str = Field(sa_column=Column(String(16), nullable=False))
    success: bool
    error: Optional[str] = None
    ip_address: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow, sa_column=Column(UTCDateTime, nullable=False))
