from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

PresenceStatus = Literal["online", "away", "offline"]


class Cursor(BaseModel):
    x: float
    y: float


class PresenceData(BaseModel):
    user_id: str
    name: str = "Unknown User"
    avatar: Optional[str] = None
    status: PresenceStatus = "online"
    last_seen: datetime
    current_page: Optional[str] = None
    is_typing: bool = False
    cursor: Optional[Cursor] = None


class PresenceUpdate(BaseModel):
    """Partial presence; unset fields keep their previous value."""

    name: Optional[str] = Field(default=None, max_length=255)
    avatar: Optional[str] = None
    status: Optional[PresenceStatus] = None
    current_page: Optional[str] = Field(default=None, max_length=500)
    is_typing: Optional[bool] = None
    cursor: Optional[Cursor] = None


class TypingUpdate(BaseModel):
    is_typing: bool
