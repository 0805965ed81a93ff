from __future__ import annotations

from datetime import datetime
from typing import Any, Optional
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column, DateTime
from sqlmodel import Field, SQLModel

from tripcollab.core.clock import utcnow


class CollaborationEvent(SQLModel, table=True):
    """History entry for everything that happened on a trip."""

    __tablename__ = "collaboration_events"

    id: UUID = Field(default_factory=uuid4, primary_key=True, index=True)
    trip_id: UUID = Field(foreign_key="trips.id", nullable=False, index=True)
    type: str = Field(max_length=50, index=True)  # member_joined, trip_updated, task_assigned, ...
    user_id: str = Field(max_length=320)
    user_name: str = Field(max_length=255)
    details: str = Field(default="", max_length=1000)
    payload: Optional[dict[str, Any]] = Field(
        default=None, sa_column=Column(JSON, nullable=True)
    )
    created_at: datetime = Field(
        default_factory=utcnow, sa_column=Column(DateTime, nullable=False, index=True)
    )
