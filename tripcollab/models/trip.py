from __future__ import annotations

from datetime import date, datetime
from typing import Any, Optional
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column, DateTime
from sqlmodel import Field, SQLModel

from tripcollab.core.clock import utcnow


class Trip(SQLModel, table=True):
    """Shared trip document edited by every collaborator."""

    __tablename__ = "trips"

    id: UUID = Field(default_factory=uuid4, primary_key=True, index=True)
    owner_id: str = Field(max_length=320, index=True)
    title: str = Field(max_length=255)
    city: Optional[str] = Field(default=None, max_length=120)
    country: Optional[str] = Field(default=None, max_length=120)
    start_date: Optional[date] = Field(default=None)
    end_date: Optional[date] = Field(default=None)
    is_shared: bool = Field(default=False)
    # Bumped by exactly one on every accepted write
    version: int = Field(default=1, nullable=False)
    created_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime, nullable=False))
    last_modified: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime, nullable=False))
    modified_by: str = Field(max_length=320)
    trip_data: dict[str, Any] = Field(
        default_factory=dict, sa_column=Column(JSON, nullable=False)
    )
