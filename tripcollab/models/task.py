from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import Column, DateTime
from sqlmodel import Field, SQLModel

from tripcollab.core.clock import utcnow


class TaskAssignment(SQLModel, table=True):
    """Assignment and completion data layered over a checklist task.

    Keyed by the task's stable id rather than stored on the task itself, so
    regenerating the checklist never loses who owns what.
    """

    __tablename__ = "task_assignments"

    trip_id: UUID = Field(foreign_key="trips.id", primary_key=True, nullable=False)
    task_id: str = Field(primary_key=True, max_length=255, nullable=False)
    status: str = Field(default="incomplete", max_length=16)  # incomplete, complete
    assigned_to: Optional[str] = Field(default=None, max_length=320, index=True)
    assigned_by: Optional[str] = Field(default=None, max_length=320)
    assigned_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime, nullable=True))
    completed_by: Optional[str] = Field(default=None, max_length=320)
    completed_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime, nullable=True))


class TaskComment(SQLModel, table=True):
    """Comment on a checklist task. Append-only."""

    __tablename__ = "task_comments"

    id: UUID = Field(default_factory=uuid4, primary_key=True, index=True)
    trip_id: UUID = Field(foreign_key="trips.id", nullable=False, index=True)
    task_id: str = Field(max_length=255, nullable=False, index=True)
    author_id: str = Field(max_length=320)
    author_name: str = Field(max_length=255)
    content: str = Field(max_length=2000)
    created_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime, nullable=False))
