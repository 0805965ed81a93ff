from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

TaskStatus = Literal["incomplete", "complete"]


class ReadinessItemBase(BaseModel):
    """Checklist entry as produced by the checklist generator."""

    id: str = Field(max_length=255)
    title: str
    subtitle: str = ""
    category: str = ""
    status: TaskStatus = "incomplete"
    urgent: bool = False
    is_custom: bool = False


class TaskCommentCreate(BaseModel):
    content: str = Field(min_length=1, max_length=2000)


class TaskCommentRead(BaseModel):
    id: UUID
    task_id: str
    author_id: str
    author_name: str
    content: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ReadinessItem(ReadinessItemBase):
    """Checklist entry with assignment, completion and comments overlaid."""

    assigned_to: Optional[str] = None
    assigned_by: Optional[str] = None
    assigned_at: Optional[datetime] = None
    completed_by: Optional[str] = None
    completed_at: Optional[datetime] = None
    comments: List[TaskCommentRead] = Field(default_factory=list)


class TaskAssignmentRead(BaseModel):
    trip_id: UUID
    task_id: str
    status: TaskStatus
    assigned_to: Optional[str] = None
    assigned_by: Optional[str] = None
    assigned_at: Optional[datetime] = None
    completed_by: Optional[str] = None
    completed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class TaskAssign(BaseModel):
    assigned_to: str = Field(max_length=320)


class BulkAssignItem(BaseModel):
    task_id: str = Field(max_length=255)
    assigned_to: str = Field(max_length=320)


class ReadinessItemsRequest(BaseModel):
    items: List[ReadinessItemBase]


class MemberTaskStats(BaseModel):
    assigned: int = 0
    completed: int = 0
    pending: int = 0


class TaskStats(BaseModel):
    total: int = 0
    assigned: int = 0
    unassigned: int = 0
    completed: int = 0
    overdue: int = 0
    by_member: Dict[str, MemberTaskStats] = Field(default_factory=dict)
