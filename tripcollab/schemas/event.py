from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict

EventType = Literal[
    "trip_created",
    "trip_updated",
    "invite_sent",
    "invite_accepted",
    "invite_declined",
    "member_joined",
    "member_removed",
    "task_assigned",
    "task_unassigned",
    "task_completed",
    "task_uncompleted",
    "comment_added",
]


class CollaborationEventRead(BaseModel):
    id: UUID
    trip_id: UUID
    type: EventType
    user_id: str
    user_name: str
    details: str
    payload: Optional[Dict[str, Any]] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
