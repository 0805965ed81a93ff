from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict

Role = Literal["owner", "collaborator", "viewer"]
InviteRole = Literal["collaborator", "viewer"]


class TripPermissions(BaseModel):
    """Capabilities derived from a role. Never edited on their own."""

    model_config = ConfigDict(frozen=True)

    can_edit: bool = False
    can_invite: bool = False
    can_delete: bool = False
    can_manage_tasks: bool = False
    can_book_activities: bool = False
    can_view_budget: bool = False
    can_manage_family: bool = False
