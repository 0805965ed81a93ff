from __future__ import annotations

from typing import List
from uuid import UUID

from fastapi import APIRouter, status

from tripcollab.api.deps import CollaboratorRegistryDep, CurrentUserDep, TaskLedgerDep
from tripcollab.core.errors import ForbiddenError
from tripcollab.schemas import (
    BulkAssignItem,
    ReadinessItem,
    ReadinessItemsRequest,
    TaskAssign,
    TaskAssignmentRead,
    TaskCommentCreate,
    TaskCommentRead,
    TaskStats,
)

router = APIRouter()


def _require_member(registry, trip_id: UUID, user_id: str) -> None:
    if registry.get_permissions(trip_id, user_id) is None:
        raise ForbiddenError("Access to trip denied")


@router.post("/items", response_model=List[ReadinessItem])
def get_enhanced_items(
    trip_id: UUID,
    payload: ReadinessItemsRequest,
    tasks: TaskLedgerDep,
    registry: CollaboratorRegistryDep,
    current_user: CurrentUserDep,
) -> List[ReadinessItem]:
    """Overlay assignments and comments onto the checklist supplied by the client."""
    _require_member(registry, trip_id, current_user.id)
    return tasks.get_enhanced_readiness_items(trip_id, payload.items)


@router.post("/stats", response_model=TaskStats)
def get_task_stats(
    trip_id: UUID,
    payload: ReadinessItemsRequest,
    tasks: TaskLedgerDep,
    registry: CollaboratorRegistryDep,
    current_user: CurrentUserDep,
) -> TaskStats:
    _require_member(registry, trip_id, current_user.id)
    return tasks.get_task_stats(trip_id, payload.items)


@router.get("/members/{member_id}", response_model=List[TaskAssignmentRead])
def get_member_tasks(
    trip_id: UUID,
    member_id: str,
    tasks: TaskLedgerDep,
    registry: CollaboratorRegistryDep,
    current_user: CurrentUserDep,
) -> List[TaskAssignmentRead]:
    _require_member(registry, trip_id, current_user.id)
    return tasks.get_tasks_for_member(trip_id, member_id)


@router.post("/bulk-assign", response_model=List[TaskAssignmentRead])
async def bulk_assign(
    trip_id: UUID,
    payload: List[BulkAssignItem],
    tasks: TaskLedgerDep,
    current_user: CurrentUserDep,
) -> List[TaskAssignmentRead]:
    return await tasks.bulk_assign_tasks(trip_id, payload, current_user.id)


@router.delete("/assignments")
async def clear_assignments(
    trip_id: UUID,
    tasks: TaskLedgerDep,
    current_user: CurrentUserDep,
) -> dict[str, int]:
    """Drop every assignment on the trip (owner only)."""
    return {"cleared": await tasks.clear_trip_assignments(trip_id, current_user.id)}


@router.put("/{task_id}/assignment", response_model=TaskAssignmentRead)
async def assign_task(
    trip_id: UUID,
    task_id: str,
    payload: TaskAssign,
    tasks: TaskLedgerDep,
    current_user: CurrentUserDep,
) -> TaskAssignmentRead:
    return await tasks.assign_task(trip_id, task_id, payload.assigned_to, current_user.id)


@router.delete("/{task_id}/assignment", response_model=TaskAssignmentRead)
async def unassign_task(
    trip_id: UUID,
    task_id: str,
    tasks: TaskLedgerDep,
    current_user: CurrentUserDep,
) -> TaskAssignmentRead:
    return await tasks.unassign_task(trip_id, task_id, current_user.id)


@router.post("/{task_id}/complete", response_model=TaskAssignmentRead)
async def complete_task(
    trip_id: UUID,
    task_id: str,
    tasks: TaskLedgerDep,
    current_user: CurrentUserDep,
) -> TaskAssignmentRead:
    return await tasks.complete_task(trip_id, task_id, current_user.id)


@router.delete("/{task_id}/complete", response_model=TaskAssignmentRead)
async def uncomplete_task(
    trip_id: UUID,
    task_id: str,
    tasks: TaskLedgerDep,
    current_user: CurrentUserDep,
) -> TaskAssignmentRead:
    return await tasks.uncomplete_task(trip_id, task_id, current_user.id)


@router.get("/{task_id}/comments", response_model=List[TaskCommentRead])
def list_task_comments(
    trip_id: UUID,
    task_id: str,
    tasks: TaskLedgerDep,
    registry: CollaboratorRegistryDep,
    current_user: CurrentUserDep,
) -> List[TaskCommentRead]:
    _require_member(registry, trip_id, current_user.id)
    return tasks.list_comments(trip_id, task_id)


@router.post(
    "/{task_id}/comments",
    response_model=TaskCommentRead,
    status_code=status.HTTP_201_CREATED,
)
async def add_task_comment(
    trip_id: UUID,
    task_id: str,
    payload: TaskCommentCreate,
    tasks: TaskLedgerDep,
    current_user: CurrentUserDep,
) -> TaskCommentRead:
    return await tasks.add_task_comment(
        trip_id,
        task_id,
        author_id=current_user.id,
        author_name=current_user.name,
        content=payload.content,
    )
