from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Dict, Iterable, List
from uuid import UUID

from sqlalchemy import delete
from sqlmodel import Session, select

from tripcollab.core.clock import utcnow
from tripcollab.core.errors import ForbiddenError, NotFoundError
from tripcollab.db import atomic
from tripcollab.models import TaskAssignment, TaskComment, Trip
from tripcollab.schemas import (
    BulkAssignItem,
    MemberTaskStats,
    ReadinessItem,
    ReadinessItemBase,
    TaskAssignmentRead,
    TaskCommentCreate,
    TaskCommentRead,
    TaskStats,
)
from tripcollab.services.documents import get_trip_or_404
from tripcollab.services.events import member_name, publish_event, record_event
from tripcollab.services.hub import EventHub, hub as default_hub, topic
from tripcollab.services.permissions import ensure_trip_permission, get_user_trip_role

logger = logging.getLogger(__name__)


class TaskLedger:
    """
    Assignment, completion and comments layered over checklist tasks.

    Rows are keyed by (trip_id, task_id) and overlaid on the checklist at read
    time, so regenerating the checklist never loses who owns what.
    """

    def __init__(self, session: Session, event_hub: EventHub = default_hub):
        self.session = session
        self.hub = event_hub

    async def assign_task(
        self,
        trip_id: UUID | str,
        task_id: str,
        assigned_to: str,
        assigned_by: str,
    ) -> TaskAssignmentRead:
        """(Re-)assign a task, replacing any previous assignee."""
        trip = get_trip_or_404(self.session, trip_id)
        ensure_trip_permission(self.session, trip, assigned_by, "can_manage_tasks")
        self._ensure_member(trip, assigned_to)

        with atomic(self.session):
            assignment, previous = self._assign(trip, task_id, assigned_to, assigned_by)
            event = record_event(
                self.session,
                trip.id,
                "task_assigned",
                assigned_by,
                details=f"Task assigned to {member_name(self.session, trip.id, assigned_to)}",
                payload={"task_id": task_id, "assigned_to": assigned_to, "previous_assignee": previous},
            )

        result = self._to_read(assignment)
        logger.info(f"Task {task_id} on trip {trip.id} assigned to {assigned_to} by {assigned_by}")
        await self._publish(trip.id, "assigned", task_id, assignment=result)
        await publish_event(self.hub, event)
        return result

    async def unassign_task(self, trip_id: UUID | str, task_id: str, acting_user_id: str) -> TaskAssignmentRead:
        """Clear the assignee. Completion data survives."""
        trip = get_trip_or_404(self.session, trip_id)
        ensure_trip_permission(self.session, trip, acting_user_id, "can_manage_tasks")
        assignment = self._get_assignment(trip, task_id)
        previous = assignment.assigned_to

        with atomic(self.session):
            assignment.assigned_to = None
            assignment.assigned_by = None
            assignment.assigned_at = None
            self.session.add(assignment)
            event = record_event(
                self.session,
                trip.id,
                "task_unassigned",
                acting_user_id,
                details="Task unassigned",
                payload={"task_id": task_id, "previous_assignee": previous},
            )

        result = self._to_read(assignment)
        await self._publish(trip.id, "unassigned", task_id, assignment=result)
        await publish_event(self.hub, event)
        return result

    async def complete_task(self, trip_id: UUID | str, task_id: str, completed_by: str) -> TaskAssignmentRead:
        """Mark complete. Allowed for task managers and for the current assignee."""
        trip = get_trip_or_404(self.session, trip_id)
        assignment = self.session.get(TaskAssignment, (trip.id, task_id))
        self._ensure_can_complete(trip, assignment, completed_by)

        with atomic(self.session):
            if assignment is None:
                assignment = TaskAssignment(trip_id=trip.id, task_id=task_id)
            assignment.status = "complete"
            assignment.completed_by = completed_by
            assignment.completed_at = utcnow()
            self.session.add(assignment)
            event = record_event(
                self.session,
                trip.id,
                "task_completed",
                completed_by,
                details="Task completed",
                payload={"task_id": task_id},
            )

        result = self._to_read(assignment)
        logger.info(f"Task {task_id} on trip {trip.id} completed by {completed_by}")
        await self._publish(trip.id, "completed", task_id, assignment=result)
        await publish_event(self.hub, event)
        return result

    async def uncomplete_task(self, trip_id: UUID | str, task_id: str, acting_user_id: str) -> TaskAssignmentRead:
        """Reverse completion. The assignment is left as it is."""
        trip = get_trip_or_404(self.session, trip_id)
        assignment = self._get_assignment(trip, task_id)
        self._ensure_can_complete(trip, assignment, acting_user_id)

        with atomic(self.session):
            assignment.status = "incomplete"
            assignment.completed_by = None
            assignment.completed_at = None
            self.session.add(assignment)
            event = record_event(
                self.session,
                trip.id,
                "task_uncompleted",
                acting_user_id,
                details="Task marked as not done",
                payload={"task_id": task_id},
            )

        result = self._to_read(assignment)
        await self._publish(trip.id, "uncompleted", task_id, assignment=result)
        await publish_event(self.hub, event)
        return result

    async def add_task_comment(
        self,
        trip_id: UUID | str,
        task_id: str,
        author_id: str,
        author_name: str,
        content: str,
    ) -> TaskCommentRead:
        """Append a comment. Any trip member may comment."""
        trip = get_trip_or_404(self.session, trip_id)
        ensure_trip_permission(self.session, trip, author_id)
        content = TaskCommentCreate(content=content).content

        with atomic(self.session):
            comment = TaskComment(
                trip_id=trip.id,
                task_id=task_id,
                author_id=author_id,
                author_name=author_name,
                content=content,
            )
            self.session.add(comment)
            event = record_event(
                self.session,
                trip.id,
                "comment_added",
                author_id,
                author_name,
                details=f"{author_name} commented on a task",
                payload={"task_id": task_id, "comment_id": str(comment.id)},
            )

        self.session.refresh(comment)
        result = TaskCommentRead.model_validate(comment)
        await self._publish(trip.id, "comment_added", task_id, comment=result)
        await publish_event(self.hub, event)
        return result

    def list_comments(self, trip_id: UUID | str, task_id: str) -> List[TaskCommentRead]:
        trip = get_trip_or_404(self.session, trip_id)
        comments = self.session.exec(
            select(TaskComment)
            .where(TaskComment.trip_id == trip.id, TaskComment.task_id == task_id)
            .order_by(TaskComment.created_at.asc())
        ).all()
        return [TaskCommentRead.model_validate(comment) for comment in comments]

    def get_enhanced_readiness_items(
        self,
        trip_id: UUID | str,
        base_items: Iterable[ReadinessItemBase | dict[str, Any]],
    ) -> List[ReadinessItem]:
        """Overlay assignment, completion and comments onto checklist items.

        Returns new objects; ``base_items`` are never modified.
        """
        trip = get_trip_or_404(self.session, trip_id)
        assignments = {
            assignment.task_id: assignment
            for assignment in self.session.exec(
                select(TaskAssignment).where(TaskAssignment.trip_id == trip.id)
            ).all()
        }
        comments: Dict[str, List[TaskCommentRead]] = defaultdict(list)
        for comment in self.session.exec(
            select(TaskComment).where(TaskComment.trip_id == trip.id).order_by(TaskComment.created_at.asc())
        ).all():
            comments[comment.task_id].append(TaskCommentRead.model_validate(comment))

        enhanced = []
        for item in base_items:
            if not isinstance(item, ReadinessItemBase):
                item = ReadinessItemBase.model_validate(item)
            data = item.model_dump()
            assignment = assignments.get(item.id)
            if assignment is not None:
                data.update(
                    status=assignment.status,
                    assigned_to=assignment.assigned_to,
                    assigned_by=assignment.assigned_by,
                    assigned_at=assignment.assigned_at,
                    completed_by=assignment.completed_by,
                    completed_at=assignment.completed_at,
                )
            data["comments"] = list(comments.get(item.id, []))
            enhanced.append(ReadinessItem.model_validate(data))
        return enhanced

    def get_task_stats(
        self,
        trip_id: UUID | str,
        base_items: Iterable[ReadinessItemBase | dict[str, Any]],
    ) -> TaskStats:
        """Counts derived from the enhanced items. Overdue means urgent, assigned and not done."""
        stats = TaskStats()
        for item in self.get_enhanced_readiness_items(trip_id, base_items):
            stats.total += 1
            done = item.status == "complete"
            if done:
                stats.completed += 1

            if not item.assigned_to:
                stats.unassigned += 1
                continue

            stats.assigned += 1
            member = stats.by_member.setdefault(item.assigned_to, MemberTaskStats())
            member.assigned += 1
            if done:
                member.completed += 1
            else:
                member.pending += 1
                if item.urgent:
                    stats.overdue += 1
        return stats

    def get_tasks_for_member(self, trip_id: UUID | str, member_id: str) -> List[TaskAssignmentRead]:
        trip = get_trip_or_404(self.session, trip_id)
        assignments = self.session.exec(
            select(TaskAssignment)
            .where(TaskAssignment.trip_id == trip.id, TaskAssignment.assigned_to == member_id)
            .order_by(TaskAssignment.assigned_at.asc())
        ).all()
        return [self._to_read(assignment) for assignment in assignments]

    async def bulk_assign_tasks(
        self,
        trip_id: UUID | str,
        assignments: Iterable[BulkAssignItem | dict[str, Any]],
        assigned_by: str,
    ) -> List[TaskAssignmentRead]:
        """Assign several tasks in one commit."""
        trip = get_trip_or_404(self.session, trip_id)
        ensure_trip_permission(self.session, trip, assigned_by, "can_manage_tasks")
        items = [
            item if isinstance(item, BulkAssignItem) else BulkAssignItem.model_validate(item)
            for item in assignments
        ]
        # last entry wins for a repeated task id
        items = list({item.task_id: item for item in items}.values())
        for item in items:
            self._ensure_member(trip, item.assigned_to)

        rows = []
        events = []
        with atomic(self.session):
            for item in items:
                assignment, previous = self._assign(trip, item.task_id, item.assigned_to, assigned_by)
                rows.append(assignment)
                events.append(
                    record_event(
                        self.session,
                        trip.id,
                        "task_assigned",
                        assigned_by,
                        details=f"Task assigned to {member_name(self.session, trip.id, item.assigned_to)}",
                        payload={
                            "task_id": item.task_id,
                            "assigned_to": item.assigned_to,
                            "previous_assignee": previous,
                            "bulk": True,
                        },
                    )
                )

        results = [self._to_read(row) for row in rows]
        logger.info(f"Bulk assigned {len(results)} tasks on trip {trip.id} by {assigned_by}")
        for result in results:
            await self._publish(trip.id, "assigned", result.task_id, assignment=result)
        for event in events:
            await publish_event(self.hub, event)
        return results

    async def clear_trip_assignments(self, trip_id: UUID | str, acting_user_id: str) -> int:
        """Owner-only reset of every assignment on the trip. Comments are kept."""
        trip = get_trip_or_404(self.session, trip_id)
        if trip.owner_id != acting_user_id:
            raise ForbiddenError("Only trip owner can clear task assignments")

        with atomic(self.session):
            result = self.session.exec(delete(TaskAssignment).where(TaskAssignment.trip_id == trip.id))
            cleared = result.rowcount or 0
            event = record_event(
                self.session,
                trip.id,
                "task_unassigned",
                acting_user_id,
                details="All task assignments cleared",
                payload={"cleared": cleared},
            )

        logger.info(f"Cleared {cleared} task assignments on trip {trip.id}")
        await self._publish(trip.id, "cleared", None)
        await publish_event(self.hub, event)
        return cleared

    def _assign(
        self,
        trip: Trip,
        task_id: str,
        assigned_to: str,
        assigned_by: str,
    ) -> tuple[TaskAssignment, str | None]:
        assignment = self.session.get(TaskAssignment, (trip.id, task_id))
        if assignment is None:
            assignment = TaskAssignment(trip_id=trip.id, task_id=task_id, status="incomplete")
        previous = assignment.assigned_to
        assignment.assigned_to = assigned_to
        assignment.assigned_by = assigned_by
        assignment.assigned_at = utcnow()
        self.session.add(assignment)
        return assignment, previous

    def _get_assignment(self, trip: Trip, task_id: str) -> TaskAssignment:
        assignment = self.session.get(TaskAssignment, (trip.id, task_id))
        if assignment is None:
            raise NotFoundError("Task assignment not found")
        return assignment

    def _ensure_member(self, trip: Trip, user_id: str) -> None:
        if get_user_trip_role(self.session, trip, user_id) is None:
            raise NotFoundError(f"{user_id} is not a member of this trip")

    def _ensure_can_complete(self, trip: Trip, assignment: TaskAssignment | None, user_id: str) -> None:
        permissions = ensure_trip_permission(self.session, trip, user_id)
        is_assignee = assignment is not None and assignment.assigned_to == user_id
        if not permissions.can_manage_tasks and not is_assignee:
            raise ForbiddenError("Only the assignee or a task manager can change completion")

    @staticmethod
    def _to_read(assignment: TaskAssignment) -> TaskAssignmentRead:
        return TaskAssignmentRead.model_validate(assignment)

    async def _publish(self, trip_id: UUID, action: str, task_id: str | None, **data) -> None:
        message = {"action": action, "task_id": task_id}
        for key, value in data.items():
            message[key] = value.model_dump(mode="json")
        await self.hub.publish(topic("tasks", trip_id), message)
