from .collaborator import TripCollaborator
from .event import CollaborationEvent
from .invite import TripInvite
from .task import TaskAssignment, TaskComment
from .trip import Trip

__all__ = [
    "CollaborationEvent",
    "TaskAssignment",
    "TaskComment",
    "Trip",
    "TripCollaborator",
    "TripInvite",
]
