from .event import CollaborationEventRead, EventType
from .invite import (
    InviteAccept,
    InviteCreate,
    InviteRead,
    InviteStatus,
    InviteWithToken,
)
from .permissions import InviteRole, Role, TripPermissions
from .presence import (
    Cursor,
    PresenceData,
    PresenceStatus,
    PresenceUpdate,
    TypingUpdate,
)
from .task import (
    BulkAssignItem,
    MemberTaskStats,
    ReadinessItem,
    ReadinessItemBase,
    ReadinessItemsRequest,
    TaskAssign,
    TaskAssignmentRead,
    TaskCommentCreate,
    TaskCommentRead,
    TaskStats,
    TaskStatus,
)
from .trip import (
    CollaboratorCreate,
    CollaboratorRead,
    TripCreate,
    TripData,
    TripDataUpdate,
    TripDocument,
    TripUpdate,
)

__all__ = [
    "BulkAssignItem",
    "CollaborationEventRead",
    "CollaboratorCreate",
    "CollaboratorRead",
    "Cursor",
    "EventType",
    "InviteAccept",
    "InviteCreate",
    "InviteRead",
    "InviteRole",
    "InviteStatus",
    "InviteWithToken",
    "MemberTaskStats",
    "PresenceData",
    "PresenceStatus",
    "PresenceUpdate",
    "ReadinessItem",
    "ReadinessItemBase",
    "ReadinessItemsRequest",
    "Role",
    "TaskAssign",
    "TaskAssignmentRead",
    "TaskCommentCreate",
    "TaskCommentRead",
    "TaskStats",
    "TaskStatus",
    "TripCreate",
    "TripData",
    "TripDataUpdate",
    "TripDocument",
    "TripPermissions",
    "TripUpdate",
    "TypingUpdate",
]
