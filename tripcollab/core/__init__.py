from .clock import utcnow
from .config import settings
from .errors import (
    CollaborationError,
    EmailMismatchError,
    ForbiddenError,
    InvalidInviteTokenError,
    InvalidRoleError,
    InviteAlreadyProcessedError,
    InviteExpiredError,
    NotFoundError,
    StoreUnavailableError,
)
from .security import create_access_token, generate_invite_token, verify_token

__all__ = [
    "settings",
    "utcnow",
    "create_access_token",
    "generate_invite_token",
    "verify_token",
    "CollaborationError",
    "EmailMismatchError",
    "ForbiddenError",
    "InvalidInviteTokenError",
    "InvalidRoleError",
    "InviteAlreadyProcessedError",
    "InviteExpiredError",
    "NotFoundError",
    "StoreUnavailableError",
]
