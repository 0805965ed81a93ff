"""Domain errors raised by the collaboration services.

Every error carries the HTTP status the API layer answers with, so routers
never translate them by hand.
"""

from __future__ import annotations

from fastapi import status


class CollaborationError(Exception):
    """Base class for expected, user-facing collaboration failures."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "collaboration_error"
    default_detail: str = "Collaboration request failed"

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class ForbiddenError(CollaborationError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "forbidden"
    default_detail = "Insufficient permissions"


class NotFoundError(CollaborationError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"
    default_detail = "Not found"


class InvalidInviteTokenError(NotFoundError):
    code = "invalid_token"
    default_detail = "Invalid invite token"


class InviteAlreadyProcessedError(CollaborationError):
    status_code = status.HTTP_409_CONFLICT
    code = "already_processed"
    default_detail = "Invite has already been processed"


class InviteExpiredError(CollaborationError):
    status_code = status.HTTP_410_GONE
    code = "expired"
    default_detail = "Invite has expired"


class EmailMismatchError(CollaborationError):
    status_code = status.HTTP_409_CONFLICT
    code = "email_mismatch"
    default_detail = "This invite is not for your email address"


class InvalidRoleError(CollaborationError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "invalid_role"
    default_detail = "Invalid role"


class StoreUnavailableError(CollaborationError):
    """Document store or channel failed; the caller may retry."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "store_unavailable"
    default_detail = "Trip storage is temporarily unavailable"
