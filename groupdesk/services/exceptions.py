"""
Domain exceptions for group membership.

Services raise these for business rule violations; the application's
exception handler converts them into `{success: 0, message}` responses
using each class's `status_code`.
"""


class GroupDeskError(Exception):
    """Base exception for all group membership errors."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(GroupDeskError):
    """Raised when input is malformed."""

    status_code = 400


class NotFoundError(GroupDeskError):
    """Raised when a group, member, request or notification does not exist."""

    status_code = 404


class ConflictError(GroupDeskError):
    """Raised when a write would duplicate existing state."""

    status_code = 409


class AlreadyMemberError(ConflictError):
    """Raised when a user tries to join a group they're already in."""
    pass


class DuplicateRequestError(ConflictError):
    """Raised when a user already has a pending join request for the group."""
    pass


class AuthorizationError(GroupDeskError):
    """Raised when the caller lacks the role required for an action."""

    status_code = 403


class BlockedError(AuthorizationError):
    """Raised when a blocked user tries to join or be invited to a group."""
    pass


class PersistenceError(GroupDeskError):
    """Raised when the underlying store fails. Message is safe to show to clients."""

    status_code = 500
