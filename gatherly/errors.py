"""Exceptions surfaced to API clients."""

from __future__ import annotations


class GatherlyError(Exception):
    """Base error carrying a message safe to show to the user."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotAuthenticatedError(GatherlyError):
    """Raised before a write when no user is signed in."""

    status_code = 401


class RemoteCallError(GatherlyError):
    """Raised when a write or procedure call against the store failed."""

    status_code = 502


class ProfileValidationError(GatherlyError):
    status_code = 422

    def __init__(self, errors: dict[str, str], message: str = "Please fix the highlighted fields."):
        super().__init__(message)
        self.errors = errors


class FeedCancelled(GatherlyError):
    """Raised when the requester went away before the feed was merged."""

    status_code = 499

    def __init__(self, message: str = "Feed request cancelled"):
        super().__init__(message)


class ProcedureError(Exception):
    """Raised inside a stored procedure when a business rule rejects the call."""


class InvalidCursorError(GatherlyError):
    """Raised when a "load more" cursor cannot be decoded."""

    def __init__(self, message: str = "Invalid feed cursor"):
        super().__init__(message)
