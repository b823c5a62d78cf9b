"""Exception hierarchy shared by the backend, services and page loaders."""

from __future__ import annotations


class SpendDashboardError(Exception):
    """Base class for every error raised by this package."""


class AuthenticationError(SpendDashboardError):
    """Raised before any query when no authenticated user context is present."""


class BackendError(SpendDashboardError):
    """A datastore operation failed (connection, constraint, permission)."""


class NotFoundError(BackendError):
    """The requested row does not exist or is not visible to the user."""


class QuickRuleError(BackendError):
    """Creating a rule and re-categorizing its transaction failed as a unit."""


class ValidationError(SpendDashboardError):
    """User input was rejected before any backend call was made."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field
