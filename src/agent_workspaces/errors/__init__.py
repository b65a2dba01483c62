"""Workspace error taxonomy and user-facing error translation."""

from .exceptions import (
    ReferenceNotFoundError,
    WorkspaceCleanupError,
    WorkspaceCreateError,
    WorkspaceError,
    WorkspaceShutdownError,
    WorkspaceValidationError,
    WorktreeCollisionError,
)
from .translator import ErrorTranslator, UserFriendlyError

__all__ = [
    "ErrorTranslator",
    "UserFriendlyError",
    "ReferenceNotFoundError",
    "WorkspaceCleanupError",
    "WorkspaceCreateError",
    "WorkspaceError",
    "WorkspaceShutdownError",
    "WorkspaceValidationError",
    "WorktreeCollisionError",
]
