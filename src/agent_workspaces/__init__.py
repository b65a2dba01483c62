"""Isolated per-agent git worktree workspaces."""

from .errors import (
    ReferenceNotFoundError,
    WorkspaceCleanupError,
    WorkspaceCreateError,
    WorkspaceError,
    WorkspaceValidationError,
)
from .utils.validators import sanitize_path_component
from .workspace import (
    GitWorktreeAdapter,
    WorkspaceManager,
    WorkspaceManagerConfig,
    WorkspaceResult,
    WorkspaceStatus,
)

__version__ = "0.1.0"

__all__ = [
    "GitWorktreeAdapter",
    "ReferenceNotFoundError",
    "WorkspaceCleanupError",
    "WorkspaceCreateError",
    "WorkspaceError",
    "WorkspaceManager",
    "WorkspaceManagerConfig",
    "WorkspaceResult",
    "WorkspaceStatus",
    "WorkspaceValidationError",
    "sanitize_path_component",
]
