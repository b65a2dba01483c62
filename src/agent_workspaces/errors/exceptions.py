"""Error taxonomy for workspace lifecycle operations.

Only these exceptions cross the manager boundary. "exists" and "not_found"
are ordinary results, not errors.
"""

from typing import Any, Dict, Optional


class WorkspaceError(Exception):
    """Base class for workspace errors."""

    code = "WORKSPACE_ERROR"

    def __init__(
        self,
        message: str,
        *,
        context: Optional[Dict[str, Any]] = None,
        retryable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.context = context or {}
        self.retryable = retryable

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error": self.code,
            "message": self.message,
            "retryable": self.retryable,
            "context": self.context,
        }


class WorkspaceValidationError(WorkspaceError, ValueError):
    """Empty or malformed agent_id/base_ref, rejected before any side effect."""

    code = "VALIDATION_ERROR"


class ReferenceNotFoundError(WorkspaceError):
    """Base reference does not resolve in the repository."""

    code = "REFERENCE_NOT_FOUND"

    def __init__(self, ref: str, *, context: Optional[Dict[str, Any]] = None):
        super().__init__(f"Base reference '{ref}' does not exist", context=context)
        self.ref = ref


class WorkspaceCreateError(WorkspaceError):
    """Worktree creation failed for a reason other than reference resolution."""

    code = "WORKSPACE_CREATE_FAILED"


class WorkspaceCleanupError(WorkspaceError):
    """Worktree removal failed and force did not resolve it."""

    code = "WORKSPACE_CLEANUP_FAILED"


class WorkspaceShutdownError(WorkspaceError):
    """Manager is draining and no longer accepts new workspaces."""

    code = "WORKSPACE_MANAGER_SHUTDOWN"


class WorktreeCollisionError(WorkspaceError):
    """Adapter signal: the target path is already taken.

    The manager maps this to an "exists" result, so callers never see it.
    """

    code = "WORKTREE_PATH_COLLISION"

    def __init__(self, path: str):
        super().__init__(f"Worktree path already exists: {path}", context={"path": path})
        self.path = path
