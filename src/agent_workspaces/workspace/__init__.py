"""Workspace management for agent workspaces."""

from .git_adapter import GitWorktreeAdapter, WorktreeBackend, WorktreeEntry
from .stats import WorkspaceStatsAggregator, format_bytes
from .worktree_manager import (
    WorkspaceManager,
    WorkspaceManagerConfig,
    WorkspaceResult,
    WorkspaceStatus,
)

__all__ = [
    "GitWorktreeAdapter",
    "WorktreeBackend",
    "WorktreeEntry",
    "WorkspaceStatsAggregator",
    "format_bytes",
    "WorkspaceManager",
    "WorkspaceManagerConfig",
    "WorkspaceResult",
    "WorkspaceStatus",
]
