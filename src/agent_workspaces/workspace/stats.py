"""Aggregate statistics over the workspaces root."""

import logging
import os
import stat
from pathlib import Path
from typing import Dict, List

from ..utils.subprocess_utils import SubprocessError
from .git_adapter import WorktreeBackend, WorktreeEntry

logger = logging.getLogger(__name__)

_SIZE_UNITS = ["B", "KB", "MB", "GB", "TB"]


def format_bytes(num_bytes: int) -> str:
    """Human-readable size with base-1024 units: 0B, 512B, 1.5KB, 12MB."""
    if num_bytes <= 0:
        return "0B"

    value = float(num_bytes)
    unit = 0
    while value >= 1024 and unit < len(_SIZE_UNITS) - 1:
        value /= 1024
        unit += 1

    text = f"{value:.1f}".rstrip("0").rstrip(".")
    return f"{text}{_SIZE_UNITS[unit]}"


def directory_size(root: Path) -> int:
    """Total size of regular files under root. Symlinks are not followed."""
    total = 0
    for dirpath, _dirnames, filenames in os.walk(root, onerror=_log_walk_error):
        for name in filenames:
            try:
                st = os.lstat(os.path.join(dirpath, name))
            except OSError:
                # Vanished between listing and stat (agent still writing)
                continue
            if stat.S_ISREG(st.st_mode):
                total += st.st_size
    return total


def _log_walk_error(error: OSError) -> None:
    logger.debug(f"Skipping unreadable path during size scan: {error}")


def is_within(path: Path, root: Path) -> bool:
    """True if path is strictly inside root (both resolved)."""
    path = path.resolve()
    root = root.resolve()
    return path != root and path.is_relative_to(root)


class WorkspaceStatsAggregator:
    """Reports worktree counts, local directories, and disk usage."""

    def __init__(self, workspaces_dir: Path, vcs: WorktreeBackend):
        self.workspaces_dir = workspaces_dir
        self.vcs = vcs

    def managed_worktrees(self) -> List[WorktreeEntry]:
        """Worktrees registered under workspaces_dir; empty if the repository is unavailable."""
        try:
            entries = self.vcs.list_worktrees()
        except (SubprocessError, OSError) as e:
            logger.warning(f"Could not list worktrees, reporting none: {e}")
            return []
        return [e for e in entries if not e.main and is_within(Path(e.path), self.workspaces_dir)]

    def local_workspace_dirs(self) -> List[str]:
        """Names of directories physically present under workspaces_dir."""
        if not self.workspaces_dir.is_dir():
            return []
        try:
            return sorted(p.name for p in self.workspaces_dir.iterdir() if p.is_dir() and not p.is_symlink())
        except OSError as e:
            logger.warning(f"Could not read {self.workspaces_dir}: {e}")
            return []

    def disk_usage(self) -> int:
        if not self.workspaces_dir.is_dir():
            return 0
        return directory_size(self.workspaces_dir)

    def get_stats(self) -> Dict:
        """
        Collect workspace statistics.

        Drift between active_worktrees and local_workspaces (a directory left
        behind, or a directory deleted under git's feet) is reported as-is.
        """
        worktrees = self.managed_worktrees()
        local_dirs = self.local_workspace_dirs()

        if len(worktrees) != len(local_dirs):
            logger.debug(
                f"Workspace drift: {len(worktrees)} registered worktrees, "
                f"{len(local_dirs)} directories under {self.workspaces_dir}"
            )

        return {
            "active_worktrees": len(worktrees),
            "local_workspaces": len(local_dirs),
            "total_disk_usage": format_bytes(self.disk_usage()),
            "workspaces_dir": str(self.workspaces_dir),
            "worktrees": [w.summary() for w in worktrees],
        }

    def list_all(self) -> Dict:
        """Summary plus full worktree records and local directory names."""
        worktrees = self.managed_worktrees()
        local_dirs = self.local_workspace_dirs()
        return {
            "summary": {
                "active_worktrees": len(worktrees),
                "local_workspaces": len(local_dirs),
                "total_disk_usage": format_bytes(self.disk_usage()),
                "workspaces_dir": str(self.workspaces_dir),
            },
            "worktrees": [w.to_dict() for w in worktrees],
            "local_workspace_dirs": local_dirs,
        }
