"""Health checks for the workspace layer."""

import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from ..utils.subprocess_utils import check_command_exists
from ..workspace.worktree_manager import WorkspaceManager

logger = logging.getLogger(__name__)


class CheckStatus(Enum):
    """Health check status."""
    PASSED = "passed"
    FAILED = "failed"
    WARNING = "warning"
    SKIPPED = "skipped"


@dataclass
class CheckResult:
    """Result of a health check."""
    name: str
    status: CheckStatus
    message: str
    fix_action: Optional[str] = None


class WorkspaceHealthChecker:
    """Validate that workspaces can be created and that on-disk state is consistent."""

    def __init__(self, manager: WorkspaceManager):
        self.manager = manager

    def run_all_checks(self) -> List[CheckResult]:
        """Run every check; git-dependent checks are skipped when git is missing."""
        git_check = self.check_git_available()
        results = [git_check]
        if git_check.status == CheckStatus.PASSED:
            results.append(self.check_repository())
        else:
            results.append(CheckResult(
                name="Repository",
                status=CheckStatus.SKIPPED,
                message="git is not installed",
            ))
        results.append(self.check_workspaces_dir())
        results.append(self.check_drift())
        results.append(self.check_prunable())
        return results

    def is_healthy(self) -> bool:
        return all(r.status != CheckStatus.FAILED for r in self.run_all_checks())

    def check_git_available(self) -> CheckResult:
        if check_command_exists("git"):
            return CheckResult(name="Git", status=CheckStatus.PASSED, message="git found on PATH")
        return CheckResult(
            name="Git",
            status=CheckStatus.FAILED,
            message="git executable not found",
            fix_action="Install git and make sure it is on PATH",
        )

    def check_repository(self) -> CheckResult:
        if self.manager.vcs.is_repository():
            return CheckResult(name="Repository", status=CheckStatus.PASSED, message="Repository is valid")
        return CheckResult(
            name="Repository",
            status=CheckStatus.FAILED,
            message="Configured repository path is not a git repository",
            fix_action="Set workspaces.repo_path (or --repo) to a git checkout",
        )

    def check_workspaces_dir(self) -> CheckResult:
        root = self.manager.workspaces_dir
        if not root.exists():
            # Created on first workspace; only the parent has to be writable
            parent = next((p for p in root.parents if p.exists()), None)
            if parent is not None and os.access(parent, os.W_OK):
                return CheckResult(
                    name="Workspaces Directory",
                    status=CheckStatus.PASSED,
                    message=f"{root} will be created on first use",
                )
            return CheckResult(
                name="Workspaces Directory",
                status=CheckStatus.FAILED,
                message=f"Cannot create {root}",
                fix_action="Point workspaces_dir at a writable location",
            )

        if not root.is_dir():
            return CheckResult(
                name="Workspaces Directory",
                status=CheckStatus.FAILED,
                message=f"{root} exists but is not a directory",
                fix_action="Remove the file or choose another workspaces_dir",
            )

        if not os.access(root, os.W_OK | os.X_OK):
            return CheckResult(
                name="Workspaces Directory",
                status=CheckStatus.FAILED,
                message=f"{root} is not writable",
                fix_action=f"chmod u+rwx {root}",
            )

        return CheckResult(name="Workspaces Directory", status=CheckStatus.PASSED, message=f"{root} is writable")

    def check_drift(self) -> CheckResult:
        """Compare git's worktree registry with the directories actually present."""
        registered = {os.path.basename(w.path) for w in self.manager.stats.managed_worktrees()}
        local = set(self.manager.stats.local_workspace_dirs())

        orphan_dirs = sorted(local - registered)
        missing_dirs = sorted(registered - local)

        if not orphan_dirs and not missing_dirs:
            return CheckResult(
                name="Workspace Drift",
                status=CheckStatus.PASSED,
                message=f"{len(registered)} workspaces, registry and disk agree",
            )

        parts = []
        if orphan_dirs:
            parts.append(f"directories without worktree: {', '.join(orphan_dirs)}")
        if missing_dirs:
            parts.append(f"worktrees without directory: {', '.join(missing_dirs)}")
        return CheckResult(
            name="Workspace Drift",
            status=CheckStatus.WARNING,
            message="; ".join(parts),
            fix_action="agent-workspaces cleanup <agent_id> --force",
        )

    def check_prunable(self) -> CheckResult:
        prunable = [w.path for w in self.manager.stats.managed_worktrees() if w.prunable]
        if not prunable:
            return CheckResult(name="Stale Worktrees", status=CheckStatus.PASSED, message="No prunable worktrees")
        return CheckResult(
            name="Stale Worktrees",
            status=CheckStatus.WARNING,
            message=f"{len(prunable)} prunable worktree(s): {', '.join(prunable)}",
            fix_action="git worktree prune",
        )
