"""Translate git and filesystem errors to user-friendly messages."""

import re
from dataclasses import dataclass
from typing import List, Optional


@dataclass
class UserFriendlyError:
    """User-friendly error representation."""
    original_error: Exception
    title: str
    explanation: str
    actions: List[str]
    show_technical: bool = False

    def summary(self) -> str:
        """One-line message suitable for an exception or a log line."""
        return f"{self.title}: {self.explanation}"


class ErrorTranslator:
    """Translate raw git/filesystem failures into actionable messages."""

    ERROR_PATTERNS = {
        # Stale lock left behind by a crashed git process
        r"index\.lock|\.lock': File exists|Unable to create .*\.lock": {
            "title": "Repository is locked",
            "explanation": "Another git process holds a lock on the repository, or a crashed process left a stale lock file.",
            "actions": [
                "Wait for other git operations to finish and try again",
                "If no git process is running, delete the stale .lock file",
            ],
        },

        r"not a git repository": {
            "title": "Not a git repository",
            "explanation": "The configured repository path is not inside a git repository.",
            "actions": [
                "Check workspaces.repo_path in your config",
                "Run health check: agent-workspaces doctor",
            ],
        },

        r"permission denied|operation not permitted": {
            "title": "Permission denied",
            "explanation": "The workspace directory or repository metadata is not writable by this process.",
            "actions": [
                "Check ownership and permissions of the workspaces directory",
                "Point workspaces_dir at a writable location",
            ],
        },

        r"no space left on device|disk quota exceeded": {
            "title": "Disk full",
            "explanation": "There is not enough disk space to check out a new workspace.",
            "actions": [
                "Clean up unused workspaces: agent-workspaces cleanup <agent_id>",
                "Inspect usage: agent-workspaces stats",
            ],
        },

        r"invalid reference|unknown revision|does not exist|not a valid object name": {
            "title": "Reference not found",
            "explanation": "The requested branch, tag, or commit does not exist in this repository.",
            "actions": [
                "List branches: git branch -a",
                "Fetch from the remote if the branch was pushed recently",
            ],
        },

        r"contains modified or untracked files|is dirty": {
            "title": "Workspace has uncommitted changes",
            "explanation": "The workspace contains work that would be lost by removing it.",
            "actions": [
                "Commit or discard the changes first",
                "Or discard them: agent-workspaces cleanup <agent_id> --force",
            ],
        },

        r"is locked|cannot remove a locked working tree": {
            "title": "Workspace is locked",
            "explanation": "The worktree is administratively locked against removal.",
            "actions": [
                "Unlock it: git worktree unlock <path>",
                "Or remove it anyway: agent-workspaces cleanup <agent_id> --force",
            ],
        },

        r"timed out": {
            "title": "Git command timed out",
            "explanation": "Git did not finish within the configured timeout.",
            "actions": [
                "Increase workspaces.git_timeout in your config",
                "Check for a hung git process holding the repository",
            ],
        },
    }

    def translate(self, error: Exception) -> UserFriendlyError:
        """Convert exception to user-friendly format."""
        full_error = f"{type(error).__name__}: {error}"

        for pattern, translation in self.ERROR_PATTERNS.items():
            if re.search(pattern, full_error, re.IGNORECASE):
                return UserFriendlyError(
                    original_error=error,
                    title=translation["title"],
                    explanation=translation["explanation"],
                    actions=translation["actions"],
                )

        # Fallback for unknown errors
        return UserFriendlyError(
            original_error=error,
            title="Unexpected error",
            explanation=_first_line(error),
            actions=[
                "Run health check: agent-workspaces doctor",
                "Check logs for details",
            ],
            show_technical=True,
        )

    def format_for_cli(self, friendly_error: UserFriendlyError) -> str:
        """Format error for rich console display."""
        output = f"[bold red]{friendly_error.title}[/]\n\n"
        output += f"{friendly_error.explanation}\n\n"

        output += "[bold]How to fix:[/]\n"
        for i, action in enumerate(friendly_error.actions, 1):
            output += f"  {i}. {action}\n"

        if friendly_error.show_technical:
            output += f"\n[dim]Technical details:[/]\n[dim]{friendly_error.original_error}[/]"

        return output


def _first_line(error: Exception) -> str:
    text = str(error).strip()
    return text.splitlines()[0] if text else type(error).__name__
