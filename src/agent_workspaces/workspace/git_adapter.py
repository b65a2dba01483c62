"""Git worktree adapter: the only component that talks to git.

The lifecycle manager and statistics aggregator depend on the WorktreeBackend
interface, so tests can substitute a scripted backend.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Dict, List, Optional

from ..errors import ReferenceNotFoundError, WorktreeCollisionError
from ..utils.subprocess_utils import SubprocessError, run_git_command

logger = logging.getLogger(__name__)

DEFAULT_GIT_TIMEOUT = 60


@dataclass
class WorktreeEntry:
    """One record from `git worktree list --porcelain`."""
    path: str
    commit: Optional[str] = None
    branch: Optional[str] = None
    detached: bool = False
    locked: bool = False
    prunable: bool = False
    bare: bool = False
    main: bool = False  # first record: the repository's own checkout

    def to_dict(self) -> Dict:
        """Convert to dictionary for JSON serialization."""
        return asdict(self)

    def summary(self) -> Dict:
        """Path/branch/commit view used in statistics; branch omitted when detached."""
        data = {"path": self.path, "commit": self.commit}
        if self.branch:
            data["branch"] = self.branch
        return data


class WorktreeBackend(ABC):
    """Version-control operations the workspace layer needs."""

    @abstractmethod
    def is_repository(self) -> bool:
        """Return True if the bound repository context is usable."""

    @abstractmethod
    def list_worktrees(self) -> List[WorktreeEntry]:
        """Enumerate all worktrees known to the repository, in no particular order."""

    @abstractmethod
    def resolve_ref(self, ref: str) -> Optional[str]:
        """Return the commit a reference points at, or None if it does not resolve."""

    @abstractmethod
    def add_worktree(self, path: Path, base_ref: str) -> WorktreeEntry:
        """Check out base_ref into a new worktree at path."""

    @abstractmethod
    def remove_worktree(self, path: Path, force: bool = False) -> None:
        """Remove the worktree at path."""

    @abstractmethod
    def unlock_worktree(self, path: Path) -> None:
        """Clear an administrative lock on the worktree at path."""

    @abstractmethod
    def prune(self) -> None:
        """Drop bookkeeping for worktrees whose directories are gone."""


def parse_worktree_porcelain(output: str) -> List[WorktreeEntry]:
    """Parse `git worktree list --porcelain` output.

    Records are separated by blank lines; each starts with a `worktree` line.
    """
    entries: List[WorktreeEntry] = []
    current: Optional[WorktreeEntry] = None

    for line in output.splitlines():
        if not line.strip():
            continue
        if line.startswith("worktree "):
            if current is not None:
                entries.append(current)
            current = WorktreeEntry(path=line[len("worktree "):], main=current is None)
        elif current is None:
            continue
        elif line.startswith("HEAD "):
            current.commit = line[len("HEAD "):]
        elif line.startswith("branch "):
            ref = line[len("branch "):]
            current.branch = ref[len("refs/heads/"):] if ref.startswith("refs/heads/") else ref
        elif line == "detached":
            current.detached = True
        elif line == "bare":
            current.bare = True
        elif line == "locked" or line.startswith("locked "):
            current.locked = True
        elif line == "prunable" or line.startswith("prunable "):
            current.prunable = True

    if current is not None:
        entries.append(current)

    return entries


class GitWorktreeAdapter(WorktreeBackend):
    """Manages git worktree operations for one repository."""

    def __init__(self, repo_path: Path, timeout: int = DEFAULT_GIT_TIMEOUT):
        """
        Initialize adapter.

        Args:
            repo_path: Path inside the main repository
            timeout: Per-command timeout in seconds
        """
        self.repo_path = Path(repo_path).expanduser()
        self.timeout = timeout

    def _git(self, args: List[str], cwd: Optional[Path] = None, check: bool = True):
        return run_git_command(
            args,
            cwd=cwd or self.repo_path,
            check=check,
            timeout=self.timeout,
        )

    def is_repository(self) -> bool:
        if not self.repo_path.is_dir():
            return False
        try:
            result = self._git(["rev-parse", "--git-dir"], check=False)
        except (SubprocessError, FileNotFoundError):
            return False
        return result.returncode == 0

    def list_worktrees(self) -> List[WorktreeEntry]:
        """
        List all worktrees.

        Raises:
            SubprocessError: If the repository is unavailable
        """
        result = self._git(["worktree", "list", "--porcelain"])
        return parse_worktree_porcelain(result.stdout)

    def resolve_ref(self, ref: str) -> Optional[str]:
        result = self._git(
            ["rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}"],
            check=False,
        )
        if result.returncode != 0:
            return None
        return result.stdout.strip() or None

    def add_worktree(self, path: Path, base_ref: str) -> WorktreeEntry:
        """
        Create a detached worktree at path from base_ref.

        Detached checkouts let any number of workspaces share one base branch,
        including the branch checked out in the main repository.

        Returns:
            Entry describing the new worktree (resolved commit, branch if any)

        Raises:
            ReferenceNotFoundError: If base_ref cannot be resolved
            WorktreeCollisionError: If something already occupies path
            SubprocessError: For any other git failure
        """
        commit = self.resolve_ref(base_ref)
        if commit is None:
            raise ReferenceNotFoundError(base_ref, context={"repo": str(self.repo_path)})

        try:
            self._git(["worktree", "add", "--detach", str(path), commit])
        except SubprocessError as e:
            if "already exists" in e.stderr:
                raise WorktreeCollisionError(str(path)) from e
            raise

        head = self._git(["rev-parse", "HEAD"], cwd=path).stdout.strip()
        branch_result = self._git(["symbolic-ref", "--quiet", "--short", "HEAD"], cwd=path, check=False)
        branch = branch_result.stdout.strip() if branch_result.returncode == 0 else None

        logger.debug(f"git worktree add {path} at {head[:12]} (from {base_ref})")
        return WorktreeEntry(
            path=str(path),
            commit=head,
            branch=branch or None,
            detached=branch is None,
        )

    def remove_worktree(self, path: Path, force: bool = False) -> None:
        """
        Remove a worktree.

        With force, `--force` is passed twice: once to discard uncommitted
        changes and once to override an administrative lock.
        """
        args = ["worktree", "remove"]
        if force:
            args.extend(["--force", "--force"])
        args.append(str(path))
        self._git(args)

    def unlock_worktree(self, path: Path) -> None:
        self._git(["worktree", "unlock", str(path)])

    def prune(self) -> None:
        self._git(["worktree", "prune"])
