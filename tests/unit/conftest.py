"""Shared test fixtures for unit tests."""

import logging
import shutil
import threading
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from agent_workspaces.errors import ReferenceNotFoundError, WorktreeCollisionError
from agent_workspaces.utils.rich_logging import PACKAGE_LOGGER
from agent_workspaces.utils.subprocess_utils import SubprocessError, run_command
from agent_workspaces.workspace.git_adapter import GitWorktreeAdapter, WorktreeBackend, WorktreeEntry
from agent_workspaces.workspace.worktree_manager import WorkspaceManager, WorkspaceManagerConfig

FAKE_COMMIT = "a" * 40


def _git(repo: Path, *args: str) -> str:
    """Run git in repo and return stdout."""
    return run_command(["git", *args], cwd=repo, check=True).stdout.strip()


@pytest.fixture
def git_repo(tmp_path):
    """A repository on `main` with one commit, plus `feature-test` and `release` branches
    one commit ahead each and an annotated `v1.0` tag on `release`.
    """
    repo = tmp_path / "repo"
    repo.mkdir()
    _git(repo, "init", "--quiet")
    _git(repo, "symbolic-ref", "HEAD", "refs/heads/main")
    _git(repo, "config", "user.email", "test@example.com")
    _git(repo, "config", "user.name", "Test User")
    _git(repo, "config", "commit.gpgsign", "false")
    _git(repo, "config", "tag.gpgsign", "false")

    (repo / "README.md").write_text("# Test repo\n")
    _git(repo, "add", "README.md")
    _git(repo, "commit", "--quiet", "-m", "Initial commit")

    _git(repo, "checkout", "--quiet", "-b", "feature-test")
    (repo / "feature.txt").write_text("feature\n")
    _git(repo, "add", "feature.txt")
    _git(repo, "commit", "--quiet", "-m", "Feature commit")

    _git(repo, "checkout", "--quiet", "-b", "release", "main")
    (repo / "CHANGELOG.md").write_text("1.0\n")
    _git(repo, "add", "CHANGELOG.md")
    _git(repo, "commit", "--quiet", "-m", "Release 1.0")
    _git(repo, "tag", "-a", "v1.0", "-m", "Release 1.0")
    _git(repo, "checkout", "--quiet", "main")
    return repo


@pytest.fixture
def workspaces_dir(tmp_path):
    return tmp_path / "workspaces"


@pytest.fixture
def manager(git_repo, workspaces_dir):
    """WorkspaceManager backed by a real git repository."""
    config = WorkspaceManagerConfig(workspaces_dir=workspaces_dir, vcs=GitWorktreeAdapter(git_repo))
    return WorkspaceManager(config)


@pytest.fixture
def fake_backend():
    return FakeWorktreeBackend()


@pytest.fixture
def fake_manager(fake_backend, workspaces_dir):
    """WorkspaceManager backed by the in-memory FakeWorktreeBackend."""
    config = WorkspaceManagerConfig(workspaces_dir=workspaces_dir, vcs=fake_backend)
    return WorkspaceManager(config)


@pytest.fixture
def restore_package_logger():
    """Undo setup_logging() so later tests can rely on caplog again."""
    yield
    logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in logger.handlers[:]:
        handler.close()
        logger.removeHandler(handler)
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


class FakeWorktreeBackend(WorktreeBackend):
    """In-memory backend that creates real directories but keeps its registry in a dict.

    Tests can hold add_worktree open with `add_gate`, or script failures with
    `add_error` / `remove_error`.
    """

    def __init__(self, refs: Optional[Dict[str, str]] = None):
        self.refs = refs if refs is not None else {"main": FAKE_COMMIT}
        self.worktrees: Dict[str, WorktreeEntry] = {}
        self.repository = True
        self.add_calls: List[str] = []
        self.add_started = threading.Event()
        self.add_gate: Optional[threading.Event] = None
        self.add_error: Optional[Exception] = None
        self.add_leaves_directory = False
        self.remove_error: Optional[Exception] = None
        self.list_error: Optional[Exception] = None
        self.prune_calls = 0
        self._lock = threading.Lock()

    def is_repository(self) -> bool:
        return self.repository

    def list_worktrees(self) -> List[WorktreeEntry]:
        if self.list_error is not None:
            raise self.list_error
        with self._lock:
            return list(self.worktrees.values())

    def resolve_ref(self, ref: str) -> Optional[str]:
        return self.refs.get(ref)

    def add_worktree(self, path: Path, base_ref: str) -> WorktreeEntry:
        with self._lock:
            self.add_calls.append(str(path))
        self.add_started.set()
        if self.add_gate is not None:
            self.add_gate.wait(timeout=10)

        commit = self.resolve_ref(base_ref)
        if commit is None:
            raise ReferenceNotFoundError(base_ref)
        if self.add_error is not None:
            if self.add_leaves_directory:
                path.mkdir(parents=True, exist_ok=True)
                (path / "partial.txt").write_text("half checked out\n")
            raise self.add_error

        with self._lock:
            if str(path) in self.worktrees:
                raise WorktreeCollisionError(str(path))
            path.mkdir(parents=True)
            entry = WorktreeEntry(path=str(path), commit=commit, detached=True)
            self.worktrees[str(path)] = entry
        return entry

    def remove_worktree(self, path: Path, force: bool = False) -> None:
        if self.remove_error is not None:
            raise self.remove_error
        with self._lock:
            entry = self.worktrees.get(str(path))
            if entry is None:
                raise SubprocessError(f"git worktree remove {path}", 128, f"fatal: '{path}' is not a working tree")
            if entry.locked and not force:
                raise SubprocessError(
                    f"git worktree remove {path}", 128, "fatal: cannot remove a locked working tree"
                )
            del self.worktrees[str(path)]
        if path.exists():
            shutil.rmtree(path)

    def unlock_worktree(self, path: Path) -> None:
        with self._lock:
            entry = self.worktrees.get(str(path))
            if entry is None or not entry.locked:
                raise SubprocessError(f"git worktree unlock {path}", 128, "fatal: is not locked")
            entry.locked = False

    def prune(self) -> None:
        with self._lock:
            self.prune_calls += 1
            for key in [k for k, e in self.worktrees.items() if not e.locked and not Path(k).exists()]:
                del self.worktrees[key]


@pytest.fixture
def git():
    """Helper that runs a git command in a repository and returns stdout."""
    return _git
