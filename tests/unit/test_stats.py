"""Tests for workspace statistics and listing."""

import shutil
from pathlib import Path

import pytest

from agent_workspaces.utils.subprocess_utils import SubprocessError
from agent_workspaces.workspace.git_adapter import GitWorktreeAdapter
from agent_workspaces.workspace.stats import directory_size, format_bytes, is_within
from agent_workspaces.workspace.worktree_manager import WorkspaceManager, WorkspaceManagerConfig


class TestFormatBytes:
    """Tests for format_bytes."""

    @pytest.mark.parametrize("size,expected", [
        (0, "0B"),
        (1, "1B"),
        (512, "512B"),
        (1023, "1023B"),
        (1024, "1KB"),
        (1536, "1.5KB"),
        (10 * 1024 * 1024, "10MB"),
        (int(2.25 * 1024 ** 3), "2.2GB"),
        (5 * 1024 ** 4, "5TB"),
        (3 * 1024 ** 5, "3072TB"),
    ])
    def test_formatting(self, size, expected):
        assert format_bytes(size) == expected


class TestHelpers:
    """Tests for directory_size and is_within."""

    def test_directory_size_counts_regular_files(self, tmp_path):
        (tmp_path / "a.txt").write_bytes(b"x" * 100)
        nested = tmp_path / "nested"
        nested.mkdir()
        (nested / "b.txt").write_bytes(b"y" * 50)
        (tmp_path / "link").symlink_to(tmp_path / "a.txt")

        assert directory_size(tmp_path) == 150

    def test_directory_size_missing_root(self, tmp_path):
        assert directory_size(tmp_path / "missing") == 0

    def test_is_within(self, tmp_path):
        assert is_within(tmp_path / "a", tmp_path)
        assert is_within(tmp_path / "a" / "b", tmp_path)
        assert not is_within(tmp_path, tmp_path)
        assert not is_within(tmp_path / ".." / "elsewhere", tmp_path)


class TestGetStats:
    """Tests for WorkspaceManager.get_stats."""

    def test_empty(self, manager, workspaces_dir):
        stats = manager.get_stats()

        assert stats == {
            "active_worktrees": 0,
            "local_workspaces": 0,
            "total_disk_usage": "0B",
            "workspaces_dir": str(workspaces_dir.resolve()),
            "worktrees": [],
        }

    def test_counts_workspaces(self, manager, git_repo):
        manager.create("agent-1")
        manager.create("agent-2", "feature-test")

        stats = manager.get_stats()

        assert stats["active_worktrees"] == 2
        assert stats["local_workspaces"] == 2
        assert stats["total_disk_usage"] != "0B"
        # The main checkout is not a managed workspace
        assert all(Path(w["path"]).resolve() != git_repo.resolve() for w in stats["worktrees"])
        assert all("branch" not in w for w in stats["worktrees"])

    def test_outside_repository(self, tmp_path):
        """No repository means zero worktrees, not an error."""
        plain = tmp_path / "plain"
        plain.mkdir()
        manager = WorkspaceManager(WorkspaceManagerConfig(tmp_path / "ws", GitWorktreeAdapter(plain)))

        stats = manager.get_stats()

        assert stats["active_worktrees"] == 0
        assert stats["local_workspaces"] == 0
        assert stats["total_disk_usage"] == "0B"

    def test_reports_drift_without_reconciling(self, manager, workspaces_dir):
        path = manager.create("agent-1").workspace_path
        manager.create("agent-2")
        shutil.rmtree(path)
        (workspaces_dir / "stray").mkdir()
        (workspaces_dir / "stray" / "file.txt").write_bytes(b"z" * 10)
        (workspaces_dir / "not-a-dir.txt").write_text("ignored")

        stats = manager.get_stats()

        assert stats["active_worktrees"] == 2
        assert stats["local_workspaces"] == 2

    def test_symlinks_are_not_local_workspaces(self, manager, workspaces_dir):
        victim = manager.create("agent-1").workspace_path
        (workspaces_dir / "alias").symlink_to(victim)

        assert manager.get_stats()["local_workspaces"] == 1
        assert manager.list_all()["local_workspace_dirs"] == ["agent-1"]

    def test_registry_failure_reports_zero(self, fake_manager, fake_backend):
        fake_manager.create("agent-1")
        fake_backend.list_error = SubprocessError("git worktree list", 128, "fatal")

        stats = fake_manager.get_stats()

        assert stats["active_worktrees"] == 0
        assert stats["local_workspaces"] == 1


class TestListAll:
    """Tests for WorkspaceManager.list_all."""

    def test_lists_worktrees_and_directories(self, manager):
        manager.create("agent-1")
        manager.create("agent-2")

        data = manager.list_all()

        assert data["summary"]["active_worktrees"] == 2
        assert data["local_workspace_dirs"] == ["agent-1", "agent-2"]
        assert {Path(w["path"]).name for w in data["worktrees"]} == {"agent-1", "agent-2"}
        assert all(w["detached"] is True for w in data["worktrees"])
        assert all(w["locked"] is False for w in data["worktrees"])

    def test_empty(self, manager):
        data = manager.list_all()

        assert data["worktrees"] == []
        assert data["local_workspace_dirs"] == []
        assert data["summary"]["total_disk_usage"] == "0B"
