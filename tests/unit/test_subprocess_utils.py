"""Tests for subprocess_utils."""

from pathlib import Path

import pytest

from agent_workspaces.utils.subprocess_utils import (
    SubprocessError,
    check_command_exists,
    run_command,
    run_git_command,
)


def test_subprocess_error_includes_context():
    """Test SubprocessError includes all context."""
    error = SubprocessError(
        cmd="git worktree add",
        returncode=1,
        stderr="error message",
        stdout="output",
        cwd=Path("/tmp"),
        timed_out=True,
    )

    assert error.cmd == "git worktree add"
    assert error.returncode == 1
    assert error.stderr == "error message"
    assert error.stdout == "output"
    assert error.cwd == Path("/tmp")
    assert error.timed_out is True
    assert "/tmp" in str(error)
    assert "timed out" in str(error)


def test_subprocess_error_failure_message():
    error = SubprocessError(cmd="git status", returncode=128, stderr="fatal: not a git repository")
    assert str(error).startswith("Command failed with exit code 128: git status")
    assert "fatal: not a git repository" in str(error)


def test_run_command_success():
    """Test run_command succeeds for valid command."""
    result = run_command(["echo", "hello"], check=True)
    assert result.returncode == 0
    assert "hello" in result.stdout


def test_run_command_failure_raises():
    """Test run_command raises SubprocessError on failure."""
    with pytest.raises(SubprocessError) as exc_info:
        run_command(["false"], check=True)

    assert exc_info.value.returncode != 0
    assert exc_info.value.timed_out is False


def test_run_command_failure_no_check():
    """Test run_command does not raise when check=False."""
    result = run_command(["false"], check=False)
    assert result.returncode != 0


def test_run_command_timeout():
    """Test run_command handles timeout."""
    with pytest.raises(SubprocessError) as exc_info:
        run_command(["sleep", "10"], check=True, timeout=1)

    assert exc_info.value.timed_out is True


def test_run_command_missing_executable():
    with pytest.raises(FileNotFoundError):
        run_command(["nonexistent_command_12345"])


def test_run_command_with_cwd(tmp_path):
    """Test run_command respects cwd parameter."""
    (tmp_path / "test.txt").write_text("content")

    result = run_command(["ls"], cwd=tmp_path, check=True)
    assert "test.txt" in result.stdout


def test_run_git_command_success(git_repo):
    """Test run_git_command succeeds in git repo."""
    result = run_git_command(["rev-parse", "--abbrev-ref", "HEAD"], cwd=git_repo)
    assert result.stdout.strip() == "main"


def test_run_git_command_outside_repository(tmp_path):
    with pytest.raises(SubprocessError) as exc_info:
        run_git_command(["worktree", "list"], cwd=tmp_path)

    assert "not a git repository" in exc_info.value.stderr.lower()
    assert exc_info.value.cwd == tmp_path


def test_run_git_command_flexible_timeout(git_repo):
    """Test run_git_command accepts None timeout."""
    result = run_git_command(["status"], cwd=git_repo, timeout=None)
    assert result.returncode == 0


def test_check_command_exists_true():
    """Test check_command_exists returns True for existing command."""
    assert check_command_exists("echo") is True
    assert check_command_exists("git") is True


def test_check_command_exists_false():
    """Test check_command_exists returns False for non-existing command."""
    assert check_command_exists("nonexistent_command_12345") is False
