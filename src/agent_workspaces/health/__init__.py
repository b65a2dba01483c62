"""Health checks for the workspace layer."""

from .checker import CheckResult, CheckStatus, WorkspaceHealthChecker

__all__ = ["CheckResult", "CheckStatus", "WorkspaceHealthChecker"]
