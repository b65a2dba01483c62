"""Shared utility functions for agent workspaces."""

from .rich_logging import WorkspaceLogFormatter, setup_logging
from .subprocess_utils import (
    SubprocessError,
    check_command_exists,
    run_command,
    run_git_command,
)
from .validators import (
    MAX_SANITIZED_LENGTH,
    sanitize_path_component,
    validate_agent_id,
    validate_base_ref,
)

__all__ = [
    # Logging
    "WorkspaceLogFormatter",
    "setup_logging",
    # Subprocess utilities
    "SubprocessError",
    "check_command_exists",
    "run_command",
    "run_git_command",
    # Validators
    "MAX_SANITIZED_LENGTH",
    "sanitize_path_component",
    "validate_agent_id",
    "validate_base_ref",
]
