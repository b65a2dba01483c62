"""Validation utilities for agent identifiers, git references, and path segments."""

import re

from ..errors import WorkspaceValidationError

# Keeps workspace directory names well below filesystem NAME_MAX
MAX_SANITIZED_LENGTH = 100

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9_-]")
_LEADING_DOTS = re.compile(r"^\.+")
_CONTROL_OR_SPACE = re.compile(r"[\x00-\x20\x7f]")


def sanitize_path_component(value: str) -> str:
    """
    Convert an arbitrary identifier into a safe, bounded path segment.

    Leading dots are stripped first so "..hidden" becomes "hidden" rather than
    "__hidden"; every remaining character outside [A-Za-z0-9_-] becomes "_".
    The result is never empty, never "." or "..", and never contains a path
    separator.

    Args:
        value: Raw identifier (untrusted)

    Returns:
        Sanitized path segment of at most MAX_SANITIZED_LENGTH characters
    """
    stripped = _LEADING_DOTS.sub("", value)
    sanitized = _UNSAFE_CHARS.sub("_", stripped)[:MAX_SANITIZED_LENGTH]
    return sanitized or "_"


def validate_agent_id(agent_id: str) -> str:
    """
    Validate a caller-supplied agent identifier.

    Any non-blank string is accepted; unsafe characters are handled by
    sanitize_path_component, not rejected here.

    Raises:
        WorkspaceValidationError: If agent_id is missing or blank
    """
    if not isinstance(agent_id, str) or not agent_id.strip():
        raise WorkspaceValidationError("agent_id cannot be empty")
    return agent_id


def validate_base_ref(base_ref: str) -> str:
    """
    Validate a git reference before it is passed to git.

    Args:
        base_ref: Branch, tag, or commit to check out

    Returns:
        Validated reference

    Raises:
        WorkspaceValidationError: If the reference is empty or malformed
    """
    if not isinstance(base_ref, str) or not base_ref.strip():
        raise WorkspaceValidationError("base_ref cannot be empty")

    # Would be parsed as an option by git
    if base_ref.startswith("-"):
        raise WorkspaceValidationError(f"Invalid base_ref: {base_ref}")

    if _CONTROL_OR_SPACE.search(base_ref):
        raise WorkspaceValidationError(f"base_ref contains invalid characters: {base_ref!r}")

    if len(base_ref) > 255:
        raise WorkspaceValidationError("base_ref too long")

    return base_ref
