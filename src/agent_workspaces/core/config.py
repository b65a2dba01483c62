"""Configuration loading and validation."""

import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Literal, Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config/agent-workspaces.yaml")


def _default_workspaces_dir() -> Path:
    """WORKSPACES_DIR if set, else a directory under the system temp dir."""
    env_dir = os.environ.get("WORKSPACES_DIR")
    if env_dir:
        return Path(env_dir)
    return Path(tempfile.gettempdir()) / "agent-workspaces"


class WorkspacesConfig(BaseModel):
    """Where agent workspaces live and which repository backs them."""
    workspaces_dir: Path = Field(default_factory=_default_workspaces_dir, validate_default=True)
    repo_path: Path = Field(default=Path("."), validate_default=True)
    git_timeout: int = 60  # seconds per git command

    @field_validator("workspaces_dir", "repo_path", mode="before")
    @classmethod
    def reject_empty_path(cls, v: Any) -> Any:
        if v is None or (isinstance(v, str) and not v.strip()):
            raise ValueError("path cannot be empty")
        return v

    @field_validator("workspaces_dir", "repo_path")
    @classmethod
    def expand_path(cls, v: Path) -> Path:
        return v.expanduser().resolve()

    @field_validator("git_timeout")
    @classmethod
    def validate_git_timeout(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"git_timeout must be >= 1, got {v}")
        return v

    def to_manager_config(self, vcs=None):
        """Convert to WorkspaceManager's config dataclass.

        This bridges the Pydantic config model with the manager's dataclass.
        A git adapter bound to repo_path is built unless vcs is given.
        """
        from ..workspace.git_adapter import GitWorktreeAdapter
        from ..workspace.worktree_manager import WorkspaceManagerConfig

        if vcs is None:
            vcs = GitWorktreeAdapter(self.repo_path, timeout=self.git_timeout)
        return WorkspaceManagerConfig(workspaces_dir=self.workspaces_dir, vcs=vcs)


class FrameworkConfig(BaseSettings):
    """Main configuration."""
    workspaces: WorkspacesConfig = Field(default_factory=WorkspacesConfig)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_file: Optional[Path] = None

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v

    class Config:
        env_prefix = "AGENT_"
        env_nested_delimiter = "__"
        env_file = ".env"
        extra = "ignore"


# Module-level mtime-based config cache: path -> (parsed_config, file_mtime)
_config_cache: Dict[str, tuple] = {}


def _get_cached_or_load(resolved_path: Path, loader):
    """Return cached config if file mtime unchanged, else reload."""
    key = str(resolved_path)
    try:
        current_mtime = resolved_path.stat().st_mtime
    except FileNotFoundError:
        _config_cache.pop(key, None)
        return None

    cached = _config_cache.get(key)
    if cached is not None:
        cached_result, cached_mtime = cached
        if cached_mtime == current_mtime:
            return cached_result

    result = loader(resolved_path)
    _config_cache[key] = (result, current_mtime)
    return result


def _load_config_from_file(config_path: Path) -> FrameworkConfig:
    """Internal loader for config (no caching)."""
    with open(config_path) as f:
        data = yaml.safe_load(f) or {}

    data = _expand_env_vars(data)
    return FrameworkConfig(**data)


def load_config(config_path: Path = DEFAULT_CONFIG_PATH) -> FrameworkConfig:
    """Load configuration from YAML file.

    Uses mtime-based caching: returns the cached config if the file has not changed.
    """
    if not config_path.exists():
        logger.debug(f"Config file not found: {config_path}. Using default configuration.")
        return FrameworkConfig()

    resolved = config_path.resolve()
    result = _get_cached_or_load(resolved, _load_config_from_file)
    return result if result is not None else FrameworkConfig()


def clear_config_cache() -> None:
    """Clear the module-level config cache. Useful for tests."""
    _config_cache.clear()


def _expand_env_vars(data: Any, _path: str = "") -> Any:
    """Recursively expand ${VAR} references in config data.

    Args:
        data: Config data to process
        _path: Internal tracking for error messages (e.g., "workspaces.repo_path")
    """
    if isinstance(data, dict):
        return {k: _expand_env_vars(v, f"{_path}.{k}" if _path else k) for k, v in data.items()}
    elif isinstance(data, list):
        return [_expand_env_vars(item, f"{_path}[{i}]") for i, item in enumerate(data)]
    elif isinstance(data, str) and data.startswith("${") and data.endswith("}"):
        env_var = data[2:-1]
        value = os.environ.get(env_var)
        if value is None:
            logger.warning(
                f"Environment variable '{env_var}' not set (referenced at config path: {_path or 'root'}). "
                f"The literal string '{data}' will be used, which may cause errors."
            )
            return data
        return value
    return data
