"""Core configuration for agent workspaces."""

from .config import FrameworkConfig, WorkspacesConfig, clear_config_cache, load_config

__all__ = ["FrameworkConfig", "WorkspacesConfig", "clear_config_cache", "load_config"]
