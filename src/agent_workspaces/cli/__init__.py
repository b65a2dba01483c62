"""Command line interface for agent workspaces."""
