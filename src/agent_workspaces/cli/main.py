"""Main CLI for agent workspaces."""

import json
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from ..core.config import DEFAULT_CONFIG_PATH, WorkspacesConfig, load_config
from ..errors import ErrorTranslator, ReferenceNotFoundError, WorkspaceError
from ..health.checker import CheckStatus, WorkspaceHealthChecker
from ..utils.rich_logging import setup_logging
from ..workspace.worktree_manager import DEFAULT_BASE_REF, WorkspaceManager, WorkspaceStatus

console = Console()

STATUS_STYLES = {
    WorkspaceStatus.CREATED: "green",
    WorkspaceStatus.CLEANED: "green",
    WorkspaceStatus.EXISTS: "yellow",
    WorkspaceStatus.NOT_FOUND: "yellow",
}


@click.group()
@click.option("--config", "-c", "config_path", type=click.Path(path_type=Path),
              default=DEFAULT_CONFIG_PATH, show_default=True, help="Config file")
@click.option("--repo", "-r", type=click.Path(path_type=Path), help="Repository to create worktrees from")
@click.option("--workspaces-dir", "-d", type=click.Path(path_type=Path), help="Root directory for workspaces")
@click.option("--log-level", "-l", type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
              help="Logging level")
@click.pass_context
def cli(ctx, config_path, repo, workspaces_dir, log_level):
    """Agent Workspaces - isolated git worktrees for concurrent agents."""
    ctx.ensure_object(dict)
    config = load_config(config_path)

    overrides = {}
    if repo is not None:
        overrides["repo_path"] = repo
    if workspaces_dir is not None:
        overrides["workspaces_dir"] = workspaces_dir
    if overrides:
        merged = config.workspaces.model_dump()
        merged.update(overrides)
        config = config.model_copy(update={"workspaces": WorkspacesConfig(**merged)})

    setup_logging(log_level or config.log_level, log_file=config.log_file)
    ctx.obj["config"] = config


def _manager(ctx) -> WorkspaceManager:
    if "manager" not in ctx.obj:
        ctx.obj["manager"] = WorkspaceManager(ctx.obj["config"].workspaces.to_manager_config())
    return ctx.obj["manager"]


def _fail(ctx, error: WorkspaceError) -> None:
    """Print an actionable message and exit non-zero."""
    if isinstance(error, ReferenceNotFoundError):
        console.print(f"[bold red]Reference not found:[/] {error.ref}")
    elif error.__cause__ is not None:
        translator = ErrorTranslator()
        console.print(translator.format_for_cli(translator.translate(error.__cause__)))
    else:
        console.print(f"[bold red]{error.message}[/]")
    ctx.exit(1)


@cli.command()
@click.argument("agent_id")
@click.option("--base-ref", "-b", default=DEFAULT_BASE_REF, show_default=True,
              help="Branch, tag, or commit to check out")
@click.option("--json", "as_json", is_flag=True, help="Print the result as JSON")
@click.pass_context
def create(ctx, agent_id, base_ref, as_json):
    """Create an isolated workspace for AGENT_ID."""
    try:
        result = _manager(ctx).create(agent_id, base_ref)
    except WorkspaceError as e:
        _fail(ctx, e)
        return

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    style = STATUS_STYLES[result.status]
    console.print(f"[{style}]{result.status.value}[/] {result.workspace_path}")
    if result.commit:
        console.print(f"  [dim]{result.base_ref} @ {result.commit[:12]}[/]")


@cli.command()
@click.argument("agent_id")
@click.option("--force", "-f", is_flag=True, help="Remove even with uncommitted changes or a lock")
@click.option("--json", "as_json", is_flag=True, help="Print the result as JSON")
@click.pass_context
def cleanup(ctx, agent_id, force, as_json):
    """Remove the workspace of AGENT_ID."""
    try:
        result = _manager(ctx).cleanup(agent_id, force=force)
    except WorkspaceError as e:
        _fail(ctx, e)
        return

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    style = STATUS_STYLES[result.status]
    console.print(f"[{style}]{result.status.value}[/] {result.workspace_path}")


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Print statistics as JSON")
@click.pass_context
def stats(ctx, as_json):
    """Show workspace counts and disk usage."""
    data = _manager(ctx).get_stats()

    if as_json:
        click.echo(json.dumps(data, indent=2))
        return

    console.print(f"[bold]Workspaces in {data['workspaces_dir']}[/]")
    console.print(f"  Active worktrees: {data['active_worktrees']}")
    console.print(f"  Local directories: {data['local_workspaces']}")
    console.print(f"  Disk usage: {data['total_disk_usage']}")
    if data["active_worktrees"] != data["local_workspaces"]:
        console.print("[yellow]  Registry and disk disagree; run 'agent-workspaces doctor'[/]")


@cli.command("list")
@click.option("--json", "as_json", is_flag=True, help="Print the listing as JSON")
@click.pass_context
def list_workspaces(ctx, as_json):
    """List all managed worktrees."""
    data = _manager(ctx).list_all()

    if as_json:
        click.echo(json.dumps(data, indent=2))
        return

    table = Table()
    table.add_column("Path")
    table.add_column("Branch")
    table.add_column("Commit")
    table.add_column("Flags")

    for worktree in data["worktrees"]:
        flags = [name for name in ("locked", "prunable") if worktree.get(name)]
        table.add_row(
            worktree["path"],
            worktree.get("branch") or "[dim](detached)[/]",
            (worktree.get("commit") or "")[:12],
            ", ".join(flags),
        )

    console.print(table)
    summary = data["summary"]
    console.print(
        f"[dim]{summary['active_worktrees']} worktrees, "
        f"{summary['local_workspaces']} directories, {summary['total_disk_usage']}[/]"
    )


@cli.command()
@click.pass_context
def doctor(ctx):
    """Check git, the repository, and the workspaces directory."""
    results = WorkspaceHealthChecker(_manager(ctx)).run_all_checks()

    icons = {
        CheckStatus.PASSED: "[green]✓[/]",
        CheckStatus.WARNING: "[yellow]![/]",
        CheckStatus.FAILED: "[red]✗[/]",
        CheckStatus.SKIPPED: "[dim]-[/]",
    }
    for result in results:
        console.print(f"{icons[result.status]} [bold]{result.name}[/]: {result.message}")
        if result.fix_action and result.status != CheckStatus.PASSED:
            console.print(f"    [dim]Fix: {result.fix_action}[/]")

    if any(r.status == CheckStatus.FAILED for r in results):
        ctx.exit(1)


def main():
    cli(obj={})


if __name__ == "__main__":
    main()
