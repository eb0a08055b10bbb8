"""CLI entrypoint for todovault."""

from __future__ import annotations

import functools
import logging
from datetime import date, timedelta
from pathlib import Path
from typing import Any, Callable

import click
from rich.console import Console
from rich.logging import RichHandler

from . import __version__
from .commands.list_cmd import format_task
from .config import STATE_DIR_NAME, VaultConfig
from .errors import TaskStoreError
from .store.engine import BUCKETS, TaskStore


def _auto_detect_vault(start: Path, tasks_file: str = VaultConfig.tasks_file) -> Path | None:
    """Find a vault (a folder holding tasks.txt or .todovault/) by walking up from `start`."""
    cur = start.resolve()
    for p in (cur, *cur.parents):
        if (p / STATE_DIR_NAME).is_dir() or (p / tasks_file).is_file():
            return p
    return None


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _store(ctx: click.Context) -> TaskStore:
    return ctx.find_root().obj["store"]


def store_command(func: Callable[..., Any]) -> Callable[..., Any]:
    """Surface typed store errors as click errors (exit code 1)."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except TaskStoreError as e:
            raise click.ClickException(str(e)) from e

    return wrapper


def _parse_due(value: str | None, today: str) -> str | None:
    """Accept YYYY-MM-DD, 'today', 'tomorrow' or 'none' (clears)."""
    if value is None:
        return None
    lowered = value.strip().lower()
    if lowered in ("none", "clear", ""):
        return None
    if lowered == "today":
        return today
    if lowered == "tomorrow":
        return (date.fromisoformat(today) + timedelta(days=1)).isoformat()
    return value.strip()


def _echo_task(store: TaskStore, verb: str, task: Any) -> None:
    console = Console()
    console.print(f"[bold]{verb}[/bold] [dim]id:{task.id}[/dim]", format_task(task, store.today()))


@click.group()
@click.version_option(__version__, prog_name="todovault")
@click.option(
    "--vault",
    "-v",
    type=click.Path(exists=False, file_okay=False, dir_okay=True, path_type=Path),
    default=None,
    envvar="TODOVAULT_VAULT",
    help="Path to the vault directory (defaults to auto-detected from cwd, or $TODOVAULT_VAULT)",
)
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    default="warning",
    show_default=True,
    help="Logging verbosity (logs go to stderr)",
)
@click.pass_context
def cli(ctx: click.Context, vault: Path | None, log_level: str) -> None:
    """todovault - plain-text structured task store.

    Tasks live in tasks.txt inside your vault; completed tasks are archived
    to archive.txt. Both files are safe to edit by hand.
    """
    ctx.ensure_object(dict)
    _setup_logging(log_level)

    if vault is None:
        detected = _auto_detect_vault(Path.cwd())
        if detected is None:
            raise click.ClickException("Vault not found. Pass --vault /path/to/vault or run from inside one.")
        vault = detected

    if not vault.exists() or not vault.is_dir():
        raise click.BadParameter(f"Directory '{vault}' does not exist.", param_hint="--vault / -v")

    try:
        ctx.obj["store"] = TaskStore(vault.resolve())
    except TaskStoreError as e:
        raise click.ClickException(str(e)) from e


# -----------------------------------------------------------------------------
# Queries
# -----------------------------------------------------------------------------


@cli.command("list")
@click.option("--bucket", type=click.Choice(BUCKETS), default=None, help="Only tasks due today (or undated) / later")
@click.option("--project", "-P", default=None, help="Filter by +project")
@click.option("--context", "-c", default=None, help="Filter by @context")
@click.option("--priority", "-p", default=None, help="Filter by priority letter")
@click.option(
    "--sort",
    type=click.Choice(["display", "priority"]),
    default="display",
    show_default=True,
    help="Display order or priority/due-date order",
)
@click.option("--json", "output_json", is_flag=True, help="Output results as JSON")
@click.pass_context
@store_command
def list_cmd(
    ctx: click.Context,
    bucket: str | None,
    project: str | None,
    context: str | None,
    priority: str | None,
    sort: str,
    output_json: bool,
) -> None:
    """Show live tasks.

    Examples:

        todovault list --bucket today

        todovault list -P work --sort priority
    """
    from .commands.list_cmd import run_list

    run_list(
        _store(ctx),
        bucket=bucket,
        project=project,
        context=context,
        priority=priority,
        sort=sort,
        output_json=output_json,
    )


@cli.command()
@click.option("--json", "output_json", is_flag=True, help="Output results as JSON")
@click.pass_context
@store_command
def projects(ctx: click.Context, output_json: bool) -> None:
    """List +projects in use."""
    from .commands.list_cmd import run_tags

    run_tags(_store(ctx), "projects", output_json=output_json)


@cli.command()
@click.option("--json", "output_json", is_flag=True, help="Output results as JSON")
@click.pass_context
@store_command
def contexts(ctx: click.Context, output_json: bool) -> None:
    """List @contexts in use."""
    from .commands.list_cmd import run_tags

    run_tags(_store(ctx), "contexts", output_json=output_json)


@cli.command()
@click.option("--json", "output_json", is_flag=True, help="Output results as JSON")
@click.pass_context
@store_command
def priorities(ctx: click.Context, output_json: bool) -> None:
    """List priorities in use."""
    from .commands.list_cmd import run_tags

    run_tags(_store(ctx), "priorities", output_json=output_json)


# -----------------------------------------------------------------------------
# Task mutations
# -----------------------------------------------------------------------------


@cli.command()
@click.argument("title", nargs=-1, required=True)
@click.option("--due", "-d", default=None, help="Due date: YYYY-MM-DD, today or tomorrow")
@click.option("--priority", "-p", default=None, help="Priority letter A-Z")
@click.option("--project", "-P", "projects_", multiple=True, help="+project tag. Repeatable.")
@click.option("--context", "-c", "contexts_", multiple=True, help="@context tag. Repeatable.")
@click.pass_context
@store_command
def add(
    ctx: click.Context,
    title: tuple[str, ...],
    due: str | None,
    priority: str | None,
    projects_: tuple[str, ...],
    contexts_: tuple[str, ...],
) -> None:
    """Create a task.

    Examples:

        todovault add Call the bank --due tomorrow -p A -P finance -c phone
    """
    store = _store(ctx)
    task = store.create(
        " ".join(title),
        due_date=_parse_due(due, store.today()),
        priority=priority,
        projects=projects_,
        contexts=contexts_,
    )
    _echo_task(store, "Added", task)


@cli.command()
@click.argument("task_id", type=int)
@click.pass_context
@store_command
def done(ctx: click.Context, task_id: int) -> None:
    """Toggle a task's completion."""
    store = _store(ctx)
    task = store.toggle(task_id)
    _echo_task(store, "Completed" if task.completed else "Reopened", task)


@cli.command()
@click.argument("task_id", type=int)
@click.pass_context
@store_command
def rm(ctx: click.Context, task_id: int) -> None:
    """Delete a task and its subtasks."""
    _store(ctx).delete(task_id)
    click.echo(f"Deleted id:{task_id}")


@cli.command()
@click.argument("task_id", type=int)
@click.argument("title", nargs=-1, required=True)
@click.pass_context
@store_command
def edit(ctx: click.Context, task_id: int, title: tuple[str, ...]) -> None:
    """Replace a task's title."""
    store = _store(ctx)
    _echo_task(store, "Updated", store.update_title(task_id, " ".join(title)))


@cli.command()
@click.argument("task_id", type=int)
@click.argument("due")
@click.pass_context
@store_command
def due(ctx: click.Context, task_id: int, due: str) -> None:
    """Set a due date (YYYY-MM-DD, today, tomorrow) or clear it with 'none'."""
    store = _store(ctx)
    _echo_task(store, "Updated", store.update_due_date(task_id, _parse_due(due, store.today())))


@cli.command()
@click.argument("task_id", type=int)
@click.option("--priority", "-p", default=None, help="Priority letter A-Z (omit to clear)")
@click.option("--project", "-P", "projects_", multiple=True, help="+project tag. Repeatable.")
@click.option("--context", "-c", "contexts_", multiple=True, help="@context tag. Repeatable.")
@click.pass_context
@store_command
def tag(
    ctx: click.Context,
    task_id: int,
    priority: str | None,
    projects_: tuple[str, ...],
    contexts_: tuple[str, ...],
) -> None:
    """Replace a task's priority, projects and contexts.

    Anything not given is cleared.
    """
    store = _store(ctx)
    task = store.update_metadata(task_id, priority=priority, projects=projects_, contexts=contexts_)
    _echo_task(store, "Updated", task)


@cli.command()
@click.argument("old_position", type=click.IntRange(min=1))
@click.argument("new_position", type=click.IntRange(min=1))
@click.pass_context
@store_command
def move(ctx: click.Context, old_position: int, new_position: int) -> None:
    """Move the task at OLD_POSITION to NEW_POSITION (1-based, as shown by list)."""
    _store(ctx).reorder(old_position - 1, new_position - 1)
    click.echo(f"Moved {old_position} -> {new_position}")


@cli.command()
@click.argument("task_ids", type=int, nargs=-1, required=True)
@click.option("--date", "due", default="today", show_default=True, help="YYYY-MM-DD, today, tomorrow or none")
@click.pass_context
@store_command
def plan(ctx: click.Context, task_ids: tuple[int, ...], due: str) -> None:
    """Set the same due date on several tasks in one write.

    Examples:

        todovault plan 3 5 8

        todovault plan 4 9 --date tomorrow
    """
    store = _store(ctx)
    target = _parse_due(due, store.today())
    count = store.bulk_update_due_dates([(task_id, target) for task_id in task_ids])
    click.echo(f"Planned {count} tasks for {target or 'no date'}")


# -----------------------------------------------------------------------------
# Subtasks
# -----------------------------------------------------------------------------


@cli.group()
def sub() -> None:
    """Manage subtasks (addressed by 1-based position within the parent)."""


@sub.command("add")
@click.argument("parent_id", type=int)
@click.argument("title", nargs=-1, required=True)
@click.pass_context
@store_command
def sub_add(ctx: click.Context, parent_id: int, title: tuple[str, ...]) -> None:
    """Append a subtask."""
    store = _store(ctx)
    _echo_task(store, "Updated", store.add_subtask(parent_id, " ".join(title)))


@sub.command("rm")
@click.argument("parent_id", type=int)
@click.argument("position", type=click.IntRange(min=1))
@click.pass_context
@store_command
def sub_rm(ctx: click.Context, parent_id: int, position: int) -> None:
    """Delete a subtask."""
    store = _store(ctx)
    _echo_task(store, "Updated", store.delete_subtask(parent_id, position - 1))


@sub.command("done")
@click.argument("parent_id", type=int)
@click.argument("position", type=click.IntRange(min=1))
@click.pass_context
@store_command
def sub_done(ctx: click.Context, parent_id: int, position: int) -> None:
    """Toggle a subtask's completion."""
    store = _store(ctx)
    _echo_task(store, "Updated", store.toggle_subtask(parent_id, position - 1))


@sub.command("rename")
@click.argument("parent_id", type=int)
@click.argument("position", type=click.IntRange(min=1))
@click.argument("title", nargs=-1, required=True)
@click.pass_context
@store_command
def sub_rename(ctx: click.Context, parent_id: int, position: int, title: tuple[str, ...]) -> None:
    """Replace a subtask's title."""
    store = _store(ctx)
    _echo_task(store, "Updated", store.update_subtask_title(parent_id, position - 1, " ".join(title)))


# -----------------------------------------------------------------------------
# Archive, stats and settings
# -----------------------------------------------------------------------------


@cli.command()
@click.pass_context
@store_command
def archive(ctx: click.Context) -> None:
    """Move completed tasks to archive.txt."""
    count = _store(ctx).archive_completed()
    click.echo(f"Archived {count} tasks" if count else "Nothing to archive")


@cli.command()
@click.option("--month", default=None, metavar="YYYY-MM", help="Only entries from this month")
@click.option("--json", "output_json", is_flag=True, help="Output results as JSON")
@click.pass_context
@store_command
def archived(ctx: click.Context, month: str | None, output_json: bool) -> None:
    """Show archived tasks."""
    from .commands.stats_cmd import run_archived

    run_archived(_store(ctx), month=month, output_json=output_json)


@cli.command()
@click.pass_context
@store_command
def months(ctx: click.Context) -> None:
    """List months present in the archive, most recent first."""
    from .commands.stats_cmd import run_months

    run_months(_store(ctx))


@cli.command()
@click.option("--include-live", is_flag=True, help="Count completed tasks that are not archived yet")
@click.option("--json", "output_json", is_flag=True, help="Output results as JSON")
@click.pass_context
@store_command
def stats(ctx: click.Context, include_live: bool, output_json: bool) -> None:
    """Show streaks and completion history."""
    from .commands.stats_cmd import run_stats

    run_stats(_store(ctx), include_live=include_live, output_json=output_json)


@cli.command()
@click.argument("value", type=click.IntRange(min=0), required=False)
@click.pass_context
@store_command
def limit(ctx: click.Context, value: int | None) -> None:
    """Show or set the daily planning limit."""
    store = _store(ctx)
    if value is not None:
        store.set_daily_limit(value)
    click.echo(f"Daily limit: {store.get_metadata().daily_limit}")


@cli.command()
@click.option("--debounce", type=float, default=None, help="Seconds to wait for edits to settle (default from config)")
@click.pass_context
@store_command
def watch(ctx: click.Context, debounce: float | None) -> None:
    """Watch tasks.txt and report changes until interrupted (Ctrl+C)."""
    from .commands.watch_cmd import run_watch

    run_watch(_store(ctx), debounce_seconds=debounce)


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
