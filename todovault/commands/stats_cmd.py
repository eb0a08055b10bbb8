"""Stats and archive commands - completion history views."""

from __future__ import annotations

import json

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ..store.engine import TaskStore

_BAR_WIDTH = 30


def run_stats(store: TaskStore, *, include_live: bool = False, output_json: bool = False) -> int:
    """
    Display completion stats recomputed from the archive.

    Returns total completions.
    """
    console = Console()
    stats = store.get_stats(include_live=include_live)

    if output_json:
        payload = stats.to_dict()
        payload["dailyLimit"] = store.get_metadata().daily_limit
        console.print_json(json.dumps(payload))
        return stats.total_completed

    table = Table(title="Completion Stats")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")

    table.add_row("Total completed", str(stats.total_completed))
    table.add_row("Current streak", f"{stats.current_streak} days")
    table.add_row("Longest streak", f"{stats.longest_streak} days")
    table.add_row("Daily limit", str(store.get_metadata().daily_limit))
    console.print(table)

    if stats.completions_by_month:
        peak = max(stats.completions_by_month.values())
        console.print()
        console.print("[bold]By month[/bold]")
        for month, count in sorted(stats.completions_by_month.items(), reverse=True):
            bar = "#" * max(1, round(_BAR_WIDTH * count / peak))
            console.print(f"  {month}  [green]{bar}[/green] {count}", highlight=False)

    return stats.total_completed


def run_archived(store: TaskStore, *, month: str | None = None, output_json: bool = False) -> int:
    """List archived tasks, optionally for one month. Returns the count shown."""
    console = Console()
    entries = store.load_archived(month)

    if output_json:
        console.print_json(json.dumps([e.to_dict() for e in entries]))
        return len(entries)

    if not entries:
        console.print("[dim]Archive is empty.[/dim]" if month is None else f"[dim]Nothing archived in {month}.[/dim]")
        return 0

    for entry in entries:
        console.print(f"[dim]{entry.completed_date}[/dim] {escape(entry.title)}", highlight=False)
        for subtask in entry.subtasks:
            mark = "[x]" if subtask.completed else "[ ]"
            console.print(f"    {mark} {subtask.title}", markup=False, highlight=False)
    return len(entries)


def run_months(store: TaskStore) -> int:
    console = Console()
    months = store.list_archive_months()
    if not months:
        console.print("[dim]Archive is empty.[/dim]")
    for month in months:
        console.print(month, highlight=False)
    return len(months)
