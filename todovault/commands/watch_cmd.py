"""Watch command - report task document changes as they happen."""

from __future__ import annotations

from datetime import datetime

from rich.console import Console

from ..signals import ChangeEvent, ChangeSource
from ..store.engine import TaskStore
from ..watcher import run_watch_loop


def format_change(event: ChangeEvent) -> str:
    if event.source is ChangeSource.EXTERNAL:
        return f"~ [external] {event.vault}"
    return f"~ [store] {event.operation or 'write'}"


def run_watch(store: TaskStore, *, debounce_seconds: float | None = None) -> None:
    """
    Watch the vault's tasks file and print a line per change.

    This is a blocking command that runs until interrupted (Ctrl+C).
    """
    console = Console(stderr=True)

    console.print(f"[bold]Watching[/bold] {store.tasks_path}")
    console.print(f"  Debounce: {store.config.watch_debounce if debounce_seconds is None else debounce_seconds}s")
    console.print()
    console.print("[dim]Press Ctrl+C to stop watching[/dim]")
    console.print()

    event_count = 0

    def on_event(event: ChangeEvent) -> None:
        nonlocal event_count
        event_count += 1
        timestamp = datetime.now().strftime("%H:%M:%S")
        console.print(f"[dim]{timestamp}[/dim] {format_change(event)}", highlight=False)

    unsubscribe = store.signal.subscribe(on_event)
    try:
        run_watch_loop(store, debounce_seconds=debounce_seconds)
    finally:
        unsubscribe()

    console.print()
    console.print(f"[bold]Stopped.[/bold] Saw {event_count} changes.")
