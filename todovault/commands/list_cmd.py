"""List command - render live tasks and tag inventories."""

from __future__ import annotations

import json

from rich.console import Console
from rich.table import Table
from rich.text import Text

from ..models import Task, in_today_bucket, priority_sort_key
from ..store.engine import TaskStore


def format_task(task: Task, today: str) -> Text:
    """One-line rich rendering of a task (without subtasks)."""
    text = Text()
    text.append("[x] " if task.completed else "[ ] ", style="green" if task.completed else "bold")
    if task.priority:
        text.append(f"({task.priority}) ", style="bold magenta")
    text.append(task.title, style="dim strike" if task.completed else "")
    for project in task.projects:
        text.append(f" +{project}", style="cyan")
    for context in task.contexts:
        text.append(f" @{context}", style="yellow")
    if task.due_date:
        overdue = not task.completed and task.due_date < today
        text.append(f" due:{task.due_date}", style="red" if overdue else "blue")
    return text


def run_list(
    store: TaskStore,
    *,
    bucket: str | None = None,
    project: str | None = None,
    context: str | None = None,
    priority: str | None = None,
    sort: str = "display",
    output_json: bool = False,
) -> int:
    """
    Print live tasks.

    Returns the number of tasks shown.
    """
    console = Console()
    tasks = store.list_tasks(bucket=bucket, project=project, context=context, priority=priority)
    positions = {t.id: pos for pos, t in enumerate(store.list_tasks(), start=1)}
    if sort == "priority":
        tasks = sorted(tasks, key=priority_sort_key)

    if output_json:
        console.print_json(json.dumps([t.to_dict() for t in tasks]))
        return len(tasks)

    if not tasks:
        console.print("[dim]No tasks.[/dim]")
        return 0

    today = store.today()
    table = Table(show_header=True, header_style="bold", box=None)
    table.add_column("#", justify="right", style="dim")
    table.add_column("id", justify="right")
    table.add_column("Task")
    table.add_column("Bucket", style="dim")

    for task in tasks:
        bucket_name = "today" if in_today_bucket(task, today) else "upcoming"
        table.add_row(str(positions.get(task.id, "")), str(task.id), format_task(task, today), bucket_name)
        for index, subtask in enumerate(task.subtasks, start=1):
            mark = "[x]" if subtask.completed else "[ ]"
            table.add_row("", "", Text(f"    {index}. {mark} {subtask.title}", style="dim"), "")

    console.print(table)
    return len(tasks)


def run_tags(store: TaskStore, kind: str, *, output_json: bool = False) -> int:
    """Print distinct projects, contexts or priorities in use."""
    console = Console()
    values = {
        "projects": store.list_projects,
        "contexts": store.list_contexts,
        "priorities": store.list_priorities,
    }[kind]()

    if output_json:
        console.print_json(json.dumps(values))
    elif not values:
        console.print(f"[dim]No {kind} in use.[/dim]")
    else:
        sigil = {"projects": "+", "contexts": "@"}.get(kind)
        for value in values:
            console.print(f"{sigil}{value}" if sigil else f"({value})", markup=False, highlight=False)
    return len(values)
