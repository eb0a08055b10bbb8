"""Data models for vault tasks."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Iterable

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
PRIORITY_PATTERN = re.compile(r"^[A-Z]$")

DEFAULT_DAILY_LIMIT = 5


def is_valid_date(value: str | None) -> bool:
    """True if `value` is a real calendar date in fixed-width YYYY-MM-DD form."""
    if not value or not DATE_PATTERN.match(value):
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


def normalize_tags(tags: Iterable[str]) -> list[str]:
    """Collapse duplicate tags, keeping first-seen order."""
    seen: set[str] = set()
    result: list[str] = []
    for tag in tags:
        if tag not in seen:
            seen.add(tag)
            result.append(tag)
    return result


@dataclass
class Subtask:
    """A checklist item inside a task. Addressed by position, never by id."""

    title: str
    completed: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"title": self.title, "completed": self.completed}


@dataclass
class Task:
    """A live task from tasks.txt."""

    id: int
    title: str
    completed: bool = False
    due_date: str | None = None  # YYYY-MM-DD, None means always due
    priority: str | None = None  # single letter A-Z, A is highest
    projects: list[str] = field(default_factory=list)  # +project tags
    contexts: list[str] = field(default_factory=list)  # @context tags
    created_date: str | None = None  # set once at creation
    subtasks: list[Subtask] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the camelCase shape the UI layer consumes."""
        return {
            "id": self.id,
            "title": self.title,
            "completed": self.completed,
            "dueDate": self.due_date,
            "priority": self.priority,
            "projects": list(self.projects),
            "contexts": list(self.contexts),
            "createdDate": self.created_date,
            "subtasks": [s.to_dict() for s in self.subtasks],
        }


@dataclass
class ArchivedTask:
    """A completed task moved to archive.txt."""

    title: str
    completed_date: str  # date of archival
    subtasks: list[Subtask] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "completedDate": self.completed_date,
            "subtasks": [s.to_dict() for s in self.subtasks],
        }


@dataclass
class TodoStats:
    """Completion statistics. Always derived from the archive, never stored."""

    total_completed: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    completions_by_month: dict[str, int] = field(default_factory=dict)
    completions_by_day: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalCompleted": self.total_completed,
            "currentStreak": self.current_streak,
            "longestStreak": self.longest_streak,
            "completionsByMonth": dict(self.completions_by_month),
            "completionsByDay": dict(self.completions_by_day),
        }


@dataclass
class TodoMetadata:
    """Vault-level settings plus the persisted id counter."""

    daily_limit: int = DEFAULT_DAILY_LIMIT
    next_id: int = 1

    def to_dict(self) -> dict[str, Any]:
        return {"dailyLimit": self.daily_limit, "nextId": self.next_id}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TodoMetadata":
        """Create from dictionary, falling back to defaults for bad values."""
        daily_limit = data.get("dailyLimit", DEFAULT_DAILY_LIMIT)
        next_id = data.get("nextId", 1)
        if not isinstance(daily_limit, int) or daily_limit < 0:
            daily_limit = DEFAULT_DAILY_LIMIT
        if not isinstance(next_id, int) or next_id < 1:
            next_id = 1
        return cls(daily_limit=daily_limit, next_id=next_id)


# -----------------------------------------------------------------------------
# Buckets and ordering
# -----------------------------------------------------------------------------


def in_today_bucket(task: Task, today: str) -> bool:
    """Undated tasks are always due; fixed-width ISO dates compare as strings."""
    return task.due_date is None or task.due_date <= today


def in_upcoming_bucket(task: Task, today: str) -> bool:
    return task.due_date is not None and task.due_date > today


def priority_sort_key(task: Task) -> tuple[int, str, int, str, int]:
    """Sort key: priority A..Z then unprioritised, then due date (undated last), then id."""
    return (
        0 if task.priority else 1,
        task.priority or "",
        0 if task.due_date else 1,
        task.due_date or "",
        task.id,
    )
