"""
Mutation engine for the vault task documents.

TaskStore is the only component that writes tasks.txt and archive.txt.
Every operation is one read-decode-mutate-encode-write cycle under the
vault lock: nothing is cached between calls, so the file on disk is always
the source of truth (hand edits included).
"""

from __future__ import annotations

import contextlib
import copy
import logging
import re
from datetime import date
from pathlib import Path
from typing import Callable, Iterable, Iterator

from ..config import METADATA_FILE_NAME, STATE_DIR_NAME, VaultConfig, load_config
from ..errors import NotFoundError, StorageError, ValidationError
from ..models import (
    PRIORITY_PATTERN,
    ArchivedTask,
    Subtask,
    Task,
    TodoMetadata,
    TodoStats,
    in_today_bucket,
    in_upcoming_bucket,
    is_valid_date,
    normalize_tags,
)
from ..signals import ChangeEvent, ChangeSignal, ChangeSource
from ..stats import compute_stats
from .archive import append_archived, archive_months, filter_by_month, load_archive
from .codec import decode_tasks, encode_tasks
from .fileio import atomic_write_text, content_hash, read_text, truncate_to, vault_lock
from .metadata import load_metadata, save_metadata

logger = logging.getLogger(__name__)

BUCKETS = ("today", "upcoming")
_MONTH_PATTERN = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


# -----------------------------------------------------------------------------
# Input validation
# -----------------------------------------------------------------------------


def _require_title(title: str) -> str:
    if not isinstance(title, str) or "\n" in title or "\r" in title:
        raise ValidationError("Title must be a single line of text")
    normalized = " ".join(title.split())
    if not normalized:
        raise ValidationError("Title must not be empty")
    return normalized


def _require_date(value: str | None) -> str | None:
    if value is None:
        return None
    if not is_valid_date(value):
        raise ValidationError(f"Invalid date (expected YYYY-MM-DD): {value!r}")
    return value


def _require_priority(value: str | None) -> str | None:
    if value is None:
        return None
    letter = value.strip().strip("()").upper()
    if not PRIORITY_PATTERN.match(letter):
        raise ValidationError(f"Priority must be a single letter A-Z: {value!r}")
    return letter


def _require_tags(tags: Iterable[str], sigil: str, kind: str) -> list[str]:
    if isinstance(tags, str):
        raise ValidationError(f"{kind} must be a list of tags, not a string")
    cleaned = []
    for tag in tags:
        bare = tag.strip()
        if bare.startswith(sigil):
            bare = bare[len(sigil) :]
        if not bare or any(ch.isspace() for ch in bare):
            raise ValidationError(f"Invalid {kind[:-1]} tag: {tag!r}")
        cleaned.append(bare)
    return normalize_tags(cleaned)


def _find(tasks: list[Task], task_id: int) -> Task:
    for task in tasks:
        if task.id == task_id:
            return task
    raise NotFoundError(f"Task not found: {task_id}")


def _check_subtask_index(task: Task, index: int) -> int:
    if not 0 <= index < len(task.subtasks):
        raise NotFoundError(f"Task {task.id} has no subtask at index {index}")
    return index


# -----------------------------------------------------------------------------
# TaskStore
# -----------------------------------------------------------------------------


class TaskStore:
    """
    Read-modify-write access to one vault's task documents.

    Any number of TaskStore instances may point at the same vault inside a
    process; they share one lock per resolved vault path.
    """

    def __init__(
        self,
        vault_path: str | Path,
        *,
        config: VaultConfig | None = None,
        signal: ChangeSignal | None = None,
        clock: Callable[[], date] | None = None,
    ):
        """
        Initialize the store.

        Args:
            vault_path: Vault root directory
            config: Settings (loaded from .todovault/config.toml if None)
            signal: Change signal to raise after writes (a new one if None)
            clock: Returns today's date (date.today if None)
        """
        self.vault_path = Path(vault_path)
        self.config = config if config is not None else load_config(self.vault_path)
        self.signal = signal if signal is not None else ChangeSignal()
        self._clock = clock or date.today
        self._last_written_hash: str | None = None

    # ---- paths ----

    @property
    def tasks_path(self) -> Path:
        return self.vault_path / self.config.tasks_file

    @property
    def archive_path(self) -> Path:
        return self.vault_path / self.config.archive_file

    @property
    def metadata_path(self) -> Path:
        return self.vault_path / STATE_DIR_NAME / METADATA_FILE_NAME

    @property
    def last_written_hash(self) -> str | None:
        """Hash of the tasks document this store last wrote (for self-write detection)."""
        return self._last_written_hash

    def today(self) -> str:
        return self._clock().isoformat()

    # ---- low-level helpers ----

    def _load(self) -> list[Task]:
        return decode_tasks(read_text(self.tasks_path))

    def _write(self, tasks: list[Task]) -> None:
        text = encode_tasks(tasks)
        atomic_write_text(self.tasks_path, text)
        self._last_written_hash = content_hash(text)

    def _reserve_ids(self, tasks: list[Task]) -> None:
        """Move the id counter past every live id, including ids added by hand."""
        if not tasks:
            return
        floor = max(t.id for t in tasks) + 1
        metadata = load_metadata(self.metadata_path)
        if metadata.next_id < floor:
            metadata.next_id = floor
            save_metadata(self.metadata_path, metadata)

    def _notify(self, operation: str) -> None:
        self.signal.emit(ChangeEvent(vault=self.vault_path, source=ChangeSource.STORE, operation=operation))

    def _locked(self) -> contextlib.AbstractContextManager[None]:
        return vault_lock(self.vault_path, self.config.lock_timeout)

    @contextlib.contextmanager
    def _transaction(self, operation: str) -> Iterator[list[Task]]:
        """
        Load the live tasks under the vault lock, let the caller mutate them,
        then write them back. If the body raises, nothing is written.
        """
        with self._locked():
            tasks = self._load()
            self._reserve_ids(tasks)
            yield tasks
            self._write(tasks)
        logger.info("%s committed (%d tasks) in %s", operation, len(tasks), self.vault_path)
        self._notify(operation)

    # ---- queries ----

    def list_tasks(
        self,
        *,
        project: str | None = None,
        context: str | None = None,
        priority: str | None = None,
        bucket: str | None = None,
    ) -> list[Task]:
        """Live tasks in display order, optionally filtered."""
        if bucket is not None and bucket not in BUCKETS:
            raise ValidationError(f"Unknown bucket {bucket!r} (expected one of {', '.join(BUCKETS)})")

        tasks = self._load()
        today = self.today()
        if project is not None:
            project = project.lstrip("+")
            tasks = [t for t in tasks if project in t.projects]
        if context is not None:
            context = context.lstrip("@")
            tasks = [t for t in tasks if context in t.contexts]
        if priority is not None:
            letter = _require_priority(priority)
            tasks = [t for t in tasks if t.priority == letter]
        if bucket == "today":
            tasks = [t for t in tasks if in_today_bucket(t, today)]
        elif bucket == "upcoming":
            tasks = [t for t in tasks if in_upcoming_bucket(t, today)]
        return tasks

    def get(self, task_id: int) -> Task:
        return _find(self._load(), task_id)

    def today_tasks(self) -> list[Task]:
        return self.list_tasks(bucket="today")

    def upcoming_tasks(self) -> list[Task]:
        return self.list_tasks(bucket="upcoming")

    def list_projects(self) -> list[str]:
        return sorted({p for t in self._load() for p in t.projects})

    def list_contexts(self) -> list[str]:
        return sorted({c for t in self._load() for c in t.contexts})

    def list_priorities(self) -> list[str]:
        return sorted({t.priority for t in self._load() if t.priority})

    # ---- task mutations ----

    def create(
        self,
        title: str,
        due_date: str | None = None,
        priority: str | None = None,
        projects: Iterable[str] = (),
        contexts: Iterable[str] = (),
    ) -> Task:
        """
        Create a task at the end of display order.

        The id comes from the persisted counter, so ids of deleted or
        archived tasks are never handed out again.
        """
        title = _require_title(title)
        due_date = _require_date(due_date)
        priority = _require_priority(priority)
        project_list = _require_tags(projects, "+", "projects")
        context_list = _require_tags(contexts, "@", "contexts")

        with self._transaction("create") as tasks:
            metadata = load_metadata(self.metadata_path)
            new_id = max([metadata.next_id, *(t.id + 1 for t in tasks)])
            task = Task(
                id=new_id,
                title=title,
                due_date=due_date,
                priority=priority,
                projects=project_list,
                contexts=context_list,
                created_date=self.today(),
            )
            tasks.append(task)
            # Counter goes first: a failed document write only burns an id.
            metadata.next_id = new_id + 1
            save_metadata(self.metadata_path, metadata)
        return copy.deepcopy(task)

    def toggle(self, task_id: int) -> Task:
        """Flip completion. Subtasks are left alone."""
        with self._transaction("toggle") as tasks:
            task = _find(tasks, task_id)
            task.completed = not task.completed
        return copy.deepcopy(task)

    def delete(self, task_id: int) -> None:
        """Remove a task and its subtasks. The id is retired."""
        with self._transaction("delete") as tasks:
            tasks.remove(_find(tasks, task_id))

    def update_title(self, task_id: int, title: str) -> Task:
        title = _require_title(title)
        with self._transaction("update_title") as tasks:
            task = _find(tasks, task_id)
            task.title = title
        return copy.deepcopy(task)

    def update_due_date(self, task_id: int, due_date: str | None = None) -> Task:
        """Replace the due date; None clears it."""
        due_date = _require_date(due_date)
        with self._transaction("update_due_date") as tasks:
            task = _find(tasks, task_id)
            task.due_date = due_date
        return copy.deepcopy(task)

    def update_metadata(
        self,
        task_id: int,
        priority: str | None = None,
        projects: Iterable[str] = (),
        contexts: Iterable[str] = (),
    ) -> Task:
        """Replace priority, projects and contexts in one write."""
        priority = _require_priority(priority)
        project_list = _require_tags(projects, "+", "projects")
        context_list = _require_tags(contexts, "@", "contexts")
        with self._transaction("update_metadata") as tasks:
            task = _find(tasks, task_id)
            task.priority = priority
            task.projects = project_list
            task.contexts = context_list
        return copy.deepcopy(task)

    def reorder(self, old_index: int, new_index: int) -> None:
        """Move one task in display order; tasks in between shift by one."""
        with self._locked():
            tasks = self._load()
            for index in (old_index, new_index):
                if not 0 <= index < len(tasks):
                    raise NotFoundError(f"No task at position {index} (have {len(tasks)})")
            if old_index == new_index:
                return
            tasks.insert(new_index, tasks.pop(old_index))
            self._write(tasks)
        logger.info("reorder committed (%d -> %d) in %s", old_index, new_index, self.vault_path)
        self._notify("reorder")

    def bulk_update_due_dates(self, updates: Iterable[tuple[int, str | None]]) -> int:
        """
        Set several due dates with a single write.

        Every id is resolved before anything is written; one unknown id
        fails the whole batch. Returns the number of tasks updated.
        """
        validated = [(task_id, _require_date(due)) for task_id, due in updates]
        if not validated:
            return 0
        with self._transaction("bulk_update_due_dates") as tasks:
            for task_id, due in validated:
                _find(tasks, task_id).due_date = due
        return len(validated)

    # ---- subtask mutations ----

    def add_subtask(self, parent_id: int, title: str) -> Task:
        title = _require_title(title)
        with self._transaction("add_subtask") as tasks:
            task = _find(tasks, parent_id)
            task.subtasks.append(Subtask(title=title))
        return copy.deepcopy(task)

    def delete_subtask(self, parent_id: int, index: int) -> Task:
        """Delete by current index. Later subtasks move up one; order is kept."""
        with self._transaction("delete_subtask") as tasks:
            task = _find(tasks, parent_id)
            del task.subtasks[_check_subtask_index(task, index)]
        return copy.deepcopy(task)

    def toggle_subtask(self, parent_id: int, index: int) -> Task:
        """Flip a subtask. The parent's completion never changes as a result."""
        with self._transaction("toggle_subtask") as tasks:
            task = _find(tasks, parent_id)
            subtask = task.subtasks[_check_subtask_index(task, index)]
            subtask.completed = not subtask.completed
        return copy.deepcopy(task)

    def update_subtask_title(self, parent_id: int, index: int, title: str) -> Task:
        title = _require_title(title)
        with self._transaction("update_subtask_title") as tasks:
            task = _find(tasks, parent_id)
            task.subtasks[_check_subtask_index(task, index)].title = title
        return copy.deepcopy(task)

    # ---- archive ----

    def archive_completed(self) -> int:
        """
        Move every completed task to the archive, stamped with today's date.

        The archive is appended first; if rewriting the live document then
        fails, the append is truncated away so both files stay as they were.
        Returns the number of tasks moved (0 is not an error).
        """
        with self._locked():
            tasks = self._load()
            self._reserve_ids(tasks)
            done = [t for t in tasks if t.completed]
            if not done:
                return 0

            today = self.today()
            entries = [
                ArchivedTask(title=t.title, completed_date=today, subtasks=copy.deepcopy(t.subtasks))
                for t in done
            ]
            remaining = [t for t in tasks if not t.completed]

            offset = append_archived(self.archive_path, entries)
            try:
                self._write(remaining)
            except StorageError:
                truncate_to(self.archive_path, offset)
                raise

        logger.info("archive_completed moved %d tasks in %s", len(done), self.vault_path)
        self._notify("archive_completed")
        return len(done)

    def load_archived(self, month: str | None = None) -> list[ArchivedTask]:
        """Archived tasks, optionally only those completed in `month` (YYYY-MM)."""
        if month is not None and not _MONTH_PATTERN.match(month):
            raise ValidationError(f"Invalid month (expected YYYY-MM): {month!r}")
        return filter_by_month(load_archive(self.archive_path), month)

    def list_archive_months(self) -> list[str]:
        return archive_months(load_archive(self.archive_path))

    # ---- stats and settings ----

    def get_stats(self, *, include_live: bool = False) -> TodoStats:
        """
        Recompute stats from the archive.

        With include_live, completed tasks not yet archived count as
        completions today.
        """
        archived = load_archive(self.archive_path)
        live_completed = sum(1 for t in self._load() if t.completed) if include_live else 0
        return compute_stats(archived, self._clock(), live_completed=live_completed)

    def get_metadata(self) -> TodoMetadata:
        return load_metadata(self.metadata_path)

    def set_daily_limit(self, limit: int) -> TodoMetadata:
        """Store the planning cap. The store itself never enforces it."""
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 0:
            raise ValidationError(f"Daily limit must be a non-negative integer: {limit!r}")
        with self._locked():
            metadata = load_metadata(self.metadata_path)
            metadata.daily_limit = limit
            save_metadata(self.metadata_path, metadata)
        return metadata
