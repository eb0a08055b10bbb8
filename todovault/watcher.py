"""
File system watcher for the live task document.

Turns edits made outside the store (a text editor, a sync client) into the
same change signal the store raises after its own writes.

This module provides:
- Watchdog-based monitoring of the vault directory (non-recursive)
- Debounced event emission (editor save cycles collapse into one event)
- Self-write suppression by content hash
"""

from __future__ import annotations

import logging
import time
from pathlib import Path

from watchdog.events import (
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from .signals import ChangeEvent, ChangeSource
from .store.engine import TaskStore
from .store.fileio import content_hash, read_text

logger = logging.getLogger(__name__)


class TasksFileHandler(FileSystemEventHandler):
    """
    Watches one store's tasks file and emits external change events.

    Key behaviors:
    - Any create/modify/delete/move-into of the tasks file marks it pending
    - A pending change is flushed once `debounce_seconds` pass without new events
    - On flush, content the store itself last wrote is ignored, as is
      content identical to what was last seen
    """

    def __init__(self, store: TaskStore, debounce_seconds: float | None = None):
        super().__init__()
        self.store = store
        self.target = store.tasks_path.absolute()
        self.debounce_seconds = store.config.watch_debounce if debounce_seconds is None else debounce_seconds

        self.pending_since: float | None = None
        self.last_seen_hash: str | None = content_hash(read_text(store.tasks_path))
        self._acknowledged_write: str | None = store.last_written_hash

    def _is_target(self, path: str | bytes) -> bool:
        if isinstance(path, bytes):
            path = path.decode()
        return Path(path).absolute() == self.target

    def _mark_pending(self) -> None:
        self.pending_since = time.monotonic()

    def flush_pending(self, now: float | None = None) -> bool:
        """
        Emit an external change event if a pending change has settled.

        Returns True if an event was emitted.
        """
        if self.pending_since is None:
            return False
        now = time.monotonic() if now is None else now
        if now - self.pending_since < self.debounce_seconds:
            return False
        self.pending_since = None

        current = content_hash(read_text(self.store.tasks_path))
        previous = self.last_seen_hash
        self.last_seen_hash = current

        written = self.store.last_written_hash
        if current == written and written != self._acknowledged_write:
            self._acknowledged_write = written
            logger.debug("Ignoring self-write to %s", self.target)
            return False
        if current == previous:
            return False

        logger.info("External change detected in %s", self.target)
        self.store.signal.emit(ChangeEvent(vault=self.store.vault_path, source=ChangeSource.EXTERNAL))
        return True

    def on_created(self, event: FileCreatedEvent) -> None:
        if not event.is_directory and self._is_target(event.src_path):
            self._mark_pending()

    def on_modified(self, event: FileModifiedEvent) -> None:
        if not event.is_directory and self._is_target(event.src_path):
            self._mark_pending()

    def on_deleted(self, event: FileDeletedEvent) -> None:
        if not event.is_directory and self._is_target(event.src_path):
            self._mark_pending()

    def on_moved(self, event: FileMovedEvent) -> None:
        """Atomic saves (ours and most editors') arrive as a rename onto the target."""
        if event.is_directory:
            return
        if self._is_target(event.dest_path) or self._is_target(event.src_path):
            self._mark_pending()


def watch_tasks(
    store: TaskStore,
    debounce_seconds: float | None = None,
) -> tuple[Observer, TasksFileHandler]:
    """
    Start watching a store's tasks file.

    Returns:
        Tuple of (observer, handler) - caller should call observer.stop() to stop watching
        and handler.flush_pending() periodically to deliver events
    """
    handler = TasksFileHandler(store, debounce_seconds=debounce_seconds)

    store.vault_path.mkdir(parents=True, exist_ok=True)
    observer = Observer()
    observer.schedule(handler, str(store.vault_path.absolute()), recursive=False)
    observer.start()

    return observer, handler


def run_watch_loop(
    store: TaskStore,
    debounce_seconds: float | None = None,
    poll_interval: float = 0.25,
) -> None:
    """
    Run the watch loop until interrupted.

    This is a blocking function; subscribe to `store.signal` before calling
    it to receive events.
    """
    observer, handler = watch_tasks(store, debounce_seconds=debounce_seconds)

    try:
        while True:
            time.sleep(poll_interval)
            handler.flush_pending()
    except KeyboardInterrupt:
        observer.stop()

    observer.join()
