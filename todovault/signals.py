"""
Change notification boundary.

The store raises one signal, "the live task document changed", after every
successful write. The watcher raises the same signal for edits made outside
the store. Observers get no diff: they re-fetch the full state.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable

logger = logging.getLogger(__name__)


class ChangeSource(str, Enum):
    """Who changed the document."""

    STORE = "store"  # a TaskStore operation
    EXTERNAL = "external"  # a hand edit seen by the watcher


@dataclass(frozen=True)
class ChangeEvent:
    """A single "document changed" notification."""

    vault: Path
    source: ChangeSource
    operation: str | None = None  # store operation name, None for external edits
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "vault": str(self.vault),
            "source": self.source.value,
            "timestamp": self.timestamp,
        }
        if self.operation:
            d["operation"] = self.operation
        return d


Observer = Callable[[ChangeEvent], None]


class ChangeSignal:
    """Subscription point for change events."""

    def __init__(self) -> None:
        self._observers: list[Observer] = []
        self._guard = threading.Lock()

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """Register an observer; returns a function that unsubscribes it."""
        with self._guard:
            self._observers.append(observer)

        def unsubscribe() -> None:
            with self._guard:
                if observer in self._observers:
                    self._observers.remove(observer)

        return unsubscribe

    def emit(self, event: ChangeEvent) -> None:
        """
        Deliver `event` to every observer.

        The write has already committed when this runs, so a failing
        observer is logged and the remaining observers still get the event.
        """
        with self._guard:
            observers = list(self._observers)
        for observer in observers:
            try:
                observer(event)
            except Exception:
                logger.exception("Change observer %r failed", observer)

    @property
    def observer_count(self) -> int:
        return len(self._observers)
