"""Typed errors raised by the task store.

Malformed lines in a hand-edited document are never an error: the codec
skips them. Only caller mistakes and storage failures surface here.
"""

from __future__ import annotations


class TaskStoreError(Exception):
    """Base class for every error the store raises."""


class NotFoundError(TaskStoreError, LookupError):
    """A task id or subtask index does not exist at call time."""


class ValidationError(TaskStoreError, ValueError):
    """Caller-supplied input is invalid (empty title, bad date, ...)."""


class StorageError(TaskStoreError, OSError):
    """The vault could not be read or written, or its lock timed out."""
