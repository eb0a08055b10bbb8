"""
File primitives for the vault documents.

- Atomic whole-file writes (write to temp, fsync, then rename over target)
- Append with rollback for the append-only archive
- One in-process lock per vault path

Readers never take a lock: the rename guarantees they see either the old
document or the new one, never a truncated file.
"""

from __future__ import annotations

import contextlib
import hashlib
import logging
import os
import threading
from pathlib import Path
from typing import Iterator

from ..errors import StorageError

logger = logging.getLogger(__name__)

_locks: dict[Path, threading.RLock] = {}
_locks_guard = threading.Lock()


def content_hash(text: str) -> str:
    """SHA-256 of the UTF-8 encoded text (first 16 chars)."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:16]


def read_text(path: Path) -> str:
    """
    Read a document; a missing file reads as empty.

    Bytes that are not valid UTF-8 (a hand edit saved as Latin-1, say) are
    replaced with U+FFFD so only the affected lines degrade.
    """
    try:
        data = path.read_bytes()
    except FileNotFoundError:
        return ""
    except OSError as e:
        raise StorageError(f"Failed to read {path}: {e}") from e
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as e:
        logger.warning("%s is not valid UTF-8 (%s); undecodable bytes replaced", path, e.reason)
        return data.decode("utf-8", errors="replace")


def atomic_write_text(path: Path, text: str) -> None:
    """
    Replace `path` with `text` atomically.

    On any failure the temp file is removed and the original file is left
    untouched.
    """
    temp_path = path.with_name(path.name + ".tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with temp_path.open("w", encoding="utf-8", newline="\n") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(temp_path, path)
    except OSError as e:
        with contextlib.suppress(OSError):
            temp_path.unlink()
        raise StorageError(f"Failed to write {path}: {e}") from e


def append_text(path: Path, text: str) -> int:
    """
    Append `text` to `path` and return the file size before the append.

    The returned offset can be passed to truncate_to() to undo the append.
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("ab") as f:
            offset = f.tell()
            f.write(text.encode("utf-8"))
            f.flush()
            os.fsync(f.fileno())
        return offset
    except OSError as e:
        raise StorageError(f"Failed to append to {path}: {e}") from e


def truncate_to(path: Path, size: int) -> None:
    """Cut `path` back to `size` bytes (undo of append_text)."""
    try:
        with path.open("r+b") as f:
            f.truncate(size)
    except OSError as e:
        raise StorageError(f"Failed to roll back {path}: {e}") from e


def _lock_for(vault_path: Path) -> threading.RLock:
    key = vault_path.resolve()
    with _locks_guard:
        lock = _locks.get(key)
        if lock is None:
            lock = threading.RLock()
            _locks[key] = lock
        return lock


@contextlib.contextmanager
def vault_lock(vault_path: Path, timeout: float) -> Iterator[None]:
    """
    Hold the single-writer lock for a vault.

    Every store instance pointing at the same directory shares one lock.
    Raises StorageError if the lock is not acquired within `timeout` seconds.
    """
    lock = _lock_for(vault_path)
    if not lock.acquire(blocking=False):
        logger.debug("Waiting for vault lock %s", vault_path)
        if not lock.acquire(timeout=timeout):
            raise StorageError(f"Timed out after {timeout}s waiting for vault lock: {vault_path}")
    try:
        yield
    finally:
        lock.release()
