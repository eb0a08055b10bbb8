"""Vault metadata record: daily limit and the persisted id counter."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from ..models import TodoMetadata
from .fileio import atomic_write_text, read_text

logger = logging.getLogger(__name__)


def load_metadata(path: Path) -> TodoMetadata:
    """Load metadata.json; a missing or unreadable record yields defaults."""
    content = read_text(path)
    if not content.strip():
        return TodoMetadata()
    try:
        data = json.loads(content)
    except json.JSONDecodeError:
        logger.warning("Ignoring malformed metadata file %s", path)
        return TodoMetadata()
    if not isinstance(data, dict):
        return TodoMetadata()
    return TodoMetadata.from_dict(data)


def save_metadata(path: Path, metadata: TodoMetadata) -> None:
    atomic_write_text(path, json.dumps(metadata.to_dict(), indent=2) + "\n")
