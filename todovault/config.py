"""
Vault configuration.

Read from `<vault>/.todovault/config.toml`:

    [store]
    tasks_file = "tasks.txt"
    archive_file = "archive.txt"
    lock_timeout = 10.0
    watch_debounce = 0.5

Every key is optional; a missing file means defaults.
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .errors import StorageError, ValidationError

STATE_DIR_NAME = ".todovault"
CONFIG_FILE_NAME = "config.toml"
METADATA_FILE_NAME = "metadata.json"


@dataclass(frozen=True)
class VaultConfig:
    """Resolved settings for one vault."""

    tasks_file: str = "tasks.txt"
    archive_file: str = "archive.txt"
    lock_timeout: float = 10.0
    watch_debounce: float = 0.5


def _coerce_str(section: dict[str, Any], key: str, default: str) -> str:
    value = section.get(key, default)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"[store].{key} must be a non-empty string")
    if "/" in value or "\\" in value:
        raise ValidationError(f"[store].{key} must be a file name, not a path")
    return value.strip()


def _coerce_float(section: dict[str, Any], key: str, default: float) -> float:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        raise ValidationError(f"[store].{key} must be a non-negative number")
    return float(value)


def config_path(vault_path: Path) -> Path:
    return vault_path / STATE_DIR_NAME / CONFIG_FILE_NAME


def load_config(vault_path: Path) -> VaultConfig:
    """
    Load the vault configuration.

    Raises:
        ValidationError: If the TOML is malformed or a value has the wrong type
    """
    path = config_path(vault_path)
    if not path.exists():
        return VaultConfig()

    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as e:
        raise ValidationError(f"Failed to parse {path}: {e}") from e
    except OSError as e:
        raise StorageError(f"Failed to read {path}: {e}") from e

    section = data.get("store", {})
    if not isinstance(section, dict):
        raise ValidationError("[store] must be a table")

    defaults = VaultConfig()
    return VaultConfig(
        tasks_file=_coerce_str(section, "tasks_file", defaults.tasks_file),
        archive_file=_coerce_str(section, "archive_file", defaults.archive_file),
        lock_timeout=_coerce_float(section, "lock_timeout", defaults.lock_timeout),
        watch_debounce=_coerce_float(section, "watch_debounce", defaults.watch_debounce),
    )
