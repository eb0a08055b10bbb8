"""Pytest configuration and fixtures."""

from datetime import date
from pathlib import Path

import pytest

from todovault.signals import ChangeEvent
from todovault.store.engine import TaskStore

TODAY = date(2026, 10, 18)


@pytest.fixture
def vault_path(tmp_path: Path) -> Path:
    """An empty vault directory."""
    vault = tmp_path / "vault"
    vault.mkdir()
    return vault


@pytest.fixture
def store(vault_path: Path) -> TaskStore:
    """A store over the empty vault with the clock pinned to TODAY."""
    return TaskStore(vault_path, clock=lambda: TODAY)


@pytest.fixture
def events(store: TaskStore) -> list[ChangeEvent]:
    """Change events raised by `store`, in order."""
    received: list[ChangeEvent] = []
    store.signal.subscribe(received.append)
    return received
