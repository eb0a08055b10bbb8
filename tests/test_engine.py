"""Tests for the TaskStore mutation engine."""

from __future__ import annotations

import threading
from datetime import date
from pathlib import Path

import pytest

from todovault.config import VaultConfig
from todovault.errors import NotFoundError, StorageError, ValidationError
from todovault.signals import ChangeEvent, ChangeSource
from todovault.store import engine as engine_module
from todovault.store import fileio
from todovault.store.engine import TaskStore
from todovault.store.fileio import vault_lock


def _titles(store: TaskStore) -> list[str]:
    return [t.title for t in store.list_tasks()]


# -----------------------------------------------------------------------------
# create / ids
# -----------------------------------------------------------------------------


def test_create_appends_with_fresh_id_and_created_date(store: TaskStore) -> None:
    a = store.create("First")
    b = store.create("  Second   task ", due_date="2026-10-20", priority="b", projects=["+work", "work"], contexts=["@desk"])

    assert (a.id, b.id) == (1, 2)
    assert a.created_date == "2026-10-18"
    assert b.title == "Second task"
    assert b.priority == "B"
    assert b.projects == ["work"]
    assert b.contexts == ["desk"]
    assert b.subtasks == []
    assert store.list_tasks() == [a, b]


def test_deleted_id_is_never_reused(store: TaskStore) -> None:
    a = store.create("A")
    store.delete(a.id)
    b = store.create("B")
    assert a.id == 1
    assert b.id == 2


def test_id_counter_survives_new_store_instances(store: TaskStore, vault_path: Path) -> None:
    store.create("A")
    last = store.create("B")
    store.delete(last.id)

    reopened = TaskStore(vault_path, clock=lambda: date(2026, 10, 18))
    assert reopened.create("C").id == 3


def test_archived_ids_are_not_reused(store: TaskStore) -> None:
    store.create("A")
    done = store.create("B")
    store.toggle(done.id)
    store.archive_completed()
    assert store.create("C").id == 3


def test_id_counter_respects_hand_added_ids(store: TaskStore) -> None:
    store.tasks_path.write_text("Added by hand id:41\n", encoding="utf-8")
    assert store.create("Next").id == 42


def test_hand_added_id_is_retired_after_delete(store: TaskStore) -> None:
    store.create("first")
    with store.tasks_path.open("a", encoding="utf-8") as f:
        f.write("Hand added id:2\n")

    store.delete(2)

    assert store.create("next").id == 3


def test_hand_added_id_is_retired_after_archive(store: TaskStore) -> None:
    store.create("first")
    with store.tasks_path.open("a", encoding="utf-8") as f:
        f.write("x Hand finished id:5\n")

    assert store.archive_completed() == 1
    assert store.create("next").id == 6


def test_doubled_sigil_is_stripped_once(store: TaskStore) -> None:
    task = store.create("Tagged", projects=["++a", "+b"], contexts=["@@home"])

    assert task.projects == ["+a", "b"]
    assert task.contexts == ["@home"]
    assert store.get(task.id).projects == ["+a", "b"]
    assert store.get(task.id).contexts == ["@home"]


def test_non_utf8_line_does_not_block_the_vault(store: TaskStore) -> None:
    store.tasks_path.write_bytes(b"Good one id:1\nCaf\xe9 latin-1 id:2\nAnother id:3\n")

    tasks = store.list_tasks()

    assert [t.id for t in tasks] == [1, 2, 3]
    assert tasks[1].title == "Caf\ufffd latin-1"
    assert store.create("after").id == 4


def test_non_utf8_archive_still_loads(store: TaskStore) -> None:
    store.archive_path.write_bytes(b"[2026-10-17] Caf\xe9\n[2026-10-18] Plain\n")

    assert [a.title for a in store.load_archived()] == ["Caf\ufffd", "Plain"]
    assert store.get_stats().total_completed == 2


@pytest.mark.parametrize(
    "kwargs",
    [
        {"title": ""},
        {"title": "   "},
        {"title": "two\nlines"},
        {"title": "ok", "due_date": "2026-02-30"},
        {"title": "ok", "due_date": "18/10/2026"},
        {"title": "ok", "due_date": ""},
        {"title": "ok", "priority": "AA"},
        {"title": "ok", "priority": "1"},
        {"title": "ok", "projects": ["two words"]},
        {"title": "ok", "contexts": ["@"]},
        {"title": "ok", "projects": "work"},
    ],
)
def test_create_rejects_invalid_input(store: TaskStore, events: list[ChangeEvent], kwargs: dict) -> None:
    with pytest.raises(ValidationError):
        store.create(**kwargs)
    assert not store.tasks_path.exists()
    assert events == []


# -----------------------------------------------------------------------------
# toggle / delete / updates
# -----------------------------------------------------------------------------


def test_toggle_does_not_cascade_to_subtasks(store: TaskStore) -> None:
    task = store.create("Parent")
    store.add_subtask(task.id, "one")
    store.add_subtask(task.id, "two")

    toggled = store.toggle(task.id)
    assert toggled.completed is True
    assert [s.completed for s in toggled.subtasks] == [False, False]

    assert store.toggle(task.id).completed is False


def test_completing_all_subtasks_leaves_parent_open(store: TaskStore) -> None:
    task = store.create("Parent")
    store.add_subtask(task.id, "only")
    updated = store.toggle_subtask(task.id, 0)
    assert updated.subtasks[0].completed is True
    assert updated.completed is False


def test_unknown_ids_raise_not_found(store: TaskStore) -> None:
    store.create("Exists")
    with pytest.raises(NotFoundError):
        store.toggle(99)
    with pytest.raises(NotFoundError):
        store.delete(99)
    with pytest.raises(NotFoundError):
        store.update_due_date(99, "2026-10-20")
    with pytest.raises(NotFoundError):
        store.add_subtask(99, "x")


def test_delete_removes_task_and_subtasks(store: TaskStore) -> None:
    keep = store.create("Keep")
    gone = store.create("Gone")
    store.add_subtask(gone.id, "child")

    store.delete(gone.id)

    assert store.list_tasks() == [keep]
    assert "sup:" not in store.tasks_path.read_text(encoding="utf-8")


def test_update_due_date_sets_and_clears(store: TaskStore) -> None:
    task = store.create("Dated", due_date="2026-10-19")
    assert store.update_due_date(task.id, "2026-12-01").due_date == "2026-12-01"
    assert store.update_due_date(task.id).due_date is None
    assert store.get(task.id).due_date is None


def test_update_metadata_replaces_all_fields(store: TaskStore) -> None:
    task = store.create("Tagged", priority="A", projects=["a", "b"], contexts=["x"])

    updated = store.update_metadata(task.id, projects=["c"])

    assert updated.priority is None
    assert updated.projects == ["c"]
    assert updated.contexts == []
    assert store.get(task.id) == updated


def test_update_title(store: TaskStore) -> None:
    task = store.create("Old")
    assert store.update_title(task.id, "New +title").title == "New +title"
    assert store.get(task.id).projects == []


# -----------------------------------------------------------------------------
# subtasks
# -----------------------------------------------------------------------------


def test_subtask_indices_are_resolved_per_call(store: TaskStore) -> None:
    task = store.create("Parent")
    for title in ("a", "b", "c"):
        store.add_subtask(task.id, title)

    store.delete_subtask(task.id, 0)
    store.delete_subtask(task.id, 0)

    assert [s.title for s in store.get(task.id).subtasks] == ["c"]


def test_delete_subtask_keeps_order_of_others(store: TaskStore) -> None:
    task = store.create("Parent")
    for title in ("a", "b", "c", "d"):
        store.add_subtask(task.id, title)

    updated = store.delete_subtask(task.id, 1)

    assert [s.title for s in updated.subtasks] == ["a", "c", "d"]


def test_subtask_index_out_of_range(store: TaskStore) -> None:
    task = store.create("Parent")
    store.add_subtask(task.id, "only")
    for index in (1, -1):
        with pytest.raises(NotFoundError):
            store.toggle_subtask(task.id, index)
    with pytest.raises(NotFoundError):
        store.update_subtask_title(task.id, 5, "x")


def test_update_subtask_title(store: TaskStore) -> None:
    task = store.create("Parent")
    store.add_subtask(task.id, "draft")
    assert store.update_subtask_title(task.id, 0, "final").subtasks[0].title == "final"


# -----------------------------------------------------------------------------
# reorder
# -----------------------------------------------------------------------------


def test_reorder_is_a_list_move(store: TaskStore) -> None:
    for i in range(5):
        store.create(f"t{i}")

    store.reorder(0, 2)

    assert _titles(store) == ["t1", "t2", "t0", "t3", "t4"]


def test_reorder_backwards(store: TaskStore) -> None:
    for i in range(5):
        store.create(f"t{i}")

    store.reorder(4, 1)

    assert _titles(store) == ["t0", "t4", "t1", "t2", "t3"]


def test_reorder_out_of_range_and_noop(store: TaskStore, events: list[ChangeEvent]) -> None:
    store.create("a")
    store.create("b")
    events.clear()

    with pytest.raises(NotFoundError):
        store.reorder(0, 2)
    store.reorder(1, 1)

    assert _titles(store) == ["a", "b"]
    assert events == []


def test_display_order_is_independent_of_id(store: TaskStore) -> None:
    a = store.create("a")
    b = store.create("b")
    store.reorder(1, 0)
    c = store.create("c")
    assert [t.id for t in store.list_tasks()] == [b.id, a.id, c.id]


# -----------------------------------------------------------------------------
# buckets and tag queries
# -----------------------------------------------------------------------------


def test_bucket_membership(store: TaskStore) -> None:
    undated = store.create("undated")
    overdue = store.create("overdue", due_date="2026-10-01")
    due_today = store.create("today", due_date="2026-10-18")
    tomorrow = store.create("tomorrow", due_date="2026-10-19")

    today_ids = [t.id for t in store.today_tasks()]
    upcoming_ids = [t.id for t in store.upcoming_tasks()]

    assert today_ids == [undated.id, overdue.id, due_today.id]
    assert upcoming_ids == [tomorrow.id]


def test_list_filters(store: TaskStore) -> None:
    store.create("a", priority="A", projects=["work"], contexts=["desk"])
    store.create("b", priority="B", projects=["home"])
    store.create("c", projects=["work"], contexts=["phone"])

    assert [t.title for t in store.list_tasks(project="+work")] == ["a", "c"]
    assert [t.title for t in store.list_tasks(context="phone")] == ["c"]
    assert [t.title for t in store.list_tasks(priority="b")] == ["b"]
    with pytest.raises(ValidationError):
        store.list_tasks(bucket="someday")


def test_distinct_tag_listings(store: TaskStore) -> None:
    store.create("a", priority="C", projects=["work", "alpha"], contexts=["desk"])
    store.create("b", priority="A", projects=["work"], contexts=["phone", "desk"])
    store.create("c")

    assert store.list_projects() == ["alpha", "work"]
    assert store.list_contexts() == ["desk", "phone"]
    assert store.list_priorities() == ["A", "C"]


# -----------------------------------------------------------------------------
# bulk update and atomicity
# -----------------------------------------------------------------------------


def test_bulk_update_is_a_single_write(store: TaskStore, events: list[ChangeEvent]) -> None:
    ids = [store.create(f"t{i}").id for i in range(3)]
    events.clear()

    count = store.bulk_update_due_dates([(ids[0], "2026-10-18"), (ids[2], "2026-10-25"), (ids[1], None)])

    assert count == 3
    assert [t.due_date for t in store.list_tasks()] == ["2026-10-18", None, "2026-10-25"]
    assert [e.operation for e in events] == ["bulk_update_due_dates"]


def test_bulk_update_unknown_id_changes_nothing(store: TaskStore) -> None:
    a = store.create("a")
    before = store.tasks_path.read_bytes()

    with pytest.raises(NotFoundError):
        store.bulk_update_due_dates([(a.id, "2026-10-20"), (404, "2026-10-20")])

    assert store.tasks_path.read_bytes() == before


def test_bulk_update_validates_dates_first(store: TaskStore) -> None:
    a = store.create("a")
    with pytest.raises(ValidationError):
        store.bulk_update_due_dates([(a.id, "2026-10-20"), (a.id, "soon")])
    assert store.get(a.id).due_date is None


def test_write_failure_leaves_document_byte_identical(
    store: TaskStore, events: list[ChangeEvent], monkeypatch: pytest.MonkeyPatch
) -> None:
    ids = [store.create(f"t{i}", due_date="2026-10-30").id for i in range(3)]
    before = store.tasks_path.read_bytes()
    events.clear()

    def failing_replace(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr(fileio.os, "replace", failing_replace)

    with pytest.raises(StorageError):
        store.bulk_update_due_dates([(i, "2026-10-18") for i in ids])

    assert store.tasks_path.read_bytes() == before
    assert not store.tasks_path.with_name("tasks.txt.tmp").exists()
    assert events == []


def test_storage_error_is_an_ioerror(store: TaskStore, monkeypatch: pytest.MonkeyPatch) -> None:
    def failing_replace(src, dst):
        raise OSError("read-only filesystem")

    monkeypatch.setattr(fileio.os, "replace", failing_replace)
    with pytest.raises(IOError):
        store.create("anything")


# -----------------------------------------------------------------------------
# archive
# -----------------------------------------------------------------------------


def test_archive_completed_moves_only_completed(store: TaskStore) -> None:
    ids = [store.create(f"t{i}").id for i in range(5)]
    store.add_subtask(ids[1], "sub")
    store.toggle(ids[1])
    store.toggle(ids[3])

    assert store.archive_completed() == 2

    assert _titles(store) == ["t0", "t2", "t4"]
    archived = store.load_archived()
    assert [(a.title, a.completed_date) for a in archived] == [("t1", "2026-10-18"), ("t3", "2026-10-18")]
    assert [s.title for s in archived[0].subtasks] == ["sub"]

    assert store.archive_completed() == 0
    assert len(store.load_archived()) == 2


def test_archive_appends_to_existing_archive(store: TaskStore) -> None:
    store.archive_path.write_text("[2026-09-01] Old one\n", encoding="utf-8")
    task = store.create("New one")
    store.toggle(task.id)

    store.archive_completed()

    assert store.archive_path.read_text(encoding="utf-8") == "[2026-09-01] Old one\n[2026-10-18] New one\n"
    assert store.list_archive_months() == ["2026-10", "2026-09"]
    assert [a.title for a in store.load_archived("2026-09")] == ["Old one"]


def test_archive_rolls_back_when_live_write_fails(store: TaskStore, monkeypatch: pytest.MonkeyPatch) -> None:
    store.archive_path.write_text("[2026-09-01] Old one\n", encoding="utf-8")
    task = store.create("Done")
    store.toggle(task.id)
    archive_before = store.archive_path.read_bytes()
    tasks_before = store.tasks_path.read_bytes()

    def failing_write(path, text):
        raise StorageError("simulated")

    monkeypatch.setattr(engine_module, "atomic_write_text", failing_write)

    with pytest.raises(StorageError):
        store.archive_completed()

    assert store.archive_path.read_bytes() == archive_before
    assert store.tasks_path.read_bytes() == tasks_before


def test_load_archived_rejects_bad_month(store: TaskStore) -> None:
    with pytest.raises(ValidationError):
        store.load_archived("2026-13")


# -----------------------------------------------------------------------------
# stats, settings, notifications
# -----------------------------------------------------------------------------


def test_get_stats_from_archive_and_live(store: TaskStore) -> None:
    store.archive_path.write_text("[2026-10-16] a\n[2026-10-17] b\n", encoding="utf-8")
    task = store.create("c")
    store.toggle(task.id)

    stats = store.get_stats()
    assert stats.total_completed == 2
    assert stats.current_streak == 2

    live = store.get_stats(include_live=True)
    assert live.total_completed == 3
    assert live.current_streak == 3
    assert live.completions_by_day["2026-10-18"] == 1


def test_daily_limit_is_persisted(store: TaskStore, vault_path: Path) -> None:
    assert store.get_metadata().daily_limit == 5
    store.set_daily_limit(3)
    assert TaskStore(vault_path).get_metadata().daily_limit == 3
    with pytest.raises(ValidationError):
        store.set_daily_limit(-1)


def test_each_successful_write_emits_one_store_event(store: TaskStore, events: list[ChangeEvent]) -> None:
    task = store.create("a")
    store.toggle(task.id)
    store.add_subtask(task.id, "s")
    store.archive_completed()
    with pytest.raises(NotFoundError):
        store.toggle(task.id)

    assert [e.operation for e in events] == ["create", "toggle", "add_subtask", "archive_completed"]
    assert all(e.source is ChangeSource.STORE for e in events)
    assert all(e.vault == store.vault_path for e in events)


def test_reads_see_hand_edits(store: TaskStore) -> None:
    store.create("from store")
    with store.tasks_path.open("a", encoding="utf-8") as f:
        f.write("x (B) typed by hand +diy id:50\n  └─ step one sup:50\n")

    task = store.toggle(50)

    assert task.completed is False
    assert task.priority == "B"
    assert task.projects == ["diy"]
    assert [s.title for s in task.subtasks] == ["step one"]


def test_custom_file_names_from_config(vault_path: Path) -> None:
    store = TaskStore(vault_path, config=VaultConfig(tasks_file="todo.txt", archive_file="done.txt"))
    task = store.create("custom")
    store.toggle(task.id)
    store.archive_completed()
    assert (vault_path / "todo.txt").exists()
    assert (vault_path / "done.txt").read_text(encoding="utf-8").startswith("[")


# -----------------------------------------------------------------------------
# locking
# -----------------------------------------------------------------------------


def test_lock_timeout_raises_storage_error(vault_path: Path) -> None:
    store = TaskStore(vault_path, config=VaultConfig(lock_timeout=0.05))
    held = threading.Event()
    release = threading.Event()

    def hold() -> None:
        with vault_lock(vault_path, timeout=1.0):
            held.set()
            release.wait(5)

    worker = threading.Thread(target=hold)
    worker.start()
    try:
        assert held.wait(5)
        with pytest.raises(StorageError):
            store.create("blocked")
    finally:
        release.set()
        worker.join()

    assert store.create("unblocked").id == 1


def test_concurrent_creates_do_not_lose_updates(vault_path: Path) -> None:
    stores = [TaskStore(vault_path) for _ in range(4)]

    def worker(s: TaskStore, n: int) -> None:
        for i in range(10):
            s.create(f"w{n}-{i}")

    threads = [threading.Thread(target=worker, args=(s, n)) for n, s in enumerate(stores)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    tasks = stores[0].list_tasks()
    assert len(tasks) == 40
    assert sorted(t.id for t in tasks) == list(range(1, 41))
