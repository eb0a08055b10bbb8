"""Plain-text codec for the live task document (tasks.txt).

Format (one entity per line, whitespace-separated tokens):

    x (A) Call the bank +finance @phone due:2026-10-20 created:2026-10-18 id:7
      x └─ Find the account number sup:7
      └─ Ask about fees sup:7

Decoding is tolerant: lines without a usable `id:` or `sup:` token are
skipped, subtasks whose parent is unknown are dropped, and any token that
does not match a metadata prefix exactly stays in the title.
"""

from __future__ import annotations

import logging
import re

from ..models import Subtask, Task, is_valid_date

logger = logging.getLogger(__name__)

COMPLETION_MARKER = "x"
SUBTASK_CONNECTOR = "└─"
SUBTASK_INDENT = "  "
ESCAPE = "\\"

_ID_TOKEN = re.compile(r"^id:(\d+)$")
_SUP_TOKEN = re.compile(r"^sup:(\d+)$")
_DUE_TOKEN = re.compile(r"^due:(\S+)$")
_CREATED_TOKEN = re.compile(r"^created:(\S+)$")
_PROJECT_TOKEN = re.compile(r"^\+(\S+)$")
_CONTEXT_TOKEN = re.compile(r"^@(\S+)$")
_PRIORITY_TOKEN = re.compile(r"^\(([A-Z])\)$")

# Connectors accepted in front of a subtask title when reading.
_SUBTASK_CONNECTORS = (SUBTASK_CONNECTOR, "-")


# -----------------------------------------------------------------------------
# Token classification and escaping
# -----------------------------------------------------------------------------


def _date_token(pattern: re.Pattern[str], token: str) -> str | None:
    match = pattern.match(token)
    if match and is_valid_date(match.group(1)):
        return match.group(1)
    return None


def _is_task_metadata(token: str) -> bool:
    """Tokens the task-line decoder would lift out of the title."""
    return bool(
        _ID_TOKEN.match(token)
        or _SUP_TOKEN.match(token)
        or _PROJECT_TOKEN.match(token)
        or _CONTEXT_TOKEN.match(token)
        or _date_token(_DUE_TOKEN, token)
        or _date_token(_CREATED_TOKEN, token)
    )


def _is_task_leader(token: str) -> bool:
    return token == COMPLETION_MARKER or bool(_PRIORITY_TOKEN.match(token))


def _is_subtask_metadata(token: str) -> bool:
    return bool(_SUP_TOKEN.match(token))


def _is_subtask_leader(token: str) -> bool:
    return token == COMPLETION_MARKER or token in _SUBTASK_CONNECTORS


def _needs_escape(token: str, leading: bool, subtask: bool) -> bool:
    if token.startswith(ESCAPE):
        return _needs_escape(token[1:], leading, subtask)
    if subtask:
        return _is_subtask_metadata(token) or (leading and _is_subtask_leader(token))
    return _is_task_metadata(token) or (leading and _is_task_leader(token))


def escape_title(title: str, *, subtask: bool = False) -> list[str]:
    """Split a title into tokens, escaping those that would read back as metadata."""
    tokens = []
    for pos, token in enumerate(title.split()):
        if _needs_escape(token, pos == 0, subtask):
            token = ESCAPE + token
        tokens.append(token)
    return tokens


def unescape_title(tokens: list[str], *, subtask: bool = False) -> str:
    """Inverse of escape_title."""
    words = []
    for pos, token in enumerate(tokens):
        if token.startswith(ESCAPE) and _needs_escape(token[1:], pos == 0, subtask):
            token = token[1:]
        words.append(token)
    return " ".join(words)


# -----------------------------------------------------------------------------
# Line parsing
# -----------------------------------------------------------------------------


def parse_task_line(line: str) -> Task | None:
    """Parse a top-level task line. Returns None when no `id:` token is present."""
    tokens = line.split()
    if not tokens:
        return None

    pos = 0
    completed = False
    priority = None
    if tokens[pos] == COMPLETION_MARKER:
        completed = True
        pos += 1
    if pos < len(tokens):
        match = _PRIORITY_TOKEN.match(tokens[pos])
        if match:
            priority = match.group(1)
            pos += 1

    task_id: int | None = None
    due_date: str | None = None
    created_date: str | None = None
    projects: list[str] = []
    contexts: list[str] = []
    title_tokens: list[str] = []

    for token in tokens[pos:]:
        id_match = _ID_TOKEN.match(token)
        if id_match and task_id is None:
            task_id = int(id_match.group(1))
            continue
        due = _date_token(_DUE_TOKEN, token)
        if due and due_date is None:
            due_date = due
            continue
        created = _date_token(_CREATED_TOKEN, token)
        if created and created_date is None:
            created_date = created
            continue
        project = _PROJECT_TOKEN.match(token)
        if project:
            if project.group(1) not in projects:
                projects.append(project.group(1))
            continue
        context = _CONTEXT_TOKEN.match(token)
        if context:
            if context.group(1) not in contexts:
                contexts.append(context.group(1))
            continue
        title_tokens.append(token)

    if task_id is None:
        return None

    return Task(
        id=task_id,
        title=unescape_title(title_tokens),
        completed=completed,
        due_date=due_date,
        priority=priority,
        projects=projects,
        contexts=contexts,
        created_date=created_date,
    )


def parse_subtask_line(line: str) -> tuple[int, Subtask] | None:
    """Parse a subtask line into (parent_id, subtask). None if there is no `sup:` token."""
    tokens = line.split()
    parent_id: int | None = None
    rest: list[str] = []
    for token in tokens:
        match = _SUP_TOKEN.match(token)
        if match and parent_id is None:
            parent_id = int(match.group(1))
            continue
        rest.append(token)

    if parent_id is None:
        return None

    pos = 0
    completed = False
    if rest and rest[0] == COMPLETION_MARKER:
        completed = True
        pos = 1
    if pos < len(rest) and rest[pos] in _SUBTASK_CONNECTORS:
        pos += 1

    return parent_id, Subtask(title=unescape_title(rest[pos:], subtask=True), completed=completed)


def is_subtask_line(line: str) -> bool:
    return any(_SUP_TOKEN.match(token) for token in line.split())


# -----------------------------------------------------------------------------
# Document codec
# -----------------------------------------------------------------------------


def decode_tasks(content: str) -> list[Task]:
    """Decode a full tasks.txt document.

    Two passes: parents are collected first, keyed by id, then subtasks are
    attached to their parent in line order. Never raises on malformed input.
    """
    content = content.lstrip("\ufeff")
    parents: dict[int, Task] = {}
    pending_subtasks: list[tuple[int, int, Subtask]] = []

    for line_no, line in enumerate(content.splitlines(), start=1):
        if not line.strip():
            continue

        if is_subtask_line(line):
            parsed = parse_subtask_line(line)
            if parsed is not None:
                pending_subtasks.append((line_no, parsed[0], parsed[1]))
            continue

        task = parse_task_line(line)
        if task is None:
            logger.debug("Skipping line %d: no id token", line_no)
            continue
        if task.id in parents:
            logger.warning("Skipping line %d: duplicate id:%d", line_no, task.id)
            continue
        parents[task.id] = task

    for line_no, parent_id, subtask in pending_subtasks:
        parent = parents.get(parent_id)
        if parent is None:
            logger.debug("Dropping orphan subtask on line %d (sup:%d)", line_no, parent_id)
            continue
        parent.subtasks.append(subtask)

    return list(parents.values())


def encode_task_line(task: Task) -> str:
    parts: list[str] = []
    if task.completed:
        parts.append(COMPLETION_MARKER)
    if task.priority:
        parts.append(f"({task.priority})")
    parts.extend(escape_title(task.title))
    parts.extend(f"+{p}" for p in task.projects)
    parts.extend(f"@{c}" for c in task.contexts)
    if task.due_date:
        parts.append(f"due:{task.due_date}")
    if task.created_date:
        parts.append(f"created:{task.created_date}")
    parts.append(f"id:{task.id}")
    return " ".join(parts)


def encode_subtask_line(parent_id: int, subtask: Subtask) -> str:
    parts: list[str] = []
    if subtask.completed:
        parts.append(COMPLETION_MARKER)
    parts.append(SUBTASK_CONNECTOR)
    parts.extend(escape_title(subtask.title, subtask=True))
    parts.append(f"sup:{parent_id}")
    return SUBTASK_INDENT + " ".join(parts)


def encode_tasks(tasks: list[Task]) -> str:
    """Encode tasks in display order, each followed by its subtasks."""
    lines: list[str] = []
    for task in tasks:
        lines.append(encode_task_line(task))
        for subtask in task.subtasks:
            lines.append(encode_subtask_line(task.id, subtask))
    if not lines:
        return ""
    return "\n".join(lines) + "\n"
