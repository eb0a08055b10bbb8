"""
Codec and append-only writer for the archive document (archive.txt).

Each archived task is one line:

    [2026-10-18] Renew passport | x Book photo | - Fill in form

Subtask segments are `x <title>` (done) or `- <title>` (open). Inside
titles `\\` is written as `\\\\` and `|` as `\\|`. Indented `  - title`
lines following an entry are also read as its subtasks, for archives
written by older versions.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from ..models import ArchivedTask, Subtask
from .fileio import append_text, read_text

logger = logging.getLogger(__name__)

_ENTRY_PATTERN = re.compile(r"^\[(\d{4}-\d{2}-\d{2})\]\s?(.*)$")
_SEPARATOR = re.compile(r"(?<!\\)((?:\\\\)*)\|")
_LEGACY_SUBTASK = re.compile(r"^\s+(x\s+)?-\s?(.*)$")


def _escape(text: str) -> str:
    return text.replace("\\", "\\\\").replace("|", "\\|")


def _unescape(text: str) -> str:
    out: list[str] = []
    chars = iter(text)
    for ch in chars:
        if ch == "\\":
            nxt = next(chars, "")
            out.append(nxt if nxt in ("\\", "|") else ch + nxt)
        else:
            out.append(ch)
    return "".join(out)


def _split_fields(body: str) -> list[str]:
    """Split on `|` that is not escaped (preceded by an even run of backslashes)."""
    fields: list[str] = []
    start = 0
    for match in _SEPARATOR.finditer(body):
        end = match.end() - 1  # position of the `|`
        fields.append(body[start:end])
        start = end + 1
    fields.append(body[start:])
    return fields


def _parse_subtask_field(field: str) -> Subtask | None:
    field = field.strip()
    if field.startswith("x "):
        return Subtask(title=_unescape(field[2:].strip()), completed=True)
    if field == "x":
        return Subtask(title="", completed=True)
    if field.startswith("- ") or field == "-":
        return Subtask(title=_unescape(field[1:].strip()), completed=False)
    return None


def encode_archived(entry: ArchivedTask) -> str:
    """Encode one archived task as a single line (no trailing newline)."""
    parts = [f"[{entry.completed_date}] {_escape(entry.title)}"]
    for subtask in entry.subtasks:
        marker = "x" if subtask.completed else "-"
        parts.append(f"{marker} {_escape(subtask.title)}")
    return " | ".join(parts)


def decode_archive(content: str) -> list[ArchivedTask]:
    """Decode an archive document. Unrecognised lines are skipped."""
    entries: list[ArchivedTask] = []
    current: ArchivedTask | None = None

    for line_no, line in enumerate(content.splitlines(), start=1):
        if not line.strip():
            continue

        match = _ENTRY_PATTERN.match(line)
        if match:
            fields = _split_fields(match.group(2))
            current = ArchivedTask(
                title=_unescape(fields[0].strip()),
                completed_date=match.group(1),
            )
            for field in fields[1:]:
                subtask = _parse_subtask_field(field)
                if subtask is not None:
                    current.subtasks.append(subtask)
            entries.append(current)
            continue

        legacy = _LEGACY_SUBTASK.match(line)
        if legacy and current is not None:
            current.subtasks.append(Subtask(title=legacy.group(2).strip(), completed=bool(legacy.group(1))))
            continue

        logger.debug("Skipping archive line %d: unrecognised", line_no)

    return entries


def load_archive(path: Path) -> list[ArchivedTask]:
    return decode_archive(read_text(path))


def append_archived(path: Path, entries: list[ArchivedTask]) -> int:
    """
    Append entries to the archive file.

    Existing lines are never rewritten. Returns the size of the file before
    the append so the caller can roll it back.
    """
    text = "".join(encode_archived(entry) + "\n" for entry in entries)
    existing = read_text(path)
    if existing and not existing.endswith("\n"):
        text = "\n" + text
    return append_text(path, text)


def filter_by_month(entries: list[ArchivedTask], month: str | None) -> list[ArchivedTask]:
    """Entries completed in `month` (YYYY-MM), or all entries when month is None."""
    if month is None:
        return list(entries)
    return [e for e in entries if e.completed_date.startswith(month + "-")]


def archive_months(entries: list[ArchivedTask]) -> list[str]:
    """Distinct YYYY-MM values, most recent first."""
    return sorted({e.completed_date[:7] for e in entries}, reverse=True)
