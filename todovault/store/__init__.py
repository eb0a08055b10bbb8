"""Task store: text codecs, file primitives and the mutation engine."""

from .archive import decode_archive, encode_archived
from .codec import decode_tasks, encode_tasks
from .engine import TaskStore

__all__ = [
    "TaskStore",
    "decode_tasks",
    "encode_tasks",
    "decode_archive",
    "encode_archived",
]
