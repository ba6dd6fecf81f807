from __future__ import annotations

from enum import Enum

from ..db.store import ResultStore

"""Duplicate detection for staged results.

Two sources of duplicates, checked in this order for every row:

1. IN_FILE: the same (exam_id, roll_no) already appeared earlier in this upload
2. IN_STORE: an active result with that pair already exists in the store

The key is remembered before the store lookup, so a later in-file repeat of a
pair that clashed with the store is reported as IN_FILE.
"""

__all__ = [
    "DuplicateDetector",
    "DuplicateKind",
]


class DuplicateKind(Enum):
    """Duplicate classification; the value is the row error message."""
    IN_FILE = "Duplicate roll_no in file"
    IN_STORE = "Duplicate roll_no for exam"

    @property
    def message(self) -> str:
        return self.value


class DuplicateDetector:
    def __init__(self, store: ResultStore) -> None:
        self.store = store
        self.seen: set[str] = set()

    @staticmethod
    def key(exam_id: int, roll_no: str) -> str:
        return f"{exam_id}:{roll_no}"

    def check(self, exam_id: int, roll_no: str) -> DuplicateKind | None:
        """Classify (exam_id, roll_no); None means the row may be staged.

        Raises:
            StoreError: if the store lookup fails (the key stays remembered)
        """
        key = self.key(exam_id, roll_no)
        if key in self.seen:
            return DuplicateKind.IN_FILE
        self.seen.add(key)
        if self.store.find_active_result(exam_id, roll_no) is not None:
            return DuplicateKind.IN_STORE
        return None
