from __future__ import annotations

from collections.abc import Sequence
from enum import Enum
from typing import Protocol

from ..models.entities import Exam, Result, ResultPayload, SchoolClass, Session

"""Result store contract.

The import pipeline talks to persistence only through ResultStore. Every
operation may fail independently; implementations wrap driver errors in
StoreError so callers can record them per row / per batch instead of aborting.

Lookups by name (sessions, classes) and by (exam_name, exam_date) ignore the
soft-delete flag: names stay unique across active and inactive rows. Result
lookups used for duplicate detection only consider active rows.

Exam dates are kept as the ISO text supplied by the sheet, so
``list_upcoming_exams(since=...)`` compares ISO strings.

The ``list_*`` methods return active rows only. ``name_contains`` /
``contains`` match case-insensitive substrings (SQL ILIKE).
"""

__all__ = [
    "EntityKind",
    "ResultStore",
    "StoreError",
]


class StoreError(Exception):
    """Raised when a store query or write fails."""


class EntityKind(Enum):
    """Entity kinds, valued by their table name."""
    SESSION = "sessions"
    CLASS = "classes"
    EXAM = "exams"
    RESULT = "results"


class ResultStore(Protocol):
    # sessions
    def find_session(self, name: str) -> Session | None: ...
    def insert_session(self, name: str) -> Session: ...

    # classes
    def find_class(self, name: str) -> SchoolClass | None: ...
    def insert_class(self, name: str, session_id: int | None) -> SchoolClass: ...
    def update_class(self, class_id: int, name: str, session_id: int | None) -> SchoolClass: ...
    def list_classes(self, name_contains: str | None = None) -> list[SchoolClass]: ...

    # exams
    def find_exam(self, exam_name: str, exam_date: str) -> Exam | None: ...
    def insert_exam(
        self, exam_name: str, exam_date: str, class_id: int | None, is_upcoming: bool
    ) -> Exam: ...
    def get_exam(self, exam_id: int) -> Exam | None: ...
    def update_exam(
        self, exam_id: int, exam_name: str, exam_date: str, class_id: int | None, is_upcoming: bool
    ) -> Exam: ...
    def list_exams(self, name_contains: str | None = None) -> list[Exam]: ...
    def list_upcoming_exams(self, since: str, limit: int) -> list[Exam]: ...

    # results
    def find_active_result(self, exam_id: int, roll_no: str) -> Result | None: ...
    def get_result(self, result_id: int) -> Result | None: ...
    def insert_result(self, payload: ResultPayload) -> Result: ...
    def insert_results(self, payloads: Sequence[ResultPayload]) -> int: ...
    def update_result(self, result_id: int, payload: ResultPayload) -> Result: ...
    def search_results(
        self,
        *,
        roll_no: str | None = None,
        registration_no: str | None = None,
        exam_id: int | None = None,
    ) -> list[Result]: ...
    def list_results(
        self, contains: str | None = None, *, limit: int = 10, offset: int = 0
    ) -> list[Result]: ...

    # any entity
    def soft_delete(self, kind: EntityKind, record_id: int) -> None: ...
