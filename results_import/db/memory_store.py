from __future__ import annotations

import itertools
from collections import Counter
from collections.abc import Sequence
from dataclasses import replace
from datetime import UTC, datetime

from ..models.entities import Exam, RecordStatus, Result, ResultPayload, SchoolClass, Session
from .store import EntityKind, StoreError

"""In-memory ResultStore.

Used for ``--dry-run`` imports and by the test-suite. Mirrors the PostgreSQL
constraints that matter to the import pipeline:

- session / class names unique, exam (exam_name, exam_date) unique
- (exam_id, roll_no) unique among active results
- ``insert_results`` is all-or-nothing per call, like a single INSERT statement

``calls`` counts every public operation so tests can assert round-trips.
"""

__all__ = [
    "InMemoryResultStore",
]


def _contains(value: str | None, term: str | None) -> bool:
    """Case-insensitive substring match; no term matches everything."""
    if term is None:
        return True
    return value is not None and term.casefold() in value.casefold()


class InMemoryResultStore:
    def __init__(self) -> None:
        self.sessions: dict[int, Session] = {}
        self.classes: dict[int, SchoolClass] = {}
        self.exams: dict[int, Exam] = {}
        self.results: dict[int, Result] = {}
        self.calls: Counter[str] = Counter()
        self._ids = {kind: itertools.count(1) for kind in EntityKind}

    def _next_id(self, kind: EntityKind) -> int:
        return next(self._ids[kind])

    # --- sessions -------------------------------------------------------
    def find_session(self, name: str) -> Session | None:
        self.calls["find_session"] += 1
        return next((s for s in self.sessions.values() if s.name == name), None)

    def insert_session(self, name: str) -> Session:
        self.calls["insert_session"] += 1
        if any(s.name == name for s in self.sessions.values()):
            raise StoreError(f"duplicate key value violates unique constraint: sessions.name={name!r}")
        session = Session(id=self._next_id(EntityKind.SESSION), name=name)
        self.sessions[session.id] = session
        return session

    # --- classes --------------------------------------------------------
    def find_class(self, name: str) -> SchoolClass | None:
        self.calls["find_class"] += 1
        return next((c for c in self.classes.values() if c.name == name), None)

    def insert_class(self, name: str, session_id: int | None) -> SchoolClass:
        self.calls["insert_class"] += 1
        if any(c.name == name for c in self.classes.values()):
            raise StoreError(f"duplicate key value violates unique constraint: classes.name={name!r}")
        school_class = SchoolClass(id=self._next_id(EntityKind.CLASS), name=name, session_id=session_id)
        self.classes[school_class.id] = school_class
        return school_class

    def update_class(self, class_id: int, name: str, session_id: int | None) -> SchoolClass:
        self.calls["update_class"] += 1
        current = self.classes.get(class_id)
        if current is None:
            raise StoreError(f"class not found: id={class_id}")
        if any(c.name == name and c.id != class_id for c in self.classes.values()):
            raise StoreError(f"duplicate key value violates unique constraint: classes.name={name!r}")
        updated = replace(current, name=name, session_id=session_id)
        self.classes[class_id] = updated
        return updated

    def list_classes(self, name_contains: str | None = None) -> list[SchoolClass]:
        self.calls["list_classes"] += 1
        found = [
            c for c in self.classes.values()
            if c.status is RecordStatus.ACTIVE and _contains(c.name, name_contains)
        ]
        return sorted(found, key=lambda c: c.name)

    # --- exams ----------------------------------------------------------
    def find_exam(self, exam_name: str, exam_date: str) -> Exam | None:
        self.calls["find_exam"] += 1
        return next(
            (e for e in self.exams.values() if e.exam_name == exam_name and e.exam_date == exam_date),
            None,
        )

    def insert_exam(
        self, exam_name: str, exam_date: str, class_id: int | None, is_upcoming: bool
    ) -> Exam:
        self.calls["insert_exam"] += 1
        if any(e.exam_name == exam_name and e.exam_date == exam_date for e in self.exams.values()):
            raise StoreError(
                f"duplicate key value violates unique constraint: exams=({exam_name!r}, {exam_date!r})"
            )
        exam = Exam(
            id=self._next_id(EntityKind.EXAM),
            exam_name=exam_name,
            exam_date=exam_date,
            class_id=class_id,
            is_upcoming=is_upcoming,
        )
        self.exams[exam.id] = exam
        return exam

    def get_exam(self, exam_id: int) -> Exam | None:
        self.calls["get_exam"] += 1
        return self.exams.get(exam_id)

    def update_exam(
        self, exam_id: int, exam_name: str, exam_date: str, class_id: int | None, is_upcoming: bool
    ) -> Exam:
        self.calls["update_exam"] += 1
        exam = self.exams.get(exam_id)
        if exam is None:
            raise StoreError(f"exam not found: id={exam_id}")
        if any(
            e.exam_name == exam_name and e.exam_date == exam_date and e.id != exam_id
            for e in self.exams.values()
        ):
            raise StoreError(
                f"duplicate key value violates unique constraint: exams=({exam_name!r}, {exam_date!r})"
            )
        updated = replace(
            exam, exam_name=exam_name, exam_date=exam_date, class_id=class_id, is_upcoming=is_upcoming
        )
        self.exams[exam_id] = updated
        return updated

    def list_exams(self, name_contains: str | None = None) -> list[Exam]:
        self.calls["list_exams"] += 1
        found = [
            e for e in self.exams.values()
            if e.status is RecordStatus.ACTIVE and _contains(e.exam_name, name_contains)
        ]
        return sorted(found, key=lambda e: (e.exam_date, e.id))

    def list_upcoming_exams(self, since: str, limit: int) -> list[Exam]:
        self.calls["list_upcoming_exams"] += 1
        upcoming = [
            e for e in self.exams.values()
            if e.status is RecordStatus.ACTIVE and e.exam_date >= since
        ]
        return sorted(upcoming, key=lambda e: e.exam_date)[:limit]

    # --- results --------------------------------------------------------
    def _active_conflict(self, exam_id: int, roll_no: str, exclude_id: int | None = None) -> bool:
        return any(
            r.exam_id == exam_id
            and r.roll_no == roll_no
            and r.status is RecordStatus.ACTIVE
            and r.id != exclude_id
            for r in self.results.values()
        )

    def _build_result(self, result_id: int, payload: ResultPayload, created_at: datetime) -> Result:
        return Result(
            id=result_id,
            exam_id=payload.exam_id,
            roll_no=payload.roll_no,
            student_name=payload.student_name,
            registration_no=payload.registration_no,
            dob=payload.dob,
            mobile=payload.mobile,
            marks=payload.marks,
            status_text=payload.status_text,
            result_status=payload.result_status,
            status=payload.status,
            created_at=created_at,
        )

    def find_active_result(self, exam_id: int, roll_no: str) -> Result | None:
        self.calls["find_active_result"] += 1
        return next(
            (
                r for r in self.results.values()
                if r.exam_id == exam_id and r.roll_no == roll_no and r.status is RecordStatus.ACTIVE
            ),
            None,
        )

    def get_result(self, result_id: int) -> Result | None:
        self.calls["get_result"] += 1
        return self.results.get(result_id)

    def insert_result(self, payload: ResultPayload) -> Result:
        self.calls["insert_result"] += 1
        if self._active_conflict(payload.exam_id, payload.roll_no):
            raise StoreError(
                f"duplicate key value violates unique constraint: results=({payload.exam_id}, {payload.roll_no!r})"
            )
        result = self._build_result(self._next_id(EntityKind.RESULT), payload, datetime.now(UTC))
        self.results[result.id] = result
        return result

    def insert_results(self, payloads: Sequence[ResultPayload]) -> int:
        self.calls["insert_results"] += 1
        seen: set[tuple[int, str]] = set()
        for p in payloads:
            key = (p.exam_id, p.roll_no)
            if key in seen or self._active_conflict(p.exam_id, p.roll_no):
                raise StoreError(
                    f"duplicate key value violates unique constraint: results=({p.exam_id}, {p.roll_no!r})"
                )
            seen.add(key)
        now = datetime.now(UTC)
        for p in payloads:
            result = self._build_result(self._next_id(EntityKind.RESULT), p, now)
            self.results[result.id] = result
        return len(payloads)

    def update_result(self, result_id: int, payload: ResultPayload) -> Result:
        self.calls["update_result"] += 1
        current = self.results.get(result_id)
        if current is None:
            raise StoreError(f"result not found: id={result_id}")
        if self._active_conflict(payload.exam_id, payload.roll_no, exclude_id=result_id):
            raise StoreError(
                f"duplicate key value violates unique constraint: results=({payload.exam_id}, {payload.roll_no!r})"
            )
        # update では status を変更しない (soft delete は soft_delete 経由のみ)
        updated = replace(
            self._build_result(result_id, payload, current.created_at or datetime.now(UTC)),
            status=current.status,
        )
        self.results[result_id] = updated
        return updated

    def search_results(
        self,
        *,
        roll_no: str | None = None,
        registration_no: str | None = None,
        exam_id: int | None = None,
    ) -> list[Result]:
        self.calls["search_results"] += 1
        found = []
        for r in self.results.values():
            if r.status is not RecordStatus.ACTIVE or not r.is_published:
                continue
            if roll_no is not None and r.roll_no != roll_no:
                continue
            if registration_no is not None and r.registration_no != registration_no:
                continue
            if exam_id is not None and r.exam_id != exam_id:
                continue
            found.append(r)
        return sorted(found, key=lambda r: r.id)

    def list_results(
        self, contains: str | None = None, *, limit: int = 10, offset: int = 0
    ) -> list[Result]:
        self.calls["list_results"] += 1
        found = [
            r for r in self.results.values()
            if r.status is RecordStatus.ACTIVE
            and (
                contains is None
                or any(_contains(v, contains) for v in (r.student_name, r.registration_no, r.roll_no))
            )
        ]
        # 新しい順 (同一バッチは created_at が同じなので id で並べる)
        found.sort(key=lambda r: (r.created_at or datetime.min.replace(tzinfo=UTC), r.id), reverse=True)
        return found[offset:offset + limit]

    # --- soft delete ----------------------------------------------------
    def soft_delete(self, kind: EntityKind, record_id: int) -> None:
        self.calls["soft_delete"] += 1
        table = {
            EntityKind.SESSION: self.sessions,
            EntityKind.CLASS: self.classes,
            EntityKind.EXAM: self.exams,
            EntityKind.RESULT: self.results,
        }[kind]
        record = table.get(record_id)
        if record is None:
            raise StoreError(f"{kind.value} not found: id={record_id}")
        table[record_id] = replace(record, status=RecordStatus.INACTIVE)
