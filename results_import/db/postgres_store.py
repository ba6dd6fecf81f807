from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from decimal import Decimal
from pathlib import Path
from typing import Any

import psycopg2

from ..models.entities import (
    RESULT_COLUMNS,
    Exam,
    RecordStatus,
    Result,
    ResultPayload,
    SchoolClass,
    Session,
)
from .batch_insert import BatchInsertError, batch_insert
from .store import EntityKind, StoreError

"""PostgreSQL ResultStore backed by a psycopg2 connection.

Every public operation runs in its own short transaction (commit on success,
rollback + StoreError on failure). ``insert_results`` is therefore atomic per
batch and independent of earlier batches.
"""

__all__ = [
    "PostgresResultStore",
    "ensure_schema",
    "SCHEMA_PATH",
]

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).with_name("schema.sql")

_SESSION_COLS = "id, name, status"
_CLASS_COLS = "id, name, session_id, status"
_EXAM_COLS = "id, exam_name, exam_date, class_id, is_upcoming, status"
_RESULT_COLS = (
    "id, exam_id, roll_no, student_name, registration_no, dob, mobile, marks, "
    "status_text, result_status, status, created_at"
)


def ensure_schema(conn: Any) -> None:
    """Create tables and indexes if they do not exist yet."""
    ddl = SCHEMA_PATH.read_text(encoding="utf-8")
    try:
        with conn.cursor() as cur:
            cur.execute(ddl)
        conn.commit()
    except psycopg2.Error as e:
        conn.rollback()
        raise StoreError(f"schema setup failed: {e}") from e


def _like(term: str) -> str:
    """ILIKE pattern matching ``term`` anywhere; % and _ in the term are literal."""
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _session(row: Sequence[Any]) -> Session:
    return Session(id=row[0], name=row[1], status=RecordStatus(row[2]))


def _class(row: Sequence[Any]) -> SchoolClass:
    return SchoolClass(id=row[0], name=row[1], session_id=row[2], status=RecordStatus(row[3]))


def _exam(row: Sequence[Any]) -> Exam:
    return Exam(
        id=row[0],
        exam_name=row[1],
        exam_date=row[2],
        class_id=row[3],
        is_upcoming=bool(row[4]),
        status=RecordStatus(row[5]),
    )


def _result(row: Sequence[Any]) -> Result:
    marks = row[7]
    if isinstance(marks, Decimal):
        marks = float(marks)
    return Result(
        id=row[0],
        exam_id=row[1],
        roll_no=row[2],
        student_name=row[3],
        registration_no=row[4],
        dob=row[5],
        mobile=row[6],
        marks=marks,
        status_text=row[8],
        result_status=row[9],
        status=RecordStatus(row[10]),
        created_at=row[11],
    )


class PostgresResultStore:
    def __init__(self, conn: Any, *, page_size: int = 1000) -> None:
        self._conn = conn
        self._page_size = page_size

    @contextmanager
    def _cursor(self) -> Iterator[Any]:
        try:
            with self._conn.cursor() as cur:
                yield cur
            self._conn.commit()
        except (psycopg2.Error, BatchInsertError) as e:
            self._conn.rollback()
            raise StoreError(str(e).strip()) from e

    def _fetch_one(self, sql: str, params: Sequence[Any]) -> Sequence[Any] | None:
        with self._cursor() as cur:
            cur.execute(sql, params)
            return cur.fetchone()

    def _fetch_all(self, sql: str, params: Sequence[Any]) -> list[Sequence[Any]]:
        with self._cursor() as cur:
            cur.execute(sql, params)
            return list(cur.fetchall())

    def _returning(self, sql: str, params: Sequence[Any]) -> Sequence[Any]:
        row = self._fetch_one(sql, params)
        if row is None:
            raise StoreError("statement returned no row")
        return row

    # --- sessions -------------------------------------------------------
    def find_session(self, name: str) -> Session | None:
        row = self._fetch_one(f"SELECT {_SESSION_COLS} FROM sessions WHERE name = %s", (name,))
        return _session(row) if row else None

    def insert_session(self, name: str) -> Session:
        row = self._returning(
            f"INSERT INTO sessions (name, status) VALUES (%s, %s) RETURNING {_SESSION_COLS}",
            (name, RecordStatus.ACTIVE.value),
        )
        return _session(row)

    # --- classes --------------------------------------------------------
    def find_class(self, name: str) -> SchoolClass | None:
        row = self._fetch_one(f"SELECT {_CLASS_COLS} FROM classes WHERE name = %s", (name,))
        return _class(row) if row else None

    def insert_class(self, name: str, session_id: int | None) -> SchoolClass:
        row = self._returning(
            f"INSERT INTO classes (name, session_id, status) VALUES (%s, %s, %s) RETURNING {_CLASS_COLS}",
            (name, session_id, RecordStatus.ACTIVE.value),
        )
        return _class(row)

    def update_class(self, class_id: int, name: str, session_id: int | None) -> SchoolClass:
        row = self._fetch_one(
            f"UPDATE classes SET name = %s, session_id = %s WHERE id = %s RETURNING {_CLASS_COLS}",
            (name, session_id, class_id),
        )
        if row is None:
            raise StoreError(f"class not found: id={class_id}")
        return _class(row)

    def list_classes(self, name_contains: str | None = None) -> list[SchoolClass]:
        sql = f"SELECT {_CLASS_COLS} FROM classes WHERE status = %s"
        params: list[Any] = [RecordStatus.ACTIVE.value]
        if name_contains is not None:
            sql += " AND name ILIKE %s"
            params.append(_like(name_contains))
        rows = self._fetch_all(sql + " ORDER BY name ASC", params)
        return [_class(r) for r in rows]

    # --- exams ----------------------------------------------------------
    def find_exam(self, exam_name: str, exam_date: str) -> Exam | None:
        row = self._fetch_one(
            f"SELECT {_EXAM_COLS} FROM exams WHERE exam_name = %s AND exam_date = %s",
            (exam_name, exam_date),
        )
        return _exam(row) if row else None

    def insert_exam(
        self, exam_name: str, exam_date: str, class_id: int | None, is_upcoming: bool
    ) -> Exam:
        row = self._returning(
            "INSERT INTO exams (exam_name, exam_date, class_id, is_upcoming, status) "
            f"VALUES (%s, %s, %s, %s, %s) RETURNING {_EXAM_COLS}",
            (exam_name, exam_date, class_id, is_upcoming, RecordStatus.ACTIVE.value),
        )
        return _exam(row)

    def get_exam(self, exam_id: int) -> Exam | None:
        row = self._fetch_one(f"SELECT {_EXAM_COLS} FROM exams WHERE id = %s", (exam_id,))
        return _exam(row) if row else None

    def update_exam(
        self, exam_id: int, exam_name: str, exam_date: str, class_id: int | None, is_upcoming: bool
    ) -> Exam:
        row = self._fetch_one(
            "UPDATE exams SET exam_name = %s, exam_date = %s, class_id = %s, is_upcoming = %s "
            f"WHERE id = %s RETURNING {_EXAM_COLS}",
            (exam_name, exam_date, class_id, is_upcoming, exam_id),
        )
        if row is None:
            raise StoreError(f"exam not found: id={exam_id}")
        return _exam(row)

    def list_exams(self, name_contains: str | None = None) -> list[Exam]:
        sql = f"SELECT {_EXAM_COLS} FROM exams WHERE status = %s"
        params: list[Any] = [RecordStatus.ACTIVE.value]
        if name_contains is not None:
            sql += " AND exam_name ILIKE %s"
            params.append(_like(name_contains))
        rows = self._fetch_all(sql + " ORDER BY exam_date ASC, id ASC", params)
        return [_exam(r) for r in rows]

    def list_upcoming_exams(self, since: str, limit: int) -> list[Exam]:
        rows = self._fetch_all(
            f"SELECT {_EXAM_COLS} FROM exams WHERE status = %s AND exam_date >= %s "
            "ORDER BY exam_date ASC LIMIT %s",
            (RecordStatus.ACTIVE.value, since, limit),
        )
        return [_exam(r) for r in rows]

    # --- results --------------------------------------------------------
    def find_active_result(self, exam_id: int, roll_no: str) -> Result | None:
        row = self._fetch_one(
            f"SELECT {_RESULT_COLS} FROM results WHERE exam_id = %s AND roll_no = %s AND status = %s",
            (exam_id, roll_no, RecordStatus.ACTIVE.value),
        )
        return _result(row) if row else None

    def get_result(self, result_id: int) -> Result | None:
        row = self._fetch_one(f"SELECT {_RESULT_COLS} FROM results WHERE id = %s", (result_id,))
        return _result(row) if row else None

    def insert_result(self, payload: ResultPayload) -> Result:
        cols = ", ".join(RESULT_COLUMNS)
        placeholders = ", ".join(["%s"] * len(RESULT_COLUMNS))
        row = self._returning(
            f"INSERT INTO results ({cols}) VALUES ({placeholders}) RETURNING {_RESULT_COLS}",
            payload.as_row(),
        )
        return _result(row)

    def insert_results(self, payloads: Sequence[ResultPayload]) -> int:
        with self._cursor() as cur:
            result = batch_insert(
                cursor=cur,
                table="results",
                columns=RESULT_COLUMNS,
                rows=[p.as_row() for p in payloads],
                page_size=self._page_size,
            )
        logger.debug("results batch committed rows=%d", result.inserted_rows)
        return result.inserted_rows

    def update_result(self, result_id: int, payload: ResultPayload) -> Result:
        # status 列は更新しない (soft delete は soft_delete 経由)
        columns = [c for c in RESULT_COLUMNS if c != "status"]
        values = [v for c, v in zip(RESULT_COLUMNS, payload.as_row(), strict=True) if c != "status"]
        assignments = ", ".join(f"{c} = %s" for c in columns)
        row = self._fetch_one(
            f"UPDATE results SET {assignments} WHERE id = %s RETURNING {_RESULT_COLS}",
            (*values, result_id),
        )
        if row is None:
            raise StoreError(f"result not found: id={result_id}")
        return _result(row)

    def search_results(
        self,
        *,
        roll_no: str | None = None,
        registration_no: str | None = None,
        exam_id: int | None = None,
    ) -> list[Result]:
        clauses = ["status = %s", "result_status = %s"]
        params: list[Any] = [RecordStatus.ACTIVE.value, "published"]
        if roll_no is not None:
            clauses.append("roll_no = %s")
            params.append(roll_no)
        if registration_no is not None:
            clauses.append("registration_no = %s")
            params.append(registration_no)
        if exam_id is not None:
            clauses.append("exam_id = %s")
            params.append(exam_id)
        rows = self._fetch_all(
            f"SELECT {_RESULT_COLS} FROM results WHERE {' AND '.join(clauses)} ORDER BY id",
            params,
        )
        return [_result(r) for r in rows]

    def list_results(
        self, contains: str | None = None, *, limit: int = 10, offset: int = 0
    ) -> list[Result]:
        sql = f"SELECT {_RESULT_COLS} FROM results WHERE status = %s"
        params: list[Any] = [RecordStatus.ACTIVE.value]
        if contains is not None:
            pattern = _like(contains)
            sql += " AND (student_name ILIKE %s OR registration_no ILIKE %s OR roll_no ILIKE %s)"
            params.extend([pattern, pattern, pattern])
        sql += " ORDER BY created_at DESC, id DESC LIMIT %s OFFSET %s"
        params.extend([limit, offset])
        return [_result(r) for r in self._fetch_all(sql, params)]

    # --- soft delete ----------------------------------------------------
    def soft_delete(self, kind: EntityKind, record_id: int) -> None:
        with self._cursor() as cur:
            cur.execute(
                f"UPDATE {kind.value} SET status = %s WHERE id = %s",
                (RecordStatus.INACTIVE.value, record_id),
            )
            updated = cur.rowcount
        if updated == 0:
            raise StoreError(f"{kind.value} not found: id={record_id}")
