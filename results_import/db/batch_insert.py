from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from psycopg2.extras import execute_values

"""DB batch insert helper.

Batched INSERT via ``psycopg2.extras.execute_values``. The caller owns the
transaction: PostgresResultStore commits or rolls back each batch on its own
so that one failed batch leaves earlier batches persisted.
"""

__all__ = [
    "BatchInsertError",
    "InsertResult",
    "batch_insert",
]

# 挿入対象として許可するテーブル (SQL 組み立て時のサニタイズ)
ALLOWED_TABLES = frozenset({"sessions", "classes", "exams", "results"})


class BatchInsertError(Exception):
    pass


@dataclass(frozen=True)
class InsertResult:
    inserted_rows: int


def batch_insert(
    cursor: Any,
    table: str,
    columns: Sequence[str],
    rows: Iterable[Sequence[Any]],
    page_size: int = 1000,
) -> InsertResult:
    """Perform a batched INSERT using psycopg2.extras.execute_values.

    Parameters
    ----------
    cursor: psycopg2 cursor
    table: target table, one of ALLOWED_TABLES
    columns: insert columns, in the same order as each row's values
    rows: row value sequences
    page_size: rows per generated statement

    Raises
    ------
    BatchInsertError: unknown table, or the driver rejected the statement
    """
    if table not in ALLOWED_TABLES:
        raise BatchInsertError(f"table not allowed: {table}")

    rows_list = list(rows)
    if not rows_list:
        return InsertResult(inserted_rows=0)

    cols_sql = ",".join(f'"{c}"' for c in columns)
    sql = f"INSERT INTO {table} ({cols_sql}) VALUES %s"

    try:
        execute_values(cursor, sql, rows_list, page_size=page_size)
    except Exception as e:
        raise BatchInsertError(str(e)) from e

    return InsertResult(inserted_rows=len(rows_list))
