from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from ..models.import_row import ImportRow, RowCoercionError

"""Header and row validation for result uploads.

Two gates run before any row touches the store:

1. ``missing_columns``: the header must contain every REQUIRED_COLUMNS entry
   (order-independent). Any gap rejects the whole file.
2. ``validate_rows``: each row is coerced to an ImportRow and checked for the
   required field groups. Any problem in any row rejects the whole file.

Date formats, numeric ranges, and status_text / result_status membership
are not checked here.
"""

__all__ = [
    "REQUIRED_COLUMNS",
    "RowProblem",
    "ValidationOutcome",
    "missing_columns",
    "row_problems",
    "validate_row",
    "validate_rows",
]

REQUIRED_COLUMNS = (
    "exam_name",
    "exam_date",
    "session",
    "class_name",
    "roll_no",
    "registration_no",
    "student_name",
    "dob",
    "mobile",
    "marks",
    "status_text",
    "result_status",
)


@dataclass(frozen=True)
class RowProblem:
    row_number: int
    message: str  # 行番号プレフィックスなし


@dataclass
class ValidationOutcome:
    rows: list[ImportRow] = field(default_factory=list)
    problems: list[RowProblem] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.problems


def missing_columns(header: Iterable[Any]) -> list[str]:
    """Required columns absent from ``header``, in REQUIRED_COLUMNS order."""
    present = {str(c).strip() for c in header if c is not None}
    return [col for col in REQUIRED_COLUMNS if col not in present]


def row_problems(row: ImportRow) -> list[str]:
    """Required-field problems of one row, one message per missing group."""
    problems: list[str] = []
    if not row.roll_no or not row.student_name:
        problems.append("roll_no & student_name required")
    if not row.exam_name or not row.class_name:
        problems.append("exam_name & class_name required")
    return problems


def validate_row(row: ImportRow, index: int) -> list[str]:
    """Messages for one row, tagged with the 1-based row number (``index`` is 0-based)."""
    return [f"Row {index + 1}: {p}" for p in row_problems(row)]


def validate_rows(raw_rows: Sequence[Mapping[str, Any]]) -> ValidationOutcome:
    """Coerce and check every row; collect all problems instead of stopping at the first."""
    outcome = ValidationOutcome()
    for index, values in enumerate(raw_rows):
        row_number = index + 1
        try:
            row = ImportRow.from_values(row_number, values)
        except RowCoercionError as e:
            outcome.problems.append(RowProblem(row_number, str(e)))
            continue
        outcome.problems.extend(RowProblem(row_number, p) for p in row_problems(row))
        outcome.rows.append(row)
    return outcome
