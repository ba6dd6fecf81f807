from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Any

"""ImportRow model: typed projection of one uploaded spreadsheet row.

Raw cell values arrive loosely typed (int roll numbers, float marks, datetime
exam dates, padded strings). ``ImportRow.from_values`` coerces them once:

- text columns -> trimmed ``str`` or ``None`` (integral floats lose the ``.0``)
- date cells -> ISO date string
- ``marks`` -> ``float`` or ``None``; anything non-numeric raises RowCoercionError

ImportRow is never persisted; only its ResultPayload projection is.
"""

__all__ = [
    "ImportRow",
    "RowCoercionError",
    "TEXT_COLUMNS",
]

TEXT_COLUMNS = (
    "exam_name",
    "exam_date",
    "session",
    "class_name",
    "roll_no",
    "registration_no",
    "student_name",
    "dob",
    "mobile",
    "status_text",
    "result_status",
)


class RowCoercionError(ValueError):
    """Raised when a cell cannot be coerced to its column type."""

    def __init__(self, column: str, value: Any) -> None:
        self.column = column
        self.value = value
        super().__init__(f"{column} must be numeric (got {value!r})")


def _to_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, float):
        if math.isnan(value):
            return None
        if value.is_integer():
            return str(int(value))
        return str(value)
    if isinstance(value, datetime):
        # Excel 日付セルは datetime で来る。時刻 0:00 は日付のみとして扱う
        if value.time() == time(0, 0):
            return value.date().isoformat()
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    text = str(value).strip()
    return text or None


def _to_marks(value: Any) -> float | None:
    if value is None:
        return None
    if isinstance(value, bool):
        raise RowCoercionError("marks", value)
    if isinstance(value, (int, float)):
        number = float(value)
        return None if math.isnan(number) else number
    text = str(value).strip()
    if not text:
        return None
    try:
        number = float(text)
    except ValueError:
        raise RowCoercionError("marks", value) from None
    if math.isnan(number):
        raise RowCoercionError("marks", value)
    return number


@dataclass(frozen=True)
class ImportRow:
    """One candidate Result after coercion.

    row_number is the 1-based index among data rows (header excluded), the
    same number used in error messages and in the error report.
    """
    row_number: int
    exam_name: str | None = None
    exam_date: str | None = None
    session: str | None = None
    class_name: str | None = None
    roll_no: str | None = None
    registration_no: str | None = None
    student_name: str | None = None
    dob: str | None = None
    mobile: str | None = None
    marks: float | None = None
    status_text: str | None = None
    result_status: str | None = None
    raw_values: dict[str, Any] | None = None  # デバッグ用の元セル値

    @classmethod
    def from_values(cls, row_number: int, values: Mapping[str, Any]) -> ImportRow:
        """Build an ImportRow from a column -> cell mapping.

        Unknown columns are ignored; missing ones become ``None``.

        Raises:
            RowCoercionError: if ``marks`` is present but not numeric
        """
        text = {col: _to_text(values.get(col)) for col in TEXT_COLUMNS}
        return cls(
            row_number=row_number,
            marks=_to_marks(values.get("marks")),
            raw_values=dict(values),
            **text,
        )
