from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

"""ErrorRecord model for import error reporting.

One ErrorRecord per failed row, failed batch, or file-level rejection. The same
record feeds three outputs:

- the in-memory error list returned to the caller (``message``)
- the downloadable error spreadsheet (``to_report_row`` -> {row, error})
- the JSON Lines error log (``to_json_line``, fixed key set)

``row`` is the 1-based data-row number, ``"-"`` for batch-level errors, or
``None`` for file-level errors (rendered as ``"-"`` in the outputs).
"""

__all__ = [
    "ErrorRecord",
    "BATCH_ROW",
    "STRUCTURAL_ERROR",
    "VALIDATION_ERROR",
    "RESOLUTION_ERROR",
    "DUPLICATE_ERROR",
    "STORAGE_ERROR",
]

BATCH_ROW = "-"

# error_type 分類 (UPPER_SNAKE)
STRUCTURAL_ERROR = "STRUCTURAL_ERROR"
VALIDATION_ERROR = "VALIDATION_ERROR"
RESOLUTION_ERROR = "RESOLUTION_ERROR"
DUPLICATE_ERROR = "DUPLICATE_ERROR"
STORAGE_ERROR = "STORAGE_ERROR"


@dataclass(frozen=True)
class ErrorRecord:
    """Structured import error.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        file: uploaded filename
        row: 1-based data-row number, "-" for a batch, None for the whole file
        error_type: classification in UPPER_SNAKE_CASE
        error: human-readable message
    """
    timestamp: str  # ISO8601 UTC
    file: str
    row: int | str | None
    error_type: str  # UPPER_SNAKE
    error: str

    @staticmethod
    def create(file: str, row: int | str | None, error_type: str, error: str) -> ErrorRecord:
        """Create a new ErrorRecord stamped with the current UTC time."""
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ErrorRecord(
            timestamp=ts,
            file=file,
            row=row,
            error_type=error_type,
            error=error,
        )

    @property
    def report_row(self) -> int | str:
        return BATCH_ROW if self.row is None else self.row

    @property
    def message(self) -> str:
        """Display form: ``Row <n>: <error>``; file-level errors are shown bare."""
        if self.row is None:
            return self.error
        return f"Row {self.row}: {self.error}"

    def to_report_row(self) -> dict[str, int | str]:
        return {"row": self.report_row, "error": self.error}

    def to_json_line(self) -> str:
        """Serialize to one JSON Lines entry (no extra keys)."""
        data = asdict(self)
        data["row"] = self.report_row
        return json.dumps(data, ensure_ascii=False)
