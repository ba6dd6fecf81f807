from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, datetime
from pathlib import Path

import pandas as pd

from ..models.error_record import ErrorRecord
from ..services.row_validator import REQUIRED_COLUMNS

"""Spreadsheet outputs: the downloadable error report and the sample template.

Both are plain pandas DataFrames written through openpyxl; no styling.
"""

__all__ = [
    "ERROR_REPORT_COLUMNS",
    "ERROR_SHEET_NAME",
    "SAMPLE_ROWS",
    "error_report_path",
    "write_error_report",
    "write_sample_template",
]

ERROR_REPORT_COLUMNS = ["row", "error"]
ERROR_SHEET_NAME = "Errors"
SAMPLE_SHEET_NAME = "Sample"
TIMESTAMP_FMT = "%Y%m%d-%H%M%S"

SAMPLE_ROWS: list[dict[str, object]] = [
    {
        "exam_name": "GK 2026", "exam_date": "2026-02-08", "session": "2026",
        "class_name": "Class 5", "roll_no": "501", "registration_no": "202605000001",
        "student_name": "Amit Kumar", "dob": "2014-06-12", "mobile": "9876543210",
        "marks": 78, "status_text": "pass", "result_status": "published",
    },
    {
        "exam_name": "GK 2026", "exam_date": "2026-02-08", "session": "2026",
        "class_name": "Class 5", "roll_no": "502", "registration_no": "202605000002",
        "student_name": "Riya Singh", "dob": "2013-11-03", "mobile": "9876543211",
        "marks": 66, "status_text": "pass", "result_status": "published",
    },
    {
        "exam_name": "GK 2026", "exam_date": "2026-02-08", "session": "2026",
        "class_name": "Class 6", "roll_no": "601", "registration_no": "202606000001",
        "student_name": "Neha Gupta", "dob": "2012-04-18", "mobile": "9876543212",
        "marks": 54, "status_text": "pass", "result_status": "published",
    },
    {
        "exam_name": "GK 2026", "exam_date": "2026-02-08", "session": "2026",
        "class_name": "Class 6", "roll_no": "602", "registration_no": "202606000002",
        "student_name": "Karan Verma", "dob": "2012-10-22", "mobile": "9876543213",
        "marks": 41, "status_text": "fail", "result_status": "published",
    },
    {
        "exam_name": "GK 2026", "exam_date": "2026-02-08", "session": "2026",
        "class_name": "Class 7", "roll_no": "701", "registration_no": "202607000001",
        "student_name": "Anjali Rai", "dob": "2011-08-09", "mobile": "9876543214",
        "marks": 88, "status_text": "pass", "result_status": "published",
    },
]


def error_report_path(directory: Path, source_name: str, now: datetime | None = None) -> Path:
    """``<directory>/import-errors-<source stem>-<UTC stamp>.xlsx``"""
    stamp = (now or datetime.now(UTC)).strftime(TIMESTAMP_FMT)
    return directory / f"import-errors-{Path(source_name).stem}-{stamp}.xlsx"


def write_error_report(errors: Iterable[ErrorRecord], path: Path) -> Path:
    """Write one row per error (columns: row, error) to the ``Errors`` sheet."""
    df = pd.DataFrame([e.to_report_row() for e in errors], columns=ERROR_REPORT_COLUMNS)
    path.parent.mkdir(parents=True, exist_ok=True)
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        df.to_excel(writer, sheet_name=ERROR_SHEET_NAME, index=False)
    return path


def write_sample_template(path: Path, rows: list[dict[str, object]] | None = None) -> Path:
    """Write an import template: the required header plus example rows."""
    df = pd.DataFrame(SAMPLE_ROWS if rows is None else rows, columns=list(REQUIRED_COLUMNS))
    path.parent.mkdir(parents=True, exist_ok=True)
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        df.to_excel(writer, sheet_name=SAMPLE_SHEET_NAME, index=False)
    return path
