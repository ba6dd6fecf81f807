from __future__ import annotations

from datetime import UTC, datetime

import pytest

from results_import.models.entities import (
    RESULT_COLUMNS,
    RecordStatus,
    Result,
    ResultDefaults,
    ResultPayload,
    derive_is_upcoming,
    normalize_exam_date,
    resolve_timezone,
)
from results_import.models.import_row import ImportRow

NOW = datetime(2026, 1, 15, 9, 0, tzinfo=UTC)


@pytest.mark.parametrize(
    "exam_date, expected",
    [
        ("2026-02-08", True),
        ("2025-12-31", False),
        ("2026-01-15T10:00:00", True),
        ("2026-01-15T08:00:00+00:00", False),
        ("not a date", False),
        ("", False),
        (None, False),
    ],
)
def test_derive_is_upcoming(exam_date, expected):
    assert derive_is_upcoming(exam_date, now=NOW) is expected


def test_derive_is_upcoming_uses_timezone_for_naive_dates():
    # 2026-01-15 00:00 Asia/Kolkata == 2026-01-14 18:30 UTC
    now = datetime(2026, 1, 14, 19, 0, tzinfo=UTC)
    assert derive_is_upcoming("2026-01-15", now=now, timezone="UTC") is True
    assert derive_is_upcoming("2026-01-15", now=now, timezone="Asia/Kolkata") is False


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("2026-02-08", "2026-02-08"),
        (" 2026-02-08 ", "2026-02-08"),
        ("2026-02-08 10:30", "2026-02-08T05:00:00Z"),
        ("2026-02-08T10:30:00", "2026-02-08T05:00:00Z"),
        ("2026-02-08T10:30:00+05:30", "2026-02-08T10:30:00+05:30"),
        ("08/02/2026", None),
        ("   ", None),
    ],
)
def test_normalize_exam_date(raw, expected):
    assert normalize_exam_date(raw, "Asia/Kolkata") == expected


def test_resolve_timezone():
    assert resolve_timezone("Asia/Kolkata").key == "Asia/Kolkata"
    for bad in ("Mars/Olympus", "../etc/passwd"):
        with pytest.raises(ValueError, match="unknown timezone"):
            resolve_timezone(bad)
    with pytest.raises(ValueError):
        derive_is_upcoming("2026-02-08", now=NOW, timezone="Mars/Olympus")


def test_payload_from_import_row_applies_defaults():
    row = ImportRow(row_number=1, roll_no="501", student_name="Amit", marks=78.0)
    payload = ResultPayload.from_import_row(row, exam_id=7)
    assert payload.exam_id == 7
    assert payload.status_text == "pass"
    assert payload.result_status == "published"
    assert payload.status is RecordStatus.ACTIVE


def test_payload_keeps_explicit_status_and_custom_defaults():
    row = ImportRow(row_number=1, roll_no="502", student_name="Riya", status_text="fail")
    payload = ResultPayload.from_import_row(
        row, exam_id=1, defaults=ResultDefaults(status_text="absent", result_status="draft")
    )
    assert payload.status_text == "fail"
    assert payload.result_status == "draft"


def test_payload_as_row_matches_result_columns():
    payload = ResultPayload(exam_id=1, roll_no="501", student_name="Amit", marks=78.0)
    values = dict(zip(RESULT_COLUMNS, payload.as_row(), strict=True))
    assert values["exam_id"] == 1
    assert values["roll_no"] == "501"
    assert values["marks"] == 78.0
    assert values["status"] == "active"


def test_result_is_published():
    assert Result(id=1, exam_id=1, roll_no="1", student_name="x").is_published
    assert not Result(id=1, exam_id=1, roll_no="1", student_name="x", result_status="draft").is_published
