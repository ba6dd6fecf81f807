from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, date, datetime
from enum import Enum
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

if TYPE_CHECKING:
    from .import_row import ImportRow

"""Persistent entities of the results portal: Session, SchoolClass, Exam, Result.

These mirror the rows held by the result store (sessions / classes / exams /
results tables). Every entity carries a soft-delete ``status`` flag; admin
flows mark rows inactive instead of deleting them.

ResultPayload is the insert-ready projection of an ImportRow, staged by the
import orchestrator and written in batches.
"""

__all__ = [
    "RecordStatus",
    "Session",
    "SchoolClass",
    "Exam",
    "Result",
    "ResultDefaults",
    "ResultPayload",
    "STATUS_TEXT_CHOICES",
    "RESULT_STATUS_CHOICES",
    "RESULT_COLUMNS",
    "derive_is_upcoming",
    "normalize_exam_date",
    "resolve_timezone",
]

STATUS_TEXT_CHOICES = ("pass", "fail", "absent")
RESULT_STATUS_CHOICES = ("published", "draft")

# results テーブルへの挿入列 (id / created_at は DB 採番)
RESULT_COLUMNS = (
    "exam_id",
    "roll_no",
    "registration_no",
    "student_name",
    "dob",
    "mobile",
    "marks",
    "status_text",
    "result_status",
    "status",
)


class RecordStatus(Enum):
    """Soft-delete flag shared by all entities."""
    ACTIVE = "active"
    INACTIVE = "inactive"


@dataclass(frozen=True)
class Session:
    """Academic period (usually a year string). Unique by name."""
    id: int
    name: str
    status: RecordStatus = RecordStatus.ACTIVE


@dataclass(frozen=True)
class SchoolClass:
    """Grade / cohort. Unique by name alone; session link is informational."""
    id: int
    name: str
    session_id: int | None = None
    status: RecordStatus = RecordStatus.ACTIVE


@dataclass(frozen=True)
class Exam:
    """Named, dated assessment tied to a class. Identified by (exam_name, exam_date)."""
    id: int
    exam_name: str
    exam_date: str
    class_id: int | None = None
    is_upcoming: bool = False
    status: RecordStatus = RecordStatus.ACTIVE


@dataclass(frozen=True)
class Result:
    """One student's outcome for one exam. (exam_id, roll_no) unique among active rows."""
    id: int
    exam_id: int
    roll_no: str
    student_name: str
    registration_no: str | None = None
    dob: str | None = None
    mobile: str | None = None
    marks: float | None = None
    status_text: str = "pass"
    result_status: str = "published"
    status: RecordStatus = RecordStatus.ACTIVE
    created_at: datetime | None = None

    @property
    def is_published(self) -> bool:
        return self.result_status == "published"


@dataclass(frozen=True)
class ResultDefaults:
    """Values applied when a row leaves status_text / result_status empty."""
    status_text: str = "pass"
    result_status: str = "published"


@dataclass(frozen=True)
class ResultPayload:
    """Insert-ready Result (no id yet)."""
    exam_id: int
    roll_no: str
    student_name: str
    registration_no: str | None = None
    dob: str | None = None
    mobile: str | None = None
    marks: float | None = None
    status_text: str = "pass"
    result_status: str = "published"
    status: RecordStatus = RecordStatus.ACTIVE

    @classmethod
    def from_import_row(
        cls, row: ImportRow, exam_id: int, defaults: ResultDefaults | None = None
    ) -> ResultPayload:
        defaults = defaults or ResultDefaults()
        return cls(
            exam_id=exam_id,
            roll_no=row.roll_no or "",
            student_name=row.student_name or "",
            registration_no=row.registration_no,
            dob=row.dob,
            mobile=row.mobile,
            marks=row.marks,
            status_text=row.status_text or defaults.status_text,
            result_status=row.result_status or defaults.result_status,
        )

    def as_row(self) -> tuple[object, ...]:
        """Values in RESULT_COLUMNS order, ready for a parameterised INSERT."""
        return (
            self.exam_id,
            self.roll_no,
            self.registration_no,
            self.student_name,
            self.dob,
            self.mobile,
            self.marks,
            self.status_text,
            self.result_status,
            self.status.value,
        )


def derive_is_upcoming(exam_date: str | None, now: datetime | None = None, timezone: str = "UTC") -> bool:
    """True when exam_date lies after ``now``.

    Date-only values are read as midnight in ``timezone``. Values that do not
    parse as ISO dates are never upcoming.
    """
    if not exam_date:
        return False
    try:
        parsed = datetime.fromisoformat(exam_date.strip())
    except ValueError:
        try:
            parsed = datetime.combine(date.fromisoformat(exam_date.strip()[:10]), datetime.min.time())
        except ValueError:
            return False
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=resolve_timezone(timezone))
    current = now or datetime.now(UTC)
    return parsed > current


def resolve_timezone(name: str) -> ZoneInfo:
    """ZoneInfo for ``name``; unknown or malformed keys raise ValueError."""
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"unknown timezone: {name!r}") from e


def normalize_exam_date(raw: str, timezone: str = "UTC") -> str | None:
    """Canonical ISO text for an admin-entered exam date, or None if unparseable.

    - ``YYYY-MM-DD`` stays as is (same form the upload sheet uses)
    - ``YYYY-MM-DD HH:MM`` / ``...THH:MM`` without offset is read in ``timezone``
      and stored in UTC with a ``Z`` suffix
    - values with an offset keep their offset
    """
    text = raw.strip()
    if not text:
        return None
    try:
        return date.fromisoformat(text).isoformat()
    except ValueError:
        pass
    try:
        parsed = datetime.fromisoformat(text.replace(" ", "T", 1))
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        return parsed.isoformat()
    utc = parsed.replace(tzinfo=resolve_timezone(timezone)).astimezone(UTC)
    return utc.isoformat().replace("+00:00", "Z")
