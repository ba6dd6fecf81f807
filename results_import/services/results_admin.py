from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from ..db.store import EntityKind, ResultStore
from ..models.entities import (
    RESULT_STATUS_CHOICES,
    STATUS_TEXT_CHOICES,
    Exam,
    Result,
    ResultDefaults,
    ResultPayload,
    SchoolClass,
    derive_is_upcoming,
    normalize_exam_date,
    resolve_timezone,
)
from ..models.import_row import ImportRow, RowCoercionError
from .entity_resolver import EntityResolver

logger = logging.getLogger(__name__)

"""Single-record administration of results, exams and classes.

The bulk importer covers uploads; these operations cover the one-at-a-time
admin flows:

- results: save (insert / edit), soft-delete, student search, admin listing
- exams: create / edit from a form, move the date, list, upcoming
- classes: create / rename, list, soft-delete
- sessions: soft-delete

Role checks belong to the caller.
"""

__all__ = [
    "DuplicateResultError",
    "ResultFormError",
    "ResultsAdmin",
]

UPCOMING_LIMIT = 3
RESULTS_PAGE_SIZE = 10


class ResultFormError(ValueError):
    """Raised when a result / exam / class form is incomplete or malformed."""


class DuplicateResultError(ResultFormError):
    """Raised when a natural key is already taken.

    (exam, roll_no) among active results, (exam_name, exam_date) among exams,
    or a class name.
    """


def _clean(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class ResultsAdmin:
    def __init__(
        self,
        store: ResultStore,
        *,
        defaults: ResultDefaults | None = None,
        timezone: str = "UTC",
    ) -> None:
        resolve_timezone(timezone)
        self.store = store
        self.defaults = defaults or ResultDefaults()
        self.timezone = timezone

    # --- results --------------------------------------------------------
    def save_result(self, form: Mapping[str, Any], result_id: int | None = None) -> Result:
        """Insert a result, or update ``result_id`` in place.

        ``form`` uses the upload column names. Session / class / exam are
        resolved (created if absent). A second active result for the same
        exam and roll number is refused unless it is the row being edited.

        Raises:
            ResultFormError: required fields missing, marks not numeric,
                unknown status value, or ``result_id`` not found
            DuplicateResultError: another active result holds (exam, roll_no)
            StoreError: store failure
        """
        try:
            row = ImportRow.from_values(0, form)
        except RowCoercionError as e:
            raise ResultFormError(str(e)) from e
        if not (row.exam_name and row.exam_date and row.class_name and row.roll_no and row.student_name):
            raise ResultFormError("Exam, date, class, roll no, student name required.")
        if row.status_text is not None and row.status_text not in STATUS_TEXT_CHOICES:
            raise ResultFormError(f"status_text must be one of {', '.join(STATUS_TEXT_CHOICES)}.")
        if row.result_status is not None and row.result_status not in RESULT_STATUS_CHOICES:
            raise ResultFormError(f"result_status must be one of {', '.join(RESULT_STATUS_CHOICES)}.")
        if result_id is not None and self.store.get_result(result_id) is None:
            raise ResultFormError(f"Result not found: {result_id}")

        resolver = EntityResolver(self.store, timezone=self.timezone)
        session_id = resolver.resolve_session(row.session)
        class_id = resolver.resolve_class(row.class_name, session_id)
        exam_id = resolver.resolve_exam(row.exam_name, row.exam_date, class_id)
        if exam_id is None:
            raise ResultFormError("Exam could not be resolved.")

        existing = self.store.find_active_result(exam_id, row.roll_no)
        if existing is not None and existing.id != result_id:
            raise DuplicateResultError("Same exam + roll number already exists.")

        payload = ResultPayload.from_import_row(row, exam_id, self.defaults)
        if result_id is not None:
            result = self.store.update_result(result_id, payload)
            logger.info("result updated id=%s exam_id=%s roll_no=%s", result.id, exam_id, row.roll_no)
        else:
            result = self.store.insert_result(payload)
            logger.info("result saved id=%s exam_id=%s roll_no=%s", result.id, exam_id, row.roll_no)
        return result

    def list_results(
        self, term: str | None = None, *, page: int = 0, page_size: int = RESULTS_PAGE_SIZE
    ) -> list[Result]:
        """Admin listing, newest first.

        ``term`` matches a substring of student name, registration no or roll no.
        Without a term this is the recent-results list.
        """
        if page < 0 or page_size < 1:
            raise ResultFormError("page must be >= 0 and page_size >= 1.")
        return self.store.list_results(_clean(term), limit=page_size, offset=page * page_size)

    # --- soft delete ----------------------------------------------------
    def soft_delete_result(self, result_id: int) -> None:
        self.store.soft_delete(EntityKind.RESULT, result_id)

    def soft_delete_exam(self, exam_id: int) -> None:
        self.store.soft_delete(EntityKind.EXAM, exam_id)

    def soft_delete_class(self, class_id: int) -> None:
        self.store.soft_delete(EntityKind.CLASS, class_id)

    def soft_delete_session(self, session_id: int) -> None:
        self.store.soft_delete(EntityKind.SESSION, session_id)

    # --- lookups --------------------------------------------------------
    def search_results(
        self,
        *,
        roll_no: str | None = None,
        registration_no: str | None = None,
        exam_id: int | None = None,
    ) -> list[Result]:
        """Student-facing search: active, published results only.

        At least one of roll_no / registration_no is required.
        """
        roll_no = _clean(roll_no)
        registration_no = _clean(registration_no)
        if roll_no is None and registration_no is None:
            raise ResultFormError("Roll number or registration number required.")
        return self.store.search_results(
            roll_no=roll_no, registration_no=registration_no, exam_id=exam_id
        )

    def find_result(self, exam_id: int, roll_no: str) -> Result | None:
        roll_no = roll_no.strip()
        if not roll_no:
            raise ResultFormError("Roll No required for search.")
        return self.store.find_active_result(exam_id, roll_no)

    # --- classes --------------------------------------------------------
    def save_class(
        self, name: str, session_id: int | None = None, class_id: int | None = None
    ) -> SchoolClass:
        """Create a class, or rename / relink one.

        Without ``class_id`` an existing class of the same name is updated
        rather than duplicated.

        Raises:
            ResultFormError: blank name
            DuplicateResultError: renaming onto another class's name
        """
        name = _clean(name)
        if name is None:
            raise ResultFormError("Class name required.")
        same_name = self.store.find_class(name)
        if class_id is None and same_name is not None:
            class_id = same_name.id
        elif same_name is not None and same_name.id != class_id:
            raise DuplicateResultError("Class name already exists.")

        if class_id is not None:
            school_class = self.store.update_class(class_id, name, session_id)
            logger.info("class updated id=%s name=%s", school_class.id, name)
        else:
            school_class = self.store.insert_class(name, session_id)
            logger.info("class saved id=%s name=%s", school_class.id, name)
        return school_class

    def list_classes(self, term: str | None = None) -> list[SchoolClass]:
        """Active classes by name; ``term`` filters by substring."""
        return self.store.list_classes(_clean(term))

    # --- exams ----------------------------------------------------------
    def _exam_date(self, raw: Any) -> str:
        exam_date = normalize_exam_date(str(raw), self.timezone) if raw is not None else None
        if exam_date is None:
            raise ResultFormError("Exam date/time invalid.")
        return exam_date

    def _check_exam_key(self, exam_name: str, exam_date: str, exam_id: int | None) -> None:
        other = self.store.find_exam(exam_name, exam_date)
        if other is not None and other.id != exam_id:
            raise DuplicateResultError("Same exam date already exists.")

    def save_exam(self, form: Mapping[str, Any], now: datetime | None = None) -> Exam:
        """Create an exam from ``exam_name``, ``exam_date``, ``class_name`` (+ optional ``session``).

        The date is normalised (see normalize_exam_date); session and class are
        resolved or created; ``is_upcoming`` is derived from the date.

        Raises:
            ResultFormError: a required field is blank or the date does not parse
            DuplicateResultError: an exam with this name and date exists
        """
        exam_name = _clean(form.get("exam_name"))
        class_name = _clean(form.get("class_name"))
        if not (exam_name and _clean(form.get("exam_date")) and class_name):
            raise ResultFormError("Exam name, date, class required.")
        exam_date = self._exam_date(form.get("exam_date"))
        self._check_exam_key(exam_name, exam_date, None)

        resolver = EntityResolver(self.store, timezone=self.timezone)
        class_id = resolver.resolve_class(class_name, resolver.resolve_session(_clean(form.get("session"))))
        is_upcoming = derive_is_upcoming(exam_date, now=now, timezone=self.timezone)
        exam = self.store.insert_exam(exam_name, exam_date, class_id, is_upcoming)
        logger.info("exam saved id=%s name=%s date=%s", exam.id, exam_name, exam_date)
        return exam

    def edit_exam(
        self,
        exam_id: int,
        *,
        exam_name: str | None = None,
        exam_date: str | None = None,
        class_id: int | None = None,
        is_upcoming: bool | None = None,
        now: datetime | None = None,
    ) -> Exam:
        """Update an exam; fields left as None keep their stored value.

        A new date re-derives ``is_upcoming`` unless the flag is given explicitly.

        Raises:
            ResultFormError: unknown exam, blank name, or unparseable date
            DuplicateResultError: another exam already has this name and date
        """
        exam = self.store.get_exam(exam_id)
        if exam is None:
            raise ResultFormError(f"Exam not found: {exam_id}")
        name = exam.exam_name
        if exam_name is not None:
            name = _clean(exam_name)
            if name is None:
                raise ResultFormError("Exam name required.")
        new_date = exam.exam_date if exam_date is None else self._exam_date(exam_date)
        self._check_exam_key(name, new_date, exam_id)

        if is_upcoming is None:
            is_upcoming = (
                exam.is_upcoming if exam_date is None
                else derive_is_upcoming(new_date, now=now, timezone=self.timezone)
            )
        updated = self.store.update_exam(
            exam_id, name, new_date, exam.class_id if class_id is None else class_id, is_upcoming
        )
        logger.info("exam updated id=%s name=%s date=%s", exam_id, name, new_date)
        return updated

    def set_exam_date(self, exam_id: int, exam_date: str, now: datetime | None = None) -> Exam:
        """Move an exam to ``exam_date`` and refresh is_upcoming."""
        return self.edit_exam(exam_id, exam_date=exam_date, now=now)

    def list_exams(self, term: str | None = None) -> list[Exam]:
        """Active exams by date, soonest first; ``term`` filters by name substring."""
        return self.store.list_exams(_clean(term))

    def upcoming_exams(self, limit: int = UPCOMING_LIMIT, now: datetime | None = None) -> list[Exam]:
        """Active exams dated today or later, soonest first."""
        current = (now or datetime.now(UTC)).astimezone(resolve_timezone(self.timezone))
        return self.store.list_upcoming_exams(current.date().isoformat(), limit)
