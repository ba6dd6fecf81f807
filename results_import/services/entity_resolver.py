from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime
from typing import Any

from ..db.store import EntityKind, ResultStore
from ..models.entities import derive_is_upcoming

"""Get-or-create resolution of Session -> SchoolClass -> Exam.

One EntityResolver per import run. Each kind is looked up by its natural key
(session / class name, exam name + date); a miss inserts a new active row. Ids
are cached on the instance so repeated keys in one upload cost a single store
round-trip, and a fresh run never sees a stale id from an earlier one.

StoreError from the store propagates to the caller unchanged.
"""

__all__ = [
    "EntityResolver",
]

logger = logging.getLogger(__name__)


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


class EntityResolver:
    def __init__(self, store: ResultStore, *, timezone: str = "UTC", now: datetime | None = None) -> None:
        self.store = store
        self.timezone = timezone
        self.now = now  # None = 実時刻
        self.created: Counter[str] = Counter()
        self._cache: dict[tuple[str, Any], int] = {}

    def resolve_session(self, name: str | None) -> int | None:
        """Id of the session called ``name``, created if absent. Blank -> None."""
        name = _clean(name)
        if name is None:
            return None
        key = ("session", name)
        if key in self._cache:
            return self._cache[key]
        session = self.store.find_session(name)
        if session is None:
            session = self.store.insert_session(name)
            self.created[EntityKind.SESSION.value] += 1
            logger.debug("created session id=%s name=%s", session.id, name)
        self._cache[key] = session.id
        return session.id

    def resolve_class(self, name: str | None, session_id: int | None = None) -> int | None:
        """Id of the class called ``name``, created under ``session_id`` if absent.

        Classes are unique by name alone: an existing class is reused even when
        it belongs to another session.
        """
        name = _clean(name)
        if name is None:
            return None
        key = ("class", name)
        if key in self._cache:
            return self._cache[key]
        school_class = self.store.find_class(name)
        if school_class is None:
            school_class = self.store.insert_class(name, session_id)
            self.created[EntityKind.CLASS.value] += 1
            logger.debug("created class id=%s name=%s session_id=%s", school_class.id, name, session_id)
        self._cache[key] = school_class.id
        return school_class.id

    def resolve_exam(
        self, name: str | None, exam_date: str | None, class_id: int | None = None
    ) -> int | None:
        """Id of the exam identified by (name, exam_date), created if absent.

        Either part blank -> None. A new exam gets ``is_upcoming`` derived from
        its date; an existing exam keeps its stored class and flag.
        """
        name = _clean(name)
        exam_date = _clean(exam_date)
        if name is None or exam_date is None:
            return None
        key = ("exam", (name, exam_date))
        if key in self._cache:
            return self._cache[key]
        exam = self.store.find_exam(name, exam_date)
        if exam is None:
            is_upcoming = derive_is_upcoming(exam_date, now=self.now, timezone=self.timezone)
            exam = self.store.insert_exam(name, exam_date, class_id, is_upcoming)
            self.created[EntityKind.EXAM.value] += 1
            logger.debug(
                "created exam id=%s name=%s date=%s upcoming=%s", exam.id, name, exam_date, is_upcoming
            )
        self._cache[key] = exam.id
        return exam.id
