from __future__ import annotations

import pytest

from results_import.db.memory_store import InMemoryResultStore
from results_import.db.store import EntityKind, StoreError
from results_import.models.entities import RecordStatus, ResultPayload


def _payload(roll_no: str, exam_id: int = 1, **kw) -> ResultPayload:
    kw.setdefault("student_name", f"S{roll_no}")
    return ResultPayload(exam_id=exam_id, roll_no=roll_no, **kw)


def test_unique_names_enforced(store: InMemoryResultStore):
    store.insert_session("2026")
    store.insert_class("Class 5", None)
    store.insert_exam("GK", "2026-02-08", None, True)
    with pytest.raises(StoreError):
        store.insert_session("2026")
    with pytest.raises(StoreError):
        store.insert_class("Class 5", 1)
    with pytest.raises(StoreError):
        store.insert_exam("GK", "2026-02-08", None, True)


def test_ids_are_per_kind(store: InMemoryResultStore):
    assert store.insert_session("2026").id == 1
    assert store.insert_class("Class 5", 1).id == 1
    assert store.insert_session("2027").id == 2


def test_insert_results_all_or_nothing(store: InMemoryResultStore):
    store.insert_result(_payload("503"))
    with pytest.raises(StoreError):
        store.insert_results([_payload("501"), _payload("502"), _payload("503")])
    assert {r.roll_no for r in store.results.values()} == {"503"}


def test_insert_results_rejects_duplicates_within_batch(store: InMemoryResultStore):
    with pytest.raises(StoreError):
        store.insert_results([_payload("501"), _payload("501")])
    assert store.results == {}


def test_soft_deleted_result_frees_the_pair(store: InMemoryResultStore):
    first = store.insert_result(_payload("501"))
    store.soft_delete(EntityKind.RESULT, first.id)
    assert store.results[first.id].status is RecordStatus.INACTIVE
    assert store.find_active_result(1, "501") is None
    assert store.insert_results([_payload("501")]) == 1


def test_update_result_keeps_status_and_created_at(store: InMemoryResultStore):
    first = store.insert_result(_payload("501", marks=40.0))
    updated = store.update_result(first.id, _payload("501", marks=45.0, status=RecordStatus.INACTIVE))
    assert updated.marks == 45.0
    assert updated.status is RecordStatus.ACTIVE
    assert updated.created_at == first.created_at


def test_update_result_conflict_and_missing(store: InMemoryResultStore):
    store.insert_result(_payload("501"))
    other = store.insert_result(_payload("502"))
    with pytest.raises(StoreError):
        store.update_result(other.id, _payload("501"))
    with pytest.raises(StoreError):
        store.update_result(99, _payload("503"))


def test_search_results_only_active_published(store: InMemoryResultStore):
    store.insert_result(_payload("501", registration_no="R1"))
    store.insert_result(_payload("502", registration_no="R2", result_status="draft"))
    gone = store.insert_result(_payload("503", registration_no="R3"))
    store.soft_delete(EntityKind.RESULT, gone.id)
    store.insert_result(_payload("501", exam_id=2, registration_no="R1"))
    assert [r.roll_no for r in store.search_results(roll_no="502")] == []
    assert [r.roll_no for r in store.search_results(roll_no="503")] == []
    assert [r.exam_id for r in store.search_results(registration_no="R1")] == [1, 2]
    assert [r.exam_id for r in store.search_results(registration_no="R1", exam_id=2)] == [2]


def test_list_upcoming_exams(store: InMemoryResultStore):
    store.insert_exam("Old", "2025-12-01", None, False)
    store.insert_exam("B", "2026-03-01", None, True)
    a = store.insert_exam("A", "2026-02-08", None, True)
    c = store.insert_exam("C", "2026-04-01", None, True)
    store.soft_delete(EntityKind.EXAM, c.id)
    upcoming = store.list_upcoming_exams("2026-01-15", 3)
    assert [e.exam_name for e in upcoming] == ["A", "B"]
    assert upcoming[0].id == a.id
    assert len(store.list_upcoming_exams("2026-01-15", 1)) == 1


def test_update_exam(store: InMemoryResultStore):
    exam = store.insert_exam("GK", "2026-02-08", None, True)
    moved = store.update_exam(exam.id, "GK Final", "2025-01-01", 3, False)
    assert (moved.exam_name, moved.exam_date, moved.class_id, moved.is_upcoming) == (
        "GK Final", "2025-01-01", 3, False,
    )
    assert store.get_exam(exam.id) == moved
    with pytest.raises(StoreError):
        store.update_exam(99, "GK", "2026-01-01", None, True)


def test_update_exam_refuses_taken_name_and_date(store: InMemoryResultStore):
    store.insert_exam("GK", "2026-03-01", None, True)
    exam = store.insert_exam("GK", "2026-02-08", None, True)
    with pytest.raises(StoreError):
        store.update_exam(exam.id, "GK", "2026-03-01", None, True)
    assert store.get_exam(exam.id).exam_date == "2026-02-08"


def test_update_class(store: InMemoryResultStore):
    store.insert_class("Class 6", None)
    five = store.insert_class("Class 5", None)
    renamed = store.update_class(five.id, "Class 5A", 2)
    assert (renamed.name, renamed.session_id) == ("Class 5A", 2)
    assert store.find_class("Class 5") is None
    with pytest.raises(StoreError):
        store.update_class(five.id, "Class 6", None)
    with pytest.raises(StoreError):
        store.update_class(42, "Class 7", None)


def test_list_classes_active_by_name(store: InMemoryResultStore):
    store.insert_class("Class 6", None)
    store.insert_class("Class 10", None)
    gone = store.insert_class("Class 5", None)
    store.soft_delete(EntityKind.CLASS, gone.id)
    assert [c.name for c in store.list_classes()] == ["Class 10", "Class 6"]
    assert [c.name for c in store.list_classes("CLASS 1")] == ["Class 10"]


def test_list_exams_by_date(store: InMemoryResultStore):
    store.insert_exam("Science", "2026-03-01", None, True)
    store.insert_exam("GK", "2026-02-08", None, True)
    old = store.insert_exam("GK Mock", "2025-12-01", None, False)
    store.insert_exam("gk final", "2026-04-01", None, True)
    assert [e.exam_name for e in store.list_exams()] == ["GK Mock", "GK", "Science", "gk final"]
    store.soft_delete(EntityKind.EXAM, old.id)
    assert [e.exam_name for e in store.list_exams("gk")] == ["GK", "gk final"]


def test_list_results_newest_first_with_search(store: InMemoryResultStore):
    store.insert_result(_payload("501", registration_no="2026050501", student_name="Asha Rao"))
    store.insert_result(_payload("502", registration_no="2026050502", student_name="Ravi Kumar"))
    gone = store.insert_result(_payload("503", registration_no="2026050503", student_name="Rani"))
    store.soft_delete(EntityKind.RESULT, gone.id)
    store.insert_result(_payload("504", registration_no="2026050504", student_name="Meena", result_status="draft"))

    assert [r.roll_no for r in store.list_results()] == ["504", "502", "501"]
    assert [r.roll_no for r in store.list_results("ra")] == ["502", "501"]
    assert [r.roll_no for r in store.list_results("0502")] == ["502"]
    assert [r.roll_no for r in store.list_results("504")] == ["504"]
    assert [r.roll_no for r in store.list_results(limit=2, offset=1)] == ["502", "501"]


def test_get_result(store: InMemoryResultStore):
    saved = store.insert_result(_payload("501"))
    assert store.get_result(saved.id) == saved
    store.soft_delete(EntityKind.RESULT, saved.id)
    assert store.get_result(saved.id).status is RecordStatus.INACTIVE
    assert store.get_result(99) is None


def test_soft_delete_unknown_record(store: InMemoryResultStore):
    with pytest.raises(StoreError):
        store.soft_delete(EntityKind.CLASS, 42)


def test_find_by_name_ignores_soft_delete(store: InMemoryResultStore):
    session = store.insert_session("2026")
    store.soft_delete(EntityKind.SESSION, session.id)
    found = store.find_session("2026")
    assert found is not None and found.status is RecordStatus.INACTIVE
