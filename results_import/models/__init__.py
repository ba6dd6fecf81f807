"""Domain models for the exam results import pipeline.

Entities persisted by the result store, the transient ImportRow, and the
error / report / progress structures produced by an import run.
"""

from .entities import (
    Exam,
    RecordStatus,
    Result,
    ResultDefaults,
    ResultPayload,
    SchoolClass,
    Session,
)
from .error_record import ErrorRecord
from .import_report import ImportReport, ProgressEvent
from .import_row import ImportRow, RowCoercionError
from .row_state import ImportOutcome, RowState

__all__ = [
    # Entities
    "Exam",
    "RecordStatus",
    "Result",
    "ResultDefaults",
    "ResultPayload",
    "SchoolClass",
    "Session",
    # Import pipeline
    "ErrorRecord",
    "ImportOutcome",
    "ImportReport",
    "ImportRow",
    "ProgressEvent",
    "RowCoercionError",
    "RowState",
]
