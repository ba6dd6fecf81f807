from __future__ import annotations

from enum import Enum

"""Lifecycle enums for the import pipeline.

RowState tracks a single row through the per-row pipeline:

    pending -> resolving-entities -> validating-duplicate -> (queued-for-insert | rejected)

A row can also jump straight from resolving-entities to rejected when its exam
cannot be resolved or its roll number is empty.

ImportOutcome is the terminal aggregate state of a whole run.
"""

__all__ = [
    "RowState",
    "ImportOutcome",
]


class RowState(Enum):
    """Per-row processing state.

    - PENDING: row parsed, not yet looked at by the pipeline
    - RESOLVING_ENTITIES: session / class / exam being resolved
    - VALIDATING_DUPLICATE: in-file and store duplicate checks running
    - QUEUED_FOR_INSERT: staged for a batch insert
    - REJECTED: skipped with an error recorded
    """
    PENDING = "pending"
    RESOLVING_ENTITIES = "resolving-entities"
    VALIDATING_DUPLICATE = "validating-duplicate"
    QUEUED_FOR_INSERT = "queued-for-insert"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self in (RowState.QUEUED_FOR_INSERT, RowState.REJECTED)


class ImportOutcome(Enum):
    """Aggregate result of an import run.

    - FULL_SUCCESS: every row processed, no errors
    - PARTIAL_SUCCESS: every row processed, some rows or batches failed
    - REJECTED: a file-level gate (missing columns, row validation) fired;
      nothing was inserted
    """
    FULL_SUCCESS = "full-success"
    PARTIAL_SUCCESS = "partial-success"
    REJECTED = "rejected"
