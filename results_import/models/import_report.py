from __future__ import annotations

import statistics
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from .error_record import ErrorRecord
from .row_state import ImportOutcome, RowState

"""Import report and progress models.

ImportReport aggregates the outcome of one import run (counts, errors, batch
timing). ProgressEvent is emitted after each processed row so callers can
display incremental progress.
"""


@dataclass(frozen=True)
class ProgressEvent:
    """Incremental progress after one row reached a terminal state."""
    processed: int  # 処理済行数
    total: int  # 総行数
    row_number: int  # 直前に処理した行 (1-based)
    state: RowState  # 直前行の最終状態

    @property
    def fraction(self) -> float:
        return self.processed / self.total if self.total else 1.0


@dataclass(frozen=True)
class ImportReport:
    """Final report of one import run.

    ``errors`` holds recoverable row/batch errors for a finished run, or the
    gate errors when ``outcome`` is REJECTED (then ``inserted_rows`` is 0).
    """
    file_name: str
    total_rows: int
    inserted_rows: int
    errors: list[ErrorRecord]
    outcome: ImportOutcome
    start_time: datetime
    end_time: datetime
    elapsed_seconds: float
    total_batches: int = 0
    failed_batches: int = 0
    avg_batch_seconds: float = 0.0
    p95_batch_seconds: float = 0.0
    created_entities: dict[str, int] = field(default_factory=dict)  # kind -> 新規作成数
    error_report_path: Path | None = None  # エラー Excel 出力先 (出力時のみ)

    @property
    def error_count(self) -> int:
        return len(self.errors)

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    @property
    def error_messages(self) -> list[str]:
        return [e.message for e in self.errors]

    @property
    def status_message(self) -> str:
        if self.outcome is ImportOutcome.REJECTED:
            return f"Import rejected with {self.error_count} errors. Nothing was inserted."
        if self.errors:
            return f"Imported with {self.error_count} errors. Error report generated."
        return f"Imported {self.total_rows} rows successfully."


class BatchStatsAccumulator:
    """Collects per-batch insert timings and summarises them for ImportReport."""

    def __init__(self) -> None:
        self.batch_times: list[float] = []

    def add_batch_time(self, elapsed_seconds: float) -> None:
        """Add a batch timing measurement."""
        self.batch_times.append(elapsed_seconds)

    def get_stats(self) -> tuple[int, float, float]:
        """Calculate batch statistics.

        Returns:
            tuple: (total_batches, avg_batch_seconds, p95_batch_seconds)
        """
        if not self.batch_times:
            return (0, 0.0, 0.0)

        total_batches = len(self.batch_times)
        avg_batch_seconds = statistics.mean(self.batch_times)

        if total_batches == 1:
            p95_batch_seconds = self.batch_times[0]
        else:
            p95_batch_seconds = statistics.quantiles(
                self.batch_times, n=20, method='inclusive'
            )[18]  # 95th percentile (19th out of 20 quantiles, 0-indexed)

        return (total_batches, avg_batch_seconds, p95_batch_seconds)
