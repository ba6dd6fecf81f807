from __future__ import annotations

import logging
import time
import zipfile
from collections.abc import Callable, Iterator, Mapping, Sequence
from dataclasses import replace
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from openpyxl.utils.exceptions import InvalidFileException

from ..config.loader import ImportConfig
from ..db.store import ResultStore, StoreError
from ..excel.reader import SheetHeaderError, normalize_sheet, read_first_sheet
from ..excel.writer import error_report_path, write_error_report
from ..logging.error_log import ErrorLogBuffer
from ..models.entities import ResultDefaults, ResultPayload, resolve_timezone
from ..models.error_record import (
    BATCH_ROW,
    DUPLICATE_ERROR,
    RESOLUTION_ERROR,
    STORAGE_ERROR,
    STRUCTURAL_ERROR,
    VALIDATION_ERROR,
    ErrorRecord,
)
from ..models.import_report import BatchStatsAccumulator, ImportReport, ProgressEvent
from ..models.import_row import ImportRow
from ..models.row_state import ImportOutcome, RowState
from .duplicate_detector import DuplicateDetector
from .entity_resolver import EntityResolver
from .progress import ProgressTracker
from .row_validator import missing_columns, validate_rows

logger = logging.getLogger(__name__)

"""Import orchestration: spreadsheet rows -> staged results -> batch inserts.

Pipeline for one upload:

1. column gate: any REQUIRED_COLUMNS missing -> rejected, nothing processed
2. validation gate: any row failing coercion / required fields -> rejected,
   every problem reported, nothing inserted
3. per row, in file order: resolve session -> class -> exam, reject on missing
   exam / roll_no, reject duplicates (in file, then in store), else stage
4. insert staged payloads in batches of ``batch_size``; a failed batch becomes
   one "-" row error and later batches still run
5. report: counts, errors, batch timing, created entities

Rows are processed strictly sequentially. ``ImportRun.iter_progress()`` yields
one ProgressEvent per row; the run is suspended between yields. Closing the
generator before it is exhausted stops before the insert phase, so nothing is
inserted (entities already created stay).
"""

__all__ = [
    "DEFAULT_BATCH_SIZE",
    "MISSING_EXAM_OR_ROLL",
    "ImportRun",
    "ProcessingError",
    "import_file",
    "run_import",
]

DEFAULT_BATCH_SIZE = 50
MISSING_EXAM_OR_ROLL = "Missing exam or roll number"


class ProcessingError(Exception):
    """Raised when an upload cannot be read at all."""


class ImportRun:
    """One import invocation over an already-read sheet.

    Resolver cache and duplicate keys live on this instance; a new run starts
    from a clean state.
    """

    def __init__(
        self,
        header: Sequence[Any],
        rows: Sequence[Mapping[str, Any]],
        store: ResultStore,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        defaults: ResultDefaults | None = None,
        timezone: str = "UTC",
        file_name: str = "upload.xlsx",
        now: datetime | None = None,
    ) -> None:
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1 (got {batch_size})")
        resolve_timezone(timezone)
        self.header = list(header)
        self.raw_rows = list(rows)
        self.store = store
        self.batch_size = batch_size
        self.defaults = defaults or ResultDefaults()
        self.file_name = file_name
        self.resolver = EntityResolver(store, timezone=timezone, now=now)
        self.detector = DuplicateDetector(store)
        self.errors: list[ErrorRecord] = []
        self.staged: list[ResultPayload] = []
        self.row_states: dict[int, RowState] = {}
        self._report: ImportReport | None = None

    @property
    def report(self) -> ImportReport:
        if self._report is None:
            raise RuntimeError("import run has not finished; exhaust iter_progress() first")
        return self._report

    def _error(self, row: int | str | None, error_type: str, message: str) -> None:
        self.errors.append(ErrorRecord.create(self.file_name, row, error_type, message))

    def iter_progress(self) -> Iterator[ProgressEvent]:
        """Run the pipeline, yielding progress after each processed row."""
        start_time = datetime.now(UTC)
        started = time.perf_counter()

        missing = missing_columns(self.header)
        if missing:
            self._error(None, STRUCTURAL_ERROR, f"Missing columns: {', '.join(missing)}")
            logger.warning("file=%s rejected: missing columns %s", self.file_name, missing)
            self._finish(ImportOutcome.REJECTED, start_time, started)
            return

        validation = validate_rows(self.raw_rows)
        if not validation.ok:
            for problem in validation.problems:
                self._error(problem.row_number, VALIDATION_ERROR, problem.message)
            logger.warning(
                "file=%s rejected: %d validation errors", self.file_name, len(validation.problems)
            )
            self._finish(ImportOutcome.REJECTED, start_time, started)
            return

        total = len(validation.rows)
        for processed, row in enumerate(validation.rows, start=1):
            self.row_states[row.row_number] = RowState.PENDING
            state = self._process_row(row)
            self.row_states[row.row_number] = state
            yield ProgressEvent(processed=processed, total=total, row_number=row.row_number, state=state)

        stats = BatchStatsAccumulator()
        inserted, failed_batches = self._insert_batches(stats)
        outcome = ImportOutcome.PARTIAL_SUCCESS if self.errors else ImportOutcome.FULL_SUCCESS
        self._finish(outcome, start_time, started, inserted, stats, failed_batches)

    def _process_row(self, row: ImportRow) -> RowState:
        self.row_states[row.row_number] = RowState.RESOLVING_ENTITIES
        try:
            session_id = self.resolver.resolve_session(row.session)
            class_id = self.resolver.resolve_class(row.class_name, session_id)
            exam_id = self.resolver.resolve_exam(row.exam_name, row.exam_date, class_id)
        except StoreError as e:
            logger.warning("row=%d entity resolution failed: %s", row.row_number, e)
            exam_id = None

        if exam_id is None or not row.roll_no:
            self._error(row.row_number, RESOLUTION_ERROR, MISSING_EXAM_OR_ROLL)
            return RowState.REJECTED

        self.row_states[row.row_number] = RowState.VALIDATING_DUPLICATE
        try:
            duplicate = self.detector.check(exam_id, row.roll_no)
        except StoreError as e:
            self._error(row.row_number, STORAGE_ERROR, f"Duplicate check failed: {e}")
            return RowState.REJECTED
        if duplicate is not None:
            self._error(row.row_number, DUPLICATE_ERROR, duplicate.message)
            return RowState.REJECTED

        self.staged.append(ResultPayload.from_import_row(row, exam_id, self.defaults))
        return RowState.QUEUED_FOR_INSERT

    def _insert_batches(self, stats: BatchStatsAccumulator) -> tuple[int, int]:
        inserted = 0
        failed = 0
        for offset in range(0, len(self.staged), self.batch_size):
            batch = self.staged[offset:offset + self.batch_size]
            batch_no = offset // self.batch_size + 1
            t0 = time.perf_counter()
            try:
                inserted += self.store.insert_results(batch)
            except StoreError as e:
                failed += 1
                self._error(BATCH_ROW, STORAGE_ERROR, str(e))
                logger.error(
                    "file=%s batch=%d rows=%d insert failed: %s", self.file_name, batch_no, len(batch), e
                )
            finally:
                stats.add_batch_time(time.perf_counter() - t0)
        return inserted, failed

    def _finish(
        self,
        outcome: ImportOutcome,
        start_time: datetime,
        started: float,
        inserted: int = 0,
        stats: BatchStatsAccumulator | None = None,
        failed_batches: int = 0,
    ) -> None:
        total_batches, avg_batch, p95_batch = (stats or BatchStatsAccumulator()).get_stats()
        self._report = ImportReport(
            file_name=self.file_name,
            total_rows=len(self.raw_rows),
            inserted_rows=inserted,
            errors=list(self.errors),
            outcome=outcome,
            start_time=start_time,
            end_time=datetime.now(UTC),
            elapsed_seconds=time.perf_counter() - started,
            total_batches=total_batches,
            failed_batches=failed_batches,
            avg_batch_seconds=avg_batch,
            p95_batch_seconds=p95_batch,
            created_entities=dict(self.resolver.created),
        )


def run_import(
    header: Sequence[Any],
    rows: Sequence[Mapping[str, Any]],
    store: ResultStore,
    *,
    on_progress: Callable[[ProgressEvent], None] | None = None,
    **options: Any,
) -> ImportReport:
    """Run a whole import and return its report.

    ``options`` are passed to ImportRun (batch_size, defaults, timezone,
    file_name, now).
    """
    run = ImportRun(header, rows, store, **options)
    for event in run.iter_progress():
        if on_progress is not None:
            on_progress(event)
    return run.report


def import_file(
    path: Path,
    store: ResultStore,
    config: ImportConfig | None = None,
    *,
    error_log: ErrorLogBuffer | None = None,
    now: datetime | None = None,
) -> ImportReport:
    """Import one .xlsx upload.

    Reads the first sheet, runs the pipeline with a TTY progress bar, writes
    the error spreadsheet when there are errors and buffers them into
    ``error_log`` (the caller flushes).

    Raises:
        ProcessingError: the workbook cannot be opened or has no header row
    """
    config = config or ImportConfig()
    try:
        sheet_name, df = read_first_sheet(path, keep_na_strings=config.keep_na_strings or None)
        sheet = normalize_sheet(df, sheet_name)
    except (OSError, ValueError, zipfile.BadZipFile, InvalidFileException, SheetHeaderError) as e:
        raise ProcessingError(f"Unable to read file {path.name}: {e}") from e
    logger.info("file=%s sheet=%s rows=%d", path.name, sheet.sheet_name, len(sheet.rows))

    run = ImportRun(
        sheet.columns,
        sheet.rows,
        store,
        batch_size=config.batch_size,
        defaults=config.defaults,
        timezone=config.timezone,
        file_name=path.name,
        now=now,
    )
    with ProgressTracker(len(sheet.rows), description=f"Importing {path.name}") as progress:
        for event in run.iter_progress():
            progress.advance(event)
    report = run.report

    if report.has_errors:
        out = error_report_path(Path(config.error_report_directory), path.name, now)
        try:
            write_error_report(report.errors, out)
            report = replace(report, error_report_path=out)
        except OSError as e:
            logger.error("error report could not be written to %s: %s", out, e)
        if error_log is not None:
            error_log.extend(report.errors)
    return report
