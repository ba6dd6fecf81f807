from __future__ import annotations

from ..models.import_report import ImportReport

"""SUMMARY line rendering for an import run.

Format:
SUMMARY file={name} rows={total} inserted={inserted} errors={errors} outcome={outcome} elapsed_sec={elapsed}
"""

__all__ = [
    "render_summary_line",
    "format_seconds",
]


def format_seconds(seconds: float) -> str:
    """Render seconds without scientific notation; integral values lose the fraction."""
    if seconds == 0:
        return "0"
    if seconds == int(seconds):
        return str(int(seconds))
    if seconds < 0.01:
        return f"{seconds:.6f}".rstrip("0").rstrip(".")
    return str(round(seconds, 3))


def render_summary_line(report: ImportReport) -> str:
    """Render the SUMMARY line for ``report``.

    Examples:
        >>> from datetime import datetime, timezone
        >>> from results_import.models.row_state import ImportOutcome
        >>> t = datetime(2026, 1, 1, tzinfo=timezone.utc)
        >>> report = ImportReport(
        ...     file_name="gk.xlsx", total_rows=5, inserted_rows=5, errors=[],
        ...     outcome=ImportOutcome.FULL_SUCCESS, start_time=t, end_time=t,
        ...     elapsed_seconds=2.0,
        ... )
        >>> render_summary_line(report)
        'SUMMARY file=gk.xlsx rows=5 inserted=5 errors=0 outcome=full-success elapsed_sec=2'
    """
    return (
        f"SUMMARY file={report.file_name} "
        f"rows={report.total_rows} "
        f"inserted={report.inserted_rows} "
        f"errors={report.error_count} "
        f"outcome={report.outcome.value} "
        f"elapsed_sec={format_seconds(report.elapsed_seconds)}"
    )
