from __future__ import annotations

import sys
from typing import Any

from tqdm import tqdm
from tqdm.std import tqdm as TqdmType

from ..models.import_report import ProgressEvent
from ..models.row_state import RowState

"""Progress display with tqdm (TTY only).

One tqdm bar per import, advanced by the ProgressEvents the import run yields.
In non-TTY environments (CI, redirected output) no bar is created, so logs
stay free of ANSI control sequences.
"""

__all__ = [
    "ProgressTracker",
    "is_tty_enabled",
]


def is_tty_enabled() -> bool:
    """True if stdout is a TTY and progress should be displayed."""
    return sys.stdout.isatty()


class ProgressTracker:
    """Row-level progress bar for one import run."""

    def __init__(self, total_rows: int, *, description: str = "Importing rows") -> None:
        self.total_rows = total_rows
        self.description = description
        self.processed = 0
        self.rejected = 0

        self.enabled = is_tty_enabled()
        self.pbar: TqdmType[Any] | None
        if self.enabled:
            self.pbar = tqdm(
                total=total_rows,
                desc=description,
                unit="row",
                disable=False,
                leave=True,
                position=0,
                ncols=80,
                ascii=True,
            )
        else:
            self.pbar = None

    def advance(self, event: ProgressEvent) -> None:
        """Move the bar to ``event.processed`` and refresh the rejected count."""
        step = event.processed - self.processed
        self.processed = event.processed
        if event.state is RowState.REJECTED:
            self.rejected += 1
        if self.enabled and self.pbar is not None:
            if step > 0:
                self.pbar.update(step)
            self.pbar.set_postfix(rejected=self.rejected)

    def close(self) -> None:
        if self.enabled and self.pbar is not None:
            self.pbar.close()
            self.pbar = None

    def __enter__(self) -> ProgressTracker:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
