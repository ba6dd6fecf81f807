from __future__ import annotations

from unittest.mock import Mock, patch

from results_import.models.import_report import ProgressEvent
from results_import.models.row_state import RowState
from results_import.services.progress import ProgressTracker, is_tty_enabled


def test_is_tty_enabled_returns_stdout_isatty():
    with patch("sys.stdout.isatty", return_value=True):
        assert is_tty_enabled() is True
    with patch("sys.stdout.isatty", return_value=False):
        assert is_tty_enabled() is False


class TestProgressTracker:
    def test_init_with_tty_enabled(self):
        with patch("results_import.services.progress.is_tty_enabled", return_value=True), \
             patch("results_import.services.progress.tqdm") as mock_tqdm:
            tracker = ProgressTracker(5, description="Importing gk.xlsx")
            assert tracker.enabled is True
            mock_tqdm.assert_called_once_with(
                total=5,
                desc="Importing gk.xlsx",
                unit="row",
                disable=False,
                leave=True,
                position=0,
                ncols=80,
                ascii=True,
            )

    def test_init_with_tty_disabled(self):
        with patch("results_import.services.progress.is_tty_enabled", return_value=False):
            tracker = ProgressTracker(5)
            assert tracker.enabled is False
            assert tracker.pbar is None
            # 非 TTY でも advance は安全
            tracker.advance(ProgressEvent(1, 5, 1, RowState.QUEUED_FOR_INSERT))
            assert tracker.processed == 1

    def test_advance_updates_bar_and_rejected_count(self):
        mock_pbar = Mock()
        with patch("results_import.services.progress.is_tty_enabled", return_value=True), \
             patch("results_import.services.progress.tqdm", return_value=mock_pbar):
            tracker = ProgressTracker(3)
            tracker.advance(ProgressEvent(1, 3, 1, RowState.QUEUED_FOR_INSERT))
            tracker.advance(ProgressEvent(2, 3, 2, RowState.REJECTED))
            assert mock_pbar.update.call_count == 2
            mock_pbar.update.assert_called_with(1)
            mock_pbar.set_postfix.assert_called_with(rejected=1)
            assert tracker.rejected == 1

    def test_context_manager_closes(self):
        mock_pbar = Mock()
        with patch("results_import.services.progress.is_tty_enabled", return_value=True), \
             patch("results_import.services.progress.tqdm", return_value=mock_pbar):
            with ProgressTracker(1) as tracker:
                tracker.advance(ProgressEvent(1, 1, 1, RowState.QUEUED_FOR_INSERT))
            mock_pbar.set_postfix.assert_called_once_with(rejected=0)
            mock_pbar.close.assert_called_once()
            assert tracker.pbar is None
