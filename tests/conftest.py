# Shared pytest fixtures
from __future__ import annotations

import tempfile
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import pandas as pd
import pytest

from results_import.db.memory_store import InMemoryResultStore
from results_import.logging.init import reset_logging
from results_import.services.row_validator import REQUIRED_COLUMNS

# 2026-02-08 の試験より前の時点 (is_upcoming=True になる)
FIXED_NOW = datetime(2026, 1, 15, 9, 0, tzinfo=UTC)


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        yield p


@pytest.fixture(autouse=True)
def _clean_logging():
    reset_logging()
    yield
    reset_logging()


@pytest.fixture()
def sample_config_yaml() -> str:
    return """batch_size: 50
error_report_directory: ./reports
defaults:
  status_text: pass
  result_status: published
timezone: UTC
database:
  host: localhost
  port: 5432
  user: appuser
  password: secret
  database: results
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "import.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture()
def store() -> InMemoryResultStore:
    return InMemoryResultStore()


def make_row(roll_no: Any = "501", **overrides: Any) -> dict[str, Any]:
    row: dict[str, Any] = {
        "exam_name": "GK 2026",
        "exam_date": "2026-02-08",
        "session": "2026",
        "class_name": "Class 5",
        "roll_no": roll_no,
        "registration_no": f"2026050{roll_no}",
        "student_name": f"Student {roll_no}",
        "dob": "2014-06-12",
        "mobile": "9876543210",
        "marks": 78,
        "status_text": "pass",
        "result_status": "published",
    }
    row.update(overrides)
    return row


@pytest.fixture()
def gk_rows() -> list[dict[str, Any]]:
    """Five complete rows: GK 2026 / Class 5 / session 2026, roll_no 501-505."""
    return [make_row(str(r)) for r in range(501, 506)]


@pytest.fixture()
def header() -> list[str]:
    return list(REQUIRED_COLUMNS)


@pytest.fixture()
def make_workbook(tmp_path: Path) -> Callable[..., Path]:
    """Write ``rows`` (dicts) to a real .xlsx with the header on row 1."""
    def _make(
        rows: list[dict[str, Any]],
        name: str = "results.xlsx",
        columns: list[str] | None = None,
        sheet_name: str = "Results",
    ) -> Path:
        path = tmp_path / name
        df = pd.DataFrame(rows, columns=columns or list(REQUIRED_COLUMNS))
        with pd.ExcelWriter(path, engine="openpyxl") as writer:
            df.to_excel(writer, sheet_name=sheet_name, index=False)
        return path
    return _make


@pytest.fixture()
def row_factory() -> Callable[..., dict[str, Any]]:
    return make_row


@pytest.fixture()
def fixed_now() -> datetime:
    return FIXED_NOW
