from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from unittest.mock import MagicMock, patch

import psycopg2
import pytest

from results_import.cli.__main__ import (
    EXIT_FATAL,
    EXIT_PARTIAL_FAILURE,
    EXIT_SUCCESS_ALL,
    _dsn,
    main as cli_main,
)
from results_import.config.loader import DatabaseConfig, ImportConfig
from results_import.db.memory_store import InMemoryResultStore
from results_import.services.row_validator import REQUIRED_COLUMNS


@pytest.fixture()
def no_db(monkeypatch):
    for var in ("DATABASE_URL", "PGDSN", "PGHOST", "PGPORT", "PGUSER", "PGPASSWORD", "PGDATABASE"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("DISABLE_DB_CONNECT", "1")


def test_sample_writes_template(temp_workdir: Path, capsys):
    code = cli_main(["sample", "data/template.xlsx"])
    assert code == EXIT_SUCCESS_ALL
    assert (temp_workdir / "data" / "template.xlsx").exists()
    assert "INFO sample template written:" in capsys.readouterr().out


def test_import_dry_run_full_success(temp_workdir: Path, make_workbook, gk_rows, capsys):
    path = make_workbook(gk_rows, name="gk.xlsx")
    code = cli_main(["import", str(path), "--dry-run"])
    out = capsys.readouterr().out
    assert code == EXIT_SUCCESS_ALL
    assert "INFO mode=dry-run file=gk.xlsx batch_size=50" in out
    assert "INFO Imported 5 rows successfully." in out
    assert "SUMMARY file=gk.xlsx rows=5 inserted=5 errors=0 outcome=full-success" in out


def test_import_dry_run_partial(temp_workdir: Path, make_workbook, gk_rows, capsys):
    path = make_workbook(gk_rows + [gk_rows[0]], name="gk.xlsx")
    code = cli_main(["import", str(path), "--dry-run"])
    out = capsys.readouterr().out
    assert code == EXIT_PARTIAL_FAILURE
    assert "WARN Row 6: Duplicate roll_no in file" in out
    assert "INFO error log:" in out
    assert "INFO error report:" in out
    assert list((temp_workdir / "logs").glob("errors-*.log"))
    assert list((temp_workdir / "reports").glob("import-errors-gk-*.xlsx"))


def test_import_rejected_missing_columns(temp_workdir: Path, make_workbook, gk_rows, capsys):
    columns = [c for c in REQUIRED_COLUMNS if c != "mobile"]
    path = make_workbook(gk_rows, columns=columns)
    code = cli_main(["import", str(path), "--dry-run"])
    out = capsys.readouterr().out
    assert code == EXIT_FATAL
    assert "WARN Missing columns: mobile" in out
    assert "outcome=rejected" in out


def test_import_batch_size_validation(temp_workdir: Path, make_workbook, gk_rows, capsys):
    path = make_workbook(gk_rows)
    assert cli_main(["import", str(path), "--dry-run", "--batch-size", "0"]) == EXIT_FATAL
    assert "ERROR --batch-size must be >= 1 (got 0)" in capsys.readouterr().out
    assert cli_main(["import", str(path), "--dry-run", "--batch-size", "2"]) == EXIT_SUCCESS_ALL


def test_import_missing_file(temp_workdir: Path, capsys):
    assert cli_main(["import", "data/nope.xlsx", "--dry-run"]) == EXIT_FATAL
    assert "ERROR file not found:" in capsys.readouterr().out


def test_import_unreadable_file(temp_workdir: Path, capsys):
    bad = temp_workdir / "data" / "broken.xlsx"
    bad.write_text("not a workbook", encoding="utf-8")
    assert cli_main(["import", str(bad), "--dry-run"]) == EXIT_FATAL
    assert "ERROR processing: Unable to read file broken.xlsx" in capsys.readouterr().out


def test_bad_config_is_fatal(temp_workdir: Path, make_workbook, gk_rows, capsys):
    (temp_workdir / "config" / "import.yml").write_text("batch_size: 0\n", encoding="utf-8")
    path = make_workbook(gk_rows)
    assert cli_main(["import", str(path), "--dry-run"]) == EXIT_FATAL
    assert "ERROR config:" in capsys.readouterr().out


def test_debug_flag(temp_workdir: Path, make_workbook, gk_rows, capsys):
    path = make_workbook(gk_rows)
    cli_main(["--debug", "import", str(path), "--dry-run"])
    out = capsys.readouterr().out
    assert "DEBUG debug mode enabled" in out
    assert "DEBUG batches=1 failed_batches=0" in out


def test_search_and_upcoming_without_db(temp_workdir: Path, no_db, capsys):
    assert cli_main(["search", "--roll-no", "501"]) == EXIT_SUCCESS_ALL
    assert "INFO Result not found." in capsys.readouterr().out
    assert cli_main(["upcoming"]) == EXIT_SUCCESS_ALL
    assert "INFO No upcoming exams." in capsys.readouterr().out


def test_exams_lists_active_by_date(temp_workdir: Path, capsys):
    store = InMemoryResultStore()
    store.insert_exam("Science", "2026-03-01", None, True)
    store.insert_exam("GK Mock", "2025-12-01", None, False)

    @contextmanager
    def seeded(cfg, *, dry_run=False):
        yield store

    with patch("results_import.cli.__main__._open_store", seeded):
        assert cli_main(["exams"]) == EXIT_SUCCESS_ALL
        out = capsys.readouterr().out
        assert out.index("INFO 2025-12-01 GK Mock (id=2)") < out.index("INFO 2026-03-01 Science (id=1) upcoming")
        assert cli_main(["exams", "--search", "mock"]) == EXIT_SUCCESS_ALL
        assert "Science" not in capsys.readouterr().out


def test_exams_without_db(temp_workdir: Path, no_db, capsys):
    assert cli_main(["exams"]) == EXIT_SUCCESS_ALL
    assert "INFO No exams." in capsys.readouterr().out


def test_unknown_timezone_in_config_is_fatal(temp_workdir: Path, no_db, capsys):
    (temp_workdir / "config" / "import.yml").write_text("timezone: Mars/Olympus\n", encoding="utf-8")
    assert cli_main(["upcoming"]) == EXIT_FATAL
    assert "ERROR config: config validation failed: unknown timezone: 'Mars/Olympus'" in capsys.readouterr().out


def test_search_blank_roll_is_fatal(temp_workdir: Path, no_db, capsys):
    assert cli_main(["search", "--roll-no", "  "]) == EXIT_FATAL
    assert "ERROR search: Roll number or registration number required." in capsys.readouterr().out


def test_search_requires_a_number(temp_workdir: Path):
    with pytest.raises(SystemExit):
        cli_main(["search"])


def test_init_db_connection_failure(temp_workdir: Path, no_db, capsys):
    with patch(
        "results_import.cli.__main__.psycopg2.connect",
        side_effect=psycopg2.OperationalError("could not connect"),
    ):
        assert cli_main(["init-db"]) == EXIT_FATAL
    assert "ERROR database connection failed: could not connect" in capsys.readouterr().out


def test_init_db_runs_schema(temp_workdir: Path, capsys):
    conn = MagicMock()
    with patch("results_import.cli.__main__.psycopg2.connect", return_value=conn), \
         patch("results_import.cli.__main__.ensure_schema") as mock_schema:
        assert cli_main(["init-db"]) == EXIT_SUCCESS_ALL
    mock_schema.assert_called_once_with(conn)
    conn.close.assert_called_once()
    assert "INFO schema ready" in capsys.readouterr().out


def test_env_file_overrides_environment(temp_workdir: Path, monkeypatch, capsys):
    monkeypatch.setenv("DISABLE_DB_CONNECT", "0")
    (temp_workdir / ".env").write_text("DISABLE_DB_CONNECT=1\n", encoding="utf-8")
    assert cli_main(["upcoming"]) == EXIT_SUCCESS_ALL
    assert "INFO No upcoming exams." in capsys.readouterr().out


class TestDsn:
    def test_database_url_wins(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "postgresql://u@h/db")
        assert _dsn(ImportConfig(database=DatabaseConfig(dsn="ignored"))) == "postgresql://u@h/db"

    def test_pg_vars_then_config(self, monkeypatch):
        for var in ("DATABASE_URL", "PGDSN", "PGHOST", "PGPORT", "PGUSER", "PGPASSWORD", "PGDATABASE"):
            monkeypatch.delenv(var, raising=False)
        monkeypatch.setenv("PGHOST", "db.internal")
        cfg = ImportConfig(database=DatabaseConfig(user="appuser", password="secret", database="results"))
        assert _dsn(cfg) == "host=db.internal port=5432 user=appuser dbname=results password=secret"
