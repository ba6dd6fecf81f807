from __future__ import annotations

import argparse
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import psycopg2
from dotenv import load_dotenv

from results_import.config.loader import ConfigError, ImportConfig, load_config_or_default
from results_import.db.memory_store import InMemoryResultStore
from results_import.db.postgres_store import PostgresResultStore, ensure_schema
from results_import.db.store import ResultStore, StoreError
from results_import.excel.writer import write_sample_template
from results_import.logging.error_log import ErrorLogBuffer
from results_import.logging.init import log_summary, setup_logging
from results_import.models.row_state import ImportOutcome
from results_import.services.orchestrator import ProcessingError, import_file
from results_import.services.results_admin import ResultFormError, ResultsAdmin
from results_import.services.summary import render_summary_line

"""CLI entrypoint.

Subcommands:
- import FILE   bulk import one .xlsx upload (exit 0 / 2 / 1)
- sample OUT    write the import template workbook
- search        look up published results by roll / registration number
- upcoming      list the next exams
- exams         list active exams by date (--search filters by name)
- init-db       create tables and indexes
"""

EXIT_SUCCESS_ALL = 0
EXIT_PARTIAL_FAILURE = 2
EXIT_FATAL = 1


def _dsn(cfg: ImportConfig) -> str:
    """Resolve connection parameters.

    優先順位:
        1. `.env` / 環境変数 DATABASE_URL / PGDSN (DSN 全体)
        2. 個別 PGHOST / PGPORT / PGUSER / PGPASSWORD / PGDATABASE
        3. config/import.yml の database セクション (不足分のフォールバック)
    """
    db_cfg = cfg.database
    dsn = os.getenv("DATABASE_URL") or os.getenv("PGDSN") or db_cfg.dsn
    if dsn:
        return dsn
    host = os.getenv("PGHOST", db_cfg.host or "localhost")
    port = os.getenv("PGPORT", str(db_cfg.port) if db_cfg.port else "5432")
    user = os.getenv("PGUSER", db_cfg.user or "postgres")
    password = os.getenv("PGPASSWORD", db_cfg.password or "")
    database = os.getenv("PGDATABASE", db_cfg.database or "postgres")
    dsn = f"host={host} port={port} user={user} dbname={database}"
    if password:
        dsn += f" password={password}"
    return dsn


@contextmanager
def _db_connection(cfg: ImportConfig) -> Iterator[psycopg2.extensions.connection]:  # pragma: no cover
    conn = psycopg2.connect(_dsn(cfg))
    conn.autocommit = False  # store が操作単位で commit / rollback
    try:
        yield conn
    finally:
        conn.close()


@contextmanager
def _open_store(cfg: ImportConfig, *, dry_run: bool = False) -> Iterator[ResultStore]:
    """In-memory store for --dry-run or DISABLE_DB_CONNECT=1, PostgreSQL otherwise."""
    if dry_run or os.getenv("DISABLE_DB_CONNECT") == "1":
        yield InMemoryResultStore()
        return
    with _db_connection(cfg) as conn:
        yield PostgresResultStore(conn)


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env; its values win over the inherited environment."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="results_import", description="Exam results bulk importer")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    p.add_argument("--config", type=Path, default=None, help="Config file (default: config/import.yml)")
    sub = p.add_subparsers(dest="command", required=True)

    imp = sub.add_parser("import", help="Import results from an .xlsx file")
    imp.add_argument("file", type=Path)
    imp.add_argument("--dry-run", action="store_true", help="Run against an in-memory store")
    imp.add_argument("--batch-size", type=int, default=None, help="Rows per insert batch")

    sample = sub.add_parser("sample", help="Write the import template workbook")
    sample.add_argument("out", type=Path)

    search = sub.add_parser("search", help="Search published results")
    group = search.add_mutually_exclusive_group(required=True)
    group.add_argument("--roll-no")
    group.add_argument("--registration-no")
    search.add_argument("--exam-id", type=int, default=None)

    upcoming = sub.add_parser("upcoming", help="List upcoming exams")
    upcoming.add_argument("--limit", type=int, default=3)

    exams = sub.add_parser("exams", help="List active exams by date")
    exams.add_argument("--search", default=None)

    sub.add_parser("init-db", help="Create tables and indexes")
    return p.parse_args(argv)


def _cmd_import(args: argparse.Namespace, cfg: ImportConfig, logger) -> int:
    if args.batch_size is not None:
        if args.batch_size < 1:
            logger.error(f"--batch-size must be >= 1 (got {args.batch_size})")
            return EXIT_FATAL
        cfg = ImportConfig(
            batch_size=args.batch_size,
            error_report_directory=cfg.error_report_directory,
            defaults=cfg.defaults,
            timezone=cfg.timezone,
            keep_na_strings=cfg.keep_na_strings,
            database=cfg.database,
        )
    if not args.file.exists():
        logger.error(f"file not found: {args.file}")
        return EXIT_FATAL

    error_log = ErrorLogBuffer()
    try:
        with _open_store(cfg, dry_run=args.dry_run) as store:
            mode = "dry-run" if isinstance(store, InMemoryResultStore) else "live"
            logger.info(f"mode={mode} file={args.file.name} batch_size={cfg.batch_size}")
            report = import_file(args.file, store, cfg, error_log=error_log)
    except ProcessingError as e:
        logger.error(f"processing: {e}")
        return EXIT_FATAL
    except psycopg2.Error as e:
        logger.error(f"database connection failed: {e}".strip())
        return EXIT_FATAL

    for message in report.error_messages:
        logger.warning(message)
    log_path = error_log.flush()
    if log_path is not None:
        logger.info(f"error log: {log_path}")
    if report.error_report_path is not None:
        logger.info(f"error report: {report.error_report_path}")
    logger.info(report.status_message)
    logger.debug(
        f"batches={report.total_batches} failed_batches={report.failed_batches} "
        f"avg_batch_sec={report.avg_batch_seconds:.4f} p95_batch_sec={report.p95_batch_seconds:.4f} "
        f"created={report.created_entities}"
    )

    # log_summary が "SUMMARY " を付けるので除去
    log_summary(render_summary_line(report)[len("SUMMARY "):])

    if report.outcome is ImportOutcome.REJECTED:
        return EXIT_FATAL
    if report.outcome is ImportOutcome.PARTIAL_SUCCESS:
        return EXIT_PARTIAL_FAILURE
    return EXIT_SUCCESS_ALL


def _cmd_sample(args: argparse.Namespace, logger) -> int:
    try:
        path = write_sample_template(args.out)
    except OSError as e:
        logger.error(f"sample: {e}")
        return EXIT_FATAL
    logger.info(f"sample template written: {path}")
    return EXIT_SUCCESS_ALL


def _cmd_search(args: argparse.Namespace, cfg: ImportConfig, logger) -> int:
    with _open_store(cfg) as store:
        admin = ResultsAdmin(store, defaults=cfg.defaults, timezone=cfg.timezone)
        results = admin.search_results(
            roll_no=args.roll_no, registration_no=args.registration_no, exam_id=args.exam_id
        )
    if not results:
        logger.info("Result not found.")
        return EXIT_SUCCESS_ALL
    for r in results:
        marks = "-" if r.marks is None else f"{r.marks:g}"
        logger.info(
            f"exam_id={r.exam_id} roll_no={r.roll_no} registration_no={r.registration_no or '-'} "
            f"name={r.student_name} marks={marks} status={r.status_text}"
        )
    return EXIT_SUCCESS_ALL


def _cmd_upcoming(args: argparse.Namespace, cfg: ImportConfig, logger) -> int:
    with _open_store(cfg) as store:
        exams = ResultsAdmin(store, timezone=cfg.timezone).upcoming_exams(limit=args.limit)
    if not exams:
        logger.info("No upcoming exams.")
    for e in exams:
        logger.info(f"{e.exam_date} {e.exam_name} (id={e.id})")
    return EXIT_SUCCESS_ALL


def _cmd_exams(args: argparse.Namespace, cfg: ImportConfig, logger) -> int:
    with _open_store(cfg) as store:
        exams = ResultsAdmin(store, timezone=cfg.timezone).list_exams(args.search)
    if not exams:
        logger.info("No exams.")
    for e in exams:
        upcoming = " upcoming" if e.is_upcoming else ""
        logger.info(f"{e.exam_date} {e.exam_name} (id={e.id}){upcoming}")
    return EXIT_SUCCESS_ALL


def _cmd_init_db(cfg: ImportConfig, logger) -> int:
    with _db_connection(cfg) as conn:
        ensure_schema(conn)
    logger.info("schema ready")
    return EXIT_SUCCESS_ALL


def main(argv: list[str] | None = None) -> int:
    # None のときのみ sys.argv を読む (テストから [] を渡せるように)
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    logger = setup_logging(debug=args.debug)
    logger.debug("debug mode enabled")

    _load_env_file(Path(".env"), override=True)
    try:
        cfg = load_config_or_default(args.config)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    if args.command == "import":
        return _cmd_import(args, cfg, logger)
    if args.command == "sample":
        return _cmd_sample(args, logger)
    try:
        if args.command == "search":
            return _cmd_search(args, cfg, logger)
        if args.command == "upcoming":
            return _cmd_upcoming(args, cfg, logger)
        if args.command == "exams":
            return _cmd_exams(args, cfg, logger)
        return _cmd_init_db(cfg, logger)
    except (ResultFormError, StoreError) as e:
        logger.error(f"{args.command}: {e}")
        return EXIT_FATAL
    except psycopg2.Error as e:
        logger.error(f"database connection failed: {e}".strip())
        return EXIT_FATAL


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
