#!/usr/bin/env python3
"""Synthetic result upload generator.

Writes an .xlsx file in the upload format (header on row 1, one result per
row) for load testing the importer. Optional knobs inject the error cases the
importer must survive:

- ``--duplicate-ratio``: share of rows repeating an earlier (exam, roll_no)
- ``--blank-roll-ratio``: share of rows with an empty roll_no

Blank roll numbers trip the required-field gate, so a file generated with
``--blank-roll-ratio > 0`` is expected to be rejected as a whole.
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

import numpy as np
import pandas as pd

from results_import.services.row_validator import REQUIRED_COLUMNS

FIRST_NAMES = ["Amit", "Riya", "Neha", "Karan", "Anjali", "Rahul", "Pooja", "Vikas", "Sneha", "Arjun"]
LAST_NAMES = ["Kumar", "Singh", "Gupta", "Verma", "Rai", "Sharma", "Yadav", "Mishra"]
STATUS_TEXT = ["pass", "fail", "absent"]


def generate_results(
    rows: int,
    *,
    exams: int = 1,
    classes: int = 3,
    session: str = "2026",
    exam_date: str = "2026-02-08",
    duplicate_ratio: float = 0.0,
    blank_roll_ratio: float = 0.0,
    seed: int = 42,
) -> pd.DataFrame:
    """Build ``rows`` upload rows spread over ``exams`` x ``classes``.

    Roll numbers are unique per exam unless ``duplicate_ratio`` > 0.
    """
    rng = np.random.default_rng(seed)

    exam_idx = rng.integers(0, exams, rows)
    class_idx = rng.integers(0, classes, rows)
    marks = rng.integers(0, 101, rows)
    status = np.where(marks >= 33, "pass", rng.choice(STATUS_TEXT[1:], rows))
    first = rng.choice(FIRST_NAMES, rows)
    last = rng.choice(LAST_NAMES, rows)
    birth_year = rng.integers(2008, 2016, rows)

    roll_no = [str(1000 + i) for i in range(rows)]
    n_dup = int(rows * duplicate_ratio)
    if n_dup and rows > 1:
        targets = rng.choice(np.arange(1, rows), size=min(n_dup, rows - 1), replace=False)
        for t in targets:
            src = int(rng.integers(0, t))
            roll_no[t] = roll_no[src]
            exam_idx[t] = exam_idx[src]
    n_blank = int(rows * blank_roll_ratio)
    if n_blank:
        for t in rng.choice(np.arange(rows), size=min(n_blank, rows), replace=False):
            roll_no[t] = ""

    df = pd.DataFrame(
        {
            "exam_name": [f"GK {session}" if e == 0 else f"Exam {e + 1} {session}" for e in exam_idx],
            "exam_date": exam_date,
            "session": session,
            "class_name": [f"Class {c + 5}" for c in class_idx],
            "roll_no": roll_no,
            "registration_no": [f"{session}{i:08d}" for i in range(rows)],
            "student_name": [f"{f} {l}" for f, l in zip(first, last, strict=True)],
            "dob": [f"{y}-{m:02d}-{d:02d}" for y, m, d in zip(
                birth_year, rng.integers(1, 13, rows), rng.integers(1, 29, rows), strict=True
            )],
            "mobile": [str(9000000000 + int(n)) for n in rng.integers(0, 999_999_999, rows)],
            "marks": marks,
            "status_text": status,
            "result_status": "published",
        }
    )
    return df[list(REQUIRED_COLUMNS)]


def write_dataset(output_path: Path, df: pd.DataFrame, sheet_name: str = "Results") -> None:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with pd.ExcelWriter(output_path, engine="openpyxl") as writer:
        df.to_excel(writer, sheet_name=sheet_name, index=False)
    print(f"Created Excel file: {output_path}")
    print(f"  Rows: {len(df):,}")
    print(f"  Exams: {df['exam_name'].nunique()}  Classes: {df['class_name'].nunique()}")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Generate a synthetic exam results upload",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s results.xlsx --rows 500
  %(prog)s dupes.xlsx --rows 200 --duplicate-ratio 0.1
        """,
    )
    parser.add_argument("output", type=Path, help="Output Excel file path")
    parser.add_argument("--rows", type=int, default=500, help="Number of result rows (default: 500)")
    parser.add_argument("--exams", type=int, default=1, help="Distinct exams (default: 1)")
    parser.add_argument("--classes", type=int, default=3, help="Distinct classes (default: 3)")
    parser.add_argument("--session", default="2026", help="Session name (default: 2026)")
    parser.add_argument("--exam-date", default="2026-02-08", help="Exam date, ISO (default: 2026-02-08)")
    parser.add_argument("--duplicate-ratio", type=float, default=0.0)
    parser.add_argument("--blank-roll-ratio", type=float, default=0.0)
    parser.add_argument("--seed", type=int, default=42, help="Random seed (default: 42)")
    args = parser.parse_args(argv)

    if args.rows <= 0:
        print("Error: --rows must be positive", file=sys.stderr)
        return 1
    for name in ("duplicate_ratio", "blank_roll_ratio"):
        if not 0.0 <= getattr(args, name) <= 1.0:
            print(f"Error: --{name.replace('_', '-')} must be within [0, 1]", file=sys.stderr)
            return 1

    df = generate_results(
        args.rows,
        exams=args.exams,
        classes=args.classes,
        session=args.session,
        exam_date=args.exam_date,
        duplicate_ratio=args.duplicate_ratio,
        blank_roll_ratio=args.blank_roll_ratio,
        seed=args.seed,
    )
    try:
        write_dataset(args.output, df)
    except OSError as e:
        print(f"Error writing dataset: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
