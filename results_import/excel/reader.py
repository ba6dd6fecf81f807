from __future__ import annotations

from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from typing import Any

import pandas as pd

"""Excel reader for result uploads.

Only the first sheet of the workbook is used. Row 1 is the header; every
following non-blank row is one candidate result. Cells are read as objects so
roll numbers / mobiles keep their integer form and dates stay datetimes until
ImportRow coercion.
"""


class SheetHeaderError(Exception):
    """Raised when the sheet has no header row."""


@dataclass
class SheetData:
    sheet_name: str
    columns: list[str]
    rows: list[dict[str, Any]]  # 正規化済 (列名→値, 空セルは None)


def read_first_sheet(
    source: Path | bytes, keep_na_strings: list[str] | None = None
) -> tuple[str, pd.DataFrame]:
    """Read the first sheet of a workbook without header processing.

    Parameters
    ----------
    source: workbook path, or raw .xlsx bytes (uploaded file content)
    keep_na_strings: strings pandas would turn into NaN but that must stay text
        (e.g. ['NA'] as a registration number)
    """
    import pandas._libs.parsers as parsers

    if keep_na_strings:
        na_values = list(parsers.STR_NA_VALUES - set(keep_na_strings))
        keep_default_na = False
    else:
        na_values = None
        keep_default_na = True

    data = BytesIO(source) if isinstance(source, bytes) else source
    with pd.ExcelFile(data) as xls:
        name = str(xls.sheet_names[0])
        df = xls.parse(
            xls.sheet_names[0],
            header=None,
            dtype=object,
            keep_default_na=keep_default_na,
            na_values=na_values,
        )
    return name, df


def normalize_sheet(df: pd.DataFrame, sheet_name: str) -> SheetData:
    """Split a raw DataFrame into header columns and data-row dicts.

    Steps:
    1. Validate that a header row exists
    2. Header = first row, stripped; blank header cells become ""
    3. Remaining rows become dicts; fully blank rows are skipped
    4. NaN / NaT cells become None
    """
    if df.shape[0] < 1:
        raise SheetHeaderError(f"sheet '{sheet_name}' has no header row")
    columns = ["" if pd.isna(c) else str(c).strip() for c in df.iloc[0].tolist()]
    rows: list[dict[str, Any]] = []
    for _, raw in df.iloc[1:].iterrows():
        if raw.isna().all():
            continue
        row_dict: dict[str, Any] = {}
        for col, val in zip(columns, raw.tolist(), strict=False):
            if not col:
                continue
            row_dict[col] = None if pd.isna(val) else val
        rows.append(row_dict)
    return SheetData(sheet_name=sheet_name, columns=columns, rows=rows)
