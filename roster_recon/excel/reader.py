from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import numpy as np
import pandas as pd

from ..errors import SpreadsheetFormatError

"""Spreadsheet reader.

The first row is the header row, every following non-blank row is a data row. Rows are
returned as header-keyed mappings in file order; interpretation of the columns is left
to services/normalizer.py.

.xlsx is read through openpyxl and legacy .xls through xlrd (pandas picks the engine
from the file).
"""

__all__ = [
    "SheetData",
    "read_upload_file",
    "normalize_sheet",
]

HEADER_ROW_NUMBER = 1


@dataclass
class SheetData:
    sheet_name: str
    columns: list[str]
    rows: list[dict[str, Any]] = field(default_factory=list)  # column -> cell value
    row_numbers: list[int] = field(default_factory=list)  # sheet row of each entry in rows


def _cell_value(val: Any) -> Any:
    if val is None:
        return None
    if isinstance(val, np.generic):
        val = val.item()
    if isinstance(val, str):
        stripped = val.strip()
        return stripped if stripped else None
    if pd.isna(val):
        return None
    return val


def read_upload_file(path: Path, sheet: str | int = 0) -> SheetData:
    """Read one sheet of an uploaded workbook.

    Parameters
    ----------
    path: .xlsx / .xls file
    sheet: sheet name or 0-based index (default: the first sheet)

    Raises
    ------
    SpreadsheetFormatError: the file is missing, not a workbook, or the sheet is absent
    """
    if not path.exists():
        raise SpreadsheetFormatError(f"upload file not found: {path}")
    try:
        # Header-less raw read; header applied in normalize_sheet
        df = pd.read_excel(path, sheet_name=sheet, header=None, dtype=object)
    except Exception as e:
        raise SpreadsheetFormatError(f"cannot read spreadsheet '{path.name}': {e}") from e
    sheet_name = sheet if isinstance(sheet, str) else str(sheet)
    return normalize_sheet(df, sheet_name)


def normalize_sheet(df: pd.DataFrame, sheet_name: str) -> SheetData:
    """Turn a raw header-less DataFrame into header-keyed rows.

    Steps:
    1. Empty sheet -> no columns, no rows
    2. First row becomes the header; blank header cells are dropped when their column
       holds no data, otherwise the sheet is malformed
    3. Fully blank data rows are skipped (row numbers keep their sheet position)
    """
    if df.shape[0] == 0:
        return SheetData(sheet_name=sheet_name, columns=[])

    header = [_cell_value(v) for v in df.iloc[0].tolist()]
    data_part = df.iloc[1:]

    keep: list[int] = []
    columns: list[str] = []
    for idx, name in enumerate(header):
        if name is None:
            if data_part.shape[0] and not data_part.iloc[:, idx].isna().all():
                raise SpreadsheetFormatError(
                    f"sheet '{sheet_name}' column {idx + 1} has data but no header"
                )
            continue
        name = str(name).strip()
        if name in columns:
            raise SpreadsheetFormatError(f"sheet '{sheet_name}' has duplicate column '{name}'")
        keep.append(idx)
        columns.append(name)

    rows: list[dict[str, Any]] = []
    row_numbers: list[int] = []
    for offset, (_, raw) in enumerate(data_part.iterrows()):
        values = [_cell_value(raw.iloc[i]) for i in keep]
        if all(v is None for v in values):
            continue
        rows.append(dict(zip(columns, values, strict=True)))
        row_numbers.append(HEADER_ROW_NUMBER + 1 + offset)

    return SheetData(sheet_name=sheet_name, columns=columns, rows=rows, row_numbers=row_numbers)
