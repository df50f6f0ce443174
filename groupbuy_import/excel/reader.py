from __future__ import annotations

import io
import math
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Any, Union

import numpy as np
import pandas as pd

from .cells import CellValue
from .errors import ExcelParseError, ParseErrorCode, WorkbookReadError

"""Workbook reader.

xlsx バイト列を pandas (openpyxl engine) でヘッダなし生読みし、
シート名 -> 行リスト (list[list[CellValue]]) に正規化する。

Typing policy:
- numbers stay numeric (numpy scalars -> Python int/float)
- booleans stay booleans
- text is trimmed; empty text -> None
- NaN / missing -> None
- date / time / duration cells -> Excel serial number (1900 date system),
  the value OOXML stores under the display format
- anything else -> trimmed text
Fully blank rows are dropped.
"""

__all__ = [
    "WorkbookBytes",
    "WorkbookData",
    "read_workbook",
    "normalize_rows",
    "select_sheet",
]

WorkbookBytes = Union[bytes, bytearray, memoryview]

EXCEL_EPOCH = datetime(1899, 12, 30)
ONE_DAY = timedelta(days=1)


@dataclass(frozen=True)
class WorkbookData:
    sheet_names: list[str]  # document order
    sheets: dict[str, list[list[CellValue]]] = field(default_factory=dict)


def _to_excel_serial(value: Any) -> float | None:
    """Date-formatted cell back to its stored serial number (None if not temporal)."""
    if isinstance(value, datetime):
        return (value.replace(tzinfo=None) - EXCEL_EPOCH) / ONE_DAY
    if isinstance(value, date):
        return (datetime.combine(value, time()) - EXCEL_EPOCH) / ONE_DAY
    if isinstance(value, time):
        seconds = value.hour * 3600 + value.minute * 60 + value.second + value.microsecond / 1_000_000
        return seconds / 86400
    if isinstance(value, timedelta):
        return value / ONE_DAY
    return None


def _normalize_cell(value: Any) -> CellValue:
    if value is None:
        return None
    if isinstance(value, (bool, np.bool_)):
        return bool(value)
    if isinstance(value, (int, np.integer)):
        return int(value)
    if isinstance(value, (float, np.floating)):
        f = float(value)
        return None if math.isnan(f) else f
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    if pd.isna(value):
        return None
    serial = _to_excel_serial(value)
    if serial is not None:
        return serial
    text = str(value).strip()
    return text or None


def normalize_rows(df: pd.DataFrame) -> list[list[CellValue]]:
    """Convert a raw header-less DataFrame into rows of normalized cells."""
    rows: list[list[CellValue]] = []
    for raw in df.itertuples(index=False, name=None):
        row = [_normalize_cell(v) for v in raw]
        # 全セル空の行はスキップ
        if all(v is None for v in row):
            continue
        # 末尾の空セルは落とす (行長は可変)
        while row and row[-1] is None:
            row.pop()
        rows.append(row)
    return rows


def read_workbook(data: WorkbookBytes) -> WorkbookData:
    """Decode an in-memory xlsx payload into normalized sheets.

    Parameters
    ----------
    data: bytes / bytearray / memoryview holding the OOXML workbook

    Raises
    ------
    WorkbookReadError: payload is not a readable workbook
    """
    buffer = io.BytesIO(bytes(data))
    try:
        xls = pd.ExcelFile(buffer, engine="openpyxl")
    except Exception as e:
        raise WorkbookReadError(f"cannot read workbook: {e}") from e

    sheet_names = [str(name) for name in xls.sheet_names]
    sheets: dict[str, list[list[CellValue]]] = {}
    for name in xls.sheet_names:
        # dtype=object: 型推論させない / keep_default_na=False: "NA" 等のニックネームを保持
        # シート XML は parse 時に初めて展開される (read-only モード)
        try:
            df = xls.parse(name, header=None, dtype=object, keep_default_na=False)
        except Exception as e:
            raise WorkbookReadError(f"cannot read sheet \"{name}\": {e}") from e
        sheets[str(name)] = normalize_rows(df)
    return WorkbookData(sheet_names=sheet_names, sheets=sheets)


def select_sheet(workbook: WorkbookData, sheet_name: str | None = None) -> list[list[CellValue]]:
    """Pick the sheet to import: the named one, or the first in document order."""
    if sheet_name is None:
        if not workbook.sheet_names:
            raise ExcelParseError(ParseErrorCode.MISSING_SHEET, "Workbook has no sheets")
        sheet_name = workbook.sheet_names[0]
    if sheet_name not in workbook.sheets:
        raise ExcelParseError(ParseErrorCode.MISSING_SHEET, f'Missing sheet "{sheet_name}"')
    return workbook.sheets[sheet_name]
