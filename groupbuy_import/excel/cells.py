from __future__ import annotations

import math
import re
from collections.abc import Sequence
from typing import Union

"""Cell value coercion helpers.

Cells arrive from the reader as ``int | float | str | bool | None``. Each
consumption context has its own coercion rule:

- ``cell_to_text``: trimmed text ("" for empty)
- ``cell_to_number``: finite number or None (booleans are NOT numbers here)
- ``cell_to_quantity``: integer quantity (booleans -> 1/0, empty -> 0)
"""

__all__ = [
    "CellValue",
    "Row",
    "cell_at",
    "cell_to_text",
    "cell_to_number",
    "cell_to_quantity",
    "NonIntegerQuantityError",
]

CellValue = Union[int, float, str, bool, None]
Row = Sequence[CellValue]

# 10進数表記のみ許可 (inf / nan / 1_000 / 0x10 は不可)
_DECIMAL_PATTERN = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?$")


class NonIntegerQuantityError(ValueError):
    """Raised by cell_to_quantity when a cell holds a non-integer number."""


def cell_at(row: Row, index: int) -> CellValue:
    """Return the cell at ``index``; short rows pad with None."""
    if index < len(row):
        return row[index]
    return None


def cell_to_text(value: CellValue) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def cell_to_number(value: CellValue) -> float | int | None:
    """Coerce a cell to a finite number, or None when it holds no numeric value."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value if math.isfinite(value) else None
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped or not _DECIMAL_PATTERN.match(stripped):
            return None
        parsed = float(stripped)
        if not math.isfinite(parsed):
            return None
        return parsed
    return None


def cell_to_quantity(value: CellValue) -> int:
    """Coerce a data cell to an integer quantity.

    Raises:
        NonIntegerQuantityError: the cell holds a finite number that is not integral
    """
    if isinstance(value, bool):
        return 1 if value else 0
    number = cell_to_number(value)
    if number is None:
        return 0
    if isinstance(number, float):
        if not number.is_integer():
            raise NonIntegerQuantityError(f"invalid quantity: {value!r}")
        return int(number)
    return number
