from __future__ import annotations

from enum import Enum

"""Error taxonomy for the order workbook parser.

Every parse failure is raised as ``ExcelParseError`` carrying one code from
``ParseErrorCode``. The code is the stable contract for callers (CLI, error log,
import endpoint); the message is advisory only.
"""

__all__ = [
    "ParseErrorCode",
    "ExcelParseError",
    "WorkbookReadError",
]


class ParseErrorCode(str, Enum):
    """Closed set of parse failure codes.

    Structural: the sheet does not have the expected shape.
    Cell-level: a specific cell violates a value constraint.
    Merge-time: only visible after scanning the whole sheet.
    """
    # structural
    MISSING_SHEET = "MISSING_SHEET"
    MISSING_TITLE_ROW = "MISSING_TITLE_ROW"
    MISSING_PERIOD_NAME = "MISSING_PERIOD_NAME"
    MISSING_PRODUCT_ROW = "MISSING_PRODUCT_ROW"
    MISSING_UNIT_PRICE_ROW = "MISSING_UNIT_PRICE_ROW"
    INVALID_LAYOUT = "INVALID_LAYOUT"
    # cell-level
    MISSING_UNIT_PRICE = "MISSING_UNIT_PRICE"
    MISSING_NICKNAME = "MISSING_NICKNAME"
    INVALID_QUANTITY = "INVALID_QUANTITY"
    # merge-time
    MISSING_PRODUCT_TYPES = "MISSING_PRODUCT_TYPES"
    NO_ORDERS = "NO_ORDERS"
    PRODUCT_MISMATCH = "PRODUCT_MISMATCH"


class ExcelParseError(Exception):
    """Raised when a workbook cannot be imported as-is.

    Attributes:
        code: ParseErrorCode member
        message: Human readable description
        row: 1-based row number in the normalized grid, if the failure is row-bound
    """

    def __init__(self, code: ParseErrorCode, message: str, *, row: int | None = None) -> None:
        super().__init__(message)
        self.code = ParseErrorCode(code)
        self.message = message
        self.row = row

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class WorkbookReadError(Exception):
    """Raised when the payload cannot be decoded as an xlsx workbook."""
