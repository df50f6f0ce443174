from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path

"""ImportFile domain model and FileStatus enum.

ImportFile is the processing context for a single workbook, tracking its
status through the import lifecycle from pending to success/failed.
"""


class FileStatus(Enum):
    """Status enum for ImportFile processing lifecycle.

    State transitions: pending → processing → (success | failed)
    """
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass(frozen=True)
class ImportFile:
    """Processing context for a single workbook."""
    path: Path                           # Full path to the workbook
    name: str                            # File name
    sheet_name: str | None = None        # Requested sheet (None = first)
    start_time: datetime | None = None   # Processing start (UTC)
    end_time: datetime | None = None     # Processing end (UTC)
    status: FileStatus = FileStatus.PENDING
    period_name: str | None = None       # Parsed period (set once parsing succeeds)
    total_orders: int = 0                # Aggregated orders imported
    total_amount: float = 0.0            # Sum of order totals
    error_code: str | None = None        # ParseErrorCode value or IMPORT_ERROR etc.
    error: str | None = None             # Failure reason summary

    @property
    def elapsed_seconds(self) -> float:
        if self.start_time is None or self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds()
