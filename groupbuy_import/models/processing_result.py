from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

"""Processing result models for an import run.

ProcessingResult feeds the SUMMARY output line; FileStat keeps per-file detail.
"""


@dataclass(frozen=True)
class FileStat:
    """Per-file processing statistics."""
    file_name: str  # ファイル名
    status: str  # success/failed
    period_name: str | None  # 取込期間名 (解析失敗時 None)
    orders: int  # 取込注文数
    amount: float  # 注文金額合計
    elapsed_seconds: float  # ファイル処理時間
    error_code: str | None = None


@dataclass(frozen=True)
class ProcessingResult:
    """Aggregated results of one import run."""
    success_files: int  # 成功ファイル数
    failed_files: int  # 失敗ファイル数
    total_orders: int  # 総注文数
    total_amount: float  # 総金額
    start_time: datetime  # 全体開始
    end_time: datetime  # 全体終了
    elapsed_seconds: float  # end - start
    file_stats: list[FileStat] | None = None  # ファイル詳細

    @property
    def total_files(self) -> int:
        return self.success_files + self.failed_files
