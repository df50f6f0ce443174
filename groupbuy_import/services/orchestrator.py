from __future__ import annotations

import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from ..db.order_upsert import OrderUpsertError, find_group_id, import_order_data
from ..excel.errors import ExcelParseError, WorkbookReadError
from ..excel.parser import parse_order_workbook
from ..logging.error_log import ErrorLogBuffer
from ..models.config_models import ImportConfig
from ..models.error_record import FILE_LEVEL_SHEET, ErrorRecord
from ..models.import_file import FileStatus, ImportFile
from ..models.processing_result import FileStat, ProcessingResult
from .progress import ProgressTracker

"""Service orchestration for the order workbook importer.

Scans the source directory, parses every workbook and (when a cursor is
given) upserts each one in its own transaction. A failing workbook is rolled
back and recorded in the error log; the run continues with the next file.

cursor=None is dry-run mode: workbooks are parsed and validated only.
"""

__all__ = [
    "ProcessingError",
    "scan_excel_files",
    "process_all",
]

logger = logging.getLogger(__name__)


class ProcessingError(Exception):
    """Fatal error preventing the whole run."""
    pass


def scan_excel_files(directory: Path) -> list[Path]:
    """Scan directory for .xlsx files (non-recursive, sorted by name).

    Office lock files (``~$name.xlsx``) are ignored.

    Raises:
        ProcessingError: directory missing or unreadable
    """
    if not directory.exists():
        raise ProcessingError(f"Directory not found: {directory}")

    if not directory.is_dir():
        raise ProcessingError(f"Path is not a directory: {directory}")

    try:
        return sorted(
            (p for p in directory.iterdir()
             if p.is_file() and p.suffix == ".xlsx" and not p.name.startswith("~$")),
            key=lambda p: p.name,
        )
    except OSError as e:
        raise ProcessingError(f"Error reading directory {directory}: {e}") from e


def _resolve_group(config: ImportConfig, cursor: Any) -> Any:
    if cursor is None:
        return None
    try:
        group_id = find_group_id(cursor, config.group_slug)
    except OrderUpsertError as e:
        raise ProcessingError(str(e)) from e
    if group_id is None:
        raise ProcessingError(f"Group not found: {config.group_slug}")
    return group_id


def process_all(config: ImportConfig, cursor: Any = None) -> ProcessingResult:
    """Process all workbooks in the configured directory.

    Args:
        config: Import configuration (directory, group, sheet)
        cursor: Database cursor (None = dry-run)

    Returns:
        ProcessingResult with aggregated metrics and file stats

    Raises:
        ProcessingError: directory problems or unknown group
    """
    start_time = datetime.now(UTC)
    error_log = ErrorLogBuffer()

    file_paths = scan_excel_files(Path(config.source_directory))
    group_id = _resolve_group(config, cursor)

    file_stats: list[FileStat] = []
    success_count = 0
    failed_count = 0
    total_orders = 0
    total_amount = 0.0

    with ProgressTracker(len(file_paths)) as progress:
        for file_path in file_paths:
            progress.start_file(file_path)

            file_result = _process_single_file(file_path, config, cursor, group_id, error_log)

            if file_result.status == FileStatus.SUCCESS:
                success_count += 1
                total_orders += file_result.total_orders
                total_amount += file_result.total_amount
                logger.info(
                    "file=%s period=%s orders=%d amount=%s",
                    file_result.name,
                    file_result.period_name,
                    file_result.total_orders,
                    file_result.total_amount,
                )
            else:
                failed_count += 1
                logger.error("file=%s code=%s %s", file_result.name, file_result.error_code, file_result.error)

            progress.set_postfix(success=success_count, failed=failed_count, orders=total_orders)
            progress.finish_file(success=(file_result.status == FileStatus.SUCCESS))

            file_stats.append(
                FileStat(
                    file_name=file_result.name,
                    status=file_result.status.value,
                    period_name=file_result.period_name,
                    orders=file_result.total_orders,
                    amount=file_result.total_amount,
                    elapsed_seconds=file_result.elapsed_seconds,
                    error_code=file_result.error_code,
                )
            )

    try:
        log_path = error_log.flush()
    except OSError as e:
        # エラーログ書き込み失敗で全体を落とさない
        logger.warning("failed to write error log: %s", e)
    else:
        if log_path is not None:
            logger.info("error log written: %s", log_path)

    end_time = datetime.now(UTC)
    return ProcessingResult(
        success_files=success_count,
        failed_files=failed_count,
        total_orders=total_orders,
        total_amount=total_amount,
        start_time=start_time,
        end_time=end_time,
        elapsed_seconds=(end_time - start_time).total_seconds(),
        file_stats=file_stats,
    )


def _failed(
    base: ImportFile,
    error_log: ErrorLogBuffer,
    error_type: str,
    message: str,
    *,
    row: int = -1,
    period_name: str | None = None,
) -> ImportFile:
    error_log.append(
        ErrorRecord.create(
            file=base.name,
            sheet=base.sheet_name or FILE_LEVEL_SHEET,
            row=row,
            error_type=error_type,
            message=message,
        )
    )
    return ImportFile(
        path=base.path,
        name=base.name,
        sheet_name=base.sheet_name,
        start_time=base.start_time,
        end_time=datetime.now(UTC),
        status=FileStatus.FAILED,
        period_name=period_name,
        error_code=error_type,
        error=message,
    )


def _rollback(cursor: Any, base: ImportFile, error_log: ErrorLogBuffer) -> None:
    try:
        cursor.execute("ROLLBACK")
    except Exception as e:
        # Log rollback failure but don't override original error
        error_log.append(
            ErrorRecord.create(
                file=base.name,
                sheet=FILE_LEVEL_SHEET,
                row=-1,
                error_type="TRANSACTION_ROLLBACK_ERROR",
                message=str(e),
            )
        )


def _process_single_file(
    file_path: Path,
    config: ImportConfig,
    cursor: Any,
    group_id: Any,
    error_log: ErrorLogBuffer,
) -> ImportFile:
    """Parse one workbook and import it within its own transaction.

    Parsing happens before BEGIN so a malformed workbook never opens a
    transaction.
    """
    base = ImportFile(
        path=file_path,
        name=file_path.name,
        sheet_name=config.sheet_name,
        start_time=datetime.now(UTC),
        status=FileStatus.PROCESSING,
    )

    try:
        data = parse_order_workbook(file_path.read_bytes(), sheet_name=config.sheet_name)
    except ExcelParseError as e:
        return _failed(base, error_log, e.code.value, e.message, row=e.row if e.row is not None else -1)
    except (WorkbookReadError, OSError) as e:
        return _failed(base, error_log, "WORKBOOK_READ_ERROR", str(e))
    except Exception as e:
        # 想定外の例外でも後続ファイルの処理は継続する
        logger.debug("unexpected parse failure file=%s", base.name, exc_info=True)
        return _failed(base, error_log, "UNEXPECTED_ERROR", f"{type(e).__name__}: {e}")

    if cursor is None:
        return ImportFile(
            path=base.path,
            name=base.name,
            sheet_name=base.sheet_name,
            start_time=base.start_time,
            end_time=datetime.now(UTC),
            status=FileStatus.SUCCESS,
            period_name=data.period_name,
            total_orders=len(data.orders),
            total_amount=data.total_amount,
        )

    try:
        cursor.execute("BEGIN")
    except Exception as e:
        return _failed(base, error_log, "TRANSACTION_BEGIN_ERROR", str(e), period_name=data.period_name)

    try:
        result = import_order_data(cursor, data, group_id)
    except OrderUpsertError as e:
        _rollback(cursor, base, error_log)
        return _failed(base, error_log, "IMPORT_ERROR", str(e), period_name=data.period_name)
    except Exception as e:
        _rollback(cursor, base, error_log)
        return _failed(
            base, error_log, "UNEXPECTED_ERROR", f"{type(e).__name__}: {e}", period_name=data.period_name
        )

    try:
        cursor.execute("COMMIT")
    except Exception as e:
        _rollback(cursor, base, error_log)
        return _failed(base, error_log, "TRANSACTION_COMMIT_ERROR", str(e), period_name=data.period_name)

    return ImportFile(
        path=base.path,
        name=base.name,
        sheet_name=base.sheet_name,
        start_time=base.start_time,
        end_time=datetime.now(UTC),
        status=FileStatus.SUCCESS,
        period_name=result.period_name,
        total_orders=result.total_orders,
        total_amount=result.total_amount,
    )
