from __future__ import annotations

import argparse
import os
import sys
from contextlib import contextmanager
from pathlib import Path

import psycopg2
from dotenv import load_dotenv

from ..config.loader import DEFAULT_CONFIG_PATH, ConfigError, load_config
from ..excel.errors import ExcelParseError, WorkbookReadError
from ..excel.parser import parse_order_workbook
from ..logging.init import log_summary, set_debug, setup_logging
from ..models.config_models import ImportConfig
from ..services.orchestrator import ProcessingError, process_all, scan_excel_files
from ..services.summary import render_summary_line

"""CLI entrypoint.

Flow:
- Load .env and config/import.yml
- Scan source_directory for .xlsx workbooks
- Parse each workbook and upsert it into PostgreSQL (one transaction per file)
- Print the SUMMARY line and exit with a contract exit code
"""

EXIT_SUCCESS_ALL = 0
EXIT_PARTIAL_FAILURE = 2
EXIT_FATAL = 1

INSPECT_SAMPLE_ORDERS = 3


def _build_dsn(cfg: ImportConfig) -> str:
    """Resolve connection parameters.

    Priority: DATABASE_URL / PGDSN, then PGHOST / PGPORT / PGUSER / PGPASSWORD /
    PGDATABASE, then the ``database`` section of the config file.
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
def _db_connection(cfg: ImportConfig):  # pragma: no cover (thin wrapper; tested via mocks)
    """Provide a psycopg2 cursor. Transactions are driven by the orchestrator."""
    conn = psycopg2.connect(_build_dsn(cfg))
    # BEGIN / COMMIT / ROLLBACK は orchestrator が明示実行する
    conn.autocommit = True
    try:
        cur = conn.cursor()
        try:
            yield cur
        finally:
            cur.close()
    finally:
        conn.close()


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Group-buy order workbook importer")
    p.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH, help="Path to import.yml")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    p.add_argument("--dry-run", action="store_true", help="Parse and validate only, no database writes")
    p.add_argument("--inspect-data", action="store_true", help="Print parsed periods & first orders then exit")
    return p.parse_args(argv)


def _inspect_data(cfg: ImportConfig) -> int:
    try:
        excel_files = scan_excel_files(Path(cfg.source_directory))
    except ProcessingError as e:
        print(f"inspect: {e}")
        return EXIT_FATAL
    if not excel_files:
        print("inspect: no .xlsx files")
        return EXIT_SUCCESS_ALL
    for f in excel_files:
        print(f"FILE: {f.name}")
        try:
            data = parse_order_workbook(f.read_bytes(), sheet_name=cfg.sheet_name)
        except ExcelParseError as e:
            print(f"  parse_error: code={e.code.value} {e.message}")
            continue
        except (WorkbookReadError, OSError) as e:
            print(f"  read_error: {e}")
            continue
        products = [f"{p.name}@{p.unit_price}" for p in data.product_types]
        print(f"  PERIOD: {data.period_name} products={products} orders={len(data.orders)}")
        for order in data.orders[:INSPECT_SAMPLE_ORDERS]:
            quantities = {i.product_name: i.quantity for i in order.items if i.quantity}
            print(f"    {order.nickname}: total={order.total_amount} items={quantities}")
    return EXIT_SUCCESS_ALL


def main(argv: list[str] | None = None) -> int:
    logger = setup_logging()

    # 空リスト [] が与えられた場合に sys.argv[1:] が混入しないよう None のときのみ読む
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    # .env を最優先で読み込む (DB 接続パラメータ優先順位保証)
    load_dotenv(dotenv_path=Path(".env"), override=True)

    if args.debug:
        set_debug(logger)
        logger.debug("debug mode enabled")

    try:
        cfg = load_config(args.config)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    directory = Path(cfg.source_directory)
    if not directory.exists():
        logger.error(f"directory not found: {directory}")
        return EXIT_FATAL

    logger.info(f"Processing files from: {directory} group={cfg.group_slug}")

    if args.inspect_data:
        return _inspect_data(cfg)

    # テスト等で DB 接続を完全に無効化したい場合 DISABLE_DB_CONNECT=1
    dry_run = args.dry_run or os.getenv("DISABLE_DB_CONNECT") == "1"
    try:
        if dry_run:
            logger.debug("dry-run mode: no database writes")
            result = process_all(cfg, cursor=None)
        else:
            with _db_connection(cfg) as cur:
                result = process_all(cfg, cursor=cur)
    except psycopg2.Error as e:
        logger.error(f"database: {e}")
        return EXIT_FATAL
    except ProcessingError as e:
        logger.error(f"processing: {e}")
        return EXIT_FATAL

    mode = "dry-run" if dry_run else "live"
    logger.info(f"mode={mode} total_orders={result.total_orders}")

    summary_line = render_summary_line(result.total_files, result)
    # log_summary が "SUMMARY " を付与するため除去
    log_summary(summary_line[len("SUMMARY "):])

    if result.failed_files > 0:
        return EXIT_PARTIAL_FAILURE
    return EXIT_SUCCESS_ALL


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
