# Shared pytest fixtures
from __future__ import annotations

import io
import logging
import tempfile
import zipfile
from collections.abc import Callable
from pathlib import Path

import pandas as pd
import pytest

from groupbuy_import.logging.init import LOGGER_NAME, reset_logging

WorkbookFactory = Callable[..., bytes]


def build_workbook(sheets: dict[str, list[list[object]]]) -> bytes:
    """Build an in-memory xlsx with header-less sheets (insertion order kept)."""
    buf = io.BytesIO()
    with pd.ExcelWriter(buf, engine="openpyxl") as writer:
        for name, rows in sheets.items():
            pd.DataFrame(rows).to_excel(writer, sheet_name=name, header=False, index=False)
    return buf.getvalue()


def truncate_sheet_xml(payload: bytes, member: str = "xl/worksheets/sheet1.xml") -> bytes:
    """Return a copy of an xlsx whose sheet XML is cut in half (valid zip, broken sheet)."""
    out = io.BytesIO()
    with zipfile.ZipFile(io.BytesIO(payload)) as src, zipfile.ZipFile(out, "w", zipfile.ZIP_DEFLATED) as dst:
        for info in src.infolist():
            content = src.read(info.filename)
            if info.filename == member:
                content = content[: len(content) // 2]
            dst.writestr(info, content)
    return out.getvalue()


# 正常系サンプル: alice は 2 行 (合算対象)、bob は返品 (-1) を含む
SAMPLE_ROWS: list[list[object]] = [
    ["【测试】汇总表"],
    ["", "种类", "A", "B"],
    ["", "单价", 5, 2.5],
    ["总金额", "昵称/总数", 0, 0],
    [5, "alice", 1, 0],
    [2.5, "bob", 1, -1],
    [7.5, "alice", 0, 3],
]


@pytest.fixture(autouse=True)
def _isolate_logging():
    reset_logging()
    yield
    reset_logging()
    logger = logging.getLogger(LOGGER_NAME)
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


@pytest.fixture()
def make_workbook() -> WorkbookFactory:
    def _make(rows: list[list[object]], sheet_name: str = "汇总表") -> bytes:
        return build_workbook({sheet_name: rows})
    return _make


@pytest.fixture()
def make_multi_workbook() -> Callable[[dict[str, list[list[object]]]], bytes]:
    return build_workbook


@pytest.fixture()
def sample_rows() -> list[list[object]]:
    return [list(r) for r in SAMPLE_ROWS]


@pytest.fixture()
def sample_workbook() -> bytes:
    return build_workbook({"汇总表": SAMPLE_ROWS})


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        monkeypatch.delenv("DATABASE_URL", raising=False)
        yield p


@pytest.fixture()
def sample_config_yaml() -> str:
    return """source_directory: ./data
group_slug: spring-2026
database:
  host: localhost
  port: 5432
  user: appuser
  password: secret
  database: appdb
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "import.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture()
def write_workbook(temp_workdir: Path) -> Callable[[str, bytes], Path]:
    def _write(name: str, payload: bytes) -> Path:
        path = temp_workdir / "data" / name
        path.write_bytes(payload)
        return path
    return _write


@pytest.fixture()
def dry_run_env(monkeypatch) -> None:
    monkeypatch.setenv("DISABLE_DB_CONNECT", "1")



@pytest.fixture()
def corrupt_sheet_workbook(sample_workbook: bytes) -> bytes:
    return truncate_sheet_xml(sample_workbook)
