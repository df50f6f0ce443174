from __future__ import annotations

import re
from pathlib import Path

from groupbuy_import.cli import main as cli_main

"""SUMMARY line contract: exactly one line, fixed key order."""

SUMMARY_REGEX = re.compile(
    r"^SUMMARY files=(\d+)/(\1) success=(\d+) failed=(\d+) orders=(\d+) "
    r"amount=(-?\d+(?:\.\d+)?) elapsed_sec=(\d+(?:\.\d+)?)$"
)


def _summary_lines(out: str) -> list[str]:
    return [line for line in out.splitlines() if line.startswith("SUMMARY")]


def test_summary_line_format_dry_run(write_config, write_workbook, sample_workbook, dry_run_env, capsys):
    write_workbook("a.xlsx", sample_workbook)
    write_workbook("b.xlsx", sample_workbook)

    code = cli_main([])

    (line,) = _summary_lines(capsys.readouterr().out)
    match = SUMMARY_REGEX.match(line)
    assert code == 0
    assert match, line
    assert match.group(1) == "2"
    assert match.group(3) == "2"
    assert match.group(4) == "0"
    assert match.group(5) == "4"
    assert match.group(6) == "30"


def test_summary_line_is_last_line(write_config, dry_run_env, temp_workdir: Path, capsys):
    cli_main([])
    lines = capsys.readouterr().out.strip().splitlines()
    assert SUMMARY_REGEX.match(lines[-1])


def test_no_summary_on_fatal(temp_workdir: Path, capsys):
    code = cli_main([])
    out = capsys.readouterr().out
    assert code == 1
    assert "ERROR config:" in out
    assert _summary_lines(out) == []
