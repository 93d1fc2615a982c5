from __future__ import annotations

import re
from pathlib import Path
from unittest.mock import patch

from conftest import ALWAYS, FakeEndpoint
from registry_import.cli import main as cli_main

SUMMARY_PATTERN = re.compile(
    r"^SUMMARY session=(?P<session>\S+) status=(?P<status>idle|completed|error) "
    r"files=(?P<total>\d+)/(?P<total2>\d+) completed=(?P<completed>\d+) failed=(?P<failed>\d+) "
    r"rejected=(?P<rejected>\d+) rows=(?P<rows>\d+) skipped_rows=(?P<skipped>\d+) "
    r"elapsed_sec=(?P<elapsed>\d+(\.\d+)?) throughput_rps=(?P<throughput>\d+(\.\d+)?)$",
    re.MULTILINE,
)


def _summary(out: str) -> dict[str, str]:
    matches = list(SUMMARY_PATTERN.finditer(out))
    assert len(matches) == 1, f"expected exactly one SUMMARY line in:\n{out}"
    return matches[0].groupdict()


def test_summary_line_format_and_values(temp_workdir: Path, write_config, write_registry_file, capsys) -> None:
    write_registry_file("a.xml", 3)
    write_registry_file("b.xml", 1)
    write_registry_file("c.xml", 2)
    write_registry_file("huge.xml", 60)

    with patch("registry_import.cli.HttpBatchEndpoint", return_value=FakeEndpoint(failures={"b": ALWAYS})):
        cli_main(["--year", "2024"])

    summary = _summary(capsys.readouterr().out)
    assert re.fullmatch(r"[0-9a-f]{32}", summary["session"])
    assert summary["status"] == "completed"
    assert summary["total"] == summary["total2"] == "3"
    assert (summary["completed"], summary["failed"], summary["rejected"]) == ("2", "1", "1")
    assert summary["rows"] == "5"
    assert summary["skipped"] == "0"


def test_summary_counts_skipped_rows(temp_workdir: Path, write_config, capsys) -> None:
    (temp_workdir / "data" / "mixed.xml").write_text(
        "<aksjonaerregister>"
        "<row><orgnr>912345678</orgnr><selskap>mixed</selskap><navn_aksjonaer>Ola</navn_aksjonaer></row>"
        "<row><orgnr>12AB</orgnr><selskap>mixed</selskap><navn_aksjonaer>Kari</navn_aksjonaer></row>"
        "</aksjonaerregister>",
        encoding="utf-8",
    )

    with patch("registry_import.cli.HttpBatchEndpoint", return_value=FakeEndpoint()):
        code = cli_main(["--year", "2024"])

    summary = _summary(capsys.readouterr().out)
    assert code == 0
    assert summary["rows"] == "1"
    assert summary["skipped"] == "1"


def test_summary_is_last_informational_line(temp_workdir: Path, write_config, write_registry_file, capsys) -> None:
    write_registry_file("a.xml", 1)

    with patch("registry_import.cli.HttpBatchEndpoint", return_value=FakeEndpoint()):
        cli_main(["--year", "2024"])

    lines = capsys.readouterr().out.strip().splitlines()
    assert lines[-1].startswith("SUMMARY ")
