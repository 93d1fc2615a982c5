from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

from conftest import ALWAYS, FakeEndpoint
from registry_import.cli import main as cli_main

"""Exit code contract: 0 all imported, 2 completed with failed/rejected files, 1 fatal."""


def _run(endpoint: FakeEndpoint, argv: list[str]) -> int:
    with patch("registry_import.cli.HttpBatchEndpoint", return_value=endpoint):
        return cli_main(argv)


def test_exit_code_fatal_without_config(temp_workdir: Path, capsys) -> None:
    code = cli_main(["--year", "2024"])

    assert code == 1
    assert "ERROR config:" in capsys.readouterr().out


def test_exit_code_all_success(temp_workdir: Path, write_config, write_registry_file, capsys) -> None:
    write_registry_file("a.xml", 3)
    write_registry_file("b.xml", 2)

    code = _run(FakeEndpoint(), ["--year", "2024"])

    out = capsys.readouterr().out
    assert code == 0
    assert "status=completed files=2/2 completed=2 failed=0 rejected=0 rows=5" in out
    assert list((temp_workdir / "logs").iterdir()) == []


def test_exit_code_partial_failure(temp_workdir: Path, write_config, write_registry_file, capsys) -> None:
    write_registry_file("a.xml", 3)
    write_registry_file("b.xml", 2)

    code = _run(FakeEndpoint(failures={"b": ALWAYS}), ["--year", "2024"])

    out = capsys.readouterr().out
    assert code == 2
    assert "status=completed files=2/2 completed=1 failed=1 rejected=0 rows=3" in out
    assert "ERROR file=b.xml failed: batch 1/1 failed after 3 attempt(s)" in out


def test_exit_code_rejected_file_only(temp_workdir: Path, write_config, write_registry_file, capsys) -> None:
    write_registry_file("a.xml", 2)
    write_registry_file("huge.xml", 60)

    endpoint = FakeEndpoint()
    code = _run(endpoint, ["--year", "2024"])

    out = capsys.readouterr().out
    assert code == 2
    assert "WARN rejected huge.xml: file too large" in out
    assert "files=1/1 completed=1 failed=0 rejected=1" in out
    assert set(endpoint.attempts) == {"a"}


def test_exit_code_fatal_on_finalization_failure(temp_workdir: Path, write_config, write_registry_file, capsys) -> None:
    write_registry_file("a.xml", 2)

    code = _run(FakeEndpoint(finish_error=RuntimeError("aggregation timeout")), ["--year", "2024"])

    out = capsys.readouterr().out
    assert code == 1
    assert "status=error" in out
    assert "ERROR import failed: session finalization failed: aggregation timeout" in out


def test_exit_code_fatal_when_nothing_admissible(temp_workdir: Path, write_config, write_registry_file, capsys) -> None:
    write_registry_file("huge.xml", 60)

    endpoint = FakeEndpoint()
    code = _run(endpoint, ["--year", "2024"])

    assert code == 1
    assert "ERROR no admissible files to import" in capsys.readouterr().out
    assert endpoint.batch_calls == []


def test_exit_code_success_on_empty_directory(temp_workdir: Path, write_config, capsys) -> None:
    code = _run(FakeEndpoint(), ["--year", "2024"])

    out = capsys.readouterr().out
    assert code == 0
    assert "SUMMARY session=- status=idle files=0/0" in out


def test_exit_code_fatal_without_year(temp_workdir: Path, write_config, write_registry_file, capsys) -> None:
    write_registry_file("a.xml", 1)

    code = _run(FakeEndpoint(), [])

    assert code == 1
    assert "ERROR --year is required" in capsys.readouterr().out


def test_exit_code_fatal_without_endpoint_url(temp_workdir: Path, write_registry_file, capsys) -> None:
    (temp_workdir / "config" / "import.yml").write_text("source_directory: ./data\n", encoding="utf-8")
    write_registry_file("a.xml", 1)

    code = _run(FakeEndpoint(), ["--year", "2024"])

    assert code == 1
    assert "ERROR config: endpoint url is not configured" in capsys.readouterr().out


def test_exit_code_fatal_on_missing_source_directory(temp_workdir: Path, capsys) -> None:
    (temp_workdir / "config" / "import.yml").write_text("source_directory: ./nowhere\n", encoding="utf-8")

    code = _run(FakeEndpoint(), ["--year", "2024"])

    assert code == 1
    assert "ERROR files: Directory not found" in capsys.readouterr().out
