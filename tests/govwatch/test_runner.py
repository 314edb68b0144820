"""Tests for the command line runner."""

import json
import sqlite3
from pathlib import Path

import pytest

from govwatch import runner
from govwatch.console_script import SCRIPT_NAME, load_console_script, write_console_script
from govwatch.logging_config import reset_logging
from govwatch.pipeline import RunSummary

DATA_DIR = Path(__file__).resolve().parent.parent / "data"


@pytest.fixture(autouse=True)
def restore_logging():
    yield
    reset_logging()


@pytest.fixture
def base_args(tmp_path):
    return [
        "--config",
        str(tmp_path / "absent.yaml"),
        "--db-path",
        str(tmp_path / "govwatch.db"),
        "--log-file",
        str(tmp_path / "logs" / "govwatch.log"),
    ]


def test_console_script_contents():
    script = load_console_script()
    assert "govwatch_data.json" in script
    assert "contractUrl" in script


def test_write_console_script_into_directory(tmp_path):
    target = write_console_script(tmp_path)
    assert target == tmp_path / SCRIPT_NAME
    assert target.read_text(encoding="utf-8") == load_console_script()


def test_cli_console_script(tmp_path, base_args):
    target = tmp_path / "out" / "extract.js"
    assert runner.main(base_args + ["--console-script", str(target)]) == 0
    assert target.exists()


def test_cli_init_db(tmp_path, base_args):
    assert runner.main(base_args + ["--init-db"]) == 0

    conn = sqlite3.connect(str(tmp_path / "govwatch.db"))
    try:
        tables = {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
    finally:
        conn.close()
    assert {"records", "ingestion_runs"} <= tables


def test_cli_import_json_output(base_args, capsys):
    exit_code = runner.main(base_args + ["--import", str(DATA_DIR / "upload.json"), "--json"])

    assert exit_code == 0
    output = capsys.readouterr().out
    summary = json.loads(output[output.index("{"):])
    assert summary["inserted"] == 3
    assert summary["rejected"] == 2


def test_cli_import_missing_file_fails(tmp_path, base_args):
    assert runner.main(base_args + ["--import", str(tmp_path / "missing.json")]) == 1


def test_cli_invalid_config_fails(tmp_path, base_args):
    config_path = tmp_path / "broken.yaml"
    config_path.write_text("browser: [unclosed\n", encoding="utf-8")
    args = base_args[2:] + ["--config", str(config_path), "--init-db"]
    assert runner.main(args) == 1


def test_actions_are_mutually_exclusive(tmp_path, base_args):
    with pytest.raises(SystemExit):
        runner.main(base_args + ["--init-db", "--import", str(tmp_path / "x.json")])


def test_cli_scrape_uses_pipeline_exit_code(monkeypatch, tmp_path, base_args, capsys):
    captured = {}

    class StubPipeline:
        def __init__(self, config, db, *, normalizer=None, diagnostics_dir=None):
            captured["headless"] = config.browser.headless
            captured["diagnostics_dir"] = diagnostics_dir

        def run_sync(self, *, dry_run=False):
            captured["dry_run"] = dry_run
            return RunSummary(
                run_id=1,
                started_at="2024-06-30T08:00:00Z",
                success=True,
                message="Scrape completed: 1 records extracted (1 new, 0 already stored)",
                failed_targets=["direct_nego"],
                normalized_records=1,
            )

    monkeypatch.setattr(runner, "ScrapePipeline", StubPipeline)

    exit_code = runner.main(
        base_args + ["--dry-run", "--headed", "--diagnostics-dir", str(tmp_path / "dbg"), "--json"]
    )

    assert exit_code == 2
    assert captured == {"headless": False, "diagnostics_dir": tmp_path / "dbg", "dry_run": True}
    output = capsys.readouterr().out
    summary = json.loads(output[output.index("{"):])
    assert summary["failed_targets"] == ["direct_nego"]
    assert summary["exit_code"] == 2
