"""CLI integration for the export and automate subcommands."""
import json
from pathlib import Path

import pytest

from scanexport.cli import build_parser, load_items


def test_export_writes_csv(run_cli, items_file: Path, tmp_path: Path, capsys):
    output_dir = tmp_path / "exports"

    exit_code = run_cli(
        ["export", "--input", str(items_file), "--timestamps", "--output-dir", str(output_dir), "--file-name", "cli"]
    )

    assert exit_code == 0
    content = (output_dir / "cli.csv").read_text(encoding="utf-8")
    assert content.split("\n")[0] == "id,type,data,timestamp"
    assert '"hello, world"' in content
    assert "Exported 2 items" in capsys.readouterr().out


def test_export_writes_json(run_cli, items_file: Path, tmp_path: Path):
    exit_code = run_cli(
        ["export", "--input", str(items_file), "--format", "json", "--output-dir", str(tmp_path), "--file-name", "cli"]
    )

    assert exit_code == 0
    assert json.loads((tmp_path / "cli.json").read_text(encoding="utf-8"))[1]["id"] == "2"


def test_export_reports_failures_with_exit_code(run_cli, tmp_path: Path, caplog):
    bad_items = tmp_path / "bad.json"
    bad_items.write_text(json.dumps([{"id": "", "data": ""}]), encoding="utf-8")
    caplog.set_level("ERROR")

    exit_code = run_cli(["export", "--input", str(bad_items), "--output-dir", str(tmp_path)])

    assert exit_code == 1
    assert "Data validation failed" in caplog.text


def test_automate_runs_rules_from_file(run_cli, items_file: Path, tmp_path: Path, monkeypatch, capsys):
    monkeypatch.setenv("SCANEXPORT_OUTPUT_DIR", str(tmp_path / "auto"))
    rules = tmp_path / "rules.json"
    rules.write_text(
        json.dumps(
            [
                {
                    "name": "Any scans",
                    "conditions": [{"type": "data_count", "operator": "greater_than", "value": 0}],
                    "actions": [{"type": "export_csv", "config": {"customFileName": "auto"}}],
                }
            ]
        ),
        encoding="utf-8",
    )

    exit_code = run_cli(["automate", "--rules", str(rules), "--input", str(items_file)])

    out = capsys.readouterr().out
    assert exit_code == 0
    assert "Rule 'Any scans' triggered" in out
    assert (tmp_path / "auto" / "auto.csv").exists()


def test_automate_without_matching_rules(run_cli, items_file: Path, tmp_path: Path, capsys):
    rules = tmp_path / "rules.json"
    rules.write_text(json.dumps({"rules": []}), encoding="utf-8")

    assert run_cli(["automate", "--rules", str(rules), "--input", str(items_file)]) == 0
    assert "No rules triggered" in capsys.readouterr().out


def test_parser_rejects_unknown_format():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["export", "--input", "items.json", "--format", "docx"])


def test_load_items_accepts_wrapped_payload(tmp_path: Path):
    path = tmp_path / "wrapped.json"
    path.write_text(json.dumps({"items": [{"id": "1", "data": "x"}]}), encoding="utf-8")

    assert load_items(path) == [{"id": "1", "data": "x"}]


def test_parser_accepts_verbose_flag():
    args = build_parser().parse_args(["-v", "export", "--input", "items.json"])

    assert args.verbose is True
