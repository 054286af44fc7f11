"""Tests for the command-line entry point."""

from __future__ import annotations

import json
import runpy
import sys

import pytest

from devsecflow.cli import build_parser, main
from devsecflow.common.constants import ExitCode


def _write_definition(tmp_path, gate_exit: int | None = None) -> str:
    stages = [
        {"name": "sast", "kind": "sast", "commands": ["true"], "continue_on_error": True},
        {"name": "policy-gate", "kind": "policy_gate", "script": "policy.sh"},
        {"name": "cleanup", "kind": "cleanup", "commands": ["true"]},
    ]
    if gate_exit is not None:
        (tmp_path / "policy.sh").write_text(f"exit {gate_exit}\n")
    path = tmp_path / "pipeline.json"
    path.write_text(json.dumps({"name": "cli-test", "stages": stages}))
    return str(path)


def test_parser_push_flags():
    parser = build_parser()
    assert parser.parse_args([]).push_image is None
    assert parser.parse_args(["--push"]).push_image is True
    assert parser.parse_args(["--no-push"]).push_image is False


def test_list_stages(capsys):
    assert main(["--list-stages"]) == ExitCode.SUCCESS
    out = capsys.readouterr().out
    assert "image-build [image_build, fail-fast]" in out
    assert "push [push, fail-fast, when push_image]" in out
    assert "sast [sast, continue-on-error]" in out


def test_module_entry_point(monkeypatch, capsys):
    monkeypatch.setattr(sys, "argv", ["devsecflow", "--list-stages"])
    with pytest.raises(SystemExit) as excinfo:
        runpy.run_module("devsecflow", run_name="__main__")
    assert excinfo.value.code == ExitCode.SUCCESS
    assert "policy-gate" in capsys.readouterr().out


def test_run_success(tmp_path):
    definition = _write_definition(tmp_path, gate_exit=0)
    assert main(["--definition", definition, "--workdir", str(tmp_path)]) == 0
    assert (tmp_path / "reports" / "pipeline-summary.txt").exists()


def test_run_policy_violation(tmp_path):
    definition = _write_definition(tmp_path, gate_exit=2)
    code = main(["--definition", definition, "--workdir", str(tmp_path)])
    assert code == ExitCode.POLICY_VIOLATION


def test_run_policy_warning(tmp_path):
    definition = _write_definition(tmp_path, gate_exit=1)
    assert main(["--definition", definition, "--workdir", str(tmp_path)]) == 0


def test_custom_reports_dir(tmp_path):
    definition = _write_definition(tmp_path, gate_exit=0)
    main(["--definition", definition, "--workdir", str(tmp_path), "--reports-dir", "out"])
    assert (tmp_path / "out" / "pipeline-run.json").exists()


def test_invalid_definition(tmp_path):
    path = tmp_path / "bad.json"
    path.write_text(json.dumps({"stages": [{"name": "dast", "kind": "dast",
                                            "commands": ["true"]}]}))
    assert main(["--definition", str(path)]) == ExitCode.INVALID_DEFINITION


def test_missing_definition(tmp_path):
    assert main(["--definition", str(tmp_path / "nope.json")]) == ExitCode.INVALID_DEFINITION


def test_dry_run(tmp_path):
    definition = _write_definition(tmp_path, gate_exit=2)
    code = main(["--definition", definition, "--workdir", str(tmp_path), "--dry-run"])
    assert code == 0
    assert not (tmp_path / "reports").exists()
