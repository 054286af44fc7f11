"""Tests for shell command execution."""

from __future__ import annotations

import time

from devsecflow.cicd.commands import CommandRunner, tail
from devsecflow.common.constants import COMMAND_NOT_FOUND_EXIT_CODE, TIMEOUT_EXIT_CODE


def test_command_success(tmp_path):
    result = CommandRunner().run("echo hello", cwd=tmp_path)
    assert result.succeeded
    assert result.returncode == 0
    assert result.output.strip() == "hello"


def test_command_nonzero_exit(tmp_path):
    result = CommandRunner().run("exit 3", cwd=tmp_path)
    assert not result.succeeded
    assert result.returncode == 3


def test_command_stderr_captured(tmp_path):
    result = CommandRunner().run("echo oops >&2; exit 1", cwd=tmp_path)
    assert "oops" in result.output


def test_command_runs_in_cwd(tmp_path):
    CommandRunner().run("echo data > out.txt", cwd=tmp_path)
    assert (tmp_path / "out.txt").read_text().strip() == "data"


def test_command_env(tmp_path):
    result = CommandRunner().run('echo "$STAGE_VALUE"', cwd=tmp_path, env={"STAGE_VALUE": "42"})
    assert result.output.strip() == "42"


def test_command_not_found(tmp_path):
    result = CommandRunner().run("definitely-not-a-real-tool-xyz", cwd=tmp_path)
    assert result.returncode == COMMAND_NOT_FOUND_EXIT_CODE


def test_missing_cwd(tmp_path):
    result = CommandRunner().run("true", cwd=tmp_path / "missing")
    assert result.returncode == COMMAND_NOT_FOUND_EXIT_CODE


def test_command_timeout(tmp_path):
    start = time.monotonic()
    result = CommandRunner().run("sleep 10", cwd=tmp_path, timeout=0.3)
    assert result.timed_out
    assert result.returncode == TIMEOUT_EXIT_CODE
    assert time.monotonic() - start < 5


def test_undecodable_output_replaced(tmp_path):
    result = CommandRunner().run("printf '\\377\\376 bad bytes\\n'", cwd=tmp_path)
    assert result.succeeded
    assert "\ufffd" in result.output
    assert "bad bytes" in result.output


def test_dry_run_executes_nothing(tmp_path):
    result = CommandRunner(dry_run=True).run("touch marker; exit 1", cwd=tmp_path)
    assert result.succeeded
    assert result.dry_run
    assert not (tmp_path / "marker").exists()


def test_output_tail(tmp_path):
    result = CommandRunner(output_tail_lines=2).run("printf 'a\\nb\\nc\\n'", cwd=tmp_path)
    assert result.output == "b\nc"


def test_tail_helper():
    assert tail("1\n2\n3", lines=1) == "3"
    assert tail("", lines=5) == ""
