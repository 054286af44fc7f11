"""Subprocess execution of stage commands."""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import time
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from devsecflow.common.constants import (
    COMMAND_NOT_FOUND_EXIT_CODE,
    OUTPUT_TAIL_LINES,
    TIMEOUT_EXIT_CODE,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one shell command."""

    command: str
    returncode: int
    duration_seconds: float
    output: str = ""
    timed_out: bool = False
    dry_run: bool = False

    @property
    def succeeded(self) -> bool:
        return self.returncode == 0


def _to_text(value: str | bytes | None) -> str:
    """Decode tool output; undecodable bytes become U+FFFD."""
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


def _kill_process_group(proc: subprocess.Popen[bytes]) -> None:
    """Kill the shell and everything it started."""
    try:
        if hasattr(os, "killpg"):
            os.killpg(proc.pid, signal.SIGKILL)
        else:
            proc.kill()
    except ProcessLookupError:
        pass


def tail(text: str, lines: int = OUTPUT_TAIL_LINES) -> str:
    """Return the last ``lines`` lines of ``text``."""
    return "\n".join(text.splitlines()[-lines:])


class CommandRunner:
    """Runs shell commands, merging stderr into stdout.

    Non-zero exits are returned, never raised; callers apply the stage's
    failure policy.
    """

    def __init__(
        self,
        dry_run: bool = False,
        shell_executable: str | None = None,
        output_tail_lines: int = OUTPUT_TAIL_LINES,
    ) -> None:
        self._dry_run = dry_run
        self._shell_executable = shell_executable
        self._output_tail_lines = output_tail_lines

    @property
    def dry_run(self) -> bool:
        return self._dry_run

    def run(
        self,
        command: str,
        *,
        cwd: Path,
        env: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        logger.info("$ %s", command)
        if self._dry_run:
            return CommandResult(command=command, returncode=0, duration_seconds=0.0, dry_run=True)

        full_env = {**os.environ, **(env or {})}
        start = time.monotonic()
        try:
            proc = subprocess.Popen(
                command,
                shell=True,
                executable=self._shell_executable,
                cwd=cwd,
                env=full_env,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                start_new_session=True,
            )
        except OSError as exc:
            duration = time.monotonic() - start
            logger.error("Could not start command %r: %s", command, exc)
            return CommandResult(
                command=command,
                returncode=COMMAND_NOT_FOUND_EXIT_CODE,
                duration_seconds=duration,
                output=str(exc),
            )

        try:
            stdout, _ = proc.communicate(timeout=timeout)
        except subprocess.TimeoutExpired:
            _kill_process_group(proc)
            stdout, _ = proc.communicate()
            duration = time.monotonic() - start
            logger.error("Command timed out after %.1fs: %s", duration, command)
            return CommandResult(
                command=command,
                returncode=TIMEOUT_EXIT_CODE,
                duration_seconds=duration,
                output=tail(_to_text(stdout), self._output_tail_lines),
                timed_out=True,
            )

        duration = time.monotonic() - start
        output = _to_text(stdout)
        if output:
            logger.debug("%s", output.rstrip())
        if proc.returncode == 0:
            logger.info("Command succeeded in %.2fs", duration)
        else:
            logger.warning("Command exited with %d in %.2fs", proc.returncode, duration)
        return CommandResult(
            command=command,
            returncode=proc.returncode,
            duration_seconds=duration,
            output=tail(output, self._output_tail_lines),
        )


__all__ = ["CommandResult", "CommandRunner", "tail"]
