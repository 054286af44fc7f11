"""Vulnerability policy gate.

Runs an external policy wrapper and turns its exit status into a pipeline
decision:

  exit 0      -> pass
  exit 2      -> hard failure, the pipeline aborts
  other != 0  -> warning, the pipeline continues

A missing policy script skips the gate without failing the run.
"""

from __future__ import annotations

import logging
import os
import shlex
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from devsecflow.cicd.commands import CommandRunner
from devsecflow.common.constants import (
    POLICY_FAIL_EXIT_CODE,
    POLICY_PASS_EXIT_CODE,
    GateDecision,
)
from devsecflow.common.exceptions import PolicyViolationError

logger = logging.getLogger(__name__)


def classify_exit_code(exit_code: int) -> GateDecision:
    """Map a policy wrapper exit code to a gate decision."""
    if exit_code == POLICY_PASS_EXIT_CODE:
        return GateDecision.PASS
    if exit_code == POLICY_FAIL_EXIT_CODE:
        return GateDecision.FAIL
    return GateDecision.WARN


@dataclass(frozen=True)
class PolicyGateResult:
    """Result of a single policy gate evaluation."""

    script: str
    decision: GateDecision
    exit_code: int | None
    message: str
    output: str = ""
    timed_out: bool = False

    @property
    def blocking(self) -> bool:
        return self.decision == GateDecision.FAIL


class PolicyGate:
    """Evaluates the policy wrapper script once per run."""

    def __init__(self, script: str | Path, runner: CommandRunner | None = None) -> None:
        self._script = Path(script)
        self._runner = runner or CommandRunner()

    @property
    def script(self) -> Path:
        return self._script

    def _command(self, path: Path) -> str:
        if os.access(path, os.X_OK):
            return shlex.quote(str(path))
        return f"sh {shlex.quote(str(path))}"

    def evaluate(
        self,
        cwd: Path,
        env: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> PolicyGateResult:
        path = self._script if self._script.is_absolute() else cwd / self._script
        if not path.is_file():
            logger.warning("Policy script %s not found, skipping policy gate", path)
            return PolicyGateResult(
                script=str(self._script),
                decision=GateDecision.SKIPPED,
                exit_code=None,
                message=f"Policy script {self._script} not found",
            )

        result = self._runner.run(self._command(path), cwd=cwd, env=env, timeout=timeout)
        decision = classify_exit_code(result.returncode)
        if result.timed_out:
            message = f"Policy script timed out (exit code {result.returncode})"
            logger.warning("Policy gate: %s", message)
        elif decision == GateDecision.PASS:
            message = "No policy violations"
            logger.info("Policy gate passed")
        elif decision == GateDecision.FAIL:
            message = f"Policy violation (exit code {result.returncode})"
            logger.error("Policy gate FAILED: %s", message)
        else:
            message = f"Policy warnings (exit code {result.returncode})"
            logger.warning("Policy gate warning: %s", message)

        return PolicyGateResult(
            script=str(self._script),
            decision=decision,
            exit_code=result.returncode,
            message=message,
            output=result.output,
            timed_out=result.timed_out,
        )

    @staticmethod
    def enforce(result: PolicyGateResult) -> None:
        """Raise PolicyViolationError for a blocking result."""
        if result.blocking:
            raise PolicyViolationError(result.script, result.exit_code or POLICY_FAIL_EXIT_CODE)


__all__ = ["PolicyGate", "PolicyGateResult", "classify_exit_code"]
