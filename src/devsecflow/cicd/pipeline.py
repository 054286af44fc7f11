"""Sequential stage runner with exit-code driven branching.

Stages run one after another. Best-effort stages (``continue_on_error``)
record a warning when a tool exits non-zero and the run continues, so that
partial scanner reports are still archived. Fail-fast stages abort the run.
The policy gate is the only stage with a pass / warn / fail taxonomy.
Cleanup stages always run, including after an abort or a timeout.
"""

from __future__ import annotations

import logging
import os
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import numpy as np

from devsecflow.cicd.commands import CommandResult, CommandRunner
from devsecflow.cicd.definitions import default_definition, render_command, render_value
from devsecflow.cicd.health import HealthChecker
from devsecflow.cicd.policy_gate import PolicyGate, PolicyGateResult
from devsecflow.common.config import DevSecFlowConfig
from devsecflow.common.constants import ExitCode, GateDecision, StageKind, StageStatus
from devsecflow.common.exceptions import (
    DefinitionError,
    PipelineError,
    PipelineTimeoutError,
    PolicyViolationError,
    StageFailedError,
)
from devsecflow.common.schemas import PipelineDefinition, StageSpec
from devsecflow.reports.artifacts import ArtifactArchiver
from devsecflow.reports.summary import SummaryWriter

logger = logging.getLogger(__name__)


# --- Data Classes ---


@dataclass(frozen=True)
class StageResult:
    """Result of a single stage execution."""

    stage_name: str
    kind: StageKind
    status: StageStatus
    exit_code: int | None
    duration_seconds: float
    output: str = ""
    artifacts: tuple[str, ...] = ()
    message: str = ""


@dataclass(frozen=True)
class PipelineRun:
    """Complete pipeline run result."""

    run_id: str
    pipeline_name: str
    stages: list[StageResult]
    gate: PolicyGateResult | None
    overall_status: StageStatus
    total_duration_seconds: float
    error: PipelineError | None = None
    timestamp: float = field(default_factory=time.time)

    @property
    def succeeded(self) -> bool:
        return self.error is None

    @property
    def exit_code(self) -> int:
        return int(self.error.exit_code) if self.error else int(ExitCode.SUCCESS)

    @property
    def abort_reason(self) -> str:
        return str(self.error) if self.error else ""

    def get_stage(self, name: str) -> StageResult:
        for stage in self.stages:
            if stage.stage_name == name:
                return stage
        raise KeyError(name)

    def raise_for_status(self) -> None:
        """Re-raise the error that aborted the run, if any."""
        if self.error is not None:
            raise self.error


@dataclass
class _CommandOutcome:
    returncode: int | None = None
    output: str = ""
    failed_command: CommandResult | None = None
    deadline_hit: bool = False


# --- Pipeline Runner ---


class PipelineRunner:
    """Runs a PipelineDefinition against a DevSecFlowConfig.

    Usage:
        runner = PipelineRunner(config=DevSecFlowConfig(push_image=True))
        run = runner.run()
        run.raise_for_status()
    """

    def __init__(
        self,
        definition: PipelineDefinition | None = None,
        config: DevSecFlowConfig | None = None,
        *,
        command_runner: CommandRunner | None = None,
        health_checker: HealthChecker | None = None,
        write_reports: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._definition = definition or default_definition()
        self._config = config or DevSecFlowConfig()
        self._commands = command_runner or CommandRunner()
        self._health_checker = health_checker or HealthChecker(
            attempts=self._config.health_check_attempts,
            interval_seconds=self._config.health_check_interval_seconds,
            timeout_seconds=self._config.health_check_timeout_seconds,
        )
        self._write_reports = write_reports
        self._clock = clock
        self._workdir = self._config.resolve_workdir()
        self._context = self._config.template_context()
        self._archiver = ArtifactArchiver(
            self._workdir, self._config.resolve_path(self._config.archive_dir)
        )
        self._summary_writer = SummaryWriter(self._config.resolve_path(self._config.reports_dir))
        self._runs: list[PipelineRun] = []
        self._run_counter = 0
        self._check_conditions()

    @property
    def config(self) -> DevSecFlowConfig:
        return self._config

    @property
    def definition(self) -> PipelineDefinition:
        return self._definition

    def _check_conditions(self) -> None:
        for stage in self._definition.stages:
            if stage.when is None:
                continue
            value = getattr(self._config, stage.when, None)
            if not isinstance(value, bool):
                raise DefinitionError(
                    f"Stage '{stage.name}' is conditional on '{stage.when}', "
                    "which is not a boolean setting"
                )

    def planned_commands(self, stage: StageSpec) -> list[str]:
        """Commands of a stage with placeholders resolved."""
        if stage.kind == StageKind.POLICY_GATE:
            return [render_value(stage.script or self._config.policy_script, self._context)]
        return [render_command(command, self._context) for command in stage.commands]

    # -- stage execution ---------------------------------------------------

    def _stage_env(self, stage: StageSpec) -> dict[str, str]:
        env = self._config.stage_environment()
        env.update({k: render_value(v, self._context) for k, v in stage.env.items()})
        return env

    def _stage_cwd(self, stage: StageSpec) -> Path:
        if stage.workdir is None:
            return self._workdir
        return self._workdir / render_value(stage.workdir, self._context)

    def _command_timeout(self, stage: StageSpec, deadline: float) -> tuple[float, bool]:
        """Timeout for the next command and whether the deadline is binding."""
        remaining = max(deadline - self._clock(), 0.0)
        if stage.timeout_seconds is not None and stage.timeout_seconds < remaining:
            return stage.timeout_seconds, False
        return remaining, True

    def _run_commands(self, stage: StageSpec, deadline: float) -> _CommandOutcome:
        outcome = _CommandOutcome()
        env = self._stage_env(stage)
        cwd = self._stage_cwd(stage)
        outputs: list[str] = []
        for command in self.planned_commands(stage):
            timeout, deadline_binding = self._command_timeout(stage, deadline)
            if deadline_binding and timeout <= 0:
                outcome.deadline_hit = True
                break
            result = self._commands.run(command, cwd=cwd, env=env, timeout=timeout)
            if result.output:
                outputs.append(result.output)
            outcome.returncode = result.returncode
            if result.timed_out and deadline_binding:
                outcome.deadline_hit = True
                outcome.failed_command = result
                break
            if not result.succeeded:
                outcome.failed_command = result
                break
        outcome.output = "\n".join(outputs)
        return outcome

    def _missing_credentials(self, env: dict[str, str]) -> list[str]:
        return [
            name for name in self._config.registry_credential_envs
            if not (env.get(name) or os.environ.get(name))
        ]

    def _archive(self, stage: StageSpec) -> tuple[str, ...]:
        if not stage.artifacts or self._commands.dry_run:
            return ()
        patterns = [render_value(p, self._context) for p in stage.artifacts]
        return tuple(str(p) for p in self._archiver.archive(stage.name, patterns))

    def _execute_stage(self, stage: StageSpec, deadline: float) -> StageResult:
        """Run one command stage and apply its failure policy.

        Raises PipelineTimeoutError when the overall deadline expires.
        """
        start = self._clock()
        logger.info("Stage %s (%s)", stage.name, stage.kind)

        if stage.kind == StageKind.PUSH and not self._commands.dry_run:
            missing = self._missing_credentials(self._stage_env(stage))
            if missing:
                return self._finish(
                    stage, start, returncode=None, output="",
                    message=f"missing registry credentials: {', '.join(missing)}",
                )

        outcome = self._run_commands(stage, deadline)
        if outcome.deadline_hit:
            self._archive(stage)
            raise PipelineTimeoutError(stage.name, self._config.pipeline_timeout_seconds)

        message = ""
        if outcome.failed_command is not None:
            message = f"'{outcome.failed_command.command}' exited with {outcome.returncode}"
        elif stage.health_url and not self._commands.dry_run:
            url = render_value(stage.health_url, self._context)
            remaining = max(deadline - self._clock(), 0.0)
            health = self._health_checker.wait_until_healthy(url, max_seconds=remaining)
            if not health.healthy and self._clock() >= deadline:
                raise PipelineTimeoutError(stage.name, self._config.pipeline_timeout_seconds)
            if not health.healthy:
                return self._finish(
                    stage, start, returncode=outcome.returncode, output=outcome.output,
                    message=f"health check failed for {url}: {health.message}",
                    artifacts=self._archive(stage),
                )

        return self._finish(
            stage, start,
            returncode=outcome.returncode,
            output=outcome.output,
            message=message,
            artifacts=self._archive(stage),
            failed=outcome.failed_command is not None,
        )

    def _finish(
        self,
        stage: StageSpec,
        start: float,
        *,
        returncode: int | None,
        output: str,
        message: str,
        artifacts: tuple[str, ...] = (),
        failed: bool = True,
    ) -> StageResult:
        if not failed:
            status = StageStatus.PASSED
            logger.info("Stage %s passed", stage.name)
        elif stage.continue_on_error:
            status = StageStatus.WARNED
            logger.warning("Stage %s failed but tolerates errors: %s", stage.name, message)
        else:
            status = StageStatus.FAILED
            logger.error("Stage %s failed: %s", stage.name, message)
        return StageResult(
            stage_name=stage.name,
            kind=stage.kind,
            status=status,
            exit_code=returncode,
            duration_seconds=self._clock() - start,
            output=output,
            artifacts=artifacts,
            message=message,
        )

    def _execute_policy_gate(
        self, stage: StageSpec, deadline: float,
    ) -> tuple[StageResult, PolicyGateResult]:
        start = self._clock()
        logger.info("Stage %s (%s)", stage.name, stage.kind)
        script = self.planned_commands(stage)[0]
        gate = PolicyGate(script, self._commands)
        timeout, deadline_binding = self._command_timeout(stage, deadline)
        if deadline_binding and timeout <= 0:
            raise PipelineTimeoutError(stage.name, self._config.pipeline_timeout_seconds)
        result = gate.evaluate(self._stage_cwd(stage), env=self._stage_env(stage), timeout=timeout)
        if result.timed_out and deadline_binding:
            raise PipelineTimeoutError(stage.name, self._config.pipeline_timeout_seconds)
        status = {
            GateDecision.PASS: StageStatus.PASSED,
            GateDecision.WARN: StageStatus.WARNED,
            GateDecision.FAIL: StageStatus.FAILED,
            GateDecision.SKIPPED: StageStatus.SKIPPED,
        }[result.decision]
        stage_result = StageResult(
            stage_name=stage.name,
            kind=stage.kind,
            status=status,
            exit_code=result.exit_code,
            duration_seconds=self._clock() - start,
            output=result.output,
            message=result.message,
        )
        return stage_result, result

    @staticmethod
    def _skipped(stage: StageSpec, message: str) -> StageResult:
        logger.info("Skipping stage %s: %s", stage.name, message)
        return StageResult(
            stage_name=stage.name,
            kind=stage.kind,
            status=StageStatus.SKIPPED,
            exit_code=None,
            duration_seconds=0.0,
            message=message,
        )

    def _run_cleanup(self, stage: StageSpec) -> StageResult:
        deadline = self._clock() + self._config.cleanup_timeout_seconds
        try:
            result = self._execute_stage(stage, deadline)
        except PipelineTimeoutError:
            logger.warning("Cleanup stage %s timed out", stage.name)
            return StageResult(
                stage_name=stage.name,
                kind=stage.kind,
                status=StageStatus.WARNED,
                exit_code=None,
                duration_seconds=self._config.cleanup_timeout_seconds,
                message="cleanup timed out",
            )
        if result.status == StageStatus.FAILED:
            # cleanup never fails the run
            return StageResult(
                stage_name=result.stage_name,
                kind=result.kind,
                status=StageStatus.WARNED,
                exit_code=result.exit_code,
                duration_seconds=result.duration_seconds,
                output=result.output,
                artifacts=result.artifacts,
                message=result.message,
            )
        return result

    # -- run ---------------------------------------------------------------

    def run(self) -> PipelineRun:
        """Execute every stage in order and return the run result.

        The returned run carries the aborting error, if any; call
        ``raise_for_status()`` to surface it.
        """
        start = self._clock()
        deadline = start + self._config.pipeline_timeout_seconds
        self._run_counter += 1
        run_id = f"run-{self._run_counter}"
        logger.info("Pipeline %s %s starting (%d stages)",
                    self._definition.name, run_id, len(self._definition.stages))

        results: list[StageResult] = []
        gate: PolicyGateResult | None = None
        error: PipelineError | None = None

        for stage in self._definition.stages:
            if stage.kind == StageKind.CLEANUP:
                results.append(self._run_cleanup(stage))
                continue
            if error is not None:
                results.append(self._skipped(stage, "pipeline aborted"))
                continue
            if stage.when is not None and not getattr(self._config, stage.when):
                results.append(self._skipped(stage, f"{stage.when} is disabled"))
                continue

            stage_start = self._clock()
            try:
                if stage.kind == StageKind.POLICY_GATE:
                    result, gate = self._execute_policy_gate(stage, deadline)
                    PolicyGate.enforce(gate)
                else:
                    result = self._execute_stage(stage, deadline)
                    if result.status == StageStatus.FAILED:
                        raise StageFailedError(stage.name, result.exit_code, result.message)
            except PolicyViolationError as exc:
                error = exc
            except StageFailedError as exc:
                error = exc
            except PipelineTimeoutError as exc:
                logger.error("%s", exc)
                error = exc
                result = StageResult(
                    stage_name=stage.name,
                    kind=stage.kind,
                    status=StageStatus.FAILED,
                    exit_code=None,
                    duration_seconds=self._clock() - stage_start,
                    message=str(exc),
                )
            results.append(result)

        if error is not None:
            overall = StageStatus.FAILED
        elif any(r.status == StageStatus.WARNED for r in results):
            overall = StageStatus.WARNED
        else:
            overall = StageStatus.PASSED

        run = PipelineRun(
            run_id=run_id,
            pipeline_name=self._definition.name,
            stages=results,
            gate=gate,
            overall_status=overall,
            total_duration_seconds=self._clock() - start,
            error=error,
        )
        self._runs.append(run)
        logger.info("Pipeline %s finished: %s (exit code %d)", run_id, overall, run.exit_code)

        if self._write_reports and not self._commands.dry_run:
            summary_path, report_path = self._summary_writer.write(run)
            logger.info("Summary written to %s, report to %s", summary_path, report_path)
        return run

    def get_run_history(self) -> list[PipelineRun]:
        """Return all pipeline run results."""
        return list(self._runs)

    def get_stats(self) -> dict[str, Any]:
        """Pipeline execution statistics."""
        passed = sum(1 for r in self._runs if r.succeeded)
        failed = len(self._runs) - passed
        durations = np.array(
            [s.duration_seconds for r in self._runs for s in r.stages
             if s.status != StageStatus.SKIPPED],
            dtype=float,
        )
        return {
            "total_runs": len(self._runs),
            "passed": passed,
            "failed": failed,
            "success_rate": passed / max(len(self._runs), 1),
            "mean_stage_seconds": float(durations.mean()) if durations.size else 0.0,
            "p95_stage_seconds": float(np.percentile(durations, 95)) if durations.size else 0.0,
        }


__all__ = ["PipelineRun", "PipelineRunner", "StageResult"]
