"""Pipeline exception hierarchy.

Every error carries the CLI exit code it maps to:

- PipelineError: base class (exit 1)
- StageFailedError: a fail-fast stage returned non-zero (exit 1)
- PipelineTimeoutError: the overall wall-clock budget ran out (exit 1)
- PolicyViolationError: the policy gate reported a hard failure (exit 2)
- DefinitionError: the pipeline definition is invalid (exit 3)
"""

from __future__ import annotations

from devsecflow.common.constants import ExitCode


class PipelineError(Exception):
    """Base class for runner errors."""

    exit_code: int = ExitCode.FAILURE


class DefinitionError(PipelineError):
    """Invalid pipeline definition or configuration reference."""

    exit_code = ExitCode.INVALID_DEFINITION


class StageFailedError(PipelineError):
    """A fail-fast stage did not succeed."""

    def __init__(self, stage_name: str, returncode: int | None, message: str = "") -> None:
        self.stage_name = stage_name
        self.returncode = returncode
        detail = message or f"exit code {returncode}"
        super().__init__(f"Stage '{stage_name}' failed: {detail}")


class PolicyViolationError(PipelineError):
    """The vulnerability policy gate blocked the pipeline."""

    exit_code = ExitCode.POLICY_VIOLATION

    def __init__(self, script: str, returncode: int) -> None:
        self.script = script
        self.returncode = returncode
        super().__init__(
            f"Policy gate '{script}' reported a violation (exit code {returncode})"
        )


class PipelineTimeoutError(PipelineError):
    """The run exceeded its wall-clock timeout."""

    def __init__(self, stage_name: str, timeout_seconds: float) -> None:
        self.stage_name = stage_name
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Pipeline timed out after {timeout_seconds:.0f}s during stage '{stage_name}'"
        )


__all__ = [
    "PipelineError",
    "DefinitionError",
    "StageFailedError",
    "PolicyViolationError",
    "PipelineTimeoutError",
]
