"""CI/CD stage sequencing and the vulnerability policy gate."""

from __future__ import annotations

from devsecflow.cicd.commands import CommandResult, CommandRunner
from devsecflow.cicd.definitions import default_definition
from devsecflow.cicd.health import HealthChecker, HealthCheckResult
from devsecflow.cicd.pipeline import PipelineRun, PipelineRunner, StageResult
from devsecflow.cicd.policy_gate import PolicyGate, PolicyGateResult, classify_exit_code

__all__ = [
    "CommandResult",
    "CommandRunner",
    "default_definition",
    "HealthChecker",
    "HealthCheckResult",
    "PipelineRun",
    "PipelineRunner",
    "StageResult",
    "PolicyGate",
    "PolicyGateResult",
    "classify_exit_code",
]
