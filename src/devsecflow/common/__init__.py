"""Common configuration, constants, and schemas for DevSecFlow."""

from devsecflow.common.config import DevSecFlowConfig
from devsecflow.common.constants import (
    DEFAULT_STAGE_ORDER,
    ExitCode,
    GateDecision,
    StageKind,
    StageStatus,
)
from devsecflow.common.exceptions import (
    DefinitionError,
    PipelineError,
    PipelineTimeoutError,
    PolicyViolationError,
    StageFailedError,
)
from devsecflow.common.schemas import PipelineDefinition, StageSpec

__all__ = [
    "DevSecFlowConfig",
    "DEFAULT_STAGE_ORDER",
    "ExitCode",
    "GateDecision",
    "StageKind",
    "StageStatus",
    "DefinitionError",
    "PipelineError",
    "PipelineTimeoutError",
    "PolicyViolationError",
    "StageFailedError",
    "PipelineDefinition",
    "StageSpec",
]
