"""Constants and enums for DevSecFlow."""

from enum import IntEnum, StrEnum
from typing import Final


class StageKind(StrEnum):
    """Well-known pipeline stage kinds."""

    CHECKOUT = "checkout"
    SAST = "sast"
    SCA = "sca"
    BUILD_TEST = "build_test"
    IMAGE_BUILD = "image_build"
    IMAGE_SCAN = "image_scan"
    PUSH = "push"
    DEPLOY = "deploy"
    DAST = "dast"
    POLICY_GATE = "policy_gate"
    CLEANUP = "cleanup"
    CUSTOM = "custom"


class StageStatus(StrEnum):
    """Pipeline stage execution status."""

    PENDING = "pending"
    RUNNING = "running"
    PASSED = "passed"
    FAILED = "failed"
    WARNED = "warned"
    SKIPPED = "skipped"


class GateDecision(StrEnum):
    """Outcome of the vulnerability policy gate."""

    PASS = "pass"
    WARN = "warn"
    FAIL = "fail"
    SKIPPED = "skipped"


class ExitCode(IntEnum):
    """Process exit codes of the runner CLI."""

    SUCCESS = 0
    FAILURE = 1
    POLICY_VIOLATION = 2
    INVALID_DEFINITION = 3


POLICY_PASS_EXIT_CODE: Final[int] = 0
POLICY_FAIL_EXIT_CODE: Final[int] = 2

# Shell conventions (coreutils timeout / sh)
TIMEOUT_EXIT_CODE: Final[int] = 124
COMMAND_NOT_FOUND_EXIT_CODE: Final[int] = 127

OUTPUT_TAIL_LINES: Final[int] = 50

DEFAULT_STAGE_ORDER: Final[tuple[StageKind, ...]] = (
    StageKind.CHECKOUT,
    StageKind.SAST,
    StageKind.SCA,
    StageKind.BUILD_TEST,
    StageKind.IMAGE_BUILD,
    StageKind.IMAGE_SCAN,
    StageKind.PUSH,
    StageKind.DEPLOY,
    StageKind.DAST,
    StageKind.POLICY_GATE,
    StageKind.CLEANUP,
)

# (before, after): whenever `after` is present, `before` must run earlier.
ORDERING_CONSTRAINTS: Final[tuple[tuple[StageKind, StageKind], ...]] = (
    (StageKind.IMAGE_BUILD, StageKind.IMAGE_SCAN),
    (StageKind.IMAGE_BUILD, StageKind.PUSH),
    (StageKind.IMAGE_BUILD, StageKind.DEPLOY),
    (StageKind.DEPLOY, StageKind.DAST),
)

SCANNER_KINDS: Final[frozenset[StageKind]] = frozenset({
    StageKind.SAST,
    StageKind.SCA,
    StageKind.IMAGE_SCAN,
    StageKind.DAST,
})

__all__ = [
    "StageKind",
    "StageStatus",
    "GateDecision",
    "ExitCode",
    "POLICY_PASS_EXIT_CODE",
    "POLICY_FAIL_EXIT_CODE",
    "TIMEOUT_EXIT_CODE",
    "COMMAND_NOT_FOUND_EXIT_CODE",
    "OUTPUT_TAIL_LINES",
    "DEFAULT_STAGE_ORDER",
    "ORDERING_CONSTRAINTS",
    "SCANNER_KINDS",
]
