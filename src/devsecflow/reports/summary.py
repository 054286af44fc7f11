"""Run reports: a JSON document and a plain-text summary."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from devsecflow.common.constants import GateDecision, StageKind, StageStatus

if TYPE_CHECKING:
    from devsecflow.cicd.pipeline import PipelineRun

SUMMARY_FILENAME = "pipeline-summary.txt"
REPORT_FILENAME = "pipeline-run.json"


class StageReport(BaseModel):
    name: str
    kind: StageKind
    status: StageStatus
    exit_code: int | None = None
    duration_seconds: float = Field(ge=0.0)
    artifacts: list[str] = Field(default_factory=list)
    message: str = ""


class GateReport(BaseModel):
    script: str
    decision: GateDecision
    exit_code: int | None = None
    message: str = ""


class RunReport(BaseModel):
    """Serialisable view of a PipelineRun."""

    run_id: str
    pipeline: str
    overall_status: StageStatus
    exit_code: int
    abort_reason: str = ""
    total_duration_seconds: float = Field(ge=0.0)
    generated_at: str
    stages: list[StageReport]
    policy_gate: GateReport | None = None

    @classmethod
    def from_run(cls, run: PipelineRun) -> RunReport:
        gate = None
        if run.gate is not None:
            gate = GateReport(
                script=run.gate.script,
                decision=run.gate.decision,
                exit_code=run.gate.exit_code,
                message=run.gate.message,
            )
        return cls(
            run_id=run.run_id,
            pipeline=run.pipeline_name,
            overall_status=run.overall_status,
            exit_code=run.exit_code,
            abort_reason=run.abort_reason,
            total_duration_seconds=run.total_duration_seconds,
            generated_at=datetime.now(timezone.utc).isoformat(),
            stages=[
                StageReport(
                    name=s.stage_name,
                    kind=s.kind,
                    status=s.status,
                    exit_code=s.exit_code,
                    duration_seconds=s.duration_seconds,
                    artifacts=list(s.artifacts),
                    message=s.message,
                )
                for s in run.stages
            ],
            policy_gate=gate,
        )


def render_summary(run: PipelineRun) -> str:
    """Human-readable one-line-per-stage summary."""
    lines = [
        f"Pipeline: {run.pipeline_name} ({run.run_id})",
        "-" * 60,
    ]
    for stage in run.stages:
        exit_code = "-" if stage.exit_code is None else str(stage.exit_code)
        line = (
            f"{stage.stage_name:<16} {stage.status.upper():<8} "
            f"exit={exit_code:<4} {stage.duration_seconds:7.1f}s"
        )
        if stage.message:
            line += f"  {stage.message}"
        lines.append(line)
    lines.append("-" * 60)
    if run.gate is not None:
        lines.append(f"Policy gate: {run.gate.decision.upper()} ({run.gate.message})")
    else:
        lines.append("Policy gate: not run")
    lines.append(
        f"Overall: {run.overall_status.upper()} "
        f"(exit code {run.exit_code}, {run.total_duration_seconds:.1f}s)"
    )
    if run.abort_reason:
        lines.append(f"Aborted: {run.abort_reason}")
    return "\n".join(lines) + "\n"


class SummaryWriter:
    """Writes the summary and JSON report into the reports directory."""

    def __init__(self, reports_dir: str | Path) -> None:
        self._reports_dir = Path(reports_dir)

    @property
    def reports_dir(self) -> Path:
        return self._reports_dir

    def write(self, run: PipelineRun) -> tuple[Path, Path]:
        self._reports_dir.mkdir(parents=True, exist_ok=True)
        summary_path = self._reports_dir / SUMMARY_FILENAME
        report_path = self._reports_dir / REPORT_FILENAME
        summary_path.write_text(render_summary(run), encoding="utf-8")
        report_path.write_text(
            RunReport.from_run(run).model_dump_json(indent=2), encoding="utf-8"
        )
        return summary_path, report_path


__all__ = [
    "GateReport",
    "RunReport",
    "StageReport",
    "SummaryWriter",
    "render_summary",
    "REPORT_FILENAME",
    "SUMMARY_FILENAME",
]
