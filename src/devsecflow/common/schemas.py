"""Pydantic v2 schemas for declarative pipeline definitions."""

from __future__ import annotations

import json
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from devsecflow.common.constants import ORDERING_CONSTRAINTS, SCANNER_KINDS, StageKind
from devsecflow.common.exceptions import DefinitionError


class StageSpec(BaseModel):
    """A single named stage: shell commands plus a failure policy."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(min_length=1, pattern=r"^[A-Za-z0-9_.-]+$")
    kind: StageKind = StageKind.CUSTOM
    commands: list[str] = Field(default_factory=list)
    continue_on_error: bool = False
    artifacts: list[str] = Field(default_factory=list)
    when: str | None = None
    workdir: str | None = None
    env: dict[str, str] = Field(default_factory=dict)
    timeout_seconds: float | None = Field(default=None, gt=0)
    health_url: str | None = None
    script: str | None = None

    @model_validator(mode="after")
    def check_kind_fields(self) -> StageSpec:
        if self.kind == StageKind.POLICY_GATE:
            if self.commands:
                raise ValueError(
                    f"policy gate stage '{self.name}' runs its script, not commands"
                )
        elif not self.commands:
            raise ValueError(f"stage '{self.name}' declares no commands")
        elif self.script is not None:
            raise ValueError(f"'script' is only valid on policy gate stages ({self.name})")
        if self.health_url is not None and self.kind != StageKind.DEPLOY:
            raise ValueError(f"'health_url' is only valid on deploy stages ({self.name})")
        return self


class PipelineDefinition(BaseModel):
    """An ordered list of stages with the fixed ordering rules enforced."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = "devsecflow"
    stages: list[StageSpec] = Field(min_length=1)

    @model_validator(mode="after")
    def check_stage_order(self) -> PipelineDefinition:
        names = [stage.name for stage in self.stages]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"duplicate stage names: {', '.join(duplicates)}")

        first_index: dict[StageKind, int] = {}
        for index, stage in enumerate(self.stages):
            first_index.setdefault(stage.kind, index)

        for before, after in ORDERING_CONSTRAINTS:
            if after not in first_index:
                continue
            if before not in first_index:
                raise ValueError(f"a '{after}' stage requires a preceding '{before}' stage")
            if first_index[before] > first_index[after]:
                raise ValueError(f"'{before}' must run before '{after}'")

        gates = [i for i, s in enumerate(self.stages) if s.kind == StageKind.POLICY_GATE]
        scanners = [i for i, s in enumerate(self.stages) if s.kind in SCANNER_KINDS]
        if gates and scanners and min(gates) < max(scanners):
            raise ValueError("the policy gate must follow every scanner stage")

        seen_cleanup = False
        for stage in self.stages:
            if stage.kind == StageKind.CLEANUP:
                seen_cleanup = True
            elif seen_cleanup:
                raise ValueError(f"stage '{stage.name}' is declared after cleanup")
        return self

    def get_stage(self, name: str) -> StageSpec:
        for stage in self.stages:
            if stage.name == name:
                return stage
        raise KeyError(name)

    @classmethod
    def from_file(cls, path: str | Path) -> PipelineDefinition:
        """Load a definition from JSON, raising DefinitionError when invalid."""
        path = Path(path)
        try:
            return cls.model_validate_json(path.read_text(encoding="utf-8"))
        except OSError as exc:
            raise DefinitionError(f"Cannot read pipeline definition {path}: {exc}") from exc
        except ValidationError as exc:
            raise DefinitionError(f"Invalid pipeline definition {path}:\n{exc}") from exc

    def to_json(self) -> str:
        return json.dumps(self.model_dump(mode="json", exclude_defaults=True), indent=2)


__all__ = ["StageSpec", "PipelineDefinition"]
