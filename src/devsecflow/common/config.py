"""Application configuration using Pydantic Settings."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings


class DevSecFlowConfig(BaseSettings):
    """Runner configuration loaded from environment variables."""

    environment: Literal["dev", "staging", "prod"] = "dev"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    workdir: str = "."
    reports_dir: str = "reports"
    archive_dir: str = "reports/archive"

    repo_url: str = ""
    git_ref: str = "main"

    registry: str = ""
    image_name: str = "sample-app"
    image_tag: str = "latest"
    push_image: bool = False
    # Names of environment variables holding registry credentials, never values.
    registry_credential_envs: list[str] = ["REGISTRY_USERNAME", "REGISTRY_PASSWORD"]

    staging_url: str = "http://localhost:8080"
    compose_file: str = "docker-compose.yml"
    policy_script: str = "scripts/vuln_policy.sh"

    pipeline_timeout_seconds: float = 3600.0
    cleanup_timeout_seconds: float = 300.0

    health_check_attempts: int = 10
    health_check_interval_seconds: float = 6.0
    health_check_timeout_seconds: float = 5.0

    model_config = {"env_prefix": "DEVSECFLOW_", "case_sensitive": False}

    @property
    def image_ref(self) -> str:
        """Fully qualified image reference, e.g. ``registry/app:tag``."""
        ref = f"{self.image_name}:{self.image_tag}"
        if self.registry:
            return f"{self.registry.rstrip('/')}/{ref}"
        return ref

    def resolve_workdir(self) -> Path:
        return Path(self.workdir).expanduser().resolve()

    def resolve_path(self, value: str) -> Path:
        """Resolve a path setting relative to the working directory."""
        path = Path(value).expanduser()
        if not path.is_absolute():
            path = self.resolve_workdir() / path
        return path

    def template_context(self) -> dict[str, str]:
        """Values available as ``$name`` placeholders in stage definitions."""
        return {
            "workdir": str(self.resolve_workdir()),
            "reports_dir": str(self.resolve_path(self.reports_dir)),
            "registry": self.registry,
            "image_name": self.image_name,
            "image_tag": self.image_tag,
            "image_ref": self.image_ref,
            "staging_url": self.staging_url,
            "compose_file": self.compose_file,
            "git_ref": self.git_ref,
            "repo_url": self.repo_url,
            "policy_script": self.policy_script,
        }

    def stage_environment(self) -> dict[str, str]:
        """Run context exported to every stage subprocess."""
        return {
            f"PIPELINE_{key.upper()}": value
            for key, value in self.template_context().items()
        }


__all__ = ["DevSecFlowConfig"]
