"""Built-in secure delivery pipeline and placeholder rendering."""

from __future__ import annotations

import shlex
from string import Template

from devsecflow.common.constants import StageKind
from devsecflow.common.schemas import PipelineDefinition, StageSpec


def render_command(command: str, context: dict[str, str]) -> str:
    """Substitute ``$name`` placeholders with shell-quoted context values.

    Unknown ``$NAME`` tokens are left in place for the shell to expand.
    """
    quoted = {key: shlex.quote(value) for key, value in context.items()}
    return Template(command).safe_substitute(quoted)


def render_value(value: str, context: dict[str, str]) -> str:
    """Substitute placeholders in a path or URL without shell quoting."""
    return Template(value).safe_substitute(context)


def default_definition() -> PipelineDefinition:
    """Checkout, scan, build, push, deploy, scan again, gate, clean up."""
    return PipelineDefinition(
        name="secure-delivery",
        stages=[
            StageSpec(
                name="checkout",
                kind=StageKind.CHECKOUT,
                commands=[
                    "test -d .git || git clone --branch $git_ref $repo_url .",
                    "git log -1 --oneline",
                ],
            ),
            StageSpec(
                name="sast",
                kind=StageKind.SAST,
                commands=[
                    "mkdir -p $reports_dir",
                    "semgrep scan --config auto --json --output $reports_dir/semgrep.json .",
                ],
                continue_on_error=True,
                artifacts=["$reports_dir/semgrep.json"],
            ),
            StageSpec(
                name="sca",
                kind=StageKind.SCA,
                commands=[
                    "mkdir -p $reports_dir",
                    "trivy fs --scanners vuln --format json"
                    " --output $reports_dir/trivy-fs.json .",
                ],
                continue_on_error=True,
                artifacts=["$reports_dir/trivy-fs.json"],
            ),
            StageSpec(
                name="build-test",
                kind=StageKind.BUILD_TEST,
                commands=["docker build --target test --tag $image_name:test ."],
            ),
            StageSpec(
                name="image-build",
                kind=StageKind.IMAGE_BUILD,
                commands=["docker build --tag $image_ref ."],
            ),
            StageSpec(
                name="image-scan",
                kind=StageKind.IMAGE_SCAN,
                commands=[
                    "trivy image --format json --output $reports_dir/trivy-image.json $image_ref",
                ],
                continue_on_error=True,
                artifacts=["$reports_dir/trivy-image.json"],
            ),
            StageSpec(
                name="push",
                kind=StageKind.PUSH,
                commands=["docker push $image_ref"],
                when="push_image",
            ),
            StageSpec(
                name="deploy",
                kind=StageKind.DEPLOY,
                commands=["docker compose -f $compose_file up -d"],
                health_url="$staging_url",
            ),
            StageSpec(
                name="dast",
                kind=StageKind.DAST,
                commands=[
                    "docker run --rm --network host -v $reports_dir:/zap/wrk:rw"
                    " ghcr.io/zaproxy/zaproxy:stable zap-baseline.py"
                    " -t $staging_url -J zap.json -r zap.html",
                ],
                continue_on_error=True,
                artifacts=["$reports_dir/zap.json", "$reports_dir/zap.html"],
            ),
            StageSpec(
                name="policy-gate",
                kind=StageKind.POLICY_GATE,
                script="$policy_script",
            ),
            StageSpec(
                name="cleanup",
                kind=StageKind.CLEANUP,
                commands=["docker compose -f $compose_file down --volumes --remove-orphans"],
                continue_on_error=True,
            ),
        ],
    )


__all__ = ["default_definition", "render_command", "render_value"]
