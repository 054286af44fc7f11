"""Command-line entry point for the DevSecFlow pipeline runner.

Run directly:
    python -m devsecflow [--definition pipeline.json] [--push] [--dry-run]
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Any, Sequence

from pydantic import ValidationError

from devsecflow.cicd.commands import CommandRunner
from devsecflow.cicd.definitions import default_definition
from devsecflow.cicd.pipeline import PipelineRunner
from devsecflow.common.config import DevSecFlowConfig
from devsecflow.common.constants import ExitCode
from devsecflow.common.exceptions import DefinitionError
from devsecflow.common.schemas import PipelineDefinition

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="devsecflow",
        description="DevSecFlow: run a security-scanning build and deploy pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Show the resolved commands of the built-in pipeline without running them
  devsecflow --dry-run

  # Run a custom definition and push the image on success
  devsecflow --definition pipelines/secure-delivery.json --push

Exit codes: 0 success, 1 stage failure or timeout, 2 policy violation,
3 invalid definition.
        """,
    )
    parser.add_argument(
        "--definition", type=str, default=None,
        help="Path to a JSON pipeline definition (default: built-in pipeline)",
    )
    parser.add_argument("--workdir", type=str, default=None, help="Working directory")
    parser.add_argument("--reports-dir", type=str, default=None, help="Reports directory")
    parser.add_argument(
        "--push", dest="push_image", action="store_true", default=None,
        help="Push the image to the registry",
    )
    parser.add_argument(
        "--no-push", dest="push_image", action="store_false",
        help="Do not push the image",
    )
    parser.add_argument(
        "--timeout", type=float, default=None,
        help="Overall wall-clock timeout in seconds",
    )
    parser.add_argument(
        "--dry-run", action="store_true",
        help="Log the resolved commands without running anything",
    )
    parser.add_argument(
        "--list-stages", action="store_true",
        help="Print the stages and their commands, then exit",
    )
    parser.add_argument(
        "--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR"], default=None,
    )
    return parser


def _config_overrides(args: argparse.Namespace) -> dict[str, Any]:
    overrides: dict[str, Any] = {
        "workdir": args.workdir,
        "reports_dir": args.reports_dir,
        "push_image": args.push_image,
        "pipeline_timeout_seconds": args.timeout,
        "log_level": args.log_level,
    }
    return {key: value for key, value in overrides.items() if value is not None}


def _print_stages(runner: PipelineRunner) -> None:
    for index, stage in enumerate(runner.definition.stages, start=1):
        policy = "continue-on-error" if stage.continue_on_error else "fail-fast"
        condition = f", when {stage.when}" if stage.when else ""
        print(f"{index:>2}. {stage.name} [{stage.kind}, {policy}{condition}]")
        for command in runner.planned_commands(stage):
            print(f"      {command}")


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = DevSecFlowConfig(**_config_overrides(args))
    except ValidationError as exc:
        print(f"Invalid configuration:\n{exc}", file=sys.stderr)
        return int(ExitCode.INVALID_DEFINITION)

    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    try:
        definition = (
            PipelineDefinition.from_file(args.definition)
            if args.definition else default_definition()
        )
        runner = PipelineRunner(
            definition,
            config,
            command_runner=CommandRunner(dry_run=args.dry_run),
        )
    except DefinitionError as exc:
        logger.error("%s", exc)
        return int(exc.exit_code)

    if args.list_stages:
        _print_stages(runner)
        return int(ExitCode.SUCCESS)

    run = runner.run()
    if run.error is not None:
        logger.error("Pipeline failed: %s", run.error)
    return run.exit_code


if __name__ == "__main__":
    sys.exit(main())
