"""Archiving of scanner reports produced by pipeline stages."""

from __future__ import annotations

import glob
import logging
import os
import shutil
from collections.abc import Iterable
from pathlib import Path

logger = logging.getLogger(__name__)


class ArtifactArchiver:
    """Copies a stage's report files into ``<archive_dir>/<stage>/``.

    Patterns are globs relative to the working directory (``**`` allowed).
    Missing artifacts are logged, never raised: scanners that crash may
    leave nothing behind.
    """

    def __init__(self, workdir: str | Path, archive_dir: str | Path) -> None:
        self._workdir = Path(workdir).resolve()
        self._archive_dir = Path(archive_dir).resolve()

    @property
    def archive_dir(self) -> Path:
        return self._archive_dir

    def _destination(self, stage_name: str, source: Path) -> Path:
        try:
            relative = source.relative_to(self._workdir)
        except ValueError:
            relative = Path(source.name)
        return self._archive_dir / stage_name / relative

    def archive(self, stage_name: str, patterns: Iterable[str]) -> list[Path]:
        archived: list[Path] = []
        for pattern in patterns:
            matches = sorted(
                glob.glob(os.path.join(self._workdir, pattern), recursive=True)
            )
            if not matches:
                logger.warning("No artifacts matched %r for stage %s", pattern, stage_name)
                continue
            for match in matches:
                source = Path(match).resolve()
                if source == self._archive_dir or self._archive_dir in source.parents:
                    continue
                destination = self._destination(stage_name, source)
                destination.parent.mkdir(parents=True, exist_ok=True)
                if source.is_dir():
                    shutil.copytree(source, destination, dirs_exist_ok=True)
                else:
                    shutil.copy2(source, destination)
                archived.append(destination)
                logger.info("Archived %s -> %s", source, destination)
        return archived


__all__ = ["ArtifactArchiver"]
