"""Report writing and artifact archiving."""

from __future__ import annotations

from devsecflow.reports.artifacts import ArtifactArchiver
from devsecflow.reports.summary import RunReport, SummaryWriter, render_summary

__all__ = ["ArtifactArchiver", "RunReport", "SummaryWriter", "render_summary"]
