"""Data models for remediation runs and their report artifacts."""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Optional
from uuid import uuid4


class RunOutcome(StrEnum):
    """How a remediation run ended."""

    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class ReportArtifact:
    """A report file written by the scanning engine."""

    path: Path
    created_at: dt.datetime

    @property
    def name(self) -> str:
        return self.path.name


@dataclass
class RemediationRun:
    """One execution of the scan-and-fix engine."""

    baseline: Path
    profile: str
    source: str = ""
    started_at: dt.datetime = field(default_factory=lambda: dt.datetime.now())
    run_id: str = field(default_factory=lambda: uuid4().hex[:12])
    artifact: Optional[ReportArtifact] = None
    outcome: RunOutcome = RunOutcome.RUNNING
    error: Optional[str] = None
    finished_at: Optional[dt.datetime] = None

    @property
    def succeeded(self) -> bool:
        return self.outcome is RunOutcome.SUCCEEDED and self.artifact is not None

    @property
    def duration(self) -> float:
        if self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()

    def finish(self, outcome: RunOutcome, error: Optional[str] = None) -> None:
        self.outcome = outcome
        self.error = error
        self.finished_at = dt.datetime.now()
