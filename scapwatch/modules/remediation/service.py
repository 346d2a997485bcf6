"""Remediation invoker — runs the SCAP scan-and-fix engine once.

The engine (``oscap xccdf eval --remediate``) evaluates every rule of the
selected profile against the live system, fixes what it can, and writes an
HTML report. The invoker only distinguishes success from failure:

- the engine could not be launched, timed out, or exited with a code that is
  not accepted                                  → RemediationError
- the engine exited "successfully" but no report exists → RemediationError
- shutdown killed the engine                   → CommandCancelled

A failed or cancelled run never leaves a report behind.
"""

from __future__ import annotations

import datetime as dt
import threading
from pathlib import Path
from typing import Callable, Iterable, Optional

from scapwatch.exceptions import CommandCancelled, CommandTimeout, RemediationError
from scapwatch.logging_config import get_logger
from scapwatch.modules.remediation.models import RemediationRun, ReportArtifact, RunOutcome
from scapwatch.runner import CommandRunner

logger = get_logger(__name__)

REPORT_PREFIX = "report"
REPORT_EXTENSION = ".html"
REPORT_TIME_FORMAT = "%Y-%m-%dT%H:%M:%S"
DEFAULT_OK_EXIT_CODES = frozenset({0})


class ReportNamer:
    """Hands out report file names that are unique for the life of the process.

    Names derive from the run's start time at second resolution. A second run
    starting within the same second gets a ``-1``, ``-2``… suffix. Names that
    already exist on disk (in the report directory or any extra directory,
    such as the evidence repository) are skipped as well.
    """

    def __init__(self, directory: Path, also_check: Iterable[Path] = ()) -> None:
        self._directory = Path(directory)
        self._also_check = tuple(Path(p) for p in also_check)
        self._issued: set[str] = set()
        self._lock = threading.Lock()

    @property
    def directory(self) -> Path:
        return self._directory

    @staticmethod
    def base_name(started_at: dt.datetime, sequence: int = 0) -> str:
        stamp = started_at.strftime(REPORT_TIME_FORMAT)
        suffix = f"-{sequence}" if sequence else ""
        return f"{REPORT_PREFIX}{stamp}{suffix}{REPORT_EXTENSION}"

    def reserve(self, started_at: dt.datetime) -> Path:
        """Return a fresh report path for a run started at ``started_at``."""
        with self._lock:
            sequence = 0
            name = self.base_name(started_at)
            while name in self._issued or self._exists(name):
                sequence += 1
                name = self.base_name(started_at, sequence)
            self._issued.add(name)
        return self._directory / name

    def _exists(self, name: str) -> bool:
        return any((d / name).exists() for d in (self._directory, *self._also_check))


class RemediationInvoker:
    """Runs the scanning engine synchronously and returns the finished run."""

    def __init__(
        self,
        runner: CommandRunner,
        report_dir: Path,
        oscap_binary: str = "oscap",
        timeout: Optional[float] = None,
        ok_exit_codes: Iterable[int] = DEFAULT_OK_EXIT_CODES,
        namer: Optional[ReportNamer] = None,
        clock: Callable[[], dt.datetime] = dt.datetime.now,
    ) -> None:
        self._runner = runner
        self._report_dir = Path(report_dir).resolve()
        self._oscap = oscap_binary
        self._timeout = timeout
        self._ok_codes = frozenset(ok_exit_codes)
        self._namer = namer or ReportNamer(self._report_dir)
        self._clock = clock

    @property
    def namer(self) -> ReportNamer:
        return self._namer

    def build_command(self, baseline: Path, profile: str, report_path: Path) -> list[str]:
        """The engine command line for one remediation."""
        return [
            self._oscap, "xccdf", "eval",
            "--remediate",
            "--report", str(report_path),
            "--profile", profile,
            str(baseline),
        ]

    def remediate(self, baseline: Path, profile: str, source: str = "") -> RemediationRun:
        """Scan and fix the system; return the run with its report artifact.

        Raises ``RemediationError`` on any failure and ``CommandCancelled``
        when shutdown interrupts the engine.
        """
        started_at = self._clock()
        report_path = self._namer.reserve(started_at)
        run = RemediationRun(
            baseline=Path(baseline),
            profile=profile,
            source=source,
            started_at=started_at,
        )
        command = self.build_command(Path(baseline), profile, report_path)
        logger.info(
            "remediation_started",
            run_id=run.run_id,
            source=source,
            profile=profile,
            report=report_path.name,
        )

        try:
            result = self._runner.run(command, cwd=self._report_dir, timeout=self._timeout)
        except CommandCancelled:
            self._discard(report_path)
            run.finish(RunOutcome.CANCELLED, "cancelled by shutdown")
            logger.warning("remediation_cancelled", run_id=run.run_id, source=source)
            raise
        except CommandTimeout as exc:
            raise self._failure(run, report_path, exc.message)
        except OSError as exc:
            raise self._failure(run, report_path, f"cannot launch {self._oscap}: {exc}")

        if result.returncode not in self._ok_codes:
            raise self._failure(
                run,
                report_path,
                f"{self._oscap} exited {result.returncode}: {result.tail(200)}",
                exit_code=result.returncode,
            )
        if not report_path.is_file():
            raise self._failure(
                run,
                report_path,
                "engine finished without writing a report",
                exit_code=result.returncode,
            )

        run.artifact = ReportArtifact(path=report_path, created_at=started_at)
        run.finish(RunOutcome.SUCCEEDED)
        logger.info(
            "remediation_completed",
            run_id=run.run_id,
            source=source,
            report=report_path.name,
            exit_code=result.returncode,
            duration=round(run.duration, 1),
        )
        return run

    def _failure(
        self,
        run: RemediationRun,
        report_path: Path,
        reason: str,
        exit_code: Optional[int] = None,
    ) -> RemediationError:
        self._discard(report_path)
        run.finish(RunOutcome.FAILED, reason)
        return RemediationError(reason, exit_code=exit_code, run=run)

    @staticmethod
    def _discard(report_path: Path) -> None:
        """Remove a partial report left by a failed or killed engine."""
        try:
            report_path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("partial_report_not_removed", report=str(report_path), error=str(exc))
