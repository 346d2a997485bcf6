"""Shared test fixtures and configuration."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Callable, Optional, Sequence

import pytest

os.environ.setdefault("SCAPWATCH_ENV", "test")
os.environ.setdefault("SCAPWATCH_LOG_LEVEL", "WARNING")

from scapwatch.config import Settings
from scapwatch.runner import CommandResult


class FakeRunner:
    """Scripted stand-in for ``CommandRunner``.

    Responses are registered per argv prefix with ``on()``; the most recently
    registered matching rule wins. Unmatched commands succeed with no output.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, ...]] = []
        self.cwds: list[Optional[Path]] = []
        self.closed = False
        self._rules: list[tuple[tuple[str, ...], dict]] = []

    def on(
        self,
        *prefix: str,
        returncode: int = 0,
        stdout: str = "",
        stderr: str = "",
        raises: Optional[BaseException] = None,
        action: Optional[Callable[[tuple[str, ...], Optional[Path]], None]] = None,
    ) -> "FakeRunner":
        self._rules.append((
            tuple(prefix),
            {
                "returncode": returncode,
                "stdout": stdout,
                "stderr": stderr,
                "raises": raises,
                "action": action,
            },
        ))
        return self

    def run(
        self,
        args: Sequence[str],
        cwd: Optional[Path] = None,
        timeout: Optional[float] = None,
    ) -> CommandResult:
        argv = tuple(str(a) for a in args)
        self.calls.append(argv)
        self.cwds.append(cwd)
        for prefix, response in reversed(self._rules):
            if argv[: len(prefix)] != prefix:
                continue
            if response["action"] is not None:
                response["action"](argv, cwd)
            if response["raises"] is not None:
                raise response["raises"]
            return CommandResult(
                argv, response["returncode"], response["stdout"], response["stderr"]
            )
        return CommandResult(argv, 0)

    def terminate_all(self) -> None:
        self.closed = True

    def commands(self, program: str) -> list[tuple[str, ...]]:
        """Calls whose executable is ``program``."""
        return [c for c in self.calls if c[0] == program]


def write_report(argv: tuple[str, ...], cwd: Optional[Path]) -> None:
    """Runner action that behaves like oscap writing its --report file."""
    report = Path(argv[argv.index("--report") + 1])
    report.write_text("<html>report</html>")


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def oscap_runner() -> FakeRunner:
    """A fake runner whose oscap writes a report and exits 0."""
    return FakeRunner().on("oscap", action=write_report)


@pytest.fixture
def report_dir(tmp_path) -> Path:
    path = tmp_path / "reports"
    path.mkdir(exist_ok=True)
    return path


@pytest.fixture
def baseline(tmp_path) -> Path:
    path = tmp_path / "ssg-ubuntu2004-ds.xml"
    path.write_text("<ds:data-stream-collection/>")
    return path


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Return test settings."""
    return Settings(
        _env_file=None,
        scapwatch_env="test",
        scapwatch_log_level="WARNING",
        report_dir=str(tmp_path / "reports"),
        poll_interval_seconds=0.05,
        source_retry_delay=0.05,
        shutdown_grace_seconds=2,
    )
