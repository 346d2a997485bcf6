"""Evidence publisher — archives report artifacts in a git repository.

Each report goes through four steps, each a distinct failure point:

1. place: copy the report into the repository working tree
2. stage: ``git add`` the copied file
3. commit: ``git commit`` with a message naming the report and its trigger
4. push: ``git push -u <remote> <branch>``

The first failing step aborts the rest. Nothing is rolled back and nothing
is retried; the operator recovers from the state the failed step left.
The repository must already exist and be able to push without prompting.
"""

from __future__ import annotations

import shutil
import socket
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Optional

from scapwatch.exceptions import CommandCancelled, CommandTimeout, PublishError
from scapwatch.logging_config import get_logger
from scapwatch.modules.remediation.models import ReportArtifact
from scapwatch.runner import CommandResult, CommandRunner

logger = get_logger(__name__)


class PublishStep(StrEnum):
    """Steps of one publish transaction, in execution order."""

    PLACE = "place"
    STAGE = "stage"
    COMMIT = "commit"
    PUSH = "push"


@dataclass(frozen=True)
class PublishReceipt:
    """Record of a fully published report."""

    artifact: str
    repo: Path
    remote: str
    branch: str
    message: str


class EvidencePublisher:
    """Places, commits and pushes report artifacts into one repo/branch."""

    def __init__(
        self,
        runner: CommandRunner,
        repo_path: Path,
        branch: str,
        remote: str = "origin",
        git_binary: str = "git",
        timeout: Optional[float] = None,
    ) -> None:
        self._runner = runner
        self._repo = Path(repo_path).resolve()
        self._branch = branch
        self._remote = remote
        self._git_binary = git_binary
        self._timeout = timeout

    @property
    def repo_path(self) -> Path:
        return self._repo

    @property
    def branch(self) -> str:
        return self._branch

    def commit_message(
        self,
        artifact: ReportArtifact,
        source: str,
        detail: str = "",
    ) -> str:
        """Describe which report is archived and what triggered it."""
        lines = [
            f"Add compliance report {artifact.name} (trigger: {source})",
            "",
            f"Host: {socket.gethostname()}",
            f"Trigger source: {source}",
            f"Report: {artifact.name}",
            f"Remediated at: {artifact.created_at.isoformat(timespec='seconds')}",
        ]
        if detail:
            lines.append(f"Trigger detail: {detail}")
        return "\n".join(lines)

    def publish(
        self,
        artifact: ReportArtifact,
        source: str,
        detail: str = "",
    ) -> PublishReceipt:
        """Run place → stage → commit → push for one artifact.

        Raises ``PublishError`` naming the failed step, or ``CommandCancelled``
        when shutdown interrupts a git command.
        """
        name = artifact.name
        log = logger.bind(report=name, source=source, branch=self._branch)

        log.info("report_copying", repo=str(self._repo))
        try:
            shutil.copy2(artifact.path, self._repo / name)
        except OSError as exc:
            raise PublishError(PublishStep.PLACE, name, str(exc)) from exc

        self._git(PublishStep.STAGE, name, "add", "--", name)

        message = self.commit_message(artifact, source, detail)
        self._git(PublishStep.COMMIT, name, "commit", "-m", message, "--", name)

        self._git(PublishStep.PUSH, name, "push", "-u", self._remote, self._branch)

        log.info("report_pushed", repo=str(self._repo), remote=self._remote)
        return PublishReceipt(
            artifact=name,
            repo=self._repo,
            remote=self._remote,
            branch=self._branch,
            message=message,
        )

    # ── Git Operations ────────────────────────────────────────────────

    def _git(self, step: PublishStep, artifact: str, *args: str) -> CommandResult:
        """Run one git command in the repository; any failure is ``step``'s."""
        try:
            result = self._runner.run(
                [self._git_binary, *args], cwd=self._repo, timeout=self._timeout
            )
        except CommandCancelled:
            raise
        except CommandTimeout as exc:
            raise PublishError(step, artifact, exc.message) from exc
        except OSError as exc:
            raise PublishError(step, artifact, f"cannot run {self._git_binary}: {exc}") from exc

        if not result.ok:
            raise PublishError(
                step,
                artifact,
                f"git {args[0]} exited {result.returncode}: {result.tail(300)}",
            )
        logger.debug("git_step_done", step=str(step), report=artifact)
        return result
