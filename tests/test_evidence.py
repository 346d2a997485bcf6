"""Tests for the evidence publisher."""

from __future__ import annotations

import datetime as dt

import pytest

from scapwatch.exceptions import CommandCancelled, CommandTimeout, PublishError
from scapwatch.modules.evidence import EvidencePublisher, PublishReceipt, PublishStep
from scapwatch.modules.remediation import ReportArtifact

NAME = "report2024-05-01T12:00:00.html"


@pytest.fixture
def artifact(report_dir) -> ReportArtifact:
    path = report_dir / NAME
    path.write_text("<html>report</html>")
    return ReportArtifact(path=path, created_at=dt.datetime(2024, 5, 1, 12, 0, 0))


@pytest.fixture
def repo(tmp_path):
    path = tmp_path / "evidence"
    (path / ".git").mkdir(parents=True)
    return path


def _publisher(runner, repo, **kwargs) -> EvidencePublisher:
    return EvidencePublisher(runner, repo, "compliance", **kwargs)


class TestCommitMessage:

    def test_names_artifact_and_source(self, fake_runner, repo, artifact) -> None:
        message = _publisher(fake_runner, repo).commit_message(
            artifact, "ssh-modify-watch", detail="modified /etc/ssh/sshd_config"
        )
        first, *rest = message.splitlines()
        assert NAME in first
        assert "ssh-modify-watch" in first
        assert "Trigger source: ssh-modify-watch" in rest
        assert "Remediated at: 2024-05-01T12:00:00" in rest
        assert "Trigger detail: modified /etc/ssh/sshd_config" in rest

    def test_detail_is_optional(self, fake_runner, repo, artifact) -> None:
        message = _publisher(fake_runner, repo).commit_message(artifact, "service-poll")
        assert "Trigger detail" not in message


class TestPublish:

    def test_add_commit_push_in_order(self, fake_runner, repo, artifact) -> None:
        receipt = _publisher(fake_runner, repo).publish(artifact, "service-poll")

        assert (repo / NAME).read_text() == "<html>report</html>"
        verbs = [call[1] for call in fake_runner.calls]
        assert verbs == ["add", "commit", "push"]
        assert fake_runner.calls[0] == ("git", "add", "--", NAME)
        assert fake_runner.calls[1][:3] == ("git", "commit", "-m")
        assert fake_runner.calls[1][-2:] == ("--", NAME)
        assert fake_runner.calls[2] == ("git", "push", "-u", "origin", "compliance")
        assert all(cwd == repo.resolve() for cwd in fake_runner.cwds)

        assert isinstance(receipt, PublishReceipt)
        assert receipt.artifact == NAME
        assert receipt.branch == "compliance"
        assert receipt.message == fake_runner.calls[1][3]

    def test_custom_remote_and_binary(self, fake_runner, repo, artifact) -> None:
        publisher = _publisher(fake_runner, repo, remote="evidence", git_binary="/usr/bin/git")
        publisher.publish(artifact, "service-poll")
        assert fake_runner.calls[-1] == ("/usr/bin/git", "push", "-u", "evidence", "compliance")

    def test_commit_failure_skips_push(self, fake_runner, repo, artifact) -> None:
        fake_runner.on("git", "commit", returncode=1, stdout="nothing to commit, working tree clean")
        with pytest.raises(PublishError) as exc_info:
            _publisher(fake_runner, repo).publish(artifact, "service-poll")

        err = exc_info.value
        assert err.step == PublishStep.COMMIT
        assert err.step == "commit"
        assert "nothing to commit" in err.detail
        assert [call[1] for call in fake_runner.calls] == ["add", "commit"]

    def test_place_failure_runs_no_git(self, fake_runner, repo, artifact) -> None:
        artifact.path.unlink()
        with pytest.raises(PublishError) as exc_info:
            _publisher(fake_runner, repo).publish(artifact, "service-poll")
        assert exc_info.value.step == PublishStep.PLACE
        assert fake_runner.calls == []

    def test_stage_failure(self, fake_runner, repo, artifact) -> None:
        fake_runner.on("git", "add", returncode=128, stderr="fatal: not a git repository")
        with pytest.raises(PublishError) as exc_info:
            _publisher(fake_runner, repo).publish(artifact, "service-poll")
        assert exc_info.value.step == PublishStep.STAGE
        assert len(fake_runner.calls) == 1

    def test_push_timeout(self, fake_runner, repo, artifact) -> None:
        fake_runner.on("git", "push", raises=CommandTimeout(["git", "push"], 120))
        with pytest.raises(PublishError) as exc_info:
            _publisher(fake_runner, repo, timeout=120).publish(artifact, "service-poll")
        assert exc_info.value.step == PublishStep.PUSH
        assert "timed out" in exc_info.value.detail

    def test_missing_git_binary(self, fake_runner, repo, artifact) -> None:
        fake_runner.on("git", raises=FileNotFoundError("git"))
        with pytest.raises(PublishError) as exc_info:
            _publisher(fake_runner, repo).publish(artifact, "service-poll")
        assert exc_info.value.step == PublishStep.STAGE

    def test_cancellation_propagates(self, fake_runner, repo, artifact) -> None:
        fake_runner.on("git", "push", raises=CommandCancelled(["git", "push"]))
        with pytest.raises(CommandCancelled):
            _publisher(fake_runner, repo).publish(artifact, "service-poll")
