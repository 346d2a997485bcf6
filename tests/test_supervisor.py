"""Tests for the watcher supervisor (worker lifecycles and shutdown)."""

from __future__ import annotations

import threading
import time
from unittest.mock import MagicMock

import pytest

from conftest import FakeRunner
from scapwatch.exceptions import StartupConfigurationError
from scapwatch.modules.remediation import RemediationInvoker
from scapwatch.supervisor.gate import RemediationGate
from scapwatch.supervisor.loop import OrchestratorLoop
from scapwatch.supervisor.monitor import WatcherSupervisor
from scapwatch.supervisor.triggers import PathWatchSource, TriggerKind, TriggerSource


class BlockingSource(TriggerSource):
    """Blocks like an idle notification facility until shutdown."""

    kind = TriggerKind.PATH_WATCH

    def events(self, stop):
        stop.wait()
        return
        yield  # pragma: no cover


class EndingSource(TriggerSource):
    """Its event sequence ends right away every time it is armed."""

    kind = TriggerKind.PATH_WATCH

    def __init__(self, label: str) -> None:
        super().__init__(label)
        self.armed = 0

    def events(self, stop):
        self.armed += 1
        return iter(())


class CrashingLoop:
    """Loop stand-in whose worker dies with an unexpected error."""

    def __init__(self, label: str) -> None:
        self.source = EndingSource(label)

    def run(self, stop) -> None:
        raise RuntimeError("boom")


def _loop(source, runner, report_dir, baseline, retry_delay: float = 30) -> OrchestratorLoop:
    invoker = RemediationInvoker(runner, report_dir)
    return OrchestratorLoop(source, invoker, RemediationGate(), baseline, retry_delay=retry_delay)


def _stop_later(supervisor: WatcherSupervisor, delay: float = 0.2) -> threading.Thread:
    thread = threading.Thread(target=lambda: (time.sleep(delay), supervisor.shutdown()))
    thread.start()
    return thread


class TestWatcherSupervisor:

    def test_duplicate_labels_rejected(self, fake_runner, report_dir, baseline) -> None:
        loops = [
            _loop(BlockingSource("etc-attrib-watch"), fake_runner, report_dir, baseline),
            _loop(BlockingSource("etc-attrib-watch"), fake_runner, report_dir, baseline),
        ]
        with pytest.raises(StartupConfigurationError, match="etc-attrib-watch"):
            WatcherSupervisor(loops)

    def test_validate_reports_every_problem(self, fake_runner, report_dir, baseline, tmp_path) -> None:
        loops = [
            _loop(PathWatchSource("a", tmp_path / "missing-a"), fake_runner, report_dir, baseline),
            _loop(PathWatchSource("b", tmp_path), fake_runner, report_dir, baseline),
            _loop(PathWatchSource("c", tmp_path / "missing-c"), fake_runner, report_dir, baseline),
        ]
        supervisor = WatcherSupervisor(loops)
        with pytest.raises(StartupConfigurationError) as exc_info:
            supervisor.start()
        assert "missing-a" in exc_info.value.message
        assert "missing-c" in exc_info.value.message
        assert len(exc_info.value.context["problems"]) == 2
        assert not supervisor.is_running

    def test_no_loops_rejected(self) -> None:
        with pytest.raises(StartupConfigurationError):
            WatcherSupervisor([]).start()

    def test_one_thread_per_source(self, fake_runner, report_dir, baseline) -> None:
        loops = [
            _loop(BlockingSource(label), fake_runner, report_dir, baseline)
            for label in ("service-poll", "ssh-modify-watch")
        ]
        supervisor = WatcherSupervisor(loops, runner=fake_runner)
        supervisor.start()
        try:
            names = {t.name for t in threading.enumerate()}
            assert {"watch:service-poll", "watch:ssh-modify-watch"} <= names
            assert supervisor.is_running
        finally:
            supervisor.shutdown()
            assert supervisor.wait(5)

    def test_run_forever_stops_on_shutdown(self, report_dir, baseline) -> None:
        runner = FakeRunner()
        loops = [
            _loop(BlockingSource(label), runner, report_dir, baseline)
            for label in ("a", "b", "c")
        ]
        supervisor = WatcherSupervisor(loops, runner=runner, shutdown_grace=5)
        stopper = _stop_later(supervisor)

        start = time.monotonic()
        supervisor.run_forever()
        stopper.join()

        assert time.monotonic() - start < 5
        assert not supervisor.is_running
        assert supervisor.stop_event.is_set()
        assert runner.closed

    def test_shutdown_is_idempotent(self) -> None:
        runner = MagicMock()
        supervisor = WatcherSupervisor([], runner=runner)
        supervisor.shutdown()
        supervisor.shutdown()
        runner.terminate_all.assert_called_once()

    def test_crash_is_contained(self, fake_runner, report_dir, baseline) -> None:
        healthy = _loop(BlockingSource("healthy"), fake_runner, report_dir, baseline)
        supervisor = WatcherSupervisor([CrashingLoop("crashy"), healthy], runner=fake_runner)
        supervisor.start()
        try:
            time.sleep(0.2)
            assert supervisor.crashed == {"crashy": "boom"}
            assert supervisor.is_running
        finally:
            supervisor.shutdown()
            supervisor.wait(5)

    def test_run_forever_returns_when_every_worker_crashed(self, fake_runner) -> None:
        supervisor = WatcherSupervisor([CrashingLoop("crashy")], runner=fake_runner)
        supervisor.run_forever()
        assert supervisor.crashed == {"crashy": "boom"}
        assert fake_runner.closed

    def test_ended_source_is_rearmed_until_shutdown(self, fake_runner, report_dir, baseline) -> None:
        source = EndingSource("a")
        loops = [_loop(source, fake_runner, report_dir, baseline, retry_delay=0.01)]
        supervisor = WatcherSupervisor(loops, runner=fake_runner, shutdown_grace=5)
        stopper = _stop_later(supervisor, delay=0.3)

        supervisor.run_forever()
        stopper.join(5)

        assert source.armed >= 2
        assert supervisor.crashed == {}
        assert not supervisor.is_running
        assert fake_runner.closed

    def test_start_twice_is_noop(self, fake_runner, report_dir, baseline) -> None:
        supervisor = WatcherSupervisor(
            [_loop(BlockingSource("a"), fake_runner, report_dir, baseline)], runner=fake_runner
        )
        supervisor.start()
        try:
            supervisor.start()
            assert sum(t.name == "watch:a" for t in threading.enumerate()) == 1
        finally:
            supervisor.shutdown()
            supervisor.wait(5)
