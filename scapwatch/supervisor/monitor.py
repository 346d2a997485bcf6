"""Watcher supervisor — owns the worker threads of every trigger source.

The supervisor is the single owner of worker lifecycles. It:
- Validates every trigger source before anything starts
- Starts one thread per orchestrator loop
- Contains worker crashes (one worker never takes down another)
- Propagates a single shutdown signal to all workers and kills any external
  command still in flight
"""

from __future__ import annotations

import threading
import time
from typing import Optional, Sequence

from scapwatch.exceptions import StartupConfigurationError
from scapwatch.logging_config import get_logger
from scapwatch.runner import CommandRunner
from scapwatch.supervisor.loop import OrchestratorLoop

logger = get_logger(__name__)

JOIN_POLL_SECONDS = 1.0


class WatcherSupervisor:
    """Runs every orchestrator loop on its own thread until shutdown."""

    def __init__(
        self,
        loops: Sequence[OrchestratorLoop],
        runner: Optional[CommandRunner] = None,
        shutdown_grace: float = 10.0,
    ) -> None:
        labels = [loop.source.label for loop in loops]
        duplicates = {label for label in labels if labels.count(label) > 1}
        if duplicates:
            raise StartupConfigurationError(
                f"Duplicate trigger source labels: {', '.join(sorted(duplicates))}"
            )
        self._loops = tuple(loops)
        self._runner = runner
        self._grace = shutdown_grace
        self._stop = threading.Event()
        self._threads: dict[str, threading.Thread] = {}
        self._crashed: dict[str, str] = {}
        self._start_time: float = 0

    @property
    def loops(self) -> tuple[OrchestratorLoop, ...]:
        return self._loops

    @property
    def stop_event(self) -> threading.Event:
        return self._stop

    @property
    def is_running(self) -> bool:
        return any(t.is_alive() for t in self._threads.values())

    @property
    def crashed(self) -> dict[str, str]:
        """Labels of workers that died with an unexpected error."""
        return dict(self._crashed)

    @property
    def uptime(self) -> float:
        if not self._start_time:
            return 0
        return time.monotonic() - self._start_time

    def validate(self) -> None:
        """Check every trigger source; raise one error naming all problems."""
        problems: list[str] = []
        for loop in self._loops:
            try:
                loop.source.check()
            except StartupConfigurationError as exc:
                problems.append(exc.message)
        if problems:
            raise StartupConfigurationError(
                "; ".join(problems), context={"problems": problems}
            )

    def start(self) -> None:
        """Validate the sources and start one worker thread per loop."""
        if self._threads:
            logger.warning("supervisor_already_started")
            return
        if not self._loops:
            raise StartupConfigurationError("No trigger sources configured")
        self.validate()

        self._start_time = time.monotonic()
        for loop in self._loops:
            label = loop.source.label
            thread = threading.Thread(
                target=self._run_worker,
                args=(loop,),
                name=f"watch:{label}",
                daemon=True,
            )
            self._threads[label] = thread
            thread.start()
        logger.info("supervisor_started", workers=len(self._threads))

    def _run_worker(self, loop: OrchestratorLoop) -> None:
        label = loop.source.label
        try:
            loop.run(self._stop)
        except Exception as exc:
            self._crashed[label] = str(exc)
            logger.exception("worker_crashed", source=label, error=str(exc))

    def shutdown(self) -> None:
        """Signal every worker to stop and kill in-flight external commands."""
        if self._stop.is_set():
            return
        logger.info("supervisor_shutdown_requested")
        self._stop.set()
        if self._runner is not None:
            self._runner.terminate_all()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Join all workers. Returns True if every worker has exited."""
        deadline = None if timeout is None else time.monotonic() + timeout
        for thread in self._threads.values():
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            thread.join(remaining)
        return not self.is_running

    def run_forever(self) -> None:
        """Start the workers and block until shutdown, then join them."""
        self.start()
        while not self._stop.is_set() and self.is_running:
            self._stop.wait(JOIN_POLL_SECONDS)

        if not self._stop.is_set():
            logger.warning("all_workers_exited")
        self.shutdown()
        if not self.wait(self._grace):
            stuck = [label for label, t in self._threads.items() if t.is_alive()]
            logger.warning("workers_still_running", sources=stuck)
        logger.info("supervisor_stopped", uptime=round(self.uptime, 1))
