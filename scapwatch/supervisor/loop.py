"""Orchestrator loop — drives one trigger source through remediation.

State machine per source::

    idle ──event──► triggered ──warranted──► remediating ──ok──► publishing
      ▲                 │                        │                   │
      └──not warranted──┘◄────────failed─────────┘◄──────always───────┘

Poll sources are warranted only when their battery reports a failing check;
path-watch sources always are. The remediating and publishing phases run
under the shared ``RemediationGate``. Every error is contained here: the loop
logs it and goes back to waiting on its source. A source whose event
sequence fails or simply ends is re-armed after ``retry_delay`` seconds; only
the shutdown event ends the loop.
"""

from __future__ import annotations

import threading
import time
from enum import StrEnum
from pathlib import Path
from typing import Callable, Optional

from scapwatch.exceptions import CommandCancelled, PublishError, RemediationError
from scapwatch.logging_config import get_logger
from scapwatch.modules.evidence.service import EvidencePublisher
from scapwatch.modules.remediation.service import RemediationInvoker
from scapwatch.supervisor.gate import RemediationGate
from scapwatch.supervisor.triggers import TriggerEvent, TriggerSource

logger = get_logger(__name__)

DEFAULT_RETRY_DELAY = 30.0


class LoopState(StrEnum):
    IDLE = "idle"
    TRIGGERED = "triggered"
    REMEDIATING = "remediating"
    PUBLISHING = "publishing"


class CycleOutcome(StrEnum):
    """How one trigger was handled."""

    COMPLIANT = "compliant"
    COALESCED = "coalesced"
    REMEDIATION_FAILED = "remediation_failed"
    REPORT_KEPT = "report_kept"
    PUBLISHED = "published"
    PUBLISH_FAILED = "publish_failed"
    SHUTDOWN = "shutdown"


class OrchestratorLoop:
    """Glue between one trigger source, the invoker and the publisher."""

    def __init__(
        self,
        source: TriggerSource,
        invoker: RemediationInvoker,
        gate: RemediationGate,
        baseline: Path,
        profile: str = "standard",
        publisher: Optional[EvidencePublisher] = None,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._source = source
        self._invoker = invoker
        self._gate = gate
        self._baseline = Path(baseline)
        self._profile = profile
        self._publisher = publisher
        self._retry_delay = retry_delay
        self._clock = clock
        self._state = LoopState.IDLE
        self._cycles = 0
        self._log = logger.bind(source=source.label)

    @property
    def source(self) -> TriggerSource:
        return self._source

    @property
    def state(self) -> LoopState:
        return self._state

    @property
    def cycles(self) -> int:
        return self._cycles

    def run(self, stop: threading.Event) -> None:
        """Handle events from the source until ``stop`` is set."""
        self._log.info("watcher_running", kind=str(self._source.kind))
        try:
            self._run(stop)
        finally:
            self._state = LoopState.IDLE
            self._log.info("watcher_stopped")

    def _run(self, stop: threading.Event) -> None:
        while not stop.is_set():
            try:
                for event in self._source.events(stop):
                    self.handle(event, stop)
                    if stop.is_set():
                        return
            except CommandCancelled:
                return
            except Exception as exc:
                self._log.error(
                    "trigger_source_failed",
                    error=str(exc),
                    retry_in=self._retry_delay,
                )
                if stop.wait(self._retry_delay):
                    return
                continue
            if stop.is_set():
                return
            self._log.warning("trigger_source_ended", retry_in=self._retry_delay)
            if stop.wait(self._retry_delay):
                return

    def handle(self, event: TriggerEvent, stop: Optional[threading.Event] = None) -> CycleOutcome:
        """Process one trigger event completely."""
        self._cycles += 1
        self._state = LoopState.TRIGGERED
        try:
            if not self._warranted(event):
                return CycleOutcome.COMPLIANT
            observed_at = self._clock()

            if not self._gate.acquire(self._source.label, stop):
                return CycleOutcome.SHUTDOWN
            try:
                if self._gate.covered(observed_at):
                    self._log.info("trigger_coalesced", detail=event.describe())
                    return CycleOutcome.COALESCED
                return self._remediate_and_publish(event)
            finally:
                self._gate.release()
        finally:
            self._state = LoopState.IDLE

    def _warranted(self, event: TriggerEvent) -> bool:
        battery = self._source.battery
        if battery is None:
            self._log.info(
                "change_detected",
                detail=event.describe(),
                rules=list(self._source.rules),
            )
            return True

        verdict = battery.evaluate()
        if not verdict.needs_remediation:
            self._log.debug("checks_passed", tick=event.tick, checks=len(verdict.results))
            return False
        for failure in verdict.failures:
            self._log.warning("check_failed", condition=failure.name, reason=failure.reason)
        self._log.info(
            "remediation_warranted",
            tick=event.tick,
            failed=len(verdict.failures),
            summary=verdict.summary(),
        )
        return True

    def _remediate_and_publish(self, event: TriggerEvent) -> CycleOutcome:
        label = self._source.label

        self._state = LoopState.REMEDIATING
        started_at = self._gate.begin_run()
        try:
            run = self._invoker.remediate(self._baseline, self._profile, source=label)
        except RemediationError as exc:
            self._log.error("remediation_failed", reason=exc.reason, exit_code=exc.exit_code)
            return CycleOutcome.REMEDIATION_FAILED
        self._gate.mark_covering(started_at)

        artifact = run.artifact
        if self._publisher is None:
            self._log.info("report_kept_locally", report=str(artifact.path))
            return CycleOutcome.REPORT_KEPT

        self._state = LoopState.PUBLISHING
        try:
            self._publisher.publish(artifact, source=label, detail=event.describe())
        except PublishError as exc:
            self._log.error(
                "publish_failed",
                step=str(exc.step),
                report=artifact.name,
                detail=exc.detail,
            )
            return CycleOutcome.PUBLISH_FAILED

        self._log.info(
            "report_published",
            report=artifact.name,
            repo=str(self._publisher.repo_path),
            branch=self._publisher.branch,
        )
        return CycleOutcome.PUBLISHED
