"""Process-wide gate allowing one remediation (and one publish) at a time.

Every orchestrator loop must hold the gate for the whole remediating and
publishing phase. Workers queue on it instead of racing each other on the
scanning engine, the report namespace and the repository working tree.

The gate also remembers when the latest successful remediation started. A
trigger observed *before* that moment is already covered: the newer run
scanned and fixed the whole baseline after the drift was seen. A failed run
covers nothing, so triggers queued behind it still get their own run.
"""

from __future__ import annotations

import threading
import time
from typing import Callable, Optional

from scapwatch.logging_config import get_logger

logger = get_logger(__name__)

ACQUIRE_POLL_SECONDS = 0.25


class RemediationGate:
    """Shared mutex around the remediating/publishing phases."""

    def __init__(
        self,
        coalesce: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._lock = threading.Lock()
        self._coalesce = coalesce
        self._clock = clock
        self._holder: Optional[str] = None
        self._held_since: Optional[float] = None
        self._last_covering: Optional[float] = None
        self._runs = 0

    @property
    def holder(self) -> Optional[str]:
        return self._holder

    @property
    def coalesce(self) -> bool:
        return self._coalesce

    @property
    def locked(self) -> bool:
        return self._lock.locked()

    @property
    def runs_started(self) -> int:
        return self._runs

    def acquire(self, holder: str, stop: Optional[threading.Event] = None) -> bool:
        """Block until the gate is free. Returns False if ``stop`` is set first."""
        waited = False
        while not self._lock.acquire(timeout=ACQUIRE_POLL_SECONDS):
            if not waited:
                logger.info("remediation_queued", source=holder, behind=self._holder)
                waited = True
            if stop is not None and stop.is_set():
                return False
        if stop is not None and stop.is_set():
            self._lock.release()
            return False
        self._holder = holder
        self._held_since = self._clock()
        return True

    def release(self) -> None:
        self._holder = None
        self._held_since = None
        self._lock.release()

    def covered(self, observed_at: float) -> bool:
        """True if a successful remediation started after ``observed_at``."""
        if not self._coalesce or self._last_covering is None:
            return False
        return self._last_covering > observed_at

    def begin_run(self) -> float:
        """Record that the holder is starting a remediation; returns its start time."""
        self._runs += 1
        return self._clock()

    def mark_covering(self, started_at: float) -> None:
        """The run that started at ``started_at`` succeeded."""
        if self._last_covering is None or started_at > self._last_covering:
            self._last_covering = started_at
