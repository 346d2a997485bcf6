"""Trigger sources — the ways scapwatch notices that something may be wrong.

PathWatchSource: blocks on filesystem change notification (inotify via
    watchfiles) under one root, filtered by event kind
PollSource: wakes on a fixed interval; its condition battery decides
    whether remediation is warranted

Both expose ``events(stop)``: a lazy, blocking sequence of ``TriggerEvent``.
The sequence ends when ``stop`` is set or, for a path watch, when the
notification facility itself gives up; the orchestrator loop re-arms a
source whose sequence ended without ``stop``.
"""

from __future__ import annotations

import fnmatch
import os
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Any, Callable, Iterable, Iterator, Optional, Sequence

from watchfiles import Change, watch

from scapwatch.exceptions import StartupConfigurationError
from scapwatch.logging_config import get_logger
from scapwatch.modules.conditions.service import ConditionBattery

logger = get_logger(__name__)

DEFAULT_POLL_INTERVAL = 10.0
DEFAULT_DEBOUNCE_MS = 1600
ATTRIB = "attrib"
EVENT_KINDS = frozenset(change.name for change in Change) | {ATTRIB}

WatchFunction = Callable[..., Iterable[set[tuple[Change, str]]]]
# (mode, uid, gid, size, mtime_ns)
FileSignature = tuple[int, int, int, int, int]


class TriggerKind(StrEnum):
    PATH_WATCH = "path_watch"
    POLL = "poll"


@dataclass(frozen=True)
class TriggerEvent:
    """One firing of a trigger source."""

    source: str
    kind: TriggerKind
    observed_at: float
    changes: tuple[tuple[str, str], ...] = ()
    tick: int = 0

    def describe(self) -> str:
        if self.kind is TriggerKind.POLL:
            return f"poll tick {self.tick}"
        shown = ", ".join(f"{kind} {path}" for kind, path in self.changes[:5])
        extra = len(self.changes) - 5
        return shown + (f" (+{extra} more)" if extra > 0 else "")


class TriggerSource(ABC):
    """Abstract base for all trigger sources."""

    kind: TriggerKind

    def __init__(self, label: str, rules: Sequence[str] = ()) -> None:
        self.label = label
        self.rules = tuple(rules)

    @property
    def battery(self) -> Optional[ConditionBattery]:
        """Checks that gate remediation; ``None`` means every event warrants it."""
        return None

    def check(self) -> None:
        """Validate the source before monitoring starts."""

    @abstractmethod
    def events(self, stop: threading.Event) -> Iterator[TriggerEvent]:
        """Yield trigger events until ``stop`` is set."""

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.label!r})"


# ---------------------------------------------------------------------------
# PathWatchSource
# ---------------------------------------------------------------------------


class PathWatchSource(TriggerSource):
    """Fires when a matching change happens under ``root``.

    ``event_kinds`` is a subset of ``added``, ``modified``, ``deleted`` and
    ``attrib``; ``patterns`` optionally restricts the affected file names
    (fnmatch). Each firing carries one debounced batch of matching changes.
    The watch is re-armed only after the previous event has been handled, so
    changes made while handling it are not reported.

    watchfiles reports content writes and permission/ownership changes alike
    as ``modified``. To tell them apart the source records the mode, owner,
    group, size and mtime of everything under ``root`` when it arms, and
    compares against that record when a ``modified`` change arrives: a
    different mode, owner or group is ``attrib``, a different size or mtime
    is ``modified``.
    """

    kind = TriggerKind.PATH_WATCH

    def __init__(
        self,
        label: str,
        root: Path,
        event_kinds: Iterable[str] = ("modified",),
        recursive: bool = False,
        patterns: Sequence[str] = (),
        debounce_ms: int = DEFAULT_DEBOUNCE_MS,
        rules: Sequence[str] = (),
        watcher: Optional[WatchFunction] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(label, rules)
        self.root = Path(root)
        self.event_kinds = frozenset(event_kinds)
        unknown = self.event_kinds - EVENT_KINDS
        if not self.event_kinds or unknown:
            raise ValueError(
                f"{label}: event kinds must be a non-empty subset of {sorted(EVENT_KINDS)}"
            )
        self.recursive = recursive
        self.patterns = tuple(patterns)
        self._debounce_ms = debounce_ms
        self._watch = watcher or watch
        self._clock = clock
        self._signatures: dict[str, FileSignature] = {}

    def check(self) -> None:
        if not self.root.exists():
            raise StartupConfigurationError(
                f"Watched path does not exist: {self.root}",
                context={"source": self.label, "path": str(self.root)},
            )

    def accepts(self, change: Change, path: str) -> bool:
        """True if a raw change could pass the event-kind and name filters.

        A raw ``modified`` may turn out to be an ``attrib`` change, so it is
        let through when either kind is watched.
        """
        if change is Change.modified:
            if not self.event_kinds & {"modified", ATTRIB}:
                return False
        elif change.name not in self.event_kinds:
            return False
        return self._name_matches(path)

    def classify(self, change: Change, path: str) -> tuple[str, ...]:
        """Event kinds a raw change amounts to, updating the recorded state."""
        key = os.path.abspath(path)
        if change is Change.deleted:
            self._signatures.pop(key, None)
            return (change.name,)
        before = self._signatures.get(key)
        after = self._remember(key)
        if change is Change.added or before is None or after is None:
            return (change.name,)
        kinds = []
        if after[:3] != before[:3]:
            kinds.append(ATTRIB)
        if after[3:] != before[3:]:
            kinds.append("modified")
        return tuple(kinds)

    def _name_matches(self, path: str) -> bool:
        if not self.patterns:
            return True
        name = os.path.basename(path)
        return any(fnmatch.fnmatch(name, pattern) for pattern in self.patterns)

    def _remember(self, path: str) -> Optional[FileSignature]:
        try:
            st = os.lstat(path)
        except OSError:
            self._signatures.pop(path, None)
            return None
        signature = (st.st_mode, st.st_uid, st.st_gid, st.st_size, st.st_mtime_ns)
        self._signatures[path] = signature
        return signature

    def _snapshot(self) -> None:
        """Record the current state of the root and the entries under it."""
        self._signatures = {}
        root = os.path.abspath(self.root)
        self._remember(root)
        try:
            if self.recursive:
                for dirpath, dirnames, filenames in os.walk(root):
                    for name in dirnames + filenames:
                        if self._name_matches(name):
                            self._remember(os.path.join(dirpath, name))
            else:
                with os.scandir(root) as entries:
                    for entry in entries:
                        if self._name_matches(entry.name):
                            self._remember(entry.path)
        except OSError as exc:
            logger.warning("watch_snapshot_failed", source=self.label, error=str(exc))

    def events(self, stop: threading.Event) -> Iterator[TriggerEvent]:
        while not stop.is_set():
            changes = self._next_batch(stop)
            if changes is None:
                return
            yield TriggerEvent(
                source=self.label,
                kind=self.kind,
                observed_at=self._clock(),
                changes=changes,
            )

    def _next_batch(self, stop: threading.Event) -> Optional[tuple[tuple[str, str], ...]]:
        """Arm the watch, wait for the first matching batch, disarm."""
        self._snapshot()
        logger.debug(
            "watch_armed", source=self.label, root=str(self.root), entries=len(self._signatures),
        )
        stream = self._watch(
            self.root,
            watch_filter=self.accepts,
            debounce=self._debounce_ms,
            stop_event=stop,
            recursive=self.recursive,
        )
        batches = iter(stream)
        try:
            for batch in batches:
                if stop.is_set():
                    return None
                matching = tuple(sorted(
                    (kind, path)
                    for change, path in batch
                    if self.accepts(change, path)
                    for kind in self.classify(change, path)
                    if kind in self.event_kinds
                ))
                if matching:
                    return matching
        finally:
            # closing the generator releases the inotify watch
            close = getattr(batches, "close", None)
            if close is not None:
                close()
        return None


# ---------------------------------------------------------------------------
# PollSource
# ---------------------------------------------------------------------------


class PollSource(TriggerSource):
    """Ticks immediately, then every ``interval`` seconds."""

    kind = TriggerKind.POLL

    def __init__(
        self,
        label: str,
        battery: ConditionBattery,
        interval: float = DEFAULT_POLL_INTERVAL,
        rules: Sequence[str] = (),
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(label, rules)
        if interval <= 0:
            raise ValueError(f"{label}: poll interval must be positive, got {interval}")
        self.interval = interval
        self._battery = battery
        self._clock = clock

    @property
    def battery(self) -> ConditionBattery:
        return self._battery

    def check(self) -> None:
        if not len(self._battery):
            raise StartupConfigurationError(
                f"Poll source {self.label} has no conditions",
                context={"source": self.label},
            )

    def events(self, stop: threading.Event) -> Iterator[TriggerEvent]:
        tick = 0
        while not stop.is_set():
            tick += 1
            yield TriggerEvent(
                source=self.label,
                kind=self.kind,
                observed_at=self._clock(),
                tick=tick,
            )
            if stop.wait(self.interval):
                return


def describe_source(source: TriggerSource) -> dict[str, Any]:
    """Summary of a source for startup logs and the console banner."""
    if isinstance(source, PathWatchSource):
        return {
            "label": source.label,
            "kind": str(source.kind),
            "target": str(source.root),
            "filter": ",".join(sorted(source.event_kinds)),
        }
    if isinstance(source, PollSource):
        return {
            "label": source.label,
            "kind": str(source.kind),
            "target": f"{len(source.battery)} checks",
            "filter": f"every {source.interval:g}s",
        }
    return {"label": source.label, "kind": str(source.kind), "target": "", "filter": ""}
