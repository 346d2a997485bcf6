"""scapwatch continuous monitoring and remediation orchestrator.

Components:
- TriggerSource: path watches (filesystem notification) and pollers
- RemediationGate: process-wide "one remediation at a time" mutex
- OrchestratorLoop: per-source idle → triggered → remediating → publishing cycle
- WatcherSupervisor: owns the worker threads and the shutdown signal
"""

from scapwatch.supervisor.gate import RemediationGate
from scapwatch.supervisor.loop import CycleOutcome, LoopState, OrchestratorLoop
from scapwatch.supervisor.monitor import WatcherSupervisor
from scapwatch.supervisor.triggers import (
    PathWatchSource,
    PollSource,
    TriggerEvent,
    TriggerKind,
    TriggerSource,
)

__all__ = [
    "CycleOutcome",
    "LoopState",
    "OrchestratorLoop",
    "PathWatchSource",
    "PollSource",
    "RemediationGate",
    "TriggerEvent",
    "TriggerKind",
    "TriggerSource",
    "WatcherSupervisor",
]
