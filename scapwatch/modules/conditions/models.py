"""Data models for the condition battery."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Callable, Optional


class Polarity(StrEnum):
    """What a passing check expects of its subject."""

    PRESENT = "present"
    ABSENT = "absent"


@dataclass(frozen=True)
class Condition:
    """A named predicate over live system state.

    ``probe`` answers "is the subject present right now?"; ``polarity``
    decides whether presence is a pass or a failure.
    """

    name: str
    subject: str
    probe: Callable[[], bool] = field(compare=False, repr=False)
    polarity: Polarity = Polarity.PRESENT
    rules: tuple[str, ...] = ()

    def passes(self, present: bool) -> bool:
        return present if self.polarity is Polarity.PRESENT else not present

    def violation(self) -> str:
        """Human-readable reason for a failed check."""
        if self.polarity is Polarity.PRESENT:
            return f"{self.subject} not found"
        return f"{self.subject} found"


@dataclass(frozen=True)
class ConditionResult:
    """Outcome of one condition within a verdict."""

    name: str
    passed: bool
    reason: Optional[str] = None


@dataclass(frozen=True)
class VerificationVerdict:
    """Ordered results of one battery evaluation."""

    results: tuple[ConditionResult, ...] = ()

    @property
    def needs_remediation(self) -> bool:
        return any(not r.passed for r in self.results)

    @property
    def failures(self) -> tuple[ConditionResult, ...]:
        return tuple(r for r in self.results if not r.passed)

    def summary(self) -> str:
        if not self.needs_remediation:
            return "all checks passed"
        return "; ".join(r.reason or r.name for r in self.failures)
