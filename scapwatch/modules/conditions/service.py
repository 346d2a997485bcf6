"""Evaluate independent checks into one verification verdict.

Conditions are evaluated in declaration order and never see each other's
results. A probe that raises counts as a failed check, so a broken query
leads to remediation rather than silence.
"""

from __future__ import annotations

from typing import Iterable, Sequence

from scapwatch.exceptions import CommandCancelled
from scapwatch.logging_config import get_logger
from scapwatch.modules.conditions.models import (
    Condition,
    ConditionResult,
    Polarity,
    VerificationVerdict,
)
from scapwatch.modules.inventory.service import InventoryService

logger = get_logger(__name__)


class ConditionBattery:
    """An ordered list of independent conditions."""

    def __init__(self, conditions: Iterable[Condition]) -> None:
        self._conditions: tuple[Condition, ...] = tuple(conditions)
        seen: set[str] = set()
        for condition in self._conditions:
            if condition.name in seen:
                raise ValueError(f"Duplicate condition name: {condition.name!r}")
            seen.add(condition.name)

    @property
    def conditions(self) -> tuple[Condition, ...]:
        return self._conditions

    def __len__(self) -> int:
        return len(self._conditions)

    def evaluate(self) -> VerificationVerdict:
        """Run every condition and aggregate the results."""
        return VerificationVerdict(tuple(self._check(c) for c in self._conditions))

    @staticmethod
    def _check(condition: Condition) -> ConditionResult:
        try:
            present = bool(condition.probe())
        except CommandCancelled:
            raise
        except Exception as exc:
            logger.warning("condition_query_failed", condition=condition.name, error=str(exc))
            return ConditionResult(
                condition.name, False, f"{condition.subject} could not be checked: {exc}"
            )
        if condition.passes(present):
            return ConditionResult(condition.name, True)
        return ConditionResult(condition.name, False, condition.violation())


# ── Condition factories ──────────────────────────────────────────────


def service_condition(
    inventory: InventoryService,
    process: str,
    label: str | None = None,
    polarity: Polarity = Polarity.PRESENT,
    exact: bool = True,
    rules: Sequence[str] = (),
) -> Condition:
    """A check on whether a daemon/process is running."""
    label = label or process
    return Condition(
        name=f"service:{label}",
        subject=f"Service {label}",
        probe=lambda: inventory.process_running(process, exact=exact),
        polarity=polarity,
        rules=tuple(rules),
    )


def package_condition(
    inventory: InventoryService,
    package: str,
    polarity: Polarity = Polarity.ABSENT,
    rules: Sequence[str] = (),
) -> Condition:
    """A check on whether a package is installed."""
    return Condition(
        name=f"package:{package}",
        subject=f"Package {package}",
        probe=lambda: inventory.package_installed(package),
        polarity=polarity,
        rules=tuple(rules),
    )


def command_condition(
    inventory: InventoryService,
    name: str,
    command: Sequence[str],
    needle: str,
    subject: str,
    polarity: Polarity = Polarity.PRESENT,
    rules: Sequence[str] = (),
) -> Condition:
    """A check on whether a status command reports ``needle``."""
    args = tuple(command)
    return Condition(
        name=name,
        subject=subject,
        probe=lambda: inventory.command_reports(args, needle),
        polarity=polarity,
        rules=tuple(rules),
    )
