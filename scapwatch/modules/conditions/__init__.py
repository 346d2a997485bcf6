"""Condition battery for poll-based trigger sources."""

from scapwatch.modules.conditions.models import (
    Condition,
    ConditionResult,
    Polarity,
    VerificationVerdict,
)
from scapwatch.modules.conditions.service import (
    ConditionBattery,
    command_condition,
    package_condition,
    service_condition,
)

__all__ = [
    "Condition",
    "ConditionBattery",
    "ConditionResult",
    "Polarity",
    "VerificationVerdict",
    "command_condition",
    "package_condition",
    "service_condition",
]
