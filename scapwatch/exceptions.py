"""scapwatch — Exception hierarchy.

Hierarchy:
    ScapwatchError
    ├── StartupConfigurationError
    ├── InventoryQueryError
    ├── RemediationError
    ├── PublishError
    ├── CommandTimeout
    └── CommandCancelled
"""

from __future__ import annotations

from typing import Any, Optional, Sequence


class ScapwatchError(Exception):
    """Base exception for all scapwatch errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context: dict[str, Any] = context or {}

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context})"


class StartupConfigurationError(ScapwatchError):
    """Bad arguments or an unusable path. Monitoring never starts."""


class InventoryQueryError(ScapwatchError):
    """A process/package/service query could not be executed."""

    def __init__(self, subject: str, reason: str) -> None:
        super().__init__(
            f"Inventory query for '{subject}' failed: {reason}",
            context={"subject": subject, "reason": reason},
        )
        self.subject = subject
        self.reason = reason


class RemediationError(ScapwatchError):
    """The scan-and-fix engine failed or produced no report."""

    def __init__(
        self,
        reason: str,
        exit_code: Optional[int] = None,
        run: Any = None,
    ) -> None:
        super().__init__(
            f"Remediation failed: {reason}",
            context={"reason": reason, "exit_code": exit_code},
        )
        self.reason = reason
        self.exit_code = exit_code
        self.run = run


class PublishError(ScapwatchError):
    """One step of the place/stage/commit/push sequence failed."""

    def __init__(self, step: str, artifact: str, detail: str) -> None:
        super().__init__(
            f"Publishing {artifact} failed at step '{step}': {detail}",
            context={"step": step, "artifact": artifact, "detail": detail},
        )
        self.step = step
        self.artifact = artifact
        self.detail = detail


class CommandTimeout(ScapwatchError):
    """An external command ran longer than its timeout and was killed."""

    def __init__(self, args: Sequence[str], timeout: float) -> None:
        super().__init__(
            f"Command '{args[0]}' timed out after {timeout:g}s",
            context={"args": list(args), "timeout": timeout},
        )
        self.args_list = list(args)
        self.timeout = timeout


class CommandCancelled(ScapwatchError):
    """The command runner was shut down while (or before) the command ran."""

    def __init__(self, args: Sequence[str]) -> None:
        super().__init__(
            f"Command '{args[0]}' cancelled by shutdown",
            context={"args": list(args)},
        )
        self.args_list = list(args)
