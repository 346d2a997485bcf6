"""Inventory queries: is a process running, is a package installed?

Process lookups scan the process table through psutil. Package lookups ask
the dpkg database through ``dpkg-query``. Anything that prevents a query from
giving an answer raises ``InventoryQueryError``; callers treat that as a
failed check.
"""

from __future__ import annotations

from typing import Optional, Sequence

import psutil

from scapwatch.exceptions import CommandCancelled, CommandTimeout, InventoryQueryError
from scapwatch.logging_config import get_logger
from scapwatch.runner import CommandResult, CommandRunner

logger = get_logger(__name__)

COMM_NAME_LIMIT = 15  # kernel truncates /proc/<pid>/comm to 15 chars
QUERY_TIMEOUT = 30
INSTALLED_STATUS = "install ok installed"


class InventoryService:
    """Answers present/absent questions about the live system."""

    def __init__(
        self,
        runner: Optional[CommandRunner] = None,
        dpkg_query: str = "dpkg-query",
        timeout: float = QUERY_TIMEOUT,
    ) -> None:
        self._runner = runner or CommandRunner()
        self._dpkg_query = dpkg_query
        self._timeout = timeout

    # ── Processes ─────────────────────────────────────────────────────

    def process_running(self, name: str, exact: bool = True) -> bool:
        """Check whether a process called ``name`` is running.

        With ``exact`` the process name must equal ``name`` (or its 15-char
        kernel truncation); otherwise any process whose name contains
        ``name`` counts.
        """
        try:
            for proc in psutil.process_iter(["name"]):
                proc_name = proc.info.get("name") or ""
                if self._name_matches(proc_name, name, exact):
                    return True
        except (psutil.Error, OSError) as exc:
            raise InventoryQueryError(f"process {name}", str(exc)) from exc
        return False

    @staticmethod
    def _name_matches(proc_name: str, wanted: str, exact: bool) -> bool:
        if not proc_name:
            return False
        if not exact:
            return wanted in proc_name
        return proc_name == wanted or proc_name == wanted[:COMM_NAME_LIMIT]

    # ── Packages ──────────────────────────────────────────────────────

    def package_installed(self, name: str) -> bool:
        """Check the dpkg database for an installed package."""
        result = self._query(
            f"package {name}",
            [self._dpkg_query, "-W", "--showformat=${Status}", name],
        )
        if result.returncode == 1:
            # dpkg-query exits 1 for packages it has never heard of
            return False
        if not result.ok:
            raise InventoryQueryError(
                f"package {name}",
                f"{self._dpkg_query} exited {result.returncode}: {result.tail(200)}",
            )
        status = result.stdout.strip()
        logger.debug("package_status", package=name, status=status)
        return status == INSTALLED_STATUS

    # ── Commands ──────────────────────────────────────────────────────

    def command_reports(self, args: Sequence[str], needle: str) -> bool:
        """Run ``args`` and check whether its output contains ``needle``."""
        subject = " ".join(args)
        result = self._query(subject, args)
        if not result.ok:
            raise InventoryQueryError(
                subject, f"exited {result.returncode}: {result.tail(200)}"
            )
        return needle in result.stdout

    def _query(self, subject: str, args: Sequence[str]) -> CommandResult:
        try:
            return self._runner.run(args, timeout=self._timeout)
        except CommandCancelled:
            raise
        except CommandTimeout as exc:
            raise InventoryQueryError(subject, exc.message) from exc
        except OSError as exc:
            raise InventoryQueryError(subject, str(exc)) from exc
