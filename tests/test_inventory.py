"""Tests for process and package inventory queries."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import psutil
import pytest

from scapwatch.exceptions import CommandCancelled, CommandTimeout, InventoryQueryError
from scapwatch.modules.inventory.service import InventoryService

PROCESS_ITER = "scapwatch.modules.inventory.service.psutil.process_iter"


def _procs(*names):
    procs = []
    for name in names:
        proc = MagicMock()
        proc.info = {"name": name}
        procs.append(proc)
    return procs


# ── Processes ─────────────────────────────────────────────────────────

class TestProcessRunning:

    def test_exact_match(self, fake_runner) -> None:
        inventory = InventoryService(fake_runner)
        with patch(PROCESS_ITER, return_value=_procs("systemd", "auditd", "cron")):
            assert inventory.process_running("auditd")
            assert not inventory.process_running("rsyslogd")

    def test_exact_match_rejects_substring(self, fake_runner) -> None:
        inventory = InventoryService(fake_runner)
        with patch(PROCESS_ITER, return_value=_procs("ntpd")):
            assert not inventory.process_running("ntp")
            assert inventory.process_running("ntp", exact=False)

    def test_truncated_kernel_name_matches(self, fake_runner) -> None:
        """The kernel reports at most 15 characters of a process name."""
        inventory = InventoryService(fake_runner)
        with patch(PROCESS_ITER, return_value=_procs("systemd-timesyn")):
            assert inventory.process_running("systemd-timesyncd")

    def test_nameless_processes_ignored(self, fake_runner) -> None:
        inventory = InventoryService(fake_runner)
        with patch(PROCESS_ITER, return_value=_procs(None, "")):
            assert not inventory.process_running("apport", exact=False)

    def test_process_table_error_raises(self, fake_runner) -> None:
        inventory = InventoryService(fake_runner)
        with patch(PROCESS_ITER, side_effect=psutil.AccessDenied()):
            with pytest.raises(InventoryQueryError) as exc_info:
                inventory.process_running("auditd")
        assert exc_info.value.subject == "process auditd"


# ── Packages ──────────────────────────────────────────────────────────

class TestPackageInstalled:

    def test_installed(self, fake_runner) -> None:
        fake_runner.on("dpkg-query", stdout="install ok installed")
        assert InventoryService(fake_runner).package_installed("nis")
        assert fake_runner.calls == [("dpkg-query", "-W", "--showformat=${Status}", "nis")]

    def test_removed_but_configured_is_not_installed(self, fake_runner) -> None:
        fake_runner.on("dpkg-query", stdout="deinstall ok config-files")
        assert not InventoryService(fake_runner).package_installed("nis")

    def test_unknown_package(self, fake_runner) -> None:
        fake_runner.on("dpkg-query", returncode=1, stderr="no packages found matching nis")
        assert not InventoryService(fake_runner).package_installed("nis")

    def test_query_failure_raises(self, fake_runner) -> None:
        fake_runner.on("dpkg-query", returncode=2, stderr="database locked")
        with pytest.raises(InventoryQueryError) as exc_info:
            InventoryService(fake_runner).package_installed("nis")
        assert "database locked" in exc_info.value.reason

    def test_missing_dpkg_raises(self, fake_runner) -> None:
        fake_runner.on("dpkg-query", raises=FileNotFoundError("dpkg-query"))
        with pytest.raises(InventoryQueryError):
            InventoryService(fake_runner).package_installed("nis")

    def test_timeout_raises(self, fake_runner) -> None:
        fake_runner.on("dpkg-query", raises=CommandTimeout(["dpkg-query"], 30))
        with pytest.raises(InventoryQueryError):
            InventoryService(fake_runner).package_installed("nis")

    def test_cancellation_propagates(self, fake_runner) -> None:
        fake_runner.on("dpkg-query", raises=CommandCancelled(["dpkg-query"]))
        with pytest.raises(CommandCancelled):
            InventoryService(fake_runner).package_installed("nis")

    def test_custom_dpkg_query_binary(self, fake_runner) -> None:
        fake_runner.on("/usr/bin/dpkg-query", stdout="install ok installed")
        inventory = InventoryService(fake_runner, dpkg_query="/usr/bin/dpkg-query")
        assert inventory.package_installed("telnetd")


# ── Commands ──────────────────────────────────────────────────────────

TIMEDATECTL = """\
                      Local time: Mon 2021-03-01 10:00:00 UTC
                  Universal time: Mon 2021-03-01 10:00:00 UTC
systemd-timesyncd.service active: yes
                 RTC in local TZ: no
"""


class TestCommandReports:

    def test_needle_found(self, fake_runner) -> None:
        fake_runner.on("timedatectl", stdout=TIMEDATECTL)
        inventory = InventoryService(fake_runner)
        assert inventory.command_reports(["timedatectl"], "systemd-timesyncd.service active: yes")

    def test_needle_missing(self, fake_runner) -> None:
        fake_runner.on("timedatectl", stdout=TIMEDATECTL.replace("yes", "no"))
        inventory = InventoryService(fake_runner)
        assert not inventory.command_reports(
            ["timedatectl"], "systemd-timesyncd.service active: yes"
        )

    def test_command_failure_raises(self, fake_runner) -> None:
        fake_runner.on("timedatectl", returncode=1, stderr="Failed to connect to bus")
        with pytest.raises(InventoryQueryError) as exc_info:
            InventoryService(fake_runner).command_reports(["timedatectl"], "x")
        assert exc_info.value.subject == "timedatectl"
