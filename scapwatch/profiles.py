"""What to watch and what to poll on each supported Ubuntu release.

A profile pairs an SSG datastream (``ssg-ubuntuNNNN-ds.xml``) with the
filesystem watches and poll checks that detect drift from it. Each watch and
probe lists the baseline rules it guards.

Some rules cannot be monitored at all, since they only change at mount time:
/home, /tmp, /var, /var/log and /var/log/audit on separate partitions.

Watches named ``*-attrib-watch`` fire on permission and ownership changes
only; ``*-modify-watch`` fires on content changes.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Optional

from scapwatch.exceptions import StartupConfigurationError
from scapwatch.logging_config import get_logger
from scapwatch.modules.conditions.models import Condition, Polarity
from scapwatch.modules.conditions.service import (
    ConditionBattery,
    command_condition,
    package_condition,
    service_condition,
)
from scapwatch.modules.inventory.service import InventoryService
from scapwatch.supervisor.triggers import (
    DEFAULT_DEBOUNCE_MS,
    DEFAULT_POLL_INTERVAL,
    PathWatchSource,
    PollSource,
    TriggerSource,
)

logger = get_logger(__name__)

AUTO_PROFILE = "auto"
DEFAULT_PROFILE = "ubuntu2004"
POLL_SOURCE_LABEL = "service-poll"
_RELEASE_PATTERN = re.compile(r"ubuntu(\d{4})", re.IGNORECASE)


class ProbeKind(StrEnum):
    SERVICE = "service"
    PACKAGE = "package"
    COMMAND = "command"


@dataclass(frozen=True)
class WatchSpec:
    label: str
    root: str
    event_kinds: tuple[str, ...] = ("modified",)
    patterns: tuple[str, ...] = ()
    rules: tuple[str, ...] = ()


@dataclass(frozen=True)
class ProbeSpec:
    kind: ProbeKind
    target: str
    polarity: Polarity
    label: Optional[str] = None
    exact: bool = True
    command: tuple[str, ...] = ()
    needle: str = ""
    rules: tuple[str, ...] = ()


@dataclass(frozen=True)
class HostProfile:
    name: str
    description: str
    watches: tuple[WatchSpec, ...] = ()
    probes: tuple[ProbeSpec, ...] = field(default_factory=tuple)


# ── Shared building blocks ───────────────────────────────────────────

_LOG_WATCH = WatchSpec(
    label="var-log-attrib-watch",
    root="/var/log",
    event_kinds=("attrib",),
    rules=(
        "Ensure Log Files Are Owned By Appropriate Group",
        "Ensure Log Files Are Owned By Appropriate User",
        "Ensure System Log Files Have Correct Permissions",
    ),
)

_ETC_WATCH = WatchSpec(
    label="etc-attrib-watch",
    root="/etc",
    event_kinds=("attrib",),
    rules=(
        "Ensure Logrotate Runs Periodically",
        "Verify Group Who Owns group File",
        "Verify Group Who Owns gshadow File",
        "Verify Group Who Owns passwd File",
        "Verify Group Who Owns shadow File",
        "Verify User Who Owns group File",
        "Verify User Who Owns gshadow File",
        "Verify User Who Owns passwd File",
        "Verify User Who Owns shadow File",
        "Verify Permissions on group File",
        "Verify Permissions on gshadow File",
        "Verify Permissions on passwd File",
        "Verify Permissions on shadow File",
    ),
)

_BOOT_WATCH = WatchSpec(
    label="boot-attrib-watch",
    root="/boot",
    event_kinds=("attrib",),
    rules=("Verify that local System.map file (if exists) is readable only by root",),
)

_SYSCTL_WATCH = WatchSpec(
    label="sysctl-modify-watch",
    root="/etc/sysctl.d",
    rules=(
        "Enable Kernel Parameter to Enforce DAC on Hardlinks",
        "Enable Kernel Parameter to Enforce DAC on Symlinks",
        "Disable Core Dumps for SUID programs",
        "Enable Randomized Layout of Virtual Address Space",
    ),
)

_SSH_WATCH = WatchSpec(
    label="ssh-modify-watch",
    root="/etc/ssh",
    rules=(
        "Allow Only SSH Protocol 2",
        "Disable SSH Access via Empty Passwords",
        "Disable SSH Root Login",
        "Set SSH Idle Timeout Interval",
        "Set SSH Client Alive Count Max",
    ),
)

# /etc/passwd is usually replaced by rename, so watch its directory
_PASSWD_WATCH = WatchSpec(
    label="passwd-modify-watch",
    root="/etc",
    event_kinds=("added", "modified"),
    patterns=("passwd",),
    rules=("Ensure users own their home directories",),
)

_CORE_SERVICES = (
    ProbeSpec(
        ProbeKind.SERVICE, "auditd", Polarity.PRESENT,
        rules=("Ensure the audit Subsystem is Installed", "Enable auditd Service"),
    ),
    ProbeSpec(
        ProbeKind.SERVICE, "rsyslogd", Polarity.PRESENT, label="rsyslog",
        rules=("Ensure rsyslog is Installed", "Enable rsyslog Service"),
    ),
)

_CRON = ProbeSpec(
    ProbeKind.SERVICE, "cron", Polarity.PRESENT,
    rules=("Install the cron service", "Enable cron Service"),
)

_FORBIDDEN_PACKAGES = (
    ProbeSpec(
        ProbeKind.PACKAGE, "inetutils-telnetd", Polarity.ABSENT,
        rules=("Uninstall the inet-based telnet server",),
    ),
    ProbeSpec(ProbeKind.PACKAGE, "nis", Polarity.ABSENT, rules=("Uninstall the nis package",)),
    ProbeSpec(
        ProbeKind.PACKAGE, "ntpdate", Polarity.ABSENT, rules=("Uninstall the ntpdate package",),
    ),
    ProbeSpec(
        ProbeKind.PACKAGE, "telnetd-ssl", Polarity.ABSENT,
        rules=("Uninstall the ssl compliant telnet server",),
    ),
    ProbeSpec(
        ProbeKind.PACKAGE, "telnetd", Polarity.ABSENT, rules=("Uninstall the telnet server",),
    ),
)


PROFILES: dict[str, HostProfile] = {
    "ubuntu1804": HostProfile(
        name="ubuntu1804",
        description="Ubuntu 18.04 LTS (ssg-ubuntu1804-ds.xml)",
        watches=(_LOG_WATCH, _ETC_WATCH, _BOOT_WATCH, _SYSCTL_WATCH, _SSH_WATCH),
        probes=(
            *_CORE_SERVICES,
            _CRON,
            *_FORBIDDEN_PACKAGES,
            ProbeSpec(
                ProbeKind.SERVICE, "ntp", Polarity.PRESENT, label="NTP", exact=False,
                rules=("Install the ntp service", "Enable the NTP Daemon"),
            ),
            ProbeSpec(
                ProbeKind.COMMAND, "systemd-timesyncd", Polarity.PRESENT,
                label="systemd_timesyncd",
                command=("timedatectl",),
                needle="systemd-timesyncd.service active: yes",
                rules=("Enable systemd_timesyncd Service",),
            ),
        ),
    ),
    "ubuntu2004": HostProfile(
        name="ubuntu2004",
        description="Ubuntu 20.04 LTS (ssg-ubuntu2004-ds.xml)",
        watches=(_PASSWD_WATCH, _LOG_WATCH, _ETC_WATCH, _BOOT_WATCH, _SYSCTL_WATCH, _SSH_WATCH),
        probes=(
            *_CORE_SERVICES,
            ProbeSpec(
                ProbeKind.SERVICE, "apport", Polarity.ABSENT, exact=False,
                rules=("Disable Apport Service",),
            ),
            _CRON,
            ProbeSpec(
                ProbeKind.SERVICE, "systemd-timesyncd", Polarity.PRESENT,
                label="systemd_timesyncd",
                rules=(
                    "Install the systemd_timesyncd Service",
                    "Enable systemd_timesyncd Service",
                ),
            ),
            *_FORBIDDEN_PACKAGES,
        ),
    ),
}


def detect_profile(baseline: Path) -> Optional[str]:
    """Guess the host profile from an SSG datastream file name."""
    match = _RELEASE_PATTERN.search(Path(baseline).name)
    if match is None:
        return None
    name = f"ubuntu{match.group(1)}"
    return name if name in PROFILES else None


def get_profile(name: str, baseline: Optional[Path] = None) -> HostProfile:
    """Resolve a profile name (or ``auto``) to a HostProfile."""
    if name == AUTO_PROFILE:
        detected = detect_profile(baseline) if baseline is not None else None
        if detected is None:
            logger.warning("host_profile_not_detected", fallback=DEFAULT_PROFILE)
            detected = DEFAULT_PROFILE
        name = detected
    try:
        return PROFILES[name]
    except KeyError:
        raise StartupConfigurationError(
            f"Unknown host profile '{name}' (choose from: {', '.join(sorted(PROFILES))}, auto)",
            context={"host_profile": name},
        ) from None


# ── Builders ─────────────────────────────────────────────────────────


def build_condition(probe: ProbeSpec, inventory: InventoryService) -> Condition:
    if probe.kind is ProbeKind.SERVICE:
        return service_condition(
            inventory,
            probe.target,
            label=probe.label,
            polarity=probe.polarity,
            exact=probe.exact,
            rules=probe.rules,
        )
    if probe.kind is ProbeKind.PACKAGE:
        return package_condition(inventory, probe.target, polarity=probe.polarity, rules=probe.rules)
    return command_condition(
        inventory,
        name=f"command:{probe.label or probe.target}",
        command=probe.command,
        needle=probe.needle,
        subject=f"Service {probe.label or probe.target}",
        polarity=probe.polarity,
        rules=probe.rules,
    )


def build_battery(profile: HostProfile, inventory: InventoryService) -> ConditionBattery:
    return ConditionBattery(build_condition(probe, inventory) for probe in profile.probes)


def build_sources(
    profile: HostProfile,
    inventory: InventoryService,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
    debounce_ms: int = DEFAULT_DEBOUNCE_MS,
) -> list[TriggerSource]:
    """One poll source plus one path-watch source per watched root."""
    battery = build_battery(profile, inventory)
    sources: list[TriggerSource] = [
        PollSource(
            POLL_SOURCE_LABEL,
            battery,
            interval=poll_interval,
            rules=tuple(rule for probe in profile.probes for rule in probe.rules),
        )
    ]
    for watch in profile.watches:
        sources.append(
            PathWatchSource(
                watch.label,
                Path(watch.root),
                event_kinds=watch.event_kinds,
                patterns=watch.patterns,
                debounce_ms=debounce_ms,
                rules=watch.rules,
            )
        )
    return sources
