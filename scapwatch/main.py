"""scapwatch application wiring.

Builds the whole object graph from settings and command-line arguments:

    CommandRunner ─┬─ InventoryService ── condition battery ── PollSource
                   ├─ RemediationInvoker (ReportNamer)
                   └─ EvidencePublisher (optional)
    RemediationGate ── one OrchestratorLoop per trigger source
    WatcherSupervisor ── owns the loops' threads and the shutdown signal

Environment:
    SCAPWATCH_ENV               # development/production (default: development)
    SCAPWATCH_LOG_LEVEL         # DEBUG/INFO/WARNING/ERROR (default: INFO)
"""

from __future__ import annotations

import signal
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from scapwatch.config import Settings, get_settings
from scapwatch.exceptions import StartupConfigurationError
from scapwatch.logging_config import get_logger
from scapwatch.modules.evidence.service import EvidencePublisher
from scapwatch.modules.inventory.service import InventoryService
from scapwatch.modules.remediation.service import RemediationInvoker, ReportNamer
from scapwatch.profiles import HostProfile, build_sources, get_profile
from scapwatch.runner import CommandRunner
from scapwatch.supervisor.gate import RemediationGate
from scapwatch.supervisor.loop import OrchestratorLoop
from scapwatch.supervisor.monitor import WatcherSupervisor
from scapwatch.supervisor.triggers import describe_source

logger = get_logger(__name__)


@dataclass
class Application:
    """Everything ``build_application`` wired together."""

    settings: Settings
    profile: HostProfile
    baseline: Path
    runner: CommandRunner
    inventory: InventoryService
    invoker: RemediationInvoker
    publisher: Optional[EvidencePublisher]
    gate: RemediationGate
    supervisor: WatcherSupervisor


def validate_arguments(
    baseline: Path,
    repo: Optional[Path] = None,
    branch: Optional[str] = None,
) -> None:
    """Reject unusable command-line arguments before anything starts."""
    if repo is not None and not branch:
        raise StartupConfigurationError(
            "A repository path requires a branch name", context={"repo": str(repo)}
        )
    if not baseline.is_file():
        raise StartupConfigurationError(
            f"Baseline file not found: {baseline}", context={"baseline": str(baseline)}
        )
    if repo is None:
        return
    if not repo.is_dir():
        raise StartupConfigurationError(
            f"Repository path is not a directory: {repo}", context={"repo": str(repo)}
        )
    if not (repo / ".git").exists():
        raise StartupConfigurationError(
            f"Not a git working tree: {repo}", context={"repo": str(repo)}
        )


def build_application(
    baseline: Path,
    repo: Optional[Path] = None,
    branch: Optional[str] = None,
    settings: Optional[Settings] = None,
    host_profile: Optional[str] = None,
    scan_profile: Optional[str] = None,
) -> Application:
    """Wire every component. Raises ``StartupConfigurationError`` on bad input."""
    settings = settings or get_settings()
    baseline = Path(baseline).expanduser().resolve()
    repo = Path(repo).expanduser().resolve() if repo is not None else None
    validate_arguments(baseline, repo, branch)

    profile = get_profile(host_profile or settings.host_profile, baseline)
    scan_profile = scan_profile or settings.scan_profile

    runner = CommandRunner(grace_seconds=settings.shutdown_grace_seconds)
    inventory = InventoryService(runner)

    report_dir = settings.report_path.resolve()
    namer = ReportNamer(report_dir, also_check=(repo,) if repo is not None else ())
    invoker = RemediationInvoker(
        runner,
        report_dir,
        oscap_binary=settings.oscap_binary,
        timeout=settings.remediation_timeout_or_none,
        ok_exit_codes=settings.ok_exit_codes,
        namer=namer,
    )

    publisher: Optional[EvidencePublisher] = None
    if repo is not None and branch:
        publisher = EvidencePublisher(
            runner,
            repo,
            branch,
            remote=settings.git_remote,
            git_binary=settings.git_binary,
            timeout=settings.git_timeout_or_none,
        )

    gate = RemediationGate(coalesce=settings.coalesce_triggers)
    sources = build_sources(
        profile,
        inventory,
        poll_interval=settings.poll_interval_seconds,
        debounce_ms=settings.watch_debounce_ms,
    )
    loops = [
        OrchestratorLoop(
            source,
            invoker,
            gate,
            baseline,
            profile=scan_profile,
            publisher=publisher,
            retry_delay=settings.source_retry_delay,
        )
        for source in sources
    ]
    supervisor = WatcherSupervisor(
        loops, runner=runner, shutdown_grace=settings.shutdown_grace_seconds
    )

    logger.info(
        "application_built",
        host_profile=profile.name,
        scan_profile=scan_profile,
        baseline=str(baseline),
        report_dir=str(report_dir),
        publishing=publisher is not None,
        sources=[describe_source(s)["label"] for s in sources],
    )
    return Application(
        settings=settings,
        profile=profile,
        baseline=baseline,
        runner=runner,
        inventory=inventory,
        invoker=invoker,
        publisher=publisher,
        gate=gate,
        supervisor=supervisor,
    )


def install_signal_handlers(supervisor: WatcherSupervisor) -> None:
    """Route SIGINT/SIGTERM to a graceful supervisor shutdown."""

    def _handler(signum, frame):
        logger.info("signal_received", signal=signal.Signals(signum).name)
        supervisor.shutdown()

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)


def run(app: Application) -> None:
    """Monitor until a signal arrives (blocking)."""
    install_signal_handlers(app.supervisor)
    app.supervisor.run_forever()
