"""Launches and tracks every external command.

All external tools (oscap, git, dpkg-query, timedatectl) run through a single
``CommandRunner`` so that a shutdown can terminate whatever is in flight:

- each command starts in its own session (process group)
- in-flight processes are tracked until they exit
- ``terminate_all()`` sends SIGTERM to every group, escalates to SIGKILL after
  a grace period, and refuses any further command
"""

from __future__ import annotations

import os
import signal
import subprocess
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from scapwatch.exceptions import CommandCancelled, CommandTimeout
from scapwatch.logging_config import get_logger

logger = get_logger(__name__)

OUTPUT_TAIL_CHARS = 500


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one finished external command."""

    args: tuple[str, ...]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def tail(self, limit: int = OUTPUT_TAIL_CHARS) -> str:
        """Last ``limit`` characters of stderr, or stdout when stderr is empty."""
        text = (self.stderr or self.stdout).strip()
        return text[-limit:]


class CommandRunner:
    """Runs external commands synchronously and kills them on shutdown."""

    def __init__(self, grace_seconds: float = 10.0) -> None:
        self._grace = grace_seconds
        self._active: set[subprocess.Popen] = set()
        self._lock = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def active_count(self) -> int:
        with self._lock:
            return len(self._active)

    def run(
        self,
        args: Sequence[str],
        cwd: Optional[Path] = None,
        timeout: Optional[float] = None,
    ) -> CommandResult:
        """Run ``args`` to completion and return its result.

        Raises ``OSError`` when the executable cannot be launched,
        ``CommandTimeout`` when ``timeout`` elapses and ``CommandCancelled``
        when the runner is shut down before or during the command.
        """
        if not args:
            raise ValueError("empty command")
        argv = tuple(str(a) for a in args)

        with self._lock:
            if self._closed:
                raise CommandCancelled(argv)
            proc = subprocess.Popen(
                argv,
                cwd=str(cwd) if cwd else None,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                stdin=subprocess.DEVNULL,
                text=True,
                start_new_session=True,
            )
            self._active.add(proc)

        logger.debug("command_started", command=argv[0], pid=proc.pid)
        try:
            stdout, stderr = proc.communicate(timeout=timeout)
        except subprocess.TimeoutExpired:
            logger.warning("command_timeout", command=argv[0], pid=proc.pid, timeout=timeout)
            self._kill(proc)
            proc.communicate()
            raise CommandTimeout(argv, timeout or 0)
        finally:
            with self._lock:
                self._active.discard(proc)

        if self._closed:
            raise CommandCancelled(argv)

        logger.debug("command_finished", command=argv[0], returncode=proc.returncode)
        return CommandResult(argv, proc.returncode, stdout or "", stderr or "")

    def terminate_all(self) -> None:
        """Refuse new commands and kill every in-flight process group."""
        with self._lock:
            self._closed = True
            active = list(self._active)

        for proc in active:
            logger.info("terminating_command", pid=proc.pid)
            self._kill(proc)

    def _kill(self, proc: subprocess.Popen) -> None:
        """SIGTERM the process group, SIGKILL it if it outlives the grace period."""
        if proc.poll() is not None:
            return
        pgid = None
        try:
            pgid = os.getpgid(proc.pid)
        except OSError:
            pass
        if pgid:
            try:
                os.killpg(pgid, signal.SIGTERM)
            except OSError:
                pass
        else:
            proc.terminate()
        try:
            proc.wait(timeout=self._grace)
        except subprocess.TimeoutExpired:
            logger.warning("command_kill_timeout", pid=proc.pid)
            if pgid:
                try:
                    os.killpg(pgid, signal.SIGKILL)
                except OSError:
                    pass
            proc.kill()
