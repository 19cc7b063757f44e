"""Dispatcher: consumes the command pipe and runs deploy scripts.

For every ``<action> <project>`` line read from the pipe the dispatcher runs
``<scripts_dir>/<project>/<action>`` and records the outcome in the
deployment history. Scripts run one at a time in arrival order.
"""

from __future__ import annotations

import os
import signal
import stat
import subprocess
import threading
import time
from datetime import datetime, timezone
from pathlib import Path
from types import FrameType
from typing import Iterable, Optional

from .commands import Command, CommandParseError
from .config import DeployConfig
from .errors import ConfigError
from .history import DeploymentHistory
from .logging import get_logger
from .metrics import DeployMetrics
from .models import DeploymentRecord, RunStatus

logger = get_logger(__name__)


class DispatcherInterrupted(Exception):
    """Raised from the signal handler to leave a blocking pipe read."""


class ScriptRunner:
    """Reads commands from the pipe and executes the matching scripts."""

    def __init__(
        self,
        config: DeployConfig,
        history: Optional[DeploymentHistory] = None,
        metrics: Optional[DeployMetrics] = None,
    ):
        self.pipe = config.dispatch.pipe
        self.scripts_dir = config.dispatch.scripts_dir
        self.script_timeout = config.dispatch.script_timeout_seconds
        self.projects = config.projects
        self.history = history or DeploymentHistory(config.history_path)
        self.metrics = metrics or DeployMetrics()
        self._stop = threading.Event()
        self._busy = False

    def script_path(self, command: Command) -> Path:
        return self.scripts_dir / command.project / command.action.value

    def ensure_pipe(self) -> None:
        """Create the command pipe as a FIFO if it does not exist yet.

        Raises:
            ConfigError: If the path exists but is not a FIFO
        """
        try:
            mode = os.stat(self.pipe).st_mode
        except FileNotFoundError:
            self.pipe.parent.mkdir(parents=True, exist_ok=True)
            os.mkfifo(self.pipe, 0o600)
            logger.info("created command pipe", pipe=str(self.pipe))
            return
        if not stat.S_ISFIFO(mode):
            raise ConfigError(
                f"command pipe {self.pipe} exists but is not a FIFO",
                details={"pipe": str(self.pipe)},
            )

    def handle_line(self, line: str) -> Optional[DeploymentRecord]:
        """Parse one pipe line and run its script.

        Returns:
            The recorded run, or None when the line was rejected
        """
        line = line.rstrip("\r\n")
        logger.info("got line", line=line)

        try:
            command = Command.parse(line)
        except CommandParseError as exc:
            logger.error("unable to parse command", line=line, reason=exc.reason)
            return None
        logger.info("got command", command=str(command))

        if command.project not in self.projects:
            logger.error("received command for unconfigured project", project=command.project)
            return None

        return self.execute(command)

    def execute(self, command: Command) -> DeploymentRecord:
        path = self.script_path(command)
        logger.info("executing command", path=str(path))

        started_at = datetime.now(timezone.utc)
        started = time.perf_counter()
        returncode: Optional[int] = None
        error: Optional[str] = None
        try:
            completed = subprocess.run(
                [str(path)],
                cwd=path.parent,
                timeout=self.script_timeout,
                check=False,
            )
        except subprocess.TimeoutExpired:
            status = RunStatus.TIMEOUT
            error = f"script exceeded {self.script_timeout:g}s"
            logger.error("command timed out", path=str(path), timeout_seconds=self.script_timeout)
        except OSError as exc:
            status = RunStatus.NOT_STARTED
            error = str(exc)
            logger.error("unable to execute command", path=str(path), error=error)
        else:
            returncode = completed.returncode
            status = RunStatus.SUCCEEDED if returncode == 0 else RunStatus.FAILED
            logger.info("command completed", path=str(path), returncode=returncode)

        duration_ms = (time.perf_counter() - started) * 1000
        record = DeploymentRecord(
            project=command.project,
            action=command.action,
            status=status,
            returncode=returncode,
            started_at=started_at,
            duration_ms=round(duration_ms, 3),
            error=error,
        )
        self.metrics.record_script_run(command.project, status.value, duration_ms)
        self._record(record)
        return record

    def _record(self, record: DeploymentRecord) -> None:
        try:
            self.history.append(record)
        except OSError as exc:
            # Losing a history entry must not stop the dispatcher.
            logger.error(
                "unable to record deployment",
                project=record.project,
                path=str(self.history.path),
                error=str(exc),
            )

    def consume(self, stream: Iterable[bytes]) -> int:
        """Handle every line of ``stream``; returns the number of lines handled."""
        handled = 0
        for raw in stream:
            if self._stop.is_set():
                break
            try:
                line = raw.decode("utf-8")
            except UnicodeDecodeError as exc:
                logger.error("error reading from pipe", error=str(exc))
                continue
            if not line.strip():
                continue
            self._busy = True
            try:
                self.handle_line(line)
            finally:
                self._busy = False
            handled += 1
            if self._stop.is_set():
                break
        return handled

    def run_once(self) -> int:
        """Open the pipe and consume it until every writer has closed it."""
        logger.info("opening pipe", pipe=str(self.pipe))
        with self.pipe.open("rb") as fh:
            return self.consume(fh)

    def run_forever(self) -> None:
        """Consume the pipe until :meth:`stop` is called.

        Opening a FIFO for reading blocks until a writer shows up, so a plain
        :meth:`stop` takes effect once the next writer has been served. Use
        :meth:`handle_signal` to stop from a signal without waiting.
        """
        self.ensure_pipe()
        logger.info(
            "dispatcher started",
            pipe=str(self.pipe),
            scripts_dir=str(self.scripts_dir),
            projects=sorted(self.projects),
        )
        try:
            while not self._stop.is_set():
                self.run_once()
        except DispatcherInterrupted:
            pass
        finally:
            logger.info("dispatcher stopped", **self.metrics.summary())

    def stop(self) -> None:
        self._stop.set()

    def handle_signal(self, signum: int, frame: Optional[FrameType]) -> None:
        """SIGTERM handler: let the running script finish, then stop.

        When no script is running the dispatcher is blocked on the pipe, so
        the wait is interrupted right away.
        """
        logger.info("shutdown requested", signal=signal.Signals(signum).name, busy=self._busy)
        self.stop()
        if not self._busy:
            raise DispatcherInterrupted()
