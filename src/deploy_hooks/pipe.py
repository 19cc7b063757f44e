"""Asynchronous writer for the command pipe shared with the dispatcher."""

from __future__ import annotations

import asyncio
import errno
import os
import time
from pathlib import Path
from typing import Optional

from .commands import Command
from .errors import DispatchError
from .logging import get_logger
from .metrics import DeployMetrics

logger = get_logger(__name__)


class PipeWriter:
    """Appends commands to the command pipe.

    The pipe is normally a FIFO read by the dispatcher, but a plain file
    works as well. Opening a FIFO for writing has no reader to talk to until
    the dispatcher is up, so the open is retried without blocking the event
    loop until ``timeout_seconds`` runs out.
    """

    def __init__(
        self,
        pipe: Path,
        timeout_seconds: float = 1.0,
        metrics: Optional[DeployMetrics] = None,
        poll_interval: float = 0.02,
    ):
        self.pipe = Path(pipe)
        self.timeout_seconds = timeout_seconds
        self.metrics = metrics
        self.poll_interval = poll_interval
        self._lock = asyncio.Lock()

    async def dispatch(self, command: Command) -> None:
        """Write ``command`` as one line to the pipe.

        Raises:
            DispatchError: ``DISPATCH_TIMEOUT`` if the pipe did not accept the
                line in time, ``BAD_PIPE`` on any other I/O failure
        """
        logger.info("dispatching", command=str(command), pipe=str(self.pipe))
        started = time.perf_counter()
        status = "ok"
        try:
            await asyncio.wait_for(
                self._write(command.to_line().encode("utf-8")),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            status = "timeout"
            logger.error(
                "dispatch timed out",
                command=str(command),
                timeout_seconds=self.timeout_seconds,
            )
            raise DispatchError.timeout(self.timeout_seconds) from None
        except OSError as exc:
            status = "bad_pipe"
            logger.error("unable to write to pipe", pipe=str(self.pipe), error=str(exc))
            raise DispatchError.bad_pipe(exc) from exc
        finally:
            if self.metrics is not None:
                self.metrics.record_dispatch(status, (time.perf_counter() - started) * 1000)

        logger.info("dispatched", command=str(command))

    async def _write(self, data: bytes) -> None:
        async with self._lock:
            fd = await self._open()
            try:
                view = memoryview(data)
                while view:
                    try:
                        written = os.write(fd, view)
                    except BlockingIOError:
                        # FIFO buffer full: the dispatcher is busy running a script.
                        await asyncio.sleep(self.poll_interval)
                        continue
                    view = view[written:]
            finally:
                os.close(fd)

    async def _open(self) -> int:
        flags = os.O_WRONLY | os.O_APPEND | os.O_NONBLOCK
        while True:
            try:
                return os.open(self.pipe, flags)
            except OSError as exc:
                # ENXIO: a FIFO without a reader yet.
                if exc.errno != errno.ENXIO:
                    raise
            await asyncio.sleep(self.poll_interval)
