"""
Network reachability monitor.

Periodically opens a TCP connection to a well-known endpoint and reports
online/offline transitions to a callback.
"""

import asyncio
import contextlib
from typing import Callable, Optional

import structlog

logger = structlog.get_logger(__name__)


async def probe(host: str, port: int, timeout: float) -> bool:
    """Return True if a TCP connection to host:port succeeds within timeout."""
    try:
        _, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout=timeout)
    except (OSError, asyncio.TimeoutError):
        return False
    writer.close()
    with contextlib.suppress(OSError):
        await writer.wait_closed()
    return True


class NetworkMonitor:

    def __init__(
        self,
        on_change: Callable[[bool], None],
        host: str = "8.8.8.8",
        port: int = 53,
        interval_sec: float = 5.0,
        timeout_sec: float = 2.0,
    ):
        self.on_change = on_change
        self.host = host
        self.port = port
        self.interval_sec = interval_sec
        self.timeout_sec = timeout_sec
        self._online: Optional[bool] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def online(self) -> Optional[bool]:
        return self._online

    async def check(self) -> bool:
        """Probe once and report a transition if the state changed."""
        online = await probe(self.host, self.port, self.timeout_sec)
        if online != self._online:
            self._online = online
            logger.info("Network restored" if online else "Network lost")
            self.on_change(online)
        return online

    async def _poll(self) -> None:
        while True:
            await self.check()
            await asyncio.sleep(self.interval_sec)

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._poll(), name="network-monitor")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
