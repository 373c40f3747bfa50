"""
Battery status source backed by psutil.

get_battery_status always answers from the last known snapshot, so a failed
or unsupported probe never fails the tool call.
"""

import asyncio
import contextlib
from dataclasses import dataclass
from typing import Optional

import psutil
import structlog

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class BatterySnapshot:
    level: float = 1.0          # 0.0 - 1.0
    charging: bool = True
    supported: bool = False


class BatteryMonitor:
    """Caches the most recent battery reading and refreshes it periodically."""

    def __init__(self, interval_sec: float = 60.0):
        self.interval_sec = interval_sec
        self._snapshot = BatterySnapshot()
        self._task: Optional[asyncio.Task] = None

    def snapshot(self) -> BatterySnapshot:
        return self._snapshot

    def refresh(self) -> BatterySnapshot:
        try:
            reading = psutil.sensors_battery()
        except (AttributeError, NotImplementedError, OSError) as e:
            logger.debug("Battery probe unavailable", error=str(e))
            return self._snapshot
        if reading is None:
            return self._snapshot
        self._snapshot = BatterySnapshot(
            level=max(0.0, min(1.0, float(reading.percent) / 100.0)),
            charging=bool(reading.power_plugged),
            supported=True,
        )
        return self._snapshot

    async def _poll(self) -> None:
        while True:
            self.refresh()
            await asyncio.sleep(self.interval_sec)

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._poll(), name="battery-monitor")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
