"""Periodic fetch loop."""
from __future__ import annotations

import asyncio
import logging
from time import monotonic
from typing import Optional

from fleetwatch.history import HistoryStoreError
from fleetwatch.models import FetchResult
from fleetwatch.service import MonitorService

logger = logging.getLogger(__name__)


class MonitorLoop:
    """Run a fetch every ``interval`` seconds until stopped."""

    def __init__(
        self,
        service: MonitorService,
        *,
        interval: float = 60.0,
        region: Optional[str] = None,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.service = service
        self.interval = interval
        self.region = region
        self.cycles = 0
        self.failures = 0
        self.last_result: Optional[FetchResult] = None
        self._stop_event: Optional[asyncio.Event] = None

    @property
    def running(self) -> bool:
        return self._stop_event is not None and not self._stop_event.is_set()

    async def run(self, runtime: Optional[float] = None) -> None:
        stop_event = asyncio.Event()
        self._stop_event = stop_event
        deadline = monotonic() + runtime if runtime else None
        logger.info("Monitor started (interval=%ss, region=%s)", self.interval, self.region or "all")

        try:
            while not stop_event.is_set():
                if deadline and monotonic() >= deadline:
                    break
                await self._cycle()
                if stop_event.is_set():
                    break
                await self._sleep_with_stop(self.interval, stop_event, deadline)
        finally:
            stop_event.set()
            logger.info("Monitor stopped after %d cycle(s)", self.cycles)

    def request_stop(self) -> None:
        if self._stop_event:
            self._stop_event.set()

    async def _cycle(self) -> None:
        self.cycles += 1
        try:
            if self.region:
                result = await self.service.fetch_by_region(self.region)
            else:
                result = await self.service.fetch_all()
        except asyncio.CancelledError:
            raise
        except HistoryStoreError:
            self.failures += 1
            logger.exception("History write failed during cycle %d", self.cycles)
            return
        except Exception as exc:
            self.failures += 1
            logger.warning("Monitor cycle %d failed: %s", self.cycles, exc)
            return
        if result is not None:
            self.last_result = result
            logger.info(
                "Cycle %d: %d/%d devices online",
                self.cycles,
                result.summary.total_online,
                result.summary.total_devices,
            )

    async def _sleep_with_stop(
        self,
        duration: float,
        stop_event: asyncio.Event,
        deadline: Optional[float],
    ) -> None:
        wait_time = duration
        if deadline:
            wait_time = min(wait_time, max(0.0, deadline - monotonic()))
            if wait_time <= 0:
                return
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=wait_time)
        except asyncio.TimeoutError:
            pass


__all__ = ["MonitorLoop"]
