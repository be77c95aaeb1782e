"""Bounded-concurrency reachability probing."""
from __future__ import annotations

import asyncio
import logging
from time import perf_counter
from typing import Awaitable, Callable, Dict, Iterable, Optional, Sequence

from ping3 import ping

from fleetwatch.metrics import MetricsLogger
from fleetwatch.models import DeviceRecord, DeviceStatus

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 10
DEFAULT_TIMEOUT = 2.0

ProbeFunc = Callable[[str], Awaitable[bool]]


async def icmp_probe(identifier: str, timeout: float = DEFAULT_TIMEOUT) -> bool:
    """Send one ICMP echo request; True when a reply comes back."""
    rtt = await asyncio.to_thread(ping, identifier, timeout=timeout)
    # ping3 returns None on timeout and False on resolution/socket errors.
    return rtt is not None and rtt is not False


class ProbeCache:
    """Per-resolve map of identifier to its (possibly pending) status."""

    def __init__(self) -> None:
        self._entries: Dict[str, asyncio.Future[DeviceStatus]] = {}

    def get(self, identifier: str) -> Optional[asyncio.Future[DeviceStatus]]:
        return self._entries.get(identifier)

    def reserve(self, identifier: str) -> asyncio.Future[DeviceStatus]:
        future: asyncio.Future[DeviceStatus] = asyncio.get_running_loop().create_future()
        self._entries[identifier] = future
        return future


class Prober:
    """Resolve identifiers to Online/Offline with a fixed fan-out limit."""

    def __init__(
        self,
        probe: Optional[ProbeFunc] = None,
        *,
        concurrency: int = DEFAULT_CONCURRENCY,
        timeout: float = DEFAULT_TIMEOUT,
        metrics: Optional[MetricsLogger] = None,
    ) -> None:
        if concurrency <= 0:
            raise ValueError("concurrency must be positive")
        self.concurrency = concurrency
        self.timeout = timeout
        self.metrics = metrics
        self._probe: ProbeFunc = probe or (lambda identifier: icmp_probe(identifier, self.timeout))

    async def resolve(self, identifiers: Iterable[str]) -> Dict[str, DeviceStatus]:
        """Probe every non-empty identifier once and wait for all of them."""
        wanted = [identifier for identifier in identifiers if identifier]
        cache = ProbeCache()
        semaphore = asyncio.Semaphore(self.concurrency)
        statuses = await asyncio.gather(
            *(self._lookup(identifier, cache, semaphore) for identifier in wanted)
        )
        return dict(zip(wanted, statuses))

    async def resolve_devices(self, devices: Sequence[DeviceRecord]) -> Dict[str, DeviceStatus]:
        """Resolve and assign ``status`` on each device record.

        Records without an identifier get ``IDENTIFIER_MISSING`` and are
        never probed.
        """
        for device in devices:
            if not device.identifier:
                device.status = DeviceStatus.IDENTIFIER_MISSING
        results = await self.resolve(device.identifier for device in devices)
        for device in devices:
            if device.identifier:
                device.status = results[device.identifier]
        return results

    async def _lookup(
        self,
        identifier: str,
        cache: ProbeCache,
        semaphore: asyncio.Semaphore,
    ) -> DeviceStatus:
        pending = cache.get(identifier)
        if pending is not None:
            return await pending

        future = cache.reserve(identifier)
        async with semaphore:
            status = await self._probe_once(identifier)
        future.set_result(status)
        return status

    async def _probe_once(self, identifier: str) -> DeviceStatus:
        start = perf_counter()
        error: Optional[BaseException] = None
        try:
            alive = await self._probe(identifier)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Probe of %s failed, treating as offline: %s", identifier, exc)
            alive = False
            error = exc
        status = DeviceStatus.ONLINE if alive else DeviceStatus.OFFLINE
        if self.metrics:
            await self._log_probe(identifier, status, perf_counter() - start, error)
        return status

    async def _log_probe(
        self,
        identifier: str,
        status: DeviceStatus,
        elapsed: float,
        error: Optional[BaseException],
    ) -> None:
        try:
            await self.metrics.log_async(  # type: ignore[union-attr]
                "probe",
                identifier=identifier,
                status=status.value,
                value=elapsed,
                message=str(error) if error else None,
            )
        except Exception:  # pragma: no cover - I/O failure safeguard
            logger.debug("Metrics logging failed for probe of %s", identifier, exc_info=True)


__all__ = ["Prober", "ProbeCache", "ProbeFunc", "icmp_probe"]
