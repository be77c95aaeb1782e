"""Query surface tying the catalog, prober, tracker and store together."""
from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Dict, List, Optional, Sequence
from zoneinfo import ZoneInfo

from fleetwatch.aggregator import summarize
from fleetwatch.catalog import Catalog, CatalogError
from fleetwatch.config import Settings
from fleetwatch.history import HistoryStore
from fleetwatch.metrics import MetricsLogger
from fleetwatch.models import DeviceRecord, FetchResult, ReplayStats, StatusEvent
from fleetwatch.prober import Prober
from fleetwatch.replay import compute_stats
from fleetwatch.tracker import StatusTracker

logger = logging.getLogger(__name__)


class MonitorService:
    """Owns one catalog, one history store and the probing pipeline."""

    def __init__(
        self,
        *,
        store: HistoryStore,
        prober: Prober,
        tracker: Optional[StatusTracker] = None,
        catalog: Optional[Catalog] = None,
        settings: Optional[Settings] = None,
        metrics: Optional[MetricsLogger] = None,
    ) -> None:
        self.settings = settings or Settings()
        self.store = store
        self.prober = prober
        self.tracker = tracker or StatusTracker(store, timezone=self.settings.timezone)
        self.catalog = catalog
        self.metrics = metrics
        self.display_zone = ZoneInfo(self.settings.timezone)

    @classmethod
    def from_settings(cls, settings: Settings, *, load_catalog: bool = True) -> "MonitorService":
        metrics = MetricsLogger(settings.metrics_path) if settings.metrics_path else None
        service = cls(
            store=HistoryStore(settings.history_path, retention_days=settings.retention_days),
            prober=Prober(
                concurrency=settings.probe_concurrency,
                timeout=settings.probe_timeout,
                metrics=metrics,
            ),
            settings=settings,
            metrics=metrics,
        )
        if load_catalog:
            service.load_catalog()
        return service

    def load_catalog(self) -> bool:
        """Load the catalog workbooks; False (and logged) when unavailable."""
        try:
            self.catalog = Catalog.from_workbooks(self.settings.workbook_paths())
        except CatalogError as exc:
            logger.error("Device data is not loaded: %s", exc)
            self.catalog = None
            return False
        return True

    # ------------------------------------------------------------------
    # Live fetches
    # ------------------------------------------------------------------
    async def fetch_all(self) -> Optional[FetchResult]:
        if self.catalog is None:
            logger.error("Error: Device data is not loaded.")
            return None
        return await self._fetch(self.catalog.snapshot(), scope="global")

    async def fetch_by_region(self, region_name: str) -> Optional[FetchResult]:
        if self.catalog is None:
            logger.error("Error: Device data is not loaded.")
            return None
        return await self._fetch(self.catalog.snapshot(region_name), scope=region_name)

    async def _fetch(self, groups: Dict[str, List[DeviceRecord]], *, scope: str) -> FetchResult:
        # Abandoning the caller must not cut probes or the history write short.
        cycle = asyncio.ensure_future(self._run_cycle(groups, scope))
        try:
            return await asyncio.shield(cycle)
        except asyncio.CancelledError:
            cycle.add_done_callback(_report_abandoned_cycle)
            raise

    async def _run_cycle(self, groups: Dict[str, List[DeviceRecord]], scope: str) -> FetchResult:
        devices = [device for members in groups.values() for device in members]
        if self.metrics:
            layer = self.metrics.scope(scope=scope)
            timer = self.metrics.timer("fetch")
        else:
            layer, timer = contextlib.nullcontext(), contextlib.nullcontext({})
        with layer, timer as row:
            await self.prober.resolve_devices(devices)
            recorded = await asyncio.to_thread(self.tracker.record_many, devices)
            summary = summarize(groups)
            row.update(
                devices=summary.total_devices,
                online=summary.total_online,
                transitions=len(recorded),
            )
        logger.debug(
            "Fetch %s: %d devices, %d online, %d transition(s)",
            scope,
            summary.total_devices,
            summary.total_online,
            len(recorded),
        )
        return FetchResult(summary=summary, details=groups)

    def list_all_identifiers(self) -> List[str]:
        if self.catalog is None:
            logger.error("Error: Device data is not loaded.")
            return []
        return self.catalog.identifiers()

    def device_for(self, identifier: str) -> DeviceRecord:
        """Catalog record for ``identifier``, or a bare record if unknown."""
        if self.catalog is not None:
            found = self.catalog.find(identifier)
            if found is not None:
                return found
        return DeviceRecord(identifier=identifier)

    # ------------------------------------------------------------------
    # History queries
    # ------------------------------------------------------------------
    def get_history(self, device: DeviceRecord) -> DeviceRecord:
        """Fill ``device.history`` with stored events in the display zone.

        Stored values are not modified. Entries whose timestamp cannot be
        parsed are left out.
        """
        events = self.store.load().get(device.identifier) if device.identifier else None
        if not events:
            logger.info("No history found for device: %s (%s)", device.display_name or "Unknown", device.identifier)
            return device
        device.history = self._to_display_zone(events)
        logger.debug("Loaded %d history entries for %s", len(device.history), device.identifier)
        return device

    def get_replay_stats(self, device: DeviceRecord) -> ReplayStats:
        self.get_history(device)
        return compute_stats(device.history)

    def _to_display_zone(self, events: Sequence[StatusEvent]) -> List[StatusEvent]:
        converted: List[StatusEvent] = []
        for event in events:
            instant = event.instant()
            if instant is None:
                continue
            converted.append(
                StatusEvent(
                    status=event.status,
                    timestamp=instant.astimezone(self.display_zone).isoformat(timespec="milliseconds"),
                )
            )
        return converted


def _report_abandoned_cycle(cycle: "asyncio.Future[FetchResult]") -> None:
    if cycle.cancelled():
        return
    exc = cycle.exception()
    if exc is not None:
        logger.error("Fetch cycle failed after its caller went away: %s", exc, exc_info=exc)


__all__ = ["MonitorService"]
