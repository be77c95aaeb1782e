"""Turn resolved statuses into history entries."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional
from zoneinfo import ZoneInfo

from fleetwatch.history import HistoryStore
from fleetwatch.models import RECORDABLE, DeviceRecord, DeviceStatus, StatusEvent

logger = logging.getLogger(__name__)


class StatusTracker:
    """Record a status only when it differs from the last logged one.

    Timestamps are taken when the entry is written, in ``timezone``.
    """

    def __init__(
        self,
        store: HistoryStore,
        *,
        timezone: str = "Asia/Kolkata",
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self.zone = ZoneInfo(timezone)
        self._clock = clock or _utc_now

    def record_if_changed(self, device: DeviceRecord) -> Optional[StatusEvent]:
        recorded = self.record_many([device])
        return recorded[0] if recorded else None

    def record_many(self, devices: Iterable[DeviceRecord]) -> List[StatusEvent]:
        """Record every transition in ``devices`` with one merge-write."""
        candidates = [d for d in devices if d.identifier and d.status in RECORDABLE]
        if not candidates:
            return []

        with self.store.transaction():
            persisted = self.store.load()
            last: Dict[str, DeviceStatus] = {
                identifier: events[-1].status
                for identifier, events in persisted.items()
                if events
            }
            incoming: Dict[str, List[StatusEvent]] = {}
            recorded: List[StatusEvent] = []
            for device in candidates:
                if last.get(device.identifier) == device.status:
                    continue
                event = StatusEvent(status=device.status, timestamp=self._timestamp())
                incoming.setdefault(device.identifier, []).append(event)
                last[device.identifier] = device.status
                recorded.append(event)
                logger.info("Status changed: %s is now %s", device.label, device.status.value)
            if incoming:
                self.store.merge_and_save(incoming)
        return recorded

    def append_event(self, device: DeviceRecord, status: DeviceStatus) -> Optional[StatusEvent]:
        """Log ``status`` for ``device`` without comparing to the last entry.

        The store still collapses a repeat of the last stored status, in
        which case nothing is written and ``None`` is returned.
        """
        if not device.identifier:
            raise ValueError("cannot record history for a device without an identifier")
        if status not in RECORDABLE:
            raise ValueError(f"status {status.value!r} cannot be recorded")
        event = StatusEvent(status=status, timestamp=self._timestamp())
        written = self.store.merge_and_save({device.identifier: [event]})
        return event if event in written.get(device.identifier, []) else None

    def _timestamp(self) -> str:
        now = self._clock()
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return now.astimezone(self.zone).isoformat(timespec="milliseconds")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


__all__ = ["StatusTracker"]
