"""Tests for transition detection and history writes."""
from __future__ import annotations

import tempfile
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path

from fleetwatch.history import HistoryStore
from fleetwatch.models import DeviceRecord, DeviceStatus
from fleetwatch.tracker import StatusTracker


class _Clock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class StatusTrackerTest(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.clock = _Clock(datetime(2024, 6, 1, 6, 30, tzinfo=timezone.utc))
        self.store = HistoryStore(Path(self._tmp.name, "deviceLogs.json"), clock=self.clock)
        self.tracker = StatusTracker(self.store, timezone="Asia/Kolkata", clock=self.clock)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _device(self, status: DeviceStatus, identifier: str = "10.0.0.1") -> DeviceRecord:
        return DeviceRecord(identifier=identifier, display_name="Gate camera", status=status)

    def test_repeated_identical_status_is_recorded_once(self) -> None:
        for _ in range(5):
            self.tracker.record_if_changed(self._device(DeviceStatus.ONLINE))
            self.clock.advance(minutes=1)

        self.assertEqual(len(self.store.history_for("10.0.0.1")), 1)

    def test_transition_appends_new_event(self) -> None:
        first = self.tracker.record_if_changed(self._device(DeviceStatus.ONLINE))
        self.clock.advance(minutes=5)
        second = self.tracker.record_if_changed(self._device(DeviceStatus.OFFLINE))

        self.assertIsNotNone(first)
        self.assertIsNotNone(second)
        history = self.store.history_for("10.0.0.1")
        self.assertEqual([e.status for e in history], [DeviceStatus.ONLINE, DeviceStatus.OFFLINE])

    def test_timestamp_uses_target_timezone_at_write_time(self) -> None:
        event = self.tracker.record_if_changed(self._device(DeviceStatus.OFFLINE))

        assert event is not None
        self.assertEqual(event.timestamp, "2024-06-01T12:00:00.000+05:30")
        self.assertEqual(event.instant(), self.clock.now)

    def test_non_recordable_statuses_are_ignored(self) -> None:
        self.assertIsNone(self.tracker.record_if_changed(DeviceRecord(identifier="", status=DeviceStatus.IDENTIFIER_MISSING)))
        self.assertIsNone(self.tracker.record_if_changed(self._device(DeviceStatus.UNKNOWN)))
        self.assertEqual(self.store.load(), {})

    def test_record_many_writes_each_transition_once(self) -> None:
        devices = [
            self._device(DeviceStatus.ONLINE, "10.0.0.1"),
            self._device(DeviceStatus.OFFLINE, "10.0.0.2"),
            self._device(DeviceStatus.ONLINE, "10.0.0.1"),
        ]
        recorded = self.tracker.record_many(devices)

        self.assertEqual(len(recorded), 2)
        loaded = self.store.load()
        self.assertEqual(len(loaded["10.0.0.1"]), 1)
        self.assertEqual(loaded["10.0.0.2"][0].status, DeviceStatus.OFFLINE)

    def test_append_event_goes_through_merge_write(self) -> None:
        self.tracker.append_event(self._device(DeviceStatus.UNKNOWN), DeviceStatus.OFFLINE)
        self.clock.advance(minutes=10)
        self.tracker.append_event(self._device(DeviceStatus.UNKNOWN), DeviceStatus.ONLINE)

        history = self.store.history_for("10.0.0.1")
        self.assertEqual([e.status for e in history], [DeviceStatus.OFFLINE, DeviceStatus.ONLINE])

    def test_append_event_returns_none_when_store_collapses_repeat(self) -> None:
        first = self.tracker.append_event(self._device(DeviceStatus.UNKNOWN), DeviceStatus.OFFLINE)
        self.clock.advance(minutes=10)
        second = self.tracker.append_event(self._device(DeviceStatus.UNKNOWN), DeviceStatus.OFFLINE)

        self.assertIsNotNone(first)
        self.assertIsNone(second)
        self.assertEqual(self.store.history_for("10.0.0.1"), [first])

    def test_append_event_rejects_missing_identifier(self) -> None:
        with self.assertRaises(ValueError):
            self.tracker.append_event(DeviceRecord(identifier=""), DeviceStatus.ONLINE)


if __name__ == "__main__":
    unittest.main()
