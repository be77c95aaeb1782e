"""Tests for fleet summaries."""
from __future__ import annotations

import unittest

from fleetwatch.aggregator import summarize
from fleetwatch.models import DeviceRecord, DeviceStatus


def _devices(*statuses: DeviceStatus) -> list[DeviceRecord]:
    return [DeviceRecord(identifier=f"10.0.0.{i}", status=s) for i, s in enumerate(statuses)]


class SummarizeTest(unittest.TestCase):
    def test_counts_per_group_and_overall(self) -> None:
        summary = summarize(
            {
                "a": _devices(DeviceStatus.ONLINE, DeviceStatus.OFFLINE),
                "b": _devices(DeviceStatus.ONLINE),
            }
        )

        self.assertEqual(
            summary.to_dict(),
            {
                "totalDevices": 3,
                "totalOnline": 2,
                "totalOffline": 1,
                "a": {"total": 2, "online": 1, "offline": 1},
                "b": {"total": 1, "online": 1, "offline": 0},
            },
        )

    def test_anything_not_online_counts_as_offline(self) -> None:
        summary = summarize(
            {"cameras": _devices(DeviceStatus.IDENTIFIER_MISSING, DeviceStatus.UNKNOWN, DeviceStatus.ONLINE)}
        )
        self.assertEqual(summary.groups["cameras"].offline, 2)
        self.assertEqual(summary.total_offline, 2)

    def test_empty_groups(self) -> None:
        self.assertEqual(
            summarize({}).to_dict(),
            {"totalDevices": 0, "totalOnline": 0, "totalOffline": 0},
        )
        self.assertEqual(summarize({"servers": []}).groups["servers"].total, 0)


if __name__ == "__main__":
    unittest.main()
