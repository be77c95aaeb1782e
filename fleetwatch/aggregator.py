from __future__ import annotations

from typing import Mapping, Sequence

from fleetwatch.models import DeviceRecord, DeviceStatus, GroupSummary, Summary


def summarize(groups: Mapping[str, Sequence[DeviceRecord]]) -> Summary:
    """Count online and offline devices per group and overall.

    Anything that is not exactly Online counts as offline.
    """
    summary = Summary()
    for key, devices in groups.items():
        total = len(devices)
        online = sum(1 for device in devices if device.status == DeviceStatus.ONLINE)
        group = GroupSummary(total=total, online=online, offline=total - online)
        summary.groups[key] = group
        summary.total_devices += group.total
        summary.total_online += group.online
        summary.total_offline += group.offline
    return summary


__all__ = ["summarize"]
