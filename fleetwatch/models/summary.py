from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, List, Mapping

from .device_record import DeviceRecord


def format_duration(duration: timedelta) -> str:
    """Render whole days, hours and minutes, always truncating down."""
    minutes = max(0, int(duration.total_seconds() // 60))
    days, remainder = divmod(minutes, 1440)
    hours, mins = divmod(remainder, 60)
    return f"{days}d {hours}h {mins}m"


@dataclass(slots=True)
class GroupSummary:
    total: int = 0
    online: int = 0
    offline: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {"total": self.total, "online": self.online, "offline": self.offline}


@dataclass(slots=True)
class Summary:
    """Online/offline counts for a fetch, overall and per group."""

    total_devices: int = 0
    total_online: int = 0
    total_offline: int = 0
    groups: Dict[str, GroupSummary] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "totalDevices": self.total_devices,
            "totalOnline": self.total_online,
            "totalOffline": self.total_offline,
        }
        for key, group in self.groups.items():
            payload[key] = group.to_dict()
        return payload


@dataclass(slots=True)
class ReplayStats:
    """Durations reconstructed from a device's history.

    ``downtime`` is the still-open offline stretch at the end of the
    history; ``total_downtime_duration`` only counts offline periods that
    ended with the device coming back online.
    """

    uptime: timedelta = timedelta(0)
    downtime: timedelta = timedelta(0)
    total_downtime_duration: timedelta = timedelta(0)

    def to_dict(self) -> Dict[str, str]:
        return {
            "uptime": format_duration(self.uptime),
            "downtime": format_duration(self.downtime),
            "downtimeDuration": format_duration(self.total_downtime_duration),
        }


@dataclass(slots=True)
class FetchResult:
    summary: Summary
    details: Mapping[str, List[DeviceRecord]]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "summary": self.summary.to_dict(),
            "details": {
                group: [device.to_dict() for device in devices]
                for group, devices in self.details.items()
            },
        }
