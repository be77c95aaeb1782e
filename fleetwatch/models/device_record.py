from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional

from .status_event import DeviceStatus, StatusEvent


@dataclass
class DeviceRecord:
    """A catalog device plus the transient state of one fetch or query.

    ``identifier`` is the network address used as the probe target and as
    the history key. ``status`` and ``history`` are filled in per call and
    are never authoritative.
    """

    identifier: str
    display_name: Optional[str] = None
    region: Optional[str] = None
    status: DeviceStatus = DeviceStatus.UNKNOWN
    history: List[StatusEvent] = field(default_factory=list)
    attributes: Dict[str, Any] = field(default_factory=dict)

    @property
    def label(self) -> str:
        return self.display_name or self.identifier or "Unknown"

    def fresh_copy(self) -> "DeviceRecord":
        return replace(
            self,
            status=DeviceStatus.UNKNOWN,
            history=[],
            attributes=dict(self.attributes),
        )

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = dict(self.attributes)
        payload.update(
            {
                "ip_address": self.identifier,
                "device_name": self.display_name,
                "region": self.region,
                "status": self.status.value,
                "history": [event.to_dict() for event in self.history],
            }
        )
        return payload
