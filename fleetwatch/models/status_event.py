from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional


class DeviceStatus(str, Enum):
    """Resolved reachability of a device during a fetch."""

    UNKNOWN = "Unknown"
    ONLINE = "Online"
    OFFLINE = "Offline"
    IDENTIFIER_MISSING = "IP Address Missing"


# Only these two values are ever written to the history log.
RECORDABLE = frozenset({DeviceStatus.ONLINE, DeviceStatus.OFFLINE})


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 string into an aware datetime.

    Returns ``None`` for anything unparsable. A trailing ``Z`` is accepted
    and naive values are read as UTC.
    """
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True, slots=True)
class StatusEvent:
    """A single persisted status transition."""

    status: DeviceStatus
    timestamp: str

    def instant(self) -> Optional[datetime]:
        return parse_timestamp(self.timestamp)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "StatusEvent":
        if not isinstance(payload, Mapping):
            raise ValueError(f"history entry must be an object, got {type(payload).__name__}")
        status = DeviceStatus(payload.get("status"))
        if status not in RECORDABLE:
            raise ValueError(f"status {status.value!r} cannot appear in history")
        timestamp = payload.get("timestamp")
        return cls(status=status, timestamp=str(timestamp) if timestamp is not None else "")

    def to_dict(self) -> Dict[str, str]:
        return {"status": self.status.value, "timestamp": self.timestamp}
