"""Data model for the fleet monitor.

Plain dataclasses shared by the catalog, prober, history store and the
query surface.
"""
from .device_record import DeviceRecord
from .status_event import RECORDABLE, DeviceStatus, StatusEvent, parse_timestamp
from .summary import FetchResult, GroupSummary, ReplayStats, Summary, format_duration

__all__ = [
    "DeviceRecord",
    "DeviceStatus",
    "StatusEvent",
    "RECORDABLE",
    "parse_timestamp",
    "FetchResult",
    "GroupSummary",
    "ReplayStats",
    "Summary",
    "format_duration",
]
