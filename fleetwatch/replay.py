"""Rebuild uptime and downtime from a stored history."""
from __future__ import annotations

from datetime import timedelta
from typing import Sequence

from fleetwatch.models import DeviceStatus, ReplayStats, StatusEvent, format_duration


def compute_stats(history: Sequence[StatusEvent]) -> ReplayStats:
    """Replay ``history`` in order and accumulate durations in minutes.

    Time spent after an Online entry is uptime; time after an Offline entry
    accrues as downtime and is folded into the closed total when the next
    Online entry arrives. Gaps that are zero or negative add nothing.
    A trailing offline stretch stays in ``downtime`` and is not added to
    ``total_downtime_duration``.
    """
    timeline = [(event.status, event.instant()) for event in history]
    timeline = [(status, instant) for status, instant in timeline if instant is not None]
    if not timeline:
        return ReplayStats()

    uptime = downtime = closed_downtime = 0.0
    last_status, last_instant = timeline[0]

    for status, instant in timeline[1:]:
        delta = (instant - last_instant).total_seconds() / 60
        if delta > 0:
            if last_status == DeviceStatus.ONLINE:
                uptime += delta
            else:
                downtime += delta
            if last_status == DeviceStatus.OFFLINE and status == DeviceStatus.ONLINE:
                closed_downtime += downtime
                downtime = 0.0
        last_status, last_instant = status, instant

    return ReplayStats(
        uptime=timedelta(minutes=uptime),
        downtime=timedelta(minutes=downtime),
        total_downtime_duration=timedelta(minutes=closed_downtime),
    )


__all__ = ["compute_stats", "format_duration"]
