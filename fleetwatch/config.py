"""Environment-driven settings for the fleet monitor."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


ENV_PREFIX = "FLEETWATCH_"

DEFAULT_TIMEZONE = "Asia/Kolkata"
DEFAULT_RETENTION_DAYS = 30
DEFAULT_PROBE_CONCURRENCY = 10
DEFAULT_PROBE_TIMEOUT = 2.0
DEFAULT_POLL_INTERVAL = 60.0

# Group name -> workbook file name inside the data directory.
DEFAULT_WORKBOOKS: Dict[str, str] = {
    "archivers": "ArchiverData.xlsx",
    "controllers": "ControllerData.xlsx",
    "cameras": "CameraData.xlsx",
    "servers": "ServerData.xlsx",
}


def _read(environ: Mapping[str, str], name: str, default: str) -> str:
    return environ.get(ENV_PREFIX + name, default)


def _read_number(environ: Mapping[str, str], name: str, default: float, cast=float):
    raw = environ.get(ENV_PREFIX + name)
    if raw is None or not raw.strip():
        return cast(default)
    try:
        return cast(raw)
    except ValueError as exc:
        raise ValueError(f"{ENV_PREFIX}{name} must be a number, got {raw!r}") from exc


@dataclass(slots=True)
class Settings:
    data_dir: Path = Path("data")
    history_path: Path = Path("deviceLogs.json")
    timezone: str = DEFAULT_TIMEZONE
    retention_days: int = DEFAULT_RETENTION_DAYS
    probe_concurrency: int = DEFAULT_PROBE_CONCURRENCY
    probe_timeout: float = DEFAULT_PROBE_TIMEOUT
    poll_interval: float = DEFAULT_POLL_INTERVAL
    metrics_path: Optional[Path] = None
    workbooks: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_WORKBOOKS))

    def __post_init__(self) -> None:
        if self.retention_days <= 0:
            raise ValueError("retention_days must be positive")
        if self.probe_concurrency <= 0:
            raise ValueError("probe_concurrency must be positive")
        if self.probe_timeout <= 0:
            raise ValueError("probe_timeout must be positive")
        if self.poll_interval <= 0:
            raise ValueError("poll_interval must be positive")
        try:
            ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"unknown timezone {self.timezone!r}") from exc

    @property
    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def workbook_paths(self) -> Dict[str, Path]:
        return {group: self.data_dir / filename for group, filename in self.workbooks.items()}

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        metrics_raw = _read(env, "METRICS_PATH", "").strip()
        return cls(
            data_dir=Path(_read(env, "DATA_DIR", "data")),
            history_path=Path(_read(env, "HISTORY_PATH", "deviceLogs.json")),
            timezone=_read(env, "TIMEZONE", DEFAULT_TIMEZONE),
            retention_days=_read_number(env, "RETENTION_DAYS", DEFAULT_RETENTION_DAYS, int),
            probe_concurrency=_read_number(env, "PROBE_CONCURRENCY", DEFAULT_PROBE_CONCURRENCY, int),
            probe_timeout=_read_number(env, "PROBE_TIMEOUT", DEFAULT_PROBE_TIMEOUT),
            poll_interval=_read_number(env, "POLL_INTERVAL", DEFAULT_POLL_INTERVAL),
            metrics_path=Path(metrics_raw) if metrics_raw else None,
        )


__all__ = ["Settings", "DEFAULT_WORKBOOKS", "DEFAULT_TIMEZONE"]
