"""CSV metrics for probe and fetch-cycle activity."""
from __future__ import annotations

import asyncio
import contextlib
import contextvars
import csv
import json
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from time import perf_counter
from typing import Any, Callable, Dict, Iterator, Mapping, Optional, Sequence, Tuple


FIELDS: Sequence[str] = (
    "timestamp",
    "event",
    "identifier",
    "status",
    "value",
    "message",
    "extra",
)


# Fields layered on by `MetricsLogger.scope`. A context variable so the
# layers follow asyncio tasks and `asyncio.to_thread` calls.
_SCOPE: contextvars.ContextVar[Tuple[Mapping[str, Any], ...]] = contextvars.ContextVar(
    "fleetwatch_metrics_scope", default=()
)


def _encode_extra(extra: Mapping[str, Any]) -> str:
    if not extra:
        return ""
    try:
        return json.dumps(extra, separators=(",", ":"), ensure_ascii=True, sort_keys=True, default=str)
    except (TypeError, ValueError):
        return repr(extra)


@dataclass(slots=True)
class MetricRow:
    timestamp: str
    event: str
    identifier: str = ""
    status: str = ""
    value: Optional[float] = None
    message: str = ""
    extra: str = ""

    def as_row(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "event": self.event,
            "identifier": self.identifier,
            "status": self.status,
            "value": "" if self.value is None else self.value,
            "message": self.message,
            "extra": self.extra,
        }


class MetricsLogger:
    """Append-only CSV log of monitoring metrics.

    Rows are written synchronously and flushed straight away so the file
    can be tailed while a monitor loop is running. ``scope`` layers extra
    fields onto every row logged from the current task, including work it
    hands to threads with ``asyncio.to_thread``.
    """

    def __init__(
        self,
        path: str | Path,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.path = Path(path)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._ensure_header()

    def _ensure_header(self) -> None:
        if self.path.exists() and self.path.stat().st_size > 0:
            return
        with self._lock:
            with self.path.open("w", newline="", encoding="utf-8") as handle:
                csv.DictWriter(handle, fieldnames=FIELDS).writeheader()

    def log(
        self,
        event: str,
        *,
        identifier: Optional[str] = None,
        status: Optional[str] = None,
        value: Optional[float] = None,
        message: Optional[str] = None,
        extra: Optional[Mapping[str, Any]] = None,
    ) -> None:
        row = MetricRow(
            timestamp=self._timestamp(),
            event=event,
            identifier=identifier or "",
            status=status or "",
            value=value,
            message=message or "",
            extra=_encode_extra(self._combined_extra(extra)),
        )
        with self._lock:
            with self.path.open("a", newline="", encoding="utf-8") as handle:
                csv.DictWriter(handle, fieldnames=FIELDS).writerow(row.as_row())
                handle.flush()

    async def log_async(self, event: str, **kwargs: Any) -> None:
        await asyncio.to_thread(self.log, event, **kwargs)

    @contextlib.contextmanager
    def scope(self, extra: Mapping[str, Any] | None = None, **extra_kwargs: Any) -> Iterator[None]:
        payload: Dict[str, Any] = dict(extra or {})
        payload.update(extra_kwargs)
        token = _SCOPE.set((*_SCOPE.get(), payload))
        try:
            yield
        finally:
            _SCOPE.reset(token)

    @contextlib.contextmanager
    def timer(self, event: str, *, extra: Optional[Mapping[str, Any]] = None) -> Iterator[Dict[str, Any]]:
        """Log the duration of the wrapped block.

        The yielded dict is merged into the row, so callers can attach
        results computed inside the block.
        """
        start = perf_counter()
        payload: Dict[str, Any] = dict(extra or {})
        try:
            yield payload
        except Exception as exc:
            self.log(
                event,
                status="error",
                value=perf_counter() - start,
                message=str(exc),
                extra={**payload, "exception": type(exc).__name__},
            )
            raise
        else:
            self.log(event, status="ok", value=perf_counter() - start, extra=payload)

    def _timestamp(self) -> str:
        dt = self._clock()
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds")

    def _combined_extra(self, extra: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        for layer in _SCOPE.get():
            payload.update(layer)
        if extra:
            payload.update(extra)
        return payload


__all__ = ["MetricsLogger", "MetricRow", "FIELDS"]
