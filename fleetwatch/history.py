"""Persistent status history keyed by device identifier.

The log is a JSON object mapping each identifier to its ordered list of
``{status, timestamp}`` entries. Every write goes through
:meth:`HistoryStore.merge_and_save`, which reloads the file, appends the
incoming events, prunes anything older than the retention window and then
replaces the whole file.
"""
from __future__ import annotations

import contextlib
import json
import logging
import os
import tempfile
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence

from fleetwatch.models import StatusEvent

logger = logging.getLogger(__name__)

History = Dict[str, List[StatusEvent]]

DEFAULT_RETENTION_DAYS = 30


class HistoryStoreError(RuntimeError):
    """The persisted log could not be read or written."""


def prune_entries(
    events: Iterable[StatusEvent],
    days: int = DEFAULT_RETENTION_DAYS,
    now: Optional[datetime] = None,
) -> List[StatusEvent]:
    """Drop events older than ``days`` before ``now``.

    Events whose timestamp cannot be parsed count as expired.
    """
    reference = now or datetime.now(timezone.utc)
    cutoff = reference - timedelta(days=days)
    kept: List[StatusEvent] = []
    for event in events:
        instant = event.instant()
        if instant is None:
            logger.debug("Dropping history entry with malformed timestamp %r", event.timestamp)
            continue
        if instant >= cutoff:
            kept.append(event)
    return kept


def collapse_repeats(events: Sequence[StatusEvent]) -> List[StatusEvent]:
    """Remove already-recorded events and consecutive equal statuses.

    An event equal to an earlier one (same status and instant) is a replay
    of something already logged. Of a run of equal statuses only the first,
    which marks the transition, is kept.
    """
    seen: set[tuple[str, Optional[datetime]]] = set()
    result: List[StatusEvent] = []
    for event in events:
        key = (event.status.value, event.instant())
        if key in seen:
            continue
        seen.add(key)
        if result and result[-1].status == event.status:
            continue
        result.append(event)
    return result


def _decode(raw: object, source: Path) -> History:
    if not isinstance(raw, dict):
        raise HistoryStoreError(f"history log {source} must contain a JSON object")
    history: History = {}
    for identifier, entries in raw.items():
        if not isinstance(entries, list):
            logger.warning("Ignoring history for %s: expected a list, got %s", identifier, type(entries).__name__)
            continue
        events: List[StatusEvent] = []
        for entry in entries:
            try:
                events.append(StatusEvent.from_dict(entry))
            except (TypeError, ValueError) as exc:
                logger.warning("Dropping malformed history entry for %s: %s", identifier, exc)
        history[str(identifier)] = events
    return history


class HistoryStore:
    """Single-writer JSON store for status transitions.

    A re-entrant lock serializes load-merge-save cycles within the
    process. Callers that read, decide and then write hold
    :meth:`transaction` around the whole sequence.
    """

    def __init__(
        self,
        path: str | Path,
        *,
        retention_days: int = DEFAULT_RETENTION_DAYS,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if retention_days <= 0:
            raise ValueError("retention_days must be positive")
        self.path = Path(path)
        self.retention_days = retention_days
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = threading.RLock()

    @contextlib.contextmanager
    def transaction(self) -> Iterator["HistoryStore"]:
        with self._lock:
            yield self

    def load(self) -> History:
        with self._lock:
            if not self.path.exists():
                return {}
            try:
                with self.path.open("r", encoding="utf-8") as handle:
                    text = handle.read()
            except (OSError, UnicodeDecodeError) as exc:
                raise HistoryStoreError(f"cannot read history log {self.path}: {exc}") from exc
            if not text.strip():
                return {}
            try:
                raw = json.loads(text)
            except json.JSONDecodeError as exc:
                raise HistoryStoreError(f"history log {self.path} is not valid JSON: {exc}") from exc
            return _decode(raw, self.path)

    def history_for(self, identifier: str) -> List[StatusEvent]:
        return list(self.load().get(identifier, []))

    def merge_and_save(self, incoming: Mapping[str, Sequence[StatusEvent]]) -> History:
        """Append ``incoming`` to the persisted log and rewrite it.

        Returns the mapping that was written.
        """
        with self._lock:
            merged = self.load()
            for identifier, events in incoming.items():
                merged[identifier] = [*merged.get(identifier, []), *events]

            now = self._clock()
            result: History = {}
            for identifier, events in merged.items():
                kept = collapse_repeats(prune_entries(events, self.retention_days, now))
                if kept:
                    result[identifier] = kept
            self._write(result)
            return result

    def _write(self, history: History) -> None:
        payload = {
            identifier: [event.to_dict() for event in events]
            for identifier, events in history.items()
        }
        directory = self.path.parent
        tmp_name: Optional[str] = None
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", suffix=".tmp", dir=directory)
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(payload, handle, indent=2)
                handle.write("\n")
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, self.path)
            tmp_name = None
        except OSError as exc:
            raise HistoryStoreError(f"cannot write history log {self.path}: {exc}") from exc
        finally:
            if tmp_name is not None:
                with contextlib.suppress(OSError):
                    os.unlink(tmp_name)


__all__ = [
    "HistoryStore",
    "HistoryStoreError",
    "History",
    "prune_entries",
    "collapse_repeats",
]
