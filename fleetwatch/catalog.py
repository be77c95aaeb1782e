"""Device catalog built from spreadsheet rows.

Rows are normalized once at this boundary; everything downstream works
with :class:`DeviceRecord` instances.
"""
from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from openpyxl import load_workbook

from fleetwatch.models import DeviceRecord

logger = logging.getLogger(__name__)

IDENTIFIER_FIELD = "ip_address"
NAME_FIELDS: Sequence[str] = ("device_name", "name")
REGION_FIELDS: Sequence[str] = ("location", "region")

_WHITESPACE = re.compile(r"\s+")


class CatalogError(RuntimeError):
    """Raised when a catalog source cannot be read."""


def normalize_header(key: Any) -> str:
    return _WHITESPACE.sub("_", str(key).strip().lower())


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _first(row: Mapping[str, Any], fields: Iterable[str]) -> Optional[str]:
    for name in fields:
        value = _clean(row.get(name))
        if value:
            return value
    return None


def record_from_row(row: Mapping[Any, Any]) -> DeviceRecord:
    normalized = {normalize_header(key): value for key, value in row.items() if key is not None}
    identifier = _clean(normalized.get(IDENTIFIER_FIELD)) or ""
    consumed = {IDENTIFIER_FIELD, *NAME_FIELDS, *REGION_FIELDS}
    return DeviceRecord(
        identifier=identifier,
        display_name=_first(normalized, NAME_FIELDS),
        region=_first(normalized, REGION_FIELDS),
        attributes={key: value for key, value in normalized.items() if key not in consumed},
    )


def read_workbook_rows(path: Path) -> List[Dict[str, Any]]:
    """Return the first sheet of ``path`` as header-keyed rows."""
    try:
        workbook = load_workbook(path, read_only=True, data_only=True)
    except FileNotFoundError as exc:
        raise CatalogError(f"catalog workbook not found: {path}") from exc
    except Exception as exc:
        raise CatalogError(f"cannot read catalog workbook {path}: {exc}") from exc

    try:
        sheet = workbook.worksheets[0]
        rows = sheet.iter_rows(values_only=True)
        header = next(rows, None)
        if not header:
            return []
        result: List[Dict[str, Any]] = []
        for values in rows:
            if values is None or all(value is None for value in values):
                continue
            result.append(
                {key: value for key, value in zip(header, values) if key is not None}
            )
        return result
    finally:
        workbook.close()


class Catalog:
    """Immutable mapping of group name to device records."""

    def __init__(self, groups: Mapping[str, Sequence[DeviceRecord]]) -> None:
        self._groups: Dict[str, tuple[DeviceRecord, ...]] = {
            group: tuple(devices) for group, devices in groups.items()
        }

    @classmethod
    def from_rows(cls, rows_by_group: Mapping[str, Iterable[Mapping[Any, Any]]]) -> "Catalog":
        groups: Dict[str, List[DeviceRecord]] = {}
        for group, rows in rows_by_group.items():
            records = [record_from_row(row) for row in rows]
            missing = sum(1 for record in records if not record.identifier)
            if missing:
                logger.warning(
                    "%d %s row(s) have no %s; they will be reported as missing an identifier",
                    missing,
                    group,
                    IDENTIFIER_FIELD,
                )
            groups[group] = records
        catalog = cls(groups)
        logger.info("Device catalog loaded: %s", ", ".join(f"{k}={len(v)}" for k, v in groups.items()))
        return catalog

    @classmethod
    def from_workbooks(cls, paths: Mapping[str, Path]) -> "Catalog":
        return cls.from_rows({group: read_workbook_rows(Path(path)) for group, path in paths.items()})

    @property
    def groups(self) -> List[str]:
        return list(self._groups)

    def __len__(self) -> int:
        return sum(len(devices) for devices in self._groups.values())

    def snapshot(self, region: Optional[str] = None) -> Dict[str, List[DeviceRecord]]:
        """Fresh per-fetch copies, optionally limited to one region."""
        wanted = region.strip().lower() if region is not None else None
        result: Dict[str, List[DeviceRecord]] = {}
        for group, devices in self._groups.items():
            result[group] = [
                device.fresh_copy()
                for device in devices
                if wanted is None or (device.region or "").lower() == wanted
            ]
        return result

    def identifiers(self) -> List[str]:
        return [
            device.identifier
            for devices in self._groups.values()
            for device in devices
            if device.identifier
        ]

    def find(self, identifier: str) -> Optional[DeviceRecord]:
        for devices in self._groups.values():
            for device in devices:
                if device.identifier == identifier:
                    return device.fresh_copy()
        return None

    def regions(self) -> List[str]:
        return sorted(
            {device.region for devices in self._groups.values() for device in devices if device.region}
        )


__all__ = [
    "Catalog",
    "CatalogError",
    "normalize_header",
    "record_from_row",
    "read_workbook_rows",
]
