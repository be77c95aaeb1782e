"""fleetwatch command-line interface."""
from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
import logging
import signal
import sys
from typing import Any, List, Optional

from rich.console import Console
from rich.table import Table

from fleetwatch.config import Settings
from fleetwatch.history import HistoryStoreError
from fleetwatch.models import DeviceStatus, FetchResult
from fleetwatch.monitor import MonitorLoop
from fleetwatch.service import MonitorService

STATUS_STYLES = {
    DeviceStatus.ONLINE: "green",
    DeviceStatus.OFFLINE: "red",
    DeviceStatus.IDENTIFIER_MISSING: "yellow",
}


def _dump(payload: Any) -> None:
    json.dump(payload, sys.stdout, indent=2, default=str)
    sys.stdout.write("\n")


def _service() -> MonitorService:
    return MonitorService.from_settings(Settings.from_env())


def _print_fetch(console: Console, result: FetchResult) -> None:
    table = Table(title="Devices")
    for column in ("group", "ip address", "name", "region", "status"):
        table.add_column(column.upper())
    for group, devices in result.details.items():
        for device in devices:
            style = STATUS_STYLES.get(device.status, "")
            table.add_row(
                group,
                device.identifier or "-",
                device.display_name or "",
                device.region or "",
                f"[{style}]{device.status.value}[/]" if style else device.status.value,
            )
    console.print(table)

    summary = result.summary
    totals = Table(title="Summary")
    for column in ("group", "total", "online", "offline"):
        totals.add_column(column.upper())
    for group, counts in summary.groups.items():
        totals.add_row(group, str(counts.total), str(counts.online), str(counts.offline))
    totals.add_row("all", str(summary.total_devices), str(summary.total_online), str(summary.total_offline))
    console.print(totals)


async def _cmd_fetch(args: argparse.Namespace) -> int:
    service = _service()
    if args.region:
        result = await service.fetch_by_region(args.region)
    else:
        result = await service.fetch_all()
    if result is None:
        sys.stderr.write("device data is not loaded\n")
        return 1
    if args.json:
        _dump(result.to_dict())
    else:
        _print_fetch(Console(), result)
    return 0


async def _cmd_identifiers(args: argparse.Namespace) -> int:
    service = _service()
    if service.catalog is None:
        sys.stderr.write("device data is not loaded\n")
        return 1
    for identifier in service.list_all_identifiers():
        sys.stdout.write(f"{identifier}\n")
    return 0


async def _cmd_history(args: argparse.Namespace) -> int:
    service = _service()
    device = service.get_history(service.device_for(args.identifier))
    if args.json:
        _dump([event.to_dict() for event in device.history])
        return 0
    table = Table(title=f"History for {device.label}")
    table.add_column("TIMESTAMP")
    table.add_column("STATUS")
    for event in device.history:
        style = STATUS_STYLES.get(event.status, "")
        table.add_row(event.timestamp, f"[{style}]{event.status.value}[/]")
    Console().print(table)
    return 0


async def _cmd_stats(args: argparse.Namespace) -> int:
    service = _service()
    device = service.device_for(args.identifier)
    stats = service.get_replay_stats(device).to_dict()
    if args.json:
        _dump({"ip_address": device.identifier, **stats})
        return 0
    table = Table(title=f"Uptime for {device.label}")
    for column in ("uptime", "open downtime", "closed downtime"):
        table.add_column(column.upper())
    table.add_row(stats["uptime"], stats["downtime"], stats["downtimeDuration"])
    Console().print(table)
    return 0


async def _cmd_monitor(args: argparse.Namespace) -> int:
    service = _service()
    if service.catalog is None:
        sys.stderr.write("device data is not loaded\n")
        return 1
    loop_runner = MonitorLoop(
        service,
        interval=args.interval or service.settings.poll_interval,
        region=args.region,
    )

    def _signal_handler(*_: Any) -> None:
        loop_runner.request_stop()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, _signal_handler)

    try:
        await loop_runner.run(runtime=args.runtime)
    finally:
        loop_runner.request_stop()
    return 0 if loop_runner.failures == 0 else 1


def _cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("fleetwatch.api:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Fleet reachability monitor")
    parser.add_argument("--log-level", default="INFO", help="Logging level (DEBUG, INFO, WARNING, ...)")
    sub = parser.add_subparsers(dest="command", required=True)

    fetch = sub.add_parser("fetch", help="Probe devices once and print their status")
    fetch.add_argument("--region", help="Only probe devices in this region")
    fetch.add_argument("--json", action="store_true", help="Output JSON")
    fetch.set_defaults(handler=_cmd_fetch)

    identifiers = sub.add_parser("identifiers", help="List every device IP address in the catalog")
    identifiers.set_defaults(handler=_cmd_identifiers)

    history = sub.add_parser("history", help="Show recorded status changes for a device")
    history.add_argument("identifier", help="Device IP address")
    history.add_argument("--json", action="store_true", help="Output JSON")
    history.set_defaults(handler=_cmd_history)

    stats = sub.add_parser("stats", help="Show uptime and downtime for a device")
    stats.add_argument("identifier", help="Device IP address")
    stats.add_argument("--json", action="store_true", help="Output JSON")
    stats.set_defaults(handler=_cmd_stats)

    monitor = sub.add_parser("monitor", help="Probe the fleet periodically and record transitions")
    monitor.add_argument("--interval", type=float, help="Seconds between cycles")
    monitor.add_argument("--runtime", type=float, help="Optional monitor duration seconds")
    monitor.add_argument("--region", help="Only monitor devices in this region")
    monitor.set_defaults(handler=_cmd_monitor)

    serve = sub.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.add_argument("--reload", action="store_true")
    serve.set_defaults(handler=_cmd_serve)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        if args.handler is _cmd_serve:
            return _cmd_serve(args)
        return asyncio.run(args.handler(args))
    except ValueError as exc:
        parser.error(str(exc))
    except HistoryStoreError as exc:
        sys.stderr.write(f"history store error: {exc}\n")
        return 2
    return 1


if __name__ == "__main__":
    sys.exit(main())
