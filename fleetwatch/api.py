from __future__ import annotations

import asyncio
import logging
import time
from typing import Optional

from fastapi import FastAPI, HTTPException, Query

from fleetwatch.config import Settings
from fleetwatch.history import HistoryStoreError
from fleetwatch.monitor import MonitorLoop
from fleetwatch.service import MonitorService

logger = logging.getLogger(__name__)

app = FastAPI(title="fleetwatch API", version="0.1.0")

_service: Optional[MonitorService] = None
_loop: Optional[MonitorLoop] = None
_loop_task: Optional[asyncio.Task] = None


def get_service() -> MonitorService:
    global _service
    if _service is None:
        _service = MonitorService.from_settings(Settings.from_env())
    return _service


def _unavailable() -> HTTPException:
    return HTTPException(status_code=503, detail="Device data is not loaded")


def _store_failure(exc: HistoryStoreError) -> HTTPException:
    logger.error("History store failure: %s", exc)
    return HTTPException(status_code=500, detail=str(exc))


@app.get("/health")
async def health():
    service = get_service()
    return {
        "status": "ok",
        "time": time.time(),
        "catalog_loaded": service.catalog is not None,
    }


@app.get("/devices")
async def devices():
    try:
        result = await get_service().fetch_all()
    except HistoryStoreError as exc:
        raise _store_failure(exc)
    if result is None:
        raise _unavailable()
    return result.to_dict()


@app.get("/regions/{name}")
async def region(name: str):
    try:
        result = await get_service().fetch_by_region(name)
    except HistoryStoreError as exc:
        raise _store_failure(exc)
    if result is None:
        raise _unavailable()
    return result.to_dict()


@app.get("/identifiers")
async def identifiers():
    service = get_service()
    if service.catalog is None:
        raise _unavailable()
    return service.list_all_identifiers()


@app.get("/devices/{identifier}/history")
async def history(identifier: str):
    service = get_service()
    device = service.device_for(identifier)
    try:
        await asyncio.to_thread(service.get_history, device)
    except HistoryStoreError as exc:
        raise _store_failure(exc)
    return {
        "ip_address": device.identifier,
        "device_name": device.display_name,
        "history": [event.to_dict() for event in device.history],
    }


@app.get("/devices/{identifier}/stats")
async def stats(identifier: str):
    service = get_service()
    device = service.device_for(identifier)
    try:
        replay = await asyncio.to_thread(service.get_replay_stats, device)
    except HistoryStoreError as exc:
        raise _store_failure(exc)
    return {"ip_address": device.identifier, "device_name": device.display_name, **replay.to_dict()}


@app.post("/monitor/start")
async def start(
    interval: Optional[float] = Query(None, gt=0, description="Seconds between fetch cycles"),
    runtime: Optional[float] = Query(None, gt=0, description="Optional monitor duration"),
    region_name: Optional[str] = Query(None, alias="region", description="Limit cycles to one region"),
):
    global _loop, _loop_task
    if _loop_task and not _loop_task.done():
        return {"status": "already-running", "cycles": _loop.cycles if _loop else 0}
    service = get_service()
    if service.catalog is None:
        raise _unavailable()
    _loop = MonitorLoop(
        service,
        interval=interval or service.settings.poll_interval,
        region=region_name,
    )
    _loop_task = asyncio.create_task(_loop.run(runtime=runtime))
    return {
        "status": "started",
        "interval": _loop.interval,
        "region": region_name,
        "runtime": runtime,
    }


@app.post("/monitor/stop")
async def stop():
    global _loop_task
    if not _loop_task:
        return {"status": "idle"}
    if _loop:
        _loop.request_stop()
    try:
        await asyncio.wait_for(_loop_task, timeout=5.0)
    except asyncio.TimeoutError:
        _loop_task.cancel()
    except Exception:
        logger.exception("monitor stop encountered error")
    _loop_task = None
    return {"status": "stopped"}


@app.get("/monitor/status")
async def monitor_status():
    if not _loop or not _loop_task or _loop_task.done():
        return {"status": "idle"}
    payload = {
        "status": "running",
        "cycles": _loop.cycles,
        "failures": _loop.failures,
        "interval": _loop.interval,
        "region": _loop.region,
    }
    if _loop.last_result is not None:
        payload["summary"] = _loop.last_result.summary.to_dict()
    return payload
