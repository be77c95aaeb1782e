"""Integration-style tests for the FastAPI layer using fakes."""
from __future__ import annotations

import json
import tempfile
import time
import unittest
from pathlib import Path

from fastapi.testclient import TestClient

import fleetwatch.api as api_module
from fleetwatch.catalog import Catalog
from fleetwatch.config import Settings
from fleetwatch.history import HistoryStore
from fleetwatch.prober import Prober
from fleetwatch.service import MonitorService

ROWS = {
    "cameras": [
        {"IP Address": "10.0.0.1", "Device Name": "Gate", "Location": "North"},
        {"IP Address": "10.0.0.2", "Device Name": "Dock", "Location": "South"},
    ],
    "controllers": [{"IP Address": "10.0.5.1", "Device Name": "Door", "Location": "North"}],
}


async def _fake_probe(identifier: str) -> bool:
    return identifier != "10.0.0.2"


class ApiSimulationTest(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.history_path = Path(self._tmp.name, "deviceLogs.json")
        api_module._service = MonitorService(
            store=HistoryStore(self.history_path),
            prober=Prober(_fake_probe),
            catalog=Catalog.from_rows(ROWS),
            settings=Settings(history_path=self.history_path, poll_interval=30.0),
        )
        api_module._loop = None
        api_module._loop_task = None
        self.client = TestClient(api_module.app)
        self.client.__enter__()

    def tearDown(self) -> None:
        if api_module._loop is not None:
            api_module._loop.request_stop()
        self.client.__exit__(None, None, None)
        api_module._service = None
        api_module._loop = None
        api_module._loop_task = None
        self._tmp.cleanup()

    def test_health_endpoint_returns_ok(self) -> None:
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["status"], "ok")
        self.assertTrue(payload["catalog_loaded"])

    def test_devices_returns_summary_and_details(self) -> None:
        response = self.client.get("/devices")

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["summary"]["totalDevices"], 3)
        self.assertEqual(payload["summary"]["totalOffline"], 1)
        self.assertEqual(payload["summary"]["cameras"], {"total": 2, "online": 1, "offline": 1})
        dock = payload["details"]["cameras"][1]
        self.assertEqual(dock["ip_address"], "10.0.0.2")
        self.assertEqual(dock["status"], "Offline")

    def test_region_endpoint_filters(self) -> None:
        response = self.client.get("/regions/north")
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["summary"]["totalDevices"], 2)
        self.assertEqual(payload["summary"]["totalOnline"], 2)

    def test_identifiers_endpoint(self) -> None:
        response = self.client.get("/identifiers")
        self.assertEqual(response.json(), ["10.0.0.1", "10.0.0.2", "10.0.5.1"])

    def test_catalog_missing_yields_503(self) -> None:
        api_module._service.catalog = None
        self.assertEqual(self.client.get("/devices").status_code, 503)
        self.assertEqual(self.client.get("/identifiers").status_code, 503)

    def test_history_and_stats_endpoints(self) -> None:
        self.history_path.write_text(
            json.dumps(
                {
                    "10.0.0.1": [
                        {"status": "Offline", "timestamp": "2024-06-01T08:00:00+00:00"},
                        {"status": "Online", "timestamp": "2024-06-01T08:10:00+00:00"},
                        {"status": "Offline", "timestamp": "2024-06-01T08:40:00+00:00"},
                    ]
                }
            ),
            encoding="utf-8",
        )

        history = self.client.get("/devices/10.0.0.1/history").json()
        self.assertEqual(history["device_name"], "Gate")
        self.assertEqual(history["history"][0]["timestamp"], "2024-06-01T13:30:00.000+05:30")

        stats = self.client.get("/devices/10.0.0.1/stats").json()
        self.assertEqual(stats["uptime"], "0d 0h 30m")
        self.assertEqual(stats["downtimeDuration"], "0d 0h 10m")

    def test_history_for_unknown_device_is_empty(self) -> None:
        response = self.client.get("/devices/10.9.9.9/history")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["history"], [])

    def test_corrupted_store_yields_500(self) -> None:
        self.history_path.write_text("{oops", encoding="utf-8")
        response = self.client.get("/devices/10.0.0.1/stats")
        self.assertEqual(response.status_code, 500)

    def test_monitor_status_returns_idle_when_not_running(self) -> None:
        response = self.client.get("/monitor/status")
        self.assertEqual(response.json(), {"status": "idle"})
        self.assertEqual(self.client.post("/monitor/stop").json(), {"status": "idle"})

    def test_monitor_start_and_stop_flow(self) -> None:
        response = self.client.post("/monitor/start", params={"interval": 30.0, "region": "North"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "started")

        again = self.client.post("/monitor/start")
        self.assertEqual(again.json()["status"], "already-running")

        time.sleep(0.2)
        status = self.client.get("/monitor/status").json()
        self.assertEqual(status["status"], "running")
        self.assertEqual(status["region"], "North")
        self.assertGreaterEqual(status["cycles"], 1)

        stop_response = self.client.post("/monitor/stop")
        self.assertEqual(stop_response.json(), {"status": "stopped"})
        self.assertEqual(self.client.get("/monitor/status").json(), {"status": "idle"})


if __name__ == "__main__":
    unittest.main()
