import asyncio
import tempfile
import unittest
from datetime import datetime
from pathlib import Path
from unittest import mock

import station_mcp_server
from station_scheduler import BookingEngine, CafeYamlRepository


class TestStationMcpServer(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_dir = tempfile.TemporaryDirectory()
        repo = CafeYamlRepository(Path(self._temp_dir.name) / "data")
        now = datetime(2026, 3, 6, 18, 10)
        repo.seed_demo_data(now=now)
        engine = BookingEngine(repo, clock=lambda: now)
        patcher = mock.patch.object(station_mcp_server, "ENGINE", engine)
        patcher.start()
        self.addCleanup(patcher.stop)
        self.addCleanup(self._temp_dir.cleanup)

    def test_station_types_resource(self) -> None:
        rows = asyncio.run(station_mcp_server.list_station_types())
        labels = {row["station_type"]: row["label"] for row in rows}
        self.assertEqual(labels["steering_wheel"], "Racing Setup")
        self.assertEqual(len(rows), 9)

    def test_live_status_tool(self) -> None:
        boards = station_mcp_server.live_status("neon-arcade", "ps5")
        self.assertEqual(len(boards), 1)
        self.assertEqual(boards[0]["total"], 5)
        self.assertEqual(len(boards[0]["units"]), 5)

    def test_check_availability_and_book(self) -> None:
        rows = station_mcp_server.check_availability("neon-arcade", "2026-03-07", "2:00 pm", 60)
        vr = next(row for row in rows if row["station_type"] == "vr")
        self.assertEqual(vr["available"], 1)

        booked = station_mcp_server.book_station("neon-arcade", "vr", "2026-03-07", "2:00 pm", 60)
        rejected = station_mcp_server.book_station("neon-arcade", "vr", "2026-03-07", "2:30 pm", 30)

        self.assertTrue(booked["accepted"])
        self.assertEqual(booked["total_price"], 250)
        self.assertFalse(rejected["accepted"])
        self.assertEqual(rejected["reason"], "CapacityExceeded")
        self.assertEqual(rejected["next_available"], "3:00 pm")


if __name__ == "__main__":
    unittest.main()
