import tempfile
import unittest
from datetime import date, datetime
from pathlib import Path

from station_scheduler import CafeProfile, CafeYamlRepository, ReservationStatus
from station_scheduler.web_app import create_app


def make_profile() -> CafeProfile:
    return CafeProfile.from_dict(
        {
            "cafe_id": "test-cafe",
            "name": "Test Cafe",
            "opening": "10:00 am",
            "closing": "12:00 am",
            "capacity": {"ps5": 2, "pool": 1},
            "pricing": {"ps5": {1: {30: 60, 60: 100}}, "pool": {1: {60: 150}}},
        }
    )


def booking_payload(start: str, duration: int = 60, quantity: int = 1, **extra) -> dict:
    payload = {
        "cafe_id": "test-cafe",
        "station_type": "ps5",
        "date": "2026-03-06",
        "start_clock": start,
        "duration_minutes": duration,
        "quantity": quantity,
        "customer_name": "Diya",
    }
    payload.update(extra)
    return payload


class TestWebApp(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_dir = tempfile.TemporaryDirectory()
        self.data_dir = Path(self._temp_dir.name) / "data"
        self.repo = CafeYamlRepository(self.data_dir)
        self.repo.save_profile(make_profile())
        self.now = datetime(2026, 3, 6, 18, 50)
        self.app = create_app(self.data_dir, now_provider=lambda: self.now)
        self.client = self.app.test_client()

    def tearDown(self) -> None:
        self._temp_dir.cleanup()

    def test_booking_accepted_then_rejected_with_next_slot(self) -> None:
        first = self.client.post("/api/bookings", json=booking_payload("6:00 pm", 60, 1))
        self.assertEqual(first.status_code, 201)
        first_payload = first.get_json()
        self.assertTrue(first_payload["ok"])
        self.assertEqual(first_payload["total_price"], 100)
        self.assertIn("reservation_id", first_payload)
        self.assertEqual(first.headers["Access-Control-Allow-Origin"], "*")

        second = self.client.post("/api/bookings", json=booking_payload("6:30 pm", 30, 2))
        self.assertEqual(second.status_code, 409)
        second_payload = second.get_json()
        self.assertFalse(second_payload["ok"])
        self.assertEqual(second_payload["reason"], "CapacityExceeded")
        self.assertEqual(second_payload["available"], 1)
        self.assertEqual(second_payload["next_available"], "7:00 pm")

    def test_booking_with_bad_input(self) -> None:
        bad_time = self.client.post("/api/bookings", json=booking_payload("25:00"))
        self.assertEqual(bad_time.status_code, 400)
        self.assertEqual(bad_time.get_json()["reason"], "InvalidTimeFormat")

        bad_date = self.client.post("/api/bookings", json=booking_payload("6:00 pm", date="06/03/2026"))
        self.assertEqual(bad_date.status_code, 400)
        self.assertEqual(bad_date.get_json()["reason"], "InvalidRequest")

    def test_booking_status_field_is_limited_to_new_states(self) -> None:
        for status in ["completed", "in-progress", "cancelled"]:
            with self.subTest(status=status):
                response = self.client.post("/api/bookings", json=booking_payload("2:00 pm", status=status))
                self.assertEqual(response.status_code, 400)
                self.assertEqual(response.get_json()["reason"], "InvalidRequest")
        self.assertEqual(self.repo.list_reservations("test-cafe", date(2026, 3, 6)), [])

        pending = self.client.post("/api/bookings", json=booking_payload("2:00 pm", status="pending"))
        self.assertEqual(pending.status_code, 201)
        saved = self.repo.list_reservations("test-cafe", date(2026, 3, 6))
        self.assertEqual([row.status for row in saved], [ReservationStatus.PENDING])

    def test_json_bodies_must_be_objects(self) -> None:
        booking = self.client.post("/api/bookings", json=[1, 2])
        self.assertEqual(booking.status_code, 400)
        self.assertEqual(booking.get_json()["reason"], "InvalidRequest")

        for path in ["/api/bookings/missing/status", "/api/timers/start"]:
            with self.subTest(path=path):
                response = self.client.post(path, json=["status", "pending"])
                self.assertEqual(response.status_code, 400)
                self.assertFalse(response.get_json()["ok"])

        scalar = self.client.post("/api/bookings", json="6:00 pm")
        self.assertEqual(scalar.status_code, 400)

    def test_status_change_route(self) -> None:
        created = self.client.post("/api/bookings", json=booking_payload("6:00 pm")).get_json()
        reservation_id = created["reservation_id"]

        moved = self.client.post(f"/api/bookings/{reservation_id}/status", json={"status": "in-progress"})
        self.assertEqual(moved.status_code, 200)
        self.assertEqual(moved.get_json()["reservation"]["status"], "in-progress")

        backwards = self.client.post(f"/api/bookings/{reservation_id}/status", json={"status": "pending"})
        self.assertEqual(backwards.status_code, 400)

        unknown = self.client.post(f"/api/bookings/{reservation_id}/status", json={"status": "paused"})
        self.assertEqual(unknown.status_code, 400)

    def test_availability_and_next_available(self) -> None:
        self.client.post("/api/bookings", json=booking_payload("6:00 pm", 60, 2))

        overview = self.client.get(
            "/api/availability",
            query_string={"cafe_id": "test-cafe", "date": "2026-03-06", "start_clock": "6:00 pm", "duration_minutes": 60},
        )
        self.assertEqual(overview.status_code, 200)
        rows = {row["station_type"]: row for row in overview.get_json()["stations"]}
        self.assertEqual(rows["ps5"]["available"], 0)
        self.assertEqual(rows["ps5"]["next_available"], "7:00 pm")
        self.assertEqual(rows["pool"]["available"], 1)

        found = self.client.get(
            "/api/next-available",
            query_string={
                "cafe_id": "test-cafe",
                "station_type": "PS5",
                "date": "2026-03-06",
                "start_clock": "6:15 pm",
                "duration_minutes": 30,
            },
        )
        self.assertEqual(found.get_json()["next_available"], "7:00 pm")

        bad = self.client.get("/api/next-available?cafe_id=test-cafe&station_type=ps5&start_clock=later")
        self.assertEqual(bad.status_code, 400)

    def test_unknown_cafe_returns_404(self) -> None:
        response = self.client.get("/api/live-status?cafe_id=nowhere")
        self.assertEqual(response.status_code, 404)
        self.assertFalse(response.get_json()["ok"])

    def test_live_status_and_session_feed(self) -> None:
        created = self.client.post("/api/bookings", json=booking_payload("6:00 pm", 60, 1)).get_json()
        self.repo.update_status(created["reservation_id"], ReservationStatus.IN_PROGRESS)

        live = self.client.get("/api/live-status?cafe_id=test-cafe&station_type=ps5").get_json()
        self.assertEqual(live["poll_interval_seconds"], 5)
        units = live["stations"][0]["units"]
        self.assertEqual(units[0]["label"], "ps5-01")
        self.assertEqual(units[0]["status"], "ending_soon")
        self.assertEqual(units[1]["status"], "free")

        running = self.client.get("/api/sessions?cafe_id=test-cafe").get_json()
        self.assertEqual(running["sessions"][0]["state"], "running")
        self.assertEqual(running["ended"], [])

        self.now = datetime(2026, 3, 6, 19, 0)
        ended = self.client.get("/api/sessions?cafe_id=test-cafe").get_json()
        self.assertEqual(len(ended["ended"]), 1)
        self.assertEqual(ended["ended"][0]["customer_name"], "Diya")

        self.now = datetime(2026, 3, 6, 19, 20)
        later = self.client.get("/api/sessions?cafe_id=test-cafe").get_json()
        self.assertEqual(later["ended"], [])
        self.assertEqual(len(later["recently_ended"]), 1)
        self.assertEqual(later["auto_completed"], 1)

    def test_timer_routes(self) -> None:
        started = self.client.post(
            "/api/timers/start",
            json={"cafe_id": "test-cafe", "customer_name": "Member", "station_type": "ps5", "station_number": 2, "hours_remaining": 3},
        )
        self.assertEqual(started.status_code, 201)
        subscription_id = started.get_json()["subscription"]["subscription_id"]

        live = self.client.get("/api/live-status?cafe_id=test-cafe&station_type=ps5").get_json()
        self.assertEqual(live["stations"][0]["units"][1]["occupant_kind"], "subscription")

        self.now = datetime(2026, 3, 6, 19, 50)
        stopped = self.client.post(f"/api/timers/{subscription_id}/stop")
        self.assertEqual(stopped.status_code, 200)
        self.assertEqual(stopped.get_json()["subscription"]["hours_remaining"], 2.0)

        again = self.client.post(f"/api/timers/{subscription_id}/stop")
        self.assertEqual(again.status_code, 400)

        missing_name = self.client.post("/api/timers/start", json={"station_type": "ps5"})
        self.assertEqual(missing_name.status_code, 400)


if __name__ == "__main__":
    unittest.main()
