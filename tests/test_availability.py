import unittest
from datetime import date, datetime

from station_scheduler import (
    Reservation,
    ReservationStatus,
    StationType,
    availability_overview,
    check_capacity,
    find_next_available,
    parse_clock,
)

DAY = date(2026, 3, 6)


def make_reservation(reservation_id: str, start: str, duration: int, quantity: int = 1,
                     station_type: StationType = StationType.PS5) -> Reservation:
    return Reservation(
        reservation_id=reservation_id,
        cafe_id="test-cafe",
        station_type=station_type,
        quantity=quantity,
        start_minute=parse_clock(start),
        duration_minutes=duration,
        booking_date=DAY,
        status=ReservationStatus.CONFIRMED,
        created_at=datetime(2026, 3, 1, 9, 0),
    )


class TestFindNextAvailable(unittest.TestCase):
    def test_returns_candidate_when_it_already_fits(self) -> None:
        found = find_next_available(StationType.PS5, DAY, parse_clock("5:00 pm"), 60, 1, 2, [])
        self.assertEqual(found.minute, 17 * 60)
        self.assertEqual(found.steps, 0)

    def test_every_skipped_step_was_rejected(self) -> None:
        existing = [
            make_reservation("A", "6:00 pm", 120, quantity=2),
            make_reservation("B", "8:00 pm", 30, quantity=1),
        ]
        start = parse_clock("6:00 pm")

        found = find_next_available(StationType.PS5, DAY, start, 60, 2, 2, existing)

        self.assertEqual(found.clock, "8:30 pm")
        for minute in range(start, found.minute, 15):
            self.assertFalse(check_capacity(StationType.PS5, DAY, minute, 60, 2, 2, existing).ok)
        self.assertTrue(check_capacity(StationType.PS5, DAY, found.minute, 60, 2, 2, existing).ok)

    def test_no_availability_before_horizon(self) -> None:
        existing = [make_reservation("V", "9:00 pm", 180, station_type=StationType.VR)]
        found = find_next_available(
            StationType.VR, DAY, parse_clock("9:30 pm"), 60, 1, 1, existing,
            horizon_minute=parse_clock("11:00 pm"),
        )
        self.assertIsNone(found)

    def test_quantity_above_capacity_is_never_available(self) -> None:
        self.assertIsNone(find_next_available(StationType.POOL, DAY, 600, 60, 3, 2, []))

    def test_custom_step(self) -> None:
        existing = [make_reservation("A", "6:00 pm", 40, quantity=1)]
        found = find_next_available(StationType.PS5, DAY, parse_clock("6:00 pm"), 30, 1, 1, existing, step_minutes=10)
        self.assertEqual(found.clock, "6:40 pm")

    def test_invalid_step_raises(self) -> None:
        with self.assertRaises(ValueError):
            find_next_available(StationType.PS5, DAY, 600, 60, 1, 1, [], step_minutes=0)


class TestAvailabilityOverview(unittest.TestCase):
    def test_overview_lists_configured_stations(self) -> None:
        capacities = {StationType.PS5: 2, StationType.POOL: 1, StationType.VR: 0}
        existing = [
            make_reservation("A", "6:00 pm", 60, quantity=1),
            make_reservation("P", "5:30 pm", 60, quantity=1, station_type=StationType.POOL),
        ]

        rows = availability_overview(capacities, DAY, parse_clock("6:00 pm"), 60, existing)
        by_type = {row.station_type: row for row in rows}

        self.assertEqual(set(by_type), {StationType.PS5, StationType.POOL})
        self.assertEqual(by_type[StationType.PS5].available, 1)
        self.assertIsNone(by_type[StationType.PS5].next_available)
        self.assertEqual(by_type[StationType.POOL].available, 0)
        self.assertEqual(by_type[StationType.POOL].next_available.clock, "6:30 pm")

        payload = by_type[StationType.POOL].to_dict()
        self.assertEqual(payload["label"], "Pool Table")
        self.assertEqual(payload["next_available"], "6:30 pm")


if __name__ == "__main__":
    unittest.main()
