from __future__ import annotations

from datetime import datetime
from pathlib import Path
import logging
import traceback

from station_scheduler import BookingEngine, BookingRequest, CafeYamlRepository


def main() -> int:
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s: %(message)s")
    print("[INFO] Station Scheduler Quick Check")
    print("[INFO] Seeding demo café data...")

    repo = CafeYamlRepository("data")
    now = datetime(2026, 2, 24, 18, 10)

    generated = repo.seed_demo_data(now=now, overwrite=True)
    cafe_id = generated[0].cafe_id if generated else "neon-arcade"
    print(f"[OK] Demo reservations generated: {len(generated)} records")

    engine = BookingEngine(repo, clock=lambda: now)
    response = engine.book(
        BookingRequest(
            cafe_id=cafe_id,
            station_type="ps5",
            booking_date=now.date(),
            start_clock="7:30 pm",
            duration_minutes=90,
            quantity=2,
            controller_count=2,
            customer_name="Quick Check",
        )
    )
    if response.accepted:
        print(f"[OK] Booked 2x PS5 at 7:30 pm: total {response.total_price} (id {response.reservation_id})")
    else:
        print(f"[OK] Booking rejected: {response.reason.value}, next available {response.next_available}")

    for board in engine.live_status(cafe_id, now=now):
        print(f"[OK] {board.station_type.label}: {board.busy} busy / {board.free} free")

    found = engine.next_available(cafe_id, "pool", now.date(), "8:00 pm", 60)
    print(f"[OK] Next pool table from 8:00 pm: {found.clock if found else 'none today'}")
    print(f"[OK] Reservations YAML: {Path('data/reservations.yaml').resolve()}")
    print(f"[OK] Event Log YAML: {Path('data/scheduler_events.yaml').resolve()}")

    print("[DONE] Quick check completed successfully.")
    return 0


if __name__ == "__main__":
    try:
        raise SystemExit(main())
    except Exception:
        print("[ERROR] Quick check failed.")
        traceback.print_exc()
        raise SystemExit(1)
