from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Iterable, Mapping

from .booking import Reservation, check_capacity
from .clock import MINUTES_PER_DAY, format_clock
from .config import SCAN_STEP_MINUTES
from .stations import StationType


@dataclass(frozen=True)
class NextAvailable:
    minute: int
    clock: str
    steps: int

    def to_dict(self) -> dict[str, Any]:
        return {"minute": self.minute, "clock": self.clock, "steps": self.steps}


@dataclass(frozen=True)
class StationAvailability:
    station_type: StationType
    total: int
    booked: int
    next_available: NextAvailable | None

    @property
    def available(self) -> int:
        return max(0, self.total - self.booked)

    def to_dict(self) -> dict[str, Any]:
        return {
            "station_type": self.station_type.value,
            "label": self.station_type.label,
            "total": self.total,
            "booked": self.booked,
            "available": self.available,
            "next_available": self.next_available.clock if self.next_available else None,
        }


def find_next_available(
    station_type: StationType,
    anchor_date: date,
    start_minute: int,
    duration_minutes: int,
    quantity: int,
    capacity: int,
    reservations: Iterable[Reservation],
    step_minutes: int = SCAN_STEP_MINUTES,
    horizon_minute: int = MINUTES_PER_DAY,
) -> NextAvailable | None:
    """Scan forward from start_minute in fixed steps for the first slot that fits.

    Starts are bounded by horizon_minute (closing time); None means the
    request cannot be served on anchor_date.
    """
    if step_minutes <= 0:
        raise ValueError("step_minutes must be greater than zero")
    if quantity > capacity:
        return None

    pool = list(reservations)
    cursor = start_minute
    steps = 0
    while cursor < horizon_minute:
        result = check_capacity(station_type, anchor_date, cursor, duration_minutes, quantity, capacity, pool)
        if result.ok:
            return NextAvailable(minute=cursor, clock=format_clock(cursor), steps=steps)
        cursor += step_minutes
        steps += 1
    return None


def availability_overview(
    capacities: Mapping[StationType, int],
    anchor_date: date,
    start_minute: int,
    duration_minutes: int,
    reservations: Iterable[Reservation],
    step_minutes: int = SCAN_STEP_MINUTES,
    horizon_minute: int = MINUTES_PER_DAY,
) -> list[StationAvailability]:
    pool = list(reservations)
    overview: list[StationAvailability] = []
    for station_type in StationType:
        total = capacities.get(station_type, 0)
        if total <= 0:
            continue

        check = check_capacity(station_type, anchor_date, start_minute, duration_minutes, 1, total, pool)
        next_available = None
        if not check.ok:
            next_available = find_next_available(
                station_type,
                anchor_date,
                start_minute,
                duration_minutes,
                1,
                total,
                pool,
                step_minutes=step_minutes,
                horizon_minute=horizon_minute,
            )
        overview.append(
            StationAvailability(
                station_type=station_type,
                total=total,
                booked=min(total, check.committed),
                next_available=next_available,
            )
        )
    return overview
