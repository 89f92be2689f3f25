from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any, Iterable

from .clock import MINUTES_PER_DAY, intervals_overlap, session_bounds, whole_minutes
from .stations import StationType, normalize_station_type


class ReservationStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    STOPPED = "stopped"


_ALLOWED_TRANSITIONS: dict[ReservationStatus, set[ReservationStatus]] = {
    ReservationStatus.PENDING: {ReservationStatus.CONFIRMED, ReservationStatus.IN_PROGRESS, ReservationStatus.CANCELLED},
    ReservationStatus.CONFIRMED: {ReservationStatus.IN_PROGRESS, ReservationStatus.CANCELLED},
    ReservationStatus.IN_PROGRESS: {ReservationStatus.COMPLETED, ReservationStatus.CANCELLED},
    ReservationStatus.COMPLETED: set(),
    ReservationStatus.CANCELLED: set(),
}


def can_transition(current: ReservationStatus, target: ReservationStatus) -> bool:
    return target in _ALLOWED_TRANSITIONS[current]


@dataclass(frozen=True)
class Reservation:
    reservation_id: str
    cafe_id: str
    station_type: StationType
    quantity: int
    start_minute: int
    duration_minutes: int
    booking_date: date
    status: ReservationStatus
    created_at: datetime
    customer_name: str = "Guest"
    controller_count: int = 1
    unit_price: int = 0
    total_price: int = 0
    source: str = "online"
    pricing_undefined: bool = False

    def __post_init__(self) -> None:
        if self.quantity <= 0:
            raise ValueError("Reservation quantity must be greater than zero.")
        if self.duration_minutes <= 0:
            raise ValueError("Reservation duration must be greater than zero.")
        if not 0 <= self.start_minute < MINUTES_PER_DAY:
            raise ValueError("Reservation start minute must be within the day (0-1439).")

    @property
    def end_minute(self) -> int:
        return self.start_minute + self.duration_minutes

    @property
    def holds_capacity(self) -> bool:
        return self.status != ReservationStatus.CANCELLED

    def bounds(self) -> tuple[datetime, datetime]:
        return session_bounds(self.booking_date, self.start_minute, self.duration_minutes)

    def with_status(self, status: ReservationStatus) -> "Reservation":
        return replace(self, status=status)

    def to_dict(self) -> dict[str, Any]:
        return {
            "reservation_id": self.reservation_id,
            "cafe_id": self.cafe_id,
            "station_type": self.station_type.value,
            "quantity": self.quantity,
            "start_minute": self.start_minute,
            "duration_minutes": self.duration_minutes,
            "booking_date": self.booking_date.isoformat(),
            "status": self.status.value,
            "created_at": self.created_at.isoformat(timespec="seconds"),
            "customer_name": self.customer_name,
            "controller_count": self.controller_count,
            "unit_price": self.unit_price,
            "total_price": self.total_price,
            "source": self.source,
            "pricing_undefined": self.pricing_undefined,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "Reservation":
        return Reservation(
            reservation_id=str(data["reservation_id"]),
            cafe_id=str(data["cafe_id"]),
            station_type=normalize_station_type(data["station_type"]),
            quantity=int(data["quantity"]),
            start_minute=int(data["start_minute"]),
            duration_minutes=int(data["duration_minutes"]),
            booking_date=date.fromisoformat(str(data["booking_date"])),
            status=ReservationStatus(str(data["status"])),
            created_at=datetime.fromisoformat(str(data["created_at"])),
            customer_name=str(data.get("customer_name") or "Guest"),
            controller_count=int(data.get("controller_count", 1)),
            unit_price=int(data.get("unit_price", 0)),
            total_price=int(data.get("total_price", 0)),
            source=str(data.get("source") or "online"),
            pricing_undefined=bool(data.get("pricing_undefined", False)),
        )


@dataclass(frozen=True)
class TimerSubscription:
    subscription_id: str
    cafe_id: str
    customer_name: str
    station_type: StationType
    start_timestamp: datetime
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    station_number: int | None = None
    stopped_at: datetime | None = None
    hours_remaining: float = 0.0

    @property
    def is_running(self) -> bool:
        return self.status == SubscriptionStatus.ACTIVE

    def elapsed_minutes(self, now: datetime) -> int:
        until = self.stopped_at if self.stopped_at is not None else now
        return max(0, whole_minutes(until - self.start_timestamp))

    def stop(self, now: datetime) -> "TimerSubscription":
        if not self.is_running:
            raise ValueError("Timer is already stopped.")
        used_hours = max(0.0, (now - self.start_timestamp).total_seconds() / 3600)
        return replace(
            self,
            status=SubscriptionStatus.STOPPED,
            stopped_at=now,
            hours_remaining=round(max(0.0, self.hours_remaining - used_hours), 4),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "subscription_id": self.subscription_id,
            "cafe_id": self.cafe_id,
            "customer_name": self.customer_name,
            "station_type": self.station_type.value,
            "start_timestamp": self.start_timestamp.isoformat(timespec="seconds"),
            "status": self.status.value,
            "station_number": self.station_number,
            "stopped_at": self.stopped_at.isoformat(timespec="seconds") if self.stopped_at else None,
            "hours_remaining": self.hours_remaining,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "TimerSubscription":
        return TimerSubscription(
            subscription_id=str(data["subscription_id"]),
            cafe_id=str(data["cafe_id"]),
            customer_name=str(data.get("customer_name") or "Member"),
            station_type=normalize_station_type(data["station_type"]),
            start_timestamp=datetime.fromisoformat(str(data["start_timestamp"])),
            status=SubscriptionStatus(str(data.get("status", "active"))),
            station_number=(int(data["station_number"]) if data.get("station_number") is not None else None),
            stopped_at=(datetime.fromisoformat(str(data["stopped_at"])) if data.get("stopped_at") else None),
            hours_remaining=float(data.get("hours_remaining", 0.0)),
        )


@dataclass(frozen=True)
class CapacityCheck:
    ok: bool
    capacity: int
    committed: int
    requested: int

    @property
    def available(self) -> int:
        return max(0, self.capacity - self.committed)


def scope_dates(booking_date: date) -> tuple[date, date, date]:
    """Days whose reservations can touch booking_date's minute line."""
    return booking_date - timedelta(days=1), booking_date, booking_date + timedelta(days=1)


def anchored_interval(reservation: Reservation, anchor_date: date) -> tuple[int, int]:
    """Place a reservation on anchor_date's unwrapped minute line."""
    offset = (reservation.booking_date - anchor_date).days * MINUTES_PER_DAY
    start = reservation.start_minute + offset
    return start, start + reservation.duration_minutes


def committed_peak(
    station_type: StationType,
    anchor_date: date,
    window_start: int,
    window_end: int,
    reservations: Iterable[Reservation],
) -> int:
    """Highest concurrent quantity held inside [window_start, window_end)."""
    events: list[tuple[int, int]] = []
    for reservation in reservations:
        if reservation.station_type != station_type or not reservation.holds_capacity:
            continue
        start, end = anchored_interval(reservation, anchor_date)
        if not intervals_overlap(window_start, window_end, start, end):
            continue
        events.append((max(start, window_start), reservation.quantity))
        events.append((min(end, window_end), -reservation.quantity))

    # releases sort before claims at the same minute: intervals are half-open
    events.sort()
    peak = 0
    running = 0
    for _, delta in events:
        running += delta
        peak = max(peak, running)
    return peak


def check_capacity(
    station_type: StationType,
    anchor_date: date,
    start_minute: int,
    duration_minutes: int,
    quantity: int,
    capacity: int,
    reservations: Iterable[Reservation],
) -> CapacityCheck:
    if quantity <= 0:
        raise ValueError("quantity must be greater than zero")
    if duration_minutes <= 0:
        raise ValueError("duration must be greater than zero")

    committed = committed_peak(
        station_type,
        anchor_date,
        start_minute,
        start_minute + duration_minutes,
        reservations,
    )
    return CapacityCheck(
        ok=committed + quantity <= capacity,
        capacity=capacity,
        committed=committed,
        requested=quantity,
    )


def minute_occupancy(
    station_type: StationType,
    anchor_date: date,
    reservations: Iterable[Reservation],
    span_minutes: int = 2 * MINUTES_PER_DAY,
) -> list[int]:
    """Per-minute committed quantity on anchor_date's line, built with a difference array."""
    diff = [0] * (span_minutes + 1)
    for reservation in reservations:
        if reservation.station_type != station_type or not reservation.holds_capacity:
            continue
        start, end = anchored_interval(reservation, anchor_date)
        start = max(0, start)
        end = min(span_minutes, end)
        if start >= end:
            continue
        diff[start] += reservation.quantity
        diff[end] -= reservation.quantity

    occupancy: list[int] = []
    running = 0
    for minute in range(span_minutes):
        running += diff[minute]
        occupancy.append(running)
    return occupancy
