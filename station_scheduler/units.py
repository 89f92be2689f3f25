from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Iterable

from .booking import Reservation, ReservationStatus, TimerSubscription
from .clock import format_clock, minute_of, minutes_left
from .config import ENDING_SOON_MINUTES
from .stations import StationType, unit_label

logger = logging.getLogger(__name__)

_FINISHED = {ReservationStatus.CANCELLED, ReservationStatus.COMPLETED}


class UnitState(str, Enum):
    FREE = "free"
    BUSY = "busy"
    ENDING_SOON = "ending_soon"


@dataclass(frozen=True)
class UnitStatus:
    unit_number: int
    label: str
    status: UnitState
    occupant_id: str | None = None
    occupant_kind: str | None = None
    customer_name: str | None = None
    started_at: str | None = None
    ends_at: str | None = None
    remaining_minutes: int | None = None
    elapsed_minutes: int | None = None
    controller_count: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "unit_number": self.unit_number,
            "label": self.label,
            "status": self.status.value,
            "occupant_id": self.occupant_id,
            "occupant_kind": self.occupant_kind,
            "customer_name": self.customer_name,
            "started_at": self.started_at,
            "ends_at": self.ends_at,
            "remaining_minutes": self.remaining_minutes,
            "elapsed_minutes": self.elapsed_minutes,
            "controller_count": self.controller_count,
        }


@dataclass(frozen=True)
class StationBoard:
    station_type: StationType
    capacity: int
    units: tuple[UnitStatus, ...]
    unplaced: tuple[str, ...] = ()

    @property
    def busy(self) -> int:
        return sum(1 for unit in self.units if unit.status != UnitState.FREE)

    @property
    def free(self) -> int:
        return self.capacity - self.busy

    def to_dict(self) -> dict[str, Any]:
        return {
            "station_type": self.station_type.value,
            "label": self.station_type.label,
            "total": self.capacity,
            "free": self.free,
            "busy": self.busy,
            "units": [unit.to_dict() for unit in self.units],
            "unplaced": list(self.unplaced),
        }


def covers(reservation: Reservation, now: datetime) -> bool:
    if reservation.status in _FINISHED:
        return False
    start, end = reservation.bounds()
    return start <= now < end


def assign_units(
    station_type: StationType,
    capacity: int,
    reservations: Iterable[Reservation],
    subscriptions: Iterable[TimerSubscription],
    now: datetime,
    ending_soon_minutes: int = ENDING_SOON_MINUTES,
) -> StationBoard:
    """Map the sessions running at `now` onto numbered units 1..capacity.

    Subscriptions bound to a station number keep that unit. Everything else
    is packed first-fit in arrival order, each entry taking `quantity`
    consecutive free units.
    """
    claimed: dict[int, UnitStatus] = {}
    queue: list[tuple[datetime, int, int, Reservation | TimerSubscription]] = []

    for index, subscription in enumerate(subscriptions):
        if subscription.station_type != station_type or not subscription.is_running:
            continue
        number = subscription.station_number
        if number is not None and 1 <= number <= capacity and number not in claimed:
            claimed[number] = _subscription_unit(station_type, number, subscription, now)
        else:
            queue.append((subscription.start_timestamp, 0, index, subscription))

    for index, reservation in enumerate(reservations):
        if reservation.station_type != station_type or not covers(reservation, now):
            continue
        queue.append((reservation.created_at, 1, index, reservation))

    queue.sort(key=lambda item: item[:3])

    free_units = [number for number in range(1, capacity + 1) if number not in claimed]
    cursor = 0
    unplaced: list[str] = []
    for *_, entry in queue:
        if isinstance(entry, TimerSubscription):
            needed = 1
            entry_id = entry.subscription_id
        else:
            needed = entry.quantity
            entry_id = entry.reservation_id

        slots = free_units[cursor:cursor + needed]
        if len(slots) < needed:
            unplaced.append(entry_id)
            continue
        cursor += needed

        for number in slots:
            if isinstance(entry, TimerSubscription):
                claimed[number] = _subscription_unit(station_type, number, entry, now)
            else:
                claimed[number] = _reservation_unit(station_type, number, entry, now, ending_soon_minutes)

    if unplaced:
        logger.warning(
            "%s sessions on %s could not be placed on %s units: %s",
            len(unplaced),
            station_type.value,
            capacity,
            ", ".join(unplaced),
        )

    units = tuple(
        claimed.get(number) or UnitStatus(unit_number=number, label=unit_label(station_type, number), status=UnitState.FREE)
        for number in range(1, capacity + 1)
    )
    return StationBoard(station_type=station_type, capacity=capacity, units=units, unplaced=tuple(unplaced))


def _reservation_unit(
    station_type: StationType,
    number: int,
    reservation: Reservation,
    now: datetime,
    ending_soon_minutes: int,
) -> UnitStatus:
    _, end = reservation.bounds()
    remaining = minutes_left(end - now)
    status = UnitState.ENDING_SOON if 0 < remaining <= ending_soon_minutes else UnitState.BUSY
    return UnitStatus(
        unit_number=number,
        label=unit_label(station_type, number),
        status=status,
        occupant_id=reservation.reservation_id,
        occupant_kind="reservation",
        customer_name=reservation.customer_name,
        started_at=format_clock(reservation.start_minute),
        ends_at=format_clock(reservation.end_minute),
        remaining_minutes=remaining,
        controller_count=reservation.controller_count,
    )


def _subscription_unit(
    station_type: StationType,
    number: int,
    subscription: TimerSubscription,
    now: datetime,
) -> UnitStatus:
    return UnitStatus(
        unit_number=number,
        label=unit_label(station_type, number),
        status=UnitState.BUSY,
        occupant_id=subscription.subscription_id,
        occupant_kind="subscription",
        customer_name=subscription.customer_name,
        started_at=format_clock(minute_of(subscription.start_timestamp)),
        elapsed_minutes=subscription.elapsed_minutes(now),
    )
