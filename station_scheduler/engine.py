from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Callable
from uuid import uuid4

from .availability import NextAvailable, StationAvailability, availability_overview, find_next_available
from .booking import CapacityCheck, Reservation, ReservationStatus, check_capacity, scope_dates
from .clock import MINUTES_PER_DAY, InvalidTimeFormat, format_clock, minute_of, parse_clock
from .config import CafeProfile, EngineSettings
from .pricing import resolve_unit_price
from .session_timer import SessionTimerTracker, TimerSnapshot
from .stations import StationType, normalize_station_type
from .store import CafeDataStore, PersistenceConflict, UnknownCafeError, reservations_in_scope
from .units import StationBoard, assign_units

logger = logging.getLogger(__name__)

BOOKABLE_STATUSES = frozenset({ReservationStatus.PENDING, ReservationStatus.CONFIRMED})


class RejectReason(str, Enum):
    CAPACITY_EXCEEDED = "CapacityExceeded"
    INVALID_TIME_FORMAT = "InvalidTimeFormat"
    PRICING_UNDEFINED = "PricingUndefined"
    NO_AVAILABILITY_TODAY = "NoAvailabilityToday"
    INVALID_REQUEST = "InvalidRequest"


@dataclass(frozen=True)
class BookingRequest:
    cafe_id: str
    station_type: StationType | str
    booking_date: date
    start_clock: str
    duration_minutes: int
    quantity: int = 1
    controller_count: int = 1
    customer_name: str = "Guest"
    source: str = "online"
    initial_status: ReservationStatus = ReservationStatus.CONFIRMED

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "BookingRequest":
        status = ReservationStatus(str(data.get("status") or ReservationStatus.CONFIRMED.value))
        if status not in BOOKABLE_STATUSES:
            raise ValueError(f"A new booking cannot start as {status.value}.")
        return BookingRequest(
            cafe_id=str(data.get("cafe_id", "")).strip(),
            station_type=str(data.get("station_type", "")),
            booking_date=date.fromisoformat(str(data.get("date", ""))),
            start_clock=str(data.get("start_clock", "")),
            duration_minutes=int(data.get("duration_minutes", 60)),
            quantity=int(data.get("quantity", 1)),
            controller_count=int(data.get("controller_count", 1)),
            customer_name=str(data.get("customer_name") or "Guest"),
            source=str(data.get("source") or "online"),
            initial_status=status,
        )


@dataclass(frozen=True)
class BookingResponse:
    accepted: bool
    unit_price: int = 0
    total_price: int = 0
    reservation_id: str | None = None
    reason: RejectReason | None = None
    message: str = ""
    available: int | None = None
    next_available: str | None = None
    pricing_undefined: bool = False

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"accepted": self.accepted}
        if self.accepted:
            payload.update(
                {
                    "unit_price": self.unit_price,
                    "total_price": self.total_price,
                    "reservation_id": self.reservation_id,
                    "pricing_undefined": self.pricing_undefined,
                }
            )
        else:
            payload.update(
                {
                    "reason": self.reason.value if self.reason else None,
                    "message": self.message,
                    "available": self.available,
                    "next_available": self.next_available,
                }
            )
        return payload


def _reject(reason: RejectReason, message: str, **extra: Any) -> BookingResponse:
    return BookingResponse(accepted=False, reason=reason, message=message, **extra)


class BookingEngine:
    def __init__(
        self,
        store: CafeDataStore,
        clock: Callable[[], datetime] | None = None,
        settings: EngineSettings | None = None,
        tracker: SessionTimerTracker | None = None,
    ) -> None:
        self.store = store
        self.clock: Callable[[], datetime] = clock or datetime.now
        self.settings = settings or EngineSettings()
        self.tracker = tracker or SessionTimerTracker(
            tick_minutes=self.settings.timer_tick_minutes,
            retention_minutes=self.settings.notified_retention_minutes,
            max_entries=self.settings.notified_max_entries,
        )

    def book(self, request: BookingRequest) -> BookingResponse:
        try:
            station_type = normalize_station_type(request.station_type)
        except ValueError as error:
            return _reject(RejectReason.INVALID_REQUEST, str(error))

        if request.quantity <= 0:
            return _reject(RejectReason.INVALID_REQUEST, "quantity must be greater than zero")
        if request.duration_minutes <= 0:
            return _reject(RejectReason.INVALID_REQUEST, "duration must be greater than zero")
        if request.controller_count <= 0:
            return _reject(RejectReason.INVALID_REQUEST, "controller_count must be greater than zero")
        if request.initial_status not in BOOKABLE_STATUSES:
            return _reject(RejectReason.INVALID_REQUEST, f"A new booking cannot start as {request.initial_status.value}.")

        try:
            start_minute = parse_clock(request.start_clock)
        except InvalidTimeFormat as error:
            return _reject(RejectReason.INVALID_TIME_FORMAT, str(error))

        try:
            profile = self.store.get_profile(request.cafe_id)
        except UnknownCafeError:
            return _reject(RejectReason.INVALID_REQUEST, f"Unknown cafe: {request.cafe_id}")

        check = self._check(profile, station_type, request.booking_date, start_minute, request.duration_minutes, request.quantity)
        if not check.ok:
            return self._capacity_rejection(profile, station_type, request, start_minute, check.available)

        quote = resolve_unit_price(profile.pricing, station_type, request.controller_count, request.duration_minutes)
        if quote.pricing_undefined:
            if not self.settings.allow_unpriced:
                return _reject(
                    RejectReason.PRICING_UNDEFINED,
                    f"No price configured for {station_type.label} x{request.controller_count} "
                    f"for {request.duration_minutes} minutes.",
                )
            logger.warning(
                "Booking %s %s at %s on %s proceeds unpriced; flagging for staff",
                request.cafe_id,
                station_type.value,
                request.start_clock,
                request.booking_date.isoformat(),
            )

        candidate = Reservation(
            reservation_id=str(uuid4()),
            cafe_id=profile.cafe_id,
            station_type=station_type,
            quantity=request.quantity,
            start_minute=start_minute,
            duration_minutes=request.duration_minutes,
            booking_date=request.booking_date,
            status=request.initial_status,
            created_at=self.clock(),
            customer_name=request.customer_name,
            controller_count=request.controller_count,
            unit_price=quote.unit_price,
            total_price=quote.total(request.quantity),
            source=request.source,
            pricing_undefined=quote.pricing_undefined,
        )

        retries = 0
        while True:
            try:
                saved = self.store.reserve_atomic(candidate)
                break
            except PersistenceConflict as conflict:
                logger.warning(
                    "Lost reserve race for %s %s at %s: %s",
                    profile.cafe_id,
                    station_type.value,
                    format_clock(start_minute),
                    conflict,
                )
                if retries >= self.settings.reserve_retry_limit:
                    return self._capacity_rejection(profile, station_type, request, start_minute, conflict.available)
                retries += 1
                check = self._check(
                    profile, station_type, request.booking_date, start_minute, request.duration_minutes, request.quantity
                )
                if not check.ok:
                    return self._capacity_rejection(profile, station_type, request, start_minute, check.available)

        logger.info(
            "Booked %s x%s %s on %s at %s for %s min",
            saved.cafe_id,
            saved.quantity,
            station_type.value,
            saved.booking_date.isoformat(),
            format_clock(saved.start_minute),
            saved.duration_minutes,
        )
        return BookingResponse(
            accepted=True,
            unit_price=saved.unit_price,
            total_price=saved.total_price,
            reservation_id=saved.reservation_id,
            pricing_undefined=saved.pricing_undefined,
        )

    def next_available(
        self,
        cafe_id: str,
        station_type: StationType | str,
        booking_date: date,
        start_clock: str,
        duration_minutes: int,
        quantity: int = 1,
    ) -> NextAvailable | None:
        resolved = normalize_station_type(station_type)
        profile = self.store.get_profile(cafe_id)
        return find_next_available(
            resolved,
            booking_date,
            parse_clock(start_clock),
            duration_minutes,
            quantity,
            profile.capacity_for(resolved),
            self._held_in_scope(cafe_id, booking_date, resolved),
            step_minutes=self.settings.scan_step_minutes,
            horizon_minute=self._horizon(profile),
        )

    def availability(
        self,
        cafe_id: str,
        booking_date: date,
        start_clock: str,
        duration_minutes: int,
    ) -> list[StationAvailability]:
        profile = self.store.get_profile(cafe_id)
        reservations: list[Reservation] = []
        for day in scope_dates(booking_date):
            reservations.extend(self.store.list_reservations(cafe_id, day))
        reservations.extend(self._timer_holds(cafe_id, booking_date))
        return availability_overview(
            profile.capacities,
            booking_date,
            parse_clock(start_clock),
            duration_minutes,
            reservations,
            step_minutes=self.settings.scan_step_minutes,
            horizon_minute=self._horizon(profile),
        )

    def live_status(
        self,
        cafe_id: str,
        station_type: StationType | str | None = None,
        now: datetime | None = None,
    ) -> list[StationBoard]:
        effective_now = now or self.clock()
        profile = self.store.get_profile(cafe_id)
        types = [normalize_station_type(station_type)] if station_type is not None else list(StationType)

        reservations = self._running_window(cafe_id, effective_now)
        subscriptions = self.store.list_subscriptions(cafe_id, active_only=True)

        boards: list[StationBoard] = []
        for current in types:
            capacity = profile.capacity_for(current)
            if capacity <= 0 and station_type is None:
                continue
            boards.append(
                assign_units(
                    current,
                    capacity,
                    reservations,
                    subscriptions,
                    effective_now,
                    ending_soon_minutes=self.settings.ending_soon_minutes,
                )
            )
        return boards

    def tick(self, cafe_id: str, now: datetime | None = None) -> TimerSnapshot:
        effective_now = now or self.clock()
        return self.tracker.observe(
            effective_now,
            self._running_window(cafe_id, effective_now),
            self.store.list_subscriptions(cafe_id, active_only=False),
        )

    def _running_window(self, cafe_id: str, now: datetime) -> list[Reservation]:
        today = now.date()
        yesterday, _, _ = scope_dates(today)
        return self.store.list_reservations(cafe_id, yesterday) + self.store.list_reservations(cafe_id, today)

    def _check(
        self,
        profile: CafeProfile,
        station_type: StationType,
        booking_date: date,
        start_minute: int,
        duration_minutes: int,
        quantity: int,
    ) -> CapacityCheck:
        return check_capacity(
            station_type,
            booking_date,
            start_minute,
            duration_minutes,
            quantity,
            profile.capacity_for(station_type),
            self._held_in_scope(profile.cafe_id, booking_date, station_type),
        )

    def _capacity_rejection(
        self,
        profile: CafeProfile,
        station_type: StationType,
        request: BookingRequest,
        start_minute: int,
        available: int,
    ) -> BookingResponse:
        found = find_next_available(
            station_type,
            request.booking_date,
            start_minute,
            request.duration_minutes,
            request.quantity,
            profile.capacity_for(station_type),
            self._held_in_scope(profile.cafe_id, request.booking_date, station_type),
            step_minutes=self.settings.scan_step_minutes,
            horizon_minute=self._horizon(profile),
        )
        if found is None:
            return _reject(
                RejectReason.NO_AVAILABILITY_TODAY,
                f"No {station_type.label} setup frees up for {request.quantity} unit(s) later today.",
                available=available,
            )

        message = (
            f"Only {available} {station_type.label} setup(s) available for this time slot."
            if available > 0
            else f"No {station_type.label} setups available for overlapping time slots."
        )
        return _reject(
            RejectReason.CAPACITY_EXCEEDED,
            message,
            available=available,
            next_available=found.clock,
        )

    def _held_in_scope(self, cafe_id: str, booking_date: date, station_type: StationType) -> list[Reservation]:
        return reservations_in_scope(self.store, cafe_id, booking_date, station_type) + self._timer_holds(
            cafe_id, booking_date, station_type
        )

    def _timer_holds(self, cafe_id: str, booking_date: date, station_type: StationType | None = None) -> list[Reservation]:
        """One-unit holds for running membership timers at the current minute.

        A timer has no planned end, so it only blocks a booking on today's date
        whose window covers the present minute. Later slots stay bookable.
        """
        now = self.clock()
        if booking_date != now.date():
            return []
        return [
            Reservation(
                reservation_id=subscription.subscription_id,
                cafe_id=cafe_id,
                station_type=subscription.station_type,
                quantity=1,
                start_minute=minute_of(now),
                duration_minutes=1,
                booking_date=booking_date,
                status=ReservationStatus.IN_PROGRESS,
                created_at=subscription.start_timestamp,
                customer_name=subscription.customer_name,
                source="timer",
            )
            for subscription in self.store.list_subscriptions(cafe_id)
            if station_type is None or subscription.station_type == station_type
        ]

    @staticmethod
    def _horizon(profile: CafeProfile) -> int:
        return min(profile.close_minute, MINUTES_PER_DAY)
