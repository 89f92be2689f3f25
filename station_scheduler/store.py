"""Data-access contract the engine depends on, plus a thread-safe in-memory store."""
from __future__ import annotations

import threading
from datetime import date, datetime
from typing import Iterable, Protocol
from uuid import uuid4

from .booking import (
    Reservation,
    ReservationStatus,
    TimerSubscription,
    can_transition,
    check_capacity,
    scope_dates,
)
from .config import CafeProfile
from .pricing import PricingTable
from .stations import StationType


class PersistenceConflict(RuntimeError):
    """The atomic reserve re-checked capacity and lost to a concurrent booking."""

    def __init__(self, message: str, available: int) -> None:
        super().__init__(message)
        self.available = available


class UnknownCafeError(KeyError):
    pass


class CafeDataStore(Protocol):
    def get_profile(self, cafe_id: str) -> CafeProfile:
        ...

    def get_capacity(self, cafe_id: str, station_type: StationType) -> int:
        ...

    def get_pricing_tiers(self, cafe_id: str) -> PricingTable:
        ...

    def list_reservations(
        self,
        cafe_id: str,
        booking_date: date,
        station_type: StationType | None = None,
    ) -> list[Reservation]:
        ...

    def reserve_atomic(self, candidate: Reservation) -> Reservation:
        """Re-validate capacity and insert in one step; raise PersistenceConflict on a lost race."""
        ...

    def update_status(self, reservation_id: str, status: ReservationStatus, now: datetime | None = None) -> Reservation:
        ...

    def list_subscriptions(self, cafe_id: str, active_only: bool = True) -> list[TimerSubscription]:
        ...

    def start_timer(
        self,
        cafe_id: str,
        customer_name: str,
        station_type: StationType,
        now: datetime,
        station_number: int | None = None,
        hours_remaining: float = 0.0,
    ) -> TimerSubscription:
        ...

    def stop_timer(self, subscription_id: str, now: datetime) -> TimerSubscription:
        ...


def reservations_in_scope(
    store: CafeDataStore,
    cafe_id: str,
    booking_date: date,
    station_type: StationType,
) -> list[Reservation]:
    """Reservations from the day before through the day after, for midnight spill-over."""
    rows: list[Reservation] = []
    for day in scope_dates(booking_date):
        rows.extend(store.list_reservations(cafe_id, day, station_type))
    return rows


def validate_against(candidate: Reservation, capacity: int, existing: Iterable[Reservation]) -> None:
    check = check_capacity(
        candidate.station_type,
        candidate.booking_date,
        candidate.start_minute,
        candidate.duration_minutes,
        candidate.quantity,
        capacity,
        existing,
    )
    if not check.ok:
        raise PersistenceConflict(
            f"Only {check.available} {candidate.station_type.label} unit(s) left for this slot.",
            available=check.available,
        )


class InMemoryCafeStore:
    def __init__(self, profiles: Iterable[CafeProfile] = ()) -> None:
        self._profiles: dict[str, CafeProfile] = {profile.cafe_id: profile for profile in profiles}
        self._reservations: list[Reservation] = []
        self._subscriptions: list[TimerSubscription] = []
        self._lock = threading.RLock()

    def add_profile(self, profile: CafeProfile) -> None:
        with self._lock:
            self._profiles[profile.cafe_id] = profile

    def get_profile(self, cafe_id: str) -> CafeProfile:
        try:
            return self._profiles[cafe_id]
        except KeyError:
            raise UnknownCafeError(f"Unknown cafe: {cafe_id}") from None

    def get_capacity(self, cafe_id: str, station_type: StationType) -> int:
        return self.get_profile(cafe_id).capacity_for(station_type)

    def get_pricing_tiers(self, cafe_id: str) -> PricingTable:
        return self.get_profile(cafe_id).pricing

    def list_reservations(
        self,
        cafe_id: str,
        booking_date: date,
        station_type: StationType | None = None,
    ) -> list[Reservation]:
        with self._lock:
            return [
                row
                for row in self._reservations
                if row.cafe_id == cafe_id
                and row.booking_date == booking_date
                and (station_type is None or row.station_type == station_type)
            ]

    def reserve_atomic(self, candidate: Reservation) -> Reservation:
        capacity = self.get_capacity(candidate.cafe_id, candidate.station_type)
        with self._lock:
            existing = reservations_in_scope(self, candidate.cafe_id, candidate.booking_date, candidate.station_type)
            validate_against(candidate, capacity, existing)
            self._reservations.append(candidate)
            return candidate

    def update_status(self, reservation_id: str, status: ReservationStatus, now: datetime | None = None) -> Reservation:
        with self._lock:
            for index, row in enumerate(self._reservations):
                if row.reservation_id != reservation_id:
                    continue
                if not can_transition(row.status, status):
                    raise ValueError(f"Cannot move reservation from {row.status.value} to {status.value}.")
                updated = row.with_status(status)
                self._reservations[index] = updated
                return updated
        raise ValueError("reservation_id not found")

    def list_subscriptions(self, cafe_id: str, active_only: bool = True) -> list[TimerSubscription]:
        with self._lock:
            return [
                row
                for row in self._subscriptions
                if row.cafe_id == cafe_id and (row.is_running or not active_only)
            ]

    def start_timer(
        self,
        cafe_id: str,
        customer_name: str,
        station_type: StationType,
        now: datetime,
        station_number: int | None = None,
        hours_remaining: float = 0.0,
    ) -> TimerSubscription:
        self.get_profile(cafe_id)
        subscription = TimerSubscription(
            subscription_id=str(uuid4()),
            cafe_id=cafe_id,
            customer_name=customer_name,
            station_type=station_type,
            start_timestamp=now,
            station_number=station_number,
            hours_remaining=hours_remaining,
        )
        with self._lock:
            self._subscriptions.append(subscription)
        return subscription

    def stop_timer(self, subscription_id: str, now: datetime) -> TimerSubscription:
        with self._lock:
            for index, row in enumerate(self._subscriptions):
                if row.subscription_id == subscription_id:
                    stopped = row.stop(now)
                    self._subscriptions[index] = stopped
                    return stopped
        raise ValueError("subscription_id not found")
