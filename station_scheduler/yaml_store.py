from __future__ import annotations

import logging
import random
import shutil
import threading
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any
from uuid import uuid4

import yaml

from .booking import (
    Reservation,
    ReservationStatus,
    TimerSubscription,
    can_transition,
    check_capacity,
    scope_dates,
)
from .clock import MINUTES_PER_DAY
from .config import CafeProfile
from .pricing import PricingTable, resolve_unit_price
from .stations import CafeConfigurationError, StationType
from .store import UnknownCafeError, validate_against

logger = logging.getLogger(__name__)


class ReservationStorageError(RuntimeError):
    pass


DEMO_CAFE: dict[str, Any] = {
    "cafe_id": "neon-arcade",
    "name": "Neon Arcade",
    "opening": "10:00 am",
    "closing": "12:00 am",
    "capacity": {"ps5": 5, "ps4": 2, "pc": 6, "pool": 2, "vr": 1, "steering_wheel": 2},
    "pricing": {
        "ps5": {1: {30: 60, 60: 100}, 2: {30: 100, 60: 180}, 3: {60: 240}, 4: {60: 300}},
        "ps4": {1: {30: 40, 60: 70}, 2: {60: 120}},
        "pc": {1: {30: 50, 60: 90}},
        "pool": {1: {60: 150}, 2: {60: 200}},
        "vr": {1: {30: 150, 60: 250}},
        "steering_wheel": {1: {30: 80, 60: 150}},
    },
}
DEMO_DURATIONS = [30, 60, 60, 90, 120]
FINISHED_GRACE_MINUTES = 15


class CafeYamlRepository:
    def __init__(self, base_dir: str | Path = "data") -> None:
        self.base_dir = Path(base_dir)
        self.cafes_file = self.base_dir / "cafes.yaml"
        self.reservations_file = self.base_dir / "reservations.yaml"
        self.subscriptions_file = self.base_dir / "subscriptions.yaml"
        self.log_file = self.base_dir / "scheduler_events.yaml"
        self._lock = threading.RLock()
        self._ensure_files()

    def _ensure_files(self) -> None:
        self.base_dir.mkdir(parents=True, exist_ok=True)
        for path in (self.cafes_file, self.reservations_file, self.subscriptions_file, self.log_file):
            if not path.exists():
                self._blank(path)

    @staticmethod
    def _blank(path: Path) -> None:
        path.write_text("[]\n", encoding="utf-8")

    def _cafe_rows(self) -> list[dict[str, Any]]:
        return self._load_rows(self.cafes_file, strict=True)

    def _load_rows(self, path: Path, strict: bool = False) -> list[dict[str, Any]]:
        """Load a YAML list of mappings from ``path``.

        A damaged file is copied aside and blanked, unless ``strict`` is set,
        in which case CafeConfigurationError is raised and the file is left alone.
        Entries that are not mappings are dropped and counted in the event log.
        """
        try:
            document = yaml.safe_load(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            self._blank(path)
            return []
        except (OSError, UnicodeDecodeError, yaml.YAMLError) as error:
            problem = f"unreadable YAML ({error})"
        else:
            if document is None:
                return []
            if isinstance(document, list):
                rows = [entry for entry in document if isinstance(entry, dict)]
                if len(rows) < len(document) and path != self.log_file:
                    self._record_event("YAML_ROW_SKIPPED", {"file": path.name, "skipped": len(document) - len(rows)})
                return rows
            problem = f"expected a list, found {type(document).__name__}"

        if strict:
            raise CafeConfigurationError(f"{path.name}: {problem}")
        self._quarantine(path, problem)
        return []

    def _store_rows(self, path: Path, rows: list[dict[str, Any]]) -> None:
        staging = path.with_name(f".{path.name}.tmp")
        try:
            with staging.open("w", encoding="utf-8") as handle:
                yaml.safe_dump(rows, handle, allow_unicode=True, sort_keys=False)
            staging.replace(path)
        except OSError as error:
            staging.unlink(missing_ok=True)
            raise ReservationStorageError(f"Could not write {path.name}: {error}") from error

    def _quarantine(self, path: Path, problem: str) -> None:
        backup = path.with_name(f"{path.stem}.corrupt.{datetime.now():%Y%m%d%H%M%S}{path.suffix}")
        try:
            shutil.copy2(path, backup)
        except OSError as error:
            logger.warning("Could not keep a copy of %s: %s", path.name, error)
        self._blank(path)
        logger.warning("Blanked %s after %s; copy kept as %s", path.name, problem, backup.name)
        if path != self.log_file:
            self._record_event("YAML_RECOVERED", {"file": path.name, "backup": backup.name, "reason": problem})

    def _record_event(self, event_type: str, payload: dict[str, Any], event_time: datetime | None = None) -> None:
        entry = {
            "event_time": (event_time or datetime.now()).isoformat(timespec="seconds"),
            "event_type": event_type,
            "payload": payload,
        }
        with self._lock:
            self._store_rows(self.log_file, [*self._load_rows(self.log_file), entry])

    def get_events(self, event_type: str | None = None) -> list[dict[str, Any]]:
        events = self._load_rows(self.log_file)
        return [row for row in events if event_type is None or row.get("event_type") == event_type]

    def save_profile(self, profile: CafeProfile) -> CafeProfile:
        with self._lock:
            rows = [row for row in self._cafe_rows() if str(row.get("cafe_id")) != profile.cafe_id]
            rows.append(profile.to_dict())
            self._store_rows(self.cafes_file, rows)
        self._record_event("CAFE_SAVED", {"cafe_id": profile.cafe_id, "name": profile.name})
        return profile

    def get_profiles(self) -> list[CafeProfile]:
        return [CafeProfile.from_dict(row) for row in self._cafe_rows()]

    def get_profile(self, cafe_id: str) -> CafeProfile:
        for row in self._cafe_rows():
            if str(row.get("cafe_id")) == cafe_id:
                return CafeProfile.from_dict(row)
        raise UnknownCafeError(f"Unknown cafe: {cafe_id}")

    def get_capacity(self, cafe_id: str, station_type: StationType) -> int:
        return self.get_profile(cafe_id).capacity_for(station_type)

    def get_pricing_tiers(self, cafe_id: str) -> PricingTable:
        return self.get_profile(cafe_id).pricing

    def get_reservations(self) -> list[Reservation]:
        return [Reservation.from_dict(row) for row in self._load_rows(self.reservations_file)]

    def get_reservation(self, reservation_id: str) -> Reservation | None:
        for record in self.get_reservations():
            if record.reservation_id == reservation_id:
                return record
        return None

    def list_reservations(
        self,
        cafe_id: str,
        booking_date: date,
        station_type: StationType | None = None,
    ) -> list[Reservation]:
        return [
            record
            for record in self.get_reservations()
            if record.cafe_id == cafe_id
            and record.booking_date == booking_date
            and (station_type is None or record.station_type == station_type)
        ]

    def reserve_atomic(self, candidate: Reservation) -> Reservation:
        capacity = self.get_capacity(candidate.cafe_id, candidate.station_type)
        days = set(scope_dates(candidate.booking_date))

        with self._lock:
            rows = self._load_rows(self.reservations_file)
            existing = [
                record
                for record in (Reservation.from_dict(row) for row in rows)
                if record.cafe_id == candidate.cafe_id
                and record.station_type == candidate.station_type
                and record.booking_date in days
            ]
            validate_against(candidate, capacity, existing)

            rows.append(candidate.to_dict())
            self._store_rows(self.reservations_file, rows)

        self._record_event(
            "RESERVATION_CREATED",
            {
                "reservation_id": candidate.reservation_id,
                "cafe_id": candidate.cafe_id,
                "station_type": candidate.station_type.value,
                "quantity": candidate.quantity,
                "booking_date": candidate.booking_date.isoformat(),
                "start_minute": candidate.start_minute,
                "duration_minutes": candidate.duration_minutes,
                "total_price": candidate.total_price,
            },
            candidate.created_at,
        )
        if candidate.pricing_undefined:
            self._record_event(
                "PRICING_UNDEFINED",
                {
                    "reservation_id": candidate.reservation_id,
                    "cafe_id": candidate.cafe_id,
                    "station_type": candidate.station_type.value,
                    "controller_count": candidate.controller_count,
                    "duration_minutes": candidate.duration_minutes,
                },
                candidate.created_at,
            )
        return candidate

    def update_status(self, reservation_id: str, status: ReservationStatus, now: datetime | None = None) -> Reservation:
        effective_now = now or datetime.now()
        with self._lock:
            rows = self._load_rows(self.reservations_file)
            found_index = -1
            for index, row in enumerate(rows):
                if str(row.get("reservation_id")) == reservation_id:
                    found_index = index
                    break

            if found_index < 0:
                raise ValueError("reservation_id not found")

            current = Reservation.from_dict(rows[found_index])
            if not can_transition(current.status, status):
                raise ValueError(f"Cannot move reservation from {current.status.value} to {status.value}.")

            updated = current.with_status(status)
            rows[found_index] = updated.to_dict()
            self._store_rows(self.reservations_file, rows)

        self._record_event(
            "RESERVATION_STATUS_CHANGED",
            {
                "reservation_id": reservation_id,
                "from": current.status.value,
                "to": status.value,
            },
            effective_now,
        )
        return updated

    def complete_finished(self, now: datetime | None = None, grace_minutes: int = FINISHED_GRACE_MINUTES) -> int:
        """Mark in-progress reservations as completed once they are past their end plus a grace period."""
        effective_now = now or datetime.now()
        cutoff = effective_now - timedelta(minutes=grace_minutes)

        with self._lock:
            rows = self._load_rows(self.reservations_file)
            completed: list[Reservation] = []
            for index, row in enumerate(rows):
                record = Reservation.from_dict(row)
                if record.status != ReservationStatus.IN_PROGRESS:
                    continue
                _, end = record.bounds()
                if end <= cutoff:
                    finished = record.with_status(ReservationStatus.COMPLETED)
                    rows[index] = finished.to_dict()
                    completed.append(finished)

            if not completed:
                return 0
            self._store_rows(self.reservations_file, rows)

        for record in completed:
            self._record_event(
                "RESERVATION_COMPLETED",
                {
                    "reservation_id": record.reservation_id,
                    "station_type": record.station_type.value,
                    "booking_date": record.booking_date.isoformat(),
                },
                effective_now,
            )
        return len(completed)

    def list_subscriptions(self, cafe_id: str, active_only: bool = True) -> list[TimerSubscription]:
        records = [TimerSubscription.from_dict(row) for row in self._load_rows(self.subscriptions_file)]
        return [record for record in records if record.cafe_id == cafe_id and (record.is_running or not active_only)]

    def start_timer(
        self,
        cafe_id: str,
        customer_name: str,
        station_type: StationType,
        now: datetime,
        station_number: int | None = None,
        hours_remaining: float = 0.0,
    ) -> TimerSubscription:
        profile = self.get_profile(cafe_id)
        if station_number is not None and not 1 <= station_number <= profile.capacity_for(station_type):
            raise ValueError(f"Station number {station_number} does not exist for {station_type.label}.")

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
            rows = self._load_rows(self.subscriptions_file)
            rows.append(subscription.to_dict())
            self._store_rows(self.subscriptions_file, rows)

        self._record_event(
            "TIMER_STARTED",
            {
                "subscription_id": subscription.subscription_id,
                "cafe_id": cafe_id,
                "station_type": station_type.value,
                "station_number": station_number,
            },
            now,
        )
        return subscription

    def stop_timer(self, subscription_id: str, now: datetime) -> TimerSubscription:
        with self._lock:
            rows = self._load_rows(self.subscriptions_file)
            for index, row in enumerate(rows):
                if str(row.get("subscription_id")) != subscription_id:
                    continue
                stopped = TimerSubscription.from_dict(row).stop(now)
                rows[index] = stopped.to_dict()
                self._store_rows(self.subscriptions_file, rows)
                break
            else:
                raise ValueError("subscription_id not found")

        self._record_event(
            "TIMER_STOPPED",
            {
                "subscription_id": subscription_id,
                "elapsed_minutes": stopped.elapsed_minutes(now),
                "hours_remaining": stopped.hours_remaining,
            },
            now,
        )
        return stopped

    def seed_demo_data(self, now: datetime | None = None, overwrite: bool = True) -> list[Reservation]:
        effective_now = now or datetime.now()
        profile = CafeProfile.from_dict(DEMO_CAFE)
        generated = generate_demo_reservations(profile, effective_now.date(), effective_now)

        with self._lock:
            if overwrite:
                self._store_rows(self.reservations_file, [])
                self._store_rows(self.subscriptions_file, [])
            self.save_profile(profile)

            rows = self._load_rows(self.reservations_file)
            rows.extend([record.to_dict() for record in generated])
            self._store_rows(self.reservations_file, rows)

        self._record_event(
            "DEMO_DATA_GENERATED",
            {
                "cafe_id": profile.cafe_id,
                "count": len(generated),
                "booking_date": effective_now.date().isoformat(),
                "overwrite": overwrite,
            },
            effective_now,
        )
        return generated


def generate_demo_reservations(profile: CafeProfile, day: date, now: datetime) -> list[Reservation]:
    """Build a believable, capacity-respecting day of bookings for one café."""
    rng = random.Random(f"demo:{profile.cafe_id}:{day.isoformat()}")
    names = ["Aarav", "Diya", "Kabir", "Meera", "Rohan", "Sara", "Vikram", "Zoya", "Ishaan", "Anaya"]
    last_start = min(profile.close_minute, MINUTES_PER_DAY) - 60

    records: list[Reservation] = []
    for station_type in StationType:
        capacity = profile.capacity_for(station_type)
        if capacity <= 0:
            continue

        target = capacity * 3
        attempts = 0
        placed = 0
        while placed < target and attempts < target * 8:
            attempts += 1
            start_minute = rng.randrange(profile.open_minute, last_start + 1, 15)
            duration = rng.choice(DEMO_DURATIONS)
            quantity = rng.randint(1, min(2, capacity))
            check = check_capacity(station_type, day, start_minute, duration, quantity, capacity, records)
            if not check.ok:
                continue

            controllers = rng.randint(1, 2)
            quote = resolve_unit_price(profile.pricing, station_type, controllers, duration)
            record = Reservation(
                reservation_id=str(uuid4()),
                cafe_id=profile.cafe_id,
                station_type=station_type,
                quantity=quantity,
                start_minute=start_minute,
                duration_minutes=duration,
                booking_date=day,
                status=ReservationStatus.CONFIRMED,
                created_at=now - timedelta(minutes=rng.randint(30, 600)),
                customer_name=rng.choice(names),
                controller_count=controllers,
                unit_price=quote.unit_price,
                total_price=quote.total(quantity),
                source=rng.choice(["online", "walk-in"]),
                pricing_undefined=quote.pricing_undefined,
            )
            records.append(record.with_status(_demo_status(record, now)))
            placed += 1

    return records


def _demo_status(record: Reservation, now: datetime) -> ReservationStatus:
    start, end = record.bounds()
    if end <= now:
        return ReservationStatus.COMPLETED
    if start <= now:
        return ReservationStatus.IN_PROGRESS
    return ReservationStatus.CONFIRMED
