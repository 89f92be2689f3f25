from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Iterable

from .booking import Reservation, ReservationStatus, TimerSubscription
from .clock import minutes_left
from .config import NOTIFIED_MAX_ENTRIES, NOTIFIED_RETENTION_MINUTES, TIMER_TICK_MINUTES

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    ENDED = "ended"


@dataclass(frozen=True)
class SessionView:
    entity_id: str
    kind: str
    state: SessionState
    customer_name: str
    station_label: str
    elapsed_minutes: int
    remaining_minutes: int | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "entity_id": self.entity_id,
            "kind": self.kind,
            "state": self.state.value,
            "customer_name": self.customer_name,
            "station_label": self.station_label,
            "elapsed_minutes": self.elapsed_minutes,
            "remaining_minutes": self.remaining_minutes,
        }


@dataclass(frozen=True)
class SessionEnded:
    entity_id: str
    customer_name: str
    station_label: str
    duration_minutes: int
    ended_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "entity_id": self.entity_id,
            "customer_name": self.customer_name,
            "station_label": self.station_label,
            "duration_minutes": self.duration_minutes,
            "ended_at": self.ended_at.isoformat(timespec="seconds"),
        }


@dataclass(frozen=True)
class TimerSnapshot:
    views: tuple[SessionView, ...]
    ended: tuple[SessionEnded, ...]


SessionEndedListener = Callable[[SessionEnded], None]


class SessionTimerTracker:
    """Tick-driven tracker for running bookings and membership timers.

    The tracker owns no clock: every call passes the current time and the
    current session set. Its only state is the memory of which entities
    already ended, so replaying a tick never notifies twice.
    """

    def __init__(
        self,
        tick_minutes: int = TIMER_TICK_MINUTES,
        retention_minutes: int = NOTIFIED_RETENTION_MINUTES,
        max_entries: int = NOTIFIED_MAX_ENTRIES,
    ) -> None:
        if tick_minutes <= 0:
            raise ValueError("tick_minutes must be greater than zero")
        if max_entries <= 0:
            raise ValueError("max_entries must be greater than zero")
        self.tick = timedelta(minutes=tick_minutes)
        self.retention = timedelta(minutes=retention_minutes)
        self.max_entries = max_entries
        self._ended: dict[str, datetime] = {}
        self._running_timers: set[str] = set()
        self._last_seen: dict[str, datetime] = {}
        self._listeners: list[SessionEndedListener] = []
        self._lock = threading.Lock()

    def add_listener(self, listener: SessionEndedListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: SessionEndedListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def has_ended(self, entity_id: str) -> bool:
        with self._lock:
            return entity_id in self._ended

    @property
    def tracked_count(self) -> int:
        with self._lock:
            return len(self._ended)

    def observe(
        self,
        now: datetime,
        reservations: Iterable[Reservation],
        subscriptions: Iterable[TimerSubscription] = (),
    ) -> TimerSnapshot:
        views: list[SessionView] = []
        ended: list[SessionEnded] = []

        with self._lock:
            for reservation in reservations:
                if reservation.status != ReservationStatus.IN_PROGRESS:
                    continue
                self._last_seen[reservation.reservation_id] = now
                views.append(self._observe_reservation(reservation, now, ended))

            for subscription in subscriptions:
                # stopped timers age out once their end has been reported
                if not subscription.is_running and subscription.subscription_id not in self._running_timers:
                    continue
                self._last_seen[subscription.subscription_id] = now
                view = self._observe_subscription(subscription, now, ended)
                if view is not None:
                    views.append(view)

            self._prune_locked(now)

        for event in ended:
            self._notify(event)
        return TimerSnapshot(views=tuple(views), ended=tuple(ended))

    def prune(self, now: datetime) -> int:
        with self._lock:
            return self._prune_locked(now)

    def _observe_reservation(self, reservation: Reservation, now: datetime, ended: list[SessionEnded]) -> SessionView:
        entity_id = reservation.reservation_id
        start, end = reservation.bounds()
        remaining = end - now
        label = reservation.station_type.label

        if entity_id in self._ended:
            state = SessionState.ENDED
        elif now < start:
            state = SessionState.NOT_STARTED
        elif remaining > timedelta(0):
            state = SessionState.RUNNING
        else:
            state = SessionState.ENDED
            self._ended[entity_id] = now
            if remaining > -self.tick:
                ended.append(
                    SessionEnded(
                        entity_id=entity_id,
                        customer_name=reservation.customer_name,
                        station_label=label,
                        duration_minutes=reservation.duration_minutes,
                        ended_at=now,
                    )
                )
            else:
                logger.debug("Session %s ended before it was observed; not notifying", entity_id)

        return SessionView(
            entity_id=entity_id,
            kind="reservation",
            state=state,
            customer_name=reservation.customer_name,
            station_label=label,
            elapsed_minutes=max(0, -minutes_left(start - now)),
            remaining_minutes=minutes_left(remaining),
        )

    def _observe_subscription(
        self,
        subscription: TimerSubscription,
        now: datetime,
        ended: list[SessionEnded],
    ) -> SessionView | None:
        entity_id = subscription.subscription_id
        label = subscription.station_type.label

        if subscription.is_running:
            self._running_timers.add(entity_id)
            state = SessionState.NOT_STARTED if now < subscription.start_timestamp else SessionState.RUNNING
        elif entity_id in self._running_timers and entity_id not in self._ended:
            self._running_timers.discard(entity_id)
            self._ended[entity_id] = now
            state = SessionState.ENDED
            ended.append(
                SessionEnded(
                    entity_id=entity_id,
                    customer_name=subscription.customer_name,
                    station_label=label,
                    duration_minutes=subscription.elapsed_minutes(now),
                    ended_at=subscription.stopped_at or now,
                )
            )
        else:
            return None

        return SessionView(
            entity_id=entity_id,
            kind="subscription",
            state=state,
            customer_name=subscription.customer_name,
            station_label=label,
            elapsed_minutes=subscription.elapsed_minutes(now),
            remaining_minutes=None,
        )

    def _prune_locked(self, now: datetime) -> int:
        cutoff = now - self.retention
        stale = [entity_id for entity_id, seen in self._last_seen.items() if seen < cutoff]
        for entity_id in stale:
            self._last_seen.pop(entity_id, None)
            self._ended.pop(entity_id, None)
            self._running_timers.discard(entity_id)

        removed = len(stale)
        overflow = len(self._ended) - self.max_entries
        if overflow > 0:
            oldest = sorted(self._ended.items(), key=lambda item: item[1])[:overflow]
            for entity_id, _ in oldest:
                self._ended.pop(entity_id, None)
                self._last_seen.pop(entity_id, None)
            removed += overflow
        return removed

    def _notify(self, event: SessionEnded) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Session-ended listener failed for %s", event.entity_id)
