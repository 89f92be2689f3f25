from __future__ import annotations

import logging
from collections import deque
from datetime import date, datetime
from pathlib import Path
from typing import Any, Callable

from flask import Flask, jsonify, request

from .booking import ReservationStatus
from .config import POLL_INTERVAL_SECONDS, SESSION_FEED_SIZE, EngineSettings
from .engine import BookingEngine, BookingRequest, RejectReason
from .session_timer import SessionEnded
from .stations import normalize_station_type
from .store import UnknownCafeError
from .yaml_store import DEMO_CAFE, CafeYamlRepository

logger = logging.getLogger(__name__)

DEFAULT_CAFE_ID = str(DEMO_CAFE["cafe_id"])
NOT_AN_OBJECT = "Request body must be a JSON object."


def create_app(
    data_dir: str | Path = "data",
    now_provider: Callable[[], datetime] | None = None,
    settings: EngineSettings | None = None,
) -> Flask:
    app = Flask(__name__)
    repository = CafeYamlRepository(data_dir)
    clock: Callable[[], datetime] = now_provider or datetime.now
    engine = BookingEngine(repository, clock=clock, settings=settings)
    ended_feed: deque[dict[str, Any]] = deque(maxlen=SESSION_FEED_SIZE)

    def _remember_ended(event: SessionEnded) -> None:
        ended_feed.append(event.to_dict())

    engine.tracker.add_listener(_remember_ended)
    app.extensions["booking_engine"] = engine

    def _cafe_id() -> str:
        return str(request.args.get("cafe_id") or DEFAULT_CAFE_ID).strip()

    def _json_object() -> dict[str, Any] | None:
        payload = request.get_json(silent=True)
        if payload is None:
            return {}
        return payload if isinstance(payload, dict) else None

    def _query_date(now: datetime) -> date:
        raw = request.args.get("date")
        return date.fromisoformat(raw) if raw else now.date()

    @app.errorhandler(UnknownCafeError)
    def handle_unknown_cafe(error: UnknownCafeError) -> Any:
        return jsonify({"ok": False, "message": str(error.args[0]) if error.args else "Unknown cafe"}), 404

    @app.after_request
    def add_cors_headers(response: Any) -> Any:
        response.headers["Access-Control-Allow-Origin"] = "*"
        response.headers["Access-Control-Allow-Methods"] = "GET,POST,OPTIONS"
        response.headers["Access-Control-Allow-Headers"] = "Content-Type"
        return response

    @app.post("/api/bookings")
    def create_booking() -> Any:
        payload = _json_object()
        if payload is None:
            return jsonify({"ok": False, "reason": RejectReason.INVALID_REQUEST.value, "message": NOT_AN_OBJECT}), 400
        payload.setdefault("cafe_id", DEFAULT_CAFE_ID)
        try:
            booking_request = BookingRequest.from_dict(payload)
        except (TypeError, ValueError) as error:
            return jsonify({"ok": False, "reason": RejectReason.INVALID_REQUEST.value, "message": str(error)}), 400

        response = engine.book(booking_request)
        body = {"ok": response.accepted, **response.to_dict()}
        if response.accepted:
            return jsonify(body), 201
        if response.reason in (RejectReason.INVALID_REQUEST, RejectReason.INVALID_TIME_FORMAT):
            return jsonify(body), 400
        return jsonify(body), 409

    @app.post("/api/bookings/<reservation_id>/status")
    def change_booking_status(reservation_id: str) -> Any:
        payload = _json_object()
        if payload is None:
            return jsonify({"ok": False, "message": NOT_AN_OBJECT}), 400
        try:
            status = ReservationStatus(str(payload.get("status", "")).strip())
            updated = repository.update_status(reservation_id, status, now=clock())
        except ValueError as error:
            return jsonify({"ok": False, "message": str(error)}), 400
        return jsonify({"ok": True, "reservation": updated.to_dict()})

    @app.get("/api/availability")
    def get_availability() -> Any:
        now = clock()
        try:
            booking_date = _query_date(now)
            start_clock = str(request.args.get("start_clock", "")).strip()
            duration = int(request.args.get("duration_minutes", 60))
            rows = engine.availability(_cafe_id(), booking_date, start_clock, duration)
        except ValueError as error:
            return jsonify({"ok": False, "message": str(error)}), 400
        return jsonify(
            {
                "ok": True,
                "date": booking_date.isoformat(),
                "start_clock": start_clock,
                "stations": [row.to_dict() for row in rows],
            }
        )

    @app.get("/api/next-available")
    def get_next_available() -> Any:
        now = clock()
        try:
            found = engine.next_available(
                _cafe_id(),
                str(request.args.get("station_type", "")),
                _query_date(now),
                str(request.args.get("start_clock", "")).strip(),
                int(request.args.get("duration_minutes", 60)),
                int(request.args.get("quantity", 1)),
            )
        except ValueError as error:
            return jsonify({"ok": False, "message": str(error)}), 400

        if found is None:
            return jsonify({"ok": True, "next_available": None, "reason": RejectReason.NO_AVAILABILITY_TODAY.value})
        return jsonify({"ok": True, "next_available": found.clock, "minute": found.minute, "steps": found.steps})

    @app.get("/api/live-status")
    def get_live_status() -> Any:
        now = clock()
        station_type = request.args.get("station_type")
        try:
            resolved = normalize_station_type(station_type) if station_type else None
        except ValueError as error:
            return jsonify({"ok": False, "message": str(error)}), 400

        boards = engine.live_status(_cafe_id(), resolved, now=now)
        return jsonify(
            {
                "ok": True,
                "as_of": now.isoformat(timespec="seconds"),
                "poll_interval_seconds": POLL_INTERVAL_SECONDS,
                "stations": [board.to_dict() for board in boards],
            }
        )

    @app.get("/api/sessions")
    def get_sessions() -> Any:
        now = clock()
        cafe_id = _cafe_id()
        snapshot = engine.tick(cafe_id, now=now)
        completed = repository.complete_finished(now)
        return jsonify(
            {
                "ok": True,
                "as_of": now.isoformat(timespec="seconds"),
                "sessions": [view.to_dict() for view in snapshot.views],
                "ended": [event.to_dict() for event in snapshot.ended],
                "recently_ended": list(ended_feed),
                "auto_completed": completed,
            }
        )

    @app.post("/api/timers/start")
    def start_timer() -> Any:
        payload = _json_object()
        if payload is None:
            return jsonify({"ok": False, "message": NOT_AN_OBJECT}), 400
        customer_name = str(payload.get("customer_name", "")).strip()
        if not customer_name:
            return jsonify({"ok": False, "message": "customer_name is required"}), 400

        try:
            station_type = normalize_station_type(str(payload.get("station_type", "")))
            raw_number = payload.get("station_number")
            station_number = int(raw_number) if raw_number not in (None, "") else None
            subscription = repository.start_timer(
                str(payload.get("cafe_id") or DEFAULT_CAFE_ID),
                customer_name,
                station_type,
                clock(),
                station_number=station_number,
                hours_remaining=float(payload.get("hours_remaining", 0.0)),
            )
        except ValueError as error:
            return jsonify({"ok": False, "message": str(error)}), 400
        return jsonify({"ok": True, "subscription": subscription.to_dict()}), 201

    @app.post("/api/timers/<subscription_id>/stop")
    def stop_timer(subscription_id: str) -> Any:
        try:
            stopped = repository.stop_timer(subscription_id, clock())
        except ValueError as error:
            return jsonify({"ok": False, "message": str(error)}), 400
        return jsonify({"ok": True, "subscription": stopped.to_dict()})

    return app


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    app = create_app()
    app.run(host="127.0.0.1", port=5000, debug=False)
