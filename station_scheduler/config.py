from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .clock import MINUTES_PER_DAY, InvalidTimeFormat, format_clock, parse_clock
from .pricing import PricingTable
from .stations import CafeConfigurationError, StationType, parse_capacities

OPEN_HOUR = 10
CLOSE_HOUR = 24
SCAN_STEP_MINUTES = 15
ENDING_SOON_MINUTES = 15
TIMER_TICK_MINUTES = 1
POLL_INTERVAL_SECONDS = 5
RESERVE_RETRY_LIMIT = 1
NOTIFIED_RETENTION_MINUTES = 24 * 60
NOTIFIED_MAX_ENTRIES = 5000
SESSION_FEED_SIZE = 200


@dataclass(frozen=True)
class EngineSettings:
    scan_step_minutes: int = SCAN_STEP_MINUTES
    ending_soon_minutes: int = ENDING_SOON_MINUTES
    timer_tick_minutes: int = TIMER_TICK_MINUTES
    reserve_retry_limit: int = RESERVE_RETRY_LIMIT
    notified_retention_minutes: int = NOTIFIED_RETENTION_MINUTES
    notified_max_entries: int = NOTIFIED_MAX_ENTRIES
    allow_unpriced: bool = True

    def __post_init__(self) -> None:
        if self.scan_step_minutes <= 0:
            raise ValueError("scan_step_minutes must be greater than zero")
        if self.timer_tick_minutes <= 0:
            raise ValueError("timer_tick_minutes must be greater than zero")
        if self.reserve_retry_limit < 0:
            raise ValueError("reserve_retry_limit must not be negative")

    @staticmethod
    def from_dict(data: dict[str, Any] | None) -> "EngineSettings":
        known = EngineSettings.__dataclass_fields__
        values = {key: value for key, value in (data or {}).items() if key in known}
        return EngineSettings(**values)


@dataclass(frozen=True)
class CafeProfile:
    cafe_id: str
    name: str
    capacities: dict[StationType, int]
    pricing: PricingTable = field(default_factory=PricingTable)
    open_minute: int = OPEN_HOUR * 60
    close_minute: int = CLOSE_HOUR * 60

    def capacity_for(self, station_type: StationType) -> int:
        return self.capacities.get(station_type, 0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "cafe_id": self.cafe_id,
            "name": self.name,
            "opening": format_clock(self.open_minute),
            "closing": format_clock(self.close_minute),
            "capacity": {station_type.value: count for station_type, count in self.capacities.items() if count},
            "pricing": self.pricing.to_dict(),
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "CafeProfile":
        cafe_id = str(data.get("cafe_id") or "").strip()
        if not cafe_id:
            raise CafeConfigurationError("cafe_id must not be empty")

        try:
            open_minute = parse_clock(str(data["opening"])) if data.get("opening") else OPEN_HOUR * 60
            close_minute = parse_clock(str(data["closing"])) if data.get("closing") else CLOSE_HOUR * 60
        except InvalidTimeFormat as error:
            raise CafeConfigurationError(f"Invalid opening hours for {cafe_id}: {error}") from error

        # a closing time at or before opening belongs to the next day (e.g. 12:00 am, 2:00 am)
        if close_minute <= open_minute:
            close_minute += MINUTES_PER_DAY

        try:
            pricing = PricingTable.from_mapping(data.get("pricing"))
        except ValueError as error:
            raise CafeConfigurationError(f"Invalid pricing for {cafe_id}: {error}") from error

        return CafeProfile(
            cafe_id=cafe_id,
            name=str(data.get("name") or cafe_id),
            capacities=parse_capacities(data.get("capacity")),
            pricing=pricing,
            open_minute=open_minute,
            close_minute=close_minute,
        )


def load_cafe_profiles(path: str | Path) -> dict[str, CafeProfile]:
    payload = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
    if payload is None:
        return {}
    if not isinstance(payload, list):
        raise CafeConfigurationError("Café configuration must be a YAML list")

    profiles: dict[str, CafeProfile] = {}
    for row in payload:
        if not isinstance(row, dict):
            raise CafeConfigurationError("Each café entry must be a mapping")
        profile = CafeProfile.from_dict(row)
        profiles[profile.cafe_id] = profile
    return profiles
