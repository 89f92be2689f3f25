from __future__ import annotations

from enum import Enum
from typing import Any, Mapping


class StationType(str, Enum):
    PS5 = "ps5"
    PS4 = "ps4"
    XBOX = "xbox"
    PC = "pc"
    POOL = "pool"
    ARCADE = "arcade"
    SNOOKER = "snooker"
    VR = "vr"
    STEERING_WHEEL = "steering_wheel"

    @property
    def label(self) -> str:
        return STATION_LABELS[self]


class CafeConfigurationError(ValueError):
    pass


STATION_LABELS: dict[StationType, str] = {
    StationType.PS5: "PS5",
    StationType.PS4: "PS4",
    StationType.XBOX: "Xbox",
    StationType.PC: "PC",
    StationType.POOL: "Pool Table",
    StationType.ARCADE: "Arcade Machine",
    StationType.SNOOKER: "Snooker",
    StationType.VR: "VR",
    StationType.STEERING_WHEEL: "Racing Setup",
}

# Every spelling found in café records, membership plans and capacity columns.
_ALIASES: dict[str, StationType] = {
    "playstation 5": StationType.PS5,
    "playstation5": StationType.PS5,
    "ps5_count": StationType.PS5,
    "playstation 4": StationType.PS4,
    "playstation4": StationType.PS4,
    "ps4_count": StationType.PS4,
    "xbox_count": StationType.XBOX,
    "pc_count": StationType.PC,
    "pool_count": StationType.POOL,
    "pool table": StationType.POOL,
    "arcade_count": StationType.ARCADE,
    "arcade machine": StationType.ARCADE,
    "snooker_count": StationType.SNOOKER,
    "vr_count": StationType.VR,
    "steering": StationType.STEERING_WHEEL,
    "steering wheel": StationType.STEERING_WHEEL,
    "steering_wheel_count": StationType.STEERING_WHEEL,
    "racing": StationType.STEERING_WHEEL,
    "racing setup": StationType.STEERING_WHEEL,
    "racing sim": StationType.STEERING_WHEEL,
    "racing_sim": StationType.STEERING_WHEEL,
}


def normalize_station_type(value: StationType | str | None) -> StationType:
    if isinstance(value, StationType):
        return value
    if value is None:
        raise ValueError("station type must not be None")

    key = str(value).strip().lower()
    if not key:
        raise ValueError("station type must not be empty")

    try:
        return StationType(key)
    except ValueError:
        pass

    if key in _ALIASES:
        return _ALIASES[key]
    for station_type, label in STATION_LABELS.items():
        if label.lower() == key:
            return station_type

    raise ValueError(f"Unknown station type: {value!r}")


def unit_label(station_type: StationType, unit_number: int) -> str:
    return f"{station_type.value}-{unit_number:02d}"


def parse_capacities(raw: Mapping[str, Any] | None) -> dict[StationType, int]:
    """Normalise a {station: count} mapping; bad counts abort café setup."""
    capacities = {station_type: 0 for station_type in StationType}
    for name, value in (raw or {}).items():
        try:
            station_type = normalize_station_type(name)
        except ValueError as error:
            raise CafeConfigurationError(str(error)) from error

        if isinstance(value, bool) or not isinstance(value, int):
            raise CafeConfigurationError(f"Capacity for {station_type.value} must be an integer, got {value!r}")
        if value < 0:
            raise CafeConfigurationError(f"Capacity for {station_type.value} must not be negative, got {value}")
        capacities[station_type] = value
    return capacities
