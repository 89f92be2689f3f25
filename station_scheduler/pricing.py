from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping

from .stations import StationType, normalize_station_type

logger = logging.getLogger(__name__)

TIER_QUANTITIES = (1, 2, 3, 4)
TIER_DURATIONS = (30, 60)

# duration -> (multiplier of the 60-minute tier, multiplier of the 30-minute tier)
_DERIVED_DURATIONS: dict[int, tuple[int, int]] = {
    90: (1, 1),
    120: (2, 0),
    180: (3, 0),
}


@dataclass(frozen=True)
class PriceQuote:
    unit_price: int
    pricing_undefined: bool
    rule: str

    def total(self, units: int) -> int:
        return self.unit_price * units


@dataclass(frozen=True)
class PricingTable:
    tiers: dict[tuple[StationType, int, int], int] = field(default_factory=dict)

    def get(self, station_type: StationType, quantity: int, duration: int) -> int | None:
        return self.tiers.get((station_type, quantity, duration))

    def to_dict(self) -> dict[str, dict[int, dict[int, int]]]:
        payload: dict[str, dict[int, dict[int, int]]] = {}
        for (station_type, quantity, duration), price in sorted(
            self.tiers.items(), key=lambda item: (item[0][0].value, item[0][1], item[0][2])
        ):
            payload.setdefault(station_type.value, {}).setdefault(quantity, {})[duration] = price
        return payload

    @staticmethod
    def from_mapping(data: Mapping[str, Any] | None) -> "PricingTable":
        """Build a table from {station: {quantity: {duration: price}}}."""
        tiers: dict[tuple[StationType, int, int], int] = {}
        for station_name, by_quantity in (data or {}).items():
            station_type = normalize_station_type(station_name)
            if not isinstance(by_quantity, Mapping):
                raise ValueError(f"Pricing for {station_type.value} must be a mapping of quantity tiers")

            for raw_quantity, by_duration in by_quantity.items():
                quantity = int(raw_quantity)
                if quantity not in TIER_QUANTITIES:
                    raise ValueError(f"Pricing quantity must be one of {TIER_QUANTITIES}, got {quantity}")
                if not isinstance(by_duration, Mapping):
                    raise ValueError(f"Pricing for {station_type.value} x{quantity} must map durations to prices")

                for raw_duration, raw_price in by_duration.items():
                    duration = int(raw_duration)
                    if duration not in TIER_DURATIONS:
                        raise ValueError(f"Pricing duration must be one of {TIER_DURATIONS}, got {duration}")
                    if raw_price is None:
                        continue
                    price = int(raw_price)
                    if price < 0:
                        raise ValueError("Pricing tier price must not be negative")
                    tiers[(station_type, quantity, duration)] = price
        return PricingTable(tiers)


def resolve_unit_price(
    table: PricingTable,
    station_type: StationType,
    quantity: int,
    duration: int,
) -> PriceQuote:
    """Resolve the per-unit price for a booking.

    Exact tiers win. 90, 120 and 180 minutes are derived from the 60 and
    30 minute tiers, with a missing sub-tier counting as 0. Anything else,
    or a derivation with no tier behind it at all, is quoted at 0 and
    flagged as undefined so staff can fix the tier table.
    """
    exact = table.get(station_type, quantity, duration)
    if exact is not None:
        return PriceQuote(unit_price=exact, pricing_undefined=False, rule="exact")

    if duration in _DERIVED_DURATIONS:
        hours, halves = _DERIVED_DURATIONS[duration]
        hour_price = table.get(station_type, quantity, 60)
        half_price = table.get(station_type, quantity, 30) if halves else None

        used = [price for price in (hour_price, half_price) if price is not None]
        price = (hour_price or 0) * hours + (half_price or 0) * halves
        if used:
            return PriceQuote(unit_price=price, pricing_undefined=False, rule=f"derived_{duration}")

        _warn_undefined(station_type, quantity, duration)
        return PriceQuote(unit_price=0, pricing_undefined=True, rule=f"derived_{duration}")

    _warn_undefined(station_type, quantity, duration)
    return PriceQuote(unit_price=0, pricing_undefined=True, rule="undefined")


def _warn_undefined(station_type: StationType, quantity: int, duration: int) -> None:
    logger.warning(
        "No pricing tier for %s x%s for %s minutes; quoting 0",
        station_type.value,
        quantity,
        duration,
    )
