from .availability import NextAvailable, StationAvailability, availability_overview, find_next_available
from .booking import (
	CapacityCheck,
	Reservation,
	ReservationStatus,
	SubscriptionStatus,
	TimerSubscription,
	check_capacity,
	minute_occupancy,
)
from .clock import InvalidTimeFormat, format_clock, interval_end, parse_clock
from .config import CafeProfile, EngineSettings, load_cafe_profiles
from .engine import BookingEngine, BookingRequest, BookingResponse, RejectReason
from .pricing import PriceQuote, PricingTable, resolve_unit_price
from .session_timer import SessionEnded, SessionTimerTracker, TimerSnapshot
from .stations import CafeConfigurationError, StationType, normalize_station_type
from .store import CafeDataStore, InMemoryCafeStore, PersistenceConflict, UnknownCafeError
from .units import StationBoard, UnitState, UnitStatus, assign_units
from .yaml_store import CafeYamlRepository, ReservationStorageError, generate_demo_reservations

__all__ = [
	"NextAvailable",
	"StationAvailability",
	"availability_overview",
	"find_next_available",
	"CapacityCheck",
	"Reservation",
	"ReservationStatus",
	"SubscriptionStatus",
	"TimerSubscription",
	"check_capacity",
	"minute_occupancy",
	"InvalidTimeFormat",
	"format_clock",
	"interval_end",
	"parse_clock",
	"CafeProfile",
	"EngineSettings",
	"load_cafe_profiles",
	"BookingEngine",
	"BookingRequest",
	"BookingResponse",
	"RejectReason",
	"PriceQuote",
	"PricingTable",
	"resolve_unit_price",
	"SessionEnded",
	"SessionTimerTracker",
	"TimerSnapshot",
	"CafeConfigurationError",
	"StationType",
	"normalize_station_type",
	"CafeDataStore",
	"InMemoryCafeStore",
	"PersistenceConflict",
	"UnknownCafeError",
	"StationBoard",
	"UnitState",
	"UnitStatus",
	"assign_units",
	"CafeYamlRepository",
	"ReservationStorageError",
	"generate_demo_reservations",
]
