from __future__ import annotations

from datetime import date, datetime
from pathlib import Path

from mcp.server.fastmcp import FastMCP

from station_scheduler import BookingEngine, BookingRequest, CafeYamlRepository, StationType

mcp = FastMCP(
    "Station Scheduler MCP Server",
    instructions="Check gaming-café station availability, live unit status, and book stations.",
    json_response=True,
)

DATA_DIR = Path(__file__).parent / "data"
REPOSITORY = CafeYamlRepository(DATA_DIR)
ENGINE = BookingEngine(REPOSITORY)


@mcp.resource("stations://types")
async def list_station_types() -> list[dict[str, str]]:
    """List bookable station types and their display labels."""
    return [{"station_type": station_type.value, "label": station_type.label} for station_type in StationType]


@mcp.tool()
def live_status(cafe_id: str, station_type: str | None = None) -> list[dict]:
    """Return per-unit live status for a café, optionally for one station type."""
    return [board.to_dict() for board in ENGINE.live_status(cafe_id, station_type)]


@mcp.tool()
def check_availability(cafe_id: str, booking_date: str, start_clock: str, duration_minutes: int = 60) -> list[dict]:
    """Return total, booked and available units per station type for a slot such as "7:30 pm"."""
    rows = ENGINE.availability(cafe_id, date.fromisoformat(booking_date), start_clock, duration_minutes)
    return [row.to_dict() for row in rows]


@mcp.tool()
def book_station(
    cafe_id: str,
    station_type: str,
    booking_date: str,
    start_clock: str,
    duration_minutes: int = 60,
    quantity: int = 1,
    controller_count: int = 1,
    customer_name: str = "MCP Guest",
) -> dict:
    """Book stations; a rejection carries the reason and the next start time that fits."""
    response = ENGINE.book(
        BookingRequest(
            cafe_id=cafe_id,
            station_type=station_type,
            booking_date=date.fromisoformat(booking_date),
            start_clock=start_clock,
            duration_minutes=duration_minutes,
            quantity=quantity,
            controller_count=controller_count,
            customer_name=customer_name,
            source="mcp",
        )
    )
    return {**response.to_dict(), "checked_at": datetime.now().isoformat(timespec="seconds")}


def main() -> None:
    mcp.run()


if __name__ == "__main__":
    main()
