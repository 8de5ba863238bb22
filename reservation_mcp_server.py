from __future__ import annotations

import os
from pathlib import Path

from mcp.server.fastmcp import FastMCP

from conference_room import (
    Reservation,
    ReservationService,
    ReservationYamlRepository,
    RoomYamlDirectory,
    is_room_available,
    parse_local_timestamp,
)

mcp = FastMCP(
    "Conference Room MCP Server",
    instructions="Expose conference room reservations and availability checks from the conference_room project.",
    json_response=True,
)

DATA_DIR = Path(os.environ.get("CONFERENCE_ROOM_DATA_DIR", Path(__file__).parent / "data"))
ROOMS = RoomYamlDirectory(DATA_DIR)
REPOSITORY = ReservationYamlRepository(DATA_DIR)
SERVICE = ReservationService(REPOSITORY, ROOMS)


def _reservation_to_payload(reservation: Reservation) -> dict[str, str | None]:
    return {
        "reservation_id": reservation.reservation_id,
        "room_id": reservation.room.room_id,
        "room_name": reservation.room.name,
        "start": reservation.start.isoformat(timespec="seconds"),
        "end": reservation.end.isoformat(timespec="seconds"),
    }


@mcp.resource("conference://rooms")
async def list_rooms() -> list[dict[str, str | int | None]]:
    """List known conference rooms."""
    return [
        {
            "room_id": room.room_id,
            "name": room.name,
            "organization_id": room.organization_id,
            "capacity": room.capacity,
        }
        for room in ROOMS.get_all_rooms()
    ]


@mcp.tool()
def list_reservations(room_name: str | None = None) -> list[dict[str, str | None]]:
    """Return reservations, optionally filtered by room name."""
    records = SERVICE.list_reservations()
    filtered = [record for record in records if room_name is None or record.room.name == room_name]
    return [_reservation_to_payload(record) for record in filtered]


@mcp.tool()
def check_room_availability(room_id: str, start_iso: str, end_iso: str) -> dict[str, str | bool]:
    """Report whether a room is free between two ISO timestamps (boundaries inclusive)."""
    room = ROOMS.get_room_by_id(room_id)
    start = parse_local_timestamp(start_iso)
    end = parse_local_timestamp(end_iso)
    available = is_room_available(room, start, end, REPOSITORY.find_all_by_room(room))
    return {"room_id": room.room_id, "room_name": room.name, "available": available}


@mcp.tool()
def create_reservation(room_id: str, start_iso: str, end_iso: str) -> dict[str, str | None]:
    """Book a room using ISO timestamps; fails if the window is already taken."""
    room = ROOMS.get_room_by_id(room_id)
    candidate = Reservation(
        reservation_id=None,
        room=room,
        start=parse_local_timestamp(start_iso),
        end=parse_local_timestamp(end_iso),
    )
    return _reservation_to_payload(SERVICE.create_reservation(candidate))


def main() -> None:
    mcp.run()


if __name__ == "__main__":
    main()
