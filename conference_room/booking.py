from dataclasses import dataclass
from datetime import datetime
from typing import Iterable


class NotFoundError(LookupError):
    pass


class AlreadyExistsError(ValueError):
    pass


@dataclass(frozen=True)
class Room:
    room_id: str
    name: str
    organization_id: str
    capacity: int | None = None
    available: bool | None = None


@dataclass(frozen=True)
class Reservation:
    reservation_id: str | None
    room: Room
    start: datetime
    end: datetime
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def interval(self) -> "Interval":
        return Interval(self.start, self.end)


@dataclass(frozen=True)
class Interval:
    start: datetime
    end: datetime

    def overlaps(self, other: "Interval") -> bool:
        return has_time_overlap(self.start, self.end, other.start, other.end)


def has_time_overlap(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
    """Return True when two booking windows intersect.

    Both ends are inclusive: a window ending at 11:00 and another starting at
    11:00 conflict. This is not the half-open ``[start, end)`` rule.

    Window ordering is not validated. A window whose start is after its end is
    evaluated by the same formula.
    """
    return start_a <= end_b and end_a >= start_b


def reservations_for_room(room: Room, reservations: Iterable[Reservation]) -> list[Reservation]:
    """Return the reservations booked for ``room``, matched by room name."""
    return [reservation for reservation in reservations if reservation.room.name == room.name]


def is_room_available(room: Room, start: datetime, end: datetime, reservations: Iterable[Reservation]) -> bool:
    """Return True if no reservation for ``room`` overlaps ``[start, end]``."""
    for reservation in reservations_for_room(room, reservations):
        if has_time_overlap(reservation.start, reservation.end, start, end):
            return False
    return True


def parse_local_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp in naive local time.

    Stored bookings carry no time zone, so values with a UTC offset are
    rejected with ``ValueError`` rather than compared against them.
    """
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is not None:
        raise ValueError("timestamps must not carry a UTC offset")
    return parsed
