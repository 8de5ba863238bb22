"""Reservation workflow built on the availability engine.

``ReservationService`` orchestrates the reservation lifecycle over a
reservation store and a room directory. The availability engine gates
creation; updates are stored as full replacements and, unless asked
otherwise, are not re-checked against other bookings.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
import logging
import threading
from typing import Protocol

from .booking import AlreadyExistsError, NotFoundError, Reservation, Room, is_room_available

logger = logging.getLogger(__name__)


class ReservationStore(Protocol):
    def find_all(self) -> list[Reservation]: ...

    def find_by_id(self, reservation_id: str) -> Reservation | None: ...

    def find_all_by_room(self, room: Room) -> list[Reservation]: ...

    def save(self, reservation: Reservation) -> Reservation: ...

    def update_existing(self, reservation: Reservation) -> Reservation: ...

    def delete_by_id(self, reservation_id: str) -> Reservation: ...


class RoomDirectory(Protocol):
    def get_room_by_id(self, room_id: str) -> Room: ...

    def get_all_rooms_for_organization(self, organization_id: str) -> list[Room]: ...


class ReservationService:
    def __init__(self, store: ReservationStore, rooms: RoomDirectory) -> None:
        self.store = store
        self.rooms = rooms
        self._room_locks: dict[str, threading.Lock] = {}
        self._room_locks_guard = threading.Lock()

    def _lock_for(self, room: Room) -> threading.Lock:
        # Keyed by name, the same key the availability engine matches on.
        with self._room_locks_guard:
            return self._room_locks.setdefault(room.name, threading.Lock())

    def list_reservations(self) -> list[Reservation]:
        logger.info("Getting all the reservations")
        return self.store.find_all()

    def get_reservation(self, reservation_id: str) -> Reservation:
        logger.info("Getting a reservation by id: %s", reservation_id)
        return self._get_existing(reservation_id)

    def create_reservation(self, candidate: Reservation) -> Reservation:
        """Store ``candidate`` if its room is free for the requested window.

        Raises ``AlreadyExistsError`` when any booking of the same room
        overlaps, boundaries included.
        """
        room = candidate.room
        with self._lock_for(room):
            existing = self.store.find_all_by_room(room)
            if not is_room_available(room, candidate.start, candidate.end, existing):
                logger.warning(
                    "Rejected reservation for room %s from %s to %s: room already booked",
                    room.name,
                    candidate.start.isoformat(),
                    candidate.end.isoformat(),
                )
                raise AlreadyExistsError("Unable to book that conference room for that period")

            created = self.store.save(replace(candidate, reservation_id=None, created_at=None, updated_at=None))

        logger.info("Created reservation with id: %s", created.reservation_id)
        return created

    def update_reservation(
        self,
        reservation_id: str,
        new_data: Reservation,
        check_availability: bool = False,
    ) -> Reservation:
        """Replace the reservation stored under ``reservation_id`` with ``new_data``.

        By default the new window is stored without consulting the
        availability engine, so an update may overlap another booking. Pass
        ``check_availability=True`` to gate the update against every other
        booking of the target room; the reservation being updated is left
        out of that check.
        """
        logger.info("Updating reservation with id: %s", reservation_id)
        self._get_existing(reservation_id)
        replacement = replace(new_data, reservation_id=reservation_id)

        if not check_availability:
            return self.store.update_existing(replacement)

        room = replacement.room
        with self._lock_for(room):
            others = [
                reservation
                for reservation in self.store.find_all_by_room(room)
                if reservation.reservation_id != reservation_id
            ]
            if not is_room_available(room, replacement.start, replacement.end, others):
                logger.warning("Rejected update of reservation %s: room %s already booked", reservation_id, room.name)
                raise AlreadyExistsError("Unable to move the reservation into that period")
            return self.store.update_existing(replacement)

    def delete_reservation(self, reservation_id: str) -> None:
        logger.info("Deleting reservation with id: %s", reservation_id)
        self._get_existing(reservation_id)
        self.store.delete_by_id(reservation_id)

    def list_reservations_by_organization(self, organization_id: str) -> list[Reservation]:
        return [
            reservation
            for reservation in self.store.find_all()
            if reservation.room.organization_id == organization_id
        ]

    def list_reservations_by_room(self, room_id: str) -> list[Reservation]:
        room = self.rooms.get_room_by_id(room_id)
        return self.store.find_all_by_room(room)

    def rooms_with_availability_for_organization(
        self,
        organization_id: str,
        start: datetime,
        end: datetime,
    ) -> list[Room]:
        """Return every room of the organization with ``available`` filled in.

        Unavailable rooms are kept in the result, only flagged.
        """
        rooms = self.rooms.get_all_rooms_for_organization(organization_id)
        reservations = self.store.find_all()
        return [replace(room, available=is_room_available(room, start, end, reservations)) for room in rooms]

    def _get_existing(self, reservation_id: str) -> Reservation:
        reservation = self.store.find_by_id(reservation_id)
        if reservation is None:
            raise NotFoundError("Reservation with given id not found")
        return reservation
