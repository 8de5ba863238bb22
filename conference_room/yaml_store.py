from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any
import random
import shutil
import threading
from uuid import uuid4

import holidays as pyholidays
import yaml

from .booking import AlreadyExistsError, NotFoundError, Reservation, Room, reservations_for_room


class ReservationStorageError(RuntimeError):
    pass


BUSINESS_START_HOUR = 8
BUSINESS_END_HOUR = 19
SEED_WINDOW_DAYS = 30
DEFAULT_HOLIDAY_COUNTRY = "US"
EVENTS_FILE_NAME = "reservation_events.yaml"
_HOLIDAY_CACHE: dict[tuple[str, int], set[date]] = {}
# Shared by every store instance; they all append to the same event log.
_STORE_LOCK = threading.RLock()


class _YamlListFile:
    """Base for stores kept as a YAML list of mappings under ``base_dir``.

    Every mutation is appended to the shared event log so the data directory
    carries its own audit trail.
    """

    def __init__(self, base_dir: str | Path, file_name: str) -> None:
        self.base_dir = Path(base_dir)
        self.data_file = self.base_dir / file_name
        self.log_file = self.base_dir / EVENTS_FILE_NAME
        self._lock = _STORE_LOCK
        self._ensure_files()

    def _ensure_files(self) -> None:
        self.base_dir.mkdir(parents=True, exist_ok=True)
        for path in (self.data_file, self.log_file):
            if not path.exists():
                path.write_text("[]\n", encoding="utf-8")

    def _read_yaml_list(self, path: Path) -> list[dict[str, Any]]:
        try:
            payload = yaml.safe_load(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            path.write_text("[]\n", encoding="utf-8")
            return []
        except (OSError, UnicodeDecodeError, yaml.YAMLError) as error:
            self._recover_corrupted_yaml(path, error)
            return []

        if payload is None:
            return []
        if not isinstance(payload, list):
            self._recover_corrupted_yaml(path, ValueError("top-level YAML is not a list"))
            return []

        sanitized: list[dict[str, Any]] = []
        for index, row in enumerate(payload):
            if isinstance(row, dict):
                sanitized.append(row)
            elif path != self.log_file:
                self._log_event(
                    "YAML_ROW_SKIPPED",
                    {
                        "file": str(path.name),
                        "index": index,
                        "reason": "row is not a mapping",
                    },
                )
        return sanitized

    def _write_yaml_list(self, path: Path, rows: list[dict[str, Any]]) -> None:
        temp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            temp_path.write_text(yaml.safe_dump(rows, allow_unicode=True, sort_keys=False), encoding="utf-8")
            temp_path.replace(path)
        except OSError as error:
            raise ReservationStorageError(f"Failed to write YAML file: {path}") from error
        finally:
            if temp_path.exists():
                temp_path.unlink(missing_ok=True)

    def _recover_corrupted_yaml(self, path: Path, error: Exception) -> None:
        timestamp = datetime.now().strftime("%Y%m%d%H%M%S")
        backup_path = path.with_name(f"{path.stem}.corrupt.{timestamp}{path.suffix}")
        try:
            if path.exists():
                shutil.copy2(path, backup_path)
        except OSError:
            backup_path = None

        path.write_text("[]\n", encoding="utf-8")
        if path != self.log_file:
            self._log_event(
                "YAML_RECOVERED",
                {
                    "file": str(path.name),
                    "backup": str(backup_path.name) if backup_path else None,
                    "reason": str(error),
                },
            )

    def _log_event(self, event_type: str, payload: dict[str, Any], event_time: datetime | None = None) -> None:
        timestamp = (event_time or datetime.now()).isoformat(timespec="seconds")
        with self._lock:
            events = self._read_yaml_list(self.log_file)
            events.append({"event_time": timestamp, "event_type": event_type, "payload": payload})
            self._write_yaml_list(self.log_file, events)


class RoomYamlDirectory(_YamlListFile):
    def __init__(self, base_dir: str | Path = "data") -> None:
        super().__init__(base_dir, "rooms.yaml")

    def get_all_rooms(self) -> list[Room]:
        return [room_from_dict(row) for row in self._read_yaml_list(self.data_file)]

    def get_room_by_id(self, room_id: str) -> Room:
        for room in self.get_all_rooms():
            if room.room_id == room_id:
                return room
        raise NotFoundError("Conference room with given id not found")

    def get_all_rooms_for_organization(self, organization_id: str) -> list[Room]:
        return [room for room in self.get_all_rooms() if room.organization_id == organization_id]

    def add_room(
        self,
        name: str,
        organization_id: str,
        capacity: int | None = None,
        room_id: str | None = None,
    ) -> Room:
        name = _normalize_name(name)
        with self._lock:
            rows = self._read_yaml_list(self.data_file)
            existing = [room_from_dict(row) for row in rows]
            if any(room.name == name for room in existing):
                raise AlreadyExistsError(f"Conference room named {name!r} already exists")

            room = Room(
                room_id=room_id or str(uuid4()),
                name=name,
                organization_id=str(organization_id),
                capacity=capacity,
            )
            if any(other.room_id == room.room_id for other in existing):
                raise AlreadyExistsError(f"Conference room with id {room.room_id!r} already exists")

            rows.append(room_to_dict(room))
            self._write_yaml_list(self.data_file, rows)

        self._log_event("ROOM_CREATED", room_to_dict(room))
        return room


class ReservationYamlRepository(_YamlListFile):
    def __init__(self, base_dir: str | Path = "data") -> None:
        super().__init__(base_dir, "reservations.yaml")

    def find_all(self) -> list[Reservation]:
        rows = self._read_yaml_list(self.data_file)
        return [reservation_from_dict(row) for row in rows]

    def find_by_id(self, reservation_id: str) -> Reservation | None:
        for reservation in self.find_all():
            if reservation.reservation_id == reservation_id:
                return reservation
        return None

    def find_all_by_room(self, room: Room) -> list[Reservation]:
        return reservations_for_room(room, self.find_all())

    def save(self, reservation: Reservation, now: datetime | None = None) -> Reservation:
        """Insert ``reservation`` or replace the stored one with the same id.

        A reservation without an id, or with an id not yet stored, is
        inserted. An existing one is replaced as a whole; only ``created_at``
        is carried over.
        """
        effective_now = (now or datetime.now()).replace(microsecond=0)
        with self._lock:
            rows = self._read_yaml_list(self.data_file)
            found_index = _find_row_index(rows, reservation.reservation_id)

            if found_index < 0:
                stored = replace(
                    reservation,
                    reservation_id=reservation.reservation_id or str(uuid4()),
                    created_at=effective_now,
                    updated_at=effective_now,
                )
                rows.append(reservation_to_dict(stored))
                event_type = "RESERVATION_CREATED"
            else:
                current = reservation_from_dict(rows[found_index])
                stored = replace(
                    reservation,
                    created_at=current.created_at or effective_now,
                    updated_at=effective_now,
                )
                rows[found_index] = reservation_to_dict(stored)
                event_type = "RESERVATION_UPDATED"

            self._write_yaml_list(self.data_file, rows)

        self._log_event(event_type, _event_payload(stored), effective_now)
        return stored

    def update_existing(self, reservation: Reservation, now: datetime | None = None) -> Reservation:
        """Replace the stored reservation with the same id.

        Raises ``NotFoundError`` instead of inserting when the id is gone.
        """
        with self._lock:
            if _find_row_index(self._read_yaml_list(self.data_file), reservation.reservation_id) < 0:
                raise NotFoundError("Reservation with given id not found")
            return self.save(reservation, now=now)

    def delete_by_id(self, reservation_id: str, now: datetime | None = None) -> Reservation:
        effective_now = (now or datetime.now()).replace(microsecond=0)
        with self._lock:
            rows = self._read_yaml_list(self.data_file)
            found_index = _find_row_index(rows, reservation_id)
            if found_index < 0:
                raise NotFoundError("Reservation with given id not found")

            deleted = reservation_from_dict(rows.pop(found_index))
            self._write_yaml_list(self.data_file, rows)

        self._log_event("RESERVATION_DELETED", _event_payload(deleted), effective_now)
        return deleted

    def seed_test_data(
        self,
        rooms: list[Room],
        start_date: date,
        per_room: int = 3,
        overwrite: bool = True,
        holiday_country: str = DEFAULT_HOLIDAY_COUNTRY,
        now: datetime | None = None,
    ) -> list[Reservation]:
        effective_now = (now or datetime.now()).replace(microsecond=0)
        generated = generate_test_reservations(
            rooms,
            start_date,
            per_room=per_room,
            holiday_country=holiday_country,
            reference_now=effective_now,
        )

        with self._lock:
            rows = [] if overwrite else self._read_yaml_list(self.data_file)
            rows.extend(reservation_to_dict(reservation) for reservation in generated)
            self._write_yaml_list(self.data_file, rows)

        self._log_event(
            "TEST_DATA_GENERATED",
            {
                "count": len(generated),
                "rooms": [room.name for room in rooms],
                "date_window_days": SEED_WINDOW_DAYS,
                "holiday_country": holiday_country,
                "business_hours": f"{BUSINESS_START_HOUR:02d}:00-{BUSINESS_END_HOUR:02d}:00",
                "overwrite": overwrite,
            },
            effective_now,
        )
        return generated


def generate_test_reservations(
    rooms: list[Room],
    start_date: date,
    per_room: int = 3,
    holiday_country: str = DEFAULT_HOLIDAY_COUNTRY,
    reference_now: datetime | None = None,
) -> list[Reservation]:
    """Build deterministic bookings for ``rooms`` on upcoming business days.

    Each room gets at most one booking per day, so the generated set never
    conflicts with itself.
    """
    if per_room <= 0:
        raise ValueError("per_room must be greater than zero")

    business_days = _collect_business_days(start_date, start_date + timedelta(days=SEED_WINDOW_DAYS), holiday_country)
    if not business_days:
        raise ValueError("No business days available in the seed window.")

    rng = random.Random(f"test:{start_date.isoformat()}:{per_room}")
    now = reference_now or datetime.now()
    records: list[Reservation] = []
    for room in rooms:
        days = sorted(rng.sample(business_days, min(per_room, len(business_days))))
        for day in days:
            start_hour = rng.randint(BUSINESS_START_HOUR, BUSINESS_END_HOUR - 1)
            start_minute = rng.choice([0, 15, 30, 45])
            start = datetime(day.year, day.month, day.day, start_hour, start_minute)
            business_end = datetime(day.year, day.month, day.day, BUSINESS_END_HOUR, 0)
            max_duration = int((business_end - start).total_seconds() // 60)
            duration_minutes = rng.choice([value for value in [15, 30, 45, 60, 90] if value <= max_duration])

            records.append(
                Reservation(
                    reservation_id=str(uuid4()),
                    room=room,
                    start=start,
                    end=start + timedelta(minutes=duration_minutes),
                    created_at=now,
                    updated_at=now,
                )
            )

    return records


def room_to_dict(room: Room) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "room_id": room.room_id,
        "name": room.name,
        "organization_id": room.organization_id,
    }
    if room.capacity is not None:
        payload["capacity"] = room.capacity
    return payload


def room_from_dict(data: dict[str, Any]) -> Room:
    return Room(
        room_id=str(data["room_id"]),
        name=str(data["name"]),
        organization_id=str(data["organization_id"]),
        capacity=(int(data["capacity"]) if data.get("capacity") is not None else None),
    )


def reservation_to_dict(reservation: Reservation) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "reservation_id": reservation.reservation_id,
        "room": room_to_dict(reservation.room),
        "start": reservation.start.isoformat(timespec="seconds"),
        "end": reservation.end.isoformat(timespec="seconds"),
    }
    if reservation.created_at is not None:
        payload["created_at"] = reservation.created_at.isoformat(timespec="seconds")
    if reservation.updated_at is not None:
        payload["updated_at"] = reservation.updated_at.isoformat(timespec="seconds")
    return payload


def reservation_from_dict(data: dict[str, Any]) -> Reservation:
    return Reservation(
        reservation_id=str(data["reservation_id"]),
        room=room_from_dict(data["room"]),
        start=datetime.fromisoformat(str(data["start"])),
        end=datetime.fromisoformat(str(data["end"])),
        created_at=_optional_datetime(data.get("created_at")),
        updated_at=_optional_datetime(data.get("updated_at")),
    )


def _optional_datetime(value: Any) -> datetime | None:
    if value is None:
        return None
    return datetime.fromisoformat(str(value))


def _find_row_index(rows: list[dict[str, Any]], reservation_id: str | None) -> int:
    if reservation_id is None:
        return -1
    for index, row in enumerate(rows):
        if str(row.get("reservation_id")) == reservation_id:
            return index
    return -1


def _event_payload(reservation: Reservation) -> dict[str, Any]:
    return {
        "reservation_id": reservation.reservation_id,
        "room": reservation.room.name,
        "start": reservation.start.isoformat(timespec="seconds"),
        "end": reservation.end.isoformat(timespec="seconds"),
    }


def _normalize_name(name: str | None) -> str:
    if name is None:
        raise ValueError("name must not be None")

    normalized = name.strip()
    if not normalized:
        raise ValueError("name must not be empty")
    return normalized


def _collect_business_days(start_inclusive: date, end_exclusive: date, country: str) -> list[date]:
    cursor = start_inclusive
    business_days: list[date] = []
    while cursor < end_exclusive:
        if _is_business_day(cursor, country):
            business_days.append(cursor)
        cursor += timedelta(days=1)
    return business_days


def _is_business_day(target_date: date, country: str) -> bool:
    return target_date.weekday() < 5 and not _is_public_holiday(target_date, country)


def _is_public_holiday(target_date: date, country: str) -> bool:
    key = (country, target_date.year)
    if key not in _HOLIDAY_CACHE:
        holiday_map = pyholidays.country_holidays(country, years=[target_date.year])
        _HOLIDAY_CACHE[key] = set(holiday_map.keys())
    return target_date in _HOLIDAY_CACHE[key]
