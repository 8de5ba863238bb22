from __future__ import annotations

from datetime import datetime
import logging
import os
from pathlib import Path
from typing import Any

from flask import Flask, jsonify, request

from .booking import AlreadyExistsError, NotFoundError, Reservation, Room, parse_local_timestamp
from .service import ReservationService
from .yaml_store import ReservationStorageError, ReservationYamlRepository, RoomYamlDirectory

logger = logging.getLogger(__name__)

DATA_DIR_ENV = "CONFERENCE_ROOM_DATA_DIR"


def create_app(data_dir: str | Path | None = None) -> Flask:
    app = Flask(__name__)
    base_dir = Path(data_dir or os.environ.get(DATA_DIR_ENV, "data"))
    rooms = RoomYamlDirectory(base_dir)
    service = ReservationService(ReservationYamlRepository(base_dir), rooms)

    def _parse_window(payload: dict[str, Any]) -> tuple[datetime, datetime]:
        start = _parse_timestamp(payload, "start")
        end = _parse_timestamp(payload, "end")
        if start > end:
            raise ValueError("start must not be later than end")
        return start, end

    def _parse_reservation(payload: dict[str, Any]) -> Reservation:
        room_id = str(payload.get("room_id", "")).strip()
        if not room_id:
            raise ValueError("room_id is required")
        start, end = _parse_window(payload)
        room = rooms.get_room_by_id(room_id)
        return Reservation(reservation_id=None, room=room, start=start, end=end)

    @app.after_request
    def add_cors_headers(response: Any) -> Any:
        response.headers["Access-Control-Allow-Origin"] = "*"
        response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,OPTIONS"
        response.headers["Access-Control-Allow-Headers"] = "Content-Type"
        return response

    @app.errorhandler(NotFoundError)
    def handle_not_found(error: NotFoundError) -> Any:
        return jsonify({"ok": False, "message": str(error)}), 404

    @app.errorhandler(AlreadyExistsError)
    def handle_already_exists(error: AlreadyExistsError) -> Any:
        return jsonify({"ok": False, "message": str(error)}), 409

    @app.errorhandler(ReservationStorageError)
    def handle_storage_error(error: ReservationStorageError) -> Any:
        logger.error("Reservation storage failure: %s", error)
        return jsonify({"ok": False, "message": "Reservation storage is unavailable."}), 500

    @app.get("/api/reservations")
    def list_reservations() -> Any:
        reservations = service.list_reservations()
        return jsonify({"ok": True, "reservations": [_serialize_reservation(record) for record in reservations]})

    @app.get("/api/reservations/<reservation_id>")
    def get_reservation(reservation_id: str) -> Any:
        return jsonify({"ok": True, "reservation": _serialize_reservation(service.get_reservation(reservation_id))})

    @app.post("/api/reservations")
    def create_reservation() -> Any:
        payload = _request_object()
        if payload is None:
            return jsonify({"ok": False, "message": "request body must be a JSON object"}), 400
        try:
            candidate = _parse_reservation(payload)
        except ValueError as error:
            return jsonify({"ok": False, "message": str(error)}), 400

        created = service.create_reservation(candidate)
        return jsonify({"ok": True, "reservation": _serialize_reservation(created)}), 201

    @app.put("/api/reservations/<reservation_id>")
    def update_reservation(reservation_id: str) -> Any:
        payload = _request_object()
        if payload is None:
            return jsonify({"ok": False, "message": "request body must be a JSON object"}), 400
        try:
            new_data = _parse_reservation(payload)
        except ValueError as error:
            return jsonify({"ok": False, "message": str(error)}), 400

        check_availability = payload.get("check_availability", False)
        if not isinstance(check_availability, bool):
            return jsonify({"ok": False, "message": "check_availability must be a JSON boolean"}), 400

        updated = service.update_reservation(
            reservation_id,
            new_data,
            check_availability=check_availability,
        )
        return jsonify({"ok": True, "reservation": _serialize_reservation(updated)})

    @app.delete("/api/reservations/<reservation_id>")
    def delete_reservation(reservation_id: str) -> Any:
        service.delete_reservation(reservation_id)
        return jsonify({"ok": True, "reservation_id": reservation_id})

    @app.get("/api/organizations/<organization_id>/reservations")
    def list_organization_reservations(organization_id: str) -> Any:
        reservations = service.list_reservations_by_organization(organization_id)
        return jsonify({"ok": True, "reservations": [_serialize_reservation(record) for record in reservations]})

    @app.get("/api/rooms/<room_id>/reservations")
    def list_room_reservations(room_id: str) -> Any:
        reservations = service.list_reservations_by_room(room_id)
        return jsonify({"ok": True, "reservations": [_serialize_reservation(record) for record in reservations]})

    @app.post("/api/organizations/<organization_id>/rooms/availability")
    def organization_room_availability(organization_id: str) -> Any:
        payload = _request_object()
        if payload is None:
            return jsonify({"ok": False, "message": "request body must be a JSON object"}), 400
        try:
            start, end = _parse_window(payload)
        except ValueError as error:
            return jsonify({"ok": False, "message": str(error)}), 400

        annotated = service.rooms_with_availability_for_organization(organization_id, start, end)
        return jsonify(
            {
                "ok": True,
                "start": start.isoformat(timespec="seconds"),
                "end": end.isoformat(timespec="seconds"),
                "rooms": [_serialize_room(room) for room in annotated],
            }
        )

    return app


def _request_object() -> dict[str, Any] | None:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    return payload if isinstance(payload, dict) else None


def _parse_timestamp(payload: dict[str, Any], key: str) -> datetime:
    try:
        return parse_local_timestamp(str(payload.get(key, "")))
    except ValueError as error:
        raise ValueError(f"{key} must be an ISO-8601 timestamp without a UTC offset") from error


def _serialize_room(room: Room) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "room_id": room.room_id,
        "name": room.name,
        "organization_id": room.organization_id,
        "capacity": room.capacity,
    }
    if room.available is not None:
        payload["available"] = room.available
    return payload


def _serialize_reservation(record: Reservation) -> dict[str, Any]:
    return {
        "reservation_id": record.reservation_id,
        "room": _serialize_room(record.room),
        "start": record.start.isoformat(timespec="seconds"),
        "end": record.end.isoformat(timespec="seconds"),
        "created_at": record.created_at.isoformat(timespec="seconds") if record.created_at else None,
        "updated_at": record.updated_at.isoformat(timespec="seconds") if record.updated_at else None,
    }


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
    app = create_app()
    app.run(host="127.0.0.1", port=5000, debug=False)
