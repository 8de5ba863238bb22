from __future__ import annotations

from datetime import datetime, timedelta
import logging
import os
from pathlib import Path
import traceback

from conference_room import (
    AlreadyExistsError,
    Reservation,
    ReservationService,
    ReservationYamlRepository,
    RoomYamlDirectory,
)


def main() -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
    print("[INFO] Conference Room Quick Check")

    data_dir = Path(os.environ.get("CONFERENCE_ROOM_DATA_DIR", "data"))
    rooms = RoomYamlDirectory(data_dir)
    repository = ReservationYamlRepository(data_dir)
    service = ReservationService(repository, rooms)

    organization_id = "quickcheck"
    room_list = rooms.get_all_rooms_for_organization(organization_id)
    if not room_list:
        room_list = [rooms.add_room(f"Quickcheck Room {i}", organization_id, capacity=4 + i) for i in range(1, 4)]
    print(f"[OK] Rooms for organization {organization_id}: {len(room_list)}")

    now = datetime.now().replace(second=0, microsecond=0)
    generated = repository.seed_test_data(room_list, now.date(), per_room=3, overwrite=True, now=now)
    print(f"[OK] Test data generated: {len(generated)} records")

    target = generated[0]
    print(
        "[OK] Seeded slot: "
        f"{target.room.name},"
        f"{target.start.isoformat(timespec='minutes')}"
        f"~{target.end.isoformat(timespec='minutes')}"
    )

    try:
        service.create_reservation(Reservation(None, target.room, target.end, target.end + timedelta(hours=1)))
        print("[ERROR] Touching reservation was accepted.")
        return 1
    except AlreadyExistsError:
        print("[OK] Touching reservation rejected.")

    next_slot_start = target.end + timedelta(minutes=1)
    created = service.create_reservation(Reservation(None, target.room, next_slot_start, next_slot_start + timedelta(minutes=30)))
    print(f"[OK] Created reservation: {created.reservation_id}")

    annotated = service.rooms_with_availability_for_organization(organization_id, target.start, target.end)
    for room in annotated:
        print(f"[OK] {room.name}: {'available' if room.available else 'booked'}")

    print(f"[OK] Reservations: {len(service.list_reservations())}")
    print(f"[OK] Reservations YAML: {repository.data_file.resolve()}")
    print(f"[OK] Event Log YAML: {repository.log_file.resolve()}")

    print("[DONE] Quick check completed successfully.")
    return 0


if __name__ == "__main__":
    try:
        raise SystemExit(main())
    except Exception:
        print("[ERROR] Quick check failed.")
        traceback.print_exc()
        raise SystemExit(1)
