import tempfile
import threading
import unittest
from datetime import datetime
from pathlib import Path

from conference_room import (
    AlreadyExistsError,
    NotFoundError,
    Reservation,
    ReservationService,
    ReservationYamlRepository,
    Room,
    RoomYamlDirectory,
)


class ServiceTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_dir = tempfile.TemporaryDirectory()
        data_dir = Path(self._temp_dir.name) / "data"
        self.rooms = RoomYamlDirectory(data_dir)
        self.repo = ReservationYamlRepository(data_dir)
        self.service = ReservationService(self.repo, self.rooms)
        self.room_a = self.rooms.add_room("A", "org-1", capacity=8, room_id="room-a")
        self.room_b = self.rooms.add_room("B", "org-1", capacity=4, room_id="room-b")
        self.room_c = self.rooms.add_room("C", "org-2", room_id="room-c")

    def tearDown(self) -> None:
        self._temp_dir.cleanup()

    def _book(self, room: Room, start: datetime, end: datetime) -> Reservation:
        return self.service.create_reservation(Reservation(reservation_id=None, room=room, start=start, end=end))


class TestCreateReservation(ServiceTestCase):
    def test_empty_store_accepts_any_window(self) -> None:
        created = self._book(self.room_a, datetime(2026, 2, 24, 10, 0), datetime(2026, 2, 24, 11, 0))

        self.assertIsNotNone(created.reservation_id)
        self.assertEqual(self.service.list_reservations(), [created])

    def test_touching_boundary_rejected_and_next_minute_accepted(self) -> None:
        self._book(self.room_a, datetime(2026, 2, 24, 10, 0), datetime(2026, 2, 24, 11, 0))

        with self.assertRaises(AlreadyExistsError):
            self._book(self.room_a, datetime(2026, 2, 24, 11, 0), datetime(2026, 2, 24, 12, 0))

        created = self._book(self.room_a, datetime(2026, 2, 24, 11, 1), datetime(2026, 2, 24, 12, 0))
        self.assertEqual(created.start, datetime(2026, 2, 24, 11, 1))
        self.assertEqual(len(self.service.list_reservations()), 2)

    def test_double_booking_rejected(self) -> None:
        self._book(self.room_a, datetime(2026, 2, 24, 10, 0), datetime(2026, 2, 24, 11, 0))

        with self.assertRaises(AlreadyExistsError):
            self._book(self.room_a, datetime(2026, 2, 24, 10, 30), datetime(2026, 2, 24, 11, 30))
        self.assertEqual(len(self.service.list_reservations()), 1)

    def test_other_room_same_window_accepted(self) -> None:
        self._book(self.room_a, datetime(2026, 2, 24, 10, 0), datetime(2026, 2, 24, 11, 0))

        created = self._book(self.room_b, datetime(2026, 2, 24, 10, 0), datetime(2026, 2, 24, 11, 0))
        self.assertEqual(created.room.name, "B")

    def test_candidate_id_is_not_reused(self) -> None:
        first = self._book(self.room_a, datetime(2026, 2, 24, 10, 0), datetime(2026, 2, 24, 11, 0))
        candidate = Reservation(first.reservation_id, self.room_a, datetime(2026, 2, 25, 10, 0), datetime(2026, 2, 25, 11, 0))

        created = self.service.create_reservation(candidate)

        self.assertNotEqual(created.reservation_id, first.reservation_id)
        self.assertEqual(len(self.service.list_reservations()), 2)

    def test_concurrent_overlapping_creations_allow_exactly_one(self) -> None:
        barrier = threading.Barrier(4)
        outcomes: list[str] = []
        outcomes_lock = threading.Lock()

        def attempt(offset_minutes: int) -> None:
            barrier.wait()
            start = datetime(2026, 2, 24, 10, offset_minutes)
            try:
                self._book(self.room_a, start, datetime(2026, 2, 24, 11, offset_minutes))
                result = "created"
            except AlreadyExistsError:
                result = "rejected"
            with outcomes_lock:
                outcomes.append(result)

        threads = [threading.Thread(target=attempt, args=(offset,)) for offset in (0, 10, 20, 30)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(outcomes.count("created"), 1)
        self.assertEqual(outcomes.count("rejected"), 3)
        self.assertEqual(len(self.repo.find_all_by_room(self.room_a)), 1)


class TestLookupAndDelete(ServiceTestCase):
    def test_get_reservation_returns_stored_record(self) -> None:
        created = self._book(self.room_a, datetime(2026, 2, 24, 10, 0), datetime(2026, 2, 24, 11, 0))

        self.assertEqual(self.service.get_reservation(created.reservation_id), created)

    def test_get_missing_raises_not_found(self) -> None:
        with self.assertRaises(NotFoundError):
            self.service.get_reservation("missing")

    def test_delete_missing_raises_not_found(self) -> None:
        with self.assertRaises(NotFoundError):
            self.service.delete_reservation("missing")

    def test_delete_frees_the_window(self) -> None:
        created = self._book(self.room_a, datetime(2026, 2, 24, 10, 0), datetime(2026, 2, 24, 11, 0))

        self.service.delete_reservation(created.reservation_id)

        self.assertEqual(self.service.list_reservations(), [])
        self._book(self.room_a, datetime(2026, 2, 24, 10, 0), datetime(2026, 2, 24, 11, 0))


class TestUpdateReservation(ServiceTestCase):
    def test_update_missing_raises_not_found(self) -> None:
        replacement = Reservation(None, self.room_a, datetime(2026, 2, 24, 10, 0), datetime(2026, 2, 24, 11, 0))

        with self.assertRaises(NotFoundError):
            self.service.update_reservation("missing", replacement)

    def test_update_replaces_whole_record(self) -> None:
        created = self._book(self.room_a, datetime(2026, 2, 24, 10, 0), datetime(2026, 2, 24, 11, 0))
        replacement = Reservation(None, self.room_b, datetime(2026, 2, 25, 9, 0), datetime(2026, 2, 25, 9, 30))

        updated = self.service.update_reservation(created.reservation_id, replacement)

        self.assertEqual(updated.reservation_id, created.reservation_id)
        self.assertEqual(updated.room.name, "B")
        self.assertEqual(self.service.get_reservation(created.reservation_id).start, datetime(2026, 2, 25, 9, 0))
        self.assertEqual(len(self.service.list_reservations()), 1)

    def test_update_skips_availability_check_by_default(self) -> None:
        self._book(self.room_a, datetime(2026, 2, 24, 10, 0), datetime(2026, 2, 24, 11, 0))
        other = self._book(self.room_a, datetime(2026, 2, 24, 13, 0), datetime(2026, 2, 24, 14, 0))
        conflicting = Reservation(None, self.room_a, datetime(2026, 2, 24, 10, 30), datetime(2026, 2, 24, 11, 30))

        updated = self.service.update_reservation(other.reservation_id, conflicting)

        self.assertEqual(updated.start, datetime(2026, 2, 24, 10, 30))

    def test_checked_update_rejects_conflict_with_other_booking(self) -> None:
        self._book(self.room_a, datetime(2026, 2, 24, 10, 0), datetime(2026, 2, 24, 11, 0))
        other = self._book(self.room_a, datetime(2026, 2, 24, 13, 0), datetime(2026, 2, 24, 14, 0))
        conflicting = Reservation(None, self.room_a, datetime(2026, 2, 24, 10, 30), datetime(2026, 2, 24, 11, 30))

        with self.assertRaises(AlreadyExistsError):
            self.service.update_reservation(other.reservation_id, conflicting, check_availability=True)
        self.assertEqual(self.service.get_reservation(other.reservation_id).start, datetime(2026, 2, 24, 13, 0))

    def test_checked_update_ignores_own_window(self) -> None:
        created = self._book(self.room_a, datetime(2026, 2, 24, 10, 0), datetime(2026, 2, 24, 11, 0))
        extended = Reservation(None, self.room_a, datetime(2026, 2, 24, 10, 0), datetime(2026, 2, 24, 11, 30))

        updated = self.service.update_reservation(created.reservation_id, extended, check_availability=True)

        self.assertEqual(updated.end, datetime(2026, 2, 24, 11, 30))


    def test_update_racing_a_delete_does_not_restore_record(self) -> None:
        created = self._book(self.room_a, datetime(2026, 2, 24, 10, 0), datetime(2026, 2, 24, 11, 0))
        repo = self.repo
        find_by_id = repo.find_by_id

        def find_then_delete(reservation_id: str) -> Reservation | None:
            found = find_by_id(reservation_id)
            repo.delete_by_id(reservation_id)
            return found

        repo.find_by_id = find_then_delete
        replacement = Reservation(None, self.room_a, datetime(2026, 2, 24, 13, 0), datetime(2026, 2, 24, 14, 0))

        with self.assertRaises(NotFoundError):
            self.service.update_reservation(created.reservation_id, replacement)
        self.assertEqual(repo.find_all(), [])


class TestListings(ServiceTestCase):
    def test_list_by_organization(self) -> None:
        first = self._book(self.room_a, datetime(2026, 2, 24, 10, 0), datetime(2026, 2, 24, 11, 0))
        second = self._book(self.room_b, datetime(2026, 2, 24, 10, 0), datetime(2026, 2, 24, 11, 0))
        self._book(self.room_c, datetime(2026, 2, 24, 10, 0), datetime(2026, 2, 24, 11, 0))

        ids = [record.reservation_id for record in self.service.list_reservations_by_organization("org-1")]
        self.assertEqual(ids, [first.reservation_id, second.reservation_id])
        self.assertEqual(self.service.list_reservations_by_organization("org-unknown"), [])

    def test_list_by_room(self) -> None:
        first = self._book(self.room_a, datetime(2026, 2, 24, 10, 0), datetime(2026, 2, 24, 11, 0))
        self._book(self.room_b, datetime(2026, 2, 24, 10, 0), datetime(2026, 2, 24, 11, 0))

        records = self.service.list_reservations_by_room(self.room_a.room_id)
        self.assertEqual([record.reservation_id for record in records], [first.reservation_id])

    def test_list_by_unknown_room_raises_not_found(self) -> None:
        with self.assertRaises(NotFoundError):
            self.service.list_reservations_by_room("missing")

    def test_rooms_with_availability_flags_every_room(self) -> None:
        self._book(self.room_a, datetime(2026, 2, 24, 10, 0), datetime(2026, 2, 24, 11, 0))

        annotated = self.service.rooms_with_availability_for_organization(
            "org-1",
            datetime(2026, 2, 24, 11, 0),
            datetime(2026, 2, 24, 12, 0),
        )

        self.assertEqual([(room.name, room.available) for room in annotated], [("A", False), ("B", True)])

    def test_rooms_with_availability_does_not_cache(self) -> None:
        window = (datetime(2026, 2, 24, 10, 0), datetime(2026, 2, 24, 11, 0))
        before = self.service.rooms_with_availability_for_organization("org-2", *window)
        self._book(self.room_c, *window)
        after = self.service.rooms_with_availability_for_organization("org-2", *window)

        self.assertTrue(before[0].available)
        self.assertFalse(after[0].available)


if __name__ == "__main__":
    unittest.main()
