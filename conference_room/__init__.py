from .booking import (
	AlreadyExistsError,
	Interval,
	NotFoundError,
	Reservation,
	Room,
	has_time_overlap,
	is_room_available,
	parse_local_timestamp,
	reservations_for_room,
)
from .service import ReservationService
from .yaml_store import (
	ReservationStorageError,
	ReservationYamlRepository,
	RoomYamlDirectory,
	generate_test_reservations,
)

__all__ = [
	"AlreadyExistsError",
	"Interval",
	"NotFoundError",
	"Reservation",
	"Room",
	"has_time_overlap",
	"is_room_available",
	"parse_local_timestamp",
	"reservations_for_room",
	"ReservationService",
	"ReservationStorageError",
	"ReservationYamlRepository",
	"RoomYamlDirectory",
	"generate_test_reservations",
]
