import logging

from django.utils import timezone

from .exceptions import StoreError
from .models import Room
from .occupancy import compute_status, has_valid_interval, is_occupancy_relevant
from .stores import BookingStore, RoomStore

logger = logging.getLogger(__name__)


class ReconcileReport:
    """Outcome of a bulk reconciliation run."""

    def __init__(self):
        self.statuses = {}
        self.failures = {}

    def as_dict(self):
        return {
            'reconciled': len(self.statuses),
            'failed': len(self.failures),
            'statuses': {str(room_id): status for room_id, status in self.statuses.items()},
            'failures': {str(room_id): error for room_id, error in self.failures.items()},
        }


class RoomOccupancyReconciler:
    """
    Recomputes room availability from bookings and repairs drifted rows.

    Stores and clock are injected so the reconciler can run against
    in-memory fakes. Rooms under maintenance are never written.
    """

    def __init__(self, bookings=None, rooms=None, clock=None):
        self.bookings = bookings or BookingStore()
        self.rooms = rooms or RoomStore()
        self.clock = clock or timezone.now

    def _load_bookings(self, room_id):
        bookings = self.bookings.find_active_bookings_for_room(room_id)
        for booking in bookings:
            if is_occupancy_relevant(booking) and not has_valid_interval(booking):
                logger.warning(
                    f"Booking {getattr(booking, 'id', '?')} on room {room_id} has check_out "
                    f"{booking.check_out} not after check_in {booking.check_in}"
                )
        return bookings

    def preview_status(self, room_id):
        """Computed status for a room, without persisting it."""
        return compute_status(room_id, self._load_bookings(room_id), self.clock())

    def reconcile_room(self, room_id):
        bookings = self._load_bookings(room_id)
        status = compute_status(room_id, bookings, self.clock())

        current = self.rooms.get_status(room_id)
        if current == Room.MAINTENANCE:
            logger.debug(f"Room {room_id} is under maintenance, computed {status} not written")
        elif current != status:
            self.rooms.set_status(room_id, status)
            logger.info(f"Room {room_id} status {current} -> {status}")
        return status

    def reconcile_all(self):
        report = ReconcileReport()
        for room_id in self.bookings.find_all_non_maintenance_rooms():
            try:
                report.statuses[room_id] = self.reconcile_room(room_id)
            except StoreError as e:
                logger.error(f"Error reconciling room {room_id}: {e}")
                report.failures[room_id] = str(e)

        logger.info(
            f"Reconciled {len(report.statuses)} room(s), {len(report.failures)} failure(s)."
        )
        return report


def reconcile_room(room_id):
    """Reconcile one room with the ORM stores and the real clock."""
    return RoomOccupancyReconciler().reconcile_room(room_id)
