"""
ORM-backed stores the occupancy reconciler reads from and writes to.
Database failures are re-raised as StoreError.
"""
from django.db import DatabaseError

from reservation.models import Booking
from .exceptions import StoreError
from .models import Room
from .occupancy import OCCUPANCY_RELEVANT_STATUSES


class BookingStore:

    def find_active_bookings_for_room(self, room_id):
        try:
            return list(
                Booking.objects.filter(room_id=room_id, status__in=OCCUPANCY_RELEVANT_STATUSES)
                .only('id', 'status', 'check_in', 'check_out')
            )
        except DatabaseError as exc:
            raise StoreError(f"Could not load bookings for room {room_id}: {exc}", room_id=room_id) from exc

    def find_all_non_maintenance_rooms(self):
        try:
            return list(
                Room.objects.exclude(status=Room.MAINTENANCE)
                .order_by('pk')
                .values_list('pk', flat=True)
            )
        except DatabaseError as exc:
            raise StoreError(f"Could not list rooms: {exc}") from exc


class RoomStore:

    def get_status(self, room_id):
        try:
            return Room.objects.values_list('status', flat=True).get(pk=room_id)
        except Room.DoesNotExist as exc:
            raise StoreError(f"Room {room_id} does not exist", room_id=room_id) from exc
        except DatabaseError as exc:
            raise StoreError(f"Could not read status of room {room_id}: {exc}", room_id=room_id) from exc

    def set_status(self, room_id, status):
        try:
            updated = Room.objects.filter(pk=room_id).update(status=status)
        except DatabaseError as exc:
            raise StoreError(f"Could not update status of room {room_id}: {exc}", room_id=room_id) from exc
        if not updated:
            raise StoreError(f"Room {room_id} does not exist", room_id=room_id)
