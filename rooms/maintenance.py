import logging

from django.utils import timezone

from .models import MaintenanceLog, Room
from .reconciler import RoomOccupancyReconciler

logger = logging.getLogger(__name__)


class MaintenanceError(Exception):
    pass


def flag_room(room):
    """Take a room out of service. The reconciler leaves it alone from here on."""
    if room.status != Room.MAINTENANCE:
        room.status = Room.MAINTENANCE
        room.save(update_fields=['status', 'updated_at'])
        logger.info(f"Room {room.pk} flagged for maintenance.")
    return room.status


def release_room(room, reconciler=None):
    """
    Put a room back into service and let its bookings decide between
    AVAILABLE and OCCUPIED. Rooms not under maintenance are left as they are.

    Raises:
        StoreError: the room is back on AVAILABLE but could not be reconciled
    """
    if room.status != Room.MAINTENANCE:
        return room.status

    room.status = Room.AVAILABLE
    room.save(update_fields=['status', 'updated_at'])
    room.status = (reconciler or RoomOccupancyReconciler()).reconcile_room(room.pk)
    logger.info(f"Room {room.pk} released from maintenance as {room.status}.")
    return room.status


def open_issue(log):
    """Called once a log is saved: high and critical issues take the room out of service."""
    if log.is_blocking:
        flag_room(log.room)
    return log


def change_issue_status(log, new_status, reconciler=None):
    """
    Move a maintenance log along PENDING -> IN_PROGRESS -> COMPLETED/CANCELLED.

    Closing the last open high or critical issue on a room releases it.
    """
    if not log.can_transition_to(new_status):
        raise MaintenanceError(f"Cannot change maintenance log from {log.status} to {new_status}.")

    was_blocking = log.is_blocking
    now = timezone.now()
    log.status = new_status
    if new_status == MaintenanceLog.IN_PROGRESS and log.start_date is None:
        log.start_date = now
    elif new_status in (MaintenanceLog.COMPLETED, MaintenanceLog.CANCELLED):
        log.end_date = now
    log.save(update_fields=['status', 'start_date', 'end_date', 'updated_at'])
    logger.info(f"Maintenance log {log.pk} on room {log.room_id} is now {new_status}.")

    if was_blocking and not log.is_blocking:
        still_blocked = log.room.maintenance_logs.filter(
            status__in=MaintenanceLog.OPEN_STATUSES,
            priority__in=MaintenanceLog.BLOCKING_PRIORITIES,
        ).exclude(pk=log.pk).exists()
        if not still_blocked:
            release_room(log.room, reconciler)
    return log
