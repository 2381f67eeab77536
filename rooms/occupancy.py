"""
Booking-interval predicates shared by every piece of code that asks
"does this booking occupy its room right now?".

All intervals are half-open: a booking occupies ``[check_in, check_out)``.
The checkout instant itself is free, so a room vacated at 11:00 can be
occupied by the next booking starting at 11:00.

Bookings are duck-typed: anything with ``status``, ``check_in`` and
``check_out`` attributes works, ORM instances included.
"""
from reservation.models import Booking
from rooms.models import Room


OCCUPANCY_RELEVANT_STATUSES = (Booking.PENDING, Booking.CONFIRMED, Booking.CHECKED_IN)
PLANNED_STATUSES = (Booking.PENDING, Booking.CONFIRMED)
CHECKOUT_PENDING_STATUSES = (Booking.CONFIRMED, Booking.CHECKED_IN)


def is_occupancy_relevant(booking):
    return booking.status in OCCUPANCY_RELEVANT_STATUSES


def has_valid_interval(booking):
    """False when check_out does not come strictly after check_in."""
    if booking.check_in is None or booking.check_out is None:
        return False
    return booking.check_out > booking.check_in


def interval_contains(start, end, instant):
    return start <= instant < end


def intervals_overlap(start_a, end_a, start_b, end_b):
    """Half-open overlap: touching intervals do not overlap."""
    return start_a < end_b and start_b < end_a


def is_booking_active(booking, now):
    """
    A checked-in guest occupies the room whatever the recorded dates say
    (an extension may not have been written yet). Pending and confirmed
    bookings occupy the room only inside their interval.
    """
    if booking.status == Booking.CHECKED_IN:
        return True
    if booking.status in PLANNED_STATUSES:
        if not has_valid_interval(booking):
            return False
        return interval_contains(booking.check_in, booking.check_out, now)
    return False


def compute_status(room_id, bookings, now):
    """
    Derive the occupancy status for a room from its bookings at ``now``.

    ``room_id`` is only carried for context. The occupancy-relevant filter is
    re-applied here, so callers may pass unfiltered bookings.
    """
    for booking in bookings:
        if is_occupancy_relevant(booking) and is_booking_active(booking, now):
            return Room.OCCUPIED
    return Room.AVAILABLE


def stay_progress(booking, now):
    """
    Fraction of the stay elapsed at ``now``, clamped to [0, 1].
    Returns None for a malformed interval.
    """
    if not has_valid_interval(booking):
        return None
    total = (booking.check_out - booking.check_in).total_seconds()
    elapsed = (now - booking.check_in).total_seconds()
    return min(max(elapsed / total, 0.0), 1.0)


def is_in_stay(booking, now):
    """Inside the booked interval, regardless of status."""
    return has_valid_interval(booking) and interval_contains(booking.check_in, booking.check_out, now)


def is_checkout_overdue(booking, now):
    return booking.status in CHECKOUT_PENDING_STATUSES and booking.check_out <= now


def is_checkout_upcoming(booking, now, window):
    return booking.status in CHECKOUT_PENDING_STATUSES and now < booking.check_out <= now + window


def occupied_span(booking, now):
    """
    The ``(start, end)`` span a booking holds its room for, as seen at ``now``,
    or None when it holds nothing.

    Follows ``is_booking_active``: a checked-in guest holds the room from now
    at the latest, and once the recorded checkout has passed the hold is
    open-ended (``end`` is None) until the guest is checked out.
    """
    if booking.status == Booking.CHECKED_IN:
        start = min(booking.check_in, now) if booking.check_in else now
        if booking.check_out is None or booking.check_out <= now:
            return start, None
        return start, booking.check_out
    if booking.status in PLANNED_STATUSES and has_valid_interval(booking):
        return booking.check_in, booking.check_out
    return None


def blocks_stay(booking, check_in, check_out, now):
    """True when ``booking`` keeps a new ``[check_in, check_out)`` stay out of its room."""
    span = occupied_span(booking, now)
    if span is None:
        return False
    start, end = span
    if end is None:
        return start < check_out
    return intervals_overlap(start, end, check_in, check_out)
