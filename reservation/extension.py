import logging
from decimal import Decimal

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from notifications.dispatcher import NotificationDispatcher
from notifications.models import Notification
from rooms.exceptions import StoreError
from rooms.reconciler import reconcile_room
from .models import Booking, Payment
from .periods import add_periods, period_label

logger = logging.getLogger(__name__)

EXTENDABLE_STATUSES = (Booking.CONFIRMED, Booking.CHECKED_IN)


class BookingExtensionError(Exception):
    pass


def extend_booking(booking, periods, reason='', payment_method='CASH', payment_account='',
                   dispatcher=None):
    """
    Extend a stay by ``periods`` units of the room's pricing period.

    Booking, payment and tenant notification are written in one transaction;
    the SMS alerts go out after commit and never fail the extension.

    Returns:
        tuple: (booking, additional_amount)
    """
    if periods is None or periods <= 0:
        raise BookingExtensionError("Extension periods must be a positive number.")
    if booking.status not in EXTENDABLE_STATUSES:
        raise BookingExtensionError("Only confirmed or checked-in bookings can be extended.")

    room = booking.room
    label = period_label(room.pricing_period)
    additional_amount = room.price_per_night * Decimal(periods)

    entry = (
        f"[EXTENSION] {timezone.localdate():%Y-%m-%d}: Extended by {periods} {label}(s). "
        f"Reason: {reason or 'No reason provided'}"
    )
    account_note = f". Account: {payment_account}" if payment_account else ''

    with transaction.atomic():
        booking = Booking.objects.select_for_update().select_related('room', 'user').get(pk=booking.pk)
        # the row may have moved on since the caller loaded it
        if booking.status not in EXTENDABLE_STATUSES:
            raise BookingExtensionError("Only confirmed or checked-in bookings can be extended.")
        new_checkout = add_periods(booking.check_out, periods, room.pricing_period)
        booking.check_out = new_checkout
        booking.total_amount = booking.total_amount + additional_amount
        booking.special_requests = f"{booking.special_requests}\n\n{entry}" if booking.special_requests else entry
        booking.save(update_fields=['check_out', 'total_amount', 'special_requests', 'updated_at'])

        if additional_amount > 0:
            updated = Payment.objects.filter(booking=booking).update(
                amount=F('amount') + additional_amount,
                method=payment_method,
                notes=f"Extended payment: +{additional_amount} for {periods} {label}(s){account_note}",
            )
            if not updated:
                Payment.objects.create(
                    booking=booking,
                    amount=additional_amount,
                    method=payment_method,
                    status=Payment.PENDING,
                    notes=f"Rent extension - {periods} {label}(s){account_note}",
                )

        Notification.objects.create(
            user=booking.user,
            booking=booking,
            type=Notification.PAYMENT_RECEIVED,
            title="Rent Period Extended",
            message=(
                f"Your rent period for Room {room.number} has been extended until "
                f"{timezone.localtime(new_checkout):%b %d, %Y}. Additional amount: {additional_amount:.2f}"
            ),
            channel=Notification.IN_APP,
            sent_at=timezone.now(),
        )

    logger.info(f"Booking {booking.pk} extended by {periods} {label}(s) until {new_checkout}.")

    dispatcher = dispatcher or NotificationDispatcher()
    dispatcher.notify_extension(booking, periods, additional_amount, payment_method)

    try:
        reconcile_room(booking.room_id)
    except StoreError as e:
        logger.error(f"Could not reconcile room {booking.room_id} after extension: {e}")
    return booking, additional_amount
