import logging

from django.db import transaction
from django.utils import timezone

from notifications.models import Notification
from rooms.exceptions import StoreError
from rooms.reconciler import reconcile_room
from .models import Booking, Payment

logger = logging.getLogger(__name__)

PAYABLE_STATUSES = (Booking.PENDING, Booking.CONFIRMED, Booking.CHECKED_IN, Booking.CHECKED_OUT)


class PaymentError(Exception):
    pass


def record_payment(booking, amount, method='CASH', transaction_id='', notes=''):
    """
    Record money received for a booking.

    A pending payment left behind by a rent extension is settled in place;
    a completed one is never overwritten. Paying a pending booking confirms it.

    Returns:
        Payment: the completed payment
    """
    if amount is None or amount <= 0:
        raise PaymentError("Amount must be greater than 0.")

    with transaction.atomic():
        booking = Booking.objects.select_for_update().select_related('room', 'user').get(pk=booking.pk)
        if booking.status not in PAYABLE_STATUSES:
            raise PaymentError(f"Cannot record a payment for a {booking.get_status_display().lower()} booking.")

        payment = Payment.objects.filter(booking=booking).first()
        if payment is not None and payment.status == Payment.COMPLETED:
            raise PaymentError("This booking already has a payment recorded.")
        if payment is None:
            payment = Payment(booking=booking)

        payment.amount = amount
        payment.method = method
        payment.status = Payment.COMPLETED
        payment.transaction_id = transaction_id or payment.transaction_id
        if notes:
            payment.notes = f"{payment.notes}\n{notes}" if payment.notes else notes
        payment.paid_at = timezone.now()
        payment.save()

        if booking.status == Booking.PENDING:
            booking.status = Booking.CONFIRMED
            booking.save(update_fields=['status', 'updated_at'])

        Notification.objects.create(
            user=booking.user,
            booking=booking,
            type=Notification.PAYMENT_RECEIVED,
            title="Payment Received",
            message=f"We received {amount:.2f} ({payment.get_method_display()}) for Room {booking.room.number}.",
            channel=Notification.IN_APP,
            sent_at=timezone.now(),
        )

    logger.info(f"Payment of {amount} recorded for booking {booking.pk} via {method}.")

    try:
        reconcile_room(booking.room_id)
    except StoreError as e:
        logger.error(f"Could not reconcile room {booking.room_id} after payment: {e}")
    return payment
