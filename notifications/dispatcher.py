import logging

from django.conf import settings
from django.core.mail import send_mail
from django.utils import timezone

from .exceptions import NotificationError
from .models import Notification
from .sms import MNotifyService

logger = logging.getLogger(__name__)

PROPERTY_NAME = 'Platinum Apartment'


def _fmt_date(value):
    return timezone.localtime(value).strftime('%b %d, %Y')


def _fmt_datetime(value):
    return timezone.localtime(value).strftime('%B %d, %Y at %I:%M %p')


def _plural(count, word):
    return f"{count} {word}{'' if count == 1 else 's'}"


class NotificationDispatcher:
    """Email and SMS delivery plus the in-app notification log."""

    def __init__(self, sms=None):
        self.sms = sms or MNotifyService()

    def send_email(self, to, subject, message):
        send_mail(
            subject,
            message,
            settings.DEFAULT_FROM_EMAIL,
            [to],
            fail_silently=False,
        )
        logger.info(f"Email '{subject}' sent to {to}.")

    def send_sms(self, to, message):
        return self.sms.send_sms(to, message)

    def record(self, user, type, title, message, booking=None, channel=Notification.IN_APP,
               status=Notification.SENT):
        return Notification.objects.create(
            user=user,
            booking=booking,
            type=type,
            title=title,
            message=message,
            channel=channel,
            status=status,
            sent_at=timezone.now() if status == Notification.SENT else None,
        )

    def notify_booking_created(self, booking):
        """Confirmation email and SMS to the tenant. Failures are logged, never raised."""
        user = booking.user
        subject = f"Booking Confirmation - {PROPERTY_NAME}"
        message = (
            f"Hello {user.first_name},\n\n"
            f"Your booking for Room {booking.room} has been received.\n\n"
            f"Check-in: {_fmt_datetime(booking.check_in)}\n"
            f"Check-out: {_fmt_datetime(booking.check_out)}\n"
            f"Guests: {booking.guests}\n"
            f"Total: {booking.total_amount}\n\n"
            f"Welcome to {PROPERTY_NAME}!"
        )
        sms_text = (
            f"Hello {user.first_name}! Your booking for Room {booking.room} is confirmed. "
            f"Check-in: {_fmt_date(booking.check_in)}, Check-out: {_fmt_date(booking.check_out)}. "
            f"Welcome to {PROPERTY_NAME}!"
        )

        if user.email:
            try:
                self.send_email(user.email, subject, message)
            except Exception as e:
                logger.error(f"Failed to send booking confirmation email for booking {booking.pk}: {e}")
        if user.phone and self.sms.enabled:
            try:
                self.send_sms(user.phone, sms_text)
            except NotificationError as e:
                logger.error(f"Failed to send booking confirmation SMS for booking {booking.pk}: {e}")

        self.record(
            user,
            Notification.BOOKING_CONFIRMATION,
            "Booking Received",
            f"Your booking for Room {booking.room} from {_fmt_date(booking.check_in)} "
            f"to {_fmt_date(booking.check_out)} has been received.",
            booking=booking,
        )

    def notify_stay_progress(self, booking, now):
        """
        Send the "most of your stay is behind you" reminder over every channel the
        tenant has. Returns (emails_sent, sms_sent, errors).
        """
        user = booking.user
        remaining_days = max((booking.check_out - now).days, 0)
        checkout_text = _fmt_datetime(booking.check_out)

        subject = f"Your Stay is Almost Complete - {PROPERTY_NAME}"
        message = (
            f"Dear {user.full_name},\n\n"
            f"We hope you're enjoying your stay at {PROPERTY_NAME}! "
            f"You have completed most of your reservation.\n\n"
            f"Room: {booking.room}\n"
            f"Check-out Date: {checkout_text}\n"
            f"Remaining: {_plural(remaining_days, 'day')}\n\n"
            f"Check-out time is {settings.CHECKOUT_HOUR:02d}:00. If you need to extend your stay, "
            f"please contact the front desk.\n\n"
            f"Best regards,\nThe {PROPERTY_NAME} Team"
        )
        sms_text = (
            f"Hi {user.first_name}! You've completed most of your stay at {PROPERTY_NAME} "
            f"(Room {booking.room}). Check-out is on {checkout_text}. - {PROPERTY_NAME}"
        )

        emails_sent, sms_sent, errors = 0, 0, []
        if user.email:
            try:
                self.send_email(user.email, subject, message)
                emails_sent += 1
            except Exception as e:
                logger.error(f"Failed to send email to {user.email}: {e}")
                errors.append(f"Email failed for booking {booking.pk}: {e}")
        if user.phone:
            try:
                self.send_sms(user.phone, sms_text)
                sms_sent += 1
            except NotificationError as e:
                logger.error(f"Failed to send SMS to {user.phone}: {e}")
                errors.append(f"SMS failed for booking {booking.pk}: {e}")

        self.record(
            user,
            Notification.SEVENTY_FIVE_PERCENT_STAY,
            "Stay Completion Notice",
            f"Your stay in Room {booking.room} ends in {_plural(remaining_days, 'day')}",
            booking=booking,
            channel=Notification.EMAIL_SMS if user.phone else Notification.EMAIL,
            status=Notification.SENT if (emails_sent or sms_sent) else Notification.FAILED,
        )
        return emails_sent, sms_sent, errors

    def notify_extension(self, booking, periods, additional_amount, payment_method):
        """SMS the tenant and the configured admin phone about a rent extension."""
        user = booking.user
        period = booking.room.pricing_period.lower()
        new_checkout = _fmt_date(booking.check_out)

        if user.phone:
            try:
                self.send_sms(
                    user.phone,
                    f"Hello {user.first_name}, your stay in Room {booking.room} has been extended by "
                    f"{_plural(periods, period)} until {new_checkout}. Amount due: {additional_amount} "
                    f"({payment_method}). - {PROPERTY_NAME}",
                )
                logger.info(f"Rent extension SMS sent to guest: {user.phone}")
            except NotificationError as e:
                logger.error(f"Failed to send rent extension SMS to guest: {e}")

        if settings.ADMIN_PHONE:
            try:
                self.send_sms(
                    settings.ADMIN_PHONE,
                    f"Rent extension: {user.full_name}, Room {booking.room}, +{_plural(periods, period)} "
                    f"until {new_checkout}. Amount: {additional_amount} via {payment_method}. "
                    f"Booking #{booking.pk}",
                )
                logger.info(f"Rent extension admin SMS sent to: {settings.ADMIN_PHONE}")
            except NotificationError as e:
                logger.error(f"Failed to send rent extension admin SMS: {e}")
