import logging

from django.conf import settings
from django.contrib.auth import get_user_model
from django.utils import timezone

from notifications.dispatcher import NotificationDispatcher
from notifications.models import Notification
from rooms.occupancy import CHECKOUT_PENDING_STATUSES, is_in_stay, stay_progress

logger = logging.getLogger(__name__)


def send_stay_reminders(now=None, dispatcher=None):
    """
    Remind tenants who have gone through most of their stay.
    This will be triggered externally via a cron job.

    A booking is reminded once, the first run after its stay progress
    reaches STAY_REMINDER_THRESHOLD. Staff get an in-app summary when
    any reminder went out.
    """
    from .models import Booking

    now = now or timezone.now()
    dispatcher = dispatcher or NotificationDispatcher()
    threshold = settings.STAY_REMINDER_THRESHOLD
    results = {
        'processed': 0,
        'reminded': 0,
        'emails_sent': 0,
        'sms_sent': 0,
        'errors': [],
    }

    candidates = (
        Booking.objects.filter(
            status__in=CHECKOUT_PENDING_STATUSES,
            check_in__lte=now,
            check_out__gt=now,
        )
        .exclude(notifications__type=Notification.SEVENTY_FIVE_PERCENT_STAY)
        .select_related('user', 'room', 'room__block')
    )

    reminded = []
    for booking in candidates:
        results['processed'] += 1
        try:
            if not is_in_stay(booking, now):
                continue
            progress = stay_progress(booking, now)
            if progress is None or progress < threshold:
                continue

            emails, sms, errors = dispatcher.notify_stay_progress(booking, now)
            results['emails_sent'] += emails
            results['sms_sent'] += sms
            results['errors'].extend(errors)
            results['reminded'] += 1
            reminded.append((booking, progress))
        except Exception as e:
            logger.error(f"Error processing booking {booking.pk}: {e}")
            results['errors'].append(f"Booking {booking.pk}: {e}")

    if reminded:
        _notify_staff(dispatcher, reminded, now)

    logger.info(
        f"Stay reminders: {results['reminded']} of {results['processed']} booking(s) reminded, "
        f"{len(results['errors'])} error(s)."
    )
    return results


def _notify_staff(dispatcher, reminded, now):
    User = get_user_model()
    lines = [
        f"- {booking.user.full_name} - Room {booking.room} "
        f"({max((booking.check_out - now).days, 0)} day(s) remaining, {round(progress * 100)}%)"
        for booking, progress in reminded
    ]
    message = (
        f"Checkout reminder notifications sent to {len(reminded)} guest(s):\n\n" + "\n".join(lines)
    )
    for staff in User.objects.filter(role__in=User.STAFF_ROLES, is_active=True):
        dispatcher.record(
            staff,
            Notification.GENERAL_ANNOUNCEMENT,
            "Daily Checkout Reminders Sent",
            message,
        )
