from dateutil.relativedelta import relativedelta
from django.conf import settings
from django.utils import timezone

from rooms.models import Room


PERIOD_DELTAS = {
    Room.NIGHT: lambda n: relativedelta(days=n),
    Room.DAY: lambda n: relativedelta(days=n),
    Room.WEEK: lambda n: relativedelta(weeks=n),
    Room.MONTH: lambda n: relativedelta(months=n),
    Room.YEAR: lambda n: relativedelta(years=n),
}


def add_periods(start, periods, pricing_period):
    """Shift ``start`` by ``periods`` units of the room's pricing period. Unknown periods count as days."""
    delta = PERIOD_DELTAS.get(pricing_period, PERIOD_DELTAS[Room.DAY])
    return start + delta(periods)


def checkout_for(check_in, periods, pricing_period):
    """Checkout date for a new stay, at the standard checkout hour in local time."""
    end = timezone.localtime(add_periods(check_in, periods, pricing_period))
    return end.replace(hour=settings.CHECKOUT_HOUR, minute=0, second=0, microsecond=0)


def period_label(pricing_period):
    return (pricing_period or Room.DAY).lower()
