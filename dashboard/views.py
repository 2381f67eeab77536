from datetime import datetime, time, timedelta

from django.conf import settings
from django.db.models import Count
from django.utils import timezone
from drf_spectacular.utils import extend_schema, OpenApiTypes
from rest_framework.views import APIView
from rest_framework.response import Response

from reservation.models import Booking
from reservation.permissions import IsStaffMember
from rooms.models import Room
from rooms.occupancy import CHECKOUT_PENDING_STATUSES, OCCUPANCY_RELEVANT_STATUSES, compute_status


class CheckoutStatusView(APIView):
    permission_classes = [IsStaffMember]

    @extend_schema(responses=OpenApiTypes.OBJECT)
    def get(self, request):
        """
        API Response Structure for /api/dashboard/checkout-status/
        {
            "overdue_count": int,     # checkout instant reached, guest not checked out
            "upcoming_count": int,    # checkout within the next UPCOMING_CHECKOUT_HOURS
            "today_checkouts": int,   # checkout falls on today's local date
            "total_critical": int     # overdue + upcoming
        }
        """
        now = timezone.now()
        soon = now + timedelta(hours=settings.UPCOMING_CHECKOUT_HOURS)
        today = timezone.localdate()
        tz = timezone.get_current_timezone()
        start_of_today = timezone.make_aware(datetime.combine(today, time.min), tz)
        start_of_tomorrow = start_of_today + timedelta(days=1)

        pending = Booking.objects.filter(status__in=CHECKOUT_PENDING_STATUSES)

        # Half-open stays: the checkout instant itself is already due.
        overdue_count = pending.filter(check_out__lte=now).count()
        upcoming_count = pending.filter(check_out__gt=now, check_out__lte=soon).count()
        today_checkouts = pending.filter(check_out__gte=start_of_today, check_out__lt=start_of_tomorrow).count()

        return Response({
            "overdue_count": overdue_count,
            "upcoming_count": upcoming_count,
            "today_checkouts": today_checkouts,
            "total_critical": overdue_count + upcoming_count,
        })


class OccupancySummaryView(APIView):
    permission_classes = [IsStaffMember]

    @extend_schema(responses=OpenApiTypes.OBJECT)
    def get(self, request):
        """Room counts per stored status, plus rooms whose stored status has drifted from their bookings."""
        now = timezone.now()
        counts = {code: 0 for code, _ in Room.STATUS_CHOICES}
        for row in Room.objects.values('status').annotate(total=Count('id')):
            counts[row['status']] = row['total']

        bookings_by_room = {}
        for booking in Booking.objects.filter(status__in=OCCUPANCY_RELEVANT_STATUSES).only(
                'room_id', 'status', 'check_in', 'check_out'):
            bookings_by_room.setdefault(booking.room_id, []).append(booking)

        drifted = []
        for room_id, stored in Room.objects.exclude(status=Room.MAINTENANCE).values_list('id', 'status'):
            if compute_status(room_id, bookings_by_room.get(room_id, []), now) != stored:
                drifted.append(room_id)

        total = sum(counts.values())
        return Response({
            "total_rooms": total,
            "status_counts": counts,
            "occupancy_rate": round(counts[Room.OCCUPIED] * 100 / total, 1) if total else 0.0,
            "drifted_rooms": drifted,
        })
