import logging

from django.db import transaction
from django_filters.rest_framework import DjangoFilterBackend
from drf_spectacular.utils import extend_schema, OpenApiParameter
from drf_spectacular.types import OpenApiTypes
from rest_framework import viewsets, status
from rest_framework.decorators import action
from rest_framework.filters import SearchFilter, OrderingFilter
from rest_framework.response import Response

from notifications.dispatcher import NotificationDispatcher
from rooms.exceptions import StoreError
from rooms.reconciler import reconcile_room
from .extension import BookingExtensionError, extend_booking
from .models import Booking
from .payments import PaymentError, record_payment
from .permissions import IsStaffOrOwner
from .serializers import (
    BookingSerializer,
    BookingExtensionSerializer,
    BookingStatusSerializer,
    PaymentRecordSerializer,
    PaymentSerializer,
)

logger = logging.getLogger(__name__)


class BookingViewSet(viewsets.ModelViewSet):
    serializer_class = BookingSerializer
    permission_classes = [IsStaffOrOwner]
    filter_backends = (DjangoFilterBackend, SearchFilter, OrderingFilter)
    filterset_fields = {
        'status': ['exact', 'in'],
        'room': ['exact'],
        'user': ['exact'],
        'check_in': ['gte', 'lte'],
        'check_out': ['gte', 'lte'],
    }
    search_fields = ['user__first_name', 'user__last_name', 'user__email', 'room__number']
    ordering_fields = ['check_in', 'check_out', 'created_at']

    @extend_schema(
        parameters=[
            OpenApiParameter(
                name='status',
                type=OpenApiTypes.STR,
                location=OpenApiParameter.QUERY,
                description='Filter by booking status (PENDING, CONFIRMED, CHECKED_IN, ...)',
            ),
            OpenApiParameter(
                name='room',
                type=OpenApiTypes.INT,
                location=OpenApiParameter.QUERY,
                description='Filter by room ID',
            ),
        ]
    )
    def list(self, request, *args, **kwargs):
        return super().list(request, *args, **kwargs)

    def get_queryset(self):
        # Schema generation runs without a real user.
        if getattr(self, 'swagger_fake_view', False):
            return Booking.objects.none()

        user = self.request.user
        qs = Booking.objects.select_related('user', 'room', 'room__block', 'payment')
        if getattr(user, 'is_staff_member', False):
            return qs
        return qs.filter(user=user)

    def _require_staff(self, request):
        if not getattr(request.user, 'is_staff_member', False):
            return Response(
                {"detail": "Only staff can manage bookings."},
                status=status.HTTP_403_FORBIDDEN
            )
        return None

    def _reconcile(self, *room_ids):
        for room_id in set(room_ids):
            try:
                reconcile_room(room_id)
            except StoreError as e:
                # The booking write already succeeded; the next reconcile run repairs the room.
                logger.error(f"Could not reconcile room {room_id}: {e}")

    def create(self, request, *args, **kwargs):
        denied = self._require_staff(request)
        if denied:
            return denied
        return super().create(request, *args, **kwargs)

    def perform_create(self, serializer):
        booking = serializer.save()
        self._reconcile(booking.room_id)
        transaction.on_commit(lambda: NotificationDispatcher().notify_booking_created(booking))

    def update(self, request, *args, **kwargs):
        denied = self._require_staff(request)
        if denied:
            return denied
        return super().update(request, *args, **kwargs)

    def perform_update(self, serializer):
        old_room_id = serializer.instance.room_id
        booking = serializer.save()
        self._reconcile(old_room_id, booking.room_id)

    def destroy(self, request, *args, **kwargs):
        denied = self._require_staff(request)
        if denied:
            return denied
        booking = self.get_object()
        if booking.status not in (Booking.PENDING, Booking.CANCELLED):
            return Response(
                {"error": "Only pending or cancelled bookings can be deleted."},
                status=status.HTTP_400_BAD_REQUEST
            )
        room_id = booking.room_id
        booking.delete()
        self._reconcile(room_id)
        return Response(status=status.HTTP_204_NO_CONTENT)

    def _change_booking_status(self, request, new_status):
        denied = self._require_staff(request)
        if denied:
            return denied

        booking = self.get_object()
        if not booking.can_transition_to(new_status):
            return Response(
                {"error": f"Cannot change booking from {booking.status} to {new_status}."},
                status=status.HTTP_400_BAD_REQUEST
            )

        booking.status = new_status
        booking.save(update_fields=['status', 'updated_at'])
        logger.info(f"Booking {booking.pk} is now {new_status}.")

        try:
            room_status = reconcile_room(booking.room_id)
        except StoreError as e:
            logger.error(f"Could not reconcile room {booking.room_id}: {e}")
            room_status = None

        serializer = BookingStatusSerializer({
            'booking': booking,
            'room_status': room_status,
        }, context=self.get_serializer_context())
        return Response(serializer.data, status=status.HTTP_200_OK)

    @extend_schema(request=None, responses=BookingStatusSerializer)
    @action(detail=True, methods=['post'])
    def confirm(self, request, pk=None):
        return self._change_booking_status(request, Booking.CONFIRMED)

    @extend_schema(request=None, responses=BookingStatusSerializer)
    @action(detail=True, methods=['post'], url_path='check-in')
    def check_in(self, request, pk=None):
        return self._change_booking_status(request, Booking.CHECKED_IN)

    @extend_schema(request=None, responses=BookingStatusSerializer)
    @action(detail=True, methods=['post'], url_path='check-out')
    def check_out(self, request, pk=None):
        return self._change_booking_status(request, Booking.CHECKED_OUT)

    @extend_schema(request=None, responses=BookingStatusSerializer)
    @action(detail=True, methods=['post'])
    def cancel(self, request, pk=None):
        return self._change_booking_status(request, Booking.CANCELLED)

    @extend_schema(request=None, responses=BookingStatusSerializer)
    @action(detail=True, methods=['post'], url_path='no-show')
    def no_show(self, request, pk=None):
        return self._change_booking_status(request, Booking.NO_SHOW)

    @extend_schema(request=BookingExtensionSerializer, responses=BookingSerializer)
    @action(detail=True, methods=['post'])
    def extend(self, request, pk=None):
        """Extend a confirmed or checked-in stay by a number of pricing periods."""
        denied = self._require_staff(request)
        if denied:
            return denied

        booking = self.get_object()
        params = BookingExtensionSerializer(data=request.data)
        params.is_valid(raise_exception=True)

        try:
            booking, additional_amount = extend_booking(
                booking,
                params.validated_data['extension_periods'],
                reason=params.validated_data['reason'],
                payment_method=params.validated_data['payment_method'],
                payment_account=params.validated_data['payment_account'],
            )
        except BookingExtensionError as e:
            return Response({"error": str(e)}, status=status.HTTP_400_BAD_REQUEST)

        booking = self.get_queryset().get(pk=booking.pk)
        return Response({
            "message": f"Rent extended successfully until {booking.check_out:%b %d, %Y}",
            "additional_amount": f"{additional_amount:.2f}",
            "booking": self.get_serializer(booking).data,
        }, status=status.HTTP_200_OK)

    @extend_schema(request=PaymentRecordSerializer, responses=PaymentSerializer)
    @action(detail=True, methods=['post'])
    def payment(self, request, pk=None):
        """Record money received for this booking. A pending booking is confirmed by its payment."""
        denied = self._require_staff(request)
        if denied:
            return denied

        booking = self.get_object()
        params = PaymentRecordSerializer(data=request.data)
        params.is_valid(raise_exception=True)

        try:
            payment = record_payment(booking, **params.validated_data)
        except PaymentError as e:
            return Response({"error": str(e)}, status=status.HTTP_400_BAD_REQUEST)

        return Response(PaymentSerializer(payment).data, status=status.HTTP_201_CREATED)
