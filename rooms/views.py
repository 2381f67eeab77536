import logging

from django_filters.rest_framework import DjangoFilterBackend
from drf_spectacular.utils import extend_schema, OpenApiTypes
from rest_framework import viewsets, status
from rest_framework.decorators import action
from rest_framework.filters import SearchFilter, OrderingFilter
from rest_framework.response import Response
from rest_framework.views import APIView

from reservation.permissions import HasCronToken, IsStaffMember, IsStaffOrReadOnly
from .exceptions import StoreError
from .maintenance import MaintenanceError, change_issue_status, flag_room, open_issue, release_room
from .models import Block, MaintenanceLog, Room
from .reconciler import RoomOccupancyReconciler
from .serializers import (
    BlockSerializer,
    MaintenanceLogSerializer,
    MaintenanceSerializer,
    MaintenanceStatusSerializer,
    OccupancySerializer,
    RoomSerializer,
)

logger = logging.getLogger(__name__)


def store_unavailable(e, room_id=None):
    target = f"room {room_id}" if room_id is not None else "rooms"
    logger.error(f"Error reconciling {target}: {e}")
    return Response({"error": str(e)}, status=status.HTTP_503_SERVICE_UNAVAILABLE)


class BlockViewSet(viewsets.ModelViewSet):
    queryset = Block.objects.all()
    serializer_class = BlockSerializer
    permission_classes = [IsStaffOrReadOnly]


class RoomViewSet(viewsets.ModelViewSet):
    """CRUD for rooms plus occupancy preview, reconciliation and the maintenance switch."""
    queryset = Room.objects.select_related('block').all()
    serializer_class = RoomSerializer
    permission_classes = [IsStaffOrReadOnly]
    filter_backends = (DjangoFilterBackend, SearchFilter, OrderingFilter)
    filterset_fields = ['status', 'block', 'floor', 'pricing_period']
    search_fields = ['number', 'block__name', 'description']
    ordering_fields = ['number', 'floor', 'price_per_night']

    def get_reconciler(self):
        return RoomOccupancyReconciler()

    @extend_schema(responses=OccupancySerializer)
    @action(detail=True, methods=['get'])
    def occupancy(self, request, pk=None):
        """Status the room should have right now, without writing it."""
        room = self.get_object()
        try:
            computed = self.get_reconciler().preview_status(room.pk)
        except StoreError as e:
            return store_unavailable(e, room.pk)
        serializer = OccupancySerializer({
            'room': room.pk,
            'stored_status': room.status,
            'computed_status': computed,
            'drifted': room.status != Room.MAINTENANCE and room.status != computed,
        })
        return Response(serializer.data)

    @extend_schema(request=None, responses=RoomSerializer)
    @action(detail=True, methods=['post'], permission_classes=[IsStaffMember])
    def reconcile(self, request, pk=None):
        room = self.get_object()
        try:
            self.get_reconciler().reconcile_room(room.pk)
        except StoreError as e:
            return store_unavailable(e, room.pk)
        room.refresh_from_db()
        return Response(self.get_serializer(room).data, status=status.HTTP_200_OK)

    @extend_schema(request=MaintenanceSerializer, responses=RoomSerializer)
    @action(detail=True, methods=['post'], permission_classes=[IsStaffMember])
    def maintenance(self, request, pk=None):
        """Put a room under maintenance, or release it back to booking-derived status."""
        room = self.get_object()
        params = MaintenanceSerializer(data=request.data)
        params.is_valid(raise_exception=True)

        if params.validated_data['enabled']:
            flag_room(room)
        else:
            try:
                release_room(room, self.get_reconciler())
            except StoreError as e:
                return store_unavailable(e, room.pk)

        room.refresh_from_db()
        return Response(self.get_serializer(room).data, status=status.HTTP_200_OK)

    @extend_schema(request=None, responses=OpenApiTypes.OBJECT)
    @action(detail=False, methods=['post'], url_path='reconcile-all', permission_classes=[IsStaffMember])
    def reconcile_all(self, request):
        try:
            report = self.get_reconciler().reconcile_all()
        except StoreError as e:
            return store_unavailable(e)
        return Response(report.as_dict(), status=status.HTTP_200_OK)


def request_user_name(request):
    user = request.user
    return getattr(user, 'full_name', '') or getattr(user, 'email', '')


class MaintenanceLogViewSet(viewsets.ModelViewSet):
    """
    Maintenance issues reported against rooms.

    High and critical issues take the room out of service; closing the last
    of them hands the room back to the reconciler.
    """
    queryset = MaintenanceLog.objects.select_related('room', 'room__block')
    serializer_class = MaintenanceLogSerializer
    permission_classes = [IsStaffMember]
    filter_backends = (DjangoFilterBackend, SearchFilter, OrderingFilter)
    filterset_fields = ['room', 'status', 'priority', 'type']
    search_fields = ['description', 'room__number', 'assigned_to', 'reported_by']
    ordering_fields = ['created_at', 'priority']
    # Logs are closed through the status action, never deleted.
    http_method_names = ['get', 'post', 'put', 'patch', 'head', 'options']

    def perform_create(self, serializer):
        reported_by = serializer.validated_data.get('reported_by') or request_user_name(self.request)
        open_issue(serializer.save(reported_by=reported_by))

    def perform_update(self, serializer):
        open_issue(serializer.save())

    @extend_schema(request=MaintenanceStatusSerializer, responses=MaintenanceLogSerializer)
    @action(detail=True, methods=['post'], url_path='status')
    def change_status(self, request, pk=None):
        log = self.get_object()
        params = MaintenanceStatusSerializer(data=request.data)
        params.is_valid(raise_exception=True)

        try:
            change_issue_status(log, params.validated_data['status'])
        except MaintenanceError as e:
            return Response({"error": str(e)}, status=status.HTTP_400_BAD_REQUEST)
        except StoreError as e:
            # The log change stands; the next reconcile run settles the room.
            logger.error(f"Could not reconcile room {log.room_id} after maintenance update: {e}")

        return Response(self.get_serializer(log).data, status=status.HTTP_200_OK)


class ReconcileRoomsCronView(APIView):
    """Periodic repair of room statuses, called by the external cron runner."""
    authentication_classes = []
    permission_classes = [HasCronToken]

    @extend_schema(request=None, responses=OpenApiTypes.OBJECT)
    def post(self, request):
        try:
            report = RoomOccupancyReconciler().reconcile_all()
        except StoreError as e:
            logger.error(f"Room reconciliation cron failed: {e}")
            return Response({"error": str(e)}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)
        return Response({"success": True, "results": report.as_dict()}, status=status.HTTP_200_OK)
