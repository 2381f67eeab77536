import logging

from drf_spectacular.utils import extend_schema, OpenApiTypes
from rest_framework import viewsets, status
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView
from django.utils import timezone

from reservation.permissions import HasCronToken
from reservation.scheduler import send_stay_reminders
from .models import Notification
from .serializers import NotificationSerializer

logger = logging.getLogger(__name__)


class NotificationViewSet(viewsets.ReadOnlyModelViewSet):
    """The authenticated user's own notifications."""
    serializer_class = NotificationSerializer
    permission_classes = [IsAuthenticated]
    filterset_fields = ['type', 'is_read']

    def get_queryset(self):
        if getattr(self, 'swagger_fake_view', False):
            return Notification.objects.none()
        return Notification.objects.filter(user=self.request.user)

    @extend_schema(request=None, responses=NotificationSerializer)
    @action(detail=True, methods=['post'], url_path='mark-read')
    def mark_read(self, request, pk=None):
        notification = self.get_object()
        if not notification.is_read:
            notification.is_read = True
            notification.save(update_fields=['is_read'])
        return Response(self.get_serializer(notification).data, status=status.HTTP_200_OK)

    @extend_schema(request=None, responses=OpenApiTypes.OBJECT)
    @action(detail=False, methods=['post'], url_path='mark-all-read')
    def mark_all_read(self, request):
        updated = self.get_queryset().filter(is_read=False).update(is_read=True)
        return Response({"updated": updated}, status=status.HTTP_200_OK)


class StayRemindersCronView(APIView):
    """Stay-progress reminders, called by the external cron runner."""
    authentication_classes = []
    permission_classes = [HasCronToken]

    @extend_schema(request=None, responses=OpenApiTypes.OBJECT)
    def post(self, request):
        now = timezone.now()
        results = send_stay_reminders(now=now)
        return Response({
            "success": True,
            "timestamp": now.isoformat(),
            "results": results,
        }, status=status.HTTP_200_OK)
