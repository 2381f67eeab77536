from django.urls import path, include
from rest_framework.routers import DefaultRouter
from .views import BlockViewSet, MaintenanceLogViewSet, RoomViewSet

router = DefaultRouter()
router.register(r'blocks', BlockViewSet, basename='block')
router.register(r'rooms', RoomViewSet, basename='room')
router.register(r'maintenance-logs', MaintenanceLogViewSet, basename='maintenance-log')

urlpatterns = [
    path('', include(router.urls)),
]
