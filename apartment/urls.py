from django.contrib import admin
from django.urls import path, include
from drf_spectacular.views import SpectacularAPIView, SpectacularSwaggerView

from rooms.views import ReconcileRoomsCronView
from notifications.views import StayRemindersCronView

urlpatterns = [
    path('admin/', admin.site.urls),

    path('api/user/', include('user.urls')),
    path('api/rooms/', include('rooms.urls')),
    path('api/reservation/', include('reservation.urls')),
    path('api/notifications/', include('notifications.urls')),
    path('api/dashboard/', include('dashboard.urls')),

    path('api/cron/reconcile-rooms/', ReconcileRoomsCronView.as_view(), name='cron-reconcile-rooms'),
    path('api/cron/stay-reminders/', StayRemindersCronView.as_view(), name='cron-stay-reminders'),

    path('api/schema/', SpectacularAPIView.as_view(), name='schema'),
    path('api/docs/', SpectacularSwaggerView.as_view(url_name='schema'), name='swagger-ui'),
]
