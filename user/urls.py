from django.urls import path, include
from rest_framework.routers import DefaultRouter
from .views import (
    CustomTokenObtainView,
    ManageUserView,
    UserAdminViewSet,
)

app_name = 'user'

router = DefaultRouter()
router.register(r'users', UserAdminViewSet, basename='users')

urlpatterns = [
    path('login/', CustomTokenObtainView.as_view(), name='token_obtain'),
    path('me/', ManageUserView.as_view(), name='user-profile'),
    path('', include(router.urls)),
]
