from django.db.models import ProtectedError
from rest_framework import generics, status, viewsets
from rest_framework.filters import SearchFilter, OrderingFilter
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework_simplejwt.views import TokenObtainPairView
from django_filters.rest_framework import DjangoFilterBackend

from user.models import User
from user.serializers import CustomTokenObtainPairSerializer, UserSerializer, UserAdminSerializer
from reservation.permissions import IsStaffMember


class CustomTokenObtainView(TokenObtainPairView):
    """Login with email and password, returns a JWT pair plus role info."""
    serializer_class = CustomTokenObtainPairSerializer


class ManageUserView(generics.RetrieveUpdateAPIView):
    serializer_class = UserSerializer
    permission_classes = [IsAuthenticated]

    def get_object(self):
        return self.request.user


class UserAdminViewSet(viewsets.ModelViewSet):
    """Tenants and staff accounts, managed by staff."""
    queryset = User.objects.all()
    serializer_class = UserAdminSerializer
    permission_classes = [IsStaffMember]
    filter_backends = (DjangoFilterBackend, SearchFilter, OrderingFilter)
    filterset_fields = ['role', 'is_active']
    search_fields = ['email', 'first_name', 'last_name', 'phone']
    ordering_fields = ['first_name', 'date_joined']

    def destroy(self, request, *args, **kwargs):
        user = self.get_object()
        try:
            user.delete()
        except ProtectedError:
            # Booking history is kept; such accounts are deactivated instead.
            return Response(
                {"error": "This user has bookings and cannot be deleted. Deactivate the account instead."},
                status=status.HTTP_400_BAD_REQUEST
            )
        return Response(status=status.HTTP_204_NO_CONTENT)
