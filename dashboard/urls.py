from django.urls import path
from .views import CheckoutStatusView, OccupancySummaryView

app_name = 'dashboard'

urlpatterns = [
    path('checkout-status/', CheckoutStatusView.as_view(), name='checkout-status'),
    path('occupancy/', OccupancySummaryView.as_view(), name='occupancy'),
]
