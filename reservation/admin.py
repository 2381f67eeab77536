from django.contrib import admin
from .models import Booking, Payment


class PaymentInline(admin.StackedInline):
    model = Payment
    extra = 0


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = ['id', 'user', 'room', 'check_in', 'check_out', 'status', 'total_amount']
    list_filter = ['status', 'room__block']
    search_fields = ['user__email', 'user__first_name', 'user__last_name', 'room__number']
    date_hierarchy = 'check_in'
    inlines = [PaymentInline]


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ['booking', 'amount', 'method', 'status', 'paid_at', 'created_at']
    list_filter = ['status', 'method']
    search_fields = ['booking__user__email', 'transaction_id']
    readonly_fields = ['created_at']
