from django.contrib import admin
from .models import Notification


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ['title', 'user', 'type', 'channel', 'status', 'is_read', 'created_at']
    list_filter = ['type', 'channel', 'status', 'is_read']
    search_fields = ['title', 'message', 'user__email']
    readonly_fields = ['created_at', 'sent_at']
