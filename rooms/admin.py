from django.contrib import admin
from .models import Block, MaintenanceLog, Room


@admin.register(Block)
class BlockAdmin(admin.ModelAdmin):
    list_display = ('id', 'name', 'created_at')
    search_fields = ('name',)


@admin.register(Room)
class RoomAdmin(admin.ModelAdmin):
    list_display = ('id', 'number', 'block', 'floor', 'capacity', 'price_per_night', 'pricing_period', 'status')
    list_filter = ('status', 'block', 'pricing_period')
    search_fields = ('number', 'block__name')


@admin.register(MaintenanceLog)
class MaintenanceLogAdmin(admin.ModelAdmin):
    list_display = ('id', 'room', 'type', 'priority', 'status', 'assigned_to', 'created_at')
    list_filter = ('status', 'priority', 'type')
    search_fields = ('room__number', 'description', 'assigned_to')
