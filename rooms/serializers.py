from rest_framework import serializers
from .models import Block, MaintenanceLog, Room


class BlockSerializer(serializers.ModelSerializer):
    room_count = serializers.IntegerField(source='rooms.count', read_only=True)

    class Meta:
        model = Block
        fields = ['id', 'name', 'description', 'room_count', 'created_at', 'updated_at']
        read_only_fields = ['id', 'created_at', 'updated_at']


class RoomSerializer(serializers.ModelSerializer):
    block_name = serializers.CharField(source='block.name', read_only=True, default=None)
    actions = serializers.SerializerMethodField()

    class Meta:
        model = Room
        fields = [
            'id', 'number', 'block', 'block_name', 'floor', 'capacity', 'price_per_night',
            'pricing_period', 'status', 'description', 'created_at', 'updated_at', 'actions',
        ]
        # Status is derived from bookings or set through the maintenance action.
        read_only_fields = ['id', 'status', 'created_at', 'updated_at']

    def get_actions(self, obj):
        return {
            'edit': True,
            'reconcile': obj.status != Room.MAINTENANCE,
            'status_label': obj.get_status_display(),
        }

    def validate_capacity(self, value):
        if value <= 0:
            raise serializers.ValidationError('Capacity must be a positive integer.')
        return value

    def validate_price_per_night(self, value):
        if value < 0:
            raise serializers.ValidationError('Price must be non-negative.')
        return value


class OccupancySerializer(serializers.Serializer):
    room = serializers.IntegerField()
    stored_status = serializers.CharField()
    computed_status = serializers.CharField()
    drifted = serializers.BooleanField()


class MaintenanceSerializer(serializers.Serializer):
    enabled = serializers.BooleanField()


class MaintenanceLogSerializer(serializers.ModelSerializer):
    room_label = serializers.StringRelatedField(source='room', read_only=True)
    is_blocking = serializers.BooleanField(read_only=True)

    class Meta:
        model = MaintenanceLog
        fields = [
            'id', 'room', 'room_label', 'type', 'description', 'status', 'priority', 'is_blocking',
            'reported_by', 'assigned_to', 'start_date', 'end_date', 'cost', 'notes',
            'created_at', 'updated_at',
        ]
        # Status moves through the status action so the room follows it.
        read_only_fields = ['id', 'status', 'start_date', 'end_date', 'created_at', 'updated_at']

    def validate_cost(self, value):
        if value is not None and value < 0:
            raise serializers.ValidationError('Cost must be non-negative.')
        return value


class MaintenanceStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=MaintenanceLog.STATUS_CHOICES)
