from decimal import Decimal

from django.contrib.auth import get_user_model
from django.db.models import Q
from django.utils import timezone
from rest_framework import serializers

from rooms.models import Room
from rooms.occupancy import OCCUPANCY_RELEVANT_STATUSES, blocks_stay, is_booking_active, is_checkout_overdue
from .models import Booking, Payment
from .periods import checkout_for

User = get_user_model()


class TenantDataSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ['id', 'full_name', 'email', 'phone']


class RoomDataSerializer(serializers.ModelSerializer):
    block_name = serializers.CharField(source='block.name', read_only=True, default=None)

    class Meta:
        model = Room
        fields = ['id', 'number', 'block_name', 'floor', 'pricing_period', 'price_per_night']


class PaymentSerializer(serializers.ModelSerializer):
    class Meta:
        model = Payment
        fields = ['id', 'amount', 'method', 'status', 'transaction_id', 'notes', 'paid_at', 'created_at']
        read_only_fields = fields


class BookingSerializer(serializers.ModelSerializer):
    user = serializers.PrimaryKeyRelatedField(
        queryset=User.objects.filter(role=User.TENANT),
        write_only=True
    )
    room = serializers.PrimaryKeyRelatedField(
        queryset=Room.objects.all(),
        write_only=True
    )
    number_of_periods = serializers.IntegerField(min_value=1, write_only=True)
    tenant_details = TenantDataSerializer(source='user', read_only=True)
    room_details = RoomDataSerializer(source='room', read_only=True)
    payment = PaymentSerializer(read_only=True)
    is_active = serializers.SerializerMethodField()
    checkout_overdue = serializers.SerializerMethodField()

    class Meta:
        model = Booking
        fields = [
            'id', 'user', 'tenant_details', 'room', 'room_details', 'check_in', 'number_of_periods',
            'check_out', 'guests', 'total_amount', 'status', 'special_requests', 'payment',
            'is_active', 'checkout_overdue', 'created_at', 'updated_at',
        ]
        read_only_fields = ['id', 'check_out', 'total_amount', 'status', 'created_at', 'updated_at']

    def get_is_active(self, obj):
        return is_booking_active(obj, timezone.now())

    def get_checkout_overdue(self, obj):
        return is_checkout_overdue(obj, timezone.now())

    def get_fields(self):
        fields = super().get_fields()
        # Stay length is only needed on create; updates may move dates or rooms alone.
        if self.instance is not None:
            fields['number_of_periods'].required = False
        return fields

    def validate_guests(self, value):
        if value < 1:
            raise serializers.ValidationError("Number of guests must be at least 1.")
        return value

    def validate(self, data):
        room = data.get('room') or getattr(self.instance, 'room', None)
        check_in = data.get('check_in') or getattr(self.instance, 'check_in', None)
        periods = data.get('number_of_periods')

        if room is None or check_in is None:
            raise serializers.ValidationError("Room and check-in date are required.")

        if room.status == Room.MAINTENANCE and (self.instance is None or 'room' in data):
            raise serializers.ValidationError({'room': "The selected room is under maintenance."})

        guests = data.get('guests') or getattr(self.instance, 'guests', 1)
        if guests > room.capacity:
            raise serializers.ValidationError({'guests': f"Room capacity is {room.capacity}."})

        if periods is not None:
            check_out = checkout_for(check_in, periods, room.pricing_period)
            data['check_out'] = check_out
            data['total_amount'] = room.price_per_night * Decimal(periods)
        elif self.instance is not None:
            check_out = self.instance.check_out
            if 'check_in' in data and check_out <= check_in:
                raise serializers.ValidationError({'check_in': "Check-in must be before the current check-out."})
        else:
            raise serializers.ValidationError({'number_of_periods': "This field is required."})

        if check_out <= check_in:
            raise serializers.ValidationError({'check_out': "Check-out must be after check-in."})

        # Half-open overlap: a stay may start at the instant another ends.
        # Checked-in guests are always loaded, they may have overstayed their dates.
        candidates = Booking.objects.filter(room=room, status__in=OCCUPANCY_RELEVANT_STATUSES).filter(
            Q(status=Booking.CHECKED_IN) | Q(check_in__lt=check_out, check_out__gt=check_in)
        )
        if self.instance is not None:
            candidates = candidates.exclude(pk=self.instance.pk)
        now = timezone.now()
        if any(blocks_stay(other, check_in, check_out, now) for other in candidates):
            raise serializers.ValidationError(
                "The selected room is not available for the chosen dates due to another booking."
            )

        data.pop('number_of_periods', None)
        return data


class BookingStatusSerializer(serializers.Serializer):
    """Response body of the lifecycle actions."""
    booking = BookingSerializer(read_only=True)
    room_status = serializers.CharField(read_only=True)


class BookingExtensionSerializer(serializers.Serializer):
    extension_periods = serializers.IntegerField(min_value=1)
    reason = serializers.CharField(required=False, allow_blank=True, default='')
    payment_method = serializers.ChoiceField(choices=Payment.METHOD_CHOICES, default='CASH')
    payment_account = serializers.CharField(required=False, allow_blank=True, default='')


class PaymentRecordSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0.01'))
    method = serializers.ChoiceField(choices=Payment.METHOD_CHOICES, default='CASH')
    transaction_id = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')
    notes = serializers.CharField(required=False, allow_blank=True, default='')
