from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models


class Booking(models.Model):
    PENDING = 'PENDING'
    CONFIRMED = 'CONFIRMED'
    CHECKED_IN = 'CHECKED_IN'
    CHECKED_OUT = 'CHECKED_OUT'
    CANCELLED = 'CANCELLED'
    NO_SHOW = 'NO_SHOW'
    STATUS_CHOICES = [
        (PENDING, 'Pending'),
        (CONFIRMED, 'Confirmed'),
        (CHECKED_IN, 'Checked in'),
        (CHECKED_OUT, 'Checked out'),
        (CANCELLED, 'Cancelled'),
        (NO_SHOW, 'No show'),
    ]

    # status -> statuses it may move to
    TRANSITIONS = {
        PENDING: (CONFIRMED, CHECKED_IN, CANCELLED),
        CONFIRMED: (CHECKED_IN, CANCELLED, NO_SHOW),
        CHECKED_IN: (CHECKED_OUT,),
        CHECKED_OUT: (),
        CANCELLED: (),
        NO_SHOW: (),
    }

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='bookings'
    )
    room = models.ForeignKey(
        'rooms.Room',
        on_delete=models.PROTECT,
        related_name='bookings'
    )
    check_in = models.DateTimeField()
    check_out = models.DateTimeField()
    guests = models.PositiveIntegerField(default=1)
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=PENDING)
    special_requests = models.TextField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-check_in']
        indexes = [
            models.Index(fields=['room', 'status'], name='booking_room_status_idx'),
            models.Index(fields=['status', 'check_out'], name='booking_status_checkout_idx'),
        ]

    def __str__(self):
        return f"Booking {self.pk} - {self.room} ({self.status})"

    def clean(self):
        if self.check_in and self.check_out and self.check_out <= self.check_in:
            raise ValidationError({'check_out': 'Check-out must be after check-in.'})

    def can_transition_to(self, status):
        return status in self.TRANSITIONS.get(self.status, ())


class Payment(models.Model):
    METHOD_CHOICES = [
        ('CASH', 'Cash'),
        ('CREDIT_CARD', 'Credit card'),
        ('DEBIT_CARD', 'Debit card'),
        ('ONLINE', 'Online'),
        ('BANK_TRANSFER', 'Bank transfer'),
        ('MOBILE_MONEY', 'Mobile money'),
    ]

    PENDING = 'PENDING'
    COMPLETED = 'COMPLETED'
    FAILED = 'FAILED'
    REFUNDED = 'REFUNDED'
    STATUS_CHOICES = [
        (PENDING, 'Pending'),
        (COMPLETED, 'Completed'),
        (FAILED, 'Failed'),
        (REFUNDED, 'Refunded'),
    ]

    booking = models.OneToOneField(
        Booking,
        on_delete=models.CASCADE,
        related_name='payment'
    )
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    method = models.CharField(max_length=20, choices=METHOD_CHOICES, default='CASH')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=PENDING)
    transaction_id = models.CharField(max_length=100, blank=True, null=True)
    notes = models.TextField(blank=True, null=True)
    paid_at = models.DateTimeField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"Payment {self.amount} for booking {self.booking_id} - {self.status}"
