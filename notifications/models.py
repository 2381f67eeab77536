from django.conf import settings
from django.db import models


class Notification(models.Model):
    BOOKING_CONFIRMATION = 'BOOKING_CONFIRMATION'
    PAYMENT_RECEIVED = 'PAYMENT_RECEIVED'
    SEVENTY_FIVE_PERCENT_STAY = 'SEVENTY_FIVE_PERCENT_STAY'
    CHECKOUT_REMINDER = 'CHECKOUT_REMINDER'
    GENERAL_ANNOUNCEMENT = 'GENERAL_ANNOUNCEMENT'
    TYPE_CHOICES = [
        (BOOKING_CONFIRMATION, 'Booking confirmation'),
        (PAYMENT_RECEIVED, 'Payment received'),
        (SEVENTY_FIVE_PERCENT_STAY, '75% of stay completed'),
        (CHECKOUT_REMINDER, 'Checkout reminder'),
        (GENERAL_ANNOUNCEMENT, 'General announcement'),
    ]

    EMAIL = 'EMAIL'
    SMS = 'SMS'
    EMAIL_SMS = 'EMAIL_SMS'
    IN_APP = 'IN_APP'
    CHANNEL_CHOICES = [
        (EMAIL, 'Email'),
        (SMS, 'SMS'),
        (EMAIL_SMS, 'Email and SMS'),
        (IN_APP, 'In app'),
    ]

    PENDING = 'PENDING'
    SENT = 'SENT'
    FAILED = 'FAILED'
    STATUS_CHOICES = [
        (PENDING, 'Pending'),
        (SENT, 'Sent'),
        (FAILED, 'Failed'),
    ]

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='notifications'
    )
    booking = models.ForeignKey(
        'reservation.Booking',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='notifications'
    )
    type = models.CharField(max_length=40, choices=TYPE_CHOICES)
    title = models.CharField(max_length=255)
    message = models.TextField()
    channel = models.CharField(max_length=20, choices=CHANNEL_CHOICES, default=IN_APP)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=SENT)
    is_read = models.BooleanField(default=False)
    sent_at = models.DateTimeField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['booking', 'type'], name='notification_booking_type_idx'),
        ]

    def __str__(self):
        return f"{self.title} -> {self.user}"
