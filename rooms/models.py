from django.db import models


class Block(models.Model):
    name = models.CharField(max_length=100, unique=True)
    description = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name


class Room(models.Model):
    AVAILABLE = 'AVAILABLE'
    OCCUPIED = 'OCCUPIED'
    MAINTENANCE = 'MAINTENANCE'
    STATUS_CHOICES = [
        (AVAILABLE, 'Available'),
        (OCCUPIED, 'Occupied'),
        (MAINTENANCE, 'Maintenance'),
    ]

    NIGHT = 'NIGHT'
    DAY = 'DAY'
    WEEK = 'WEEK'
    MONTH = 'MONTH'
    YEAR = 'YEAR'
    PRICING_PERIOD_CHOICES = [
        (NIGHT, 'Per night'),
        (DAY, 'Per day'),
        (WEEK, 'Per week'),
        (MONTH, 'Per month'),
        (YEAR, 'Per year'),
    ]

    number = models.CharField(max_length=20)
    block = models.ForeignKey(
        Block,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='rooms'
    )
    floor = models.IntegerField(default=0)
    capacity = models.PositiveIntegerField(default=1)
    price_per_night = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    pricing_period = models.CharField(max_length=10, choices=PRICING_PERIOD_CHOICES, default=NIGHT)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=AVAILABLE)
    description = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['block__name', 'number']
        constraints = [
            models.UniqueConstraint(fields=['block', 'number'], name='unique_room_number_per_block'),
        ]

    def __str__(self):
        if self.block_id:
            return f"{self.block.name}-{self.number}"
        return self.number


class MaintenanceLog(models.Model):
    CLEANING = 'CLEANING'
    REPAIR = 'REPAIR'
    INSPECTION = 'INSPECTION'
    UPGRADE = 'UPGRADE'
    PREVENTIVE = 'PREVENTIVE'
    TYPE_CHOICES = [
        (CLEANING, 'Cleaning'),
        (REPAIR, 'Repair'),
        (INSPECTION, 'Inspection'),
        (UPGRADE, 'Upgrade'),
        (PREVENTIVE, 'Preventive'),
    ]

    LOW = 'LOW'
    MEDIUM = 'MEDIUM'
    HIGH = 'HIGH'
    CRITICAL = 'CRITICAL'
    PRIORITY_CHOICES = [
        (LOW, 'Low'),
        (MEDIUM, 'Medium'),
        (HIGH, 'High'),
        (CRITICAL, 'Critical'),
    ]
    # issues serious enough to take the room out of service
    BLOCKING_PRIORITIES = (HIGH, CRITICAL)

    PENDING = 'PENDING'
    IN_PROGRESS = 'IN_PROGRESS'
    COMPLETED = 'COMPLETED'
    CANCELLED = 'CANCELLED'
    STATUS_CHOICES = [
        (PENDING, 'Pending'),
        (IN_PROGRESS, 'In progress'),
        (COMPLETED, 'Completed'),
        (CANCELLED, 'Cancelled'),
    ]
    OPEN_STATUSES = (PENDING, IN_PROGRESS)

    TRANSITIONS = {
        PENDING: (IN_PROGRESS, COMPLETED, CANCELLED),
        IN_PROGRESS: (COMPLETED, CANCELLED),
        COMPLETED: (),
        CANCELLED: (),
    }

    room = models.ForeignKey(
        Room,
        on_delete=models.PROTECT,
        related_name='maintenance_logs'
    )
    type = models.CharField(max_length=20, choices=TYPE_CHOICES)
    description = models.TextField()
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=PENDING)
    priority = models.CharField(max_length=10, choices=PRIORITY_CHOICES, default=MEDIUM)
    reported_by = models.CharField(max_length=150, blank=True)
    assigned_to = models.CharField(max_length=150, blank=True)
    start_date = models.DateTimeField(blank=True, null=True)
    end_date = models.DateTimeField(blank=True, null=True)
    cost = models.DecimalField(max_digits=10, decimal_places=2, blank=True, null=True)
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['room', 'status'], name='maintenance_room_status_idx'),
        ]

    def __str__(self):
        return f"{self.get_type_display()} on room {self.room} ({self.status})"

    @property
    def is_blocking(self):
        return self.priority in self.BLOCKING_PRIORITIES and self.status in self.OPEN_STATUSES

    def can_transition_to(self, status):
        return status in self.TRANSITIONS.get(self.status, ())
