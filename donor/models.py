from django.db import models
from django.contrib.auth.models import User
from django.core.validators import MinValueValidator, MaxValueValidator
from django.utils import timezone

from emergency.services import availability
from emergency.services.compatibility import BloodType


class Donor(models.Model):
    user=models.OneToOneField(User,on_delete=models.CASCADE)

    bloodgroup=models.CharField(max_length=3, choices=BloodType.choices)
    mobile = models.CharField(max_length=20, blank=True)
    address = models.CharField(max_length=255, blank=True)
    latitude = models.DecimalField(
        max_digits=9,
        decimal_places=6,
        null=True,
        blank=True,
        validators=[MinValueValidator(-90), MaxValueValidator(90)],
        help_text="Decimal latitude between -90 and 90"
    )
    longitude = models.DecimalField(
        max_digits=9,
        decimal_places=6,
        null=True,
        blank=True,
        validators=[MinValueValidator(-180), MaxValueValidator(180)],
        help_text="Decimal longitude between -180 and 180"
    )
    # Precision-5 cell derived from the coordinates (see donor.signals).
    geohash = models.CharField(max_length=12, blank=True, db_index=True)
    is_available = models.BooleanField(default=True)
    availability_updated_at = models.DateTimeField(null=True, blank=True)
    last_notified_at = models.DateTimeField(null=True, blank=True)

    # Donation recovery tracking; only ever moves forward (emergency.services.ledger)
    last_donated_at = models.DateTimeField(null=True, blank=True)

    @property
    def get_name(self):
        full = f"{self.user.first_name} {self.user.last_name}".strip()
        return full or self.user.get_username()

    def __str__(self):
        return f"{self.get_name} ({self.bloodgroup})"

    def mark_availability(self, available: bool):
        self.is_available = available
        self.availability_updated_at = timezone.now()
        self.save(update_fields=["is_available", "availability_updated_at"])

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    @property
    def next_eligible_donation_date(self):
        return availability.next_eligible_date(self.last_donated_at)

    def availability_status(self, now=None):
        return availability.availability_status(self.last_donated_at, now)

    def can_donate_now(self, now=None) -> bool:
        return self.is_available and availability.is_available(self.last_donated_at, now)


class DonationRecord(models.Model):
    """Append-only ledger row; one per fulfilled emergency (or manual entry)."""

    donor = models.ForeignKey(Donor, on_delete=models.CASCADE, related_name="donation_records")
    donation_date = models.DateTimeField()
    emergency_alert = models.ForeignKey(
        "emergency.EmergencyAlert",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="donation_records",
    )
    emergency_serial_number = models.CharField(max_length=32, blank=True)
    blood_type = models.CharField(max_length=3, choices=BloodType.choices)
    bags_donated = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    donation_place = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-donation_date', '-id']  # Most recent first
        verbose_name = "Donation Record"
        verbose_name_plural = "Donation Records"
        constraints = [
            models.UniqueConstraint(
                fields=["emergency_alert"],
                condition=models.Q(emergency_alert__isnull=False),
                name="donationrecord_one_per_alert",
            ),
        ]

    def __str__(self):
        return f"{self.donor.get_name} - {self.blood_type} - {self.bags_donated} bag(s)"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("Donation records are append-only")
        super().save(*args, **kwargs)
