from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone

from donor import models as dmodels
from emergency.services.compatibility import BloodType


class AlertStatus(models.TextChoices):
    ACTIVE = "active", "Active"
    IN_PROGRESS = "in_progress", "In progress"
    FULFILLED = "fulfilled", "Fulfilled"
    EXPIRED = "expired", "Expired"


class UrgencyLevel(models.TextChoices):
    LOW = "low", "Low"
    MEDIUM = "medium", "Medium"
    HIGH = "high", "High"
    CRITICAL = "critical", "Critical"


class ResponseStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    SELECTED = "selected", "Selected"
    CANCELLED = "cancelled", "Cancelled"
    COMPLETED = "completed", "Completed"


class ContactPreference(models.TextChoices):
    PHONE = "phone", "Phone"
    EMAIL = "email", "Email"
    BOTH = "both", "Both"


SELECTED_STATES = (AlertStatus.IN_PROGRESS, AlertStatus.FULFILLED)


class EmergencyAlert(models.Model):
    serial_number = models.CharField(max_length=32, unique=True)
    requester = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="emergency_alerts",
    )
    blood_type = models.CharField(max_length=3, choices=BloodType.choices)
    location_geohash = models.CharField(max_length=12, db_index=True)
    latitude = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)
    longitude = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)
    location_address = models.CharField(max_length=255, blank=True)
    radius_km = models.FloatField(default=10.0)
    urgency_level = models.CharField(max_length=10, choices=UrgencyLevel.choices, default=UrgencyLevel.HIGH)

    # Patient/donation details shown to responders
    patient_condition = models.CharField(max_length=120, blank=True)
    required_bags = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    hemoglobin_level = models.CharField(max_length=20, blank=True)
    donation_place = models.CharField(max_length=255, blank=True)
    contact_info = models.CharField(max_length=120, blank=True)
    reference = models.CharField(max_length=120, blank=True)

    status = models.CharField(max_length=16, choices=AlertStatus.choices, default=AlertStatus.ACTIVE, db_index=True)
    donors_notified = models.PositiveIntegerField(default=0)
    donors_responded = models.PositiveIntegerField(default=0)
    selected_donor = models.ForeignKey(
        dmodels.Donor,
        null=True,
        blank=True,
        on_delete=models.PROTECT,
        related_name="selected_for_alerts",
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    expires_at = models.DateTimeField(db_index=True)

    class Meta:
        ordering = ['-created_at', '-id']
        constraints = [
            models.CheckConstraint(
                condition=(
                    models.Q(selected_donor__isnull=False, status__in=SELECTED_STATES)
                    | (models.Q(selected_donor__isnull=True) & ~models.Q(status__in=SELECTED_STATES))
                ),
                name="emergencyalert_selected_donor_matches_status",
            ),
            models.CheckConstraint(
                condition=models.Q(required_bags__gte=1),
                name="emergencyalert_required_bags_positive",
            ),
        ]

    def __str__(self):
        return f"{self.serial_number} - {self.blood_type} ({self.status})"

    @property
    def is_active(self) -> bool:
        return self.status == AlertStatus.ACTIVE

    def is_past_expiry(self, now=None) -> bool:
        return (now or timezone.now()) > self.expires_at

    def to_dict(self) -> dict:
        """Read model exposed to collaborators."""

        return {
            "id": self.pk,
            "serial_number": self.serial_number,
            "blood_type": self.blood_type,
            "status": self.status,
            "urgency_level": self.urgency_level,
            "required_bags": self.required_bags,
            "radius_km": self.radius_km,
            "location_geohash": self.location_geohash,
            "donation_place": self.donation_place,
            "donors_notified": self.donors_notified,
            "donors_responded": self.donors_responded,
            "selected_donor_id": self.selected_donor_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
        }


class EmergencyResponse(models.Model):
    alert = models.ForeignKey(EmergencyAlert, on_delete=models.CASCADE, related_name="responses")
    responder = models.ForeignKey(dmodels.Donor, on_delete=models.CASCADE, related_name="emergency_responses")
    status = models.CharField(max_length=16, choices=ResponseStatus.choices, default=ResponseStatus.PENDING, db_index=True)
    can_donate_immediately = models.BooleanField(default=False)
    response_message = models.TextField(blank=True)
    available_times = models.JSONField(default=list, blank=True)
    contact_preference = models.CharField(
        max_length=8,
        choices=ContactPreference.choices,
        default=ContactPreference.BOTH,
    )
    distance_km = models.FloatField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    selected_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['created_at', 'id']
        constraints = [
            models.UniqueConstraint(fields=["alert", "responder"], name="emergencyresponse_one_per_donor"),
            models.UniqueConstraint(
                fields=["alert"],
                condition=models.Q(status__in=[ResponseStatus.SELECTED, ResponseStatus.COMPLETED]),
                name="emergencyresponse_single_selected",
            ),
        ]

    def __str__(self):
        return f"{self.responder} -> {self.alert.serial_number} ({self.status})"

    def to_dict(self) -> dict:
        donor = self.responder
        return {
            "id": self.pk,
            "alert_id": self.alert_id,
            "responder_id": self.responder_id,
            "responder_name": donor.get_name,
            "responder_blood_type": donor.bloodgroup,
            "status": self.status,
            "can_donate_immediately": self.can_donate_immediately,
            "response_message": self.response_message,
            "available_times": self.available_times,
            "contact_preference": self.contact_preference,
            "distance_km": self.distance_km,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "selected_at": self.selected_at.isoformat() if self.selected_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }
