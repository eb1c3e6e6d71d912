from django.conf import settings
from django.db import migrations, models
import django.core.validators
import django.db.models.deletion


BLOOD_TYPES = [
    ("A+", "A+"), ("A-", "A-"), ("B+", "B+"), ("B-", "B-"),
    ("AB+", "AB+"), ("AB-", "AB-"), ("O+", "O+"), ("O-", "O-"),
]
SELECTED_STATES = ("in_progress", "fulfilled")


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ("donor", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="EmergencyAlert",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("serial_number", models.CharField(max_length=32, unique=True)),
                ("blood_type", models.CharField(choices=BLOOD_TYPES, max_length=3)),
                ("location_geohash", models.CharField(db_index=True, max_length=12)),
                ("latitude", models.DecimalField(blank=True, decimal_places=6, max_digits=9, null=True)),
                ("longitude", models.DecimalField(blank=True, decimal_places=6, max_digits=9, null=True)),
                ("location_address", models.CharField(blank=True, max_length=255)),
                ("radius_km", models.FloatField(default=10.0)),
                (
                    "urgency_level",
                    models.CharField(
                        choices=[("low", "Low"), ("medium", "Medium"), ("high", "High"), ("critical", "Critical")],
                        default="high",
                        max_length=10,
                    ),
                ),
                ("patient_condition", models.CharField(blank=True, max_length=120)),
                (
                    "required_bags",
                    models.PositiveIntegerField(validators=[django.core.validators.MinValueValidator(1)]),
                ),
                ("hemoglobin_level", models.CharField(blank=True, max_length=20)),
                ("donation_place", models.CharField(blank=True, max_length=255)),
                ("contact_info", models.CharField(blank=True, max_length=120)),
                ("reference", models.CharField(blank=True, max_length=120)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("active", "Active"),
                            ("in_progress", "In progress"),
                            ("fulfilled", "Fulfilled"),
                            ("expired", "Expired"),
                        ],
                        db_index=True,
                        default="active",
                        max_length=16,
                    ),
                ),
                ("donors_notified", models.PositiveIntegerField(default=0)),
                ("donors_responded", models.PositiveIntegerField(default=0)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("expires_at", models.DateTimeField(db_index=True)),
                (
                    "requester",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="emergency_alerts",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "selected_donor",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="selected_for_alerts",
                        to="donor.donor",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at", "-id"],
                "constraints": [
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
                ],
            },
        ),
        migrations.CreateModel(
            name="EmergencyResponse",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("selected", "Selected"),
                            ("cancelled", "Cancelled"),
                            ("completed", "Completed"),
                        ],
                        db_index=True,
                        default="pending",
                        max_length=16,
                    ),
                ),
                ("can_donate_immediately", models.BooleanField(default=False)),
                ("response_message", models.TextField(blank=True)),
                ("available_times", models.JSONField(blank=True, default=list)),
                (
                    "contact_preference",
                    models.CharField(
                        choices=[("phone", "Phone"), ("email", "Email"), ("both", "Both")],
                        default="both",
                        max_length=8,
                    ),
                ),
                ("distance_km", models.FloatField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("selected_at", models.DateTimeField(blank=True, null=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "alert",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="responses",
                        to="emergency.emergencyalert",
                    ),
                ),
                (
                    "responder",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="emergency_responses",
                        to="donor.donor",
                    ),
                ),
            ],
            options={
                "ordering": ["created_at", "id"],
                "constraints": [
                    models.UniqueConstraint(fields=("alert", "responder"), name="emergencyresponse_one_per_donor"),
                    models.UniqueConstraint(
                        condition=models.Q(status__in=["selected", "completed"]),
                        fields=("alert",),
                        name="emergencyresponse_single_selected",
                    ),
                ],
            },
        ),
    ]
