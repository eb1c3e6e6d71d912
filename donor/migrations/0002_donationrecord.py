from django.db import migrations, models
import django.core.validators
import django.db.models.deletion


BLOOD_TYPES = [
    ("A+", "A+"), ("A-", "A-"), ("B+", "B+"), ("B-", "B-"),
    ("AB+", "AB+"), ("AB-", "AB-"), ("O+", "O+"), ("O-", "O-"),
]


class Migration(migrations.Migration):

    dependencies = [
        ("donor", "0001_initial"),
        ("emergency", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="DonationRecord",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("donation_date", models.DateTimeField()),
                ("emergency_serial_number", models.CharField(blank=True, max_length=32)),
                ("blood_type", models.CharField(choices=BLOOD_TYPES, max_length=3)),
                (
                    "bags_donated",
                    models.PositiveIntegerField(validators=[django.core.validators.MinValueValidator(1)]),
                ),
                ("donation_place", models.CharField(blank=True, max_length=255)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "donor",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="donation_records",
                        to="donor.donor",
                    ),
                ),
                (
                    "emergency_alert",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="donation_records",
                        to="emergency.emergencyalert",
                    ),
                ),
            ],
            options={
                "verbose_name": "Donation Record",
                "verbose_name_plural": "Donation Records",
                "ordering": ["-donation_date", "-id"],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("emergency_alert__isnull", False)),
                        fields=("emergency_alert",),
                        name="donationrecord_one_per_alert",
                    ),
                ],
            },
        ),
    ]
