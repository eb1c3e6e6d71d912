import math
import random
from datetime import timedelta

from django.contrib.auth.models import User
from django.core.management.base import BaseCommand
from django.db import transaction
from django.utils import timezone
from faker import Faker

from donor import models as donor_models
from emergency.models import EmergencyAlert, UrgencyLevel
from emergency.services import alerts as alert_service
from emergency.services import ledger
from emergency.services.compatibility import BloodType

# Rough population shares; O+ and A+ dominate most donor pools.
BLOOD_TYPE_WEIGHTS = {
    "O+": 37, "A+": 30, "B+": 9, "AB+": 4,
    "O-": 7, "A-": 6, "B-": 2, "AB-": 1,
}
HOSPITALS = [
    "City General Hospital", "St. Mary's Medical Center", "Riverside Trauma Unit",
    "Northside Children's Hospital", "University Hospital Blood Bank",
]
PATIENT_CONDITIONS = ["Road accident", "Surgery", "Postpartum hemorrhage", "Thalassemia", "Dengue"]
DONOR_PREFIX = "emdonor_"
REQUESTER_PREFIX = "emrequester_"
DEFAULT_PASSWORD = "DemoPass123!"
KM_PER_DEGREE = 111.32


class Command(BaseCommand):
    help = "Generate demo donors, donation history and emergency alerts around a city centre"

    def add_arguments(self, parser):
        parser.add_argument("--donors", type=int, help="Number of donors to create (default random between 40-60)")
        parser.add_argument("--alerts", type=int, default=5, help="Number of emergency alerts to open. Default: 5")
        parser.add_argument("--seed", type=int, help="Random seed for deterministic runs")
        parser.add_argument("--purge", action="store_true", help="Delete previously seeded demo users, alerts and records first")
        parser.add_argument("--latitude", type=float, default=12.9716, help="Centre latitude. Default: 12.9716")
        parser.add_argument("--longitude", type=float, default=77.5946, help="Centre longitude. Default: 77.5946")
        parser.add_argument("--spread-km", type=float, default=15.0, help="Max donor distance from the centre. Default: 15")

    def handle(self, *args, **options):
        faker = Faker()
        if options.get("seed") is not None:
            Faker.seed(options["seed"])
            random.seed(options["seed"])

        donor_target = options.get("donors") or random.randint(40, 60)
        alert_target = max(int(options.get("alerts") or 0), 0)
        centre = (options["latitude"], options["longitude"])
        spread_km = max(float(options["spread_km"]), 0.1)

        if options.get("purge"):
            self._purge_existing()

        with transaction.atomic():
            donors = self._create_donors(donor_target, faker, centre, spread_km)
            donation_count = self._create_donation_history(donors)
            alerts = self._create_alerts(alert_target, faker, centre, spread_km)

        self.stdout.write(self.style.SUCCESS(
            f"Seed complete: {len(donors)} donors, {donation_count} past donations, {len(alerts)} emergency alerts."
        ))
        self.stdout.write(self.style.SUCCESS("Default password for generated accounts: '" + DEFAULT_PASSWORD + "'"))

    # ------------------------------------------------------------------
    def _purge_existing(self):
        self.stdout.write("Purging existing emergency demo data…")
        demo_users = User.objects.filter(username__startswith=DONOR_PREFIX) | User.objects.filter(
            username__startswith=REQUESTER_PREFIX
        )
        demo_donor_ids = list(donor_models.Donor.objects.filter(user__in=demo_users).values_list("id", flat=True))
        # selected_donor is PROTECT; alerts go before the donors they reference.
        EmergencyAlert.objects.filter(requester__in=demo_users).delete()
        EmergencyAlert.objects.filter(selected_donor_id__in=demo_donor_ids).delete()
        demo_users.delete()
        self.stdout.write(self.style.WARNING("Existing demo records removed."))

    def _random_username(self, prefix):
        suffix = random.randint(1000, 999999)
        username = f"{prefix}{suffix}"
        while User.objects.filter(username=username).exists():
            suffix = random.randint(1000, 999999)
            username = f"{prefix}{suffix}"
        return username

    def _create_user(self, prefix, faker):
        username = self._random_username(prefix)
        return User.objects.create_user(
            username=username,
            first_name=faker.first_name(),
            last_name=faker.last_name(),
            email=f"{username}@demo.local",
            password=DEFAULT_PASSWORD,
        )

    def _scatter(self, centre, spread_km):
        """Uniform random point within ``spread_km`` of ``centre``."""

        lat, lng = centre
        distance = spread_km * math.sqrt(random.random())
        bearing = random.uniform(0, 2 * math.pi)
        d_lat = (distance * math.cos(bearing)) / KM_PER_DEGREE
        d_lng = (distance * math.sin(bearing)) / (KM_PER_DEGREE * max(math.cos(math.radians(lat)), 0.01))
        return round(max(min(lat + d_lat, 89.9), -89.9), 6), round(((lng + d_lng + 180) % 360) - 180, 6)

    def _create_donors(self, target, faker, centre, spread_km):
        types = list(BLOOD_TYPE_WEIGHTS)
        weights = [BLOOD_TYPE_WEIGHTS[t] for t in types]
        donors = []
        for _ in range(target):
            user = self._create_user(DONOR_PREFIX, faker)
            latitude, longitude = self._scatter(centre, spread_km)
            is_available = random.random() >= 0.15
            donor = donor_models.Donor.objects.create(
                user=user,
                bloodgroup=random.choices(types, weights=weights, k=1)[0],
                address=faker.street_address(),
                mobile=faker.msisdn()[:12],
                latitude=latitude,
                longitude=longitude,
                is_available=is_available,
                availability_updated_at=None if is_available else timezone.now() - timedelta(days=random.randint(0, 30)),
            )
            donors.append(donor)
        return donors

    def _create_donation_history(self, donors):
        total = 0
        now = timezone.now()
        for donor in donors:
            for _ in range(random.choices([0, 1, 2, 3], weights=[4, 3, 2, 1], k=1)[0]):
                when = now - timedelta(days=random.randint(5, 400), hours=random.randint(0, 23))
                ledger.append(donor.pk, when, donor.bloodgroup, random.randint(1, 2), donation_place=random.choice(HOSPITALS))
                ledger.update_donor_last_donation_date(donor.pk, when)
                total += 1
        return total

    def _create_alerts(self, target, faker, centre, spread_km):
        alerts = []
        for _ in range(target):
            requester = self._create_user(REQUESTER_PREFIX, faker)
            latitude, longitude = self._scatter(centre, spread_km / 2)
            alert = alert_service.create_alert(
                requester,
                random.choice(BloodType.values),
                latitude=latitude,
                longitude=longitude,
                required_bags=random.randint(1, 3),
                urgency_level=random.choice(UrgencyLevel.values),
                patient_condition=random.choice(PATIENT_CONDITIONS),
                donation_place=random.choice(HOSPITALS),
                location_address=faker.street_address(),
                contact_info=faker.msisdn()[:12],
                reference=faker.name(),
            )
            alerts.append(alert)
        return alerts
