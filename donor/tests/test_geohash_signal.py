from decimal import Decimal
from io import StringIO

from django.contrib.auth.models import User
from django.core.management import call_command
from django.test import TestCase

from donor import models as dmodels


class DonorCellTests(TestCase):
	def _create_donor(self, username, **extra):
		user = User.objects.create_user(username=username, password="pass1234", first_name="Cell")
		return dmodels.Donor.objects.create(user=user, bloodgroup="B+", address="x", mobile="1", **extra)

	def test_cell_derived_from_coordinates(self):
		donor = self._create_donor("hk", latitude=Decimal("22.319300"), longitude=Decimal("114.169400"))
		self.assertEqual(donor.geohash, "wecnv")

	def test_cell_cleared_without_coordinates(self):
		donor = self._create_donor("moved", latitude=Decimal("22.319300"), longitude=Decimal("114.169400"))
		donor.latitude = None
		donor.longitude = None
		donor.save()
		donor.refresh_from_db()
		self.assertEqual(donor.geohash, "")

	def test_unrelated_partial_save_leaves_cell(self):
		donor = self._create_donor("steady", latitude=Decimal("22.319300"), longitude=Decimal("114.169400"))
		dmodels.Donor.objects.filter(pk=donor.pk).update(geohash="stale")
		donor.refresh_from_db()
		donor.mark_availability(False)
		donor.refresh_from_db()
		self.assertEqual(donor.geohash, "stale")
		self.assertFalse(donor.is_available)

	def test_availability_helpers(self):
		donor = self._create_donor("fresh")
		self.assertTrue(donor.can_donate_now())
		self.assertIsNone(donor.next_eligible_donation_date)
		self.assertTrue(donor.availability_status().is_available)


class BackfillCommandTests(TestCase):
	def setUp(self):
		self.missing = self._create_donor("missing")
		self.no_coords = self._create_donor("nowhere", with_coords=False)

	def _create_donor(self, username, with_coords=True):
		user = User.objects.create_user(username=username, password="pass1234")
		donor = dmodels.Donor.objects.create(
			user=user,
			bloodgroup="A-",
			latitude=Decimal("22.319300") if with_coords else None,
			longitude=Decimal("114.169400") if with_coords else None,
		)
		# Simulate rows written before cells existed.
		dmodels.Donor.objects.filter(pk=donor.pk).update(geohash="")
		return donor

	def test_dry_run(self):
		out = StringIO()
		call_command("backfill_donor_geohash", "--dry-run", stdout=out)
		self.assertIn(f"DRY-RUN #{self.missing.id} -> wecnv", out.getvalue())
		self.missing.refresh_from_db()
		self.assertEqual(self.missing.geohash, "")

	def test_backfill(self):
		out = StringIO()
		call_command("backfill_donor_geohash", stdout=out)
		self.missing.refresh_from_db()
		self.no_coords.refresh_from_db()
		self.assertEqual(self.missing.geohash, "wecnv")
		self.assertEqual(self.no_coords.geohash, "")
		self.assertIn("Assigned cells to 1 of 1 donors.", out.getvalue())

	def test_nothing_to_do(self):
		call_command("backfill_donor_geohash", stdout=StringIO())
		out = StringIO()
		call_command("backfill_donor_geohash", stdout=out)
		self.assertIn("No donors require a search cell.", out.getvalue())

	def test_force_and_limit(self):
		other = self._create_donor("other")
		out = StringIO()
		call_command("backfill_donor_geohash", "--force", "--limit", "1", stdout=out)
		self.assertIn("Assigned cells to 1 of 1 donors.", out.getvalue())
		other.refresh_from_db()
		self.assertEqual(other.geohash, "")
