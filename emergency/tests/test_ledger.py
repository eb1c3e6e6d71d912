from datetime import timedelta

from django.db import IntegrityError, transaction
from django.test import TestCase
from django.utils import timezone

from donor.models import DonationRecord
from emergency.services import ledger
from emergency.tests.helpers import make_alert, make_donor


class LedgerTests(TestCase):
	def setUp(self):
		self.donor = make_donor("O+")
		self.now = timezone.now()

	def test_append_records_donation(self):
		record = ledger.append(self.donor.pk, self.now, "o+", 2, donation_place="Riverside")
		self.assertEqual(record.blood_type, "O+")
		self.assertEqual(record.bags_donated, 2)
		self.assertIsNone(record.emergency_alert_id)
		self.assertEqual(ledger.donation_count(self.donor.pk), 1)

	def test_records_are_append_only(self):
		record = ledger.append(self.donor.pk, self.now, "O+", 1)
		record.bags_donated = 3
		with self.assertRaises(ValueError):
			record.save()

	def test_one_record_per_alert(self):
		alert = make_alert(blood_type="O+")
		ledger.append(self.donor.pk, self.now, "O+", 1, alert.pk)
		with self.assertRaises(IntegrityError), transaction.atomic():
			ledger.append(self.donor.pk, self.now, "O+", 1, alert.pk)

	def test_last_donation_date_never_moves_backwards(self):
		recent = self.now - timedelta(days=3)
		older = self.now - timedelta(days=30)

		self.assertTrue(ledger.update_donor_last_donation_date(self.donor.pk, recent))
		self.assertFalse(ledger.update_donor_last_donation_date(self.donor.pk, older))
		self.donor.refresh_from_db()
		self.assertEqual(self.donor.last_donated_at, recent)

		self.assertTrue(ledger.update_donor_last_donation_date(self.donor.pk, self.now))
		self.donor.refresh_from_db()
		self.assertEqual(self.donor.last_donated_at, self.now)

	def test_history_newest_first(self):
		old = ledger.append(self.donor.pk, self.now - timedelta(days=200), "O+", 1)
		new = ledger.append(self.donor.pk, self.now - timedelta(days=2), "O+", 1)
		self.assertEqual(ledger.donation_history(self.donor.pk), [new, old])
		self.assertEqual(list(DonationRecord.objects.filter(donor=self.donor)), [new, old])
