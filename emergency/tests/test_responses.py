import threading
from datetime import timedelta
from unittest.mock import patch

from django.db import DatabaseError, connection
from django.test import TestCase, TransactionTestCase
from django.utils import timezone

from donor.models import DonationRecord
from emergency import events
from emergency.exceptions import (
	AlertNotActive,
	DuplicateResponse,
	EmergencyError,
	Forbidden,
	IncompatibleDonor,
	ResponseNotPending,
	ResponseNotSelected,
	StorageUnavailable,
)
from emergency.models import AlertStatus, EmergencyResponse, ResponseStatus
from emergency.services import alerts, responses
from emergency.tests.helpers import make_alert, make_donor, make_user


class SubmitResponseTests(TestCase):
	def setUp(self):
		self.requester = make_user("requester")
		self.alert = make_alert(self.requester, "A+", latitude=22.25, longitude=113.90)

	def test_submit_creates_pending_response_and_counts_it(self):
		donor = make_donor("O-", None, latitude=22.26, longitude=113.91)
		response = responses.submit_response(
			self.alert.pk,
			donor,
			can_donate_immediately=True,
			response_message="On my way",
			available_times=["now"],
			contact_preference="phone",
		)
		self.assertEqual(response.status, ResponseStatus.PENDING)
		self.assertIsNotNone(response.distance_km)
		self.alert.refresh_from_db()
		self.assertEqual(self.alert.donors_responded, 1)

	def test_second_submit_is_duplicate(self):
		donor = make_donor("A+")
		responses.submit_response(self.alert.pk, donor)
		with self.assertRaises(DuplicateResponse):
			responses.submit_response(self.alert.pk, donor)
		self.assertEqual(EmergencyResponse.objects.filter(alert=self.alert).count(), 1)
		self.alert.refresh_from_db()
		self.assertEqual(self.alert.donors_responded, 1)

	def test_incompatible_donor_rejected(self):
		with self.assertRaises(IncompatibleDonor):
			responses.submit_response(self.alert.pk, make_donor("B+"))
		self.assertFalse(EmergencyResponse.objects.exists())

	def test_duplicate_checked_before_alert_state(self):
		donor = make_donor("A+")
		responses.submit_response(self.alert.pk, donor)
		responses.select_donor_direct(self.alert.pk, make_donor("O-").pk, self.requester.pk)
		with self.assertRaises(DuplicateResponse):
			responses.submit_response(self.alert.pk, donor)

	def test_requester_cannot_respond_to_own_alert(self):
		with self.assertRaises(Forbidden):
			responses.submit_response(self.alert.pk, make_donor("A+", user=self.requester))

	def test_unknown_detail_is_rejected(self):
		with self.assertRaises(TypeError):
			responses.submit_response(self.alert.pk, make_donor("A+"), status="selected")


class SelectResponderTests(TestCase):
	def setUp(self):
		self.requester = make_user("requester")
		self.alert = make_alert(self.requester, "O+")
		self.responses = [
			responses.submit_response(self.alert.pk, make_donor(blood_type))
			for blood_type in ("O+", "O-", "O+", "O-")
		]

	def test_only_first_of_several_selections_wins(self):
		outcomes = []
		for response in self.responses:
			try:
				responses.select_responder(response.pk, self.requester.pk)
				outcomes.append("won")
			except (ResponseNotPending, AlertNotActive):
				outcomes.append("lost")

		self.assertEqual(outcomes.count("won"), 1)
		self.alert.refresh_from_db()
		self.assertEqual(self.alert.status, AlertStatus.IN_PROGRESS)
		statuses = list(EmergencyResponse.objects.filter(alert=self.alert).values_list("status", flat=True))
		self.assertEqual(statuses.count(ResponseStatus.SELECTED), 1)
		self.assertEqual(statuses.count(ResponseStatus.CANCELLED), 3)

	def test_selection_result(self):
		result = responses.select_responder(self.responses[1].pk, self.requester.pk)
		self.assertEqual(result.selected.pk, self.responses[1].pk)
		self.assertEqual(result.selected.status, ResponseStatus.SELECTED)
		self.assertIsNotNone(result.selected.selected_at)
		self.assertEqual(result.cancelled_count, 3)
		self.alert.refresh_from_db()
		self.assertEqual(self.alert.selected_donor_id, self.responses[1].responder_id)

	def test_selecting_twice_loses(self):
		responses.select_responder(self.responses[0].pk, self.requester.pk)
		with self.assertRaises(ResponseNotPending):
			responses.select_responder(self.responses[0].pk, self.requester.pk)

	def test_only_requester_may_select(self):
		outsider = make_user("outsider")
		with self.assertRaises(Forbidden):
			responses.select_responder(self.responses[0].pk, outsider.pk)
		self.alert.refresh_from_db()
		self.assertEqual(self.alert.status, AlertStatus.ACTIVE)

	def test_expired_alert_cannot_be_selected(self):
		alerts.mark_expired(self.alert.pk)
		with self.assertRaises(AlertNotActive):
			responses.select_responder(self.responses[0].pk, self.requester.pk)

	def test_response_selected_event_after_commit(self):
		received = []

		def listener(sender, alert, response, **kwargs):
			received.append((alert.pk, response.pk))

		events.response_selected.connect(listener)
		self.addCleanup(events.response_selected.disconnect, listener)
		with self.captureOnCommitCallbacks(execute=True):
			responses.select_responder(self.responses[2].pk, self.requester.pk)
		self.assertEqual(received, [(self.alert.pk, self.responses[2].pk)])


class ConcurrentSelectionTests(TransactionTestCase):
	CALLERS = 6

	def setUp(self):
		self.requester = make_user("requester")
		self.alert = make_alert(self.requester, "O+")
		self.responses = [
			responses.submit_response(self.alert.pk, make_donor("O+" if i % 2 else "O-"))
			for i in range(self.CALLERS)
		]

	def test_simultaneous_selections_have_one_winner(self):
		barrier = threading.Barrier(self.CALLERS)
		outcomes = []
		lock = threading.Lock()

		def select(response_id):
			try:
				barrier.wait()
				try:
					responses.select_responder(response_id, self.requester.pk)
					outcome = "won"
				except EmergencyError as exc:
					outcome = f"lost:{type(exc).__name__}"
				with lock:
					outcomes.append(outcome)
			finally:
				connection.close()

		threads = [threading.Thread(target=select, args=(r.pk,)) for r in self.responses]
		for thread in threads:
			thread.start()
		for thread in threads:
			thread.join(timeout=30)

		self.assertEqual(len(outcomes), self.CALLERS, outcomes)
		self.assertEqual(outcomes.count("won"), 1, outcomes)
		for outcome in outcomes:
			if outcome != "won":
				self.assertIn(outcome, ("lost:ResponseNotPending", "lost:AlertNotActive"))

		self.alert.refresh_from_db()
		self.assertEqual(self.alert.status, AlertStatus.IN_PROGRESS)
		statuses = list(EmergencyResponse.objects.filter(alert=self.alert).values_list("status", flat=True))
		self.assertEqual(statuses.count(ResponseStatus.SELECTED), 1)
		self.assertEqual(statuses.count(ResponseStatus.CANCELLED), self.CALLERS - 1)
		selected = EmergencyResponse.objects.get(alert=self.alert, status=ResponseStatus.SELECTED)
		self.assertEqual(self.alert.selected_donor_id, selected.responder_id)


class CompleteDonationTests(TestCase):
	def setUp(self):
		self.requester = make_user("requester")
		self.alert = make_alert(self.requester, "A+", required_bags=2, donation_place="City General")
		self.donor = make_donor("A+")
		self.response = responses.submit_response(self.alert.pk, self.donor)

	def test_complete_requires_selected_response(self):
		with self.assertRaises(ResponseNotSelected):
			responses.complete_donation(self.response.pk, self.requester.pk)
		self.alert.refresh_from_db()
		self.assertEqual(self.alert.status, AlertStatus.ACTIVE)
		self.assertFalse(DonationRecord.objects.exists())

	def test_complete_fulfils_alert_and_writes_ledger(self):
		responses.select_responder(self.response.pk, self.requester.pk)
		completed = responses.complete_donation(self.response.pk, self.requester.pk)

		self.assertEqual(completed.status, ResponseStatus.COMPLETED)
		self.assertIsNotNone(completed.completed_at)
		self.alert.refresh_from_db()
		self.assertEqual(self.alert.status, AlertStatus.FULFILLED)
		self.assertEqual(self.alert.selected_donor_id, self.donor.pk)

		record = DonationRecord.objects.get(emergency_alert=self.alert)
		self.assertEqual(record.donor_id, self.donor.pk)
		self.assertEqual(record.bags_donated, 2)
		self.assertEqual(record.emergency_serial_number, self.alert.serial_number)
		self.assertEqual(record.donation_place, "City General")
		self.donor.refresh_from_db()
		self.assertEqual(self.donor.last_donated_at, record.donation_date)
		self.assertFalse(self.donor.can_donate_now())

	def test_responder_may_complete(self):
		responses.select_responder(self.response.pk, self.requester.pk)
		responses.complete_donation(self.response.pk, self.donor.user_id)
		self.alert.refresh_from_db()
		self.assertEqual(self.alert.status, AlertStatus.FULFILLED)

	def test_outsider_may_not_complete(self):
		responses.select_responder(self.response.pk, self.requester.pk)
		with self.assertRaises(Forbidden):
			responses.complete_donation(self.response.pk, make_user("outsider").pk)

	def test_ledger_failure_rolls_everything_back(self):
		responses.select_responder(self.response.pk, self.requester.pk)
		with patch("emergency.services.ledger.append", side_effect=DatabaseError("disk full")):
			with self.assertRaises(StorageUnavailable):
				responses.complete_donation(self.response.pk, self.requester.pk)

		self.response.refresh_from_db()
		self.alert.refresh_from_db()
		self.donor.refresh_from_db()
		self.assertEqual(self.response.status, ResponseStatus.SELECTED)
		self.assertEqual(self.alert.status, AlertStatus.IN_PROGRESS)
		self.assertIsNone(self.donor.last_donated_at)
		self.assertFalse(DonationRecord.objects.exists())

	def test_completing_twice_is_rejected(self):
		responses.select_responder(self.response.pk, self.requester.pk)
		responses.complete_donation(self.response.pk, self.requester.pk)
		with self.assertRaises(ResponseNotSelected):
			responses.complete_donation(self.response.pk, self.requester.pk)
		self.assertEqual(DonationRecord.objects.count(), 1)


class DirectSelectTests(TestCase):
	def setUp(self):
		self.requester = make_user("requester")
		self.alert = make_alert(self.requester, "B+")

	def test_direct_select_fulfils_and_cancels_pending(self):
		pending = responses.submit_response(self.alert.pk, make_donor("B+"))
		chosen = make_donor("O-")

		record = responses.select_donor_direct(self.alert.pk, chosen.pk, self.requester.pk)

		self.alert.refresh_from_db()
		pending.refresh_from_db()
		chosen.refresh_from_db()
		self.assertEqual(self.alert.status, AlertStatus.FULFILLED)
		self.assertEqual(self.alert.selected_donor_id, chosen.pk)
		self.assertEqual(pending.status, ResponseStatus.CANCELLED)
		self.assertEqual(record.emergency_alert_id, self.alert.pk)
		self.assertEqual(chosen.last_donated_at, record.donation_date)
		self.assertFalse(EmergencyResponse.objects.filter(responder=chosen).exists())

	def test_direct_select_guards(self):
		donor = make_donor("B+")
		with self.assertRaises(Forbidden):
			responses.select_donor_direct(self.alert.pk, donor.pk, make_user().pk)
		with self.assertRaises(IncompatibleDonor):
			responses.select_donor_direct(self.alert.pk, make_donor("A+").pk, self.requester.pk)

		response = responses.submit_response(self.alert.pk, donor)
		responses.select_responder(response.pk, self.requester.pk)
		with self.assertRaises(AlertNotActive):
			responses.select_donor_direct(self.alert.pk, make_donor("O-").pk, self.requester.pk)
		self.assertFalse(DonationRecord.objects.exists())

	def test_requester_cannot_select_own_donor_profile(self):
		own_profile = make_donor("O-", user=self.requester)
		with self.assertRaises(Forbidden):
			responses.select_donor_direct(self.alert.pk, own_profile.pk, self.requester.pk)
		self.alert.refresh_from_db()
		self.assertEqual(self.alert.status, AlertStatus.ACTIVE)
		self.assertFalse(DonationRecord.objects.exists())

	def test_donor_selected_event_after_commit(self):
		chosen = make_donor("B+")
		received = []

		def listener(sender, alert, donor, **kwargs):
			received.append((alert.pk, donor.pk))

		events.donor_selected.connect(listener)
		self.addCleanup(events.donor_selected.disconnect, listener)
		with self.captureOnCommitCallbacks(execute=True):
			responses.select_donor_direct(self.alert.pk, chosen.pk, self.requester.pk)
		self.assertEqual(received, [(self.alert.pk, chosen.pk)])


class ResponseQueryTests(TestCase):
	def test_list_is_requester_only(self):
		requester = make_user("requester")
		alert = make_alert(requester, "AB+")
		first = responses.submit_response(alert.pk, make_donor("A-"))
		second = responses.submit_response(alert.pk, make_donor("B-"))

		self.assertEqual(responses.list_responses(alert.pk, requester.pk), [first, second])
		with self.assertRaises(Forbidden):
			responses.list_responses(alert.pk, make_user().pk)

	def test_stats(self):
		requester = make_user("requester")
		alert = make_alert(requester, "AB+")
		picked = responses.submit_response(alert.pk, make_donor("A-"))
		responses.submit_response(alert.pk, make_donor("B-"))
		responses.select_responder(picked.pk, requester.pk)

		stats = responses.response_stats(alert.pk)
		self.assertEqual(stats["selected"], 1)
		self.assertEqual(stats["cancelled"], 1)
		self.assertEqual(stats["pending"], 0)
		self.assertEqual(stats["total"], 2)
