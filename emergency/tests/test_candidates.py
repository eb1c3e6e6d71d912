from datetime import timedelta

from django.test import TestCase
from django.utils import timezone

from emergency.services import candidates
from emergency.tests.helpers import make_alert, make_donor, make_user


class CandidateResolverTests(TestCase):
	def setUp(self):
		self.requester = make_user("requester")
		self.alert = make_alert(self.requester, "O-", "wh0r8", required_bags=1, radius_km=10)

	def test_only_compatible_donor_in_radius(self):
		make_donor("A+", "wh0r8")
		d2 = make_donor("O-", "wh0r8")
		make_donor("O-", "tu1xx")

		self.assertEqual(candidates.find_candidates(self.alert), [d2])

	def test_pure_filter_matches_database_prefilter(self):
		donors = [make_donor("A+", "wh0r8"), make_donor("O-", "wh0r8"), make_donor("O-", "tu1xx")]
		self.assertEqual(candidates.resolve_candidates(self.alert, donors), [donors[1]])

	def test_neighbouring_cell_is_included(self):
		near = make_donor("O-", "wh0r9")
		self.assertEqual(candidates.find_candidates(self.alert), [near])

	def test_cooling_down_and_unavailable_donors_are_skipped(self):
		make_donor("O-", "wh0r8", last_donated_at=timezone.now() - timedelta(days=10))
		make_donor("O-", "wh0r8", is_available=False)
		rested = make_donor("O-", "wh0r8", last_donated_at=timezone.now() - timedelta(days=60))

		self.assertEqual(candidates.find_candidates(self.alert), [rested])

	def test_requester_is_never_a_candidate(self):
		make_donor("O-", "wh0r8", user=self.requester)
		self.assertEqual(candidates.find_candidates(self.alert), [])

	def test_empty_result_is_not_an_error(self):
		self.assertEqual(candidates.find_candidates(self.alert), [])

	def test_rank_by_distance(self):
		alert = make_alert(make_user("req"), "AB+", latitude=22.25, longitude=113.90)
		far = make_donor("A+", None, latitude=22.29, longitude=113.94)
		near = make_donor("B+", None, latitude=22.251, longitude=113.901)
		unknown = make_donor("O+", None)

		ranked = candidates.rank_by_distance(alert, [unknown, far, near])
		self.assertEqual([r.donor for r in ranked], [near, far, unknown])
		self.assertLess(ranked[0].distance_km, ranked[1].distance_km)
		self.assertIsNone(ranked[2].distance_km)
