from django.test import SimpleTestCase, override_settings

from emergency.exceptions import InvalidCoordinate
from emergency.services import geohash


class EncodeDecodeTests(SimpleTestCase):
	def test_known_cell(self):
		self.assertEqual(geohash.encode(57.64911, 10.40744, 11), "u4pruydqqvj")

	def test_encode_is_deterministic(self):
		first = geohash.encode(22.3193, 114.1694, 5)
		self.assertEqual(first, geohash.encode(22.3193, 114.1694, 5))
		self.assertEqual(len(first), 5)

	def test_prefix_is_coarser_parent(self):
		fine = geohash.encode(-33.8688, 151.2093, 9)
		self.assertEqual(geohash.encode(-33.8688, 151.2093, 5), fine[:5])

	def test_decode_contains_point(self):
		bounds = geohash.decode(geohash.encode(40.7128, -74.0060, 6))
		self.assertTrue(bounds.min_lat <= 40.7128 <= bounds.max_lat)
		self.assertTrue(bounds.min_lng <= -74.0060 <= bounds.max_lng)

	def test_rejects_out_of_range_coordinates(self):
		with self.assertRaises(InvalidCoordinate):
			geohash.encode(91, 0)
		with self.assertRaises(InvalidCoordinate):
			geohash.encode(0, -181)
		with self.assertRaises(InvalidCoordinate):
			geohash.encode("north", 0)

	def test_rejects_bad_cells(self):
		for cell in ("", "abc", "wh0r8!", "x" * 13):
			with self.subTest(cell=cell):
				with self.assertRaises(InvalidCoordinate):
					geohash.validate_cell(cell)


class NeighborTests(SimpleTestCase):
	def test_cardinal_neighbors(self):
		ring = geohash.neighbors("dqcjq")
		self.assertEqual(len(ring), 8)
		for expected in ("dqcjw", "dqcjr"):
			self.assertIn(expected, ring)
		self.assertNotIn("dqcjq", ring)

	def test_longitude_wraps_and_pole_is_not_crossed(self):
		ring = geohash.neighbors("zzzzz")
		self.assertEqual(len(ring), 5)
		self.assertIn("bpbpb", ring)


class RadiusTests(SimpleTestCase):
	def test_always_contains_center(self):
		for radius in (0, 0.5, 10, 50):
			with self.subTest(radius=radius):
				self.assertIn("wh0r8", geohash.cells_within_radius("wh0r8", radius))

	def test_zero_radius_is_center_only(self):
		self.assertEqual(geohash.cells_within_radius("wh0r8", 0), {"wh0r8"})

	def test_larger_radius_is_superset(self):
		small = geohash.cells_within_radius("wh0r8", 5)
		large = geohash.cells_within_radius("wh0r8", 20)
		self.assertTrue(small < large)

	def test_far_cell_excluded(self):
		self.assertNotIn("tu1xx", geohash.cells_within_radius("wh0r8", 10))

	def test_finer_center_is_truncated(self):
		self.assertIn("wh0r8", geohash.cells_within_radius("wh0r8xyz", 0))

	def test_negative_radius_rejected(self):
		with self.assertRaises(InvalidCoordinate):
			geohash.cells_within_radius("wh0r8", -1)

	@override_settings(EMERGENCY_MAX_RING_EXPANSION=1)
	def test_expansion_is_capped(self):
		with self.assertLogs("emergency.services.geohash", level="WARNING"):
			cells = geohash.cells_within_radius("wh0r8", 100)
		self.assertEqual(len(cells), 9)


class DistanceTests(SimpleTestCase):
	def test_one_degree_on_equator(self):
		self.assertAlmostEqual(geohash.distance_km(0, 0, 0, 1), 111.2, delta=0.5)

	def test_same_point(self):
		self.assertEqual(geohash.distance_km(22.3, 114.1, 22.3, 114.1), 0.0)
