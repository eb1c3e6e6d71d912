"""Shared builders for emergency tests."""

from django.contrib.auth.models import User

from donor.models import Donor
from emergency.services import alerts, geohash

_counter = {"n": 0}


def make_user(prefix="user", **extra):
	_counter["n"] += 1
	username = f"{prefix}{_counter['n']}"
	return User.objects.create_user(
		username=username,
		password="DemoPass123!",
		first_name=extra.pop("first_name", "Test"),
		last_name=extra.pop("last_name", username.title()),
		**extra,
	)


def make_donor(bloodgroup="O-", cell="wh0r8", *, mobile="+85291234567", user=None, **extra):
	"""Donor placed at the center of ``cell`` (or at explicit coordinates)."""

	if "latitude" not in extra and cell:
		bounds = geohash.decode(cell)
		extra["latitude"] = round(bounds.latitude, 6)
		extra["longitude"] = round(bounds.longitude, 6)
	return Donor.objects.create(
		user=user or make_user("donor"),
		bloodgroup=bloodgroup,
		mobile=mobile,
		address="Test Address",
		**extra,
	)


def make_alert(requester=None, blood_type="O-", cell="wh0r8", **kwargs):
	kwargs.setdefault("radius_km", 10)
	return alerts.create_alert(requester or make_user("requester"), blood_type, location_cell=cell, **kwargs)
