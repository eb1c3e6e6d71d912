from __future__ import annotations

import logging

from django.conf import settings
from django.db.models.signals import pre_save
from django.dispatch import receiver

from emergency.exceptions import InvalidCoordinate
from emergency.services import geohash
from .models import Donor

LOGGER = logging.getLogger(__name__)


def cell_for(donor: Donor) -> str:
	"""Return the search cell for a donor's coordinates, or '' when unknown."""

	if not donor.has_coordinates:
		return ""
	precision = int(getattr(settings, "EMERGENCY_CELL_PRECISION", 5))
	return geohash.encode(donor.latitude, donor.longitude, precision)


@receiver(pre_save, sender=Donor)
def populate_geohash_from_coordinates(sender, instance: Donor, **kwargs):
	"""Keep the donor's cell in step with latitude/longitude on every save."""

	update_fields = kwargs.get("update_fields")
	if update_fields is not None and not {"latitude", "longitude", "geohash"} & set(update_fields):
		return

	try:
		cell = cell_for(instance)
	except InvalidCoordinate as exc:
		LOGGER.warning("Donor %s has unusable coordinates: %s", instance.pk, exc)
		cell = ""

	if cell != instance.geohash:
		LOGGER.debug("Assigned cell %s to donor %s", cell, instance)
	instance.geohash = cell
