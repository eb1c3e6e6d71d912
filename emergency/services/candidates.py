from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional

from django.conf import settings
from django.utils import timezone

from donor import models as dmodels
from emergency.models import EmergencyAlert
from emergency.services import geohash
from emergency.services.availability import is_available
from emergency.services.compatibility import donors_who_can_help

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RankedCandidate:
    donor: dmodels.Donor
    distance_km: Optional[float]


def _search_cells(alert: EmergencyAlert) -> set:
    precision = int(getattr(settings, "EMERGENCY_CELL_PRECISION", 5))
    return geohash.cells_within_radius(alert.location_geohash, alert.radius_km, precision)


def resolve_candidates(
    alert: EmergencyAlert,
    donors: Iterable[dmodels.Donor],
    *,
    now: Optional[datetime] = None,
) -> List[dmodels.Donor]:
    """Donors worth notifying for ``alert``.

    Keeps donors whose type can give to the patient, whose cell lies in the
    ring-expanded search area, who are flagged available and out of their
    cooldown window, and who are not the requester. The result is unordered
    and may be empty; callers report "no donors" themselves.
    """

    now = now or timezone.now()
    compatible = {t.value for t in donors_who_can_help(alert.blood_type)}
    cells = _search_cells(alert)

    candidates = [
        donor
        for donor in donors
        if donor.bloodgroup in compatible
        and donor.geohash in cells
        and donor.is_available
        and is_available(donor.last_donated_at, now)
        and donor.user_id != alert.requester_id
    ]
    logger.info(
        "Alert %s (%s): %s candidate donor(s) across %s cells",
        alert.serial_number,
        alert.blood_type,
        len(candidates),
        len(cells),
    )
    return candidates


def find_candidates(alert: EmergencyAlert, *, now: Optional[datetime] = None) -> List[dmodels.Donor]:
    """``resolve_candidates`` over donors pre-filtered in the database."""

    compatible = [t.value for t in donors_who_can_help(alert.blood_type)]
    queryset = (
        dmodels.Donor.objects.select_related("user")
        .filter(
            bloodgroup__in=compatible,
            geohash__in=_search_cells(alert),
            is_available=True,
        )
        .exclude(user_id=alert.requester_id)
        .order_by("id")
    )
    return resolve_candidates(alert, queryset, now=now)


def rank_by_distance(alert: EmergencyAlert, donors: Iterable[dmodels.Donor]) -> List[RankedCandidate]:
    """Attach exact distances where both ends have coordinates, nearest first.

    Donors without coordinates keep their place after every measured donor.
    """

    ranked = []
    for donor in donors:
        distance = None
        if alert.latitude is not None and alert.longitude is not None and donor.has_coordinates:
            distance = geohash.distance_km(alert.latitude, alert.longitude, donor.latitude, donor.longitude)
        ranked.append(RankedCandidate(donor=donor, distance_km=distance))
    ranked.sort(key=lambda c: (c.distance_km is None, c.distance_km or 0.0, c.donor.id))
    return ranked
