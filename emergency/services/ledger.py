"""Donation ledger: append-only records feeding each donor's cooldown clock."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional

from django.db.models import Q
from django.utils import timezone

from donor.models import DonationRecord, Donor
from emergency.services.compatibility import parse_blood_type
from emergency.services.storage import storage_errors

logger = logging.getLogger(__name__)


def append(
    donor_id: int,
    date: Optional[datetime],
    blood_type,
    bags: int,
    alert_id: Optional[int] = None,
    *,
    serial_number: str = "",
    donation_place: str = "",
) -> DonationRecord:
    with storage_errors("donation ledger append"):
        record = DonationRecord.objects.create(
            donor_id=donor_id,
            donation_date=date or timezone.now(),
            emergency_alert_id=alert_id,
            emergency_serial_number=serial_number,
            blood_type=parse_blood_type(blood_type).value,
            bags_donated=bags,
            donation_place=donation_place,
        )
    logger.info(
        "Recorded donation %s: donor %s gave %s bag(s) of %s for alert %s",
        record.pk,
        donor_id,
        bags,
        record.blood_type,
        alert_id,
    )
    return record


def update_donor_last_donation_date(donor_id: int, date: datetime) -> bool:
    """Move the donor's cooldown clock forward; never backwards.

    Returns True when the stored date changed. The guard lives in the UPDATE's
    WHERE clause so out-of-order completions cannot regress it.
    """

    with storage_errors("donor last donation update"):
        updated = (
            Donor.objects.filter(pk=donor_id)
            .filter(Q(last_donated_at__isnull=True) | Q(last_donated_at__lt=date))
            .update(last_donated_at=date)
        )
    if not updated:
        logger.info("Kept newer last donation date for donor %s (offered %s)", donor_id, date)
    return bool(updated)


def donation_history(donor_id: int) -> List[DonationRecord]:
    return list(DonationRecord.objects.filter(donor_id=donor_id).order_by("-donation_date", "-id"))


def donation_count(donor_id: int) -> int:
    return DonationRecord.objects.filter(donor_id=donor_id).count()
