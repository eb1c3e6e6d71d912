"""Emergency alert lifecycle.

Legal transitions::

    active -> in_progress -> fulfilled
    active -> fulfilled            (direct select)
    active -> expired              (sweep)

Every transition is a compare-and-swap on ``status`` so an illegal source state
changes nothing, whichever backend is in use. ``alert_lock`` adds a row lock for
multi-row transactions on backends that support it.
"""

from __future__ import annotations

import logging
import secrets
import string
from contextlib import contextmanager
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterator, List, Optional

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from emergency import events
from emergency.exceptions import InvalidAlertTransition, InvalidCoordinate, StorageUnavailable
from emergency.models import AlertStatus, EmergencyAlert, UrgencyLevel
from emergency.services import geohash
from emergency.services.compatibility import parse_blood_type, recipients_this_donor_helps
from emergency.services.storage import run_atomic, storage_errors

logger = logging.getLogger(__name__)

_BASE36 = string.digits + string.ascii_uppercase
_DECIMAL_PLACES = Decimal("0.000001")


def _cell_precision() -> int:
    return int(getattr(settings, "EMERGENCY_CELL_PRECISION", 5))


def _quantize(value) -> Decimal:
    return Decimal(str(value)).quantize(_DECIMAL_PLACES, rounding=ROUND_HALF_UP)


def _to_base36(value: int) -> str:
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits)) or "0"


def generate_serial_number(now: Optional[datetime] = None) -> str:
    """Human-readable id such as ``EMMF3K2Q1ZAB12CD``."""

    moment = now or timezone.now()
    stamp = _to_base36(int(moment.timestamp() * 1000))
    suffix = "".join(secrets.choice(_BASE36) for _ in range(6))
    return f"EM{stamp}{suffix}"


def create_alert(
    requester,
    blood_type,
    *,
    location_cell: Optional[str] = None,
    latitude=None,
    longitude=None,
    required_bags: int = 1,
    ttl: Optional[timedelta] = None,
    radius_km: Optional[float] = None,
    urgency_level: str = UrgencyLevel.HIGH,
    **details,
) -> EmergencyAlert:
    """Open a new ``active`` alert with zeroed counters."""

    need = parse_blood_type(blood_type)
    precision = _cell_precision()
    if latitude is not None and longitude is not None:
        cell = geohash.encode(latitude, longitude, precision)
        latitude, longitude = _quantize(latitude), _quantize(longitude)
    elif location_cell:
        cell = geohash.validate_cell(location_cell)
    else:
        raise InvalidCoordinate("An alert needs a location cell or coordinates")

    if not isinstance(required_bags, int) or isinstance(required_bags, bool) or required_bags < 1:
        raise ValueError(f"required_bags must be a positive integer, got {required_bags!r}")

    radius = float(radius_km if radius_km is not None else getattr(settings, "EMERGENCY_DEFAULT_RADIUS_KM", 10.0))
    if radius <= 0:
        raise InvalidCoordinate(f"radius_km must be positive, got {radius_km!r}")

    if ttl is None:
        ttl = timedelta(hours=int(getattr(settings, "EMERGENCY_ALERT_TTL_HOURS", 24)))
    now = timezone.now()

    for _ in range(5):
        try:
            with storage_errors("alert creation"), transaction.atomic():
                alert = EmergencyAlert.objects.create(
                    serial_number=generate_serial_number(now),
                    requester=requester,
                    blood_type=need.value,
                    location_geohash=cell,
                    latitude=latitude,
                    longitude=longitude,
                    radius_km=radius,
                    urgency_level=urgency_level,
                    required_bags=required_bags,
                    status=AlertStatus.ACTIVE,
                    donors_notified=0,
                    donors_responded=0,
                    expires_at=now + ttl,
                    **details,
                )
            break
        except IntegrityError:
            # Serial collision; draw a new suffix.
            continue
    else:
        raise StorageUnavailable("Could not allocate a unique alert serial number")

    logger.info(
        "Emergency alert %s created by user %s: %s x%s near %s (%.1f km)",
        alert.serial_number,
        requester.pk,
        alert.blood_type,
        alert.required_bags,
        alert.location_geohash,
        alert.radius_km,
    )
    alert_pk = alert.pk
    transaction.on_commit(lambda: _emit(events.alert_created, alert_pk))
    return alert


def _emit(signal, alert_id: int) -> None:
    alert = EmergencyAlert.objects.filter(pk=alert_id).first()
    if alert is not None:
        signal.send(sender=EmergencyAlert, alert=alert)


@contextmanager
def alert_lock(alert_id: int) -> Iterator[EmergencyAlert]:
    """Transaction scope holding the alert row lock; yields the fresh row."""

    with transaction.atomic():
        yield EmergencyAlert.objects.select_for_update().get(pk=alert_id)


def _transition(alert_id: int, allowed_from, target: str, **fields) -> None:
    with storage_errors(f"alert transition to {target}"):
        updated = EmergencyAlert.objects.filter(pk=alert_id, status__in=allowed_from).update(
            status=target,
            updated_at=timezone.now(),
            **fields,
        )
        if updated:
            logger.info("Alert %s moved to %s", alert_id, target)
            return
        current = EmergencyAlert.objects.filter(pk=alert_id).values_list("status", flat=True).first()
    if current is None:
        raise EmergencyAlert.DoesNotExist(f"Emergency alert {alert_id} does not exist")
    raise InvalidAlertTransition(f"Alert {alert_id} cannot move from {current} to {target}")


def record_notification(alert_id: int, count: int) -> None:
    """Add one notify batch to ``donors_notified``.

    At-least-once: a retried batch is counted twice. The counter is a
    best-effort statistic, not an invariant.
    """

    if count <= 0:
        return
    with storage_errors("notification count"):
        EmergencyAlert.objects.filter(pk=alert_id).update(
            donors_notified=F("donors_notified") + count,
            updated_at=timezone.now(),
        )


def record_response(alert_id: int) -> None:
    with storage_errors("response count"):
        EmergencyAlert.objects.filter(pk=alert_id).update(
            donors_responded=F("donors_responded") + 1,
            updated_at=timezone.now(),
        )


def mark_in_progress(alert_id: int, selected_donor_id: int) -> None:
    _transition(alert_id, [AlertStatus.ACTIVE], AlertStatus.IN_PROGRESS, selected_donor_id=selected_donor_id)


def mark_fulfilled(alert_id: int, selected_donor_id: int) -> None:
    _transition(
        alert_id,
        [AlertStatus.ACTIVE, AlertStatus.IN_PROGRESS],
        AlertStatus.FULFILLED,
        selected_donor_id=selected_donor_id,
    )
    transaction.on_commit(lambda: _emit(events.alert_fulfilled, alert_id))


def mark_expired(alert_id: int) -> None:
    _transition(alert_id, [AlertStatus.ACTIVE], AlertStatus.EXPIRED)
    transaction.on_commit(lambda: _emit(events.alert_expired, alert_id))


def expire_if_past_due(alert: EmergencyAlert, now: Optional[datetime] = None) -> bool:
    """Expire an active alert found past ``expires_at``; True if it is now expired."""

    if not alert.is_active or not alert.is_past_expiry(now):
        return alert.status == AlertStatus.EXPIRED
    try:
        run_atomic(mark_expired, alert.pk)
    except InvalidAlertTransition:
        logger.info("Alert %s changed state before it could be expired", alert.pk)
        return False
    alert.status = AlertStatus.EXPIRED
    return True


def expire_stale_alerts(now: Optional[datetime] = None) -> int:
    """Sweep: expire every active alert whose ``expires_at`` has passed.

    Failures are logged and left for the next tick.
    """

    now = now or timezone.now()
    stale_ids = list(
        EmergencyAlert.objects.filter(status=AlertStatus.ACTIVE, expires_at__lt=now)
        .order_by("expires_at", "id")
        .values_list("id", flat=True)
    )
    expired = 0
    for alert_id in stale_ids:
        try:
            run_atomic(mark_expired, alert_id)
        except InvalidAlertTransition:
            logger.info("Alert %s left active state before the sweep reached it", alert_id)
            continue
        except StorageUnavailable:
            logger.warning("Could not expire alert %s; will retry on the next sweep", alert_id)
            continue
        expired += 1
    if stale_ids:
        logger.info("Expiry sweep: %s of %s stale alerts expired", expired, len(stale_ids))
    return expired


def get_alert_by_serial(serial_number: str) -> EmergencyAlert:
    return EmergencyAlert.objects.get(serial_number=serial_number.strip().upper())


def alerts_donor_can_help(donor, *, radius_km: Optional[float] = None, now: Optional[datetime] = None) -> List[EmergencyAlert]:
    """Active alerts near ``donor`` whose patients can receive the donor's blood."""

    if not donor.geohash:
        return []
    now = now or timezone.now()
    radius = float(radius_km if radius_km is not None else getattr(settings, "EMERGENCY_DEFAULT_RADIUS_KM", 10.0))
    cells = geohash.cells_within_radius(donor.geohash, radius, _cell_precision())
    types = [t.value for t in recipients_this_donor_helps(donor.bloodgroup)]
    return list(
        EmergencyAlert.objects.filter(
            status=AlertStatus.ACTIVE,
            expires_at__gt=now,
            location_geohash__in=cells,
            blood_type__in=types,
        )
        .exclude(requester_id=donor.user_id)
        .order_by("-created_at", "-id")
    )
