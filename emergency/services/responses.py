"""Donor responses to an emergency alert and the paths that close an alert.

``select_responder`` is the one exclusivity transaction: under the alert lock
it selects a response, cancels its pending siblings and moves the alert to
``in_progress`` together. The partial unique index on responses backs it up
on backends without row locks.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List

from django.db import IntegrityError, transaction
from django.db.models import Count
from django.utils import timezone

from donor.models import DonationRecord, Donor
from emergency import events
from emergency.exceptions import (
    AlertNotActive,
    DuplicateResponse,
    Forbidden,
    IncompatibleDonor,
    InvalidAlertTransition,
    ResponseNotPending,
    ResponseNotSelected,
)
from emergency.models import EmergencyAlert, EmergencyResponse, ResponseStatus
from emergency.services import geohash, ledger
from emergency.services.alerts import (
    alert_lock,
    expire_if_past_due,
    mark_fulfilled,
    mark_in_progress,
    record_response,
)
from emergency.services.compatibility import is_compatible
from emergency.services.storage import run_atomic, storage_errors

logger = logging.getLogger(__name__)

RESPONSE_DETAIL_FIELDS = ("can_donate_immediately", "response_message", "available_times", "contact_preference")


@dataclass
class SelectionResult:
    selected: EmergencyResponse
    cancelled_count: int


def _distance_to(alert: EmergencyAlert, donor: Donor):
    if alert.latitude is None or alert.longitude is None or not donor.has_coordinates:
        return None
    return round(geohash.distance_km(alert.latitude, alert.longitude, donor.latitude, donor.longitude), 2)


def _cancel_pending(alert_id: int, *, keep_id=None) -> int:
    pending = EmergencyResponse.objects.filter(alert_id=alert_id, status=ResponseStatus.PENDING)
    if keep_id is not None:
        pending = pending.exclude(pk=keep_id)
    return pending.update(status=ResponseStatus.CANCELLED, updated_at=timezone.now())


def submit_response(alert_id: int, responder: Donor, **details) -> EmergencyResponse:
    """Record that ``responder`` is willing to donate for the alert.

    Checks run in a fixed order: duplicate, alert state, blood compatibility.
    An alert found past its expiry here is expired before the rejection.
    """

    unknown = set(details) - set(RESPONSE_DETAIL_FIELDS)
    if unknown:
        raise TypeError(f"Unexpected response details: {', '.join(sorted(unknown))}")

    alert = EmergencyAlert.objects.get(pk=alert_id)
    if EmergencyResponse.objects.filter(alert_id=alert.pk, responder_id=responder.pk).exists():
        raise DuplicateResponse()
    if alert.is_active and alert.is_past_expiry():
        expire_if_past_due(alert)
    if not alert.is_active:
        raise AlertNotActive()
    if not is_compatible(responder.bloodgroup, alert.blood_type):
        raise IncompatibleDonor(
            f"{responder.bloodgroup} donors cannot give to a {alert.blood_type} patient"
        )
    if responder.user_id == alert.requester_id:
        raise Forbidden("Requesters cannot respond to their own emergency alert")

    distance = _distance_to(alert, responder)

    def _insert() -> EmergencyResponse:
        with alert_lock(alert.pk) as locked:
            if not locked.is_active:
                raise AlertNotActive()
            try:
                with transaction.atomic():
                    response = EmergencyResponse.objects.create(
                        alert_id=locked.pk,
                        responder=responder,
                        status=ResponseStatus.PENDING,
                        distance_km=distance,
                        **details,
                    )
            except IntegrityError as exc:
                raise DuplicateResponse() from exc
            record_response(locked.pk)
        return response

    response = run_atomic(_insert)
    logger.info(
        "Donor %s responded to alert %s (distance %s km)",
        responder.pk,
        alert.serial_number,
        distance if distance is not None else "unknown",
    )
    return response


def _select_responder(response_id: int, by_user_id: int) -> SelectionResult:
    alert_id = EmergencyResponse.objects.values_list("alert_id", flat=True).get(pk=response_id)
    with alert_lock(alert_id) as alert:
        if alert.requester_id != by_user_id:
            raise Forbidden()
        response = EmergencyResponse.objects.select_related("responder").get(pk=response_id)
        if response.status != ResponseStatus.PENDING:
            raise ResponseNotPending()
        if not alert.is_active:
            raise AlertNotActive()

        now = timezone.now()
        try:
            with transaction.atomic():
                claimed = EmergencyResponse.objects.filter(pk=response_id, status=ResponseStatus.PENDING).update(
                    status=ResponseStatus.SELECTED,
                    selected_at=now,
                    updated_at=now,
                )
        except IntegrityError as exc:
            # Another response for this alert is already selected.
            raise AlertNotActive() from exc
        if not claimed:
            raise ResponseNotPending()

        cancelled = _cancel_pending(alert.pk, keep_id=response_id)
        try:
            mark_in_progress(alert.pk, response.responder_id)
        except InvalidAlertTransition as exc:
            raise AlertNotActive() from exc

    response.refresh_from_db()
    return SelectionResult(selected=response, cancelled_count=cancelled)


def select_responder(response_id: int, by_user_id: int) -> SelectionResult:
    """Pick one pending response; every other pending response is cancelled."""

    result = run_atomic(_select_responder, response_id, by_user_id)
    selected = result.selected
    logger.info(
        "Alert %s: response %s selected, %s sibling response(s) cancelled",
        selected.alert_id,
        selected.pk,
        result.cancelled_count,
    )
    transaction.on_commit(lambda: _emit_response_selected(selected.pk))
    return result


def _emit_response_selected(response_id: int) -> None:
    response = EmergencyResponse.objects.select_related("alert", "responder__user").filter(pk=response_id).first()
    if response is not None:
        events.response_selected.send(sender=EmergencyResponse, alert=response.alert, response=response)


def _emit_donor_selected(alert_id: int, donor_id: int) -> None:
    alert = EmergencyAlert.objects.filter(pk=alert_id).first()
    donor = Donor.objects.select_related("user").filter(pk=donor_id).first()
    if alert is not None and donor is not None:
        events.donor_selected.send(sender=EmergencyAlert, alert=alert, donor=donor)


def _record_donation(alert: EmergencyAlert, donor: Donor, when) -> DonationRecord:
    record = ledger.append(
        donor.pk,
        when,
        donor.bloodgroup,
        alert.required_bags,
        alert.pk,
        serial_number=alert.serial_number,
        donation_place=alert.donation_place,
    )
    ledger.update_donor_last_donation_date(donor.pk, when)
    return record


def _complete_donation(response_id: int, by_user_id: int) -> EmergencyResponse:
    alert_id = EmergencyResponse.objects.values_list("alert_id", flat=True).get(pk=response_id)
    with alert_lock(alert_id) as alert:
        response = EmergencyResponse.objects.select_related("responder").get(pk=response_id)
        if by_user_id not in (alert.requester_id, response.responder.user_id):
            raise Forbidden()

        now = timezone.now()
        completed = EmergencyResponse.objects.filter(pk=response_id, status=ResponseStatus.SELECTED).update(
            status=ResponseStatus.COMPLETED,
            completed_at=now,
            updated_at=now,
        )
        if not completed:
            raise ResponseNotSelected()
        mark_fulfilled(alert.pk, response.responder_id)
        _record_donation(alert, response.responder, now)

    response.refresh_from_db()
    return response


def complete_donation(response_id: int, by_user_id: int) -> EmergencyResponse:
    """Close the alert through its selected response and record the donation.

    Response, alert and ledger change in one transaction: a failed ledger
    write leaves the response ``selected`` and the alert ``in_progress``.
    """

    response = run_atomic(_complete_donation, response_id, by_user_id)
    logger.info("Alert %s fulfilled by response %s", response.alert_id, response.pk)
    return response


def _select_donor_direct(alert_id: int, donor_id: int, by_user_id: int) -> DonationRecord:
    with alert_lock(alert_id) as alert:
        if alert.requester_id != by_user_id:
            raise Forbidden()
        if not alert.is_active:
            raise AlertNotActive()
        donor = Donor.objects.get(pk=donor_id)
        if donor.user_id == alert.requester_id:
            raise Forbidden("Requesters cannot select themselves as the donor")
        if not is_compatible(donor.bloodgroup, alert.blood_type):
            raise IncompatibleDonor(f"{donor.bloodgroup} donors cannot give to a {alert.blood_type} patient")

        cancelled = _cancel_pending(alert.pk)
        try:
            mark_fulfilled(alert.pk, donor.pk)
        except InvalidAlertTransition as exc:
            raise AlertNotActive() from exc
        record = _record_donation(alert, donor, timezone.now())

    if cancelled:
        logger.info("Direct select on alert %s cancelled %s pending response(s)", alert_id, cancelled)
    return record


def select_donor_direct(alert_id: int, donor_id: int, by_user_id: int) -> DonationRecord:
    """Fulfil an active alert with a donor chosen outside the response flow."""

    record = run_atomic(_select_donor_direct, alert_id, donor_id, by_user_id)
    logger.info("Alert %s fulfilled directly by donor %s", alert_id, donor_id)
    transaction.on_commit(lambda: _emit_donor_selected(alert_id, donor_id))
    return record


def list_responses(alert_id: int, by_user_id: int) -> List[EmergencyResponse]:
    alert = EmergencyAlert.objects.get(pk=alert_id)
    if alert.requester_id != by_user_id:
        raise Forbidden()
    with storage_errors("response listing"):
        return list(
            EmergencyResponse.objects.filter(alert_id=alert.pk)
            .select_related("responder__user")
            .order_by("created_at", "id")
        )


def response_stats(alert_id: int) -> Dict[str, int]:
    counts = {status: 0 for status in ResponseStatus.values}
    rows = (
        EmergencyResponse.objects.filter(alert_id=alert_id)
        .values("status")
        .annotate(total=Count("id"))
        .order_by()
    )
    for row in rows:
        counts[row["status"]] = row["total"]
    counts["total"] = sum(counts[status] for status in ResponseStatus.values)
    return counts
