"""AWS SNS fan-out for emergency alerts and donor selections."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import List, Optional, Sequence, Tuple

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from django.conf import settings
from django.utils import timezone

from donor.models import Donor
from emergency.models import EmergencyAlert, EmergencyResponse
from emergency.services.alerts import record_notification
from emergency.services.candidates import find_candidates, rank_by_distance
from emergency.utils.phone import normalize_phone_number

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 1200


@dataclass
class AlertResult:
	"""Lightweight summary of an alert dispatch attempt."""

	enabled: bool
	attempted: int
	delivered: int
	recipients: List[str] = field(default_factory=list)
	skipped: List[str] = field(default_factory=list)
	reason: Optional[str] = None


def notify_alert_candidates(alert: EmergencyAlert, *, sns_client=None) -> AlertResult:
	"""Text every eligible nearby donor about a new emergency alert.

	The alert's ``donors_notified`` counter grows by the number of messages
	actually published, once per call.
	"""

	if not alert.is_active:
		logger.info("Alert %s is %s; skipping donor notification", alert.serial_number, alert.status)
		return AlertResult(True, 0, 0, reason="alert-not-active")

	if not settings.AWS_SNS_ENABLED:
		logger.info("AWS SNS alerts disabled; skipping emergency alert %s", alert.serial_number)
		return AlertResult(False, 0, 0, reason="sns-disabled")

	recipients = _select_recipients(alert)
	if not recipients:
		logger.warning("No donors eligible for emergency alert %s (%s)", alert.serial_number, alert.blood_type)
		return AlertResult(True, 0, 0, reason="no-donors")

	if sns_client is None:
		sns_client = _get_sns_client()

	message = _build_alert_message(alert)
	attributes = _message_attributes()

	sent_to: List[str] = []
	skipped: List[str] = []
	now = timezone.now()

	for donor, phone in recipients:
		try:
			sns_client.publish(PhoneNumber=phone, Message=message, MessageAttributes=attributes)
		except (BotoCoreError, ClientError) as exc:
			skipped.append(phone)
			logger.error(
				"Failed to publish emergency alert %s to donor %s (phone: %s): %s",
				alert.serial_number,
				donor.id,
				phone,
				exc,
			)
			continue

		sent_to.append(phone)
		Donor.objects.filter(pk=donor.pk).update(last_notified_at=now)

	record_notification(alert.pk, len(sent_to))
	logger.info(
		"Emergency alert %s: notified %s of %s donor(s), %s failed",
		alert.serial_number,
		len(sent_to),
		len(recipients),
		len(skipped),
	)
	return AlertResult(True, len(recipients), len(sent_to), sent_to, skipped)


def notify_response_selected(response: EmergencyResponse, *, sns_client=None) -> AlertResult:
	"""Tell the chosen donor they were selected for the alert."""

	return _notify_selected(response.alert, response.responder, f"response {response.pk}", sns_client)


def notify_donor_selected(alert: EmergencyAlert, donor: Donor, *, sns_client=None) -> AlertResult:
	"""Tell a donor the requester picked them directly, without a response."""

	return _notify_selected(alert, donor, f"direct selection on alert {alert.serial_number}", sns_client)


def _notify_selected(alert: EmergencyAlert, donor: Donor, label: str, sns_client) -> AlertResult:
	if not settings.AWS_SNS_ENABLED:
		logger.info("AWS SNS alerts disabled; skipping selection notice for %s", label)
		return AlertResult(False, 0, 0, reason="sns-disabled")

	phone = normalize_phone_number(donor.mobile)
	if not phone:
		logger.warning("Selected donor %s has no usable phone number", donor.pk)
		return AlertResult(True, 0, 0, reason="no-phone")

	if sns_client is None:
		sns_client = _get_sns_client()

	try:
		sns_client.publish(
			PhoneNumber=phone,
			Message=_build_selection_message(alert),
			MessageAttributes=_message_attributes(),
		)
	except (BotoCoreError, ClientError) as exc:
		logger.error("Failed to notify selected donor %s for %s: %s", donor.pk, label, exc)
		return AlertResult(True, 1, 0, [], [phone], reason="publish-failed")

	return AlertResult(True, 1, 1, [phone], [])


def _get_sns_client():
	return boto3.client('sns', region_name=settings.AWS_SNS_REGION)


def _select_recipients(alert: EmergencyAlert) -> Sequence[Tuple[Donor, str]]:
	candidates = find_candidates(alert)

	gap_seconds = max(settings.AWS_SNS_MIN_NOTIFICATION_GAP_SECONDS, 0)
	if gap_seconds:
		cutoff = timezone.now() - timedelta(seconds=gap_seconds)
		fresh = [d for d in candidates if d.last_notified_at is None or d.last_notified_at < cutoff]
		if len(fresh) < len(candidates):
			logger.info("Skipped %s donors due to %ss notification gap", len(candidates) - len(fresh), gap_seconds)
		candidates = fresh

	max_recipients = max(settings.AWS_SNS_MAX_RECIPIENTS, 1)
	recipients: List[Tuple[Donor, str]] = []
	seen_numbers = set()

	skipped_invalid = 0
	for ranked in rank_by_distance(alert, candidates):
		formatted = normalize_phone_number(ranked.donor.mobile)
		if not formatted:
			skipped_invalid += 1
			continue
		if formatted in seen_numbers:
			continue
		recipients.append((ranked.donor, formatted))
		seen_numbers.add(formatted)
		if len(recipients) >= max_recipients:
			break

	if skipped_invalid:
		logger.warning("Skipped %s donors due to invalid phone numbers", skipped_invalid)

	return recipients


def _build_alert_message(alert: EmergencyAlert) -> str:
	place = alert.donation_place or alert.location_address or "a nearby hospital"
	base = (
		f"URGENT {alert.blood_type} blood needed ({alert.required_bags} bag(s)) at {place}. "
		f"Emergency {alert.serial_number}."
	)
	details = " Respond in the donor portal if you can donate."
	if alert.contact_info:
		details = f" Contact {alert.contact_info}." + details
	return f"{base}{details}"[:MAX_MESSAGE_LENGTH]


def _build_selection_message(alert: EmergencyAlert) -> str:
	place = alert.donation_place or alert.location_address or "the hospital"
	message = (
		f"You were selected to donate {alert.blood_type} blood for emergency {alert.serial_number} "
		f"at {place}. Thank you!"
	)
	if alert.contact_info:
		message += f" Contact {alert.contact_info}."
	return message[:MAX_MESSAGE_LENGTH]


def _message_attributes():
	attributes = {
		'AWS.SNS.SMS.SMSType': {'DataType': 'String', 'StringValue': settings.AWS_SNS_SMS_TYPE},
	}
	if settings.AWS_SNS_SENDER_ID:
		attributes['AWS.SNS.SMS.SenderID'] = {
			'DataType': 'String',
			'StringValue': settings.AWS_SNS_SENDER_ID[:11],
		}
	return attributes
