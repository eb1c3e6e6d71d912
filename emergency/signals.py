from __future__ import annotations

import logging

from django.dispatch import receiver

from . import events, tasks

LOGGER = logging.getLogger(__name__)


def _enqueue(task, *args) -> bool:
	"""Queue ``task``; a broker failure is logged, never raised to the committed caller."""

	try:
		task.delay(*args)
	except Exception:
		LOGGER.exception("Could not queue %s%r", task.name, args)
		return False
	return True


@receiver(events.alert_created)
def enqueue_candidate_notification(sender, alert, **kwargs):
	"""Fan the new alert out to nearby compatible donors."""

	LOGGER.debug("Queueing donor notification for alert %s", alert.serial_number)
	_enqueue(tasks.notify_alert_candidates, alert.pk)


@receiver(events.response_selected)
def enqueue_selection_notice(sender, alert, response, **kwargs):
	LOGGER.debug("Queueing selection notice for response %s on alert %s", response.pk, alert.serial_number)
	_enqueue(tasks.notify_response_selected, response.pk)


@receiver(events.donor_selected)
def enqueue_direct_selection_notice(sender, alert, donor, **kwargs):
	LOGGER.debug("Queueing direct selection notice for donor %s on alert %s", donor.pk, alert.serial_number)
	_enqueue(tasks.notify_donor_selected, alert.pk, donor.pk)


@receiver(events.alert_fulfilled)
def log_fulfilled(sender, alert, **kwargs):
	LOGGER.info("Alert %s fulfilled by donor %s", alert.serial_number, alert.selected_donor_id)


@receiver(events.alert_expired)
def log_expired(sender, alert, **kwargs):
	LOGGER.info("Alert %s expired without a donor", alert.serial_number)
