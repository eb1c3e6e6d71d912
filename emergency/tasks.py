import logging

from celery import shared_task

from donor.models import Donor
from emergency.models import EmergencyAlert, EmergencyResponse
from emergency.services import alerts as alert_service
from emergency.services import notifications


logger = logging.getLogger(__name__)


@shared_task
def expire_stale_alerts() -> int:
    return alert_service.expire_stale_alerts()


@shared_task(bind=True, autoretry_for=(Exception,), retry_backoff=True, retry_kwargs={'max_retries': 3})
def notify_alert_candidates(self, alert_id: int) -> int:
    alert = EmergencyAlert.objects.get(pk=alert_id)
    result = notifications.notify_alert_candidates(alert)
    return result.delivered


@shared_task(bind=True, autoretry_for=(Exception,), retry_backoff=True, retry_kwargs={'max_retries': 3})
def notify_response_selected(self, response_id: int) -> int:
    response = EmergencyResponse.objects.select_related('alert', 'responder').get(pk=response_id)
    result = notifications.notify_response_selected(response)
    return result.delivered


@shared_task(bind=True, autoretry_for=(Exception,), retry_backoff=True, retry_kwargs={'max_retries': 3})
def notify_donor_selected(self, alert_id: int, donor_id: int) -> int:
    alert = EmergencyAlert.objects.get(pk=alert_id)
    donor = Donor.objects.get(pk=donor_id)
    result = notifications.notify_donor_selected(alert, donor)
    return result.delivered
