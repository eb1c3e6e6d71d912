import json
import logging
from functools import wraps

from django.core.exceptions import ObjectDoesNotExist
from django.http import JsonResponse
from django.views.decorators.http import require_http_methods

from donor import models as dmodels
from . import forms
from .exceptions import EmergencyError, Forbidden
from .models import EmergencyAlert
from .services import alerts as alert_service
from .services import candidates as candidate_service
from .services import ledger
from .services import responses as response_service

logger = logging.getLogger(__name__)


def _error_response(exc: EmergencyError) -> JsonResponse:
    return JsonResponse(
        {'error': exc.code, 'message': exc.message, 'race': exc.is_race, 'retryable': exc.retryable},
        status=exc.status_code,
    )


def _form_error_response(form) -> JsonResponse:
    return JsonResponse(
        {'error': 'validation_error', 'message': 'Invalid request body', 'fields': form.errors.get_json_data()},
        status=400,
    )


def _json_body(request) -> dict:
    if not request.body:
        return {}
    payload = json.loads(request.body)
    if not isinstance(payload, dict):
        raise ValueError("Request body must be a JSON object")
    return payload


def _donor_for(request) -> dmodels.Donor:
    donor = dmodels.Donor.objects.filter(user=request.user).first()
    if donor is None:
        raise Forbidden("Only registered donors can do this")
    return donor


def emergency_api(view):
    """JSON API plumbing: authentication, body parsing and error mapping."""

    @wraps(view)
    def wrapped(request, *args, **kwargs):
        if not request.user.is_authenticated:
            return JsonResponse({'error': 'authentication_required', 'message': 'Log in first'}, status=401)
        try:
            return view(request, *args, **kwargs)
        except EmergencyError as exc:
            if exc.is_race:
                logger.info("%s %s lost a race: %s", request.method, request.path, exc.message)
            return _error_response(exc)
        except ObjectDoesNotExist as exc:
            return JsonResponse({'error': 'not_found', 'message': str(exc)}, status=404)
        except ValueError as exc:
            return JsonResponse({'error': 'bad_request', 'message': str(exc)}, status=400)

    return wrapped


@require_http_methods(['POST'])
@emergency_api
def create_alert_view(request):
    form = forms.AlertCreateForm(_json_body(request))
    if not form.is_valid():
        return _form_error_response(form)
    alert = alert_service.create_alert(request.user, form.cleaned_data['blood_type'], **form.service_kwargs())
    return JsonResponse({'alert': alert.to_dict()}, status=201)


@require_http_methods(['GET'])
@emergency_api
def alert_detail_view(request, alert_id):
    alert = EmergencyAlert.objects.get(pk=alert_id)
    payload = {'alert': alert.to_dict()}
    if alert.requester_id == request.user.pk:
        payload['response_stats'] = response_service.response_stats(alert.pk)
    return JsonResponse(payload)


@require_http_methods(['GET'])
@emergency_api
def alert_by_serial_view(request, serial_number):
    alert = alert_service.get_alert_by_serial(serial_number)
    return JsonResponse({'alert': alert.to_dict()})


@require_http_methods(['GET'])
@emergency_api
def alert_candidates_view(request, alert_id):
    alert = EmergencyAlert.objects.get(pk=alert_id)
    if alert.requester_id != request.user.pk:
        raise Forbidden()
    ranked = candidate_service.rank_by_distance(alert, candidate_service.find_candidates(alert))
    donors = [
        {
            'donor_id': entry.donor.pk,
            'name': entry.donor.get_name,
            'blood_type': entry.donor.bloodgroup,
            'mobile': entry.donor.mobile,
            'distance_km': round(entry.distance_km, 2) if entry.distance_km is not None else None,
        }
        for entry in ranked
    ]
    return JsonResponse({'alert_id': alert.pk, 'count': len(donors), 'candidates': donors})


@require_http_methods(['GET', 'POST'])
@emergency_api
def alert_responses_view(request, alert_id):
    if request.method == 'GET':
        responses = response_service.list_responses(alert_id, request.user.pk)
        return JsonResponse({'alert_id': alert_id, 'responses': [r.to_dict() for r in responses]})

    donor = _donor_for(request)
    form = forms.ResponseSubmitForm(_json_body(request))
    if not form.is_valid():
        return _form_error_response(form)
    response = response_service.submit_response(alert_id, donor, **form.service_kwargs())
    return JsonResponse({'response': response.to_dict()}, status=201)


@require_http_methods(['POST'])
@emergency_api
def select_response_view(request, response_id):
    result = response_service.select_responder(response_id, request.user.pk)
    return JsonResponse({
        'response': result.selected.to_dict(),
        'cancelled_count': result.cancelled_count,
        'alert': result.selected.alert.to_dict(),
    })


@require_http_methods(['POST'])
@emergency_api
def complete_response_view(request, response_id):
    response = response_service.complete_donation(response_id, request.user.pk)
    return JsonResponse({'response': response.to_dict(), 'alert': response.alert.to_dict()})


@require_http_methods(['POST'])
@emergency_api
def select_donor_direct_view(request, alert_id):
    form = forms.DirectSelectForm(_json_body(request))
    if not form.is_valid():
        return _form_error_response(form)
    record = response_service.select_donor_direct(alert_id, form.cleaned_data['donor_id'], request.user.pk)
    alert = EmergencyAlert.objects.get(pk=alert_id)
    return JsonResponse({'alert': alert.to_dict(), 'donation_record_id': record.pk})


@require_http_methods(['GET'])
@emergency_api
def nearby_alerts_view(request):
    donor = _donor_for(request)
    form = forms.NearbyAlertsForm(request.GET)
    if not form.is_valid():
        return _form_error_response(form)
    alerts = alert_service.alerts_donor_can_help(donor, radius_km=form.cleaned_data.get('radius_km'))
    return JsonResponse({'count': len(alerts), 'alerts': [a.to_dict() for a in alerts]})


@require_http_methods(['GET'])
@emergency_api
def donation_history_view(request):
    donor = _donor_for(request)
    records = ledger.donation_history(donor.pk)
    status = donor.availability_status()
    return JsonResponse({
        'count': len(records),
        'last_donated_at': donor.last_donated_at,
        'available': status.is_available,
        'next_eligible_date': status.next_eligible_date,
        'donations': [
            {
                'id': record.pk,
                'donation_date': record.donation_date,
                'blood_type': record.blood_type,
                'bags_donated': record.bags_donated,
                'emergency_serial_number': record.emergency_serial_number,
                'donation_place': record.donation_place,
            }
            for record in records
        ],
    })
