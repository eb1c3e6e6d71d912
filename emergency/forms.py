from datetime import timedelta

from django import forms
from django.conf import settings

from .exceptions import InvalidBloodType, InvalidCoordinate
from .models import ContactPreference, UrgencyLevel
from .services import geohash
from .services.compatibility import parse_blood_type


def _radius_field():
    return forms.FloatField(
        required=False,
        min_value=settings.EMERGENCY_MIN_RADIUS_KM,
        max_value=settings.EMERGENCY_MAX_RADIUS_KM,
    )


class AlertCreateForm(forms.Form):
    blood_type = forms.CharField(max_length=3)
    latitude = forms.DecimalField(required=False, min_value=-90, max_value=90)
    longitude = forms.DecimalField(required=False, min_value=-180, max_value=180)
    location_geohash = forms.CharField(required=False, max_length=12)
    location_address = forms.CharField(required=False, max_length=255)
    radius_km = _radius_field()
    urgency_level = forms.ChoiceField(choices=UrgencyLevel.choices, required=False)
    required_bags = forms.IntegerField(required=False, min_value=1, max_value=20)
    ttl_hours = forms.IntegerField(required=False, min_value=1, max_value=168)
    patient_condition = forms.CharField(required=False, max_length=120)
    hemoglobin_level = forms.CharField(required=False, max_length=20)
    donation_place = forms.CharField(required=False, max_length=255)
    contact_info = forms.CharField(required=False, max_length=120)
    reference = forms.CharField(required=False, max_length=120)

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        # Bounds follow settings at request time, not import time.
        self.fields['radius_km'] = _radius_field()

    def clean_blood_type(self):
        try:
            return parse_blood_type(self.cleaned_data['blood_type']).value
        except InvalidBloodType as exc:
            raise forms.ValidationError(exc.message)

    def clean_location_geohash(self):
        cell = self.cleaned_data.get('location_geohash') or ''
        if not cell:
            return ''
        try:
            return geohash.validate_cell(cell)
        except InvalidCoordinate as exc:
            raise forms.ValidationError(exc.message)

    def clean(self):
        cleaned = super().clean()
        lat = cleaned.get('latitude')
        lng = cleaned.get('longitude')
        if (lat is None) != (lng is None):
            raise forms.ValidationError("Latitude and longitude must be provided together.")
        if lat is None and not cleaned.get('location_geohash') and not self.errors:
            raise forms.ValidationError("Provide coordinates or a location geohash.")
        return cleaned

    def service_kwargs(self) -> dict:
        """Arguments for ``alerts.create_alert`` (requester and blood type aside)."""

        data = self.cleaned_data
        kwargs = {
            'latitude': data.get('latitude'),
            'longitude': data.get('longitude'),
            'location_cell': data.get('location_geohash') or None,
            'required_bags': data.get('required_bags') or 1,
            'radius_km': data.get('radius_km'),
            'urgency_level': data.get('urgency_level') or UrgencyLevel.HIGH,
        }
        if data.get('ttl_hours'):
            kwargs['ttl'] = timedelta(hours=data['ttl_hours'])
        for name in ('location_address', 'patient_condition', 'hemoglobin_level', 'donation_place', 'contact_info', 'reference'):
            kwargs[name] = data.get(name) or ''
        return kwargs


class ResponseSubmitForm(forms.Form):
    can_donate_immediately = forms.BooleanField(required=False)
    response_message = forms.CharField(required=False, max_length=1000)
    available_times = forms.JSONField(required=False)
    contact_preference = forms.ChoiceField(choices=ContactPreference.choices, required=False)

    def clean_available_times(self):
        value = self.cleaned_data.get('available_times')
        if value in (None, ''):
            return []
        if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
            raise forms.ValidationError("available_times must be a list of strings.")
        return value

    def service_kwargs(self) -> dict:
        data = self.cleaned_data
        return {
            'can_donate_immediately': bool(data.get('can_donate_immediately')),
            'response_message': data.get('response_message') or '',
            'available_times': data.get('available_times') or [],
            'contact_preference': data.get('contact_preference') or ContactPreference.BOTH,
        }


class DirectSelectForm(forms.Form):
    donor_id = forms.IntegerField(min_value=1)


class NearbyAlertsForm(forms.Form):
    radius_km = _radius_field()

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.fields['radius_km'] = _radius_field()
