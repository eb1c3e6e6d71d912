from django.contrib import admin
from .models import EmergencyAlert, EmergencyResponse


class EmergencyResponseInline(admin.TabularInline):
    model = EmergencyResponse
    extra = 0
    fields = ['responder', 'status', 'can_donate_immediately', 'distance_km', 'selected_at', 'completed_at']
    readonly_fields = fields
    can_delete = False


@admin.register(EmergencyAlert)
class EmergencyAlertAdmin(admin.ModelAdmin):
    list_display = ['serial_number', 'blood_type', 'required_bags', 'status', 'urgency_level',
                    'donors_notified', 'donors_responded', 'created_at', 'expires_at']
    list_filter = ['status', 'blood_type', 'urgency_level']
    search_fields = ['serial_number', 'requester__username', 'donation_place', 'location_geohash']
    # Status and counters only change through the lifecycle services.
    readonly_fields = ['serial_number', 'status', 'donors_notified', 'donors_responded',
                       'selected_donor', 'created_at', 'updated_at']
    inlines = [EmergencyResponseInline]


@admin.register(EmergencyResponse)
class EmergencyResponseAdmin(admin.ModelAdmin):
    list_display = ['alert', 'responder', 'status', 'can_donate_immediately', 'distance_km', 'created_at']
    list_filter = ['status', 'contact_preference']
    search_fields = ['alert__serial_number', 'responder__user__first_name', 'responder__user__last_name']
    readonly_fields = ['status', 'selected_at', 'completed_at']
