from django.contrib import admin
from .models import Donor, DonationRecord

@admin.register(Donor)
class DonorAdmin(admin.ModelAdmin):
    list_display = ['get_name', 'bloodgroup', 'geohash', 'is_available', 'last_donated_at']
    list_filter = ['bloodgroup', 'is_available']
    search_fields = ['user__first_name', 'user__last_name', 'mobile', 'geohash']
    readonly_fields = ['geohash', 'last_notified_at']

@admin.register(DonationRecord)
class DonationRecordAdmin(admin.ModelAdmin):
    list_display = ['donor', 'blood_type', 'bags_donated', 'emergency_serial_number', 'donation_date']
    list_filter = ['blood_type', 'donation_date']
    search_fields = ['donor__user__first_name', 'donor__user__last_name', 'emergency_serial_number']

    def has_change_permission(self, request, obj=None):
        # Ledger rows are append-only.
        return obj is None
