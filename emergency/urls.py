from django.urls import path
from . import views

urlpatterns = [
    # Alerts
    path('alerts/', views.create_alert_view, name='emergency-alert-create'),
    path('alerts/nearby/', views.nearby_alerts_view, name='emergency-alerts-nearby'),
    path('alerts/serial/<str:serial_number>/', views.alert_by_serial_view, name='emergency-alert-by-serial'),
    path('alerts/<int:alert_id>/', views.alert_detail_view, name='emergency-alert-detail'),
    path('alerts/<int:alert_id>/candidates/', views.alert_candidates_view, name='emergency-alert-candidates'),
    path('alerts/<int:alert_id>/responses/', views.alert_responses_view, name='emergency-alert-responses'),
    path('alerts/<int:alert_id>/select-donor/', views.select_donor_direct_view, name='emergency-alert-select-donor'),

    # Responses
    path('responses/<int:response_id>/select/', views.select_response_view, name='emergency-response-select'),
    path('responses/<int:response_id>/complete/', views.complete_response_view, name='emergency-response-complete'),

    # Donor
    path('donations/', views.donation_history_view, name='emergency-donations'),
]
