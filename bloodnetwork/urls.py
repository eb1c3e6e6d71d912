"""bloodnetwork URL Configuration

The emergency coordination API lives under ``/api/emergency/``; the Django
admin is kept for operators inspecting alerts, responses and the donation
ledger.
"""
from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/emergency/', include('emergency.urls')),
]
