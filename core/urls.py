#core/urls.py
from django.urls import path
from . import views
from .health_check import health_check

app_name = 'core'

urlpatterns = [
    path('health/', health_check, name='health_check'),

    # Clinic time diagnostics
    path('api/debug/clinic-time/', views.debug_clinic_time, name='debug_clinic_time'),
]
