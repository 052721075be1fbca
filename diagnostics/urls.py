# diagnostics/urls.py
from django.urls import path
from . import views

app_name = 'diagnostics'

urlpatterns = [
    path('api/patients/', views.PatientListView.as_view(), name='patient_list'),
    path('api/encounters/', views.EncounterListView.as_view(), name='encounter_list'),
    path('api/lab-tests/', views.LabTestListView.as_view(), name='lab_test_list'),
]
