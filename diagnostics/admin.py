from django.contrib import admin
from .models import Encounter, LabTest, Patient


@admin.register(Patient)
class PatientAdmin(admin.ModelAdmin):
    list_display = ['patient_id', 'first_name', 'last_name', 'clinic_day', 'created_at']
    list_filter = ['clinic_day']
    search_fields = ['patient_id', 'first_name', 'last_name']
    readonly_fields = ['created_at']
    date_hierarchy = 'created_at'


@admin.register(Encounter)
class EncounterAdmin(admin.ModelAdmin):
    list_display = ['encounter_id', 'patient', 'visit_date', 'status', 'created_at']
    list_filter = ['status', 'visit_date']
    search_fields = ['encounter_id', 'patient__patient_id', 'patient__last_name']
    readonly_fields = ['created_at']
    date_hierarchy = 'created_at'


@admin.register(LabTest)
class LabTestAdmin(admin.ModelAdmin):
    list_display = ['test_id', 'test_name', 'patient', 'requested_date', 'status', 'is_day_key_stale']
    list_filter = ['status', 'requested_date']
    search_fields = ['test_id', 'test_name', 'patient__patient_id']
    readonly_fields = ['created_at']
    date_hierarchy = 'created_at'

    def is_day_key_stale(self, obj):
        return obj.requested_date != obj.expected_clinic_day()
    is_day_key_stale.boolean = True
