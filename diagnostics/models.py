# diagnostics/models.py
from django.db import models

from core.models import ClinicDayStampedModel


class Patient(ClinicDayStampedModel):
    """Registered patient, stamped with the clinic day of registration"""
    patient_id = models.CharField(max_length=20, unique=True)
    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100)
    clinic_day = models.CharField(
        max_length=10,
        blank=True,
        db_index=True,
        help_text='Clinic day of registration (YYYY-MM-DD, clinic timezone)'
    )

    CLINIC_DAY_FIELD = 'clinic_day'

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.patient_id} - {self.first_name} {self.last_name}"

    def to_dict(self):
        return {
            'patient_id': self.patient_id,
            'name': f"{self.first_name} {self.last_name}",
            'clinic_day': self.clinic_day,
            'created_at': self.created_at.isoformat(),
        }


class Encounter(ClinicDayStampedModel):
    """A patient visit; visit_date is the clinic day the visit was opened"""
    STATUS_CHOICES = [
        ('open', 'Open'),
        ('closed', 'Closed'),
    ]

    encounter_id = models.CharField(max_length=20, unique=True)
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='encounters')
    visit_date = models.CharField(max_length=10, blank=True, db_index=True)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default='open')

    CLINIC_DAY_FIELD = 'visit_date'

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.encounter_id} ({self.visit_date})"

    def to_dict(self):
        return {
            'encounter_id': self.encounter_id,
            'patient_id': self.patient.patient_id,
            'visit_date': self.visit_date,
            'status': self.status,
            'created_at': self.created_at.isoformat(),
        }


class LabTest(ClinicDayStampedModel):
    """Laboratory order; requested_date is the clinic day it was ordered"""
    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('completed', 'Completed'),
        ('cancelled', 'Cancelled'),
    ]

    test_id = models.CharField(max_length=20, unique=True)
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='lab_tests')
    test_name = models.CharField(max_length=100)
    requested_date = models.CharField(max_length=10, blank=True, db_index=True)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default='pending')

    CLINIC_DAY_FIELD = 'requested_date'

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.test_id} - {self.test_name}"

    def to_dict(self):
        return {
            'test_id': self.test_id,
            'patient_id': self.patient.patient_id,
            'test_name': self.test_name,
            'requested_date': self.requested_date,
            'status': self.status,
            'created_at': self.created_at.isoformat(),
        }
