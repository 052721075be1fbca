# core/models.py
from django.db import models
from django.utils import timezone

from core.utils import get_clinic_day_key


class ClinicDayStampedModel(models.Model):
    """
    Base for records that belong to one clinic day.

    Subclasses name their day-key column in CLINIC_DAY_FIELD. On first save
    an empty day key is stamped from created_at, converted to the clinic
    timezone. The backfill_clinic_days command corrects older rows the same way.
    """
    CLINIC_DAY_FIELD = 'clinic_day'

    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        abstract = True

    @property
    def clinic_day_value(self):
        return getattr(self, self.CLINIC_DAY_FIELD)

    def expected_clinic_day(self):
        """Day key this record should carry according to created_at"""
        return get_clinic_day_key(self.created_at)

    def save(self, *args, **kwargs):
        if not self.clinic_day_value:
            setattr(self, self.CLINIC_DAY_FIELD, self.expected_clinic_day())
        return super().save(*args, **kwargs)
