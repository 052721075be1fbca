# diagnostics/views.py
import logging

from django.http import JsonResponse
from django.views import View

from core.forms import ClinicRangeForm
from core.utils import day_key_range_q
from .models import Encounter, LabTest, Patient

logger = logging.getLogger(__name__)


class ClinicDayListView(View):
    """
    JSON list filtered by clinic day.

    Accepts ?preset=today|yesterday|last7|last30|thismonth|all|custom with
    from/to day keys. Filtering runs on the model's stored day-key column,
    so a record always shows up under the clinic day it was stamped with.
    """
    model = None
    select_related = ()
    max_results = 500

    def get_queryset(self):
        return self.model.objects.select_related(*self.select_related)

    def get(self, request, *args, **kwargs):
        form = ClinicRangeForm(request.GET)
        label = self.model._meta.verbose_name_plural

        if not form.is_valid():
            logger.warning(f"[{label}] Rejected range parameters {request.GET.dict()}: {form.errors.as_text()}")
            return JsonResponse({
                'success': False,
                'error': 'Invalid date range',
                'details': [str(error) for error in form.non_field_errors()],
            }, status=400)

        for message in form.deprecation_warnings:
            logger.warning(f"[{label}] DEPRECATED: {message}")

        clinic_range = form.cleaned_data['range']
        queryset = self.get_queryset().filter(
            day_key_range_q(self.model.CLINIC_DAY_FIELD, clinic_range)
        )

        if clinic_range is not None:
            logger.debug(
                f"[{label}] Preset {clinic_range.preset}: "
                f"{clinic_range.start_day_key} to {clinic_range.last_day_key} (inclusive)"
            )

        count = queryset.count()
        results = [obj.to_dict() for obj in queryset[:self.max_results]]

        return JsonResponse({
            'success': True,
            'preset': clinic_range.preset if clinic_range else 'all',
            'from': clinic_range.start_day_key if clinic_range else None,
            'to': clinic_range.last_day_key if clinic_range else None,
            'params': form.query_params(),
            'count': count,
            'results': results,
        })


class PatientListView(ClinicDayListView):
    model = Patient


class EncounterListView(ClinicDayListView):
    model = Encounter
    select_related = ('patient',)


class LabTestListView(ClinicDayListView):
    model = LabTest
    select_related = ('patient',)
