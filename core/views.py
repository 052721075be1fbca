# core/views.py
import logging

from django.http import JsonResponse
from django.views.decorators.http import require_http_methods

from core.clinic_range import (
    ClinicRangeError,
    PRESET_LAST30,
    PRESET_LAST7,
    PRESET_TODAY,
    PRESET_YESTERDAY,
)
from core.utils import get_default_engine

logger = logging.getLogger(__name__)


@require_http_methods(["GET"])
def debug_clinic_time(request):
    """
    API ENDPOINT: Diagnostic view of the computed clinic day keys.
    Used to check timezone handling on a deployed server.
    """
    engine = get_default_engine()
    try:
        info = engine.clinic_time_info()
        info['presets'] = {}
        for preset in (PRESET_TODAY, PRESET_YESTERDAY, PRESET_LAST7, PRESET_LAST30):
            resolved = engine.resolve_range(preset)
            info['presets'][preset] = {
                'start_key': resolved.start_day_key,
                'end_key': resolved.last_day_key,
                'range': resolved.as_dict(),
                'params': engine.serialize_range_params(resolved),
            }
    except ClinicRangeError as e:
        logger.error(f"[debug-clinic-time] {e}")
        return JsonResponse({
            'success': False,
            'error': 'Failed to get clinic time info',
            'details': str(e),
        }, status=500)

    return JsonResponse(info)
