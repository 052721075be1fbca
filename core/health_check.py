from django.http import JsonResponse
from django.views.decorators.http import require_http_methods
import logging

from core.clinic_range import ClinicRangeError
from core.utils import get_default_engine

logger = logging.getLogger(__name__)

@require_http_methods(["GET", "HEAD"])
def health_check(request):
    """
    Lightweight health check endpoint for uptime monitoring.
    Returns 200 OK with the current clinic day if the app is running.
    """
    engine = get_default_engine()
    try:
        return JsonResponse(
            {
                'status': 'ok',
                'message': 'Clinic app is running',
                'clinic_day': engine.day_key(),
                'timezone': engine.timezone_name,
            },
            status=200
        )
    except ClinicRangeError as e:
        logger.error(f"Health check failed: {str(e)}")
        return JsonResponse(
            {
                'status': 'error',
                'message': 'Health check failed'
            },
            status=500
        )
