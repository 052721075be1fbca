"""
Clinic-day helpers for consistent date handling across the application.
"""
from functools import lru_cache

from django.conf import settings
from django.db.models import Q

from core.clinic_range import ClinicRangeEngine, DEFAULT_CLINIC_TIMEZONE


@lru_cache(maxsize=None)
def get_default_engine():
    """
    Engine for the configured clinic timezone.

    settings.CLINIC_TIMEZONE is read once and kept for the process lifetime.
    Tests that need another offset should build their own ClinicRangeEngine.
    """
    return ClinicRangeEngine(getattr(settings, 'CLINIC_TIMEZONE', DEFAULT_CLINIC_TIMEZONE))


def get_clinic_now():
    """
    Get current datetime in the clinic timezone.

    Returns:
        datetime: Current aware datetime localized to the clinic timezone
    """
    return get_default_engine().now()


def get_clinic_today():
    """
    Get today's date in the clinic timezone.

    Returns:
        date: Today's date as observed in the clinic
    """
    return get_default_engine().local_date()


def get_clinic_date(dt):
    """
    Convert a datetime to the clinic timezone and extract the date.

    Args:
        dt (datetime): A timezone-aware or naive (UTC) datetime

    Returns:
        date: The date in the clinic timezone
    """
    if dt is None:
        return None
    return get_default_engine().local_date(dt)


def get_clinic_day_key(dt=None):
    return get_default_engine().day_key(dt)


def timestamp_range_q(field, clinic_range):
    """
    Filter for a DateTimeField: field >= start_utc AND field < end_utc.

    An empty Q() (no filtering) is returned for the 'all' range (None).
    """
    if clinic_range is None:
        return Q()
    return Q(**{
        f'{field}__gte': clinic_range.start_utc,
        f'{field}__lt': clinic_range.end_utc,
    })


def day_key_range_q(field, clinic_range):
    """
    Filter for a text day-key column.

    YYYY-MM-DD strings sort in calendar order, so the half-open range maps
    directly onto string comparisons.
    """
    if clinic_range is None:
        return Q()
    return Q(**{
        f'{field}__gte': clinic_range.start_day_key,
        f'{field}__lt': clinic_range.end_day_key,
    })


# Usage examples:
#
# In views:
#   today = get_clinic_today()
#   rng = get_default_engine().parse_range_params(request.GET)
#   LabTest.objects.filter(day_key_range_q('requested_date', rng))
#
# In models:
#   self.visit_date = get_clinic_day_key(self.created_at)
