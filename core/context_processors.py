from core.utils import get_default_engine


def clinic_day(request):
    """Make the current clinic day available in all templates"""
    engine = get_default_engine()
    return {
        'CLINIC_TIMEZONE': engine.timezone_name,
        'CLINIC_TODAY': engine.day_key(),
    }
