# core/clinic_range.py
"""
Clinic day and date range computation.

Every "which day is it" question in the app goes through here so that the
browser-facing forms, the JSON endpoints and the backfill command agree on
what a clinic day is.

Key concepts:
- Clinic day key: 'YYYY-MM-DD' string for a calendar day as observed in the
  clinic timezone (Africa/Juba by default), never the server's local day
- Ranges are half-open [start_utc, end_utc): start included, end excluded
- Day arithmetic is done on local calendar dates, then converted back to UTC
"""
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from urllib.parse import urlencode

import pytz
from django.utils import timezone as dj_timezone
from django.utils.dateparse import parse_datetime

DEFAULT_CLINIC_TIMEZONE = 'Africa/Juba'

DAY_KEY_RE = re.compile(r'([0-9]{4})-([0-9]{2})-([0-9]{2})')

PRESET_TODAY = 'today'
PRESET_YESTERDAY = 'yesterday'
PRESET_LAST7 = 'last7'
PRESET_LAST30 = 'last30'
PRESET_THIS_MONTH = 'thismonth'
PRESET_ALL = 'all'
PRESET_CUSTOM = 'custom'

PRESET_CHOICES = [
    (PRESET_TODAY, 'Today'),
    (PRESET_YESTERDAY, 'Yesterday'),
    (PRESET_LAST7, 'Last 7 days'),
    (PRESET_LAST30, 'Last 30 days'),
    (PRESET_THIS_MONTH, 'This month'),
    (PRESET_ALL, 'All time'),
    (PRESET_CUSTOM, 'Custom range'),
]

PRESET_ALIASES = {
    'last7days': PRESET_LAST7,
    'last_7_days': PRESET_LAST7,
    'last30days': PRESET_LAST30,
    'last_30_days': PRESET_LAST30,
    'this_month': PRESET_THIS_MONTH,
}

SINGLE_DAY_PRESETS = (PRESET_TODAY, PRESET_YESTERDAY)
MULTI_DAY_PRESETS = (PRESET_LAST7, PRESET_LAST30, PRESET_THIS_MONTH)


class ClinicRangeError(ValueError):
    """Base class for clinic day / range errors"""


class InvalidInput(ClinicRangeError):
    """An instant could not be parsed"""

    def __init__(self, value):
        self.value = value
        super().__init__(f'Cannot parse {value!r} as a timestamp')


class InvalidDayKey(ClinicRangeError):
    """A day key is malformed or not a real calendar date"""

    def __init__(self, value, reason='expected a real date as YYYY-MM-DD'):
        self.value = value
        super().__init__(f'Invalid clinic day key {value!r}, {reason}')


class MissingRangeBound(ClinicRangeError):
    """A custom range was requested without both bounds"""

    def __init__(self, missing):
        self.missing = missing
        super().__init__(f"Custom range requires both 'from' and 'to' (missing: {', '.join(missing)})")


class UnknownPreset(ClinicRangeError):
    """A preset name matches none of the recognised values"""

    def __init__(self, value):
        self.value = value
        valid = ', '.join(name for name, _ in PRESET_CHOICES)
        super().__init__(f'Unknown range preset {value!r}. Valid presets are: {valid}')


def parse_day_key(key):
    """
    Parse a clinic day key into a date.

    Raises:
        InvalidDayKey: if the string is not YYYY-MM-DD or not a real date
            (e.g. '2025-02-30' is rejected, never rolled over into March)
    """
    if not isinstance(key, str):
        raise InvalidDayKey(key)
    match = DAY_KEY_RE.fullmatch(key)
    if not match:
        raise InvalidDayKey(key)
    year, month, day = (int(part) for part in match.groups())
    try:
        return date(year, month, day)
    except ValueError:
        raise InvalidDayKey(key)


def format_day_key(day):
    # isoformat() zero-pads years below 1000, strftime('%Y') does not everywhere
    return day.isoformat()


def shift_day_key(key, days):
    """Move a day key by whole calendar days"""
    try:
        return format_day_key(parse_day_key(key) + timedelta(days=days))
    except OverflowError:
        raise InvalidDayKey(key, f'shifting by {days} days leaves the supported calendar')


def _next_day(day):
    try:
        return day + timedelta(days=1)
    except OverflowError:
        raise InvalidDayKey(format_day_key(day), 'the range would end after the last supported day')


def normalize_preset(preset):
    """
    Canonical preset name for a (case-insensitive) preset or alias.

    Raises:
        UnknownPreset: if the name is not recognised
    """
    if preset is None:
        raise UnknownPreset(preset)
    name = str(preset).strip().lower()
    name = PRESET_ALIASES.get(name, name)
    if name not in dict(PRESET_CHOICES):
        raise UnknownPreset(preset)
    return name


def _get_tzinfo(tz):
    if isinstance(tz, str):
        try:
            return pytz.timezone(tz)
        except pytz.UnknownTimeZoneError:
            raise ClinicRangeError(f'Unknown clinic timezone {tz!r}')
    return tz


def _utc_now():
    return dj_timezone.now()


def _first_param(params, name):
    # QueryDict.get() already returns the last value; lists come from plain dicts
    value = params.get(name)
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    if isinstance(value, str):
        value = value.strip()
    return value or None


@dataclass(frozen=True)
class ResolvedRange:
    """
    Concrete half-open interval of whole clinic days.

    end_day_key is exclusive: it is the day after the last included day.
    """
    preset: str
    start_utc: datetime
    end_utc: datetime
    start_day_key: str
    end_day_key: str

    @property
    def day_count(self):
        return (parse_day_key(self.end_day_key) - parse_day_key(self.start_day_key)).days

    @property
    def last_day_key(self):
        """Last included day (inclusive end)"""
        return shift_day_key(self.end_day_key, -1)

    def day_keys(self):
        start = parse_day_key(self.start_day_key)
        return [format_day_key(start + timedelta(days=i)) for i in range(self.day_count)]

    def as_dict(self):
        return {
            'preset': self.preset,
            'start_utc': self.start_utc.isoformat().replace('+00:00', 'Z'),
            'end_utc': self.end_utc.isoformat().replace('+00:00', 'Z'),
            'start_day_key': self.start_day_key,
            'end_day_key': self.end_day_key,
            'last_day_key': self.last_day_key,
            'day_count': self.day_count,
        }


class ClinicRangeEngine:
    """
    Resolves clinic days and date ranges for one fixed clinic timezone.

    Args:
        timezone: IANA name (e.g. 'Africa/Juba') or a tzinfo instance
        clock: callable returning the current aware UTC datetime
            (defaults to django.utils.timezone.now)
    """

    def __init__(self, timezone=DEFAULT_CLINIC_TIMEZONE, clock=None):
        self.tz = _get_tzinfo(timezone)
        self.clock = clock or _utc_now

    @property
    def timezone_name(self):
        return getattr(self.tz, 'zone', None) or str(self.tz)

    # --- Timezone conversion primitives ---

    def _to_utc(self, instant):
        """
        Coerce a datetime, ISO-8601 string or POSIX timestamp to aware UTC.

        Strings need a time part: a bare 'YYYY-MM-DD' is a day key, not an
        instant, and is rejected rather than guessed as UTC midnight.
        """
        if isinstance(instant, datetime):
            value = instant
        elif isinstance(instant, str):
            text = instant.strip()
            if DAY_KEY_RE.fullmatch(text):
                raise InvalidInput(instant)
            try:
                value = parse_datetime(text)
            except ValueError:
                value = None
            if value is None:
                raise InvalidInput(instant)
        elif isinstance(instant, (int, float)) and not isinstance(instant, bool):
            try:
                value = datetime.fromtimestamp(instant, tz=pytz.utc)
            except (OverflowError, OSError, ValueError):
                raise InvalidInput(instant)
        else:
            raise InvalidInput(instant)

        # Naive values are taken as UTC, matching how the database stores them
        if dj_timezone.is_naive(value):
            value = value.replace(tzinfo=pytz.utc)
        try:
            return value.astimezone(pytz.utc)
        except OverflowError:
            raise InvalidInput(instant)

    def _local_midnight_utc(self, day):
        naive = datetime.combine(day, time.min)
        try:
            if hasattr(self.tz, 'localize'):
                local = self.tz.localize(naive)
            else:
                local = naive.replace(tzinfo=self.tz)
            return local.astimezone(pytz.utc)
        except OverflowError:
            raise InvalidDayKey(
                format_day_key(day),
                'its clinic midnight falls outside the supported UTC range'
            )

    def now(self):
        """Current instant as an aware datetime in the clinic timezone"""
        return self.clock().astimezone(self.tz)

    def local_date(self, instant=None):
        if instant is None:
            return self.now().date()
        value = self._to_utc(instant)
        try:
            return value.astimezone(self.tz).date()
        except OverflowError:
            # 9999-12-31 late evening UTC is already year 10000 in the clinic
            raise InvalidInput(instant)

    # --- Day key codec ---

    def day_key(self, instant=None):
        """
        Clinic day key (YYYY-MM-DD) for an instant, or for now if omitted.

        Raises:
            InvalidInput: if the instant cannot be parsed. There is no
                fallback to "now"; bad timestamps are the caller's bug.
        """
        return format_day_key(self.local_date(instant))

    def day_key_offset(self, days):
        """Today's clinic day key shifted by whole days (-1 = yesterday)"""
        return format_day_key(self.local_date() + timedelta(days=days))

    def day_key_to_range(self, key):
        """The [start_utc, end_utc) interval covering exactly one clinic day"""
        day = parse_day_key(key)
        return self._build_range(PRESET_CUSTOM, day, _next_day(day))

    def _bound_to_date(self, bound, name):
        if bound is None or bound == '':
            raise MissingRangeBound([name])
        if isinstance(bound, datetime):
            return self.local_date(bound)
        if isinstance(bound, date):
            return bound
        return parse_day_key(bound)

    # --- Preset resolution ---

    def _build_range(self, preset, first_day, end_day):
        return ResolvedRange(
            preset=preset,
            start_utc=self._local_midnight_utc(first_day),
            end_utc=self._local_midnight_utc(end_day),
            start_day_key=format_day_key(first_day),
            end_day_key=format_day_key(end_day),
        )

    def resolve_range(self, preset, from_=None, to=None):
        """
        Resolve a preset (or a custom from/to pair) into a ResolvedRange.

        Args:
            preset: today, yesterday, last7, last30, thismonth, all or custom
                (case-insensitive, aliases accepted)
            from_, to: custom bounds; date, datetime or day key string.
                Both days are included.

        Returns:
            ResolvedRange, or None for 'all' (no date filter)

        Raises:
            UnknownPreset, MissingRangeBound, InvalidDayKey, InvalidInput
        """
        preset = normalize_preset(preset)
        if preset == PRESET_ALL:
            return None

        if preset == PRESET_CUSTOM:
            missing = [name for name, value in (('from', from_), ('to', to)) if value in (None, '')]
            if missing:
                raise MissingRangeBound(missing)
            first_day = self._bound_to_date(from_, 'from')
            last_day = self._bound_to_date(to, 'to')
            if first_day > last_day:
                first_day, last_day = last_day, first_day
            return self._build_range(preset, first_day, _next_day(last_day))

        # Read the clock once so one resolution never straddles midnight
        today = self.now().date()
        tomorrow = today + timedelta(days=1)

        if preset == PRESET_TODAY:
            return self._build_range(preset, today, tomorrow)
        if preset == PRESET_YESTERDAY:
            return self._build_range(preset, today - timedelta(days=1), today)
        if preset == PRESET_LAST7:
            return self._build_range(preset, today - timedelta(days=6), tomorrow)
        if preset == PRESET_LAST30:
            return self._build_range(preset, today - timedelta(days=29), tomorrow)
        return self._build_range(preset, today.replace(day=1), tomorrow)

    def in_range(self, instant, clinic_range):
        """True if instant lies in [start_utc, end_utc); always True for None"""
        if clinic_range is None:
            return True
        value = self._to_utc(instant)
        return clinic_range.start_utc <= value < clinic_range.end_utc

    # --- Wire format ---

    def serialize_range_params(self, clinic_range):
        """
        Flat query parameters for a resolved range.

        The preset name is always included so cache keys for different
        presets never collide. Everything except today/yesterday also carries
        explicit inclusive from/to day keys, so a receiver filters on the
        same concrete days even after midnight rolls over.
        """
        if clinic_range is None:
            return {'preset': PRESET_ALL}

        params = {'preset': clinic_range.preset}
        if clinic_range.preset not in SINGLE_DAY_PRESETS:
            params['from'] = clinic_range.start_day_key
            params['to'] = clinic_range.last_day_key
        return params

    def build_query_string(self, clinic_range):
        return urlencode(self.serialize_range_params(clinic_range))

    def parse_range_params(self, params, warn=None):
        """
        Receiving side of serialize_range_params.

        Args:
            params: dict or QueryDict with preset/from/to and, when no preset
                is given, the deprecated today/date/startDate/endDate keys
            warn: optional callable taking a message, used for deprecations

        Returns:
            ResolvedRange, or None for preset=all
        """
        preset = _first_param(params, 'preset')
        from_ = _first_param(params, 'from')
        to = _first_param(params, 'to')
        legacy = {
            name: _first_param(params, name)
            for name in ('today', 'date', 'startDate', 'endDate')
        }

        if preset is not None:
            if warn and any(legacy.values()):
                warn('Legacy date parameters are ignored when preset is provided')
            preset = normalize_preset(preset)
            if preset in MULTI_DAY_PRESETS and from_ and to:
                # Explicit bounds pin the days the sender meant
                resolved = self.resolve_range(PRESET_CUSTOM, from_, to)
                return self._build_range(
                    preset,
                    parse_day_key(resolved.start_day_key),
                    parse_day_key(resolved.end_day_key),
                )
            return self.resolve_range(preset, from_, to)

        if from_ or to:
            return self.resolve_range(PRESET_CUSTOM, from_, to)

        if legacy['today'] and legacy['today'].lower() in ('1', 'true'):
            if warn:
                warn('Query param "today=1" is deprecated. Use "preset=today" instead.')
            return self.resolve_range(PRESET_TODAY)

        if legacy['date']:
            if warn:
                warn(
                    f'Query param "date={legacy["date"]}" is deprecated. '
                    f'Use "preset=custom&from={legacy["date"]}&to={legacy["date"]}" instead.'
                )
            return self.resolve_range(PRESET_CUSTOM, legacy['date'], legacy['date'])

        if legacy['startDate'] or legacy['endDate']:
            if warn:
                warn('Query params "startDate/endDate" are deprecated. Use "from/to" instead.')
            return self.resolve_range(PRESET_CUSTOM, legacy['startDate'], legacy['endDate'])

        return self.resolve_range(PRESET_TODAY)

    # --- Diagnostics ---

    def clinic_time_info(self):
        """Snapshot of the current clinic time, used to debug timezone issues"""
        utc_now = self.clock().astimezone(pytz.utc)
        local_now = utc_now.astimezone(self.tz)
        today = local_now.date()
        today_key = format_day_key(today)
        return {
            'server_utc_time': utc_now.isoformat().replace('+00:00', 'Z'),
            'clinic_time': local_now.strftime('%Y-%m-%d %H:%M:%S'),
            'timezone': self.timezone_name,
            'utc_offset': local_now.strftime('%z'),
            'today_key': today_key,
            'yesterday_key': format_day_key(today - timedelta(days=1)),
            'last7_days_range': {'start': format_day_key(today - timedelta(days=6)), 'end': today_key},
            'last30_days_range': {'start': format_day_key(today - timedelta(days=29)), 'end': today_key},
        }
