# core/tests.py
"""
Unit tests for clinic day keys and range resolution
"""
from datetime import date, datetime, timedelta
from unittest import mock

import pytz
from django.http import QueryDict
from django.test import SimpleTestCase, RequestFactory
from django.urls import reverse

from core.clinic_range import (
    ClinicRangeEngine,
    ClinicRangeError,
    InvalidDayKey,
    InvalidInput,
    MissingRangeBound,
    ResolvedRange,
    UnknownPreset,
    normalize_preset,
    parse_day_key,
    shift_day_key,
)
from core.context_processors import clinic_day
from core.forms import ClinicRangeForm
from core.utils import (
    day_key_range_q,
    get_clinic_date,
    get_default_engine,
    timestamp_range_q,
)

UTC = pytz.utc

# 2025-11-09 10:00 in Juba
NOW = datetime(2025, 11, 9, 8, 0, tzinfo=UTC)


def fixed_clock(moment):
    return lambda: moment


def juba_engine(moment=NOW):
    return ClinicRangeEngine('Africa/Juba', clock=fixed_clock(moment))


class DayKeyTest(SimpleTestCase):
    """Test the instant -> clinic day key codec"""

    def setUp(self):
        self.engine = juba_engine()

    def test_now_is_clinic_local(self):
        """Test now() reads as clinic wall-clock time"""
        now = self.engine.now()
        self.assertEqual((now.year, now.month, now.day, now.hour), (2025, 11, 9, 10))
        self.assertEqual(now.utcoffset(), timedelta(hours=2))

    def test_day_key_defaults_to_now(self):
        """Test day_key() without arguments uses the clock"""
        self.assertEqual(self.engine.day_key(), '2025-11-09')
        self.assertEqual(self.engine.day_key(NOW), '2025-11-09')

    def test_day_key_uses_clinic_day_not_utc_day(self):
        """Test late-evening UTC instants fall on the next clinic day"""
        self.assertEqual(self.engine.day_key(datetime(2025, 11, 7, 23, 0, tzinfo=UTC)), '2025-11-08')
        self.assertEqual(self.engine.day_key(datetime(2025, 11, 7, 21, 59, 59, tzinfo=UTC)), '2025-11-07')
        self.assertEqual(self.engine.day_key(datetime(2025, 11, 7, 22, 0, tzinfo=UTC)), '2025-11-08')

    def test_day_key_accepts_iso_strings(self):
        """Test ISO-8601 strings with Z and explicit offsets"""
        self.assertEqual(self.engine.day_key('2025-11-09T21:59:59.999Z'), '2025-11-09')
        self.assertEqual(self.engine.day_key('2025-11-09T22:00:00.000Z'), '2025-11-10')
        self.assertEqual(self.engine.day_key('2025-11-10T00:30:00+02:00'), '2025-11-10')

    def test_naive_datetime_is_utc(self):
        """Test naive datetimes are read as UTC"""
        self.assertEqual(self.engine.day_key(datetime(2025, 11, 9, 22, 30)), '2025-11-10')

    def test_day_key_accepts_posix_timestamp(self):
        """Test numeric timestamps are POSIX seconds"""
        self.assertEqual(self.engine.day_key(NOW.timestamp()), '2025-11-09')

    def test_unparseable_instant_raises(self):
        """Test bad input is rejected instead of falling back to now"""
        for value in ['not a date', '2025-13-45T10:00:00Z', '', object(), True]:
            with self.subTest(value=value):
                with self.assertRaises(InvalidInput):
                    self.engine.day_key(value)

    def test_date_only_string_is_not_an_instant(self):
        """Test a bare day key is rejected rather than read as UTC midnight"""
        for value in ['2025-11-09', ' 2025-11-09 ']:
            with self.subTest(value=value):
                with self.assertRaises(InvalidInput):
                    self.engine.day_key(value)

    def test_last_supported_instants(self):
        """Test instants past the end of year 9999 in clinic time raise InvalidInput"""
        self.assertEqual(self.engine.day_key('9999-12-31T21:00:00Z'), '9999-12-31')
        with self.assertRaises(InvalidInput):
            self.engine.day_key('9999-12-31T23:30:00Z')
        with self.assertRaises(InvalidInput):
            self.engine.day_key(datetime(9999, 12, 31, 23, 30, tzinfo=UTC))

    def test_invalid_input_is_a_value_error(self):
        """Test the error taxonomy derives from ValueError"""
        with self.assertRaises(ValueError):
            self.engine.day_key('garbage')

    def test_day_key_offset(self):
        """Test shifting today's key by whole days"""
        self.assertEqual(self.engine.day_key_offset(0), '2025-11-09')
        self.assertEqual(self.engine.day_key_offset(-1), '2025-11-08')
        self.assertEqual(self.engine.day_key_offset(-29), '2025-10-11')
        self.assertEqual(self.engine.day_key_offset(1), '2025-11-10')


class DayKeyParsingTest(SimpleTestCase):
    """Test day key validation and arithmetic"""

    def test_parse_valid_keys(self):
        """Test real calendar dates parse"""
        self.assertEqual(parse_day_key('2025-11-09'), date(2025, 11, 9))
        self.assertEqual(parse_day_key('2024-02-29'), date(2024, 2, 29))

    def test_invalid_calendar_dates_are_rejected(self):
        """Test impossible dates never roll over into the next month"""
        for key in ['2025-02-30', '2025-02-29', '2025-13-01', '2025-00-10', '2025-04-31']:
            with self.subTest(key=key):
                with self.assertRaises(InvalidDayKey):
                    parse_day_key(key)

    def test_malformed_keys_are_rejected(self):
        """Test anything not shaped like YYYY-MM-DD"""
        for key in ['2025-1-09', '25-11-09', '2025/11/09', '2025-11-09T00:00', 'today', '', None, 20251109]:
            with self.subTest(key=key):
                with self.assertRaises(InvalidDayKey):
                    parse_day_key(key)

    def test_only_exact_ascii_keys_are_accepted(self):
        """Test non-ASCII digits, padding and trailing newlines are rejected"""
        for key in ['２０２５-１１-０９', '٢٠٢٥-١١-٠٩', ' 2025-11-09 ', '2025-11-09\n', '\t2025-11-09']:
            with self.subTest(key=key):
                with self.assertRaises(InvalidDayKey):
                    parse_day_key(key)

    def test_shift_day_key_crosses_months_and_years(self):
        """Test calendar arithmetic on keys"""
        self.assertEqual(shift_day_key('2025-03-01', -1), '2025-02-28')
        self.assertEqual(shift_day_key('2024-12-31', 1), '2025-01-01')

    def test_day_key_to_range(self):
        """Test a single key maps to exactly one clinic day"""
        engine = juba_engine()
        rng = engine.day_key_to_range('2025-11-09')
        self.assertEqual(rng.start_utc, datetime(2025, 11, 8, 22, 0, tzinfo=UTC))
        self.assertEqual(rng.end_utc, datetime(2025, 11, 9, 22, 0, tzinfo=UTC))
        self.assertEqual(rng.start_day_key, '2025-11-09')
        self.assertEqual(rng.end_day_key, '2025-11-10')
        self.assertEqual(rng.day_count, 1)

    def test_day_key_to_range_rejects_bad_key(self):
        """Test day_key_to_range validates its input"""
        with self.assertRaises(InvalidDayKey):
            juba_engine().day_key_to_range('2025-02-30')

    def test_calendar_extremes_raise_invalid_day_key(self):
        """Test the first and last supported days fail with InvalidDayKey, not OverflowError"""
        engine = juba_engine()
        for key in ['9999-12-31', '0001-01-01']:
            with self.subTest(key=key):
                with self.assertRaises(InvalidDayKey) as cm:
                    engine.day_key_to_range(key)
                self.assertEqual(cm.exception.value, key)
        with self.assertRaises(InvalidDayKey):
            engine.resolve_range('custom', '9999-12-30', '9999-12-31')
        with self.assertRaises(InvalidDayKey):
            shift_day_key('9999-12-31', 1)

    def test_near_extremes_still_resolve(self):
        """Test days just inside the supported calendar still map to a range"""
        engine = juba_engine()
        rng = engine.day_key_to_range('9999-12-30')
        self.assertEqual(rng.end_day_key, '9999-12-31')
        rng = engine.day_key_to_range('0001-01-02')
        self.assertEqual(rng.start_day_key, '0001-01-02')
        self.assertLess(rng.start_utc, rng.end_utc)


class PresetNormalizationTest(SimpleTestCase):
    """Test preset names and aliases"""

    def test_case_and_whitespace_insensitive(self):
        self.assertEqual(normalize_preset(' TODAY '), 'today')
        self.assertEqual(normalize_preset('All'), 'all')
        self.assertEqual(normalize_preset('Custom'), 'custom')

    def test_aliases(self):
        self.assertEqual(normalize_preset('Last7Days'), 'last7')
        self.assertEqual(normalize_preset('last_30_days'), 'last30')
        self.assertEqual(normalize_preset('this_month'), 'thismonth')

    def test_unknown_preset_raises(self):
        for preset in ['fortnight', '', None, 'last90']:
            with self.subTest(preset=preset):
                with self.assertRaises(UnknownPreset):
                    normalize_preset(preset)


class ResolveRangeTest(SimpleTestCase):
    """Test preset resolution at 2025-11-09T08:00Z (10:00 in Juba)"""

    def setUp(self):
        self.engine = juba_engine()

    def test_today(self):
        """Test today spans local midnight to local midnight"""
        rng = self.engine.resolve_range('today')
        self.assertEqual(rng.preset, 'today')
        self.assertEqual(rng.start_utc, datetime(2025, 11, 8, 22, 0, tzinfo=UTC))
        self.assertEqual(rng.end_utc, datetime(2025, 11, 9, 22, 0, tzinfo=UTC))
        self.assertEqual(rng.start_day_key, '2025-11-09')
        self.assertEqual(rng.end_day_key, '2025-11-10')
        self.assertEqual(rng.start_day_key, self.engine.day_key(self.engine.now()))

    def test_yesterday(self):
        """Test yesterday is the previous single clinic day"""
        rng = self.engine.resolve_range('yesterday')
        self.assertEqual(rng.start_day_key, '2025-11-08')
        self.assertEqual(rng.end_day_key, '2025-11-09')
        self.assertEqual(rng.start_utc, datetime(2025, 11, 7, 22, 0, tzinfo=UTC))
        self.assertEqual(rng.end_utc, datetime(2025, 11, 8, 22, 0, tzinfo=UTC))

    def test_last7(self):
        """Test last7 is today plus the 6 previous days"""
        rng = self.engine.resolve_range('last7')
        self.assertEqual(rng.start_day_key, '2025-11-03')
        self.assertEqual(rng.end_day_key, '2025-11-10')
        self.assertEqual(rng.last_day_key, '2025-11-09')
        self.assertEqual(rng.day_count, 7)
        self.assertEqual(rng.day_keys(), [
            '2025-11-03', '2025-11-04', '2025-11-05', '2025-11-06',
            '2025-11-07', '2025-11-08', '2025-11-09',
        ])
        self.assertEqual(rng.end_utc - rng.start_utc, timedelta(days=7))

    def test_last30(self):
        """Test last30 spans 30 consecutive days ending today"""
        rng = self.engine.resolve_range('last30')
        self.assertEqual(rng.start_day_key, '2025-10-11')
        self.assertEqual(rng.end_day_key, '2025-11-10')
        keys = rng.day_keys()
        self.assertEqual(len(keys), 30)
        self.assertEqual(len(set(keys)), 30)
        self.assertEqual(keys[-1], '2025-11-09')

    def test_this_month(self):
        """Test thismonth starts on the first of the clinic month"""
        rng = self.engine.resolve_range('thismonth')
        self.assertEqual(rng.start_day_key, '2025-11-01')
        self.assertEqual(rng.end_day_key, '2025-11-10')
        self.assertEqual(rng.day_count, 9)

    def test_all_returns_none(self):
        """Test 'all' means no date filter"""
        self.assertIsNone(self.engine.resolve_range('all'))
        self.assertIsNone(self.engine.resolve_range('ALL'))

    def test_custom(self):
        """Test custom ranges include both endpoints"""
        rng = self.engine.resolve_range('custom', '2025-11-01', '2025-11-05')
        self.assertEqual(rng.start_utc, datetime(2025, 10, 31, 22, 0, tzinfo=UTC))
        self.assertEqual(rng.end_utc, datetime(2025, 11, 5, 22, 0, tzinfo=UTC))
        self.assertEqual(rng.start_day_key, '2025-11-01')
        self.assertEqual(rng.end_day_key, '2025-11-06')
        self.assertEqual(rng.day_count, 5)

    def test_custom_single_day(self):
        """Test from == to gives one day"""
        rng = self.engine.resolve_range('custom', '2025-11-05', '2025-11-05')
        self.assertEqual(rng.day_count, 1)
        self.assertEqual(rng.start_utc, self.engine.day_key_to_range('2025-11-05').start_utc)

    def test_custom_accepts_dates_and_datetimes(self):
        """Test date bounds are taken as-is and datetimes by their clinic day"""
        rng = self.engine.resolve_range(
            'custom',
            date(2025, 11, 1),
            datetime(2025, 11, 4, 23, 0, tzinfo=UTC),
        )
        self.assertEqual(rng.start_day_key, '2025-11-01')
        self.assertEqual(rng.last_day_key, '2025-11-05')

    def test_custom_swaps_reversed_bounds(self):
        """Test from after to is normalized rather than producing an empty range"""
        rng = self.engine.resolve_range('custom', '2025-11-05', '2025-11-01')
        self.assertEqual(rng.start_day_key, '2025-11-01')
        self.assertEqual(rng.end_day_key, '2025-11-06')
        self.assertLess(rng.start_utc, rng.end_utc)

    def test_custom_missing_bound_raises(self):
        """Test custom without both bounds fails loudly"""
        with self.assertRaises(MissingRangeBound) as ctx:
            self.engine.resolve_range('custom', '2025-11-01')
        self.assertEqual(ctx.exception.missing, ['to'])

        with self.assertRaises(MissingRangeBound) as ctx:
            self.engine.resolve_range('custom')
        self.assertEqual(ctx.exception.missing, ['from', 'to'])

        with self.assertRaises(MissingRangeBound):
            self.engine.resolve_range('custom', '', '2025-11-01')

    def test_custom_invalid_bound_raises(self):
        """Test custom bounds must be real dates"""
        with self.assertRaises(InvalidDayKey):
            self.engine.resolve_range('custom', '2025-02-30', '2025-03-02')

    def test_unknown_preset_raises(self):
        """Test there is no silent fallback to today"""
        with self.assertRaises(UnknownPreset):
            self.engine.resolve_range('fortnight')

    def test_resolution_is_idempotent(self):
        """Test the same spec at the same moment yields identical ranges"""
        for preset in ['today', 'yesterday', 'last7', 'last30', 'thismonth']:
            with self.subTest(preset=preset):
                self.assertEqual(self.engine.resolve_range(preset), self.engine.resolve_range(preset))

    def test_clock_read_once_per_resolution(self):
        """Test one resolution never mixes two readings of the clock"""
        moments = iter([
            datetime(2025, 11, 9, 21, 59, 59, 999999, tzinfo=UTC),
            datetime(2025, 11, 9, 22, 0, 0, tzinfo=UTC),
        ])
        engine = ClinicRangeEngine('Africa/Juba', clock=lambda: next(moments))
        rng = engine.resolve_range('last7')
        self.assertEqual(rng.day_count, 7)
        self.assertEqual(rng.last_day_key, '2025-11-09')

    def test_midnight_rollover(self):
        """Test today changes at clinic midnight, not UTC midnight"""
        before = juba_engine(datetime(2025, 11, 9, 21, 59, 59, tzinfo=UTC)).resolve_range('today')
        after = juba_engine(datetime(2025, 11, 9, 22, 0, 0, tzinfo=UTC)).resolve_range('today')
        self.assertEqual(before.start_day_key, '2025-11-09')
        self.assertEqual(after.start_day_key, '2025-11-10')
        self.assertEqual(before.end_utc, after.start_utc)

    def test_invariants_hold_for_every_preset(self):
        """Test start < end and whole-day spans"""
        for preset in ['today', 'yesterday', 'last7', 'last30', 'thismonth']:
            with self.subTest(preset=preset):
                rng = self.engine.resolve_range(preset)
                self.assertLess(rng.start_utc, rng.end_utc)
                self.assertEqual(shift_day_key(rng.start_day_key, rng.day_count), rng.end_day_key)
                self.assertEqual(self.engine.day_key(rng.start_utc), rng.start_day_key)
                self.assertEqual(self.engine.day_key(rng.end_utc), rng.end_day_key)


class InRangeTest(SimpleTestCase):
    """Test half-open range membership"""

    def setUp(self):
        self.engine = juba_engine()
        self.today = self.engine.resolve_range('today')

    def test_end_is_excluded(self):
        """Test the scenario instants around clinic midnight"""
        self.assertTrue(self.engine.in_range('2025-11-09T21:59:59.999Z', self.today))
        self.assertFalse(self.engine.in_range('2025-11-09T22:00:00.000Z', self.today))

    def test_start_is_included(self):
        self.assertTrue(self.engine.in_range(self.today.start_utc, self.today))
        self.assertFalse(self.engine.in_range(self.today.start_utc - timedelta(microseconds=1), self.today))

    def test_half_open_for_every_preset(self):
        """Test end excluded and end minus 1ms included"""
        for preset in ['today', 'yesterday', 'last7', 'last30', 'thismonth']:
            with self.subTest(preset=preset):
                rng = self.engine.resolve_range(preset)
                self.assertFalse(self.engine.in_range(rng.end_utc, rng))
                self.assertTrue(self.engine.in_range(rng.end_utc - timedelta(milliseconds=1), rng))

    def test_none_range_contains_everything(self):
        """Test the 'all' range never filters"""
        self.assertTrue(self.engine.in_range('1999-01-01T00:00:00Z', None))
        self.assertTrue(self.engine.in_range(NOW, self.engine.resolve_range('all')))

    def test_bad_instant_raises(self):
        with self.assertRaises(InvalidInput):
            self.engine.in_range('yesterday-ish', self.today)

    def test_day_key_round_trip_over_many_instants(self):
        """Test every instant lies in the range of its own day key"""
        start = datetime(2025, 10, 25, 0, 0, tzinfo=UTC)
        for step in range(0, 24 * 60 * 10, 37):
            instant = start + timedelta(minutes=step)
            with self.subTest(instant=instant):
                key = self.engine.day_key(instant)
                self.assertTrue(self.engine.in_range(instant, self.engine.day_key_to_range(key)))

    def test_key_round_trip(self):
        """Test the start of a key's range maps back to the same key"""
        for key in ['2025-01-01', '2025-02-28', '2024-02-29', '2025-11-09', '2025-12-31', '2020-06-15']:
            with self.subTest(key=key):
                rng = self.engine.day_key_to_range(key)
                self.assertEqual(self.engine.day_key(rng.start_utc), key)
                self.assertEqual(self.engine.day_key(rng.end_utc - timedelta(milliseconds=1)), key)


class OtherTimezoneTest(SimpleTestCase):
    """Test the engine with timezones other than Africa/Juba"""

    def test_negative_fixed_offset(self):
        """Test a UTC-5 clinic where the UTC day runs ahead of the local day"""
        engine = ClinicRangeEngine(pytz.FixedOffset(-300), clock=fixed_clock(datetime(2025, 11, 9, 3, 0, tzinfo=UTC)))
        self.assertEqual(engine.day_key(), '2025-11-08')
        rng = engine.resolve_range('today')
        self.assertEqual(rng.start_utc, datetime(2025, 11, 8, 5, 0, tzinfo=UTC))
        self.assertEqual(rng.end_utc, datetime(2025, 11, 9, 5, 0, tzinfo=UTC))

    def test_half_hour_offset(self):
        """Test a UTC+5:30 clinic"""
        engine = ClinicRangeEngine('Asia/Kolkata', clock=fixed_clock(datetime(2025, 11, 9, 20, 0, tzinfo=UTC)))
        self.assertEqual(engine.day_key(), '2025-11-10')
        rng = engine.resolve_range('yesterday')
        self.assertEqual(rng.start_day_key, '2025-11-09')
        self.assertEqual(rng.start_utc, datetime(2025, 11, 8, 18, 30, tzinfo=UTC))

    def test_stdlib_tzinfo(self):
        """Test a plain datetime.timezone works as well as pytz zones"""
        from datetime import timezone as dt_timezone
        engine = ClinicRangeEngine(dt_timezone(timedelta(hours=2)), clock=fixed_clock(NOW))
        self.assertEqual(engine.resolve_range('today'), juba_engine().resolve_range('today'))

    def test_day_arithmetic_is_on_calendar_days(self):
        """Test ranges across a DST change still cover whole local days"""
        engine = ClinicRangeEngine('Europe/London', clock=fixed_clock(NOW))
        rng = engine.resolve_range('custom', '2025-03-29', '2025-03-31')
        self.assertEqual(rng.start_utc, datetime(2025, 3, 29, 0, 0, tzinfo=UTC))
        self.assertEqual(rng.end_utc, datetime(2025, 3, 31, 23, 0, tzinfo=UTC))
        self.assertEqual(rng.day_count, 3)

    def test_unknown_timezone_name(self):
        with self.assertRaises(ClinicRangeError):
            ClinicRangeEngine('Mars/Olympus_Mons')


class SerializeRangeParamsTest(SimpleTestCase):
    """Test the query parameter wire format"""

    def setUp(self):
        self.engine = juba_engine()

    def test_single_day_presets_send_preset_only(self):
        self.assertEqual(self.engine.serialize_range_params(self.engine.resolve_range('today')), {'preset': 'today'})
        self.assertEqual(self.engine.serialize_range_params(self.engine.resolve_range('yesterday')), {'preset': 'yesterday'})

    def test_multi_day_presets_send_explicit_days(self):
        params = self.engine.serialize_range_params(self.engine.resolve_range('last7'))
        self.assertEqual(params, {'preset': 'last7', 'from': '2025-11-03', 'to': '2025-11-09'})

    def test_custom_sends_inclusive_bounds(self):
        params = self.engine.serialize_range_params(self.engine.resolve_range('custom', '2025-11-01', '2025-11-05'))
        self.assertEqual(params, {'preset': 'custom', 'from': '2025-11-01', 'to': '2025-11-05'})

    def test_all(self):
        self.assertEqual(self.engine.serialize_range_params(None), {'preset': 'all'})

    def test_cache_keys_distinguish_presets(self):
        """Test presets never share a cache key, even with equal boundaries"""
        today = self.engine.resolve_range('today')
        same_day_custom = self.engine.resolve_range('custom', '2025-11-09', '2025-11-09')
        self.assertEqual(today.start_utc, same_day_custom.start_utc)

        keys = {
            self.engine.build_query_string(today),
            self.engine.build_query_string(self.engine.resolve_range('yesterday')),
            self.engine.build_query_string(same_day_custom),
            self.engine.build_query_string(None),
        }
        self.assertEqual(len(keys), 4)
        self.assertEqual(self.engine.build_query_string(self.engine.resolve_range('last7')),
                         'preset=last7&from=2025-11-03&to=2025-11-09')

    def test_multi_day_cache_key_changes_after_midnight(self):
        """Test a stale last7 entry cannot apply to the next day"""
        tomorrow = juba_engine(NOW + timedelta(days=1))
        self.assertNotEqual(
            self.engine.build_query_string(self.engine.resolve_range('last7')),
            tomorrow.build_query_string(tomorrow.resolve_range('last7')),
        )

    def test_as_dict(self):
        data = self.engine.resolve_range('today').as_dict()
        self.assertEqual(data['start_utc'], '2025-11-08T22:00:00Z')
        self.assertEqual(data['end_utc'], '2025-11-09T22:00:00Z')
        self.assertEqual(data['last_day_key'], '2025-11-09')
        self.assertEqual(data['day_count'], 1)


class ParseRangeParamsTest(SimpleTestCase):
    """Test the receiving side of the wire format"""

    def setUp(self):
        self.engine = juba_engine()
        self.warnings = []

    def parse(self, params):
        return self.engine.parse_range_params(params, warn=self.warnings.append)

    def test_round_trip(self):
        """Test parse(serialize(range)) gives back the same range"""
        ranges = [self.engine.resolve_range(p) for p in ['today', 'yesterday', 'last7', 'last30', 'thismonth', 'all']]
        ranges.append(self.engine.resolve_range('custom', '2025-10-01', '2025-10-15'))
        for rng in ranges:
            with self.subTest(range=rng):
                self.assertEqual(self.parse(self.engine.serialize_range_params(rng)), rng)

    def test_explicit_days_win_for_multi_day_presets(self):
        """Test a receiver after midnight still filters the sender's days"""
        params = self.engine.serialize_range_params(self.engine.resolve_range('last7'))
        receiver = juba_engine(NOW + timedelta(days=1))
        rng = receiver.parse_range_params(params)
        self.assertEqual(rng.preset, 'last7')
        self.assertEqual(rng.start_day_key, '2025-11-03')
        self.assertEqual(rng.last_day_key, '2025-11-09')

    def test_multi_day_preset_without_days_resolves_against_now(self):
        rng = self.parse({'preset': 'LAST30DAYS'})
        self.assertEqual(rng.preset, 'last30')
        self.assertEqual(rng.start_day_key, '2025-10-11')

    def test_query_dict(self):
        rng = self.parse(QueryDict('preset=custom&from=2025-11-01&to=2025-11-05'))
        self.assertEqual(rng.start_day_key, '2025-11-01')
        self.assertEqual(rng.end_day_key, '2025-11-06')

    def test_padded_query_values_are_trimmed(self):
        """Test whitespace around wire values is trimmed before the key is parsed"""
        rng = self.parse(QueryDict('preset=custom&from=%202025-11-01%20&to=2025-11-02%20'))
        self.assertEqual(rng.start_day_key, '2025-11-01')
        self.assertEqual(rng.last_day_key, '2025-11-02')

    def test_list_values_take_first_element(self):
        rng = self.parse({'preset': ['yesterday', 'today']})
        self.assertEqual(rng.preset, 'yesterday')

    def test_no_params_defaults_to_today(self):
        """Test an absent preset (not an unknown one) means today"""
        self.assertEqual(self.parse({}), self.engine.resolve_range('today'))

    def test_from_and_to_without_preset_is_custom(self):
        rng = self.parse({'from': '2025-11-01', 'to': '2025-11-02'})
        self.assertEqual(rng.preset, 'custom')
        self.assertEqual(rng.day_count, 2)

    def test_single_bound_without_preset_raises(self):
        with self.assertRaises(MissingRangeBound):
            self.parse({'from': '2025-11-01'})

    def test_custom_missing_bound_raises(self):
        with self.assertRaises(MissingRangeBound):
            self.parse({'preset': 'custom', 'to': '2025-11-01'})

    def test_unknown_preset_raises(self):
        with self.assertRaises(UnknownPreset):
            self.parse({'preset': 'lastweek'})

    def test_all(self):
        self.assertIsNone(self.parse({'preset': 'all'}))

    def test_legacy_today(self):
        self.assertEqual(self.parse({'today': '1'}), self.engine.resolve_range('today'))
        self.assertEqual(len(self.warnings), 1)
        self.assertIn('deprecated', self.warnings[0])

    def test_legacy_date(self):
        rng = self.parse({'date': '2025-11-05'})
        self.assertEqual(rng, self.engine.day_key_to_range('2025-11-05'))
        self.assertIn('preset=custom&from=2025-11-05&to=2025-11-05', self.warnings[0])

    def test_legacy_start_and_end_date(self):
        rng = self.parse({'startDate': '2025-11-01', 'endDate': '2025-11-03'})
        self.assertEqual(rng.start_day_key, '2025-11-01')
        self.assertEqual(rng.last_day_key, '2025-11-03')
        self.assertEqual(len(self.warnings), 1)

    def test_legacy_params_ignored_with_preset(self):
        rng = self.parse({'preset': 'yesterday', 'date': '2025-01-01'})
        self.assertEqual(rng.preset, 'yesterday')
        self.assertIn('ignored', self.warnings[0])


class ClinicTimeInfoTest(SimpleTestCase):

    def test_snapshot(self):
        info = juba_engine().clinic_time_info()
        self.assertEqual(info['server_utc_time'], '2025-11-09T08:00:00Z')
        self.assertEqual(info['clinic_time'], '2025-11-09 10:00:00')
        self.assertEqual(info['timezone'], 'Africa/Juba')
        self.assertEqual(info['utc_offset'], '+0200')
        self.assertEqual(info['today_key'], '2025-11-09')
        self.assertEqual(info['yesterday_key'], '2025-11-08')
        self.assertEqual(info['last7_days_range'], {'start': '2025-11-03', 'end': '2025-11-09'})
        self.assertEqual(info['last30_days_range'], {'start': '2025-10-11', 'end': '2025-11-09'})


class ClinicRangeFormTest(SimpleTestCase):
    """Test the range filter form"""

    def setUp(self):
        self.engine = juba_engine()

    def test_valid_preset(self):
        form = ClinicRangeForm({'preset': 'last7'}, engine=self.engine)
        self.assertTrue(form.is_valid())
        self.assertIsInstance(form.cleaned_data['range'], ResolvedRange)
        self.assertEqual(form.query_params(), {'preset': 'last7', 'from': '2025-11-03', 'to': '2025-11-09'})
        self.assertEqual(form.cache_key(), 'preset=last7&from=2025-11-03&to=2025-11-09')

    def test_custom_range(self):
        form = ClinicRangeForm({'preset': 'custom', 'from': '2025-11-01', 'to': '2025-11-05'}, engine=self.engine)
        self.assertTrue(form.is_valid())
        self.assertEqual(form.cleaned_data['range'].end_day_key, '2025-11-06')

    def test_all_range_is_none(self):
        form = ClinicRangeForm({'preset': 'all'}, engine=self.engine)
        self.assertTrue(form.is_valid())
        self.assertIsNone(form.cleaned_data['range'])
        self.assertEqual(form.query_params(), {'preset': 'all'})

    def test_empty_form_defaults_to_today(self):
        form = ClinicRangeForm({}, engine=self.engine)
        self.assertTrue(form.is_valid())
        self.assertEqual(form.cleaned_data['range'].preset, 'today')

    def test_missing_bound_is_a_form_error(self):
        form = ClinicRangeForm({'preset': 'custom', 'from': '2025-11-01'}, engine=self.engine)
        self.assertFalse(form.is_valid())
        self.assertIn('missing: to', form.non_field_errors()[0])

    def test_unknown_preset_is_a_form_error(self):
        form = ClinicRangeForm({'preset': 'fortnight'}, engine=self.engine)
        self.assertFalse(form.is_valid())
        self.assertIn('Unknown range preset', form.non_field_errors()[0])

    def test_invalid_day_key_is_a_form_error(self):
        form = ClinicRangeForm({'preset': 'custom', 'from': '2025-02-30', 'to': '2025-03-01'}, engine=self.engine)
        self.assertFalse(form.is_valid())
        self.assertIn("'2025-02-30'", form.non_field_errors()[0])

    def test_deprecation_warnings_collected(self):
        form = ClinicRangeForm({'today': 'true'}, engine=self.engine)
        self.assertTrue(form.is_valid())
        self.assertEqual(len(form.deprecation_warnings), 1)

    def test_initial_preset(self):
        form = ClinicRangeForm(engine=self.engine)
        self.assertFalse(form.is_bound)
        self.assertEqual(form.fields['preset'].initial, 'today')
        self.assertIn('from', form.fields)
        self.assertIn('to', form.fields)


class UtilsTest(SimpleTestCase):
    """Test Django-side helpers"""

    def setUp(self):
        self.engine = juba_engine()

    def test_default_engine_uses_configured_timezone(self):
        self.assertEqual(get_default_engine().timezone_name, 'Africa/Juba')
        self.assertIs(get_default_engine(), get_default_engine())

    def test_get_clinic_date(self):
        self.assertIsNone(get_clinic_date(None))
        self.assertEqual(get_clinic_date(datetime(2025, 11, 7, 23, 0, tzinfo=UTC)), date(2025, 11, 8))

    def test_timestamp_range_q(self):
        rng = self.engine.resolve_range('today')
        q = timestamp_range_q('created_at', rng)
        self.assertEqual(dict(q.children), {
            'created_at__gte': datetime(2025, 11, 8, 22, 0, tzinfo=UTC),
            'created_at__lt': datetime(2025, 11, 9, 22, 0, tzinfo=UTC),
        })
        self.assertEqual(len(timestamp_range_q('created_at', None)), 0)

    def test_day_key_range_q(self):
        rng = self.engine.resolve_range('last7')
        q = day_key_range_q('visit_date', rng)
        self.assertEqual(dict(q.children), {
            'visit_date__gte': '2025-11-03',
            'visit_date__lt': '2025-11-10',
        })
        self.assertEqual(len(day_key_range_q('visit_date', None)), 0)


@mock.patch('django.utils.timezone.now', return_value=NOW)
class ClinicTimeViewsTest(SimpleTestCase):
    """Test the health and clinic-time endpoints"""

    def test_health_check(self, mock_now):
        response = self.client.get(reverse('core:health_check'))
        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data['status'], 'ok')
        self.assertEqual(data['clinic_day'], '2025-11-09')

    def test_health_check_rejects_post(self, mock_now):
        response = self.client.post(reverse('core:health_check'))
        self.assertEqual(response.status_code, 405)

    def test_debug_clinic_time(self, mock_now):
        response = self.client.get(reverse('core:debug_clinic_time'))
        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data['today_key'], '2025-11-09')
        self.assertEqual(data['presets']['last7']['start_key'], '2025-11-03')
        self.assertEqual(data['presets']['last7']['end_key'], '2025-11-09')
        self.assertEqual(data['presets']['yesterday']['params'], {'preset': 'yesterday'})
        self.assertEqual(data['presets']['today']['range']['start_utc'], '2025-11-08T22:00:00Z')

    def test_context_processor(self, mock_now):
        request = RequestFactory().get('/')
        context = clinic_day(request)
        self.assertEqual(context['CLINIC_TODAY'], '2025-11-09')
        self.assertEqual(context['CLINIC_TIMEZONE'], 'Africa/Juba')
