# diagnostics/tests.py
"""
Unit tests for day-scoped records, range-filtered endpoints and the backfill command
"""
from datetime import datetime, timedelta
from io import StringIO
from unittest import mock

import pytz
from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import TestCase, Client
from django.urls import reverse
from django.utils import timezone

from core.utils import get_clinic_day_key
from .models import Encounter, LabTest, Patient

UTC = pytz.utc

# 2025-11-09 10:00 in Juba
NOW = datetime(2025, 11, 9, 8, 0, tzinfo=UTC)


class ClinicDayStampingTest(TestCase):
    """Test day keys are stamped on first save"""

    def setUp(self):
        self.patient = Patient.objects.create(
            patient_id='P-0001',
            first_name='Akol',
            last_name='Deng',
            created_at=datetime(2025, 11, 8, 23, 30, tzinfo=UTC)
        )

    def test_patient_gets_clinic_day_not_utc_day(self):
        """Test 23:30 UTC is already the next day in the clinic"""
        self.assertEqual(self.patient.clinic_day, '2025-11-09')

    def test_each_model_stamps_its_own_column(self):
        """Test encounters and lab tests use their own day-key fields"""
        encounter = Encounter.objects.create(
            encounter_id='E-0001',
            patient=self.patient,
            created_at=datetime(2025, 11, 9, 21, 59, tzinfo=UTC)
        )
        lab_test = LabTest.objects.create(
            test_id='L-0001',
            patient=self.patient,
            test_name='Malaria RDT',
            created_at=datetime(2025, 11, 9, 22, 0, tzinfo=UTC)
        )
        self.assertEqual(encounter.visit_date, '2025-11-09')
        self.assertEqual(lab_test.requested_date, '2025-11-10')

    def test_explicit_day_key_is_kept(self):
        """Test a caller-supplied key is not overwritten"""
        lab_test = LabTest.objects.create(
            test_id='L-0002',
            patient=self.patient,
            test_name='CBC',
            requested_date='2025-11-01',
            created_at=NOW
        )
        lab_test.refresh_from_db()
        self.assertEqual(lab_test.requested_date, '2025-11-01')
        self.assertEqual(lab_test.expected_clinic_day(), '2025-11-09')

    def test_default_created_at(self):
        """Test records without created_at are stamped with today's clinic day"""
        patient = Patient.objects.create(patient_id='P-0002', first_name='Nyandeng', last_name='Garang')
        self.assertEqual(patient.clinic_day, get_clinic_day_key(patient.created_at))


@mock.patch('django.utils.timezone.now', return_value=NOW)
class ClinicDayListViewTest(TestCase):
    """Test range filtering on the JSON list endpoints"""

    def setUp(self):
        self.client = Client()
        self.patient = Patient.objects.create(
            patient_id='P-0100',
            first_name='John',
            last_name='Lado',
            created_at=datetime(2025, 10, 1, 8, 0, tzinfo=UTC)
        )

        # (test_id, created_at) -> requested_date stamped in clinic time
        tests = [
            ('L-TODAY-EARLY', datetime(2025, 11, 8, 22, 0, tzinfo=UTC)),      # 2025-11-09 00:00 local
            ('L-TODAY-LATE', datetime(2025, 11, 9, 21, 59, 59, tzinfo=UTC)),  # 2025-11-09 23:59 local
            ('L-TOMORROW', datetime(2025, 11, 9, 22, 0, tzinfo=UTC)),         # 2025-11-10 00:00 local
            ('L-YESTERDAY', datetime(2025, 11, 8, 12, 0, tzinfo=UTC)),
            ('L-6-DAYS-AGO', datetime(2025, 11, 3, 9, 0, tzinfo=UTC)),
            ('L-7-DAYS-AGO', datetime(2025, 11, 2, 9, 0, tzinfo=UTC)),
            ('L-OLD', datetime(2025, 9, 1, 9, 0, tzinfo=UTC)),
        ]
        for test_id, created_at in tests:
            LabTest.objects.create(
                test_id=test_id,
                patient=self.patient,
                test_name='Malaria RDT',
                created_at=created_at
            )

    def get_ids(self, params):
        response = self.client.get(reverse('diagnostics:lab_test_list'), params)
        self.assertEqual(response.status_code, 200)
        return {row['test_id'] for row in response.json()['results']}

    def test_today(self, mock_now):
        """Test today includes both ends of the clinic day and nothing after"""
        self.assertEqual(self.get_ids({'preset': 'today'}), {'L-TODAY-EARLY', 'L-TODAY-LATE'})

    def test_default_is_today(self, mock_now):
        self.assertEqual(self.get_ids({}), {'L-TODAY-EARLY', 'L-TODAY-LATE'})

    def test_yesterday(self, mock_now):
        self.assertEqual(self.get_ids({'preset': 'yesterday'}), {'L-YESTERDAY'})

    def test_last7(self, mock_now):
        """Test last7 stops at today minus 6 days"""
        self.assertEqual(
            self.get_ids({'preset': 'last7'}),
            {'L-TODAY-EARLY', 'L-TODAY-LATE', 'L-YESTERDAY', 'L-6-DAYS-AGO'}
        )

    def test_last7_with_explicit_days(self, mock_now):
        """Test explicit from/to sent with a multi-day preset pin the days"""
        ids = self.get_ids({'preset': 'last7', 'from': '2025-11-02', 'to': '2025-11-08'})
        self.assertEqual(ids, {'L-YESTERDAY', 'L-6-DAYS-AGO', 'L-7-DAYS-AGO'})

    def test_custom(self, mock_now):
        ids = self.get_ids({'preset': 'custom', 'from': '2025-11-09', 'to': '2025-11-10'})
        self.assertEqual(ids, {'L-TODAY-EARLY', 'L-TODAY-LATE', 'L-TOMORROW'})

    def test_all(self, mock_now):
        self.assertEqual(len(self.get_ids({'preset': 'all'})), 7)

    def test_legacy_date_param(self, mock_now):
        with self.assertLogs('diagnostics.views', level='WARNING') as logs:
            ids = self.get_ids({'date': '2025-11-08'})
        self.assertEqual(ids, {'L-YESTERDAY'})
        self.assertIn('DEPRECATED', logs.output[0])

    def test_response_echoes_range(self, mock_now):
        response = self.client.get(reverse('diagnostics:lab_test_list'), {'preset': 'Last7Days'})
        data = response.json()
        self.assertTrue(data['success'])
        self.assertEqual(data['preset'], 'last7')
        self.assertEqual(data['from'], '2025-11-03')
        self.assertEqual(data['to'], '2025-11-09')
        self.assertEqual(data['count'], 4)
        self.assertEqual(data['params'], {'preset': 'last7', 'from': '2025-11-03', 'to': '2025-11-09'})

    def test_all_response(self, mock_now):
        data = self.client.get(reverse('diagnostics:lab_test_list'), {'preset': 'all'}).json()
        self.assertEqual(data['preset'], 'all')
        self.assertIsNone(data['from'])
        self.assertEqual(data['params'], {'preset': 'all'})

    def test_unknown_preset_is_rejected(self, mock_now):
        """Test an unknown preset is a 400, never a silent today"""
        response = self.client.get(reverse('diagnostics:lab_test_list'), {'preset': 'fortnight'})
        self.assertEqual(response.status_code, 400)
        data = response.json()
        self.assertFalse(data['success'])
        self.assertIn('Unknown range preset', data['details'][0])

    def test_custom_without_bounds_is_rejected(self, mock_now):
        response = self.client.get(reverse('diagnostics:lab_test_list'), {'preset': 'custom', 'from': '2025-11-01'})
        self.assertEqual(response.status_code, 400)
        self.assertIn('missing: to', response.json()['details'][0])

    def test_invalid_day_key_is_rejected(self, mock_now):
        response = self.client.get(
            reverse('diagnostics:lab_test_list'),
            {'preset': 'custom', 'from': '2025-02-30', 'to': '2025-03-02'}
        )
        self.assertEqual(response.status_code, 400)

    def test_encounter_and_patient_lists(self, mock_now):
        """Test the other endpoints filter on their own day-key column"""
        Encounter.objects.create(
            encounter_id='E-0100',
            patient=self.patient,
            created_at=datetime(2025, 11, 9, 7, 0, tzinfo=UTC)
        )
        encounters = self.client.get(reverse('diagnostics:encounter_list'), {'preset': 'today'}).json()
        self.assertEqual([row['encounter_id'] for row in encounters['results']], ['E-0100'])

        patients = self.client.get(reverse('diagnostics:patient_list'), {'preset': 'today'}).json()
        self.assertEqual(patients['count'], 0)
        patients = self.client.get(
            reverse('diagnostics:patient_list'),
            {'preset': 'custom', 'from': '2025-10-01', 'to': '2025-10-01'}
        ).json()
        self.assertEqual(patients['results'][0]['patient_id'], 'P-0100')


class BackfillClinicDaysCommandTest(TestCase):
    """Test the backfill_clinic_days management command"""

    def setUp(self):
        self.patient = Patient.objects.create(patient_id='P-0200', first_name='Mary', last_name='Ajak')

        # 23:00 UTC is already the next day in the clinic, so the UTC date is wrong
        recent = (timezone.now() - timedelta(days=5)).replace(hour=23, minute=0, second=0, microsecond=0)
        old = (timezone.now() - timedelta(days=90)).replace(hour=23, minute=0, second=0, microsecond=0)

        self.recent_test = LabTest.objects.create(
            test_id='L-RECENT', patient=self.patient, test_name='CBC', created_at=recent
        )
        self.old_test = LabTest.objects.create(
            test_id='L-OLD', patient=self.patient, test_name='CBC', created_at=old
        )
        self.correct_test = LabTest.objects.create(
            test_id='L-OK', patient=self.patient, test_name='CBC', created_at=recent
        )
        self.recent_expected = get_clinic_day_key(recent)
        self.old_expected = get_clinic_day_key(old)

        # Simulate rows stamped with the UTC day
        LabTest.objects.filter(pk=self.recent_test.pk).update(requested_date=recent.strftime('%Y-%m-%d'))
        LabTest.objects.filter(pk=self.old_test.pk).update(requested_date=old.strftime('%Y-%m-%d'))

    def run_command(self, *args):
        out = StringIO()
        call_command('backfill_clinic_days', *args, stdout=out)
        return out.getvalue()

    def test_dry_run_changes_nothing(self):
        output = self.run_command('--dry-run', '--model', 'lab_tests')
        self.recent_test.refresh_from_db()
        self.assertNotEqual(self.recent_test.requested_date, self.recent_expected)
        self.assertIn('DRY RUN', output)
        self.assertIn('Would update: 1', output)
        self.assertIn('L-RECENT', output)

    def test_fixes_rows_inside_window(self):
        output = self.run_command('--model', 'lab_tests')
        self.recent_test.refresh_from_db()
        self.old_test.refresh_from_db()
        self.assertEqual(self.recent_test.requested_date, self.recent_expected)
        self.assertNotEqual(self.old_test.requested_date, self.old_expected)
        self.assertIn('Updated: 1', output)

    def test_all_ignores_window(self):
        self.run_command('--all', '--model', 'lab_tests')
        self.old_test.refresh_from_db()
        self.assertEqual(self.old_test.requested_date, self.old_expected)

    def test_idempotent(self):
        self.run_command('--model', 'lab_tests')
        output = self.run_command('--model', 'lab_tests')
        self.assertIn('Updated: 0', output)

    def test_blank_keys_fixed_outside_window(self):
        LabTest.objects.filter(pk=self.old_test.pk).update(requested_date='')
        output = self.run_command('--days', '30', '--model', 'lab_tests')
        self.old_test.refresh_from_db()
        self.assertEqual(self.old_test.requested_date, self.old_expected)
        self.assertIn('(empty)', output)

    def test_default_runs_every_model(self):
        output = self.run_command('--dry-run')
        for name in ('patients:', 'encounters:', 'lab_tests:'):
            self.assertIn(name, output)

    def test_invalid_days(self):
        with self.assertRaises(CommandError):
            self.run_command('--days', '0')
