# diagnostics/management/commands/backfill_clinic_days.py
"""
Management command to correct stored clinic day keys

Older records were stamped with the UTC day instead of the clinic day. This
recomputes each day key from created_at in the clinic timezone and updates
only the rows that differ, so running it twice changes nothing.

Usage:
    # Preview changes for the default window (CLINIC_BACKFILL_DEFAULT_DAYS)
    python manage.py backfill_clinic_days --dry-run

    # Only look at records created in the last 30 days
    python manage.py backfill_clinic_days --days 30

    # Every record, one model only
    python manage.py backfill_clinic_days --all --model lab_tests
"""
from datetime import timedelta

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError
from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from diagnostics.models import Encounter, LabTest, Patient

BACKFILL_MODELS = {
    'patients': (Patient, 'patient_id'),
    'encounters': (Encounter, 'encounter_id'),
    'lab_tests': (LabTest, 'test_id'),
}

MAX_EXAMPLES = 5


class Command(BaseCommand):
    help = 'Recompute clinic day keys from created_at and fix rows stamped with the wrong day'

    def add_arguments(self, parser):
        parser.add_argument(
            '--days',
            type=int,
            default=getattr(settings, 'CLINIC_BACKFILL_DEFAULT_DAYS', 60),
            help='Only check records created in the last N days (default: %(default)s)'
        )
        parser.add_argument(
            '--all',
            action='store_true',
            help='Check every record regardless of age'
        )
        parser.add_argument(
            '--model',
            choices=sorted(BACKFILL_MODELS),
            action='append',
            help='Limit to one model (repeatable, default: all models)'
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show what would be updated without changing anything'
        )

    def handle(self, *args, **options):
        days = options['days']
        check_all = options['all']
        dry_run = options['dry_run']
        model_names = options.get('model') or list(BACKFILL_MODELS)

        if days < 1 and not check_all:
            raise CommandError('--days must be at least 1')

        cutoff = None if check_all else timezone.now() - timedelta(days=days)

        self.stdout.write(f'Mode: {"DRY RUN (no changes will be made)" if dry_run else "LIVE"}')
        if cutoff:
            self.stdout.write(f'Window: records created since {cutoff.isoformat()} (last {days} days)')
        else:
            self.stdout.write('Window: all records')

        total_updated = 0
        for name in model_names:
            model, identifier = BACKFILL_MODELS[name]
            result = self.backfill_model(model, identifier, cutoff, dry_run)
            total_updated += result['updated']
            self.report(name, result, dry_run)

        if dry_run:
            self.stdout.write(self.style.SUCCESS(
                f'\nDry run complete. {total_updated} records would be updated.'
            ))
        else:
            self.stdout.write(self.style.SUCCESS(
                f'\n✓ Backfill complete. {total_updated} records updated.'
            ))

    def backfill_model(self, model, identifier, cutoff, dry_run):
        """
        Compare stored day keys with the key computed from created_at.

        Rows with a blank key are always checked, whatever the window.
        """
        field = model.CLINIC_DAY_FIELD
        queryset = model.objects.all()
        if cutoff is not None:
            queryset = queryset.filter(Q(created_at__gte=cutoff) | Q(**{field: ''}))
        queryset = queryset.order_by('created_at')

        checked = 0
        examples = []
        stale = []

        for obj in queryset.iterator():
            checked += 1
            expected = obj.expected_clinic_day()
            current = getattr(obj, field)
            if current == expected:
                continue

            if len(examples) < MAX_EXAMPLES:
                examples.append({
                    'id': getattr(obj, identifier),
                    'old': current or '(empty)',
                    'new': expected,
                    'created_at': obj.created_at.isoformat(),
                })
            stale.append((obj.pk, expected))

        if stale and not dry_run:
            try:
                with transaction.atomic():
                    for pk, expected in stale:
                        model.objects.filter(pk=pk).update(**{field: expected})
            except Exception as e:
                raise CommandError(f'Error updating {model._meta.verbose_name_plural}: {str(e)}')

        return {'checked': checked, 'updated': len(stale), 'examples': examples}

    def report(self, name, result, dry_run):
        self.stdout.write(f'\n{name}:')
        self.stdout.write(f'   Checked: {result["checked"]}')
        self.stdout.write(f'   {"Would update" if dry_run else "Updated"}: {result["updated"]}')
        if result['examples']:
            self.stdout.write('   Example changes:')
            for i, example in enumerate(result['examples'], start=1):
                self.stdout.write(
                    f'   {i}. {example["id"]}: {example["old"]} → {example["new"]} '
                    f'(created: {example["created_at"]})'
                )
