"""
Management command to clean up stale conversion artifacts.

Finds intake and output files left behind by a server process that is no
longer running (crashed conversions, killed workers) and removes them. The
running server expires its own unredeemed downloads; this command cannot see
its jobs, so --max-age must exceed any conversion or download in flight.
"""
from django.apps import apps
from django.conf import settings
from django.core.management.base import BaseCommand

from api.operations import remove_stale


class Command(BaseCommand):
    help = 'Remove stale files from the uploads/ and converted/ storage directories'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show what would be deleted without actually deleting'
        )
        parser.add_argument(
            '--max-age',
            type=int,
            default=settings.CONVERTER_ARTIFACT_MAX_AGE,
            help='Maximum age in minutes before a file is considered stale '
                 f'(default: {settings.CONVERTER_ARTIFACT_MAX_AGE})'
        )

    def handle(self, *args, **options):
        dry_run = options['dry_run']
        max_age = options['max_age']

        root = apps.get_app_config('api').storage_root
        paths = remove_stale(root, max_age_minutes=max_age, dry_run=dry_run)

        if not paths:
            self.stdout.write(self.style.SUCCESS(f"No files older than {max_age} minutes"))
            return

        for path in paths:
            self.stdout.write(f"  {path.parent.name}/{path.name}")

        noun = 'file' if len(paths) == 1 else 'files'
        if dry_run:
            self.stdout.write(self.style.WARNING(f"\nDRY RUN: Would delete {len(paths)} {noun}"))
            self.stdout.write("Run without --dry-run to actually delete")
        else:
            self.stdout.write(self.style.SUCCESS(f"\n✓ Deleted {len(paths)} {noun}"))
