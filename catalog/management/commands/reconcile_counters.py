"""
Management command to recompute denormalized counters from their source rows.
"""

from django.core.management.base import BaseCommand

from catalog.services import reconcile_counters


class Command(BaseCommand):
    help = "Recompute like/comment/rating counters and author earnings from source rows"

    def add_arguments(self, parser):
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Report drifted counters without fixing them",
        )

    def handle(self, *args, **options):
        dry_run = options["dry_run"]

        if dry_run:
            self.stdout.write(self.style.WARNING("DRY RUN MODE - No changes will be made"))

        drift = reconcile_counters(dry_run=dry_run)

        for model, pk, field, stored, actual in drift:
            self.stdout.write(f"{model} {pk}: {field} {stored} -> {actual}")

        if not drift:
            self.stdout.write(self.style.SUCCESS("✓ All counters match their source rows"))
        elif dry_run:
            self.stdout.write(self.style.WARNING(f"\nDRY RUN: Would fix {len(drift)} counters"))
        else:
            self.stdout.write(self.style.SUCCESS(f"\n✓ Fixed {len(drift)} counters"))
