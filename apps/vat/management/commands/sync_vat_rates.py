"""
Django management command to sync EU VAT rates once.

Usage:
    python manage.py sync_vat_rates
    python manage.py sync_vat_rates --dry-run   # Fetch and diff, write nothing
    python manage.py sync_vat_rates --queue     # Hand off to a django-q2 worker
"""

from __future__ import annotations

from django.core.management.base import BaseCommand, CommandError, CommandParser

from apps.vat.sources import RateSourceError
from apps.vat.sync import RateSyncer


class Command(BaseCommand):
    """Fetch EU VAT rates, persist changes and refresh the rate cache."""

    help = "Sync EU VAT rates from EC TEDB (falling back to euvatrates.com)"

    def add_arguments(self, parser: CommandParser) -> None:
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Show rate changes without writing them",
        )
        parser.add_argument(
            "--queue",
            action="store_true",
            help="Queue the sync on the django-q2 cluster instead of running it here",
        )

    def handle(self, *args: object, **options: object) -> None:
        if options.get("queue"):
            from apps.vat.tasks import queue_vat_sync  # noqa: PLC0415

            task_id = queue_vat_sync()
            if task_id is None:
                raise CommandError("Failed to queue VAT rate sync")
            self.stdout.write(self.style.SUCCESS(f"Queued VAT rate sync: task {task_id}"))
            return

        syncer = RateSyncer()

        if options.get("dry_run"):
            self._dry_run(syncer)
            return

        result = syncer.sync()
        for change in result.changes:
            self.stdout.write(f"  {change}")

        if not result.ok:
            raise CommandError(f"VAT rate sync failed: {result.error}")

        self.stdout.write(
            self.style.SUCCESS(
                f"Synced {result.rates_loaded} rates from {result.source} ({result.rates_changed} changed)"
            )
        )

    def _dry_run(self, syncer: RateSyncer) -> None:
        try:
            rates, source = syncer.fetch_rates()
        except RateSourceError as e:
            raise CommandError(str(e)) from e

        changes = syncer.detect_changes(rates)
        self.stdout.write(f"Fetched {len(rates)} rates from {source}")
        for change in changes:
            self.stdout.write(f"  {change}")
        self.stdout.write(self.style.WARNING(f"Dry run: {len(changes)} changes not saved"))
