"""
Django management command to deactivate sales past their end time.
"""

from django.core.management.base import BaseCommand


class Command(BaseCommand):
    help = "Deactivate active sales whose end time has passed"

    def add_arguments(self, parser):
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Show how many sales would be deactivated",
        )

    def handle(self, *args, **options):
        from django.utils import timezone

        from avcrawler.models import Sale
        from avcrawler.services.sale_detector import deactivate_expired_sales

        if options["dry_run"]:
            count = Sale.objects.filter(is_active=True, end_at__lt=timezone.now()).count()
            self.stdout.write(self.style.WARNING(f"DRY RUN - {count} sales would be deactivated"))
            return

        count = deactivate_expired_sales()
        self.stdout.write(self.style.SUCCESS(f"Deactivated {count} expired sales"))
