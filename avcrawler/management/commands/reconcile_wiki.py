"""
Django management command to link staged wiki performers to products.

Usage:
    python manage.py reconcile_wiki
    python manage.py reconcile_wiki --limit 1000 --dry-run
    python manage.py reconcile_wiki --no-replace
"""

from django.core.management.base import BaseCommand


class Command(BaseCommand):
    help = "Link unprocessed wiki staging rows to products"

    def add_arguments(self, parser):
        parser.add_argument(
            "--limit",
            type=int,
            default=None,
            help="Maximum number of staging rows to consume",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Report matches without linking or stamping rows",
        )
        parser.add_argument(
            "--no-replace",
            action="store_true",
            help="Keep on-page performer links the wiki does not list",
        )

    def handle(self, *args, **options):
        from avcrawler.wiki import reconcile_staging

        if options["dry_run"]:
            self.stdout.write(self.style.WARNING("DRY RUN - no changes will be made"))

        stats = reconcile_staging(
            limit=options["limit"],
            dry_run=options["dry_run"],
            replace=not options["no_replace"],
        )

        for key, value in stats.as_dict().items():
            self.stdout.write(f"  {key}: {value}")

        self.stdout.write(
            self.style.SUCCESS(
                f"Reconciled {stats.rows} rows: {stats.products_matched} products matched, "
                f"{stats.linked} links created"
            )
        )
