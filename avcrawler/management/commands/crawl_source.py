"""
Django management command to crawl a storefront source.

Walks the source's listing pages by default. Explicit detail URLs or a
sitemap can be given instead.

Usage:
    python manage.py crawl_source MGS --limit 100
    python manage.py crawl_source MGS --direction desc --start-page 400 --max-pages 20
    python manage.py crawl_source MGS --force --url https://www.mgstage.com/product/product_detail/SIRO-5561/
    python manage.py crawl_source GENERIC --sitemap https://example.com/sitemap.xml --dry-run
"""

from django.core.management.base import BaseCommand, CommandError


class Command(BaseCommand):
    help = "Crawl product detail pages of a storefront source"

    def add_arguments(self, parser):
        parser.add_argument(
            "source",
            help="Source name (e.g. MGS, FANZA, GENERIC)",
        )
        parser.add_argument(
            "--limit",
            type=int,
            default=None,
            help="Maximum number of detail pages to process",
        )
        parser.add_argument(
            "--offset",
            type=int,
            default=0,
            help="Number of discovered products to skip",
        )
        parser.add_argument(
            "--start-page",
            type=int,
            default=None,
            help="First listing page (default: 1, or the last page with --direction desc)",
        )
        parser.add_argument(
            "--max-pages",
            type=int,
            default=None,
            help="Maximum number of listing pages to read",
        )
        parser.add_argument(
            "--sort",
            choices=["new", "old"],
            default="new",
            help="Listing sort order",
        )
        parser.add_argument(
            "--direction",
            choices=["asc", "desc"],
            default="asc",
            help="Walk listing pages upward (asc) or downward (desc)",
        )
        parser.add_argument(
            "--force",
            action="store_true",
            help="Reprocess pages whose snapshot is unchanged",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Fetch and extract without writing to the database",
        )
        parser.add_argument(
            "--url",
            action="append",
            dest="urls",
            default=[],
            help="Crawl this detail URL (repeatable); skips listing enumeration",
        )
        parser.add_argument(
            "--sitemap",
            default=None,
            help="Crawl detail URLs listed in this sitemap",
        )

    def handle(self, *args, **options):
        from avcrawler.services.crawl_runner import CrawlRunner

        source = options["source"]
        dry_run = options["dry_run"]

        if options["urls"] and options["sitemap"]:
            raise CommandError("Use either --url or --sitemap, not both")

        if dry_run:
            self.stdout.write(self.style.WARNING("DRY RUN - no changes will be made"))

        try:
            runner = CrawlRunner(source, force=options["force"], dry_run=dry_run)
        except KeyError as e:
            raise CommandError(str(e).strip("'\""))

        with runner:
            if options["urls"]:
                stats = runner.crawl_urls(
                    options["urls"],
                    limit=options["limit"],
                    options={"mode": "urls", "count": len(options["urls"])},
                )
            elif options["sitemap"]:
                stats = runner.crawl_sitemap(
                    options["sitemap"],
                    offset=options["offset"],
                    limit=options["limit"],
                )
            else:
                try:
                    stats = runner.crawl_listing(
                        sort=options["sort"],
                        direction=options["direction"],
                        start_page=options["start_page"],
                        max_pages=options["max_pages"],
                        offset=options["offset"],
                        limit=options["limit"],
                    )
                except ValueError as e:
                    raise CommandError(str(e))

        self.stdout.write("")
        for key, value in stats.as_dict().items():
            if key in ("started_at", "completed_at"):
                continue
            self.stdout.write(f"  {key}: {value}")
        self.stdout.write("")

        if stats.errors:
            self.stdout.write(self.style.WARNING(f"{source} crawl finished with errors: {stats.summary()}"))
        else:
            self.stdout.write(self.style.SUCCESS(f"{source} crawl finished: {stats.summary()}"))
