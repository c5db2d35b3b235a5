"""
Django management command to crawl an auxiliary performer wiki.

Discovered (product code, performer name) pairs land in WikiCrawlStaging;
run ``reconcile_wiki`` afterwards to link them to products.

Usage:
    python manage.py crawl_wiki av-wiki --max-pages 200
    python manage.py crawl_wiki av-wiki --missing-from MGS --limit 50
    python manage.py crawl_wiki seesaawiki --dry-run --limit 10
"""

from django.core.management.base import BaseCommand, CommandError


class Command(BaseCommand):
    help = "Crawl a performer wiki into the staging table"

    def add_arguments(self, parser):
        parser.add_argument(
            "site",
            help="Wiki site key (av-wiki, seesaawiki)",
        )
        parser.add_argument(
            "--limit",
            type=int,
            default=None,
            help="Maximum number of detail pages (or product codes) to process",
        )
        parser.add_argument(
            "--max-pages",
            type=int,
            default=None,
            help="Maximum number of pages to fetch (default: CRAWLER_WIKI_MAX_PAGES)",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Parse pages and log pairs without staging them",
        )
        group = parser.add_mutually_exclusive_group()
        group.add_argument(
            "--codes",
            nargs="+",
            default=None,
            help="Look up these product codes directly instead of crawling",
        )
        group.add_argument(
            "--missing-from",
            default=None,
            help="Look up codes of this source's products that have no performers",
        )

    def handle(self, *args, **options):
        from avcrawler.wiki import WikiCrawler, codes_missing_performers

        site = options["site"]
        dry_run = options["dry_run"]

        if dry_run:
            self.stdout.write(self.style.WARNING("DRY RUN - nothing will be staged"))

        try:
            crawler = WikiCrawler(site, max_pages=options["max_pages"], dry_run=dry_run)
        except KeyError as e:
            raise CommandError(str(e).strip("'\""))

        codes = options["codes"]
        if options["missing_from"]:
            codes = codes_missing_performers(options["missing_from"], limit=options["limit"] or 100)
            self.stdout.write(f"{len(codes)} products without performers")

        with crawler:
            try:
                if codes is not None:
                    stats = crawler.crawl_product_codes(codes[: options["limit"]] if options["limit"] else codes)
                else:
                    stats = crawler.crawl(limit=options["limit"])
            except ValueError as e:
                raise CommandError(str(e))

        for key, value in stats.as_dict().items():
            self.stdout.write(f"  {key}: {value}")

        self.stdout.write(
            self.style.SUCCESS(
                f"{site}: {stats.entries_found} pairs found, {stats.entries_staged} newly staged"
            )
        )
