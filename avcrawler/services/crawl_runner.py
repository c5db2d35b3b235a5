"""
Crawl Runner Service.

Drives one source crawl:

    fetch -> snapshot -> (skip?) -> extract -> write -> sale -> mark processed

Every page ends in exactly one outcome counted in CrawlStats; no exception
escapes a single page. Listing enumeration stops after a number of
consecutive empty pages or consecutive pages without unseen product ids.
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Tuple

from django.conf import settings
from django.db import DatabaseError
from django.utils import timezone

from avcrawler import monitoring
from avcrawler.extractors import InvalidProduct, ProductNotFound, SourceExtractor, get_extractor
from avcrawler.extractors import mgs
from avcrawler.fetchers.encoding import decode_html
from avcrawler.fetchers.polite import FetchResponse, NetworkError, PoliteFetcher
from avcrawler.models import CrawlRun, CrawlRunStatus, ProductSource
from avcrawler.services.sale_detector import SaleDetector, detect_sale
from avcrawler.services.sitemap_parser import SitemapParser
from avcrawler.services.snapshot_store import SnapshotStore, should_skip
from avcrawler.services.upsert_writer import UpsertWriter
from avcrawler.sources import get_site_profile

logger = logging.getLogger(__name__)


# Page outcomes, named after the CrawlStats counter they increment
NEW = "new"
UPDATED = "updated"
SKIPPED_UNCHANGED = "skipped_unchanged"
SKIPPED_INVALID = "skipped_invalid"
NOT_FOUND = "not_found"
ERRORS = "errors"
EXTRACTED = "extracted"


@dataclass
class CrawlStats:
    """Counters of one crawl run."""

    fetched: int = 0
    new: int = 0
    updated: int = 0
    skipped_unchanged: int = 0
    skipped_invalid: int = 0
    not_found: int = 0
    errors: int = 0
    extracted: int = 0
    raw_saved: int = 0
    sales_saved: int = 0
    started_at: datetime = field(default_factory=timezone.now)
    completed_at: Optional[datetime] = None

    def record(self, outcome: str) -> str:
        setattr(self, outcome, getattr(self, outcome) + 1)
        return outcome

    def finish(self) -> None:
        self.completed_at = timezone.now()

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()

    def as_dict(self) -> Dict:
        data = asdict(self)
        data["started_at"] = self.started_at.isoformat()
        data["completed_at"] = self.completed_at.isoformat() if self.completed_at else None
        data["duration_seconds"] = self.duration_seconds
        return data

    def summary(self) -> str:
        return (
            f"fetched={self.fetched} new={self.new} updated={self.updated} "
            f"unchanged={self.skipped_unchanged} invalid={self.skipped_invalid} "
            f"not_found={self.not_found} errors={self.errors} "
            f"raw_saved={self.raw_saved} sales_saved={self.sales_saved}"
        )


class StopCondition:
    """
    Two-counter stop rule for listing enumeration.

    Stops after ``max_empty_pages`` consecutive pages without any product id,
    or ``max_no_new_pages`` consecutive pages whose ids were all seen before.
    A threshold of 0 disables that counter.
    """

    def __init__(self, max_empty_pages: Optional[int] = None, max_no_new_pages: Optional[int] = None):
        self.max_empty_pages = (
            max_empty_pages if max_empty_pages is not None else getattr(settings, "CRAWLER_MAX_EMPTY_PAGES", 3)
        )
        self.max_no_new_pages = (
            max_no_new_pages
            if max_no_new_pages is not None
            else getattr(settings, "CRAWLER_MAX_NO_NEW_PAGES", 3)
        )
        self.empty_streak = 0
        self.no_new_streak = 0
        self.reason: Optional[str] = None

    def observe(self, ids_on_page: int, new_ids: int) -> bool:
        """Feed one listing page; returns True when enumeration should stop."""
        if ids_on_page == 0:
            self.empty_streak += 1
            self.no_new_streak = 0
        else:
            self.empty_streak = 0
            self.no_new_streak = self.no_new_streak + 1 if new_ids == 0 else 0

        if self.max_empty_pages and self.empty_streak >= self.max_empty_pages:
            self.reason = f"{self.empty_streak} consecutive empty pages"
        elif self.max_no_new_pages and self.no_new_streak >= self.max_no_new_pages:
            self.reason = f"{self.no_new_streak} consecutive pages without new products"
        return self.reason is not None


@dataclass(frozen=True)
class ListingAdapter:
    """Functions that page through a source's search listing."""

    listing_url: Callable[..., str]
    parse_listing: Callable[[str], List[str]]
    parse_total_pages: Callable[[str], Optional[int]]
    detail_url: Callable[[str], str]


LISTINGS: Dict[str, ListingAdapter] = {
    "MGS": ListingAdapter(
        listing_url=mgs.listing_url,
        parse_listing=mgs.parse_listing,
        parse_total_pages=mgs.parse_total_pages,
        detail_url=mgs.detail_url,
    ),
}


class CrawlRunner:
    """
    Sequential crawler for one source.

    Usage:
        with CrawlRunner("MGS", force=False) as runner:
            stats = runner.crawl_listing(sort="new", limit=100)
    """

    def __init__(
        self,
        source: str,
        fetcher: Optional[PoliteFetcher] = None,
        store: Optional[SnapshotStore] = None,
        extractor: Optional[SourceExtractor] = None,
        writer: Optional[UpsertWriter] = None,
        sale_detector: Optional[SaleDetector] = None,
        force: bool = False,
        dry_run: bool = False,
    ):
        self.profile = get_site_profile(source)
        self.source = self.profile.name
        self._owns_fetcher = fetcher is None
        self.fetcher = fetcher or PoliteFetcher(self.profile)
        self.store = store or SnapshotStore()
        self.extractor = extractor or get_extractor(self.source)
        self.writer = writer or UpsertWriter()
        self.sale_detector = sale_detector or SaleDetector()
        self.force = force
        self.dry_run = dry_run
        self.stats = CrawlStats()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def close(self):
        if self._owns_fetcher:
            self.fetcher.close()

    # ============================================================
    # Single page
    # ============================================================

    def process_url(self, url: str, product_id: Optional[str] = None) -> str:
        """
        Process one detail page.

        Returns:
            The outcome counted in ``self.stats``
        """
        monitoring.add_crawl_breadcrumb(self.source, url, message="Processing page")
        try:
            outcome = self._process(url, product_id)
        except Exception as e:
            logger.exception(f"Unexpected error processing {url}: {e}")
            monitoring.capture_crawl_error(e, source=self.source, url=url, stage="process")
            outcome = ERRORS
        return self.stats.record(outcome)

    def _fetch(self, url: str) -> Tuple[Optional[FetchResponse], Optional[str]]:
        try:
            response = self.fetcher.fetch_page(url)
        except NetworkError as e:
            logger.error(f"Failed to fetch {url}: {e}")
            return None, ERRORS

        self.stats.fetched += 1
        if response.is_client_error:
            logger.info(f"HTTP {response.status_code} for {url}")
            return None, NOT_FOUND
        if not response.ok:
            logger.error(f"HTTP {response.status_code} for {url} after retries")
            return None, ERRORS
        return response, None

    def _decode(self, response: FetchResponse) -> str:
        if not response.body:
            return response.content
        return decode_html(response.body, response.final_url or response.url, self.profile.encoding)

    def _process(self, url: str, product_id: Optional[str]) -> str:
        response, failure = self._fetch(url)
        if failure:
            return failure
        html = self._decode(response)

        page_key = product_id or self.extractor.product_id_from_url(url)
        if not page_key:
            logger.warning(f"No product id for {url}")
            return SKIPPED_INVALID

        if self.dry_run:
            return self._dry_run(html, url, page_key, response.final_url)

        snapshot = self.store.upsert(self.source, page_key, url, html)
        if snapshot.changed:
            self.stats.raw_saved += 1
        if should_skip(snapshot, self.force):
            logger.debug(f"Unchanged and processed, skipping {self.source}:{page_key}")
            return SKIPPED_UNCHANGED

        try:
            record = self.extractor.extract(html, url, source_product_id=page_key, final_url=response.final_url)
        except InvalidProduct as e:
            logger.info(f"Invalid product data at {url}: {e.reason}")
            self.store.mark_processed(snapshot.id)
            return SKIPPED_INVALID
        except ProductNotFound as e:
            logger.info(f"Not a product page: {url} ({e.reason})")
            self.store.mark_processed(snapshot.id)
            return NOT_FOUND

        try:
            result = self.writer.write(record)
        except DatabaseError as e:
            logger.error(f"Failed to write {self.source}:{page_key}: {e}")
            monitoring.capture_crawl_error(e, source=self.source, url=url, stage="write")
            return ERRORS

        sale = detect_sale(record.price, record.regular_price, record.sale_text, record.sale_banner_text)
        try:
            if self.sale_detector.record(result.product_source, sale):
                self.stats.sales_saved += 1
        except DatabaseError as e:
            logger.warning(f"Failed to record sale for {self.source}:{page_key}: {e}")

        self.store.mark_processed(snapshot.id)

        outcome = NEW if result.source_created else UPDATED
        logger.info(f"{outcome}: {self.source}:{page_key} {record.title!r}")
        return outcome

    def _dry_run(self, html: str, url: str, page_key: str, final_url: str) -> str:
        try:
            record = self.extractor.extract(html, url, source_product_id=page_key, final_url=final_url)
        except InvalidProduct as e:
            logger.info(f"[dry-run] Invalid product data at {url}: {e.reason}")
            return SKIPPED_INVALID
        except ProductNotFound as e:
            logger.info(f"[dry-run] Not a product page: {url} ({e.reason})")
            return NOT_FOUND
        logger.info(
            f"[dry-run] {self.source}:{page_key} title={record.title!r} "
            f"price={record.price} performers={record.performers}"
        )
        return EXTRACTED

    # ============================================================
    # Runs
    # ============================================================

    def run(self, targets: Iterable[Tuple[str, Optional[str]]], limit: Optional[int] = None, options=None) -> CrawlStats:
        """
        Process (url, product_id) pairs and record the run.

        Args:
            targets: Detail URLs with optional source-local ids
            limit: Maximum number of pages to process
            options: Command options stored on the CrawlRun row
        """
        crawl_run = None
        if not self.dry_run:
            crawl_run = CrawlRun.objects.create(source=self.source, options=options or {})
        logger.info(f"Starting {self.source} crawl (force={self.force}, dry_run={self.dry_run})")

        processed = 0
        try:
            for url, product_id in targets:
                if limit and processed >= limit:
                    break
                self.process_url(url, product_id)
                processed += 1
        except Exception as e:
            self.stats.finish()
            logger.exception(f"Crawl for {self.source} aborted: {e}")
            if crawl_run is not None:
                crawl_run.status = CrawlRunStatus.FAILED
                crawl_run.error_message = str(e)
                crawl_run.stats = self.stats.as_dict()
                crawl_run.completed_at = self.stats.completed_at
                crawl_run.save()
            raise

        self.stats.finish()
        if crawl_run is not None:
            crawl_run.status = CrawlRunStatus.COMPLETED
            crawl_run.stats = self.stats.as_dict()
            crawl_run.completed_at = self.stats.completed_at
            crawl_run.save()

        logger.info(f"Crawl for {self.source} completed: {self.stats.summary()}")
        if self.stats.errors and self.stats.errors >= getattr(settings, "CRAWLER_ERROR_ALERT_THRESHOLD", 50):
            monitoring.capture_crawl_summary(self.source, self.stats.as_dict())
        return self.stats

    def crawl_urls(self, urls: Iterable[str], limit: Optional[int] = None, options=None) -> CrawlStats:
        return self.run(((url, None) for url in urls), limit=limit, options=options)

    def iter_listing(
        self,
        sort: str = "new",
        direction: str = "asc",
        start_page: Optional[int] = None,
        max_pages: Optional[int] = None,
        offset: int = 0,
        stop: Optional[StopCondition] = None,
    ) -> Iterator[Tuple[str, str]]:
        """
        Yield (detail_url, product_id) from the source's listing pages.

        Args:
            sort: Listing sort order ("new" or "old")
            direction: "asc" pages 1, 2, ...; "desc" pages down from start_page
                (or from the last page)
            start_page: First listing page
            max_pages: Maximum listing pages to read
            offset: Number of product ids to skip
            stop: Stop rule (built from settings when omitted)

        Raises:
            ValueError: If the source has no listing support
        """
        adapter = LISTINGS.get(self.source)
        if adapter is None:
            raise ValueError(f"{self.source} has no listing enumeration; crawl URLs or a sitemap instead")

        stop = stop or StopCondition()
        if self.force:
            # Recrawls revisit known products
            stop.max_no_new_pages = 0

        step = -1 if direction == "desc" else 1
        page = start_page or 1
        if direction == "desc" and start_page is None:
            page = self._total_pages(adapter, sort) or 1

        seen = set()
        skipped = 0
        pages_read = 0
        while page >= 1 and (max_pages is None or pages_read < max_pages):
            ids = self._listing_ids(adapter, page, sort)
            pages_read += 1

            unseen = [product_id for product_id in ids if product_id not in seen]
            seen.update(unseen)
            known = set(
                ProductSource.objects.filter(source=self.source, source_product_id__in=unseen).values_list(
                    "source_product_id", flat=True
                )
            )
            fresh = [product_id for product_id in unseen if product_id not in known]
            logger.info(f"{self.source} listing page {page}: {len(ids)} ids, {len(fresh)} new")

            for product_id in unseen:
                if skipped < offset:
                    skipped += 1
                    continue
                yield adapter.detail_url(product_id), product_id

            if stop.observe(len(ids), len(fresh)):
                logger.info(f"Stopping {self.source} listing at page {page}: {stop.reason}")
                break
            page += step

    def _listing_ids(self, adapter: ListingAdapter, page: int, sort: str) -> List[str]:
        url = adapter.listing_url(page, sort=sort)
        try:
            response = self.fetcher.fetch_page(url)
        except NetworkError as e:
            logger.error(f"Failed to fetch listing page {page}: {e}")
            self.stats.errors += 1
            return []
        if not response.ok:
            logger.warning(f"HTTP {response.status_code} for listing page {page}")
            return []
        return adapter.parse_listing(self._decode(response))

    def _total_pages(self, adapter: ListingAdapter, sort: str) -> Optional[int]:
        try:
            response = self.fetcher.fetch_page(adapter.listing_url(1, sort=sort))
        except NetworkError as e:
            logger.error(f"Failed to fetch first listing page: {e}")
            return None
        if not response.ok:
            return None
        return adapter.parse_total_pages(self._decode(response))

    def crawl_listing(
        self,
        sort: str = "new",
        direction: str = "asc",
        start_page: Optional[int] = None,
        max_pages: Optional[int] = None,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> CrawlStats:
        options = {
            "mode": "listing",
            "sort": sort,
            "direction": direction,
            "start_page": start_page,
            "max_pages": max_pages,
            "offset": offset,
            "limit": limit,
            "force": self.force,
        }
        targets = self.iter_listing(sort, direction, start_page, max_pages, offset)
        return self.run(targets, limit=limit, options=options)

    def crawl_sitemap(self, sitemap_url: str, offset: int = 0, limit: Optional[int] = None) -> CrawlStats:
        urls = SitemapParser(self.fetcher).collect_urls(sitemap_url)
        urls = [url for url in urls if self.extractor.product_id_from_url(url)][offset:]
        options = {"mode": "sitemap", "sitemap_url": sitemap_url, "offset": offset, "limit": limit, "force": self.force}
        return self.run(((url, None) for url in urls), limit=limit, options=options)
