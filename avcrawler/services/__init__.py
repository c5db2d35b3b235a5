"""
Services module for the storefront crawler.

Contains:
- snapshot_store: Content-hashed raw page store and skip decision
- identity: Canonical product keys, performer and maker resolution
- upsert_writer: Idempotent persistence of extracted records
- sale_detector: Discount detection and supersede-on-change persistence
- crawl_runner: Per-source crawl loop, listing enumeration and run stats
- sitemap_parser: Sitemap and sitemap index expansion
"""

from avcrawler.services.crawl_runner import CrawlRunner, CrawlStats, StopCondition
from avcrawler.services.identity import IdentityResolver, merge_performer_names, resolve_product
from avcrawler.services.sale_detector import SaleDetector, SaleInfo, deactivate_expired_sales, detect_sale
from avcrawler.services.sitemap_parser import SitemapParseError, SitemapParser
from avcrawler.services.snapshot_store import SnapshotResult, SnapshotStore, should_skip
from avcrawler.services.upsert_writer import UpsertWriter, WriteResult

__all__ = [
    "CrawlRunner",
    "CrawlStats",
    "StopCondition",
    "IdentityResolver",
    "merge_performer_names",
    "resolve_product",
    "SaleDetector",
    "SaleInfo",
    "deactivate_expired_sales",
    "detect_sale",
    "SitemapParseError",
    "SitemapParser",
    "SnapshotResult",
    "SnapshotStore",
    "should_skip",
    "UpsertWriter",
    "WriteResult",
]
