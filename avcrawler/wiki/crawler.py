"""
Wiki Crawler.

Breadth-first discovery over an auxiliary wiki, independent of the storefront
crawl. Detail pages yield (product code, performer name) pairs that are
written to WikiCrawlStaging with conflict-ignore semantics; linking them to
products is a separate pass (``avcrawler.wiki.reconcile``).
"""

import logging
from collections import deque
from dataclasses import asdict, dataclass
from typing import Deque, Iterable, List, Optional, Set
from urllib.parse import urldefrag, urljoin

from django.conf import settings

from avcrawler import monitoring
from avcrawler.extractors.base import Page
from avcrawler.fetchers.encoding import decode_html
from avcrawler.fetchers.polite import FetchResponse, NetworkError, PoliteFetcher
from avcrawler.models import WikiCrawlStaging
from avcrawler.services.sitemap_parser import SitemapParseError, parse_sitemap_content
from avcrawler.wiki.sites import WikiEntry, WikiSite, get_wiki_site

logger = logging.getLogger(__name__)


@dataclass
class WikiCrawlStats:
    pages_fetched: int = 0
    detail_pages: int = 0
    entries_found: int = 0
    entries_staged: int = 0
    errors: int = 0

    def as_dict(self):
        return asdict(self)


def stage_entries(site: str, entries: Iterable[WikiEntry]) -> int:
    """
    Insert staging rows, ignoring (site, code, name) conflicts.

    Returns:
        Number of rows actually inserted
    """
    rows = [
        WikiCrawlStaging(
            site=site,
            product_code=entry.product_code[:100],
            performer_name=entry.performer_name[:100],
            source_url=entry.source_url,
        )
        for entry in entries
    ]
    if not rows:
        return 0
    before = WikiCrawlStaging.objects.filter(site=site).count()
    WikiCrawlStaging.objects.bulk_create(rows, ignore_conflicts=True)
    return WikiCrawlStaging.objects.filter(site=site).count() - before


class WikiCrawler:
    """
    BFS crawler for one wiki site.

    Usage:
        with WikiCrawler("av-wiki", max_pages=500) as crawler:
            stats = crawler.crawl()
    """

    def __init__(
        self,
        site: str,
        fetcher: Optional[PoliteFetcher] = None,
        max_pages: Optional[int] = None,
        dry_run: bool = False,
    ):
        self.site: WikiSite = get_wiki_site(site)
        self._owns_fetcher = fetcher is None
        self.fetcher = fetcher or PoliteFetcher(self.site.profile)
        self.max_pages = max_pages or getattr(settings, "CRAWLER_WIKI_MAX_PAGES", 500)
        self.dry_run = dry_run
        self.stats = WikiCrawlStats()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def close(self):
        if self._owns_fetcher:
            self.fetcher.close()

    def _fetch(self, url: str) -> Optional[FetchResponse]:
        try:
            response = self.fetcher.fetch_page(url)
        except NetworkError as e:
            logger.error(f"Failed to fetch {url}: {e}")
            self.stats.errors += 1
            return None
        self.stats.pages_fetched += 1
        if not response.ok:
            logger.info(f"HTTP {response.status_code} for {url}")
            if response.is_server_error:
                self.stats.errors += 1
            return None
        return response

    def _decode(self, response: FetchResponse) -> str:
        if not response.body:
            return response.content
        return decode_html(response.body, response.final_url or response.url, self.site.profile.encoding)

    def discover_links(self, html: str, base_url: str) -> List[str]:
        """Detail and index links on a page, absolute and without fragments."""
        page = Page(html, base_url)
        links: List[str] = []
        for a in page.soup.find_all("a", href=True):
            url = urldefrag(urljoin(base_url, a["href"]))[0]
            if url not in links and (self.site.is_detail(url) or self.site.is_followable(url)):
                links.append(url)
        return links

    def process_detail(self, html: str, url: str) -> List[WikiEntry]:
        """Parse and stage one detail page."""
        self.stats.detail_pages += 1
        entries = self.site.parse(Page(html, url))
        self.stats.entries_found += len(entries)
        if not entries:
            return entries

        if self.dry_run:
            for entry in entries:
                logger.info(f"[dry-run] {self.site.name}: {entry.product_code} -> {entry.performer_name}")
        else:
            self.stats.entries_staged += stage_entries(self.site.name, entries)
        return entries

    def _expand_sitemap(self, response: FetchResponse, url: str) -> Optional[List[str]]:
        try:
            result = parse_sitemap_content(response.body or response.content.encode("utf-8"), url)
        except SitemapParseError as e:
            logger.warning(f"Unparseable sitemap {url}: {e}")
            return None
        urls = result.child_sitemaps + [entry.url for entry in result.urls]
        return [u for u in urls if self.site.is_detail(u) or self.site.is_followable(u)]

    def crawl(self, limit: Optional[int] = None, start_urls: Optional[List[str]] = None) -> WikiCrawlStats:
        """
        Run the BFS until the queue is empty or a cap is reached.

        Args:
            limit: Maximum number of detail pages to parse
            start_urls: Override of the site's start URLs
        """
        queue: Deque[str] = deque(start_urls or self.site.start_urls)
        visited: Set[str] = set()
        logger.info(f"Starting wiki crawl of {self.site.name} (max_pages={self.max_pages}, limit={limit})")

        while queue and self.stats.pages_fetched < self.max_pages:
            if limit and self.stats.detail_pages >= limit:
                break
            url = queue.popleft()
            if url in visited:
                continue
            visited.add(url)

            response = self._fetch(url)
            if response is None:
                continue

            if url.endswith(".xml") or url.endswith(".xml.gz"):
                links = self._expand_sitemap(response, url) or []
            else:
                html = self._decode(response)
                if self.site.is_detail(url):
                    try:
                        self.process_detail(html, url)
                    except Exception as e:
                        logger.exception(f"Failed to process wiki page {url}: {e}")
                        monitoring.capture_crawl_error(e, source=self.site.name, url=url, stage="wiki")
                        self.stats.errors += 1
                links = self.discover_links(html, url)

            queue.extend(link for link in links if link not in visited)

        logger.info(f"Wiki crawl of {self.site.name} finished: {self.stats.as_dict()}")
        return self.stats

    def crawl_product_codes(self, product_codes: Iterable[str]) -> WikiCrawlStats:
        """
        Fetch the article of each product code directly.

        Raises:
            ValueError: If the site has no per-code article URLs
        """
        if not self.site.detail_url_template:
            raise ValueError(f"{self.site.name} has no per-product article URLs")

        for code in product_codes:
            if self.stats.pages_fetched >= self.max_pages:
                break
            url = self.site.detail_url(code)
            response = self._fetch(url)
            if response is None:
                continue
            try:
                self.process_detail(self._decode(response), url)
            except Exception as e:
                logger.exception(f"Failed to process wiki page {url}: {e}")
                monitoring.capture_crawl_error(e, source=self.site.name, url=url, stage="wiki")
                self.stats.errors += 1

        logger.info(f"Wiki lookup on {self.site.name} finished: {self.stats.as_dict()}")
        return self.stats
