"""
Sitemap Parser Service.

Parses sitemaps and sitemap indexes fetched through a PoliteFetcher, so
sitemap requests share the site's rate limit, proxy and retry policy.

Features:
- Parse sitemap.xml and sitemap index files
- Gzipped sitemaps (.xml.gz)
- Recursive index expansion with a URL cap
- Filtering by URL pattern
"""

import gzip
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Optional, Set
from xml.etree import ElementTree as ET

from avcrawler.fetchers.polite import PoliteFetcher

logger = logging.getLogger(__name__)


SITEMAP_NS = {"sm": "http://www.sitemaps.org/schemas/sitemap/0.9"}


class SitemapParseError(Exception):
    """Raised when a sitemap cannot be fetched or parsed."""

    pass


@dataclass
class SitemapURL:
    url: str
    sitemap_source: str
    lastmod: Optional[datetime] = None


@dataclass
class SitemapResult:
    """
    Result of parsing one sitemap document.

    Attributes:
        urls: Page URLs (urlset documents)
        is_index: Whether the document is a sitemap index
        child_sitemaps: Child sitemap URLs (index documents)
    """

    urls: List[SitemapURL] = field(default_factory=list)
    is_index: bool = False
    child_sitemaps: List[str] = field(default_factory=list)


def _find_text(element: ET.Element, tag: str) -> Optional[str]:
    node = element.find(f"sm:{tag}", SITEMAP_NS)
    if node is None:
        node = element.find(tag)
    if node is None or not node.text:
        return None
    return node.text.strip()


def _parse_lastmod(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.debug(f"Invalid sitemap lastmod: {value}")
        return None


def parse_sitemap_content(content: bytes, source_url: str) -> SitemapResult:
    """
    Parse raw sitemap bytes (plain or gzipped).

    Raises:
        SitemapParseError: If the document is not a sitemap
    """
    if content[:2] == b"\x1f\x8b":
        try:
            content = gzip.decompress(content)
        except OSError as e:
            raise SitemapParseError(f"Failed to decompress {source_url}: {e}") from e

    try:
        root = ET.fromstring(content)
    except ET.ParseError as e:
        raise SitemapParseError(f"Invalid XML in {source_url}: {e}") from e

    root_tag = root.tag.lower()
    if root_tag.endswith("sitemapindex"):
        entries = root.findall("sm:sitemap", SITEMAP_NS) or root.findall("sitemap")
        children = [loc for loc in (_find_text(entry, "loc") for entry in entries) if loc]
        logger.info(f"Parsed sitemap index {source_url} with {len(children)} child sitemaps")
        return SitemapResult(is_index=True, child_sitemaps=children)

    if root_tag.endswith("urlset"):
        urls = []
        for entry in root.findall("sm:url", SITEMAP_NS) or root.findall("url"):
            loc = _find_text(entry, "loc")
            if loc:
                urls.append(
                    SitemapURL(
                        url=loc,
                        sitemap_source=source_url,
                        lastmod=_parse_lastmod(_find_text(entry, "lastmod")),
                    )
                )
        logger.info(f"Parsed sitemap {source_url} with {len(urls)} URLs")
        return SitemapResult(urls=urls)

    raise SitemapParseError(f"Unknown sitemap root element: {root.tag}")


def filter_urls_by_pattern(urls: Iterable[str], patterns: List[str]) -> List[str]:
    """Keep URLs matching at least one regex pattern (all URLs if no patterns)."""
    if not patterns:
        return list(urls)
    compiled = [re.compile(pattern) for pattern in patterns]
    return [url for url in urls if any(regex.search(url) for regex in compiled)]


class SitemapParser:
    """Fetches and expands sitemaps with a PoliteFetcher."""

    def __init__(self, fetcher: PoliteFetcher, max_sitemaps: int = 50):
        self.fetcher = fetcher
        self.max_sitemaps = max_sitemaps

    def parse_sitemap(self, url: str) -> SitemapResult:
        """
        Fetch and parse one sitemap document.

        Raises:
            SitemapParseError: On HTTP errors or unparseable content
            NetworkError: On transport failure
        """
        response = self.fetcher.fetch_page(url)
        if response.status_code >= 400:
            raise SitemapParseError(f"HTTP {response.status_code} fetching {url}")
        return parse_sitemap_content(response.body or response.content.encode("utf-8"), url)

    def collect_urls(self, url: str, limit: Optional[int] = None) -> List[str]:
        """
        Page URLs reachable from a sitemap or sitemap index, in document order.

        Child sitemaps that fail to parse are skipped with a warning.
        """
        pending = [url]
        seen: Set[str] = set()
        urls: List[str] = []

        while pending and len(seen) < self.max_sitemaps:
            sitemap_url = pending.pop(0)
            if sitemap_url in seen:
                continue
            seen.add(sitemap_url)

            try:
                result = self.parse_sitemap(sitemap_url)
            except SitemapParseError as e:
                if sitemap_url == url:
                    raise
                logger.warning(f"Skipping sitemap {sitemap_url}: {e}")
                continue

            pending.extend(result.child_sitemaps)
            for entry in result.urls:
                if entry.url not in urls:
                    urls.append(entry.url)
                if limit and len(urls) >= limit:
                    return urls

        return urls
