"""
Base classes for source extractors.

A SourceExtractor turns one raw detail page into a ProductRecord. Every field
is filled by an ordered chain of pure strategies ``(page) -> value | None``;
the first non-empty value that passes the field's sanity filter wins and a
strategy that blows up is simply skipped.

Placeholder pages (homepages, age checks, "{SOURCE}-{id}" stubs, pages without
any detail-page landmark) are rejected with ProductNotFound before any field
is extracted.
"""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date
from functools import cached_property
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from bs4 import BeautifulSoup

from avcrawler.extractors.parse_helpers import (
    is_plausible_duration,
    is_plausible_price,
    is_sample_video_url,
)
from avcrawler.extractors.structured_data import find_product, parse_json_ld
from avcrawler.extractors.validation import (
    TOP_PAGE_TITLE_PATTERNS,
    is_top_page_html,
    validate_product_data,
)
from avcrawler.sources import SiteProfile, get_site_profile

logger = logging.getLogger(__name__)


class ProductNotFound(Exception):
    """The fetched page is not a product detail page."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Product not found at {url}: {reason}")


class InvalidProduct(ProductNotFound):
    """The page looks like a product page but its data fails validation."""


# ============================================================
# Records
# ============================================================


@dataclass
class ReviewRecord:
    source_review_id: str
    content: str
    reviewer_name: Optional[str] = None
    rating: Optional[float] = None
    max_rating: float = 5
    title: Optional[str] = None


@dataclass
class RatingSummaryRecord:
    average_rating: float
    total_reviews: int
    max_rating: float = 5


@dataclass
class ProductRecord:
    """
    Normalized intermediate record produced by an extractor.

    Every field except the identifiers may be missing. ``regular_price`` is
    the struck-through price next to ``price`` when the page shows a discount;
    ``sale_text`` and ``sale_banner_text`` carry the raw text SaleDetector
    scans for the end of the discount window.
    """

    source: str
    source_product_id: str
    url: str

    title: Optional[str] = None
    description: Optional[str] = None
    release_date: Optional[date] = None
    duration: Optional[int] = None
    performers: List[str] = field(default_factory=list)
    genres: List[str] = field(default_factory=list)
    maker_name: Optional[str] = None
    labels: List[str] = field(default_factory=list)

    thumbnail_url: Optional[str] = None
    sample_images: List[str] = field(default_factory=list)
    sample_video_url: Optional[str] = None

    price: Optional[int] = None
    prices: Dict[str, int] = field(default_factory=dict)
    regular_price: Optional[int] = None
    sale_text: Optional[str] = None
    sale_banner_text: Optional[str] = None

    reviews: List[ReviewRecord] = field(default_factory=list)
    rating_summary: Optional[RatingSummaryRecord] = None
    affiliate_url: Optional[str] = None

    USABLE_FIELDS = (
        "title",
        "description",
        "release_date",
        "duration",
        "performers",
        "thumbnail_url",
        "sample_images",
        "price",
    )

    def has_usable_fields(self) -> bool:
        return any(getattr(self, name) for name in self.USABLE_FIELDS)


# ============================================================
# Page wrapper
# ============================================================


class Page:
    """Lazily parsed view of one HTML document."""

    def __init__(self, html: str, url: str, final_url: Optional[str] = None):
        self.html = html
        self.url = url
        self.final_url = final_url or url

    @cached_property
    def soup(self) -> BeautifulSoup:
        return BeautifulSoup(self.html, "lxml")

    @cached_property
    def json_ld(self) -> List[Dict[str, Any]]:
        return parse_json_ld(self.soup)

    @cached_property
    def product_ld(self) -> Optional[Dict[str, Any]]:
        return find_product(self.json_ld)

    @cached_property
    def text(self) -> str:
        return self.soup.get_text("\n")

    @property
    def document_title(self) -> Optional[str]:
        if self.soup.title and self.soup.title.string:
            return self.soup.title.string.strip()
        return None

    def select_text(self, selector: str) -> Optional[str]:
        element = self.soup.select_one(selector)
        if element is None:
            return None
        text = re.sub(r"\s+", " ", element.get_text(" ")).strip()
        return text or None

    def select_attr(self, selector: str, attr: str) -> Optional[str]:
        element = self.soup.select_one(selector)
        if element is None:
            return None
        value = element.get(attr)
        return value.strip() if isinstance(value, str) and value.strip() else None

    def meta(self, name: str) -> Optional[str]:
        """Content of ``<meta property=name>`` or ``<meta name=name>``."""
        element = self.soup.find("meta", attrs={"property": name}) or self.soup.find(
            "meta", attrs={"name": name}
        )
        if element is None:
            return None
        content = element.get("content")
        return content.strip() if content and content.strip() else None

    def labelled_cell(self, label: str):
        """The ``<td>`` following the first ``<th>`` whose text contains label."""
        for th in self.soup.find_all("th"):
            if label in th.get_text():
                return th.find_next_sibling("td")
        return None

    def labelled_text(self, label: str) -> Optional[str]:
        cell = self.labelled_cell(label)
        if cell is None:
            return None
        text = re.sub(r"\s+", " ", cell.get_text(" ")).strip()
        return text or None


# ============================================================
# Field chains
# ============================================================

Strategy = Callable[[Page], Any]

# Exceptions a strategy may raise on unexpected markup
STRATEGY_ERRORS = (AttributeError, IndexError, KeyError, TypeError, ValueError)


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == {}


def first_match(
    page: Page,
    strategies: Sequence[Strategy],
    field_name: str = "",
    accept: Optional[Callable[[Any], bool]] = None,
) -> Any:
    """
    Run strategies in order and return the first acceptable value.

    Args:
        page: Parsed page
        strategies: Ordered strategies, most reliable first
        field_name: Used in debug logs
        accept: Sanity filter; values it rejects fall through to the next strategy

    Returns:
        The first accepted value, or None when every strategy missed
    """
    for strategy in strategies:
        try:
            value = strategy(page)
        except STRATEGY_ERRORS as e:
            logger.debug(f"Strategy {getattr(strategy, '__name__', strategy)} for {field_name} failed: {e}")
            continue
        if _is_empty(value):
            continue
        if accept is not None and not accept(value):
            logger.debug(f"Rejected implausible {field_name}: {value!r}")
            continue
        return value
    return None


# Sanity filters shared by every extractor
FIELD_FILTERS: Dict[str, Callable[[Any], bool]] = {
    "duration": is_plausible_duration,
    "price": is_plausible_price,
    "regular_price": is_plausible_price,
    "sample_video_url": is_sample_video_url,
}


class SourceExtractor(ABC):
    """
    Base class for per-source extractors.

    Subclasses set ``source`` and ``landmark_selectors`` and implement
    ``field_chains()`` and ``product_id_from_url()``.
    """

    source: str = ""

    # CSS selectors of blocks only a detail page has (price, cast, availability)
    landmark_selectors: Tuple[str, ...] = ()

    # Labels of <th> cells only a detail page has
    landmark_labels: Tuple[str, ...] = ()

    def __init__(self, profile: Optional[SiteProfile] = None):
        self.profile = profile or get_site_profile(self.source)

    @abstractmethod
    def field_chains(self) -> Dict[str, Sequence[Strategy]]:
        """Map of ProductRecord field name to its ordered strategies."""

    @abstractmethod
    def product_id_from_url(self, url: str) -> Optional[str]:
        """Source-local product id encoded in a detail URL."""

    def affiliate_url(self, source_product_id: str) -> Optional[str]:
        return None

    def finalize(self, page: Page, record: ProductRecord) -> None:
        """Hook for cross-field fixes after every chain has run."""

    def has_landmarks(self, page: Page) -> bool:
        if page.product_ld is not None:
            return True
        if any(page.soup.select_one(selector) for selector in self.landmark_selectors):
            return True
        return any(page.labelled_cell(label) is not None for label in self.landmark_labels)

    def is_homepage_title(self, title: Optional[str]) -> bool:
        if not title:
            return False
        if any(pattern.search(title) for pattern in TOP_PAGE_TITLE_PATTERNS):
            return True
        return any(re.search(pattern, title) for pattern in self.profile.homepage_titles)

    def check_placeholder(self, page: Page) -> None:
        """
        Reject non-product pages.

        Raises:
            ProductNotFound: For homepages, age checks and landmark-free pages
        """
        if is_top_page_html(page.html, self.source, final_url=page.final_url):
            raise ProductNotFound(page.url, "top page or age check")
        if self.is_homepage_title(page.document_title):
            raise ProductNotFound(page.url, f"homepage title: {page.document_title}")
        if not self.has_landmarks(page):
            raise ProductNotFound(page.url, "no detail-page landmarks")

    def extract(
        self,
        html: str,
        url: str,
        source_product_id: Optional[str] = None,
        final_url: Optional[str] = None,
    ) -> ProductRecord:
        """
        Parse a detail page.

        Args:
            html: Raw page HTML
            url: Requested detail URL
            source_product_id: Source-local id, derived from the URL when omitted
            final_url: URL after redirects

        Returns:
            ProductRecord with every field the chains could fill

        Raises:
            ProductNotFound: If the page is a placeholder or has no usable fields
        """
        page = Page(html, url, final_url)
        self.check_placeholder(page)

        product_id = source_product_id or self.product_id_from_url(url)
        if not product_id:
            raise ProductNotFound(url, "no product id in URL")

        record = ProductRecord(source=self.source, source_product_id=product_id, url=url)
        for name, strategies in self.field_chains().items():
            value = first_match(page, strategies, name, FIELD_FILTERS.get(name))
            if value is not None:
                setattr(record, name, value)

        self.finalize(page, record)
        record.affiliate_url = record.affiliate_url or self.affiliate_url(product_id)

        if record.title:
            validation = validate_product_data(
                record.title, self.source, product_id, record.description
            )
            if not validation.is_valid:
                raise InvalidProduct(url, validation.reason)

        if not record.has_usable_fields():
            raise ProductNotFound(url, "no usable fields")

        return record
