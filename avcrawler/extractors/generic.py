"""
Generic storefront extractor.

Relies on embedded JSON-LD first and falls back to common storefront markup
(``.price``, ``[itemprop=price]``, ``del``, ``.cast``, definition tables).
Used for any registered site without a dedicated extractor and as the base
of the FANZA extractor.
"""

import re
from typing import Dict, List, Optional, Sequence
from urllib.parse import urlparse

from avcrawler.extractors import common
from avcrawler.extractors.base import Page, SourceExtractor, Strategy
from avcrawler.extractors.parse_helpers import (
    choose_price,
    clean_title,
    extract_price,
    extract_prices,
    parse_date,
    parse_duration,
    parse_performer_names,
)
from avcrawler.sources import SiteProfile, get_site_profile


CID_PATTERN = re.compile(r"[?&/]cid=([^/&?#]+)")

STRUCK_TAGS = ["del", "s", "strike"]

YEN_AMOUNT_PATTERN = re.compile(r"[¥￥]\s*(\d[\d,，]*)|(\d[\d,，]*)\s*円")

CAST_LABELS = ("出演者", "出演", "Cast", "Starring")
DURATION_LABELS = ("収録時間", "再生時間", "Duration")
RELEASE_LABELS = ("配信開始日", "発売日", "Release")


def _unstruck_text(element) -> str:
    """Text of element without struck-through prices."""
    parts = [
        str(string)
        for string in element.find_all(string=True)
        if string.find_parent(STRUCK_TAGS) is None and string.parent.name not in ("script", "style")
    ]
    return " ".join(parts)


def _first_labelled(page: Page, labels) -> Optional[str]:
    for label in labels:
        text = page.labelled_text(label)
        if text:
            return text
    return None


# ============================================================
# Field strategies
# ============================================================


def title_from_heading(page: Page) -> Optional[str]:
    return clean_title(page.select_text("h1"))


def price_from_itemprop(page: Page) -> Optional[int]:
    element = page.soup.select_one('[itemprop="price"]')
    return extract_price(element.get("content") or element.get_text())


def price_from_price_block(page: Page) -> Optional[int]:
    element = page.soup.select_one(".price, .product-price, #price")
    return choose_price(None, extract_prices(_unstruck_text(element)))


def price_from_document(page: Page) -> Optional[int]:
    # Explicit yen amounts only
    text = _unstruck_text(page.soup)
    values = [int(re.sub(r"[,，]", "", a or b)) for a, b in YEN_AMOUNT_PATTERN.findall(text)]
    return choose_price(None, values)


def performers_from_cast_block(page: Page) -> List[str]:
    links = page.soup.select(".cast a, .performers a, .actress a")
    if links:
        return [a.get_text().strip() for a in links if a.get_text().strip()]
    text = page.select_text(".cast, .performers, .actress")
    return [performer.name for performer in parse_performer_names(text)]


def performers_from_table(page: Page) -> List[str]:
    return [performer.name for performer in parse_performer_names(_first_labelled(page, CAST_LABELS))]


def duration_from_table(page: Page) -> Optional[int]:
    return parse_duration(_first_labelled(page, DURATION_LABELS))


def release_date_from_table(page: Page):
    return parse_date(_first_labelled(page, RELEASE_LABELS))


def sale_banner_text(page: Page) -> Optional[str]:
    return page.select_text(".sale_end, .campaign_end, .timesale_end, .sale_period, .sale-banner")


def document_text(page: Page) -> Optional[str]:
    return page.text


class GenericExtractor(SourceExtractor):
    """JSON-LD-first extractor for storefronts without bespoke markup rules."""

    landmark_selectors = (
        ".price",
        ".product-price",
        '[itemprop="price"]',
        "del",
        ".cast",
        ".performers",
        ".availability",
        '[itemprop="availability"]',
    )
    landmark_labels = CAST_LABELS + ("価格",)

    def __init__(self, profile: Optional[SiteProfile] = None):
        profile = profile or get_site_profile("GENERIC")
        self.source = profile.name
        super().__init__(profile)

    def field_chains(self) -> Dict[str, Sequence[Strategy]]:
        return {
            "title": (common.ld_title, common.og_title, title_from_heading, common.document_title),
            "description": (common.ld_description, common.og_description),
            "release_date": (common.ld_release_date, release_date_from_table, common.regex_release_date),
            "duration": (common.ld_duration, duration_from_table, common.regex_duration),
            "performers": (common.ld_performers, performers_from_cast_block, performers_from_table),
            "genres": (common.ld_genres,),
            "thumbnail_url": (common.ld_thumbnail, common.og_image),
            "price": (
                common.ld_price,
                price_from_itemprop,
                price_from_price_block,
                price_from_document,
            ),
            "regular_price": (common.struck_price,),
            "sale_text": (document_text,),
            "sale_banner_text": (sale_banner_text,),
        }

    def product_id_from_url(self, url: str) -> Optional[str]:
        match = CID_PATTERN.search(url)
        if match:
            return match.group(1)
        segments = [segment for segment in urlparse(url).path.split("/") if segment]
        if not segments:
            return None
        return re.sub(r"\.html?$", "", segments[-1])
