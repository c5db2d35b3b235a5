"""
Strategies shared by every extractor.

JSON-LD strategies come first in each chain, OpenGraph and document-wide
regex scans come last.
"""

import re
from typing import List, Optional

from avcrawler.extractors import structured_data
from avcrawler.extractors.base import Page
from avcrawler.extractors.parse_helpers import (
    clean_title,
    extract_price,
    extract_prices,
    is_valid_image_url,
    parse_date,
    parse_duration,
    resolve_url,
)


ISO_DURATION_PATTERN = re.compile(r"^P(?:T)?(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?$", re.IGNORECASE)

DURATION_LABEL_PATTERN = re.compile(r"(?:収録時間|再生時間|Duration)[：:\s]*(\d+)\s*(?:分|min)", re.IGNORECASE)
RELEASE_LABEL_PATTERN = re.compile(
    r"(?:配信開始日|発売日|配信日|Release(?:d| date)?)[：:\s]*(\d{4}[/\-.年]\s*\d{1,2}[/\-.月]\s*\d{1,2})",
    re.IGNORECASE,
)


# ============================================================
# JSON-LD
# ============================================================


def ld_title(page: Page) -> Optional[str]:
    return clean_title(page.product_ld["name"])


def ld_description(page: Page) -> Optional[str]:
    return page.product_ld["description"].strip()


def ld_performers(page: Page) -> List[str]:
    product = page.product_ld
    for key in ("actor", "actors", "performer"):
        names = structured_data.names_of(product.get(key))
        if names:
            return names
    return []


def ld_thumbnail(page: Page) -> Optional[str]:
    for url in structured_data.image_urls(page.product_ld):
        resolved = resolve_url(page.url, url)
        if is_valid_image_url(resolved):
            return resolved
    return None


def ld_price(page: Page) -> Optional[int]:
    return extract_price(structured_data.offer_price(page.product_ld))


def ld_release_date(page: Page):
    product = page.product_ld
    return parse_date(product.get("datePublished") or product.get("releaseDate"))


def ld_duration(page: Page) -> Optional[int]:
    value = page.product_ld["duration"]
    match = ISO_DURATION_PATTERN.match(value.strip())
    if match and any(match.groups()):
        hours, minutes, _ = (int(part or 0) for part in match.groups())
        return hours * 60 + minutes
    return parse_duration(value)


def ld_genres(page: Page) -> List[str]:
    genre = page.product_ld["genre"]
    if isinstance(genre, str):
        genre = [part.strip() for part in re.split(r"[,、]", genre)]
    return [str(item).strip() for item in genre if str(item).strip()]


# ============================================================
# OpenGraph / document
# ============================================================


def og_title(page: Page) -> Optional[str]:
    return clean_title(page.meta("og:title"))


def og_description(page: Page) -> Optional[str]:
    return page.meta("og:description") or page.meta("description")


def og_image(page: Page) -> Optional[str]:
    url = resolve_url(page.url, page.meta("og:image"))
    return url if is_valid_image_url(url) else None


def document_title(page: Page) -> Optional[str]:
    return clean_title(page.document_title)


def regex_duration(page: Page) -> Optional[int]:
    match = DURATION_LABEL_PATTERN.search(page.text)
    return int(match.group(1)) if match else None


def regex_release_date(page: Page):
    match = RELEASE_LABEL_PATTERN.search(page.text)
    return parse_date(match.group(1)) if match else None


def struck_price(page: Page) -> Optional[int]:
    """Largest struck-through price anywhere in the document."""
    values = []
    for element in page.soup.select("del, s, strike, .price_del, .original-price"):
        values.extend(extract_prices(element.get_text(" ")))
    return max(values) if values else None
