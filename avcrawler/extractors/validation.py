"""
Placeholder and landing-page detection.

Storefronts answer unknown product ids with their homepage, an age-check page
or a stub titled "{SOURCE}-{id}". These checks run before field extraction so
a non-product page never turns into a Product.
"""

import re
from dataclasses import dataclass
from typing import Iterable, Optional
from urllib.parse import urlparse

from avcrawler.fetchers.age_gate import detect_age_gate


# Generic homepage/landing titles across storefronts
TOP_PAGE_TITLE_PATTERNS = [
    re.compile(r"^ソクミル-\d+$"),
    re.compile(r"^Japanska-\d+$"),
    re.compile(r"^FC2動画アダルト$"),
    re.compile(r"^MGS動画\(成人認証\)"),
    re.compile(r"^アダルト動画.*ソクミル"),
    re.compile(r"^無修正動画.*カリビアンコム"),
    re.compile(r"^エロ動画・アダルトビデオ\s*-MGS動画"),
    re.compile(r"^MGS動画＜プレステージ\s*グループ＞$"),
]

TOP_PAGE_DESCRIPTION_PATTERNS = [
    re.compile(r"アダルト動画・エロ動画ソクミル"),
    re.compile(r"人気のアダルトビデオを高画質・低価格"),
    re.compile(r"全作品無料のサンプル動画付き"),
    re.compile(r"18歳未満.*閲覧.*禁止"),
    re.compile(r"年齢確認.*18歳以上"),
    re.compile(r"プレステージグループのMGS動画は、10年以上の運営実績"),
    re.compile(r"独占作品をはじめ、人気AV女優、素人、アニメ、VR作品など"),
]

# Source-specific homepage markers found anywhere in the HTML
SOURCE_TOP_PAGE_PATTERNS = {
    "MGS": [re.compile(r"MGS動画\(成人認証\)"), re.compile(r"年齢確認.*18歳以上")],
    "FANZA": [re.compile(r"FANZA.*トップページ"), re.compile(r"age_check/=/declared")],
    "FC2": [re.compile(r"FC2動画.*トップ"), re.compile(r"FC2コンテンツマーケット")],
}

# Final URL paths that mean a detail request was bounced to a listing/top page
REDIRECT_PATH_PATTERNS = [
    re.compile(r"^/?$"),
    re.compile(r"/list\.html$"),
    re.compile(r"/search"),
    re.compile(r"/age[-_]?check", re.IGNORECASE),
    re.compile(r"/confirm", re.IGNORECASE),
]

MIN_TITLE_LENGTH = 5


@dataclass
class ProductValidation:
    is_valid: bool
    reason: Optional[str] = None


def validate_product_data(
    title: Optional[str],
    source: str,
    source_product_id: str,
    description: Optional[str] = None,
) -> ProductValidation:
    """
    Reject titles and descriptions that belong to placeholder pages.

    Args:
        title: Extracted title
        source: Source name used in placeholder titles
        source_product_id: Product id used in placeholder titles
        description: Extracted description

    Returns:
        ProductValidation with the rejection reason when invalid
    """
    if not title or not title.strip():
        return ProductValidation(False, "empty title")

    placeholder = re.compile(
        rf"^{re.escape(source)}-{re.escape(source_product_id)}$", re.IGNORECASE
    )
    if placeholder.match(title):
        return ProductValidation(False, "placeholder title")

    for pattern in TOP_PAGE_TITLE_PATTERNS:
        if pattern.search(title):
            return ProductValidation(False, f"top page title: {title}")

    if description:
        for pattern in TOP_PAGE_DESCRIPTION_PATTERNS:
            if pattern.search(description):
                return ProductValidation(False, "top page description")

    if len(title.strip()) < MIN_TITLE_LENGTH:
        return ProductValidation(False, f"title too short: {title}")

    return ProductValidation(True)


def matches_title(title: str, patterns: Iterable[str]) -> bool:
    return any(re.search(pattern, title) for pattern in patterns)


def is_top_page_html(html: str, source: str, final_url: Optional[str] = None) -> bool:
    """
    Detect homepage or age-check HTML served in place of a detail page.
    """
    if detect_age_gate(html, final_url=final_url, threshold=0).is_age_gate:
        return True

    for pattern in SOURCE_TOP_PAGE_PATTERNS.get(source.upper(), []):
        if pattern.search(html):
            return True

    return False


def detect_redirect(original_url: str, final_url: str) -> Optional[str]:
    """
    Classify a redirect away from a detail URL.

    Returns:
        "host_changed", "to_top_page" or None when the request stayed put
    """
    if not final_url or final_url == original_url:
        return None

    original, final = urlparse(original_url), urlparse(final_url)
    if original.hostname != final.hostname:
        return "host_changed"

    if final.path == original.path:
        return None

    for pattern in REDIRECT_PATH_PATTERNS:
        if pattern.search(final.path):
            return "to_top_page"

    return None
