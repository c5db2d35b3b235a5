"""
MGS (mgstage.com) detail and listing page extractor.

Detail pages carry a ``<th>``/``<td>`` details table (配信開始日, 出演, 収録時間,
ジャンル, メーカー), a ``div.price_list`` block with per-format prices and
radio buttons, sample image/video links and a user review section.
"""

import hashlib
import logging
import re
from typing import Dict, List, Optional, Sequence
from urllib.parse import urlencode

from django.conf import settings

from avcrawler.extractors import common
from avcrawler.extractors.base import (
    Page,
    RatingSummaryRecord,
    ReviewRecord,
    SourceExtractor,
    Strategy,
)
from avcrawler.extractors.parse_helpers import (
    choose_price,
    clean_title,
    extract_price,
    extract_prices,
    is_excluded_media,
    parse_date,
    resolve_url,
)

logger = logging.getLogger(__name__)


MGS_BASE_URL = "https://www.mgstage.com"

PRODUCT_ID_PATTERN = re.compile(r"product_detail/([^/?#]+)")

IMAGE_LINK_PATTERN = re.compile(r"\.(jpg|jpeg|png|gif|webp)$", re.IGNORECASE)
SAMPLE_URL_SCRIPT_PATTERN = re.compile(r"sample_url['\":\s]+['\"]([^'\"]+)['\"]")
TITLE_SUFFIX_PATTERN = re.compile(r"\s*[-|｜]\s*(?:エロ動画・アダルトビデオ\s*-)?MGS動画.*$")

RATING_SUMMARY_PATTERN = re.compile(r"(\d+)点満点中\s*([\d.]+)点.*レビュー数\s*(\d+)\s*件", re.DOTALL)
STAR_CLASS_PATTERN = re.compile(r"star_(\d+)")
REVIEWER_SUFFIX = "さんのレビュー"

PAGER_TOTAL_PATTERN = re.compile(r"/\s*(\d+)")


# ============================================================
# Field strategies
# ============================================================


def title_from_heading(page: Page) -> Optional[str]:
    return clean_title(page.select_text("h1.tag"))


def title_from_document(page: Page) -> Optional[str]:
    title = page.document_title
    return clean_title(TITLE_SUFFIX_PATTERN.sub("", title)) if title else None


def release_date_from_table(page: Page):
    return parse_date(page.labelled_text("配信開始日"))


def performers_from_links(page: Page) -> List[str]:
    cell = page.labelled_cell("出演")
    return [a.get_text().strip() for a in cell.find_all("a") if a.get_text().strip()]


def performers_from_text(page: Page) -> List[str]:
    cell = page.labelled_cell("出演")
    return [part.strip() for part in re.split(r"[、,\n]", cell.get_text()) if part.strip()]


def _absolute(url: str) -> str:
    return resolve_url(MGS_BASE_URL, url)


def sample_images_from_links(page: Page) -> List[str]:
    thumbnail = common.og_image(page)
    images: List[str] = []

    def add(url: Optional[str]):
        if not url or is_excluded_media(url):
            return
        full = _absolute(url)
        if full not in images and full != thumbnail:
            images.append(full)

    for a in page.soup.select("#sample-photo a[href], a.sample_image[href]"):
        add(a["href"])
    for a in page.soup.select('a[href*="pics/"], a[href*="/sample/"]'):
        if IMAGE_LINK_PATTERN.search(a["href"]):
            add(a["href"])
    return images


def sample_images_from_thumbnails(page: Page) -> List[str]:
    images: List[str] = []
    for img in page.soup.select(".sample-photo img, .sample-box img, .sample-image img, .product-sample img"):
        src = img.get("src") or img.get("data-src")
        if src and not is_excluded_media(src):
            full = _absolute(src)
            if full not in images:
                images.append(full)
    return images


def video_from_source_tag(page: Page) -> Optional[str]:
    src = page.select_attr("video source[src]", "src")
    return _absolute(src) if src else None


def video_from_data_attribute(page: Page) -> Optional[str]:
    src = page.select_attr("[data-video-url]", "data-video-url")
    return _absolute(src) if src else None


def video_from_sample_movie_link(page: Page) -> Optional[str]:
    href = page.select_attr('a[href*="sample_movie"]', "href")
    return _absolute(href) if href else None


def video_from_script(page: Page) -> Optional[str]:
    for script in page.soup.find_all("script"):
        match = SAMPLE_URL_SCRIPT_PATTERN.search(script.get_text())
        if match:
            return _absolute(match.group(1))
    return None


def video_from_player_link(page: Page) -> Optional[str]:
    href = page.select_attr('a.button_sample[href*="sampleplayer"]', "href") or page.select_attr(
        'p.sample_movie_btn a[href*="sampleplayer"]', "href"
    )
    return _absolute(href) if href else None


def _price_from_radio(page: Page, button_id: str) -> Optional[int]:
    # value format: download_hd,0,<uuid>,<PRODUCT-ID>,<price>
    value = page.select_attr(f'input[name="price"][id="{button_id}"]', "value")
    if not value:
        return None
    parts = value.split(",")
    if len(parts) >= 5 and parts[4].strip().isdigit():
        return int(parts[4]) or None
    return None


def typed_prices(page: Page) -> Dict[str, int]:
    prices: Dict[str, int] = {}
    hd = extract_price(page.select_text("#download_hd_price")) or _price_from_radio(page, "download_hd_btn")
    sd = extract_price(page.select_text("#download_sd_price")) or _price_from_radio(page, "download_sd_btn")
    streaming = extract_price(page.select_text("#streaming_price"))

    for price_type, value in (("hd", hd), ("download", sd), ("streaming", streaming)):
        if value:
            prices[price_type] = value
    return prices


def price_from_labelled_formats(page: Page) -> Optional[int]:
    # HD beats SD beats streaming
    prices = typed_prices(page)
    for price_type in ("hd", "download", "streaming"):
        if price_type in prices:
            return prices[price_type]
    return None


def price_from_table(page: Page) -> Optional[int]:
    text = page.labelled_text("価格")
    prices = extract_prices(text)
    return prices[0] if prices else None


def price_from_price_block(page: Page) -> Optional[int]:
    block = page.select_text("div.price_list")
    return choose_price(None, extract_prices(block))


def struck_price_from_price_block(page: Page) -> Optional[int]:
    values = []
    for element in page.soup.select("div.price_list del, div.price_list .price_del, div.price_list s, div.price_list strike"):
        values.extend(extract_prices(element.get_text(" ")))
    return max(values) if values else None


def sale_banner_text(page: Page) -> Optional[str]:
    texts = [el.get_text(" ").strip() for el in page.soup.select(".sale_end, .campaign_end, .timesale_end, .sale_period")]
    return " ".join(text for text in texts if text) or None


def document_text(page: Page) -> Optional[str]:
    return page.text


def description_from_introduction(page: Page) -> Optional[str]:
    return page.select_text("#introduction .introduction")


def genres_from_table(page: Page) -> List[str]:
    cell = page.labelled_cell("ジャンル")
    return [a.get_text().strip() for a in cell.find_all("a") if a.get_text().strip()]


def maker_from_table(page: Page) -> Optional[str]:
    return page.labelled_text("メーカー")


def _minutes(text: Optional[str]) -> Optional[int]:
    match = re.search(r"(\d+)\s*分", text or "")
    return int(match.group(1)) if match else None


def duration_from_table(page: Page) -> Optional[int]:
    return _minutes(page.labelled_text("収録時間"))


def duration_from_play_time(page: Page) -> Optional[int]:
    return _minutes(page.labelled_text("再生時間"))


def rating_summary(page: Page) -> Optional[RatingSummaryRecord]:
    text = page.select_text(".user_review_head .detail")
    match = RATING_SUMMARY_PATTERN.search(text or "")
    if not match:
        return None
    return RatingSummaryRecord(
        max_rating=int(match.group(1)),
        average_rating=float(match.group(2)),
        total_reviews=int(match.group(3)),
    )


def review_id(reviewer_name: str, content: str) -> str:
    return hashlib.md5(f"{reviewer_name}:{content[:100]}".encode("utf-8")).hexdigest()


def reviews(page: Page) -> List[ReviewRecord]:
    records: List[ReviewRecord] = []
    seen = set()

    for user_date in page.soup.select("#user_review .user_date"):
        name_element = user_date.select_one(".name")
        reviewer = name_element.get_text().strip() if name_element else ""
        if reviewer.endswith(REVIEWER_SUFFIX):
            reviewer = reviewer[: -len(REVIEWER_SUFFIX)]

        rating = None
        star = user_date.select_one('p.review span[class*="star_"]')
        if star is not None:
            match = STAR_CLASS_PATTERN.search(" ".join(star.get("class", [])))
            if match:
                rating = int(match.group(1)) / 10

        text_element = user_date.find_next_sibling("p", class_="text")
        if text_element is None:
            continue
        for br in text_element.find_all("br"):
            br.replace_with("\n")
        content = text_element.get_text().strip()

        if not reviewer or not content:
            continue
        key = (reviewer, content[:50])
        if key in seen:
            continue
        seen.add(key)

        records.append(
            ReviewRecord(
                source_review_id=review_id(reviewer, content),
                reviewer_name=reviewer,
                rating=rating,
                content=content,
            )
        )
    return records


# ============================================================
# Extractor
# ============================================================


class MgsExtractor(SourceExtractor):
    """Extractor for MGS detail pages."""

    source = "MGS"

    landmark_selectors = ("div.price_list", "#download_hd_price", "#streaming_price")
    landmark_labels = ("配信開始日", "出演", "価格")

    def field_chains(self) -> Dict[str, Sequence[Strategy]]:
        return {
            "title": (common.ld_title, title_from_heading, title_from_document),
            "description": (common.ld_description, description_from_introduction, common.og_description),
            "release_date": (common.ld_release_date, release_date_from_table, common.regex_release_date),
            "duration": (
                common.ld_duration,
                duration_from_table,
                common.regex_duration,
                duration_from_play_time,
            ),
            "performers": (common.ld_performers, performers_from_links, performers_from_text),
            "genres": (common.ld_genres, genres_from_table),
            "maker_name": (maker_from_table,),
            "thumbnail_url": (common.ld_thumbnail, common.og_image),
            "sample_images": (sample_images_from_links, sample_images_from_thumbnails),
            "sample_video_url": (
                video_from_source_tag,
                video_from_data_attribute,
                video_from_sample_movie_link,
                video_from_script,
                video_from_player_link,
            ),
            "prices": (typed_prices,),
            "price": (
                common.ld_price,
                price_from_labelled_formats,
                price_from_table,
                price_from_price_block,
            ),
            "regular_price": (struck_price_from_price_block,),
            "sale_text": (document_text,),
            "sale_banner_text": (sale_banner_text,),
            "rating_summary": (rating_summary,),
            "reviews": (reviews,),
        }

    def product_id_from_url(self, url: str) -> Optional[str]:
        match = PRODUCT_ID_PATTERN.search(url)
        return match.group(1) if match else None

    def affiliate_url(self, source_product_id: str) -> Optional[str]:
        affiliate_code = getattr(settings, "CRAWLER_MGS_AFFILIATE_CODE", "")
        url = f"{MGS_BASE_URL}/product/product_detail/{source_product_id}/"
        if affiliate_code:
            return f"{url}?{urlencode({'af_id': affiliate_code})}"
        return url


# ============================================================
# Listing pages
# ============================================================


def listing_url(page: int, sort: str = "new", per_page: int = 120) -> str:
    """
    Search listing URL.

    Args:
        page: 1-based page number
        sort: "new" (newest first) or "old" (oldest first)
        per_page: Items per page (MGS accepts up to 120)
    """
    query = urlencode({"search_word": "", "sort": sort, "list_cnt": per_page, "page": page})
    return f"{MGS_BASE_URL}/search/cSearch.php?{query}"


def detail_url(product_id: str) -> str:
    return f"{MGS_BASE_URL}/product/product_detail/{product_id}/"


def parse_listing(html: str) -> List[str]:
    """Product ids linked from a listing page, in page order, deduplicated."""
    page = Page(html, MGS_BASE_URL)
    ids: List[str] = []
    for a in page.soup.select('a[href*="/product/product_detail/"]'):
        match = PRODUCT_ID_PATTERN.search(a.get("href", ""))
        if match and match.group(1) not in ids:
            ids.append(match.group(1))
    return ids


def parse_total_pages(html: str) -> Optional[int]:
    """Total page count from the ``.pager_num`` "n / total" text."""
    page = Page(html, MGS_BASE_URL)
    match = PAGER_TOTAL_PATTERN.search(page.select_text(".pager_num") or "")
    return int(match.group(1)) if match else None
