"""
Text parsing helpers shared by all source extractors.

Price, date, duration and performer-name parsing plus text and URL
normalization. Every helper returns None (or an empty value) instead of
raising on unparseable input.
"""

import re
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional
from urllib.parse import urljoin, urlparse


# ============================================================
# Price Extraction
# ============================================================

# Prices outside this range are not prices (ids, view counts, years...)
PLAUSIBLE_PRICE_RANGE = (100, 50000)

# Typical commercial range; preferred when several unlabelled numbers compete
TYPICAL_PRICE_RANGE = (300, 10000)

PRICE_TOKEN_PATTERN = re.compile(r"[¥￥]?\s*(\d{1,3}(?:[,，]\d{3})+|\d+)\s*円?")
DISCOUNT_PATTERN = re.compile(r"(\d+)\s*[%％]\s*(OFF|引き|オフ)", re.IGNORECASE)


@dataclass
class PriceInfo:
    """Current price plus the struck-through original when present."""

    price: int
    original_price: Optional[int] = None
    discount_percent: Optional[int] = None


def extract_price(text: Optional[str]) -> Optional[int]:
    """
    Extract the first integer price from text.

    >>> extract_price("¥1,980")
    1980
    >>> extract_price("1980円(税込)")
    1980
    """
    if not text:
        return None
    cleaned = re.sub(r"[¥￥$円,，、\s]", "", text)
    match = re.search(r"(\d+)", cleaned)
    if match:
        return int(match.group(1))
    return None


def extract_prices(text: Optional[str]) -> List[int]:
    """All positive price-looking numbers in text, in document order."""
    if not text:
        return []
    prices = []
    for match in PRICE_TOKEN_PATTERN.finditer(text):
        value = int(re.sub(r"[,，]", "", match.group(1)))
        if value > 0:
            prices.append(value)
    return prices


def extract_price_info(text: Optional[str]) -> Optional[PriceInfo]:
    """
    Extract current and original price from a combined price string.

    With two or more prices the larger is the original and the smaller the
    current price.

    >>> extract_price_info("¥2,980 → ¥1,980 (33%OFF)")
    PriceInfo(price=1980, original_price=2980, discount_percent=33)
    """
    prices = extract_prices(text)
    if not prices:
        return None

    discount = None
    discount_match = DISCOUNT_PATTERN.search(text or "")
    if discount_match:
        discount = int(discount_match.group(1))

    if len(prices) == 1:
        return PriceInfo(price=prices[0], discount_percent=discount)

    ordered = sorted(prices, reverse=True)
    original, current = ordered[0], ordered[1]
    if discount is None and original > current:
        discount = round((original - current) / original * 100)
    return PriceInfo(price=current, original_price=original, discount_percent=discount)


def is_plausible_price(value: Optional[int]) -> bool:
    if value is None:
        return False
    low, high = PLAUSIBLE_PRICE_RANGE
    return low <= value <= high


def choose_price(labelled: Optional[int], candidates: List[int]) -> Optional[int]:
    """
    Pick the representative price.

    An explicitly labelled price wins. Otherwise the first plausible candidate
    inside TYPICAL_PRICE_RANGE, then the first plausible one at all. This is a
    heuristic: very cheap or very expensive items can be misread.
    """
    if is_plausible_price(labelled):
        return labelled

    plausible = [value for value in candidates if is_plausible_price(value)]
    if not plausible:
        return None

    low, high = TYPICAL_PRICE_RANGE
    for value in plausible:
        if low <= value <= high:
            return value
    return plausible[0]


# ============================================================
# Performer Name Parsing
# ============================================================

PERFORMER_SEPARATORS = re.compile(r"[,、，\n]+")
KANA_READING_PATTERN = re.compile(r"^(.+?)[（(]([ぁ-んァ-ンー]+)[）)]$")
ALIAS_PATTERN = re.compile(r"^(.+?)\s*[/／]\s*(.+)$")


@dataclass
class ParsedPerformer:
    name: str
    name_kana: Optional[str] = None
    aliases: List[str] = field(default_factory=list)


def normalize_performer_name(name: Optional[str]) -> str:
    """
    Fold full-width spaces, collapse whitespace and drop a trailing
    parenthetical ("山田花子（やまだはなこ）" -> "山田花子").
    """
    if not name:
        return ""
    name = name.strip().replace("　", " ")
    name = re.sub(r"\s+", " ", name)
    name = re.sub(r"[（(][^）)]*[）)]$", "", name)
    return name.strip()


def parse_performer_name(text: Optional[str]) -> Optional[ParsedPerformer]:
    """
    Split one cast entry into name, kana reading and aliases.

    Handles "山田花子（やまだはなこ）" and "山田花子 / Hanako Yamada".
    """
    if not text or not text.strip():
        return None

    trimmed = text.strip()
    result = ParsedPerformer(name=trimmed)

    kana_match = KANA_READING_PATTERN.match(trimmed)
    if kana_match:
        result.name = kana_match.group(1).strip()
        result.name_kana = kana_match.group(2).strip()

    alias_match = ALIAS_PATTERN.match(result.name)
    if alias_match:
        result.name = alias_match.group(1).strip()
        result.aliases = [alias_match.group(2).strip()]

    return result


def parse_performer_names(text: Optional[str]) -> List[ParsedPerformer]:
    """Split a cast string on commas, ideographic commas and newlines."""
    if not text:
        return []
    parsed = [parse_performer_name(part) for part in PERFORMER_SEPARATORS.split(text)]
    return [performer for performer in parsed if performer is not None]


# ============================================================
# Date Parsing
# ============================================================

ENGLISH_MONTHS = {
    "jan": 1, "january": 1, "feb": 2, "february": 2, "mar": 3, "march": 3,
    "apr": 4, "april": 4, "may": 5, "jun": 6, "june": 6, "jul": 7, "july": 7,
    "aug": 8, "august": 8, "sep": 9, "sept": 9, "september": 9,
    "oct": 10, "october": 10, "nov": 11, "november": 11, "dec": 12, "december": 12,
}


def _make_date(year: str, month: str, day: str) -> Optional[date]:
    y = int(year)
    if y < 100:
        y += 2000
    try:
        return date(y, int(month), int(day))
    except ValueError:
        return None


def parse_date(text: Optional[str]) -> Optional[date]:
    """
    Parse Japanese, numeric and English release dates.

    Supported: "2024年1月15日", "2024/01/15", "2024-01-15", "2024.01.15",
    "01/15/2024", "2024-01-15T10:00:00+09:00", "Jan 15, 2024".
    """
    if not text:
        return None
    trimmed = text.strip()

    match = re.search(r"(\d{4})年\s*(\d{1,2})月\s*(\d{1,2})日", trimmed)
    if match:
        return _make_date(*match.groups())

    match = re.search(r"(\d{2,4})[/\-.](\d{1,2})[/\-.](\d{1,4})", trimmed)
    if match:
        part1, part2, part3 = match.groups()
        if int(part1) > 12:
            return _make_date(part1, part2, part3)
        if int(part3) > 31:
            return _make_date(part3, part1, part2)
        return _make_date(part1, part2, part3)

    match = re.search(r"([A-Za-z]+)\.?\s+(\d{1,2}),?\s*(\d{4})", trimmed)
    if match:
        month = ENGLISH_MONTHS.get(match.group(1).lower())
        if month:
            return _make_date(match.group(3), str(month), match.group(2))

    return None


# ============================================================
# Duration Parsing
# ============================================================

# Durations outside this range (minutes) are rejected as false positives
DURATION_RANGE = (1, 600)


def parse_duration(text: Optional[str]) -> Optional[int]:
    """
    Parse a running time into minutes.

    >>> parse_duration("120分")
    120
    >>> parse_duration("1時間30分")
    90
    >>> parse_duration("2:30:00")
    150
    """
    if not text:
        return None
    trimmed = text.strip()

    if "時間" not in trimmed:
        match = re.search(r"(\d+)\s*分", trimmed)
        if match:
            return int(match.group(1))

    match = re.search(r"(\d+)\s*時間\s*(?:(\d+)\s*分)?", trimmed)
    if match:
        return int(match.group(1)) * 60 + int(match.group(2) or 0)

    match = re.search(r"(\d{1,2}):(\d{2})(?::(\d{2}))?", trimmed)
    if match:
        if match.group(3):
            return int(match.group(1)) * 60 + int(match.group(2))
        return int(match.group(1))

    match = re.match(r"^(\d+)$", trimmed)
    if match:
        return int(match.group(1))

    return None


def is_plausible_duration(minutes: Optional[int]) -> bool:
    if minutes is None:
        return False
    low, high = DURATION_RANGE
    return low <= minutes <= high


# ============================================================
# Text Cleaning
# ============================================================

FULLWIDTH_ALNUM = re.compile(r"[Ａ-Ｚａ-ｚ０-９]")


def normalize_text(text: Optional[str]) -> str:
    """Full-width alphanumerics to ASCII, collapse whitespace."""
    if not text:
        return ""
    text = FULLWIDTH_ALNUM.sub(lambda m: chr(ord(m.group(0)) - 0xFEE0), text)
    text = text.replace("　", " ")
    return re.sub(r"\s+", " ", text).strip()


def strip_html(html: Optional[str]) -> str:
    if not html:
        return ""
    text = re.sub(r"<br\s*/?>", "\n", html, flags=re.IGNORECASE)
    text = re.sub(r"<[^>]*>", " ", text)
    text = (
        text.replace("&nbsp;", " ")
        .replace("&amp;", "&")
        .replace("&lt;", "<")
        .replace("&gt;", ">")
        .replace("&quot;", '"')
        .replace("&#39;", "'")
    )
    return re.sub(r"[ \t]+", " ", text).strip()


def clean_title(title: Optional[str]) -> str:
    """Strip tags, collapse whitespace and drop wrapping brackets."""
    if not title:
        return ""
    title = re.sub(r"<[^>]*>", "", title)
    title = re.sub(r"\s+", " ", title).strip()
    return re.sub(r"^[【\[(（『「]|[】\])）』」]$", "", title).strip()


# ============================================================
# URL Helpers
# ============================================================

IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".webp")
VIDEO_EXTENSIONS = (".mp4", ".m3u8", ".webm", ".mov")

# Decorative sample-movie buttons that share the sample media containers
EXCLUDED_MEDIA_SUBSTRINGS = (
    "sample_button",
    "sample-button",
    "samplemovie",
    "sample_movie",
    "btn_sample",
)


def resolve_url(base: str, relative: Optional[str]) -> Optional[str]:
    """Absolute URL for a possibly relative or protocol-relative link."""
    if not relative:
        return None
    relative = relative.strip()
    if relative.startswith("//"):
        return f"https:{relative}"
    return urljoin(base, relative)


def _has_http_scheme(url: str) -> bool:
    return urlparse(url).scheme in ("http", "https")


def is_valid_image_url(url: Optional[str]) -> bool:
    if not url or not _has_http_scheme(url):
        return False
    path = urlparse(url).path.lower()
    return path.endswith(IMAGE_EXTENSIONS) or "/images/" in path or "/img/" in path


def is_valid_video_url(url: Optional[str]) -> bool:
    if not url or not _has_http_scheme(url):
        return False
    path = urlparse(url).path.lower()
    if path.endswith(IMAGE_EXTENSIONS):
        return False
    return path.endswith(VIDEO_EXTENSIONS) or "sample" in path or "player" in path


def is_excluded_media(url: Optional[str]) -> bool:
    """Button and icon assets that sit next to real sample media."""
    if not url:
        return False
    lowered = url.lower()
    return any(marker in lowered for marker in EXCLUDED_MEDIA_SUBSTRINGS)


def is_sample_video_url(url: Optional[str]) -> bool:
    return is_valid_video_url(url) and not is_excluded_media(url)
