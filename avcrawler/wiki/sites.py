"""
Auxiliary wiki sites that map product codes to performer names.

Each WikiSite knows where discovery starts (sitemaps or index pages), which
links lead to detail pages or further index pages, and how to read
(product code, performer name) pairs off a detail page.
"""

import logging
import re
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from avcrawler.extractors.base import Page
from avcrawler.extractors.parse_helpers import normalize_performer_name
from avcrawler.services.performer_validation import is_valid_performer_name
from avcrawler.sources import JA_HEADERS, SiteProfile

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WikiEntry:
    """One (product code, performer name) pair found on a wiki page."""

    product_code: str
    performer_name: str
    source_url: str


CODE_PATTERN = re.compile(r"^(\d{0,3}[A-Z]{2,10})-?(\d{2,6})$", re.IGNORECASE)
TITLE_CODE_PATTERN = re.compile(r"\b(\d{0,3}[A-Z]{2,10}-?\d{3,6})\b", re.IGNORECASE)
BODY_CODE_PATTERN = re.compile(r"\b(\d{0,3}[A-Z]{2,10}-\d{3,6})\b", re.IGNORECASE)

JAPANESE_PATTERN = re.compile(r"[\u3040-\u309F\u30A0-\u30FF\u4E00-\u9FAF]")
NAME_SEPARATORS = re.compile(r"[,、，/／\n]")


def normalize_code(code: str) -> Optional[str]:
    """
    Normalize a wiki product code to ``PREFIX-NUMBER``.

    >>> normalize_code("siro5561")
    'SIRO-5561'
    >>> normalize_code("200gana-1040")
    '200GANA-1040'
    """
    match = CODE_PATTERN.match(code.strip())
    if not match:
        return None
    return f"{match.group(1).upper()}-{match.group(2)}"


def candidate_name(raw: str) -> Optional[str]:
    """Normalized performer name, or None if the token cannot be one."""
    name = normalize_performer_name(raw)
    if not name or not JAPANESE_PATTERN.search(name):
        return None
    if not is_valid_performer_name(name):
        return None
    return name


def _pairs(codes: List[str], names: List[str], url: str) -> List[WikiEntry]:
    return [
        WikiEntry(product_code=code, performer_name=name, source_url=url)
        for code in dict.fromkeys(codes)
        for name in dict.fromkeys(names)
    ]


# ============================================================
# av-wiki.net
# ============================================================

AVWIKI_BASE_URL = "https://av-wiki.net"
AVWIKI_CAST_LABELS = ("AV女優名", "出演者", "女優名")
AVWIKI_BODY_NAME_PATTERN = re.compile(
    r"(?:出演|出てる)(?:してる)?(?:AV)?女優(?:の名前)?(?:は[、,]?)?([^さ。]+)さん"
)


def parse_avwiki_page(page: Page) -> List[WikiEntry]:
    """
    Entries from an av-wiki.net article.

    Codes come from the ``h1.entry-title`` heading and the URL slug; names
    from ``/av-actress/`` links, cast table rows and the "出演してるAV女優は
    XXXさん" sentence.
    """
    codes: List[str] = []
    title = page.select_text("h1.entry-title") or ""
    for raw in TITLE_CODE_PATTERN.findall(title):
        code = normalize_code(raw)
        if code:
            codes.append(code)
    slug = page.url.rstrip("/").rsplit("/", 1)[-1]
    slug_code = normalize_code(slug)
    if slug_code:
        codes.append(slug_code)
    if not codes:
        return []

    body = page.soup.select_one(".entry-content") or page.soup.select_one("article") or page.soup
    raw_names: List[str] = [a.get_text(strip=True) for a in body.select('a[href*="/av-actress/"]')]

    for row in page.soup.select("table tr"):
        cells = row.find_all(["th", "td"])
        if len(cells) < 2:
            continue
        header = cells[0].get_text(strip=True)
        if not any(label in header for label in AVWIKI_CAST_LABELS) and header != "出演":
            continue
        links = row.select('a[href*="/av-actress/"]')
        if links:
            raw_names.extend(a.get_text(strip=True) for a in links)
        else:
            raw_names.extend(NAME_SEPARATORS.split(cells[1].get_text("\n", strip=True)))

    match = AVWIKI_BODY_NAME_PATTERN.search(body.get_text(" ", strip=True))
    if match:
        raw_names.append(match.group(1))

    names = [name for name in (candidate_name(raw) for raw in raw_names) if name]
    return _pairs(codes, names, page.url)


# ============================================================
# seesaawiki.jp/av_neme
# ============================================================

SEESAA_BASE_URL = "https://seesaawiki.jp/av_neme"
SEESAA_TITLE_EXCLUDE = ("トップページ", "メニュー", "リンク", "一覧", "ページ", "検索", "編集")
SEESAA_TITLE_PATTERN = re.compile(r"^[\u3040-\u309F\u30A0-\u30FF\u4E00-\u9FAF\sA-Za-z]+$")


def parse_seesaa_page(page: Page) -> List[WikiEntry]:
    """
    Entries from a seesaawiki performer page.

    The page title (first ``h2``) is the performer; product codes are read
    from the page body.
    """
    heading = page.soup.find("h2")
    if heading is None:
        return []
    title = re.sub(r"\s*編集する?\s*", "", heading.get_text(strip=True)).strip()
    if not title or not SEESAA_TITLE_PATTERN.match(title):
        return []
    if any(word in title for word in SEESAA_TITLE_EXCLUDE):
        return []

    name = candidate_name(title)
    if name is None:
        return []

    body = page.soup.select_one("#page-body, .wiki-body, .page-body")
    if body is None:
        return []
    codes = [code for code in (normalize_code(raw) for raw in BODY_CODE_PATTERN.findall(body.get_text(" "))) if code]
    return _pairs(codes, [name], page.url)


# ============================================================
# Registry
# ============================================================


@dataclass(frozen=True)
class WikiSite:
    """
    Discovery and parsing rules of one auxiliary wiki.

    Attributes:
        name: Site key stored on staging rows
        profile: Request etiquette used by the fetcher
        start_urls: Sitemaps or index pages the BFS starts from
        detail_patterns: URL regexes of pages carrying performer data
        follow_patterns: URL regexes of index pages and sitemaps to expand
        parse: Detail page parser
        detail_url_template: Direct article URL for a product code, if the
            site has one (``{slug}`` is the lowercased code)
    """

    name: str
    profile: SiteProfile
    start_urls: Tuple[str, ...]
    detail_patterns: Tuple[str, ...]
    follow_patterns: Tuple[str, ...]
    parse: Callable[[Page], List[WikiEntry]]
    detail_url_template: Optional[str] = None

    def is_detail(self, url: str) -> bool:
        return any(re.search(pattern, url, re.IGNORECASE) for pattern in self.detail_patterns)

    def is_followable(self, url: str) -> bool:
        return any(re.search(pattern, url, re.IGNORECASE) for pattern in self.follow_patterns)

    def detail_url(self, product_code: str) -> Optional[str]:
        if not self.detail_url_template:
            return None
        return self.detail_url_template.format(slug=product_code.lower())


WIKI_SITES: Dict[str, WikiSite] = {
    "av-wiki": WikiSite(
        name="av-wiki",
        profile=SiteProfile(
            name="av-wiki",
            base_url=AVWIKI_BASE_URL,
            headers={**JA_HEADERS, "Referer": f"{AVWIKI_BASE_URL}/"},
            rate_limit_delay=1.5,
            encoding="utf-8",
        ),
        start_urls=(f"{AVWIKI_BASE_URL}/post-sitemap.xml", f"{AVWIKI_BASE_URL}/sitemap_index.xml"),
        detail_patterns=(r"^https?://av-wiki\.net/\d{0,3}[a-z]{2,10}-\d{2,6}/?$",),
        follow_patterns=(r"^https?://av-wiki\.net/[^?#]*sitemap[^/?#]*\.xml$", r"^https?://av-wiki\.net/page/\d+/?$"),
        parse=parse_avwiki_page,
        detail_url_template=f"{AVWIKI_BASE_URL}/{{slug}}/",
    ),
    "seesaawiki": WikiSite(
        name="seesaawiki",
        profile=SiteProfile(
            name="seesaawiki",
            base_url="https://seesaawiki.jp",
            headers=dict(JA_HEADERS),
            rate_limit_delay=2.0,
            encoding="euc-jp",
        ),
        start_urls=(f"{SEESAA_BASE_URL}/l/",),
        detail_patterns=(r"^https?://seesaawiki\.jp/av_neme/d/[^/?#]+$",),
        follow_patterns=(r"^https?://seesaawiki\.jp/av_neme/l/(\?[^#]*)?$",),
        parse=parse_seesaa_page,
    ),
}


def get_wiki_site(name: str) -> WikiSite:
    """
    Raises:
        KeyError: If the site is not registered
    """
    try:
        return WIKI_SITES[name.lower()]
    except KeyError:
        raise KeyError(f"Unknown wiki site: {name}") from None
