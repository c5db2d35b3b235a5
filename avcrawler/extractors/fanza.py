"""
FANZA (dmm.co.jp) detail page extractor.

FANZA embeds a schema.org Product block, so the JSON-LD strategies of the
generic extractor come first. The markup fallbacks cover what the block
leaves out: the ``awsimgsrc.dmm.co.jp`` package and sample images,
``litevideo``/``cc3001`` sample movies, ``/av/list/?maker=`` style maker,
label and series links, and the ``☆`` introduction paragraph.
"""

import re
from typing import Dict, List, Optional, Sequence
from urllib.parse import urlencode

from django.conf import settings

from avcrawler.extractors import common, generic
from avcrawler.extractors.base import Page, Strategy
from avcrawler.extractors.generic import GenericExtractor
from avcrawler.extractors.parse_helpers import (
    clean_title,
    is_excluded_media,
    is_sample_video_url,
    parse_date,
    resolve_url,
)
from avcrawler.sources import SiteProfile, get_site_profile


FANZA_BASE_URL = "https://www.dmm.co.jp"
AFFILIATE_BASE_URL = "https://al.dmm.co.jp/"

IMAGE_HOST = "awsimgsrc.dmm.co.jp"
PACKAGE_IMAGE_PATTERN = re.compile(r"pl\.jpg", re.IGNORECASE)
SAMPLE_IMAGE_PATTERN = re.compile(r"-\d+\.jpg$", re.IGNORECASE)
MAX_SAMPLE_IMAGES = 20

CC3001_VIDEO_PATTERN = re.compile(r"[\"'](https://cc3001\.dmm\.co\.jp/[^\"']*\.mp4[^\"']*)[\"']", re.IGNORECASE)
SAMPLE_MP4_PATTERN = re.compile(r"[\"'](https://[^\"']*(?:_sm_|sample)[^\"']*\.mp4[^\"']*)[\"']", re.IGNORECASE)

# Campaign tags prepended to titles, e.g. 【ブランドストア30％OFF！】
AD_TAG_PATTERN = re.compile(r"【[^】]*(?:OFF|セール|キャンペーン|新作|独占|最新)[^】]*】", re.IGNORECASE)

TITLE_SUFFIX_PATTERN = re.compile(r"\s*[|｜].*$")

MINUTES_PATTERN = re.compile(r"(\d+)\s*分")
BARE_DATE_PATTERN = re.compile(r"(\d{4})/(\d{2})/(\d{2})")
STAR_DESCRIPTION_PATTERN = re.compile(r"☆[★☆]*[^☆★]{50,500}")

MAX_PERFORMER_LINK_LENGTH = 30


def _strip_query(url: str) -> str:
    return url.split("?")[0]


def _list_link_texts(page: Page, kind: str) -> List[str]:
    """Texts of ``/av/list/?{kind}=N`` links, in document order."""
    texts: List[str] = []
    for a in page.soup.select(f'a[href*="/av/list/?{kind}="]'):
        text = a.get_text().strip()
        if text and text not in texts:
            texts.append(text)
    return texts


# ============================================================
# Field strategies
# ============================================================


def _title(raw: Optional[str]) -> str:
    return clean_title(AD_TAG_PATTERN.sub("", raw or ""))


def title_from_ld(page: Page) -> Optional[str]:
    return _title(page.product_ld["name"])


def title_from_og(page: Page) -> Optional[str]:
    return _title(page.meta("og:title"))


def title_from_heading(page: Page) -> Optional[str]:
    return _title(page.select_text("h1"))


def title_from_document(page: Page) -> Optional[str]:
    return _title(TITLE_SUFFIX_PATTERN.sub("", page.document_title or ""))


def performers_from_actress_links(page: Page) -> List[str]:
    return [
        name
        for name in _list_link_texts(page, "actress")
        if len(name) < MAX_PERFORMER_LINK_LENGTH and "一覧" not in name
    ]


def maker_from_link(page: Page) -> Optional[str]:
    names = _list_link_texts(page, "maker")
    return names[0] if names else None


def labels_from_links(page: Page) -> List[str]:
    labels: List[str] = []
    for kind in ("label", "series"):
        names = _list_link_texts(page, kind)
        if names and names[0] not in labels:
            labels.append(names[0])
    return labels


def package_image(page: Page) -> Optional[str]:
    for img in page.soup.select("img[src]"):
        src = img["src"]
        if IMAGE_HOST in src and PACKAGE_IMAGE_PATTERN.search(src):
            return _strip_query(src)
    for img in page.soup.select('img[src*="pics"]'):
        if PACKAGE_IMAGE_PATTERN.search(img["src"]):
            return resolve_url(FANZA_BASE_URL, img["src"])
    return None


def sample_images(page: Page) -> List[str]:
    images: List[str] = []
    candidates = [img.get("src") or img.get("data-src") for img in page.soup.select("img")]
    candidates.extend(a["href"] for a in page.soup.select("a[href]"))
    for url in candidates:
        if not url or IMAGE_HOST not in url or is_excluded_media(url):
            continue
        url = _strip_query(url)
        if SAMPLE_IMAGE_PATTERN.search(url) and url not in images:
            images.append(url)
    return images[:MAX_SAMPLE_IMAGES]


def _first_video(urls) -> Optional[str]:
    for url in urls:
        url = _strip_query(resolve_url(FANZA_BASE_URL, url) or "")
        if is_sample_video_url(url):
            return url
    return None


def video_from_litevideo(page: Page) -> Optional[str]:
    return _first_video(
        element["src"]
        for element in page.soup.select("video[src], source[src]")
        if "litevideo" in element["src"] and ".mp4" in element["src"]
    )


def video_from_data_src(page: Page) -> Optional[str]:
    return _first_video(
        element["data-src"]
        for element in page.soup.select("[data-src]")
        if ".mp4" in element["data-src"] and ("sample" in element["data-src"] or "preview" in element["data-src"])
    )


def video_from_cc3001(page: Page) -> Optional[str]:
    return _first_video(CC3001_VIDEO_PATTERN.findall(page.html))


def video_from_sample_mp4(page: Page) -> Optional[str]:
    return _first_video(SAMPLE_MP4_PATTERN.findall(page.html))


def video_from_ld(page: Page) -> Optional[str]:
    videos = page.product_ld["video"]
    if isinstance(videos, dict):
        videos = [videos]
    urls = [video.get("contentUrl") or video.get("embedUrl") for video in videos]
    return _first_video(url for url in urls if url and ".mp4" in url)


def duration_from_minutes(page: Page) -> Optional[int]:
    match = MINUTES_PATTERN.search(page.text)
    return int(match.group(1)) if match else None


def release_date_from_bare_date(page: Page):
    match = BARE_DATE_PATTERN.search(page.text)
    return parse_date(match.group(0)) if match else None


def description_from_star_paragraph(page: Page) -> Optional[str]:
    for string in page.soup.find_all(string=STAR_DESCRIPTION_PATTERN):
        if string.parent.name in ("script", "style"):
            continue
        match = STAR_DESCRIPTION_PATTERN.search(str(string))
        return re.sub(r"\s+", " ", match.group(0)).strip()
    return None


# ============================================================
# Extractor
# ============================================================


class FanzaExtractor(GenericExtractor):
    """Extractor for FANZA detail pages."""

    landmark_selectors = GenericExtractor.landmark_selectors + (
        'a[href*="/av/list/?actress="]',
        'a[href*="/av/list/?maker="]',
    )

    def __init__(self, profile: Optional[SiteProfile] = None):
        super().__init__(profile or get_site_profile("FANZA"))

    def field_chains(self) -> Dict[str, Sequence[Strategy]]:
        chains = dict(super().field_chains())
        chains.update(
            {
                "title": (title_from_ld, title_from_og, title_from_heading, title_from_document),
                "description": (common.ld_description, common.og_description, description_from_star_paragraph),
                "release_date": (
                    common.ld_release_date,
                    generic.release_date_from_table,
                    common.regex_release_date,
                    release_date_from_bare_date,
                ),
                "duration": (
                    common.ld_duration,
                    generic.duration_from_table,
                    common.regex_duration,
                    duration_from_minutes,
                ),
                "performers": (
                    common.ld_performers,
                    performers_from_actress_links,
                    generic.performers_from_cast_block,
                    generic.performers_from_table,
                ),
                "maker_name": (maker_from_link,),
                "labels": (labels_from_links,),
                "thumbnail_url": (common.ld_thumbnail, package_image, common.og_image),
                "sample_images": (sample_images,),
                "sample_video_url": (
                    video_from_litevideo,
                    video_from_data_src,
                    video_from_cc3001,
                    video_from_sample_mp4,
                    video_from_ld,
                ),
            }
        )
        return chains

    def affiliate_url(self, source_product_id: str) -> Optional[str]:
        url = f"{FANZA_BASE_URL}/digital/videoa/-/detail/=/cid={source_product_id}/"
        affiliate_id = getattr(settings, "CRAWLER_FANZA_AFFILIATE_ID", "")
        if affiliate_id:
            return f"{AFFILIATE_BASE_URL}?{urlencode({'lurl': url, 'af_id': affiliate_id})}"
        return url
