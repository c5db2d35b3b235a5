"""
Static registry of crawled storefronts.

Each SiteProfile carries the per-site request etiquette (User-Agent, cookies,
headers, rate limit, age-check landing page) used by PoliteFetcher, plus the
homepage signatures used to reject placeholder pages.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple
from urllib.parse import quote


DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)


@dataclass(frozen=True)
class SiteProfile:
    """
    Per-site crawl behaviour.

    Attributes:
        name: Source identifier stored on every row (e.g. "MGS")
        base_url: Scheme and host used to resolve relative links
        user_agent: Fixed User-Agent for every request to the site
        cookies: Age-verification and locale cookies
        headers: Extra request headers
        rate_limit_delay: Base delay in seconds before each request (None = settings)
        rate_limit_jitter: Max random extra delay in seconds (None = settings)
        age_check_url: Landing page that sets the age cookie; ``{url}`` is
            replaced with the quoted target URL
        age_check_markers: Substrings of a final URL that indicate the site
            bounced the request to its age-check page
        homepage_titles: Regexes matching the generic homepage title
        encoding: Forced character encoding, if the site does not declare one
    """

    name: str
    base_url: str
    user_agent: str = DEFAULT_USER_AGENT
    cookies: Dict[str, str] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict)
    rate_limit_delay: Optional[float] = None
    rate_limit_jitter: Optional[float] = None
    age_check_url: Optional[str] = None
    age_check_markers: Tuple[str, ...] = ()
    homepage_titles: Tuple[str, ...] = ()
    encoding: Optional[str] = None

    def build_age_check_url(self, target_url: str) -> Optional[str]:
        if not self.age_check_url:
            return None
        return self.age_check_url.format(url=quote(target_url, safe=""))

    def is_age_check_url(self, url: str) -> bool:
        return any(marker in url for marker in self.age_check_markers)


JA_HEADERS = {
    "Accept-Language": "ja,en-US;q=0.9,en;q=0.8",
}


SITE_PROFILES: Dict[str, SiteProfile] = {
    "MGS": SiteProfile(
        name="MGS",
        base_url="https://www.mgstage.com",
        cookies={"adc": "1"},
        headers={**JA_HEADERS, "Referer": "https://www.mgstage.com/"},
        rate_limit_delay=1.0,
        rate_limit_jitter=0.5,
        homepage_titles=(
            r"^エロ動画・アダルトビデオ\s*-MGS動画",
            r"^MGS動画＜プレステージ\s*グループ＞$",
            r"^MGS動画\(成人認証\)",
        ),
    ),
    "FANZA": SiteProfile(
        name="FANZA",
        base_url="https://www.dmm.co.jp",
        cookies={"age_check_done": "1", "cklg": "ja"},
        headers={**JA_HEADERS, "Referer": "https://www.dmm.co.jp/"},
        rate_limit_delay=1.5,
        rate_limit_jitter=1.0,
        age_check_url="https://www.dmm.co.jp/age_check/=/declared=yes/?rurl={url}",
        age_check_markers=("age_check", "年齢確認"),
        homepage_titles=(
            r"^アダルト動画・エロ動画\s*FANZA",
            r"^FANZA\s*\(ファンザ\)$",
        ),
    ),
    "GENERIC": SiteProfile(
        name="GENERIC",
        base_url="https://example.com",
        headers=dict(JA_HEADERS),
    ),
}


def get_site_profile(name: str) -> SiteProfile:
    """
    Look up a registered site.

    Raises:
        KeyError: If the source is not registered
    """
    try:
        return SITE_PROFILES[name.upper()]
    except KeyError:
        raise KeyError(f"Unknown source: {name}") from None
