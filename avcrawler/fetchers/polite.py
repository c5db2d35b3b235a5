"""
Polite HTTP fetcher for storefront crawls.

Synchronous httpx client with per-site User-Agent/cookie injection, jittered
rate limiting, bounded linear-backoff retry and optional proxy dispatch.

Usage:
    with PoliteFetcher(get_site_profile("MGS")) as fetcher:
        response = fetcher.fetch_page(url)
"""

import logging
import random
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

import httpx
from django.conf import settings

from avcrawler.fetchers.proxy import DirectDispatcher, get_proxy_dispatcher
from avcrawler.sources import DEFAULT_USER_AGENT, SiteProfile

logger = logging.getLogger(__name__)


class NetworkError(Exception):
    """Transport-level failure (timeout, connection refused, DNS...)."""

    def __init__(self, url: str, message: str, attempts: int = 1):
        self.url = url
        self.attempts = attempts
        super().__init__(f"{message} ({url}, {attempts} attempt(s))")


@dataclass
class FetchResponse:
    """Response from a fetch operation. Any HTTP status is a valid response."""

    url: str
    status_code: int
    content: str
    body: bytes = b""
    headers: Dict[str, str] = field(default_factory=dict)
    final_url: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def is_client_error(self) -> bool:
        return 400 <= self.status_code < 500

    @property
    def is_server_error(self) -> bool:
        return self.status_code >= 500


class RateLimiter:
    """
    Sleeps ``base + uniform(0, jitter)`` seconds before each request.

    Independent of retry delays; bounds the aggregate request rate per site.
    """

    def __init__(
        self,
        base: float,
        jitter: float = 0.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.base = max(base, 0.0)
        self.jitter = max(jitter, 0.0)
        self._sleep = sleep

    def wait(self) -> float:
        delay = self.base + (random.uniform(0, self.jitter) if self.jitter else 0.0)
        if delay > 0:
            self._sleep(delay)
        return delay

    @classmethod
    def for_profile(cls, profile: Optional[SiteProfile]) -> "RateLimiter":
        base = getattr(settings, "CRAWLER_RATE_LIMIT_DELAY", 1.0)
        jitter = getattr(settings, "CRAWLER_RATE_LIMIT_JITTER", 0.5)
        if profile is not None:
            if profile.rate_limit_delay is not None:
                base = max(base, profile.rate_limit_delay)
            if profile.rate_limit_jitter is not None:
                jitter = max(jitter, profile.rate_limit_jitter)
        return cls(base=base, jitter=jitter)


class PoliteFetcher:
    """
    HTTP fetcher used by every crawl loop.

    Features:
    - One httpx.Client per proxy endpoint, closed with the fetcher
    - Fixed User-Agent, headers and age cookies from the SiteProfile
    - Age-check landing request before the first page of sites that need it
    - Retry on transport errors and 5xx only, delay = base_delay * attempt
    """

    DEFAULT_HEADERS = {
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        "Accept-Encoding": "gzip, deflate",
        "Connection": "keep-alive",
    }

    def __init__(
        self,
        profile: Optional[SiteProfile] = None,
        timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
        base_delay: Optional[float] = None,
        rate_limiter: Optional[RateLimiter] = None,
        proxy_dispatcher: Optional[DirectDispatcher] = None,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the fetcher.

        Args:
            profile: Site whose etiquette applies (None = plain requests)
            timeout: Per-request timeout in seconds (default from settings)
            max_attempts: Retry cap for fetch_with_retry (default from settings)
            base_delay: Linear retry delay unit in seconds (default from settings)
            rate_limiter: Pre-request limiter (default built from profile/settings)
            proxy_dispatcher: Proxy selection (default built from settings)
            transport: httpx transport override, used by tests
            sleep: Sleep function used for retry delays
        """
        self.profile = profile
        self.timeout = timeout if timeout is not None else getattr(
            settings, "CRAWLER_REQUEST_TIMEOUT", 30
        )
        self.max_attempts = max_attempts or getattr(settings, "CRAWLER_MAX_RETRIES", 3)
        self.base_delay = base_delay if base_delay is not None else getattr(
            settings, "CRAWLER_RETRY_BASE_DELAY", 1.0
        )
        self.rate_limiter = rate_limiter or RateLimiter.for_profile(profile)
        self.proxy_dispatcher = proxy_dispatcher or get_proxy_dispatcher()
        self._transport = transport
        self._sleep = sleep

        self._clients: Dict[Optional[str], httpx.Client] = {}
        self._age_verified = False

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def close(self):
        """Close every HTTP client."""
        for client in self._clients.values():
            client.close()
        self._clients = {}

    def _get_client(self, proxy: Optional[str]) -> httpx.Client:
        client = self._clients.get(proxy)
        if client is None:
            headers = {
                **self.DEFAULT_HEADERS,
                "User-Agent": self.profile.user_agent if self.profile else DEFAULT_USER_AGENT,
            }
            cookies = {}
            if self.profile:
                headers.update(self.profile.headers)
                cookies.update(self.profile.cookies)

            client = httpx.Client(
                timeout=httpx.Timeout(self.timeout),
                headers=headers,
                cookies=cookies,
                follow_redirects=True,
                proxy=proxy,
                transport=self._transport,
            )
            self._clients[proxy] = client
        return client

    def fetch(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
    ) -> FetchResponse:
        """
        Single GET request.

        Returns:
            FetchResponse for any HTTP status

        Raises:
            NetworkError: On transport failure
        """
        proxy = self.proxy_dispatcher.select()
        client = self._get_client(proxy)

        try:
            response = client.get(url, headers=headers or {})
        except httpx.TimeoutException as e:
            self.proxy_dispatcher.report_failure(proxy)
            raise NetworkError(url, f"Timeout: {e}") from e
        except httpx.TransportError as e:
            self.proxy_dispatcher.report_failure(proxy)
            raise NetworkError(url, f"Transport error: {e}") from e

        self.proxy_dispatcher.report_success(proxy)

        return FetchResponse(
            url=url,
            status_code=response.status_code,
            content=response.text,
            body=response.content,
            headers=dict(response.headers),
            final_url=str(response.url),
        )

    def fetch_with_retry(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        max_attempts: Optional[int] = None,
        base_delay: Optional[float] = None,
    ) -> FetchResponse:
        """
        Fetch with linear backoff retry logic.

        Retries transport errors and 5xx responses; success and 4xx return at
        once. Waits ``base_delay * attempt`` seconds between attempts.

        Raises:
            NetworkError: If the last attempt failed at transport level
        """
        max_attempts = max_attempts or self.max_attempts
        base_delay = self.base_delay if base_delay is None else base_delay

        last_error: Optional[NetworkError] = None
        last_response: Optional[FetchResponse] = None

        for attempt in range(1, max_attempts + 1):
            try:
                response = self.fetch(url, headers=headers)
            except NetworkError as e:
                last_error = e
                last_response = None
                logger.warning(f"{e} (attempt {attempt}/{max_attempts})")
            else:
                if not response.is_server_error:
                    return response
                last_error = None
                last_response = response
                logger.warning(
                    f"HTTP {response.status_code} for {url} (attempt {attempt}/{max_attempts})"
                )

            if attempt < max_attempts:
                self._sleep(base_delay * attempt)

        if last_response is not None:
            return last_response
        raise NetworkError(url, f"Failed after retries: {last_error}", attempts=max_attempts)

    def pass_age_check(self, target_url: str) -> bool:
        """
        Request the site's age-check landing page so its cookies are set.

        Returns:
            True if the landing request succeeded or the site needs none
        """
        if not self.profile or not self.profile.age_check_url:
            return True

        landing_url = self.profile.build_age_check_url(target_url)
        logger.debug(f"Passing age check for {self.profile.name} via {landing_url}")
        response = self.fetch_with_retry(landing_url)
        self._age_verified = response.status_code < 400
        if not self._age_verified:
            logger.warning(f"Age check landing returned HTTP {response.status_code}")
        return self._age_verified

    def fetch_page(self, url: str) -> FetchResponse:
        """
        Rate-limited, age-verified, retried fetch of a site page.

        Raises:
            NetworkError: If the page could not be fetched at transport level
        """
        self.rate_limiter.wait()

        if self.profile and self.profile.age_check_url and not self._age_verified:
            self.pass_age_check(url)

        response = self.fetch_with_retry(url)

        if self.profile and self.profile.is_age_check_url(response.final_url):
            logger.info(f"Bounced to age check page for {url}, retrying once")
            self._age_verified = False
            self.pass_age_check(url)
            response = self.fetch_with_retry(url)

        return response
