"""
Proxy dispatch for outbound crawl requests.

One dispatcher is chosen from settings when a fetcher is created:
- Fixed proxy when CRAWLER_PROXY_ENABLED and CRAWLER_PROXY_URL are set
- Rotating pool of free proxies when CRAWLER_FREE_PROXY_ENABLED is set
- Direct connection otherwise

Fetchers only call ``select()`` / ``report_failure()`` / ``report_success()``;
a direct dispatcher returns ``None`` and callers never branch on proxy state.
"""

import logging
import random
import time
from typing import Dict, List, Optional

import httpx
from django.conf import settings

logger = logging.getLogger(__name__)


# Pool refresh interval (seconds)
PROXY_POOL_TTL = 30 * 60

# A proxy is dropped from the pool after this many failures
MAX_PROXY_FAILURES = 3


class DirectDispatcher:
    """No proxy: every request goes out directly."""

    description = "direct"

    def select(self) -> Optional[str]:
        return None

    def report_failure(self, proxy: Optional[str]) -> None:
        pass

    def report_success(self, proxy: Optional[str]) -> None:
        pass


class FixedProxyDispatcher(DirectDispatcher):
    """Every request goes through one configured forward proxy."""

    def __init__(self, proxy_url: str):
        self.proxy_url = proxy_url
        self.description = f"fixed proxy {_mask_credentials(proxy_url)}"

    def select(self) -> Optional[str]:
        return self.proxy_url


class RotatingProxyDispatcher(DirectDispatcher):
    """
    Random choice from a pool of free HTTP proxies.

    The pool is loaded from a plain-text list (``host:port`` per line) and
    refreshed after PROXY_POOL_TTL. Proxies that fail MAX_PROXY_FAILURES times
    are dropped. An empty pool falls back to direct connections.
    """

    description = "rotating proxy pool"

    def __init__(
        self,
        list_url: str,
        ttl: float = PROXY_POOL_TTL,
        max_failures: int = MAX_PROXY_FAILURES,
        timeout: float = 10.0,
    ):
        self.list_url = list_url
        self.ttl = ttl
        self.max_failures = max_failures
        self.timeout = timeout
        self._pool: List[str] = []
        self._failures: Dict[str, int] = {}
        self._loaded_at: Optional[float] = None

    def _pool_expired(self) -> bool:
        return self._loaded_at is None or time.monotonic() - self._loaded_at > self.ttl

    def refresh(self) -> None:
        """Reload the proxy list."""
        try:
            response = httpx.get(self.list_url, timeout=self.timeout)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"Failed to load proxy list from {self.list_url}: {e}")
            self._pool = []
            self._loaded_at = time.monotonic()
            return

        proxies = []
        for line in response.text.splitlines():
            line = line.strip()
            if line and not line.startswith("#"):
                proxies.append(line if "://" in line else f"http://{line}")

        self._pool = proxies
        self._failures = {}
        self._loaded_at = time.monotonic()
        logger.info(f"Loaded {len(proxies)} proxies from {self.list_url}")

    def select(self) -> Optional[str]:
        if self._pool_expired():
            self.refresh()
        if not self._pool:
            return None
        return random.choice(self._pool)

    def report_failure(self, proxy: Optional[str]) -> None:
        if proxy is None:
            return
        failures = self._failures.get(proxy, 0) + 1
        self._failures[proxy] = failures
        if failures >= self.max_failures and proxy in self._pool:
            self._pool.remove(proxy)
            logger.info(f"Dropped proxy {proxy} after {failures} failures ({len(self._pool)} left)")

    def report_success(self, proxy: Optional[str]) -> None:
        if proxy is not None:
            self._failures.pop(proxy, None)

    @property
    def pool_size(self) -> int:
        return len(self._pool)


def _mask_credentials(proxy_url: str) -> str:
    """Hide user:password in a proxy URL for logging."""
    if "@" not in proxy_url:
        return proxy_url
    scheme, _, rest = proxy_url.partition("://")
    return f"{scheme}://***@{rest.split('@', 1)[1]}"


def get_proxy_dispatcher() -> DirectDispatcher:
    """
    Build the dispatcher configured in settings.

    Returns:
        A dispatcher exposing select/report_failure/report_success
    """
    proxy_enabled = getattr(settings, "CRAWLER_PROXY_ENABLED", False)
    proxy_url = getattr(settings, "CRAWLER_PROXY_URL", "")

    if proxy_enabled and proxy_url:
        dispatcher = FixedProxyDispatcher(proxy_url)
    elif getattr(settings, "CRAWLER_FREE_PROXY_ENABLED", False):
        dispatcher = RotatingProxyDispatcher(
            list_url=getattr(settings, "CRAWLER_PROXY_LIST_URL", ""),
        )
    else:
        dispatcher = DirectDispatcher()

    logger.debug(f"Using {dispatcher.description}")
    return dispatcher
