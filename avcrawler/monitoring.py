"""
Sentry integration for crawl runs.

- Breadcrumbs for crawl context (source, URL, stage)
- Sensitive values (cookies, proxy credentials, tokens) filtered out
- Page-level failures captured with their crawl context

Sentry itself is initialised in settings when SENTRY_DSN is set; without a
DSN every call here is a no-op.

Usage:
    from avcrawler.monitoring import capture_crawl_error

    try:
        process(url)
    except Exception as e:
        capture_crawl_error(e, source="MGS", url=url, stage="extract")
"""

import logging
from typing import Any, Dict, Optional

import sentry_sdk

logger = logging.getLogger(__name__)

SENSITIVE_FIELDS = {
    "cookie",
    "cookies",
    "authorization",
    "api_key",
    "apikey",
    "password",
    "secret",
    "token",
    "proxy",
    "proxy_url",
}

FILTERED = "[Filtered]"


def filter_sensitive_data(data: Any) -> Any:
    """Replace values of sensitive keys, recursing into nested dicts."""
    if not isinstance(data, dict):
        return data

    filtered = {}
    for key, value in data.items():
        if any(sensitive in str(key).lower() for sensitive in SENSITIVE_FIELDS):
            filtered[key] = FILTERED
        else:
            filtered[key] = filter_sensitive_data(value)
    return filtered


def before_send(event: Dict[str, Any], hint: Dict[str, Any]) -> Dict[str, Any]:
    """Sentry ``before_send`` hook stripping request cookies and crawl secrets."""
    request = event.get("request")
    if isinstance(request, dict):
        request.pop("cookies", None)
        if "headers" in request:
            request["headers"] = filter_sensitive_data(request["headers"])
    if "extra" in event:
        event["extra"] = filter_sensitive_data(event["extra"])
    return event


def add_crawl_breadcrumb(
    source: str,
    url: str,
    message: str = "Crawl operation",
    level: str = "info",
    extra_data: Optional[Dict[str, Any]] = None,
) -> None:
    data = {"source": source, "url": url}
    if extra_data:
        data.update(filter_sensitive_data(extra_data))
    sentry_sdk.add_breadcrumb(category="crawl", message=message, level=level, data=data)


def capture_crawl_error(
    error: BaseException,
    source: Optional[str] = None,
    url: Optional[str] = None,
    stage: Optional[str] = None,
    extra_context: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Capture a page-level failure with its crawl context.

    Args:
        error: The exception that occurred
        source: Source name (e.g. "MGS")
        url: Page URL
        stage: Pipeline stage that failed (fetch, extract, write...)
        extra_context: Additional context, filtered before sending
    """
    add_crawl_breadcrumb(
        source=source or "unknown",
        url=url or "unknown",
        message=f"Error: {type(error).__name__}",
        level="error",
        extra_data=extra_context,
    )

    with sentry_sdk.new_scope() as scope:
        scope.set_tag("crawler.source", source or "unknown")
        if stage:
            scope.set_tag("crawler.stage", stage)
        if url:
            scope.set_extra("crawl_url", url)
        if extra_context:
            scope.set_extra("crawl_context", filter_sensitive_data(extra_context))
        sentry_sdk.capture_exception(error)


def capture_crawl_summary(source: str, stats: Dict[str, Any]) -> None:
    """Report a run whose error count crossed the alert threshold."""
    with sentry_sdk.new_scope() as scope:
        scope.set_tag("crawler.source", source)
        scope.set_extra("crawl_stats", stats)
        sentry_sdk.capture_message(f"Crawl run for {source} finished with {stats.get('errors', 0)} errors", level="warning")
