"""
Celery tasks for the storefront crawler.

Each task wraps the service used by the matching management command so
scheduled runs and manual runs share one code path.
"""

import logging
from typing import Any, Dict, List, Optional

from celery import shared_task

logger = logging.getLogger(__name__)


@shared_task(name="avcrawler.tasks.crawl_source", bind=True)
def crawl_source(
    self,
    source: str,
    sort: str = "new",
    direction: str = "asc",
    start_page: Optional[int] = None,
    max_pages: Optional[int] = None,
    offset: int = 0,
    limit: Optional[int] = None,
    force: bool = False,
    urls: Optional[List[str]] = None,
    sitemap_url: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Crawl one storefront source.

    Enumerates the listing by default; ``urls`` or ``sitemap_url`` switch to
    an explicit target list.

    Returns:
        Dict with status and crawl counters
    """
    from avcrawler.services.crawl_runner import CrawlRunner

    logger.info(f"Starting crawl task for {source} (task {self.request.id})")

    try:
        with CrawlRunner(source, force=force) as runner:
            if urls:
                stats = runner.crawl_urls(urls, limit=limit, options={"mode": "urls", "count": len(urls)})
            elif sitemap_url:
                stats = runner.crawl_sitemap(sitemap_url, offset=offset, limit=limit)
            else:
                stats = runner.crawl_listing(
                    sort=sort,
                    direction=direction,
                    start_page=start_page,
                    max_pages=max_pages,
                    offset=offset,
                    limit=limit,
                )
    except (KeyError, ValueError) as e:
        logger.error(f"Crawl task for {source} rejected: {e}")
        return {"status": "failed", "source": source, "error": str(e)}

    return {"status": "completed", "source": source, "stats": stats.as_dict()}


@shared_task(name="avcrawler.tasks.crawl_wiki", bind=True)
def crawl_wiki(
    self,
    site: str,
    limit: Optional[int] = None,
    max_pages: Optional[int] = None,
    missing_from: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Crawl an auxiliary wiki into the staging table.

    With ``missing_from`` the wiki is queried per product code for products of
    that source that still have no performers, instead of a full BFS.
    """
    from avcrawler.wiki import WikiCrawler, codes_missing_performers

    logger.info(f"Starting wiki crawl task for {site} (task {self.request.id})")

    try:
        with WikiCrawler(site, max_pages=max_pages) as crawler:
            if missing_from:
                codes = codes_missing_performers(missing_from, limit=limit or 100)
                stats = crawler.crawl_product_codes(codes)
            else:
                stats = crawler.crawl(limit=limit)
    except (KeyError, ValueError) as e:
        logger.error(f"Wiki crawl task for {site} rejected: {e}")
        return {"status": "failed", "site": site, "error": str(e)}

    return {"status": "completed", "site": site, "stats": stats.as_dict()}


@shared_task(name="avcrawler.tasks.reconcile_wiki_staging")
def reconcile_wiki_staging(limit: Optional[int] = None) -> Dict[str, Any]:
    """Link staged wiki performers to products."""
    from avcrawler.wiki import reconcile_staging

    stats = reconcile_staging(limit=limit)
    return {"status": "completed", "stats": stats.as_dict()}


@shared_task(name="avcrawler.tasks.deactivate_expired_sales")
def deactivate_expired_sales() -> Dict[str, Any]:
    """Flip active sales whose end time has passed."""
    from avcrawler.services.sale_detector import deactivate_expired_sales as deactivate

    count = deactivate()
    return {"status": "completed", "deactivated": count}
