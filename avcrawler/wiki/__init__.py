"""
Auxiliary wiki crawling.

- sites: registered wikis and their page parsers
- crawler: BFS discovery writing to the staging table
- reconcile: staging -> product performer links
"""

from .crawler import WikiCrawler, WikiCrawlStats, stage_entries
from .reconcile import ReconcileStats, codes_missing_performers, reconcile_staging
from .sites import WIKI_SITES, WikiEntry, WikiSite, get_wiki_site

__all__ = [
    "WikiCrawler",
    "WikiCrawlStats",
    "stage_entries",
    "ReconcileStats",
    "codes_missing_performers",
    "reconcile_staging",
    "WIKI_SITES",
    "WikiEntry",
    "WikiSite",
    "get_wiki_site",
]
