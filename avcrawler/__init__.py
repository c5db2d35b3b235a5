"""
Storefront metadata crawler Django application.

Crawls adult-video storefront detail pages, stores raw snapshots for change
detection and ingests normalized products, performers, prices, media and sales.
"""

default_app_config = "avcrawler.apps.AvcrawlerConfig"
