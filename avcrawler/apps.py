"""
Crawler application configuration.
"""

from django.apps import AppConfig


class AvcrawlerConfig(AppConfig):
    """Configuration for the storefront crawler Django application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "avcrawler"
    verbose_name = "Storefront Crawler"
