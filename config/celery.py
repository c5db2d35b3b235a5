"""
Celery configuration for the storefront crawler.

This module configures Celery for periodic crawl work with separate task
queues for storefront crawls, wiki crawls and database maintenance.
"""

import os
from celery import Celery
from celery.schedules import crontab

# Set the default Django settings module for the 'celery' program.
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("avcrawler")

# Using a string here means the worker doesn't have to serialize
# the configuration object to child processes.
# - namespace='CELERY' means all celery-related configuration keys
#   should have a `CELERY_` prefix.
app.config_from_object("django.conf:settings", namespace="CELERY")

# Load task modules from all registered Django apps.
app.autodiscover_tasks()

# Configure task queues for different operations
app.conf.task_queues = {
    "crawl": {
        "exchange": "crawl",
        "routing_key": "crawl",
    },
    "wiki": {
        "exchange": "wiki",
        "routing_key": "wiki",
    },
    "default": {
        "exchange": "default",
        "routing_key": "default",
    },
}

# Default task routing
app.conf.task_default_queue = "default"
app.conf.task_default_exchange = "default"
app.conf.task_default_routing_key = "default"

# Route specific tasks to their queues
app.conf.task_routes = {
    "avcrawler.tasks.crawl_source": {"queue": "crawl"},
    "avcrawler.tasks.crawl_wiki": {"queue": "wiki"},
    "avcrawler.tasks.reconcile_wiki_staging": {"queue": "default"},
    "avcrawler.tasks.deactivate_expired_sales": {"queue": "default"},
}

# Configure Celery Beat schedule for periodic tasks
app.conf.beat_schedule = {
    # New releases first; the stop rule ends the walk once pages hold nothing new
    "crawl-mgs-new-releases-every-6-hours": {
        "task": "avcrawler.tasks.crawl_source",
        "schedule": crontab(minute=0, hour="*/6"),
        "kwargs": {"source": "MGS", "sort": "new", "direction": "asc"},
    },
    "crawl-av-wiki-nightly": {
        "task": "avcrawler.tasks.crawl_wiki",
        "schedule": crontab(minute=30, hour=3),
        "kwargs": {"site": "av-wiki"},
    },
    "reconcile-wiki-staging-hourly": {
        "task": "avcrawler.tasks.reconcile_wiki_staging",
        "schedule": crontab(minute=15),
    },
    "deactivate-expired-sales-every-30-minutes": {
        "task": "avcrawler.tasks.deactivate_expired_sales",
        "schedule": crontab(minute="*/30"),
    },
}
