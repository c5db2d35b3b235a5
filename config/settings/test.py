"""
Test settings for the storefront crawler.

Uses in-memory SQLite and eager Celery for fast test execution.
"""

import os
from .base import *

# Test mode
DEBUG = False

ALLOWED_HOSTS = ["localhost", "127.0.0.1", "testserver"]

# Test database - in-memory SQLite for speed
DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

# Test Cache - use local memory cache
CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "unique-snowflake",
    }
}

# Test Celery - run tasks synchronously
CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True

# Test logging - minimal output
LOGGING["loggers"]["django"]["level"] = "WARNING"
LOGGING["loggers"]["avcrawler"]["level"] = "WARNING"

# Password validators disabled for faster tests
AUTH_PASSWORD_VALIDATORS = []

# Use faster password hasher for tests
PASSWORD_HASHERS = [
    "django.contrib.auth.hashers.MD5PasswordHasher",
]

# Disable Sentry in tests
SENTRY_DSN = ""

# Test crawler settings - fail fast, never sleep
CRAWLER_REQUEST_TIMEOUT = 5
CRAWLER_MAX_RETRIES = 1
CRAWLER_RETRY_BASE_DELAY = 0
CRAWLER_RATE_LIMIT_DELAY = 0
CRAWLER_RATE_LIMIT_JITTER = 0
CRAWLER_SNAPSHOT_STORAGE = "inline"
CRAWLER_PROXY_ENABLED = False
CRAWLER_FREE_PROXY_ENABLED = False
CRAWLER_MGS_AFFILIATE_CODE = ""
CRAWLER_FANZA_AFFILIATE_ID = ""
