"""
Django base settings for the storefront crawler.

This module contains settings common to all environments.
For more information on this file, see
https://docs.djangoproject.com/en/4.2/topics/settings/
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent.parent


# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = os.getenv(
    "SECRET_KEY",
    "django-insecure-avcrawler-dev-key-change-in-production"
)

# SECURITY WARNING: don't run with debug turned on in production!
DEBUG = os.getenv("DEBUG", "True") == "True"

ALLOWED_HOSTS = os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1").split(",")


# Application definition

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    # Local apps
    "avcrawler",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "config.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]


# Database
# https://docs.djangoproject.com/en/4.2/ref/settings/#databases
# Configured in environment-specific settings (development.py, production.py, test.py)

DATABASES = {
    # Override in environment-specific settings
}


# Password validation
# https://docs.djangoproject.com/en/4.2/ref/settings/#auth-password-validators

AUTH_PASSWORD_VALIDATORS = [
    {
        "NAME": "django.contrib.auth.password_validation.UserAttributeSimilarityValidator",
    },
    {
        "NAME": "django.contrib.auth.password_validation.MinimumLengthValidator",
    },
    {
        "NAME": "django.contrib.auth.password_validation.CommonPasswordValidator",
    },
    {
        "NAME": "django.contrib.auth.password_validation.NumericPasswordValidator",
    },
]


# Internationalization
# https://docs.djangoproject.com/en/4.2/topics/i18n/

LANGUAGE_CODE = "ja"

TIME_ZONE = "Asia/Tokyo"

USE_I18N = True

USE_TZ = True


# Static files and storages
# https://docs.djangoproject.com/en/4.2/ref/settings/#storages

STATIC_URL = "static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

# Raw page snapshots: "inline" keeps HTML in the database, "storage" writes it
# to the "snapshots" storage below
CRAWLER_SNAPSHOT_STORAGE = os.getenv("CRAWLER_SNAPSHOT_STORAGE", "inline")
CRAWLER_SNAPSHOT_ROOT = os.getenv("CRAWLER_SNAPSHOT_ROOT", str(BASE_DIR / "snapshots"))

STORAGES = {
    "default": {
        "BACKEND": "django.core.files.storage.FileSystemStorage",
    },
    "staticfiles": {
        "BACKEND": "django.contrib.staticfiles.storage.StaticFilesStorage",
    },
    "snapshots": {
        "BACKEND": "django.core.files.storage.FileSystemStorage",
        "OPTIONS": {
            "location": CRAWLER_SNAPSHOT_ROOT,
        },
    },
}

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"


# Celery Configuration
# https://docs.celeryproject.org/en/stable/django/first-steps-with-django.html

CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/1")
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", "redis://localhost:6379/1")
CELERY_ACCEPT_CONTENT = ["json"]
CELERY_TASK_SERIALIZER = "json"
CELERY_RESULT_SERIALIZER = "json"
CELERY_TIMEZONE = TIME_ZONE
CELERY_TASK_TRACK_STARTED = True
CELERY_TASK_TIME_LIMIT = 6 * 60 * 60  # listing crawls are slow by design

CELERY_TASK_ROUTES = {
    "avcrawler.tasks.crawl_*": {"queue": "crawl"},
    "avcrawler.tasks.reconcile_*": {"queue": "default"},
    "avcrawler.tasks.deactivate_*": {"queue": "default"},
}


# Logging Configuration
# https://docs.djangoproject.com/en/4.2/topics/logging/

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "{levelname} {asctime} {module} {message}",
            "style": "{",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
    },
    "loggers": {
        "django": {
            "handlers": ["console"],
            "level": os.getenv("LOG_LEVEL", "INFO"),
        },
        "avcrawler": {
            "handlers": ["console"],
            "level": os.getenv("LOG_LEVEL", "INFO"),
        },
    },
}


# External services consumed downstream (declared here, not called by the crawler)

TRANSLATION_API_URL = os.getenv("TRANSLATION_API_URL", "")
TRANSLATION_API_KEY = os.getenv("TRANSLATION_API_KEY", "")
AI_SERVICE_URL = os.getenv("AI_SERVICE_URL", "")


# Sentry Configuration
# https://docs.sentry.io/platforms/python/guides/django/

SENTRY_DSN = os.getenv("SENTRY_DSN", "")
SENTRY_ENVIRONMENT = os.getenv("SENTRY_ENVIRONMENT", "development")
SENTRY_TRACES_SAMPLE_RATE = float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.1"))

if SENTRY_DSN:
    import sentry_sdk

    from avcrawler.monitoring import before_send

    sentry_sdk.init(
        dsn=SENTRY_DSN,
        # Cookies carry age-verification state and proxy credentials travel in URLs
        send_default_pii=False,
        traces_sample_rate=SENTRY_TRACES_SAMPLE_RATE,
        environment=SENTRY_ENVIRONMENT,
        before_send=before_send,
    )


# Crawler Configuration

# Default timeout for HTTP requests (seconds)
CRAWLER_REQUEST_TIMEOUT = int(os.getenv("CRAWLER_REQUEST_TIMEOUT", "30"))

# Maximum attempts per page fetch (transport errors and 5xx)
CRAWLER_MAX_RETRIES = int(os.getenv("CRAWLER_MAX_RETRIES", "3"))

# Linear retry delay unit (seconds): attempt n waits n * delay
CRAWLER_RETRY_BASE_DELAY = float(os.getenv("CRAWLER_RETRY_BASE_DELAY", "2.0"))

# Rate limiting: base delay plus random jitter before each request (seconds)
CRAWLER_RATE_LIMIT_DELAY = float(os.getenv("CRAWLER_RATE_LIMIT_DELAY", "1.0"))
CRAWLER_RATE_LIMIT_JITTER = float(os.getenv("CRAWLER_RATE_LIMIT_JITTER", "0.5"))

# Age gate detection content length threshold
CRAWLER_AGE_GATE_CONTENT_THRESHOLD = int(
    os.getenv("CRAWLER_AGE_GATE_CONTENT_THRESHOLD", "500")
)

# Proxying: a fixed endpoint, or a rotating pool loaded from a list URL
CRAWLER_PROXY_ENABLED = os.getenv("CRAWLER_PROXY_ENABLED", "False") == "True"
CRAWLER_PROXY_URL = os.getenv("CRAWLER_PROXY_URL", "")
CRAWLER_FREE_PROXY_ENABLED = os.getenv("CRAWLER_FREE_PROXY_ENABLED", "False") == "True"
CRAWLER_PROXY_LIST_URL = os.getenv("CRAWLER_PROXY_LIST_URL", "")

# Listing enumeration stop rule
CRAWLER_MAX_EMPTY_PAGES = int(os.getenv("CRAWLER_MAX_EMPTY_PAGES", "3"))
CRAWLER_MAX_NO_NEW_PAGES = int(os.getenv("CRAWLER_MAX_NO_NEW_PAGES", "3"))

# Wiki crawl page cap per run
CRAWLER_WIKI_MAX_PAGES = int(os.getenv("CRAWLER_WIKI_MAX_PAGES", "500"))

# Affiliate ids appended to product URLs
CRAWLER_MGS_AFFILIATE_CODE = os.getenv("CRAWLER_MGS_AFFILIATE_CODE", "")
CRAWLER_FANZA_AFFILIATE_ID = os.getenv("CRAWLER_FANZA_AFFILIATE_ID", "")

# Report a run to Sentry when its page error count reaches this value
CRAWLER_ERROR_ALERT_THRESHOLD = int(os.getenv("CRAWLER_ERROR_ALERT_THRESHOLD", "50"))
