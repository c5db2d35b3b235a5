"""
URL configuration for the storefront crawler.

The crawler has no public API; only the Django admin is mounted for
inspecting crawl runs, snapshots and wiki staging rows.
"""

from django.contrib import admin
from django.urls import path

urlpatterns = [
    path("admin/", admin.site.urls),
]
