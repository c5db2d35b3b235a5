"""
Django admin configuration for the storefront crawler.

Read-mostly views for inspecting crawl runs, snapshots, the catalog and the
wiki staging table. Crawls themselves are started from management commands
or Celery beat.
"""

from django.contrib import admin
from django.utils.html import format_html

from avcrawler.models import (
    CrawlRun,
    Performer,
    PerformerAlias,
    Product,
    ProductImage,
    ProductPerformer,
    ProductPrice,
    ProductSource,
    RawSnapshot,
    Sale,
    Tag,
    WikiCrawlStaging,
)


STATUS_COLORS = {
    "running": "#007bff",
    "completed": "#28a745",
    "failed": "#dc3545",
}


def _badge(color, text):
    return format_html(
        '<span style="background-color: {}; color: white; '
        'padding: 2px 8px; border-radius: 4px;">{}</span>',
        color, text
    )


@admin.register(CrawlRun)
class CrawlRunAdmin(admin.ModelAdmin):
    """Read-only view of crawl run summaries."""

    list_display = [
        "id_short",
        "source",
        "status_badge",
        "started_at",
        "completed_at",
        "fetched",
        "new",
        "updated",
        "errors",
    ]
    list_filter = [
        "status",
        "source",
        ("started_at", admin.DateFieldListFilter),
    ]
    readonly_fields = [
        "id",
        "source",
        "status",
        "options",
        "stats",
        "error_message",
        "started_at",
        "completed_at",
    ]
    ordering = ["-started_at"]

    def id_short(self, obj):
        """Display shortened run ID."""
        return str(obj.id)[:8]
    id_short.short_description = "Run ID"

    def status_badge(self, obj):
        return _badge(STATUS_COLORS.get(obj.status, "#6c757d"), obj.status.title())
    status_badge.short_description = "Status"
    status_badge.admin_order_field = "status"

    def fetched(self, obj):
        return obj.stats.get("fetched", 0)

    def new(self, obj):
        return obj.stats.get("new", 0)

    def updated(self, obj):
        return obj.stats.get("updated", 0)

    def errors(self, obj):
        return obj.stats.get("errors", 0)

    def has_add_permission(self, request):
        """Runs are created by crawls only."""
        return False

    def has_change_permission(self, request, obj=None):
        return False


@admin.register(RawSnapshot)
class RawSnapshotAdmin(admin.ModelAdmin):
    list_display = ["source", "page_key", "content_hash_short", "fetched_at", "processed_at"]
    list_filter = ["source", ("fetched_at", admin.DateFieldListFilter)]
    search_fields = ["page_key", "url"]
    readonly_fields = [
        "id",
        "source",
        "page_key",
        "url",
        "content_hash",
        "storage_path",
        "fetched_at",
        "processed_at",
        "created_at",
    ]
    exclude = ["html_content"]

    def content_hash_short(self, obj):
        return obj.content_hash[:12]
    content_hash_short.short_description = "Hash"

    def has_add_permission(self, request):
        return False


class ProductSourceInline(admin.TabularInline):
    model = ProductSource
    extra = 0
    fields = ["source", "source_product_id", "price", "data_source", "last_updated"]
    readonly_fields = ["last_updated"]


class ProductPerformerInline(admin.TabularInline):
    model = ProductPerformer
    extra = 0
    autocomplete_fields = ["performer"]


class ProductImageInline(admin.TabularInline):
    model = ProductImage
    extra = 0
    fields = ["image_type", "display_order", "image_url", "source"]


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ["normalized_product_id", "title_short", "maker_name", "release_date", "updated_at"]
    list_filter = ["maker_category", ("release_date", admin.DateFieldListFilter)]
    search_fields = ["normalized_product_id", "title", "maker_name"]
    readonly_fields = ["id", "created_at", "updated_at"]
    inlines = [ProductSourceInline, ProductPerformerInline, ProductImageInline]

    def title_short(self, obj):
        return obj.title[:60]
    title_short.short_description = "Title"


class ProductPriceInline(admin.TabularInline):
    model = ProductPrice
    extra = 0


class SaleInline(admin.TabularInline):
    model = Sale
    extra = 0
    fields = ["regular_price", "sale_price", "discount_percent", "sale_type", "end_at", "is_active"]


@admin.register(ProductSource)
class ProductSourceAdmin(admin.ModelAdmin):
    list_display = ["source", "source_product_id", "product", "price", "last_updated"]
    list_filter = ["source", "data_source"]
    search_fields = ["source_product_id", "product__normalized_product_id"]
    raw_id_fields = ["product"]
    inlines = [ProductPriceInline, SaleInline]


class PerformerAliasInline(admin.TabularInline):
    model = PerformerAlias
    extra = 0


@admin.register(Performer)
class PerformerAdmin(admin.ModelAdmin):
    list_display = ["name", "name_kana", "product_count"]
    search_fields = ["name", "name_kana", "aliases__alias_name"]
    inlines = [PerformerAliasInline]

    def product_count(self, obj):
        return obj.product_links.count()
    product_count.short_description = "Products"


@admin.register(Tag)
class TagAdmin(admin.ModelAdmin):
    list_display = ["name", "category"]
    list_filter = ["category"]
    search_fields = ["name"]


@admin.register(Sale)
class SaleAdmin(admin.ModelAdmin):
    list_display = [
        "product_source",
        "regular_price",
        "sale_price",
        "discount_badge",
        "sale_type",
        "end_at",
        "is_active",
    ]
    list_filter = ["is_active", "sale_type", ("end_at", admin.DateFieldListFilter)]
    search_fields = ["product_source__source_product_id"]
    raw_id_fields = ["product_source"]

    def discount_badge(self, obj):
        color = "#dc3545" if obj.discount_percent >= 50 else "#ffc107"
        return _badge(color, f"{obj.discount_percent}% OFF")
    discount_badge.short_description = "Discount"
    discount_badge.admin_order_field = "discount_percent"


@admin.register(WikiCrawlStaging)
class WikiCrawlStagingAdmin(admin.ModelAdmin):
    list_display = ["site", "product_code", "performer_name", "created_at", "processed_at"]
    list_filter = ["site", ("processed_at", admin.EmptyFieldListFilter)]
    search_fields = ["product_code", "performer_name"]
    readonly_fields = ["id", "site", "product_code", "performer_name", "source_url", "created_at", "processed_at"]

    def has_add_permission(self, request):
        return False
