"""
Django models for the storefront crawler.

Raw snapshots, canonical products and performers, per-source rows, child
entities keyed by natural keys, sale windows and the wiki staging table.
"""

import hashlib
import uuid

from django.db import models
from django.db.models import Q
from django.utils import timezone


# ============================================================
# Choices
# ============================================================


class DataSourceChoices(models.TextChoices):
    """Provenance of a ProductSource row."""

    HTML = "HTML", "HTML Scrape"
    API = "API", "Affiliate API"
    CSV = "CSV", "CSV Feed"
    WIKI = "WIKI", "Wiki Backfill"


class PriceTypeChoices(models.TextChoices):
    """Delivery format a price applies to."""

    DEFAULT = "default", "Default"
    DOWNLOAD = "download", "Download (SD)"
    STREAMING = "streaming", "Streaming"
    HD = "hd", "Download (HD)"
    FOUR_K = "4k", "4K"
    DVD = "dvd", "DVD"


class ImageTypeChoices(models.TextChoices):
    """Role of a product image."""

    PACKAGE = "package", "Package"
    THUMBNAIL = "thumbnail", "Thumbnail"
    SAMPLE = "sample", "Sample"


class VideoTypeChoices(models.TextChoices):
    """Role of a product video."""

    SAMPLE = "sample", "Sample"
    TRAILER = "trailer", "Trailer"


class TagCategoryChoices(models.TextChoices):
    """Category of a tag."""

    GENRE = "genre", "Genre"
    PROVIDER = "provider", "Provider"
    LABEL = "label", "Label"


class SaleTypeChoices(models.TextChoices):
    """Kind of discount window."""

    TIMESALE = "timesale", "Time Sale"
    CAMPAIGN = "campaign", "Campaign"
    CLEARANCE = "clearance", "Clearance"


class CrawlRunStatus(models.TextChoices):
    """Lifecycle of a crawl run."""

    RUNNING = "running", "Running"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"


# ============================================================
# Raw snapshots
# ============================================================


class RawSnapshot(models.Model):
    """
    Raw payload of a fetched detail page.

    The content hash decides whether a page has to be re-ingested. The payload
    lives either inline in ``html_content`` or in the snapshot object store at
    ``storage_path``. Rows are never deleted.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    source = models.CharField(
        max_length=50,
        help_text="Source site the page was fetched from (e.g. MGS)",
    )
    page_key = models.CharField(
        max_length=200,
        help_text="Source-local identifier of the page",
    )
    url = models.URLField(
        max_length=2000,
        help_text="URL the page was fetched from",
    )
    content_hash = models.CharField(
        max_length=64,
        help_text="SHA-256 hash of the raw HTML",
    )
    html_content = models.TextField(
        blank=True,
        null=True,
        help_text="Inline raw HTML when no object store is configured",
    )
    storage_path = models.CharField(
        max_length=500,
        blank=True,
        null=True,
        help_text="Object store path of the raw HTML",
    )

    fetched_at = models.DateTimeField(
        default=timezone.now,
        help_text="When the page was last fetched",
    )
    processed_at = models.DateTimeField(
        blank=True,
        null=True,
        help_text="When ingestion last succeeded; cleared when the hash changes",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "raw_snapshots"
        unique_together = ["source", "page_key"]
        indexes = [
            models.Index(fields=["source", "processed_at"], name="raw_snap_source_proc_idx"),
        ]
        verbose_name = "Raw Snapshot"
        verbose_name_plural = "Raw Snapshots"

    def __str__(self):
        return f"{self.source}:{self.page_key}"

    @property
    def is_processed(self) -> bool:
        return self.processed_at is not None

    @staticmethod
    def compute_content_hash(content: str) -> str:
        """Compute SHA-256 hash of page content."""
        return hashlib.sha256(content.encode("utf-8")).hexdigest()


# ============================================================
# Canonical entities
# ============================================================


class Product(models.Model):
    """
    Canonical product (one underlying work).

    Identity is ``normalized_product_id``; every site that sells the work
    points at it through a ProductSource row.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    normalized_product_id = models.CharField(
        max_length=100,
        unique=True,
        help_text="Canonical case/format-folded product code",
    )
    title = models.CharField(max_length=500, blank=True)
    description = models.TextField(blank=True, null=True)
    duration = models.PositiveIntegerField(
        blank=True,
        null=True,
        help_text="Running time in minutes",
    )
    release_date = models.DateField(blank=True, null=True)
    default_thumbnail_url = models.URLField(max_length=2000, blank=True, null=True)

    maker_name = models.CharField(max_length=200, blank=True, null=True)
    maker_category = models.CharField(max_length=20, blank=True, null=True)

    translations = models.JSONField(
        default=dict,
        blank=True,
        help_text="Translated fields keyed by locale (written by downstream services)",
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "products"
        ordering = ["-created_at"]
        verbose_name = "Product"
        verbose_name_plural = "Products"

    def __str__(self):
        return f"{self.normalized_product_id}: {self.title[:50]}"


class ProductSource(models.Model):
    """One row per (source, source-local id): how a site lists a Product."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    product = models.ForeignKey(
        Product,
        on_delete=models.CASCADE,
        related_name="sources",
    )
    source = models.CharField(max_length=50)
    source_product_id = models.CharField(
        max_length=200,
        help_text="Product identifier as the source site spells it",
    )
    affiliate_url = models.URLField(max_length=2000, blank=True, null=True)
    price = models.PositiveIntegerField(
        blank=True,
        null=True,
        help_text="Representative price in yen",
    )
    data_source = models.CharField(
        max_length=10,
        choices=DataSourceChoices.choices,
        default=DataSourceChoices.HTML,
    )

    last_updated = models.DateTimeField(default=timezone.now)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "product_sources"
        unique_together = ["source", "source_product_id"]
        indexes = [
            models.Index(fields=["product", "source"], name="prod_src_product_source_idx"),
        ]
        verbose_name = "Product Source"
        verbose_name_plural = "Product Sources"

    def __str__(self):
        return f"{self.source}:{self.source_product_id}"


class ProductPrice(models.Model):
    """Typed price (download/streaming/HD...) for one ProductSource."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    product_source = models.ForeignKey(
        ProductSource,
        on_delete=models.CASCADE,
        related_name="prices",
    )
    price_type = models.CharField(
        max_length=20,
        choices=PriceTypeChoices.choices,
        default=PriceTypeChoices.DEFAULT,
    )
    price = models.PositiveIntegerField(help_text="Price in yen")
    currency = models.CharField(max_length=3, default="JPY")
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "product_prices"
        unique_together = ["product_source", "price_type"]

    def __str__(self):
        return f"{self.product_source} {self.price_type}: {self.price}"


class Performer(models.Model):
    """Canonical performer identity."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    name = models.CharField(max_length=100, unique=True)
    name_kana = models.CharField(max_length=100, blank=True, null=True)
    profile_image_url = models.URLField(max_length=2000, blank=True, null=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "performers"
        ordering = ["name"]

    def __str__(self):
        return self.name


class PerformerAlias(models.Model):
    """Alternative spelling that resolves to a Performer."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    performer = models.ForeignKey(
        Performer,
        on_delete=models.CASCADE,
        related_name="aliases",
    )
    alias_name = models.CharField(max_length=100, unique=True)
    source = models.CharField(max_length=50, blank=True, null=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "performer_aliases"

    def __str__(self):
        return f"{self.alias_name} -> {self.performer.name}"


class Tag(models.Model):
    """Genre, provider or label tag."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    name = models.CharField(max_length=100, unique=True)
    category = models.CharField(
        max_length=20,
        choices=TagCategoryChoices.choices,
        default=TagCategoryChoices.GENRE,
    )

    class Meta:
        db_table = "tags"

    def __str__(self):
        return self.name


# ============================================================
# Child rows (one per natural key)
# ============================================================


class ProductPerformer(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name="performer_links")
    performer = models.ForeignKey(Performer, on_delete=models.CASCADE, related_name="product_links")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "product_performers"
        unique_together = ["product", "performer"]


class ProductTag(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name="tag_links")
    tag = models.ForeignKey(Tag, on_delete=models.CASCADE, related_name="product_links")

    class Meta:
        db_table = "product_tags"
        unique_together = ["product", "tag"]


class ProductImage(models.Model):
    """Package, thumbnail or sample image of a product."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name="images")
    image_url = models.URLField(max_length=2000)
    image_type = models.CharField(
        max_length=20,
        choices=ImageTypeChoices.choices,
        default=ImageTypeChoices.SAMPLE,
    )
    display_order = models.PositiveIntegerField(default=0)
    source = models.CharField(max_length=50, help_text="Source site the image came from")

    class Meta:
        db_table = "product_images"
        unique_together = ["product", "image_url"]
        ordering = ["display_order"]

    def __str__(self):
        return f"{self.product_id} - {self.image_type} #{self.display_order}"


class ProductVideo(models.Model):
    """Sample or trailer video of a product."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name="videos")
    video_url = models.URLField(max_length=2000)
    video_type = models.CharField(
        max_length=20,
        choices=VideoTypeChoices.choices,
        default=VideoTypeChoices.SAMPLE,
    )
    display_order = models.PositiveIntegerField(default=0)
    source = models.CharField(max_length=50)

    class Meta:
        db_table = "product_videos"
        unique_together = ["product", "video_url"]


class ProductReview(models.Model):
    """
    User review scraped from a source.

    ``source_review_id`` is the site's id when it exposes one, otherwise an
    md5 of reviewer name and content prefix.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name="reviews")
    source = models.CharField(max_length=50)
    source_review_id = models.CharField(max_length=100)
    reviewer_name = models.CharField(max_length=200, blank=True, null=True)
    rating = models.DecimalField(max_digits=3, decimal_places=1, blank=True, null=True)
    max_rating = models.DecimalField(max_digits=3, decimal_places=1, default=5)
    title = models.CharField(max_length=500, blank=True, null=True)
    content = models.TextField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "product_reviews"
        unique_together = ["product", "source", "source_review_id"]


class ProductRatingSummary(models.Model):
    """Aggregate rating a source shows for a product."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name="rating_summaries")
    source = models.CharField(max_length=50)
    average_rating = models.DecimalField(max_digits=4, decimal_places=2)
    max_rating = models.DecimalField(max_digits=3, decimal_places=1, default=5)
    total_reviews = models.PositiveIntegerField(default=0)
    last_updated = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "product_rating_summaries"
        unique_together = ["product", "source"]


# ============================================================
# Sales
# ============================================================


class Sale(models.Model):
    """
    Discount window observed on a ProductSource.

    Superseded on re-detection; at most one active row per product source.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    product_source = models.ForeignKey(
        ProductSource,
        on_delete=models.CASCADE,
        related_name="sales",
    )
    regular_price = models.PositiveIntegerField()
    sale_price = models.PositiveIntegerField()
    discount_percent = models.PositiveSmallIntegerField()
    sale_type = models.CharField(
        max_length=20,
        choices=SaleTypeChoices.choices,
        default=SaleTypeChoices.TIMESALE,
    )
    end_at = models.DateTimeField(
        blank=True,
        null=True,
        help_text="Heuristically derived end of the discount window",
    )
    is_active = models.BooleanField(default=True)

    fetched_at = models.DateTimeField(default=timezone.now)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "sales"
        constraints = [
            models.UniqueConstraint(
                fields=["product_source"],
                condition=Q(is_active=True),
                name="unique_active_sale_per_source",
            ),
        ]
        indexes = [
            models.Index(fields=["is_active", "end_at"], name="sales_active_end_idx"),
        ]

    def __str__(self):
        return f"{self.product_source}: {self.regular_price} -> {self.sale_price} ({self.discount_percent}%)"


# ============================================================
# Wiki staging
# ============================================================


class WikiCrawlStaging(models.Model):
    """
    Performer name found on an auxiliary wiki site for a product code.

    Write-once per (site, product_code, performer_name); reconciliation only
    stamps ``processed_at``.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    site = models.CharField(max_length=50)
    product_code = models.CharField(max_length=100)
    performer_name = models.CharField(max_length=100)
    source_url = models.URLField(max_length=2000)
    created_at = models.DateTimeField(auto_now_add=True)
    processed_at = models.DateTimeField(blank=True, null=True)

    class Meta:
        db_table = "wiki_crawl_staging"
        unique_together = ["site", "product_code", "performer_name"]
        indexes = [
            models.Index(fields=["product_code"], name="wiki_staging_code_idx"),
            models.Index(fields=["processed_at"], name="wiki_staging_processed_idx"),
        ]

    def __str__(self):
        return f"{self.site}: {self.product_code} -> {self.performer_name}"


# ============================================================
# Crawl runs
# ============================================================


class CrawlRun(models.Model):
    """End-of-run summary of one crawl invocation."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    source = models.CharField(max_length=50)
    status = models.CharField(
        max_length=20,
        choices=CrawlRunStatus.choices,
        default=CrawlRunStatus.RUNNING,
    )
    options = models.JSONField(default=dict, blank=True)
    stats = models.JSONField(default=dict, blank=True)
    error_message = models.TextField(blank=True, null=True)

    started_at = models.DateTimeField(default=timezone.now)
    completed_at = models.DateTimeField(blank=True, null=True)

    class Meta:
        db_table = "crawl_runs"
        ordering = ["-started_at"]

    def __str__(self):
        return f"{self.source} run {self.started_at:%Y-%m-%d %H:%M} ({self.status})"
