"""
Initial schema: raw snapshots, canonical products and performers, per-source
rows and their children, sales, wiki staging and crawl runs.
"""

import uuid

import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


DATA_SOURCE_CHOICES = [
    ("HTML", "HTML Scrape"),
    ("API", "Affiliate API"),
    ("CSV", "CSV Feed"),
    ("WIKI", "Wiki Backfill"),
]

PRICE_TYPE_CHOICES = [
    ("default", "Default"),
    ("download", "Download (SD)"),
    ("streaming", "Streaming"),
    ("hd", "Download (HD)"),
    ("4k", "4K"),
    ("dvd", "DVD"),
]


def uuid_pk():
    return models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="RawSnapshot",
            fields=[
                ("id", uuid_pk()),
                (
                    "source",
                    models.CharField(
                        help_text="Source site the page was fetched from (e.g. MGS)",
                        max_length=50,
                    ),
                ),
                (
                    "page_key",
                    models.CharField(help_text="Source-local identifier of the page", max_length=200),
                ),
                ("url", models.URLField(help_text="URL the page was fetched from", max_length=2000)),
                ("content_hash", models.CharField(help_text="SHA-256 hash of the raw HTML", max_length=64)),
                (
                    "html_content",
                    models.TextField(
                        blank=True,
                        help_text="Inline raw HTML when no object store is configured",
                        null=True,
                    ),
                ),
                (
                    "storage_path",
                    models.CharField(
                        blank=True,
                        help_text="Object store path of the raw HTML",
                        max_length=500,
                        null=True,
                    ),
                ),
                (
                    "fetched_at",
                    models.DateTimeField(
                        default=django.utils.timezone.now,
                        help_text="When the page was last fetched",
                    ),
                ),
                (
                    "processed_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When ingestion last succeeded; cleared when the hash changes",
                        null=True,
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={
                "verbose_name": "Raw Snapshot",
                "verbose_name_plural": "Raw Snapshots",
                "db_table": "raw_snapshots",
                "indexes": [
                    models.Index(fields=["source", "processed_at"], name="raw_snap_source_proc_idx"),
                ],
                "unique_together": {("source", "page_key")},
            },
        ),
        migrations.CreateModel(
            name="Product",
            fields=[
                ("id", uuid_pk()),
                (
                    "normalized_product_id",
                    models.CharField(
                        help_text="Canonical case/format-folded product code",
                        max_length=100,
                        unique=True,
                    ),
                ),
                ("title", models.CharField(blank=True, max_length=500)),
                ("description", models.TextField(blank=True, null=True)),
                (
                    "duration",
                    models.PositiveIntegerField(blank=True, help_text="Running time in minutes", null=True),
                ),
                ("release_date", models.DateField(blank=True, null=True)),
                ("default_thumbnail_url", models.URLField(blank=True, max_length=2000, null=True)),
                ("maker_name", models.CharField(blank=True, max_length=200, null=True)),
                ("maker_category", models.CharField(blank=True, max_length=20, null=True)),
                (
                    "translations",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Translated fields keyed by locale (written by downstream services)",
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "verbose_name": "Product",
                "verbose_name_plural": "Products",
                "db_table": "products",
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="ProductSource",
            fields=[
                ("id", uuid_pk()),
                ("source", models.CharField(max_length=50)),
                (
                    "source_product_id",
                    models.CharField(
                        help_text="Product identifier as the source site spells it",
                        max_length=200,
                    ),
                ),
                ("affiliate_url", models.URLField(blank=True, max_length=2000, null=True)),
                (
                    "price",
                    models.PositiveIntegerField(blank=True, help_text="Representative price in yen", null=True),
                ),
                (
                    "data_source",
                    models.CharField(choices=DATA_SOURCE_CHOICES, default="HTML", max_length=10),
                ),
                ("last_updated", models.DateTimeField(default=django.utils.timezone.now)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "product",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="sources",
                        to="avcrawler.product",
                    ),
                ),
            ],
            options={
                "verbose_name": "Product Source",
                "verbose_name_plural": "Product Sources",
                "db_table": "product_sources",
                "indexes": [
                    models.Index(fields=["product", "source"], name="prod_src_product_source_idx"),
                ],
                "unique_together": {("source", "source_product_id")},
            },
        ),
        migrations.CreateModel(
            name="ProductPrice",
            fields=[
                ("id", uuid_pk()),
                (
                    "price_type",
                    models.CharField(choices=PRICE_TYPE_CHOICES, default="default", max_length=20),
                ),
                ("price", models.PositiveIntegerField(help_text="Price in yen")),
                ("currency", models.CharField(default="JPY", max_length=3)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "product_source",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="prices",
                        to="avcrawler.productsource",
                    ),
                ),
            ],
            options={
                "db_table": "product_prices",
                "unique_together": {("product_source", "price_type")},
            },
        ),
        migrations.CreateModel(
            name="Performer",
            fields=[
                ("id", uuid_pk()),
                ("name", models.CharField(max_length=100, unique=True)),
                ("name_kana", models.CharField(blank=True, max_length=100, null=True)),
                ("profile_image_url", models.URLField(blank=True, max_length=2000, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={
                "db_table": "performers",
                "ordering": ["name"],
            },
        ),
        migrations.CreateModel(
            name="PerformerAlias",
            fields=[
                ("id", uuid_pk()),
                ("alias_name", models.CharField(max_length=100, unique=True)),
                ("source", models.CharField(blank=True, max_length=50, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "performer",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="aliases",
                        to="avcrawler.performer",
                    ),
                ),
            ],
            options={
                "db_table": "performer_aliases",
            },
        ),
        migrations.CreateModel(
            name="Tag",
            fields=[
                ("id", uuid_pk()),
                ("name", models.CharField(max_length=100, unique=True)),
                (
                    "category",
                    models.CharField(
                        choices=[("genre", "Genre"), ("provider", "Provider"), ("label", "Label")],
                        default="genre",
                        max_length=20,
                    ),
                ),
            ],
            options={
                "db_table": "tags",
            },
        ),
        migrations.CreateModel(
            name="ProductPerformer",
            fields=[
                ("id", uuid_pk()),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "product",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="performer_links",
                        to="avcrawler.product",
                    ),
                ),
                (
                    "performer",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="product_links",
                        to="avcrawler.performer",
                    ),
                ),
            ],
            options={
                "db_table": "product_performers",
                "unique_together": {("product", "performer")},
            },
        ),
        migrations.CreateModel(
            name="ProductTag",
            fields=[
                ("id", uuid_pk()),
                (
                    "product",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="tag_links",
                        to="avcrawler.product",
                    ),
                ),
                (
                    "tag",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="product_links",
                        to="avcrawler.tag",
                    ),
                ),
            ],
            options={
                "db_table": "product_tags",
                "unique_together": {("product", "tag")},
            },
        ),
        migrations.CreateModel(
            name="ProductImage",
            fields=[
                ("id", uuid_pk()),
                ("image_url", models.URLField(max_length=2000)),
                (
                    "image_type",
                    models.CharField(
                        choices=[("package", "Package"), ("thumbnail", "Thumbnail"), ("sample", "Sample")],
                        default="sample",
                        max_length=20,
                    ),
                ),
                ("display_order", models.PositiveIntegerField(default=0)),
                ("source", models.CharField(help_text="Source site the image came from", max_length=50)),
                (
                    "product",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="images",
                        to="avcrawler.product",
                    ),
                ),
            ],
            options={
                "db_table": "product_images",
                "ordering": ["display_order"],
                "unique_together": {("product", "image_url")},
            },
        ),
        migrations.CreateModel(
            name="ProductVideo",
            fields=[
                ("id", uuid_pk()),
                ("video_url", models.URLField(max_length=2000)),
                (
                    "video_type",
                    models.CharField(
                        choices=[("sample", "Sample"), ("trailer", "Trailer")],
                        default="sample",
                        max_length=20,
                    ),
                ),
                ("display_order", models.PositiveIntegerField(default=0)),
                ("source", models.CharField(max_length=50)),
                (
                    "product",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="videos",
                        to="avcrawler.product",
                    ),
                ),
            ],
            options={
                "db_table": "product_videos",
                "unique_together": {("product", "video_url")},
            },
        ),
        migrations.CreateModel(
            name="ProductReview",
            fields=[
                ("id", uuid_pk()),
                ("source", models.CharField(max_length=50)),
                ("source_review_id", models.CharField(max_length=100)),
                ("reviewer_name", models.CharField(blank=True, max_length=200, null=True)),
                ("rating", models.DecimalField(blank=True, decimal_places=1, max_digits=3, null=True)),
                ("max_rating", models.DecimalField(decimal_places=1, default=5, max_digits=3)),
                ("title", models.CharField(blank=True, max_length=500, null=True)),
                ("content", models.TextField()),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "product",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="reviews",
                        to="avcrawler.product",
                    ),
                ),
            ],
            options={
                "db_table": "product_reviews",
                "unique_together": {("product", "source", "source_review_id")},
            },
        ),
        migrations.CreateModel(
            name="ProductRatingSummary",
            fields=[
                ("id", uuid_pk()),
                ("source", models.CharField(max_length=50)),
                ("average_rating", models.DecimalField(decimal_places=2, max_digits=4)),
                ("max_rating", models.DecimalField(decimal_places=1, default=5, max_digits=3)),
                ("total_reviews", models.PositiveIntegerField(default=0)),
                ("last_updated", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "product",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="rating_summaries",
                        to="avcrawler.product",
                    ),
                ),
            ],
            options={
                "db_table": "product_rating_summaries",
                "unique_together": {("product", "source")},
            },
        ),
        migrations.CreateModel(
            name="Sale",
            fields=[
                ("id", uuid_pk()),
                ("regular_price", models.PositiveIntegerField()),
                ("sale_price", models.PositiveIntegerField()),
                ("discount_percent", models.PositiveSmallIntegerField()),
                (
                    "sale_type",
                    models.CharField(
                        choices=[("timesale", "Time Sale"), ("campaign", "Campaign"), ("clearance", "Clearance")],
                        default="timesale",
                        max_length=20,
                    ),
                ),
                (
                    "end_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="Heuristically derived end of the discount window",
                        null=True,
                    ),
                ),
                ("is_active", models.BooleanField(default=True)),
                ("fetched_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "product_source",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="sales",
                        to="avcrawler.productsource",
                    ),
                ),
            ],
            options={
                "db_table": "sales",
                "indexes": [
                    models.Index(fields=["is_active", "end_at"], name="sales_active_end_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("is_active", True)),
                        fields=("product_source",),
                        name="unique_active_sale_per_source",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="WikiCrawlStaging",
            fields=[
                ("id", uuid_pk()),
                ("site", models.CharField(max_length=50)),
                ("product_code", models.CharField(max_length=100)),
                ("performer_name", models.CharField(max_length=100)),
                ("source_url", models.URLField(max_length=2000)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("processed_at", models.DateTimeField(blank=True, null=True)),
            ],
            options={
                "db_table": "wiki_crawl_staging",
                "indexes": [
                    models.Index(fields=["product_code"], name="wiki_staging_code_idx"),
                    models.Index(fields=["processed_at"], name="wiki_staging_processed_idx"),
                ],
                "unique_together": {("site", "product_code", "performer_name")},
            },
        ),
        migrations.CreateModel(
            name="CrawlRun",
            fields=[
                ("id", uuid_pk()),
                ("source", models.CharField(max_length=50)),
                (
                    "status",
                    models.CharField(
                        choices=[("running", "Running"), ("completed", "Completed"), ("failed", "Failed")],
                        default="running",
                        max_length=20,
                    ),
                ),
                ("options", models.JSONField(blank=True, default=dict)),
                ("stats", models.JSONField(blank=True, default=dict)),
                ("error_message", models.TextField(blank=True, null=True)),
                ("started_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
            ],
            options={
                "db_table": "crawl_runs",
                "ordering": ["-started_at"],
            },
        ),
    ]
