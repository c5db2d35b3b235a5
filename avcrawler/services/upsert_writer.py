"""
Upsert Writer Service.

Idempotently writes an extracted ProductRecord:
1. Product (create-or-fetch by canonical key, mutable fields updated)
2. ProductSource (keyed by source + source-local id)
3. Typed prices
4. Images and videos
5. Performer links
6. Reviews and rating summary
7. Provider, genre and label tags

Every relation is "insert; on natural-key conflict update mutable fields
only", so re-writing an unchanged record changes nothing. Steps 3-7 run in
their own savepoint: a failing child write is logged and its siblings still
run.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Tuple, Type

from django.db import DatabaseError, IntegrityError, models, transaction
from django.utils import timezone

from avcrawler.extractors.base import ProductRecord
from avcrawler.models import (
    DataSourceChoices,
    ImageTypeChoices,
    PriceTypeChoices,
    Product,
    ProductImage,
    ProductPerformer,
    ProductPrice,
    ProductRatingSummary,
    ProductReview,
    ProductSource,
    ProductTag,
    ProductVideo,
    Tag,
    TagCategoryChoices,
    VideoTypeChoices,
)
from avcrawler.services.identity import IdentityResolver, ProductContext, resolve_product
from avcrawler.services.maker_mapping import mgs_image_url

logger = logging.getLogger(__name__)


@dataclass
class WriteResult:
    """What a write did."""

    product: Product
    product_source: ProductSource
    product_created: bool = False
    source_created: bool = False
    rows_created: int = 0
    rows_updated: int = 0
    failed_steps: List[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return self.product_created or self.source_created or bool(self.rows_created or self.rows_updated)


def upsert_row(
    model: Type[models.Model],
    lookup: Dict[str, Any],
    values: Optional[Dict[str, Any]] = None,
) -> Tuple[models.Model, bool, bool]:
    """
    Insert a row or update only the mutable fields that differ.

    Args:
        model: Model class
        lookup: Natural key
        values: Mutable fields; None values never overwrite stored data

    Returns:
        (instance, created, updated)
    """
    values = {key: value for key, value in (values or {}).items() if value is not None}
    instance = model.objects.filter(**lookup).first()
    if instance is None:
        try:
            with transaction.atomic():
                return model.objects.create(**lookup, **values), True, False
        except IntegrityError:
            instance = model.objects.get(**lookup)

    changed = [name for name, value in values.items() if getattr(instance, name) != value]
    if changed:
        for name in changed:
            setattr(instance, name, values[name])
        instance.save(update_fields=changed)
    return instance, False, bool(changed)


def _decimal(value: Optional[float]) -> Optional[Decimal]:
    return None if value is None else Decimal(str(value))


class UpsertWriter:
    """Persists ProductRecords with one upsert policy per relation."""

    def __init__(self, resolver: Optional[IdentityResolver] = None):
        self.resolver = resolver or IdentityResolver()

    def write(self, record: ProductRecord, data_source: str = DataSourceChoices.HTML) -> WriteResult:
        """
        Write a record and all of its children.

        Raises:
            DatabaseError: If the product or product source row cannot be written
        """
        product, product_created = self._write_product(record)
        product_source, source_created, source_updated = self._write_source(product, record, data_source)

        result = WriteResult(
            product=product,
            product_source=product_source,
            product_created=product_created,
            source_created=source_created,
            rows_updated=int(source_updated),
        )

        steps: List[Tuple[str, Callable[[], Tuple[int, int]]]] = [
            ("prices", lambda: self._write_prices(product_source, record)),
            ("images", lambda: self._write_images(product, record)),
            ("videos", lambda: self._write_videos(product, record)),
            ("performers", lambda: self._write_performers(product, record)),
            ("reviews", lambda: self._write_reviews(product, record)),
            ("rating_summary", lambda: self._write_rating_summary(product, record)),
            ("tags", lambda: self._write_tags(product, record)),
        ]
        for name, step in steps:
            try:
                with transaction.atomic():
                    created, updated = step()
            except DatabaseError as e:
                logger.warning(f"Failed to write {name} for {record.source}:{record.source_product_id}: {e}")
                result.failed_steps.append(name)
                continue
            result.rows_created += created
            result.rows_updated += updated

        return result

    # ============================================================
    # Product and source
    # ============================================================

    def _write_product(self, record: ProductRecord) -> Tuple[Product, bool]:
        key = resolve_product(record.source, record.source_product_id)
        maker = self.resolver.resolve_maker(record.source_product_id)

        values = {
            "title": record.title,
            "description": record.description,
            "duration": record.duration,
            "release_date": record.release_date,
            "default_thumbnail_url": record.thumbnail_url,
            "maker_name": maker.name if maker else record.maker_name,
            "maker_category": maker.category if maker else None,
        }

        product, created, _ = upsert_row(Product, {"normalized_product_id": key}, values)
        if not product.default_thumbnail_url:
            synthesized = mgs_image_url(record.source_product_id)
            if synthesized:
                product.default_thumbnail_url = synthesized
                product.save(update_fields=["default_thumbnail_url"])

        if created:
            logger.info(f"Created product {key} from {record.source}:{record.source_product_id}")
        return product, created

    def _write_source(
        self, product: Product, record: ProductRecord, data_source: str
    ) -> Tuple[ProductSource, bool, bool]:
        product_source, created, updated = upsert_row(
            ProductSource,
            {"source": record.source, "source_product_id": record.source_product_id},
            {
                "product": product,
                "affiliate_url": record.affiliate_url,
                "price": record.price,
                "data_source": data_source,
            },
        )
        if updated:
            product_source.last_updated = timezone.now()
            product_source.save(update_fields=["last_updated"])
        return product_source, created, updated

    # ============================================================
    # Children
    # ============================================================

    def _write_prices(self, product_source: ProductSource, record: ProductRecord) -> Tuple[int, int]:
        typed: Dict[str, int] = dict(record.prices)
        if record.price:
            typed.setdefault(PriceTypeChoices.DEFAULT, record.price)

        created = updated = 0
        for price_type, price in typed.items():
            _, was_created, was_updated = upsert_row(
                ProductPrice,
                {"product_source": product_source, "price_type": price_type},
                {"price": price},
            )
            created += was_created
            updated += was_updated
        return created, updated

    def _write_images(self, product: Product, record: ProductRecord) -> Tuple[int, int]:
        images: List[Tuple[str, str]] = []
        if record.thumbnail_url:
            images.append((record.thumbnail_url, ImageTypeChoices.PACKAGE))
        images.extend((url, ImageTypeChoices.SAMPLE) for url in record.sample_images)

        created = updated = 0
        for order, (url, image_type) in enumerate(images):
            _, was_created, was_updated = upsert_row(
                ProductImage,
                {"product": product, "image_url": url},
                {"image_type": image_type, "display_order": order, "source": record.source},
            )
            created += was_created
            updated += was_updated
        return created, updated

    def _write_videos(self, product: Product, record: ProductRecord) -> Tuple[int, int]:
        if not record.sample_video_url:
            return 0, 0
        _, created, updated = upsert_row(
            ProductVideo,
            {"product": product, "video_url": record.sample_video_url},
            {"video_type": VideoTypeChoices.SAMPLE, "display_order": 0, "source": record.source},
        )
        return int(created), int(updated)

    def _write_performers(self, product: Product, record: ProductRecord) -> Tuple[int, int]:
        context = ProductContext(code=record.source_product_id, title=record.title)
        performers = self.resolver.resolve_performers(record.performers, context, record.source)

        created = 0
        for performer in performers:
            _, was_created = ProductPerformer.objects.get_or_create(product=product, performer=performer)
            created += was_created
        return created, 0

    def _write_reviews(self, product: Product, record: ProductRecord) -> Tuple[int, int]:
        created = updated = 0
        for review in record.reviews:
            _, was_created, was_updated = upsert_row(
                ProductReview,
                {"product": product, "source": record.source, "source_review_id": review.source_review_id},
                {
                    "reviewer_name": review.reviewer_name,
                    "rating": _decimal(review.rating),
                    "max_rating": _decimal(review.max_rating),
                    "title": review.title,
                    "content": review.content,
                },
            )
            created += was_created
            updated += was_updated
        return created, updated

    def _write_rating_summary(self, product: Product, record: ProductRecord) -> Tuple[int, int]:
        summary = record.rating_summary
        if summary is None:
            return 0, 0
        instance, created, updated = upsert_row(
            ProductRatingSummary,
            {"product": product, "source": record.source},
            {
                "average_rating": _decimal(summary.average_rating),
                "max_rating": _decimal(summary.max_rating),
                "total_reviews": summary.total_reviews,
            },
        )
        if updated:
            instance.last_updated = timezone.now()
            instance.save(update_fields=["last_updated"])
        return int(created), int(updated)

    def _write_tags(self, product: Product, record: ProductRecord) -> Tuple[int, int]:
        tags = [(record.source, TagCategoryChoices.PROVIDER)]
        tags.extend((genre, TagCategoryChoices.GENRE) for genre in record.genres)
        tags.extend((label, TagCategoryChoices.LABEL) for label in record.labels)

        created = 0
        for name, category in tags:
            tag, _ = Tag.objects.get_or_create(name=name[:100], defaults={"category": category})
            _, was_created = ProductTag.objects.get_or_create(product=product, tag=tag)
            created += was_created
        return created, 0
