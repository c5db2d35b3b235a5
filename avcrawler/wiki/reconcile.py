"""
Wiki staging reconciliation.

Joins unprocessed WikiCrawlStaging rows to Products by normalized code and
links the resolved performers. Staged names take precedence over the
on-page cast: once at least one staged name resolves for a product, links
to performers outside the staged set are removed. Every row is stamped
``processed_at``, matched or not, so the pass can be re-run at any time.
"""

import logging
from collections import OrderedDict
from dataclasses import asdict, dataclass
from typing import Dict, List, Optional

from django.db import DatabaseError, transaction
from django.utils import timezone

from avcrawler.models import Product, ProductPerformer, ProductSource, WikiCrawlStaging
from avcrawler.services.identity import (
    IdentityResolver,
    ProductContext,
    product_code_variants,
    resolve_product,
)

logger = logging.getLogger(__name__)

WIKI_SOURCE = "WIKI"


@dataclass
class ReconcileStats:
    rows: int = 0
    products_matched: int = 0
    unmatched: int = 0
    linked: int = 0
    unlinked: int = 0
    rejected: int = 0
    errors: int = 0

    def as_dict(self):
        return asdict(self)


def candidate_keys(product_code: str) -> List[str]:
    """
    Product keys a wiki code may be stored under.

    >>> candidate_keys("SIRO-5561")
    ['siro5561', 'siro-5561']
    """
    keys = [resolve_product(WIKI_SOURCE, variant) for variant in product_code_variants(product_code)]
    lowered = product_code.strip().lower()
    keys.extend([lowered, lowered.replace("-", "")])
    return list(OrderedDict.fromkeys(keys))


def find_product(product_code: str) -> Optional[Product]:
    return Product.objects.filter(normalized_product_id__in=candidate_keys(product_code)).first()


def _link_product(
    product: Product,
    names: List[str],
    sites: Dict[str, str],
    resolver: IdentityResolver,
    stats: ReconcileStats,
    replace: bool,
) -> None:
    context = ProductContext(code=product.normalized_product_id, title=product.title)
    performers = []
    for name in names:
        performer = resolver.resolve_performer(name, context, source=sites.get(name))
        if performer is None:
            stats.rejected += 1
        elif performer not in performers:
            performers.append(performer)

    for performer in performers:
        _, created = ProductPerformer.objects.get_or_create(product=product, performer=performer)
        if created:
            stats.linked += 1
            logger.info(f"Linked {performer.name} to {product.normalized_product_id}")

    if replace and performers:
        removed, _ = (
            ProductPerformer.objects.filter(product=product)
            .exclude(performer__in=performers)
            .delete()
        )
        stats.unlinked += removed


def reconcile_staging(
    limit: Optional[int] = None,
    dry_run: bool = False,
    replace: bool = True,
    resolver: Optional[IdentityResolver] = None,
) -> ReconcileStats:
    """
    Link unprocessed staging rows to products.

    Args:
        limit: Maximum number of staging rows to consume
        dry_run: Report matches without writing
        replace: Remove on-page performer links the wiki does not confirm
        resolver: IdentityResolver override

    Returns:
        ReconcileStats
    """
    resolver = resolver or IdentityResolver()
    stats = ReconcileStats()

    queryset = WikiCrawlStaging.objects.filter(processed_at__isnull=True).order_by("created_at")
    rows = list(queryset[:limit] if limit else queryset)
    stats.rows = len(rows)

    groups: "OrderedDict[str, List[WikiCrawlStaging]]" = OrderedDict()
    for row in rows:
        groups.setdefault(row.product_code.upper(), []).append(row)

    for code, group in groups.items():
        product = find_product(code)
        names = list(OrderedDict.fromkeys(row.performer_name for row in group))
        if product is None:
            stats.unmatched += len(group)
        else:
            stats.products_matched += 1

        if dry_run:
            if product is not None:
                logger.info(f"[dry-run] {product.normalized_product_id} <- {names}")
            continue

        if product is not None:
            # Names staged earlier for the same code take part in the precedence set
            all_names = resolver.staged_names(code) or names
            sites = {row.performer_name: row.site for row in group}
            try:
                with transaction.atomic():
                    _link_product(product, all_names, sites, resolver, stats, replace)
            except DatabaseError as e:
                logger.warning(f"Failed to link wiki performers for {code}: {e}")
                stats.errors += 1
                continue

        WikiCrawlStaging.objects.filter(pk__in=[row.pk for row in group]).update(processed_at=timezone.now())

    logger.info(f"Wiki reconciliation finished: {stats.as_dict()}")
    return stats


def codes_missing_performers(source: str = "MGS", limit: int = 100) -> List[str]:
    """Source product ids whose product has no performer link yet, newest first."""
    return list(
        ProductSource.objects.filter(source=source, product__performer_links__isnull=True)
        .order_by("-created_at")
        .values_list("source_product_id", flat=True)[:limit]
    )
