"""
Sale Detector Service.

Derives a discount window from the current price and the struck-through
original price on a page, and keeps at most one active Sale row per
ProductSource:
- Same active sale price: only ``fetched_at`` is refreshed
- Different sale price: the active row is deactivated and a new one inserted
- No sale observed: the active row is deactivated
"""

import logging
import math
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from django.db import transaction
from django.utils import timezone

from avcrawler.models import ProductSource, Sale, SaleTypeChoices

logger = logging.getLogger(__name__)


# Storefront dates are Japan local time
SITE_TIMEZONE = ZoneInfo("Asia/Tokyo")

UNTIL_MONTH_DAY_PATTERN = re.compile(r"(?<![\d/年])(\d{1,2})[月/](\d{1,2})日?\s*(まで|迄)")
UNTIL_FULL_DATE_PATTERN = re.compile(
    r"(20\d{2})[/\-年](\d{1,2})[/\-月](\d{1,2})日?(?:\s*\d{1,2}:\d{2})?\s*(まで|迄|終了)"
)
REMAINING_PATTERN = re.compile(r"残り\s*(\d+)\s*日(?:\s*(\d+)\s*時間)?")
BANNER_DATE_PATTERN = re.compile(r"(?<![\d/年])(\d{1,2})[月/](\d{1,2})(?![\d/])")

CAMPAIGN_MARKERS = ("キャンペーン", "campaign")


@dataclass
class SaleInfo:
    """A detected discount."""

    regular_price: int
    sale_price: int
    discount_percent: int
    end_at: Optional[datetime] = None
    sale_type: str = SaleTypeChoices.TIMESALE


def compute_discount_percent(regular_price: int, sale_price: int) -> int:
    """
    Discount percent rounded half up.

    >>> compute_discount_percent(2980, 1980)
    34
    """
    return int(math.floor((1 - sale_price / regular_price) * 100 + 0.5))


# ============================================================
# End date extraction
# ============================================================


def _end_of_day(year: int, month: int, day: int) -> datetime:
    return datetime(year, month, day, 23, 59, 59, tzinfo=SITE_TIMEZONE)


def _next_occurrence(month: int, day: int, now: datetime) -> datetime:
    """Month/day in the current year, or next year if already past."""
    local_now = now.astimezone(SITE_TIMEZONE)
    candidate = _end_of_day(local_now.year, month, day)
    if candidate < local_now:
        candidate = _end_of_day(local_now.year + 1, month, day)
    return candidate


def extract_sale_end(
    text: Optional[str],
    banner_text: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Optional[datetime]:
    """
    Find the end of a discount window.

    Tries, first match wins:
    1. "M月D日まで" / "M/D まで" (current year, next year if past)
    2. "YYYY-MM-DD" / "YYYY/M/D" / "YYYY年M月D日" ... まで|終了
    3. "残りN日[H時間]" relative to now
    4. Short M/D date in the sale banner

    Args:
        text: Page text to scan
        banner_text: Text of the sale banner elements
        now: Crawl time (default: timezone.now())

    Returns:
        Timezone-aware end datetime, or None for an open-ended sale
    """
    now = now or timezone.now()
    text = text or ""

    match = UNTIL_MONTH_DAY_PATTERN.search(text)
    if match:
        try:
            return _next_occurrence(int(match.group(1)), int(match.group(2)), now)
        except ValueError:
            logger.debug(f"Ignoring invalid sale end date: {match.group(0)}")

    match = UNTIL_FULL_DATE_PATTERN.search(text)
    if match:
        try:
            return _end_of_day(int(match.group(1)), int(match.group(2)), int(match.group(3)))
        except ValueError:
            logger.debug(f"Ignoring invalid sale end date: {match.group(0)}")

    match = REMAINING_PATTERN.search(text)
    if match:
        days = int(match.group(1))
        hours = int(match.group(2) or 0)
        return now + timedelta(days=days, hours=hours)

    match = BANNER_DATE_PATTERN.search(banner_text or "")
    if match:
        try:
            return _next_occurrence(int(match.group(1)), int(match.group(2)), now)
        except ValueError:
            logger.debug(f"Ignoring invalid banner date: {match.group(0)}")

    return None


def detect_sale(
    current_price: Optional[int],
    original_price: Optional[int],
    text: Optional[str] = None,
    banner_text: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Optional[SaleInfo]:
    """
    Build a SaleInfo when the original price is above the current price.

    Returns:
        SaleInfo, or None when there is no discount
    """
    if not current_price or not original_price or original_price <= current_price:
        return None

    banner = banner_text or ""
    sale_type = SaleTypeChoices.TIMESALE
    if any(marker in banner.lower() for marker in CAMPAIGN_MARKERS):
        sale_type = SaleTypeChoices.CAMPAIGN

    return SaleInfo(
        regular_price=original_price,
        sale_price=current_price,
        discount_percent=compute_discount_percent(original_price, current_price),
        end_at=extract_sale_end(text, banner_text, now),
        sale_type=sale_type,
    )


# ============================================================
# Persistence
# ============================================================


class SaleDetector:
    """Persists detected sales with supersede semantics."""

    @transaction.atomic
    def persist(self, product_source: ProductSource, sale_info: SaleInfo) -> bool:
        """
        Record an observed sale.

        Returns:
            True if a new active Sale row was inserted
        """
        if sale_info.sale_price >= sale_info.regular_price:
            return False

        now = timezone.now()
        active = (
            Sale.objects.select_for_update()
            .filter(product_source=product_source, is_active=True)
            .first()
        )

        if active is not None and active.sale_price == sale_info.sale_price:
            active.fetched_at = now
            update_fields = ["fetched_at"]
            if sale_info.end_at and active.end_at != sale_info.end_at:
                active.end_at = sale_info.end_at
                update_fields.append("end_at")
            active.save(update_fields=update_fields)
            return False

        if active is not None:
            active.is_active = False
            active.save(update_fields=["is_active"])
            logger.info(
                f"Superseded sale on {product_source}: {active.sale_price} -> {sale_info.sale_price}"
            )

        Sale.objects.create(
            product_source=product_source,
            regular_price=sale_info.regular_price,
            sale_price=sale_info.sale_price,
            discount_percent=sale_info.discount_percent,
            sale_type=sale_info.sale_type,
            end_at=sale_info.end_at,
            is_active=True,
            fetched_at=now,
        )
        logger.info(
            f"Sale on {product_source}: {sale_info.regular_price} -> {sale_info.sale_price} "
            f"({sale_info.discount_percent}% off)"
        )
        return True

    def deactivate(self, product_source: ProductSource) -> int:
        """Deactivate the active sale of a product source. Returns rows updated."""
        return Sale.objects.filter(product_source=product_source, is_active=True).update(
            is_active=False
        )

    def record(self, product_source: ProductSource, sale_info: Optional[SaleInfo]) -> bool:
        """Persist an observed sale or end the active one when none is observed."""
        if sale_info is None:
            ended = self.deactivate(product_source)
            if ended:
                logger.info(f"Sale ended on {product_source}")
            return False
        return self.persist(product_source, sale_info)


def deactivate_expired_sales(now: Optional[datetime] = None) -> int:
    """
    Deactivate active sales whose end date has passed.

    Returns:
        Number of sales deactivated
    """
    now = now or timezone.now()
    count = Sale.objects.filter(is_active=True, end_at__lt=now).update(is_active=False)
    if count:
        logger.info(f"Deactivated {count} expired sale(s)")
    return count
