"""
Tests for sale detection and the one-active-sale lifecycle.
"""

from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

JST = ZoneInfo("Asia/Tokyo")
NOW = datetime(2024, 6, 1, 12, 0, tzinfo=JST)


@pytest.fixture
def product_source(db):
    from avcrawler.models import Product, ProductSource

    product = Product.objects.create(normalized_product_id="siro5561", title="素人娘とドライブデート")
    return ProductSource.objects.create(product=product, source="MGS", source_product_id="SIRO-5561")


class TestDiscountPercent:
    @pytest.mark.parametrize(
        "regular,sale,expected",
        [
            (2980, 1980, 34),
            (3000, 1500, 50),
            (1000, 995, 1),
            (1980, 990, 50),
            (2000, 1990, 1),
        ],
    )
    def test_rounding(self, regular, sale, expected):
        from avcrawler.services.sale_detector import compute_discount_percent

        assert compute_discount_percent(regular, sale) == expected


class TestExtractSaleEnd:
    """End-of-window heuristics, first match wins."""

    def test_month_day_until(self):
        from avcrawler.services.sale_detector import extract_sale_end

        assert extract_sale_end("セール 12月31日まで", now=NOW) == datetime(2024, 12, 31, 23, 59, 59, tzinfo=JST)

    def test_month_day_already_past_rolls_to_next_year(self):
        from avcrawler.services.sale_detector import extract_sale_end

        assert extract_sale_end("3月31日まで", now=NOW) == datetime(2025, 3, 31, 23, 59, 59, tzinfo=JST)

    def test_slash_until(self):
        from avcrawler.services.sale_detector import extract_sale_end

        assert extract_sale_end("6/15 まで半額", now=NOW) == datetime(2024, 6, 15, 23, 59, 59, tzinfo=JST)

    def test_full_date(self):
        from avcrawler.services.sale_detector import extract_sale_end

        result = extract_sale_end("期間: 2024-07-15 23:59 終了", now=NOW)
        assert result == datetime(2024, 7, 15, 23, 59, 59, tzinfo=JST)

    def test_full_date_with_slashes_keeps_year(self):
        from avcrawler.services.sale_detector import extract_sale_end

        later = datetime(2026, 10, 17, 12, 0, tzinfo=JST)

        assert extract_sale_end("2024/12/31まで", now=later) == datetime(2024, 12, 31, 23, 59, 59, tzinfo=JST)
        assert extract_sale_end("2025年1月5日まで", now=NOW) == datetime(2025, 1, 5, 23, 59, 59, tzinfo=JST)

    def test_date_range_uses_end(self):
        from avcrawler.services.sale_detector import extract_sale_end

        result = extract_sale_end("期間 2024/06/01〜2024/06/30まで", now=NOW)

        assert result == datetime(2024, 6, 30, 23, 59, 59, tzinfo=JST)

    def test_remaining_days(self):
        from avcrawler.services.sale_detector import extract_sale_end

        assert extract_sale_end("タイムセール 残り3日12時間", now=NOW) == NOW + timedelta(days=3, hours=12)
        assert extract_sale_end("残り 2 日", now=NOW) == NOW + timedelta(days=2)
        assert extract_sale_end("セール終了まで残り5日", now=NOW) == NOW + timedelta(days=5)

    def test_banner_date(self):
        from avcrawler.services.sale_detector import extract_sale_end

        assert extract_sale_end("", banner_text="6/20", now=NOW) == datetime(2024, 6, 20, 23, 59, 59, tzinfo=JST)

    def test_banner_full_date_is_not_read_as_month_day(self):
        from avcrawler.services.sale_detector import extract_sale_end

        assert extract_sale_end("", banner_text="2024/12/31", now=NOW) is None

    def test_invalid_date_ignored(self):
        from avcrawler.services.sale_detector import extract_sale_end

        assert extract_sale_end("2月30日まで", now=NOW) is None

    def test_open_ended(self):
        from avcrawler.services.sale_detector import extract_sale_end

        assert extract_sale_end("期間限定セール", now=NOW) is None
        assert extract_sale_end(None, now=NOW) is None


class TestDetectSale:
    def test_discount(self):
        from avcrawler.services.sale_detector import detect_sale

        sale = detect_sale(1980, 2980, text="12月31日まで", now=NOW)

        assert sale.regular_price == 2980
        assert sale.sale_price == 1980
        assert sale.discount_percent == 34
        assert sale.sale_type == "timesale"
        assert sale.end_at == datetime(2024, 12, 31, 23, 59, 59, tzinfo=JST)

    @pytest.mark.parametrize(
        "current,original",
        [(1980, None), (None, 2980), (1980, 1980), (2980, 1980)],
    )
    def test_no_discount(self, current, original):
        from avcrawler.services.sale_detector import detect_sale

        assert detect_sale(current, original) is None

    def test_campaign_banner(self):
        from avcrawler.services.sale_detector import detect_sale

        sale = detect_sale(1480, 2980, banner_text="夏のキャンペーン 8/31", now=NOW)

        assert sale.sale_type == "campaign"
        assert sale.end_at == datetime(2024, 8, 31, 23, 59, 59, tzinfo=JST)


@pytest.mark.django_db
class TestSalePersistence:
    """At most one active Sale per ProductSource."""

    def _info(self, sale_price, regular_price=2980, end_at=None):
        from avcrawler.services.sale_detector import SaleInfo, compute_discount_percent

        return SaleInfo(
            regular_price=regular_price,
            sale_price=sale_price,
            discount_percent=compute_discount_percent(regular_price, sale_price),
            end_at=end_at,
        )

    def test_first_observation_inserts(self, product_source):
        from avcrawler.models import Sale
        from avcrawler.services.sale_detector import SaleDetector

        assert SaleDetector().persist(product_source, self._info(1980)) is True

        sale = Sale.objects.get(product_source=product_source)
        assert sale.is_active
        assert sale.discount_percent == 34

    def test_same_price_refreshes_only(self, product_source):
        from avcrawler.models import Sale
        from avcrawler.services.sale_detector import SaleDetector

        detector = SaleDetector()
        detector.persist(product_source, self._info(1980))
        end_at = datetime(2024, 12, 31, 23, 59, 59, tzinfo=JST)

        assert detector.persist(product_source, self._info(1980, end_at=end_at)) is False

        assert Sale.objects.filter(product_source=product_source).count() == 1
        assert Sale.objects.get(product_source=product_source).end_at == end_at

    def test_new_price_supersedes(self, product_source):
        from avcrawler.models import Sale
        from avcrawler.services.sale_detector import SaleDetector

        detector = SaleDetector()
        detector.persist(product_source, self._info(1980))

        assert detector.persist(product_source, self._info(1480)) is True

        active = Sale.objects.filter(product_source=product_source, is_active=True)
        assert active.count() == 1
        assert active.get().sale_price == 1480
        assert Sale.objects.filter(product_source=product_source, is_active=False).get().sale_price == 1980

    def test_not_a_discount_ignored(self, product_source):
        from avcrawler.models import Sale
        from avcrawler.services.sale_detector import SaleDetector, SaleInfo

        info = SaleInfo(regular_price=1980, sale_price=1980, discount_percent=0)

        assert SaleDetector().persist(product_source, info) is False
        assert not Sale.objects.exists()

    def test_record_none_ends_active_sale(self, product_source):
        from avcrawler.models import Sale
        from avcrawler.services.sale_detector import SaleDetector

        detector = SaleDetector()
        detector.record(product_source, self._info(1980))

        assert detector.record(product_source, None) is False
        assert not Sale.objects.filter(is_active=True).exists()

    def test_deactivate_expired(self, product_source):
        from avcrawler.models import Product, ProductSource, Sale
        from avcrawler.services.sale_detector import SaleDetector, deactivate_expired_sales

        other = ProductSource.objects.create(
            product=Product.objects.create(normalized_product_id="ssis123", title="別の作品タイトル"),
            source="MGS",
            source_product_id="SSIS-123",
        )
        detector = SaleDetector()
        detector.persist(product_source, self._info(1980, end_at=NOW - timedelta(hours=1)))
        detector.persist(other, self._info(1480, end_at=NOW + timedelta(days=1)))

        assert deactivate_expired_sales(now=NOW) == 1

        assert not Sale.objects.get(product_source=product_source).is_active
        assert Sale.objects.get(product_source=other).is_active

    def test_open_ended_sale_not_expired(self, product_source):
        from avcrawler.services.sale_detector import SaleDetector, deactivate_expired_sales

        SaleDetector().persist(product_source, self._info(1980))

        assert deactivate_expired_sales(now=NOW + timedelta(days=365)) == 0
