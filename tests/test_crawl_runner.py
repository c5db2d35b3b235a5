"""
Tests for the CrawlRunner pipeline.

Every page is served by an httpx.MockTransport, so the full
fetch -> snapshot -> extract -> write -> sale path runs without network.
"""

from unittest.mock import MagicMock, patch

import httpx
import pytest


def _runner(make_fetcher, routes=None, source="GENERIC", handler=None, **kwargs):
    from avcrawler.services.crawl_runner import CrawlRunner
    from avcrawler.sources import get_site_profile

    fetcher = make_fetcher(routes, profile=get_site_profile(source), handler=handler)
    return CrawlRunner(source, fetcher=fetcher, **kwargs)


def listing_html(ids, total=None):
    links = "".join(f'<li><a href="/product/product_detail/{pid}/">{pid}</a></li>' for pid in ids)
    pager = f'<div class="pager_num">1 / {total}</div>' if total else ""
    return f"<html><body><ul>{links}</ul>{pager}</body></html>"


def mgs_handler(pages, details=None):
    """Serve listing pages by number and detail pages by product id."""
    details = details or {}

    def handler(request):
        if request.url.path == "/search/cSearch.php":
            page = int(request.url.params["page"])
            return httpx.Response(200, text=pages.get(page, listing_html([])))
        if "/product/product_detail/" in request.url.path:
            product_id = request.url.path.rstrip("/").rsplit("/", 1)[-1]
            if product_id in details:
                return httpx.Response(200, text=details[product_id])
        return httpx.Response(404, text="not found")

    return handler


def listing_pages_requested(fetcher):
    return [
        int(request.url.params["page"])
        for request in fetcher.requests
        if request.url.path == "/search/cSearch.php"
    ]


@pytest.mark.django_db
class TestProcessUrl:
    """One detail page ends in exactly one outcome."""

    def test_end_to_end_generic_page(self, make_fetcher, generic_product_html, generic_product_url):
        from avcrawler.models import Product, ProductSource, RawSnapshot, Sale

        runner = _runner(make_fetcher, {generic_product_url: generic_product_html})

        assert runner.process_url(generic_product_url) == "new"

        product = Product.objects.get()
        assert product.normalized_product_id == "abc123"
        assert product.title == "Example Title"
        assert [link.performer.name for link in product.performer_links.all()] == ["Jane Doe"]
        source = ProductSource.objects.get()
        assert source.source == "GENERIC"
        assert source.source_product_id == "abc-123"
        assert source.price == 1980
        sale = Sale.objects.get(is_active=True)
        assert sale.regular_price == 2980
        assert sale.sale_price == 1980
        assert sale.discount_percent == 34
        assert sale.end_at is not None
        snapshot = RawSnapshot.objects.get()
        assert snapshot.page_key == "abc-123"
        assert snapshot.processed_at is not None
        assert runner.stats.new == 1
        assert runner.stats.fetched == 1
        assert runner.stats.raw_saved == 1
        assert runner.stats.sales_saved == 1

    def test_unchanged_page_skipped(self, make_fetcher, generic_product_html, generic_product_url):
        from avcrawler.extractors import get_extractor

        extractor = get_extractor("GENERIC")
        runner = _runner(make_fetcher, {generic_product_url: generic_product_html}, extractor=extractor)

        with patch.object(extractor, "extract", wraps=extractor.extract) as extract:
            runner.process_url(generic_product_url)
            assert extract.call_count == 1

            assert runner.process_url(generic_product_url) == "skipped_unchanged"

        # The second fetch is hashed and dropped before any parsing
        assert extract.call_count == 1
        assert runner.stats.raw_saved == 1

    def test_force_reprocesses_unchanged_page(self, make_fetcher, generic_product_html, generic_product_url):
        runner = _runner(make_fetcher, {generic_product_url: generic_product_html}, force=True)

        runner.process_url(generic_product_url)
        assert runner.process_url(generic_product_url) == "updated"

    def test_changed_page_reprocessed(self, make_fetcher, generic_product_html, generic_product_url):
        from avcrawler.models import ProductSource

        routes = {generic_product_url: generic_product_html}
        runner = _runner(make_fetcher, routes)
        runner.process_url(generic_product_url)

        routes[generic_product_url] = generic_product_html.replace('"price": "1980"', '"price": "1480"').replace(
            "¥1,980", "¥1,480"
        )

        assert runner.process_url(generic_product_url) == "updated"
        assert ProductSource.objects.get().price == 1480
        assert runner.stats.raw_saved == 2

    def test_client_error_is_not_found(self, make_fetcher):
        runner = _runner(make_fetcher, {})

        assert runner.process_url("https://shop.example.com/products/missing.html") == "not_found"
        assert runner.stats.fetched == 1

    def test_server_error_counts_as_error(self, make_fetcher, sleeps):
        url = "https://shop.example.com/products/busy.html"
        runner = _runner(make_fetcher, {url: 503})

        assert runner.process_url(url) == "errors"
        assert len(sleeps) == 2

    def test_transport_error_counts_as_error(self, make_fetcher):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        runner = _runner(make_fetcher, handler=handler)

        assert runner.process_url("https://shop.example.com/products/a.html") == "errors"
        assert runner.stats.fetched == 0

    def test_placeholder_page_not_found_and_marked_processed(self, make_fetcher):
        from avcrawler.models import Product, RawSnapshot

        url = "https://shop.example.com/products/gone.html"
        html = "<html><head><title>Shop</title></head><body>年齢確認 18歳以上ですか</body></html>"
        runner = _runner(make_fetcher, {url: html})

        assert runner.process_url(url) == "not_found"
        assert not Product.objects.exists()
        assert RawSnapshot.objects.get().processed_at is not None
        assert runner.process_url(url) == "skipped_unchanged"

    def test_invalid_product_skipped(self, make_fetcher, generic_product_html, generic_product_url):
        from avcrawler.models import Product

        html = generic_product_html.replace('"name": "Example Title"', '"name": "新作"')
        runner = _runner(make_fetcher, {generic_product_url: html})

        assert runner.process_url(generic_product_url) == "skipped_invalid"
        assert not Product.objects.exists()

    def test_unexpected_error_is_contained(self, make_fetcher, generic_product_html, generic_product_url):
        extractor = MagicMock()
        extractor.product_id_from_url.return_value = "abc-123"
        extractor.extract.side_effect = RuntimeError("parser exploded")
        runner = _runner(make_fetcher, {generic_product_url: generic_product_html}, extractor=extractor)

        with patch("avcrawler.services.crawl_runner.monitoring") as monitoring:
            assert runner.process_url(generic_product_url) == "errors"

        monitoring.capture_crawl_error.assert_called_once()
        assert monitoring.capture_crawl_error.call_args[1]["stage"] == "process"

    def test_write_failure_counts_as_error(self, make_fetcher, generic_product_html, generic_product_url):
        from django.db import DatabaseError

        writer = MagicMock()
        writer.write.side_effect = DatabaseError("deadlock")
        runner = _runner(make_fetcher, {generic_product_url: generic_product_html}, writer=writer)

        with patch("avcrawler.services.crawl_runner.monitoring"):
            assert runner.process_url(generic_product_url) == "errors"

    def test_dry_run_writes_nothing(self, make_fetcher, generic_product_html, generic_product_url):
        from avcrawler.models import CrawlRun, Product, RawSnapshot

        runner = _runner(make_fetcher, {generic_product_url: generic_product_html}, dry_run=True)

        stats = runner.crawl_urls([generic_product_url])

        assert stats.extracted == 1
        assert not Product.objects.exists()
        assert not RawSnapshot.objects.exists()
        assert not CrawlRun.objects.exists()


@pytest.mark.django_db
class TestRun:
    """Run bookkeeping on CrawlRun rows."""

    def test_completed_run_recorded(self, make_fetcher, generic_product_html, generic_product_url):
        from avcrawler.models import CrawlRun

        runner = _runner(make_fetcher, {generic_product_url: generic_product_html})

        stats = runner.crawl_urls(
            [generic_product_url, "https://shop.example.com/products/missing.html"],
            options={"mode": "urls"},
        )

        run = CrawlRun.objects.get()
        assert run.status == "completed"
        assert run.options == {"mode": "urls"}
        assert run.stats["new"] == 1
        assert run.stats["not_found"] == 1
        assert run.completed_at is not None
        assert stats.completed_at is not None
        assert "new=1" in stats.summary()

    def test_limit(self, make_fetcher, generic_product_html, generic_product_url):
        runner = _runner(make_fetcher, {generic_product_url: generic_product_html})

        stats = runner.crawl_urls([generic_product_url] * 5, limit=2)

        assert stats.fetched == 2

    def test_aborted_run_marked_failed(self, make_fetcher):
        from avcrawler.models import CrawlRun

        def targets():
            yield "https://shop.example.com/products/missing.html", None
            raise RuntimeError("listing broke")

        runner = _runner(make_fetcher, {})

        with pytest.raises(RuntimeError):
            runner.run(targets())

        run = CrawlRun.objects.get()
        assert run.status == "failed"
        assert run.error_message == "listing broke"
        assert run.stats["not_found"] == 1

    def test_error_threshold_alert(self, make_fetcher, settings):
        settings.CRAWLER_ERROR_ALERT_THRESHOLD = 1
        url = "https://shop.example.com/products/busy.html"
        runner = _runner(make_fetcher, {url: 500})

        with patch("avcrawler.services.crawl_runner.monitoring") as monitoring:
            runner.crawl_urls([url])

        monitoring.capture_crawl_summary.assert_called_once()
        assert monitoring.capture_crawl_summary.call_args[0][0] == "GENERIC"

    def test_sitemap_crawl(self, make_fetcher, generic_product_html, generic_product_url):
        sitemap = f"""<?xml version="1.0" encoding="UTF-8"?>
        <urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">
          <url><loc>https://shop.example.com/</loc></url>
          <url><loc>{generic_product_url}</loc></url>
        </urlset>"""
        runner = _runner(
            make_fetcher,
            {"https://shop.example.com/sitemap.xml": sitemap, generic_product_url: generic_product_html},
        )

        stats = runner.crawl_sitemap("https://shop.example.com/sitemap.xml")

        assert stats.new == 1
        assert stats.fetched == 1


class TestStopCondition:
    """Two-counter stop rule."""

    def test_consecutive_empty_pages(self):
        from avcrawler.services.crawl_runner import StopCondition

        stop = StopCondition(max_empty_pages=3, max_no_new_pages=3)

        assert not stop.observe(0, 0)
        assert not stop.observe(0, 0)
        assert stop.observe(0, 0)
        assert "empty" in stop.reason

    def test_consecutive_pages_without_new_ids(self):
        from avcrawler.services.crawl_runner import StopCondition

        stop = StopCondition(max_empty_pages=3, max_no_new_pages=2)

        assert not stop.observe(10, 0)
        assert stop.observe(10, 0)
        assert "without new" in stop.reason

    def test_streaks_reset(self):
        from avcrawler.services.crawl_runner import StopCondition

        stop = StopCondition(max_empty_pages=2, max_no_new_pages=2)

        assert not stop.observe(0, 0)
        assert not stop.observe(10, 0)
        assert not stop.observe(10, 3)
        assert not stop.observe(0, 0)
        assert not stop.observe(10, 0)

    def test_zero_disables_counter(self):
        from avcrawler.services.crawl_runner import StopCondition

        stop = StopCondition(max_empty_pages=0, max_no_new_pages=0)

        assert not any(stop.observe(0, 0) for _ in range(10))

    def test_defaults_from_settings(self, settings):
        from avcrawler.services.crawl_runner import StopCondition

        settings.CRAWLER_MAX_EMPTY_PAGES = 5
        settings.CRAWLER_MAX_NO_NEW_PAGES = 7

        stop = StopCondition()
        assert (stop.max_empty_pages, stop.max_no_new_pages) == (5, 7)


@pytest.mark.django_db
class TestListingEnumeration:
    """MGS listing pages drive detail discovery."""

    def test_ascending_until_empty_pages(self, make_fetcher):
        pages = {1: listing_html(["AAA-001", "AAA-002"]), 2: listing_html(["AAA-002", "AAA-003"])}
        runner = _runner(make_fetcher, source="MGS", handler=mgs_handler(pages))

        targets = list(runner.iter_listing())

        assert [product_id for _, product_id in targets] == ["AAA-001", "AAA-002", "AAA-003"]
        assert targets[0][0] == "https://www.mgstage.com/product/product_detail/AAA-001/"
        assert listing_pages_requested(runner.fetcher) == [1, 2, 3, 4, 5]

    def test_offset(self, make_fetcher):
        pages = {1: listing_html(["AAA-001", "AAA-002"]), 2: listing_html(["AAA-003"])}
        runner = _runner(make_fetcher, source="MGS", handler=mgs_handler(pages))

        targets = list(runner.iter_listing(offset=1))

        assert [product_id for _, product_id in targets] == ["AAA-002", "AAA-003"]

    def test_stops_on_known_products(self, make_fetcher):
        from avcrawler.models import Product, ProductSource

        for code in ("AAA-001", "AAA-002"):
            ProductSource.objects.create(
                product=Product.objects.create(normalized_product_id=code.lower(), title=f"作品 {code}"),
                source="MGS",
                source_product_id=code,
            )
        pages = {n: listing_html(["AAA-001", "AAA-002"]) for n in range(1, 20)}
        runner = _runner(make_fetcher, source="MGS", handler=mgs_handler(pages))

        targets = list(runner.iter_listing())

        assert len(targets) == 2
        assert listing_pages_requested(runner.fetcher) == [1, 2, 3]

    def test_force_ignores_known_products(self, make_fetcher):
        from avcrawler.models import Product, ProductSource

        ProductSource.objects.create(
            product=Product.objects.create(normalized_product_id="aaa001", title="作品 AAA-001"),
            source="MGS",
            source_product_id="AAA-001",
        )
        pages = {n: listing_html(["AAA-001"]) for n in range(1, 20)}
        runner = _runner(make_fetcher, source="MGS", handler=mgs_handler(pages), force=True)

        list(runner.iter_listing(max_pages=5))

        assert listing_pages_requested(runner.fetcher) == [1, 2, 3, 4, 5]

    def test_descending_from_last_page(self, make_fetcher):
        pages = {
            1: listing_html(["AAA-001"], total=3),
            2: listing_html(["AAA-002"]),
            3: listing_html(["AAA-003"]),
        }
        runner = _runner(make_fetcher, source="MGS", handler=mgs_handler(pages))

        targets = list(runner.iter_listing(direction="desc"))

        assert [product_id for _, product_id in targets] == ["AAA-003", "AAA-002", "AAA-001"]
        assert listing_pages_requested(runner.fetcher) == [1, 3, 2, 1]

    def test_sort_passed_to_listing(self, make_fetcher):
        runner = _runner(make_fetcher, source="MGS", handler=mgs_handler({}))

        list(runner.iter_listing(sort="old", max_pages=1))

        assert runner.fetcher.requests[0].url.params["sort"] == "old"

    def test_source_without_listing(self, make_fetcher):
        runner = _runner(make_fetcher)

        with pytest.raises(ValueError):
            list(runner.iter_listing())

    def test_crawl_listing_end_to_end(self, make_fetcher, mgs_detail_html):
        from avcrawler.models import CrawlRun, Product

        pages = {1: listing_html(["SIRO-5561"])}
        handler = mgs_handler(pages, details={"SIRO-5561": mgs_detail_html})
        runner = _runner(make_fetcher, source="MGS", handler=handler)

        stats = runner.crawl_listing(max_pages=1)

        assert stats.new == 1
        assert Product.objects.get().normalized_product_id == "siro5561"
        run = CrawlRun.objects.get()
        assert run.options["mode"] == "listing"
        assert run.options["max_pages"] == 1


class TestCrawlStats:
    def test_as_dict_serializable(self):
        import json

        from avcrawler.services.crawl_runner import CrawlStats

        stats = CrawlStats()
        stats.record("new")
        stats.record("errors")
        stats.finish()

        data = json.loads(json.dumps(stats.as_dict()))
        assert data["new"] == 1
        assert data["errors"] == 1
        assert data["duration_seconds"] >= 0
