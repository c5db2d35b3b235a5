"""
Tests for the Celery task wrappers.

Tasks are called directly; the services they wrap are patched at their
source modules.
"""

from unittest.mock import MagicMock, patch

import pytest


@pytest.fixture
def mock_runner():
    from avcrawler.services.crawl_runner import CrawlStats

    with patch("avcrawler.services.crawl_runner.CrawlRunner") as runner_class:
        runner = MagicMock()
        runner.__enter__.return_value = runner
        runner_class.return_value = runner
        stats = CrawlStats(fetched=5, new=3, updated=2)
        stats.finish()
        runner.crawl_listing.return_value = stats
        runner.crawl_urls.return_value = stats
        runner.crawl_sitemap.return_value = stats
        yield runner_class, runner


class TestCrawlSourceTask:
    def test_listing(self, mock_runner):
        from avcrawler.tasks import crawl_source

        runner_class, runner = mock_runner

        result = crawl_source("MGS", max_pages=10, limit=50)

        assert result["status"] == "completed"
        assert result["source"] == "MGS"
        assert result["stats"]["new"] == 3
        runner_class.assert_called_once_with("MGS", force=False)
        runner.crawl_listing.assert_called_once_with(
            sort="new", direction="asc", start_page=None, max_pages=10, offset=0, limit=50
        )

    def test_urls(self, mock_runner):
        from avcrawler.tasks import crawl_source

        _, runner = mock_runner

        crawl_source("MGS", urls=["https://www.mgstage.com/product/product_detail/SIRO-5561/"], force=True)

        runner.crawl_urls.assert_called_once_with(
            ["https://www.mgstage.com/product/product_detail/SIRO-5561/"],
            limit=None,
            options={"mode": "urls", "count": 1},
        )

    def test_sitemap(self, mock_runner):
        from avcrawler.tasks import crawl_source

        _, runner = mock_runner

        crawl_source("GENERIC", sitemap_url="https://shop.example.com/sitemap.xml", offset=10)

        runner.crawl_sitemap.assert_called_once_with("https://shop.example.com/sitemap.xml", offset=10, limit=None)

    def test_unknown_source(self):
        from avcrawler.tasks import crawl_source

        result = crawl_source("NOPE")

        assert result["status"] == "failed"
        assert "Unknown source" in result["error"]

    def test_listing_rejected(self, mock_runner):
        from avcrawler.tasks import crawl_source

        _, runner = mock_runner
        runner.crawl_listing.side_effect = ValueError("GENERIC has no listing enumeration")

        result = crawl_source("GENERIC")

        assert result == {
            "status": "failed",
            "source": "GENERIC",
            "error": "GENERIC has no listing enumeration",
        }


class TestCrawlWikiTask:
    @pytest.fixture
    def mock_crawler(self):
        from avcrawler.wiki import WikiCrawlStats

        with patch("avcrawler.wiki.WikiCrawler") as crawler_class:
            crawler = MagicMock()
            crawler.__enter__.return_value = crawler
            crawler_class.return_value = crawler
            crawler.crawl.return_value = WikiCrawlStats(pages_fetched=4, entries_found=2, entries_staged=2)
            crawler.crawl_product_codes.return_value = WikiCrawlStats(pages_fetched=1)
            yield crawler_class, crawler

    def test_bfs(self, mock_crawler):
        from avcrawler.tasks import crawl_wiki

        crawler_class, crawler = mock_crawler

        result = crawl_wiki("av-wiki", limit=5)

        crawler_class.assert_called_once_with("av-wiki", max_pages=None)
        crawler.crawl.assert_called_once_with(limit=5)
        assert result == {"status": "completed", "site": "av-wiki", "stats": crawler.crawl.return_value.as_dict()}

    def test_missing_from(self, mock_crawler):
        from avcrawler.tasks import crawl_wiki

        _, crawler = mock_crawler

        with patch("avcrawler.wiki.codes_missing_performers", return_value=["SIRO-5561"]) as missing:
            crawl_wiki("av-wiki", missing_from="MGS")

        missing.assert_called_once_with("MGS", limit=100)
        crawler.crawl_product_codes.assert_called_once_with(["SIRO-5561"])

    def test_unknown_site(self):
        from avcrawler.tasks import crawl_wiki

        result = crawl_wiki("nope")

        assert result["status"] == "failed"
        assert "Unknown wiki site" in result["error"]


@pytest.mark.django_db
class TestMaintenanceTasks:
    def test_reconcile_wiki_staging(self):
        from avcrawler.models import WikiCrawlStaging
        from avcrawler.tasks import reconcile_wiki_staging

        WikiCrawlStaging.objects.create(
            site="av-wiki",
            product_code="ZZZ-999",
            performer_name="鈴木愛",
            source_url="https://av-wiki.net/zzz-999/",
        )

        result = reconcile_wiki_staging()

        assert result["status"] == "completed"
        assert result["stats"]["rows"] == 1
        assert result["stats"]["unmatched"] == 1

    def test_deactivate_expired_sales(self):
        from avcrawler.tasks import deactivate_expired_sales

        with patch("avcrawler.services.sale_detector.deactivate_expired_sales", return_value=4):
            result = deactivate_expired_sales()

        assert result == {"status": "completed", "deactivated": 4}
