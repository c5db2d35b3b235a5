"""
Tests for the source extractors.

Fixtures are trimmed copies of real detail-page markup.
"""

from datetime import date

import pytest


class TestMgsDetailExtraction:
    """Field chains against an MGS detail page."""

    @pytest.fixture
    def record(self, mgs_detail_html, mgs_detail_url):
        from avcrawler.extractors import MgsExtractor

        return MgsExtractor().extract(mgs_detail_html, mgs_detail_url)

    def test_identity(self, record):
        assert record.source == "MGS"
        assert record.source_product_id == "SIRO-5561"
        assert record.url == "https://www.mgstage.com/product/product_detail/SIRO-5561/"

    def test_details_table(self, record):
        assert record.title == "素人娘とドライブデート"
        assert record.release_date == date(2024, 1, 15)
        assert record.duration == 65
        assert record.performers == ["山田花子"]
        assert record.genres == ["素人", "ドライブ"]
        assert record.maker_name == "シロウトTV"

    def test_description_falls_back_to_og(self, record):
        assert record.description == "ドライブデートの一日を記録した作品です。"

    def test_prices(self, record):
        assert record.prices == {"hd": 1480, "download": 980, "streaming": 550}
        # HD is the representative price
        assert record.price == 1480
        assert record.regular_price is None

    def test_images(self, record):
        assert record.thumbnail_url == (
            "https://image.mgstage.com/images/shiroutotv/siro/5561/pb_e_siro-5561.jpg"
        )
        assert record.sample_images == [
            "https://image.mgstage.com/images/shiroutotv/siro/5561/cap_e_0_siro-5561.jpg",
            "https://image.mgstage.com/images/shiroutotv/siro/5561/cap_e_1_siro-5561.jpg",
        ]
        assert record.sample_video_url is None

    def test_sample_video_skips_button_assets(self, mgs_detail_html, mgs_detail_url):
        from avcrawler.extractors import MgsExtractor

        html = mgs_detail_html.replace(
            '<div id="sample-photo">',
            '<p class="sample_movie_btn">\n'
            '    <a href="/img/btn_sample_movie.png">movie</a>\n'
            '    <a class="button_sample" href="/sampleplayer/sampleplayer.html/abc">play</a>\n'
            "  </p>\n"
            '  <div id="sample-photo">',
        )

        record = MgsExtractor().extract(html, mgs_detail_url)

        assert record.sample_video_url == "https://www.mgstage.com/sampleplayer/sampleplayer.html/abc"
        assert len(record.sample_images) == 2

    def test_rating_summary(self, record):
        assert record.rating_summary.average_rating == 4.5
        assert record.rating_summary.max_rating == 5
        assert record.rating_summary.total_reviews == 2

    def test_reviews(self, record):
        assert [r.reviewer_name for r in record.reviews] == ["たろう", "じろう"]
        assert [r.rating for r in record.reviews] == [5.0, 4.0]
        assert record.reviews[0].content == "最高の作品でした。\nまた見たいです。"
        assert record.reviews[0].source_review_id != record.reviews[1].source_review_id

    def test_affiliate_url_without_code(self, record):
        assert record.affiliate_url == "https://www.mgstage.com/product/product_detail/SIRO-5561/"

    def test_affiliate_url_with_code(self, settings):
        from avcrawler.extractors import MgsExtractor

        settings.CRAWLER_MGS_AFFILIATE_CODE = "ABC123"

        assert MgsExtractor().affiliate_url("SIRO-5561") == (
            "https://www.mgstage.com/product/product_detail/SIRO-5561/?af_id=ABC123"
        )

    def test_struck_price_becomes_regular_price(self, mgs_detail_html, mgs_detail_url):
        from avcrawler.extractors import MgsExtractor

        html = mgs_detail_html.replace(
            '<div class="price_list">',
            '<div class="price_list">\n    <del class="price_del">2,980円</del>',
        )

        record = MgsExtractor().extract(html, mgs_detail_url)

        assert record.regular_price == 2980
        assert record.price == 1480

    def test_radio_button_price(self, mgs_detail_url):
        from avcrawler.extractors import MgsExtractor

        html = """<html><head><title>新人デビュー作品 ABC-001</title></head><body>
        <h1 class="tag">新人デビュー作品の記録</h1>
        <div class="price_list">
          <input type="radio" name="price" id="download_hd_btn"
                 value="download_hd,0,0f8b3a2c,ABC-001,2480">
        </div>
        </body></html>"""

        record = MgsExtractor().extract(html, mgs_detail_url)

        assert record.prices == {"hd": 2480}
        assert record.price == 2480


class TestPlaceholderRejection:
    """Non-product pages never become records."""

    URL = "https://www.mgstage.com/product/product_detail/SIRO-0000/"

    def test_homepage_title(self):
        from avcrawler.extractors import MgsExtractor, ProductNotFound

        html = "<html><head><title>エロ動画・アダルトビデオ -MGS動画</title></head><body>新着</body></html>"

        with pytest.raises(ProductNotFound, match="homepage title"):
            MgsExtractor().extract(html, self.URL)

    def test_age_check_page(self):
        from avcrawler.extractors import MgsExtractor, ProductNotFound

        html = "<html><body><p>年齢確認</p><p>あなたは18歳以上ですか？</p></body></html>"

        with pytest.raises(ProductNotFound, match="top page or age check"):
            MgsExtractor().extract(html, self.URL)

    def test_page_without_landmarks(self):
        from avcrawler.extractors import MgsExtractor, ProductNotFound

        html = "<html><head><title>お知らせ一覧ページ</title></head><body><p>価格改定 ¥100</p></body></html>"

        with pytest.raises(ProductNotFound, match="landmarks"):
            MgsExtractor().extract(html, self.URL)

    def test_placeholder_title_is_invalid_product(self):
        from avcrawler.extractors import InvalidProduct, MgsExtractor

        html = """<html><body><h1 class="tag">MGS-SIRO-0000</h1>
        <div class="price_list"><div id="download_hd_price">1,480円</div></div>
        </body></html>"""

        with pytest.raises(InvalidProduct) as exc_info:
            MgsExtractor().extract(html, self.URL)

        assert exc_info.value.reason == "placeholder title"

    def test_no_usable_fields(self):
        from avcrawler.extractors import MgsExtractor, ProductNotFound

        html = "<html><body><div class='price_list'>準備中</div></body></html>"

        with pytest.raises(ProductNotFound, match="no usable fields"):
            MgsExtractor().extract(html, self.URL)

    def test_invalid_product_is_product_not_found(self):
        from avcrawler.extractors import InvalidProduct, ProductNotFound

        assert issubclass(InvalidProduct, ProductNotFound)


class TestMgsListing:
    """Listing page helpers."""

    LISTING_HTML = """<html><body>
      <ul class="rank_list">
        <li><a href="/product/product_detail/SIRO-5561/"><img src="a.jpg"></a>
            <a href="/product/product_detail/SIRO-5561/">素人娘</a></li>
        <li><a href="https://www.mgstage.com/product/product_detail/300MIUM-1359/">人妻</a></li>
        <li><a href="/search/cSearch.php?page=2">次へ</a></li>
      </ul>
      <div class="pager_num">1 / 25</div>
    </body></html>"""

    def test_parse_listing(self):
        from avcrawler.extractors.mgs import parse_listing

        assert parse_listing(self.LISTING_HTML) == ["SIRO-5561", "300MIUM-1359"]

    def test_parse_total_pages(self):
        from avcrawler.extractors.mgs import parse_total_pages

        assert parse_total_pages(self.LISTING_HTML) == 25
        assert parse_total_pages("<html></html>") is None

    def test_listing_url(self):
        from avcrawler.extractors.mgs import listing_url

        url = listing_url(3, sort="old")
        assert url.startswith("https://www.mgstage.com/search/cSearch.php?")
        assert "sort=old" in url
        assert "page=3" in url
        assert "list_cnt=120" in url

    def test_detail_url(self):
        from avcrawler.extractors.mgs import detail_url

        assert detail_url("SIRO-5561") == "https://www.mgstage.com/product/product_detail/SIRO-5561/"


class TestFanzaDetailExtraction:
    """JSON-LD first, FANZA markup for everything the block leaves out."""

    @pytest.fixture
    def record(self, fanza_detail_html, fanza_detail_url):
        from avcrawler.extractors import FanzaExtractor

        return FanzaExtractor().extract(fanza_detail_html, fanza_detail_url)

    def test_identity(self, record):
        assert record.source == "FANZA"
        assert record.source_product_id == "ssis00123"

    def test_campaign_tag_removed_from_title(self, record):
        assert record.title == "新人NO.1STYLE 花咲ひより AVデビュー"

    def test_markup_fallbacks(self, record):
        assert record.release_date == date(2024, 1, 15)
        assert record.duration == 120
        assert record.performers == ["花咲ひより"]
        assert record.genres == ["単体作品", "デビュー作品"]
        assert record.description.startswith("☆★新人NO.1STYLE、花咲ひよりが待望のAVデビュー。")
        assert record.description.endswith("収録しました。")

    def test_maker_label_and_series_links(self, record):
        assert record.maker_name == "エスワン ナンバーワンスタイル"
        assert record.labels == ["S1 NO.1 STYLE", "新人NO.1STYLE"]

    def test_package_and_sample_media(self, record):
        assert record.thumbnail_url == (
            "https://awsimgsrc.dmm.co.jp/pics_dig/digital/video/ssis00123/ssis00123pl.jpg"
        )
        assert record.sample_images == [
            "https://awsimgsrc.dmm.co.jp/pics_dig/digital/video/ssis00123/ssis00123-1.jpg",
            "https://awsimgsrc.dmm.co.jp/pics_dig/digital/video/ssis00123/ssis00123-2.jpg",
        ]
        assert record.sample_video_url == (
            "https://cc3001.dmm.co.jp/litevideo/freepv/s/ssi/ssis00123/ssis00123_sm_w.mp4"
        )

    def test_prices(self, record):
        assert record.price == 1980
        assert record.regular_price == 2980

    def test_video_from_player_script(self, fanza_detail_html, fanza_detail_url):
        from avcrawler.extractors import FanzaExtractor

        html = fanza_detail_html.replace(
            '<video><source src="https://cc3001.dmm.co.jp/litevideo/freepv/s/ssi/ssis00123/ssis00123_sm_w.mp4?t=1"></video>',
            '<script>var player = {src: "https://cc3001.dmm.co.jp/litevideo/freepv/s/ssi/ssis00123/ssis00123_dmb_w.mp4"};</script>',
        )

        record = FanzaExtractor().extract(html, fanza_detail_url)

        assert record.sample_video_url == (
            "https://cc3001.dmm.co.jp/litevideo/freepv/s/ssi/ssis00123/ssis00123_dmb_w.mp4"
        )

    def test_button_is_never_the_sample_video(self, fanza_detail_html, fanza_detail_url):
        from avcrawler.extractors import FanzaExtractor

        html = fanza_detail_html.replace(
            '<video><source src="https://cc3001.dmm.co.jp/litevideo/freepv/s/ssi/ssis00123/ssis00123_sm_w.mp4?t=1"></video>',
            '<video><source src="https://cc3001.dmm.co.jp/litevideo/btn_sample_movie.mp4"></video>',
        )

        record = FanzaExtractor().extract(html, fanza_detail_url)

        assert record.sample_video_url is None

    def test_affiliate_url(self, record, settings):
        from avcrawler.extractors import FanzaExtractor

        assert record.affiliate_url == "https://www.dmm.co.jp/digital/videoa/-/detail/=/cid=ssis00123/"

        settings.CRAWLER_FANZA_AFFILIATE_ID = "abc-001"
        url = FanzaExtractor().affiliate_url("ssis00123")

        assert url.startswith("https://al.dmm.co.jp/?lurl=https%3A%2F%2Fwww.dmm.co.jp%2Fdigital%2Fvideoa")
        assert url.endswith("&af_id=abc-001")


class TestGenericExtraction:
    """JSON-LD-first extraction."""

    def test_json_ld_fields(self, generic_product_html, generic_product_url):
        from avcrawler.extractors import GenericExtractor

        record = GenericExtractor().extract(generic_product_html, generic_product_url)

        assert record.source == "GENERIC"
        assert record.source_product_id == "abc-123"
        assert record.title == "Example Title"
        assert record.description == "A sample product used for crawler tests."
        assert record.performers == ["Jane Doe"]
        assert record.genres == ["Drama", "Romance"]
        assert record.thumbnail_url == "https://shop.example.com/images/abc-123/package.jpg"
        assert record.price == 1980
        assert record.regular_price == 2980
        assert record.sale_banner_text == "セール 12月31日まで"

    def test_markup_fallbacks(self):
        from avcrawler.extractors import GenericExtractor

        html = """<html><head><title>Fallback Product Page</title></head><body>
        <h1>Fallback Product</h1>
        <table>
          <tr><th>出演者</th><td>佐藤美咲、鈴木愛</td></tr>
          <tr><th>収録時間</th><td>1時間30分</td></tr>
          <tr><th>発売日</th><td>2023年12月1日</td></tr>
        </table>
        <div class="price"><s>3,000円</s> 2,100円</div>
        </body></html>"""

        record = GenericExtractor().extract(html, "https://shop.example.com/item/fb-9")

        assert record.title == "Fallback Product"
        assert record.performers == ["佐藤美咲", "鈴木愛"]
        assert record.duration == 90
        assert record.release_date == date(2023, 12, 1)
        assert record.price == 2100
        assert record.regular_price == 3000

    def test_fanza_cid(self):
        from avcrawler.extractors import get_extractor

        extractor = get_extractor("FANZA")

        assert type(extractor).__name__ == "FanzaExtractor"
        assert extractor.source == "FANZA"
        assert extractor.product_id_from_url(
            "https://www.dmm.co.jp/digital/videoa/-/detail/=/cid=ssis00123/"
        ) == "ssis00123"

    def test_unknown_source(self):
        from avcrawler.extractors import get_extractor

        with pytest.raises(KeyError):
            get_extractor("NOPE")


class TestFirstMatch:
    """Strategy chain semantics."""

    def test_failing_strategy_is_skipped(self):
        from avcrawler.extractors import Page, first_match

        def broken(page):
            raise AttributeError("markup changed")

        def empty(page):
            return []

        def good(page):
            return "value"

        assert first_match(Page("<html></html>", "https://x"), [broken, empty, good]) == "value"

    def test_rejected_value_falls_through(self):
        from avcrawler.extractors import Page, first_match

        page = Page("<html></html>", "https://x")
        strategies = [lambda p: 5, lambda p: 1980]

        assert first_match(page, strategies, "price", accept=lambda v: v >= 100) == 1980

    def test_all_miss(self):
        from avcrawler.extractors import Page, first_match

        assert first_match(Page("<html></html>", "https://x"), [lambda p: None]) is None


class TestJsonLd:
    """JSON-LD flattening."""

    def test_graph_and_invalid_blocks(self):
        from bs4 import BeautifulSoup

        from avcrawler.extractors.structured_data import find_product, parse_json_ld

        html = """<html><head>
        <script type="application/ld+json">{not json</script>
        <script type="application/ld+json">
          {"@graph": [{"@type": "WebSite", "name": "Shop"},
                      {"@type": ["Movie"], "name": "Graph Movie"}]}
        </script>
        </head></html>"""

        objects = parse_json_ld(BeautifulSoup(html, "lxml"))

        assert len(objects) == 2
        assert find_product(objects)["name"] == "Graph Movie"

    def test_offer_list(self):
        from avcrawler.extractors.structured_data import offer_price

        assert offer_price({"offers": [{"lowPrice": 980}]}) == "980"
        assert offer_price({"offers": []}) is None
