"""
Pytest configuration and fixtures for the crawler test suite.
"""

import httpx
import pytest


@pytest.fixture(scope="session")
def django_db_setup(django_db_blocker):
    """Configure the test database and run migrations."""
    from django.core.management import call_command

    with django_db_blocker.unblock():
        call_command("migrate", "--run-syncdb", verbosity=0)


@pytest.fixture
def sleeps():
    """Records every delay a fetcher asks for instead of sleeping."""
    return []


@pytest.fixture
def make_fetcher(sleeps):
    """
    Build a PoliteFetcher backed by an httpx.MockTransport.

    ``routes`` maps a URL to a response body, a status code, an
    ``httpx.Response`` or a callable ``(request) -> httpx.Response``.
    Unknown URLs answer 404. Every request is appended to ``fetcher.requests``.
    """
    from avcrawler.fetchers.polite import PoliteFetcher, RateLimiter
    from avcrawler.fetchers.proxy import DirectDispatcher

    fetchers = []

    def factory(routes=None, profile=None, handler=None, max_attempts=3, base_delay=1.0):
        routes = routes or {}
        requests = []

        def default_handler(request):
            route = routes.get(str(request.url))
            if route is None:
                return httpx.Response(404, text="not found")
            if callable(route):
                return route(request)
            if isinstance(route, httpx.Response):
                return route
            if isinstance(route, int):
                return httpx.Response(route, text="")
            if isinstance(route, bytes):
                return httpx.Response(200, content=route)
            return httpx.Response(200, content=route.encode("utf-8"))

        def recording_handler(request):
            requests.append(request)
            return (handler or default_handler)(request)

        fetcher = PoliteFetcher(
            profile,
            max_attempts=max_attempts,
            base_delay=base_delay,
            rate_limiter=RateLimiter(base=0),
            proxy_dispatcher=DirectDispatcher(),
            transport=httpx.MockTransport(recording_handler),
            sleep=sleeps.append,
        )
        fetcher.requests = requests
        fetchers.append(fetcher)
        return fetcher

    yield factory

    for fetcher in fetchers:
        fetcher.close()


GENERIC_PRODUCT_HTML = """<!DOCTYPE html>
<html lang="ja">
<head>
  <meta charset="utf-8">
  <title>Example Title | Example Store</title>
  <script type="application/ld+json">
  {
    "@context": "https://schema.org",
    "@type": "Product",
    "name": "Example Title",
    "description": "A sample product used for crawler tests.",
    "image": "https://shop.example.com/images/abc-123/package.jpg",
    "actor": [{"@type": "Person", "name": "Jane Doe"}],
    "genre": ["Drama", "Romance"],
    "offers": {"@type": "Offer", "price": "1980", "priceCurrency": "JPY"}
  }
  </script>
</head>
<body>
  <h1>Example Title</h1>
  <div class="price"><del>¥2,980</del> ¥1,980</div>
  <p class="sale-banner">セール 12月31日まで</p>
</body>
</html>
"""

GENERIC_PRODUCT_URL = "https://shop.example.com/products/abc-123.html"


@pytest.fixture
def generic_product_html():
    return GENERIC_PRODUCT_HTML


@pytest.fixture
def generic_product_url():
    return GENERIC_PRODUCT_URL


MGS_DETAIL_HTML = """<!DOCTYPE html>
<html lang="ja">
<head>
  <meta charset="utf-8">
  <title>素人娘とドライブデート SIRO-5561 - エロ動画・アダルトビデオ -MGS動画</title>
  <meta property="og:image" content="https://image.mgstage.com/images/shiroutotv/siro/5561/pb_e_siro-5561.jpg">
  <meta property="og:description" content="ドライブデートの一日を記録した作品です。">
</head>
<body>
  <h1 class="tag">素人娘とドライブデート</h1>
  <div class="detail_data">
    <table>
      <tr><th>出演：</th><td><a href="/search/cSearch.php?actor=1">山田花子</a></td></tr>
      <tr><th>メーカー：</th><td><a href="/search/cSearch.php?maker=siro">シロウトTV</a></td></tr>
      <tr><th>収録時間：</th><td>65min 65分</td></tr>
      <tr><th>配信開始日：</th><td>2024/01/15</td></tr>
      <tr><th>ジャンル：</th><td><a href="/g/1">素人</a> <a href="/g/2">ドライブ</a></td></tr>
    </table>
  </div>
  <div class="price_list">
    <div id="download_hd_price">1,480円</div>
    <div id="download_sd_price">980円</div>
    <div id="streaming_price">550円</div>
  </div>
  <div id="sample-photo">
    <a class="sample_image" href="https://image.mgstage.com/images/shiroutotv/siro/5561/cap_e_0_siro-5561.jpg">1</a>
    <a class="sample_image" href="https://image.mgstage.com/images/shiroutotv/siro/5561/cap_e_1_siro-5561.jpg">2</a>
    <a class="sample_image" href="https://static.mgstage.com/img/btn_sample_movie.png">movie</a>
  </div>
  <div class="user_review_head"><p class="detail">5点満点中 4.5点 / レビュー数 2 件</p></div>
  <div id="user_review">
    <div class="user_date">
      <p class="name">たろうさんのレビュー</p>
      <p class="review"><span class="star_50"></span></p>
    </div>
    <p class="text">最高の作品でした。<br>また見たいです。</p>
    <div class="user_date">
      <p class="name">じろうさんのレビュー</p>
      <p class="review"><span class="star_40"></span></p>
    </div>
    <p class="text">よかったです。</p>
  </div>
</body>
</html>
"""

MGS_DETAIL_URL = "https://www.mgstage.com/product/product_detail/SIRO-5561/"


@pytest.fixture
def mgs_detail_html():
    return MGS_DETAIL_HTML


@pytest.fixture
def mgs_detail_url():
    return MGS_DETAIL_URL


FANZA_DETAIL_HTML = """<!DOCTYPE html>
<html lang="ja">
<head>
  <meta charset="utf-8">
  <title>新人NO.1STYLE 花咲ひより AVデビュー | FANZA動画</title>
  <script type="application/ld+json">
  {
    "@context": "https://schema.org",
    "@type": "Product",
    "name": "【ブランドストア30％OFF！】新人NO.1STYLE 花咲ひより AVデビュー",
    "genre": ["単体作品", "デビュー作品"],
    "offers": {"@type": "Offer", "price": "1980", "priceCurrency": "JPY"}
  }
  </script>
</head>
<body>
  <h1>新人NO.1STYLE 花咲ひより AVデビュー</h1>
  <img src="https://awsimgsrc.dmm.co.jp/pics_dig/digital/video/ssis00123/ssis00123pl.jpg?w=600" alt="">
  <div class="info">
    <span>2024/01/15</span>
    <span>120分</span>
    <a href="/av/list/?actress=1093042">花咲ひより</a>
    <a href="/av/list/?actress=0">出演者一覧</a>
    <a href="/av/list/?maker=1509">エスワン ナンバーワンスタイル</a>
    <a href="/av/list/?label=3474">S1 NO.1 STYLE</a>
    <a href="/av/list/?series=5050">新人NO.1STYLE</a>
  </div>
  <div class="price"><del>2,980円</del> 1,980円</div>
  <p class="mg-b20">☆★新人NO.1STYLE、花咲ひよりが待望のAVデビュー。初めての撮影に緊張しながらも、カメラの前で少しずつ素顔を見せてくれる彼女の初々しい姿を余すところなく収録しました。</p>
  <div class="sample">
    <img src="https://awsimgsrc.dmm.co.jp/pics_dig/digital/video/ssis00123/ssis00123-1.jpg?w=120">
    <img src="https://awsimgsrc.dmm.co.jp/pics_dig/digital/video/ssis00123/ssis00123-2.jpg?w=120">
    <img src="https://awsimgsrc.dmm.co.jp/pics_dig/common/btn_sample-1.jpg">
    <a href="/img/btn_sample_movie.png">サンプル動画</a>
    <video><source src="https://cc3001.dmm.co.jp/litevideo/freepv/s/ssi/ssis00123/ssis00123_sm_w.mp4?t=1"></video>
  </div>
</body>
</html>
"""

FANZA_DETAIL_URL = "https://www.dmm.co.jp/digital/videoa/-/detail/=/cid=ssis00123/"


@pytest.fixture
def fanza_detail_html():
    return FANZA_DETAIL_HTML


@pytest.fixture
def fanza_detail_url():
    return FANZA_DETAIL_URL
