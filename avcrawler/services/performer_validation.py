"""
Performer name validation.

Cast blocks and wiki pages mix real names with genre labels, site chrome,
maker tags, emoticons and product codes. A name has to pass
``is_valid_performer_name`` (and, on a product page,
``is_plausible_for_product``) before it can become a Performer.
"""

import re
import unicodedata
from typing import Optional


MIN_NAME_LENGTH = 2
MAX_NAME_LENGTH = 30

# Characters that only appear in markup, headings or URLs
STRUCTURAL_PATTERN = re.compile(r"[\[\]【】<>{}|:：/／=＝#＃@＠]|http", re.IGNORECASE)

PRODUCT_CODE_PATTERN = re.compile(r"^[A-Z]{2,10}-?\d{3,6}$", re.IGNORECASE)

EXCLUDE_TERMS = frozenset([
    # genres and attributes
    "素人", "巨乳", "爆乳", "美乳", "貧乳", "巨尻", "美尻", "美脚",
    "NTR", "NTRリバース", "寝取り", "寝取られ",
    "中出し", "生中出し", "顔射", "フェラ", "パイズリ", "手コキ",
    "女子大生", "人妻", "熟女", "OL", "ギャル", "清楚",
    "痴女", "淫乱", "変態", "ロリ", "美少女",
    "美女", "美人", "可愛い", "かわいい", "綺麗", "きれい",
    "若い", "大人", "年上", "年下", "処女", "童貞",
    # stores, makers and labels
    "MGS動画", "FANZA", "DMM", "PRESTIGE", "プレステージ",
    "シロウトTV", "ナンパTV", "ARA", "SIRO",
    "エスワン - SNIS", "ティッシュ - IPZ", "MOODYZ ACID", "MOODYZ DIVA", "MOODYZ Gati",
    "Hunter - HUNTA", "JET映像 - NDRA", "JET映像 - NGOD", "Fitch - JUFD",
    "ディープス - DVDMS", "アパッチ", "ナチュラルハイ - NHDTA",
    "お夜食カンパニー - OYC", "ゲッツ!! - GETS", "肛門訪問 - SOAN",
    "山と空 - SORA", "INCEST", "女神", "まんげつ", "おっぱいん",
    "美女神 Queen", "temptation", "雪月花", "只管", "口説き術",
    "素人専科", "ジェントルマン", "Real-file", "ちちくりジョニー",
    "パコッター", "NAMADORE本舗", "舞ワイフ", "未満 - MMND", "S-Cute KIRAY",
    "S-CUTE", "MADAM MANIAC", "NITRO", "e-kiss",
    "メーカー", "レーベル", "ジャンル",
    "ワンズファクトリー", "ムーディーズ", "アイデアポケット", "クリスタル映像",
    "VENUS", "unfinished", "MEGAMI", "Hunter", "MUTEKI",
    # site chrome and navigation
    "続きを読む", "more", "詳細", "作品詳細",
    "AV男優の電話帳", "電話帳", "シリーズ",
    "FANZA動画", "Twitter", "はてブ", "Pocket", "ホーム", "お問い合わせ",
    "白昼夢", "AV女優の名前が知りたい！", "Facebook", "LINE", "Instagram",
    "Amazon", "楽天", "Yahoo", "Google", "YouTube",
    "コメント", "関連記事", "人気記事", "新着記事", "カテゴリ", "タグ",
    "サイトマップ", "プライバシーポリシー", "免責事項", "運営者情報",
    "メニュー", "トップ", "検索", "RSS", "サイト内検索",
    "DUGAで見る", "FANZAで見る", "MGSで見る", "公式サイト",
    "ダウンロード", "ストリーミング", "無料動画", "サンプル動画",
    "コメントを書く", "枚", "計",
    # emoticons and filler
    "(≥o≤)", "(>_<)", "(^^)", "(*^^*)", "(´・ω・`)", "(;_;)",
    "（≥o≤）", "（>_<）", "(≧▽≦)", "(*´ω｀*)", "(^_^)", "(^^;)",
    "＊＊＊", "***", "？？？", "???",
    "...", ">>>", "---", "___",
])

_EXCLUDE_FOLDED = frozenset(term.lower() for term in EXCLUDE_TERMS)


def fold(text: str) -> str:
    """NFKC-normalize, lowercase and drop whitespace for comparisons."""
    return re.sub(r"\s+", "", unicodedata.normalize("NFKC", text)).lower()


def is_excluded_term(name: str) -> bool:
    return name.strip().lower() in _EXCLUDE_FOLDED


def is_valid_performer_name(name: Optional[str]) -> bool:
    """
    Reject tokens that cannot be a performer name.

    >>> is_valid_performer_name("山田花子")
    True
    >>> is_valid_performer_name("SSIS-123")
    False
    >>> is_valid_performer_name("巨乳")
    False
    """
    if not name:
        return False
    name = name.strip()
    if not MIN_NAME_LENGTH <= len(name) <= MAX_NAME_LENGTH:
        return False
    if STRUCTURAL_PATTERN.search(name):
        return False
    if name.isdigit():
        return False
    if PRODUCT_CODE_PATTERN.match(name):
        return False
    if is_excluded_term(name):
        return False
    return True


def is_plausible_for_product(name: str, title: Optional[str]) -> bool:
    """
    Reject names that are really the product title or a large slice of it.

    A name equal to the title, or a long name making up more than half of
    the title, was scraped from the wrong element.
    """
    if not title:
        return True
    folded_name = fold(name)
    folded_title = fold(title)
    if not folded_name or folded_name == folded_title:
        return False
    if len(folded_name) >= 10 and folded_name in folded_title and len(folded_name) > len(folded_title) / 2:
        return False
    return True
