"""
Maker/label lookup by product-code prefix.

Static table mapping product-code prefixes (SSIS, 300MIUM...) to a unified
maker identity shared by every source, plus the MGS image path used to
synthesize package image URLs when a page has none.
"""

import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple


@dataclass(frozen=True)
class MakerInfo:
    """Unified maker identity."""

    name: str
    name_en: Optional[str] = None
    category: Optional[str] = None  # major, indie, amateur, exclusive
    mgs_path: Optional[str] = None  # e.g. "sodcreate/107stars"


# (name, name_en, category, {prefix: mgs_path})
_MAKER_GROUPS: List[Tuple[str, str, str, Dict[str, Optional[str]]]] = [
    ("S1 NO.1 STYLE", "S1 NO.1 STYLE", "major", {"SSIS": None, "SSNI": None, "SONE": None}),
    ("ムーディーズ", "MOODYZ", "major", {"MIDV": None, "MIFD": None, "MIDE": None, "MIAA": None}),
    ("アイデアポケット", "Idea Pocket", "major", {"IPX": None, "IPZZ": None, "IPZ": None}),
    ("プレミアム", "PREMIUM", "major", {"PRED": None, "PGD": None}),
    ("kawaii*", "kawaii", "major", {"CAWD": "kawaii/112cawd", "KAVR": None}),
    (
        "SODクリエイト",
        "SOD Create",
        "major",
        {
            "STARS": "sodcreate/107stars",
            "STAR": None,
            "SDAB": "sodcreate/1sdab",
            "SDJS": "sodcreate/1sdjs",
            "SDDE": "sodcreate/1sdde",
            "SDAM": "sodcreate/1sdam",
            "SDMU": "sodcreate/1sdmu",
            "SDNT": "sodcreate/1sdnt",
            "SDNM": "sodcreate/1sdnm",
        },
    ),
    (
        "プレステージ",
        "Prestige",
        "major",
        {
            "ABW": "prestige/118abw",
            "ABP": "prestige/118abp",
            "ABS": "prestige/118abs",
            "ABF": "prestige/118abf",
            "CHN": "prestige/118chn",
            "TEM": "prestige/118tem",
            "SGA": "prestige/118sga",
            "SABA": "prestige/118saba",
            "DIC": None,
            "ESK": None,
            "MGT": None,
        },
    ),
    ("FALENO", "FALENO", "major", {"FSDSS": None, "FLNS": None, "FOCS": None, "MFCS": "faleno/h_1530mfcs"}),
    (
        "アタッカーズ",
        "Attackers",
        "major",
        {"SSPD": None, "ATID": None, "SHKD": None, "RBD": None, "RBK": None, "ADN": None},
    ),
    (
        "マドンナ",
        "MADONNA",
        "major",
        {"JUQ": None, "JUL": None, "JUY": None, "JUC": None, "ROE": None, "VENX": None},
    ),
    ("kira☆kira", "kira kira", "major", {"BLK": None}),
    ("E-BODY", "E-BODY", "major", {"EBWH": None, "EBOD": None, "EYAN": None}),
    ("ワンズファクトリー", "ONES Factory", "major", {"ONEZ": None}),
    ("ナチュラルハイ", "Natural High", "major", {"NHDTB": None, "NHDTA": None}),
    ("K.M.Produce", "K.M.Produce", "major", {"REAL": None}),
    ("本中", "Honnaka", "major", {"HMN": None, "HND": None}),
    ("痴女天堂", "Chijo Heaven", "major", {"CJOD": None}),
    ("ナンパTV", "Nampa TV", "amateur", {"200GANA": None}),
    (
        "シロウトTV",
        "Shirouto TV",
        "amateur",
        {
            "261ARA": "shiroutotv/261ara",
            "261SIRO": "shiroutotv/261siro",
            "300MIUM": "shiroutotv/300mium",
            "300MAAN": "shiroutotv/300maan",
            "300NTK": "shiroutotv/300ntk",
            "300ORETD": "shiroutotv/300oretd",
            "390JAC": None,
        },
    ),
    ("ラグジュTV", "LUXU TV", "amateur", {"259LUXU": "shiroutotv/259luxu"}),
    ("FC2", "FC2", "indie", {"FC2": None, "FC2-PPV": None}),
    ("カリビアンコム", "Caribbeancom", "exclusive", {"CARIB": None}),
    ("一本道", "1Pondo", "exclusive", {"1PON": None}),
    ("HEYZO", "HEYZO", "exclusive", {"HEYZO": None}),
    ("Tokyo-Hot", "Tokyo-Hot", "exclusive", {"TOKYO": None}),
    ("MAXING", "MAXING", "major", {"MXGS": None}),
    ("Fitch", "Fitch", "major", {"JUFD": None, "JUFE": None}),
    ("溜池ゴロー", "Tameike Goro", "major", {"MEYD": None}),
    ("Das!", "Das!", "major", {"DASD": None}),
    ("WANZ FACTORY", "WANZ FACTORY", "major", {"WAAA": None, "WANZ": None}),
    ("S-Cute", "S-Cute", "major", {"SQTE": None}),
    ("Aroma企画", "AROMA", "major", {"ARM": None}),
    ("妄想族", "Mousouzoku", "major", {"SERO": None}),
    ("V&R PRODUCE", "V&R PRODUCE", "major", {"VRTM": None}),
    ("DANDY", "DANDY", "major", {"DANDY": None}),
    ("Hunter", "Hunter", "major", {"HUNTA": None, "HUNTB": None, "HUNTC": None}),
    ("ムゲンエンタテインメント", "Mugen Entertainment", "major", {"MGMQ": None}),
    ("Bi", "Bi", "major", {"BDSR": None}),
    ("Venus", "Venus", "major", {"VEC": None, "VENU": None}),
    ("OPPAI", "OPPAI", "major", {"PPPD": None}),
    ("LEO", "LEO", "major", {"UMD": None}),
    ("TMA", "TMA", "major", {"HITMA": None}),
    ("Glory Quest", "Glory Quest", "major", {"GVH": None, "GVG": None}),
]

MAKER_MAP: Dict[str, MakerInfo] = {
    prefix: MakerInfo(name=name, name_en=name_en, category=category, mgs_path=mgs_path)
    for name, name_en, category, prefixes in _MAKER_GROUPS
    for prefix, mgs_path in prefixes.items()
}

MAKER_CATEGORIES = ("major", "indie", "amateur", "exclusive")

# Ordered: hyphenated, digit-prefixed, letters-only
PRODUCT_CODE_PATTERNS = [
    re.compile(r"^(\d*[A-Z]+)-(\d+)$"),
    re.compile(r"^(\d+[A-Z]+)(\d+)$"),
    re.compile(r"^([A-Z]+)(\d+)$"),
]


def get_maker_by_prefix(prefix: Optional[str]) -> Optional[MakerInfo]:
    if not prefix:
        return None
    return MAKER_MAP.get(prefix.upper().strip())


def split_product_code(product_code: Optional[str]) -> Optional[Tuple[str, str]]:
    """
    Split a product code into (PREFIX, number).

    >>> split_product_code("300mium-1359")
    ('300MIUM', '1359')
    >>> split_product_code("h_1530mfcs123")
    ('MFCS', '123')
    """
    if not product_code:
        return None
    normalized = re.sub(r"^H_\d+", "", product_code.upper().strip())
    for pattern in PRODUCT_CODE_PATTERNS:
        match = pattern.match(normalized)
        if match:
            return match.group(1), match.group(2)
    return None


def get_maker_by_product_code(product_code: Optional[str]) -> Optional[MakerInfo]:
    """
    Maker of a product code such as "SSIS-865" or "300MIUM1359".

    Falls back to the prefix without its leading digits ("118ABW" -> "ABW").
    """
    parts = split_product_code(product_code)
    if parts is None:
        return None
    prefix = parts[0]
    maker = get_maker_by_prefix(prefix)
    if maker is None and prefix[:1].isdigit():
        maker = get_maker_by_prefix(prefix.lstrip("0123456789"))
    return maker


def prefixes_for_maker(maker_name: str) -> List[Tuple[str, MakerInfo]]:
    """Prefixes whose maker name (Japanese or English) contains maker_name."""
    if not maker_name:
        return []
    search = maker_name.lower()
    return [
        (prefix, info)
        for prefix, info in MAKER_MAP.items()
        if search in info.name.lower() or (info.name_en and search in info.name_en.lower())
    ]


def mgs_path(prefix: str) -> Optional[str]:
    maker = get_maker_by_prefix(prefix)
    return maker.mgs_path if maker else None


def all_maker_names() -> List[str]:
    return sorted({info.name for info in MAKER_MAP.values()})


def makers_by_category(category: str) -> List[Tuple[str, MakerInfo]]:
    return [(prefix, info) for prefix, info in MAKER_MAP.items() if info.category == category]


def mgs_image_url(product_code: str) -> Optional[str]:
    """
    Package image URL on the MGS image host.

    >>> mgs_image_url("STARS-123")
    'https://image.mgstage.com/images/sodcreate/107stars/123/pb_e_107stars-123.jpg'
    """
    parts = split_product_code(product_code)
    if parts is None:
        return None
    path = mgs_path(parts[0])
    if not path:
        return None
    series_id = path.split("/", 1)[1]
    number = parts[1]
    return f"https://image.mgstage.com/images/{path}/{number}/pb_e_{series_id}-{number}.jpg"
