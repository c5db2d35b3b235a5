"""
Identity Resolver Service.

Maps source-specific identifiers to canonical entities:
- ``resolve_product``: pure, deterministic canonical product key
- ``IdentityResolver.resolve_performer``: validated name -> Performer
  (exact match, then alias table, then create)
- ``IdentityResolver.resolve_maker``: product code -> MakerInfo

Wiki staging names take precedence over on-page cast names through an
explicit merge step (``merge_performer_names``).
"""

import logging
import re
import unicodedata
from dataclasses import dataclass, field
from typing import List, Optional

from django.db import IntegrityError, transaction
from django.db.models.functions import Upper

from avcrawler.extractors.parse_helpers import normalize_performer_name, parse_performer_name
from avcrawler.models import Performer, PerformerAlias, WikiCrawlStaging
from avcrawler.services.maker_mapping import MAKER_MAP, MakerInfo, get_maker_by_product_code
from avcrawler.services.performer_validation import is_plausible_for_product, is_valid_performer_name

logger = logging.getLogger(__name__)


# ============================================================
# Canonical product keys
# ============================================================

SEPARATOR_PATTERN = re.compile(r"[-_\s]+")
CODE_PATTERN = re.compile(r"^(\d*[a-z]+)0*(\d+)$")

# FANZA content ids: "h_1530mfcs00123", "118abw00001", "ssis00123hhb"
FANZA_LABEL_PREFIX = re.compile(r"^h_\d+")
FANZA_DIGIT_PREFIX = re.compile(r"^(\d+)([a-z]+\d+.*)$")
FANZA_SUFFIX = re.compile(r"^(.*\d)(hhb|tk|dod|bod)$")

# Source namespaces sometimes prepended to stored codes ("FANZA-gvh00802")
SOURCE_NAMESPACE = re.compile(r"^(FANZA|MGS|DUGA|SOKMIL|FC2|DTI|B10F|JAPANSKA)-", re.IGNORECASE)

MIN_NUMBER_DIGITS = 3


def _fold(text: str) -> str:
    return unicodedata.normalize("NFKC", text).strip().lower()


def _strip_fanza_decorations(code: str) -> str:
    code = FANZA_LABEL_PREFIX.sub("", code)
    suffix = FANZA_SUFFIX.match(code)
    if suffix:
        code = suffix.group(1)
    digits = FANZA_DIGIT_PREFIX.match(code)
    if digits:
        # Keep digit prefixes that are part of the code itself (300MIUM)
        letters = re.match(r"[a-z]+", digits.group(2)).group(0)
        if f"{digits.group(1)}{letters}".upper() not in MAKER_MAP:
            code = digits.group(2)
    return code


def resolve_product(source: str, local_id: str) -> str:
    """
    Canonical product key for a source-local id.

    Pure and deterministic: case and full-width folding, separator removal,
    source-specific prefix/suffix stripping, then ``prefix + number`` with
    leading zeros dropped and the number padded to three digits.

    >>> resolve_product("MGS", "SSIS-123")
    'ssis123'
    >>> resolve_product("FANZA", "ssis00123")
    'ssis123'
    >>> resolve_product("SRC", "abc-123") == resolve_product("SRC", "ABC123")
    True
    """
    code = _fold(local_id)
    if source.upper() == "FANZA":
        code = _strip_fanza_decorations(code)
    code = SEPARATOR_PATTERN.sub("", code)

    match = CODE_PATTERN.match(code)
    if not match:
        return code
    prefix, number = match.groups()
    return f"{prefix}{number.lstrip('0').rjust(MIN_NUMBER_DIGITS, '0')}"


def product_code_variants(code: str) -> List[str]:
    """
    Upper-case spellings of a product code used by wiki sites.

    >>> product_code_variants("FANZA-gvh00802")
    ['GVH00802', 'GVH-00802', 'GVH-802', 'GVH802']
    """
    raw = SOURCE_NAMESPACE.sub("", _fold(code)).upper()
    variants = [raw]

    body = re.sub(r"^H_\d+", "", raw)
    match = re.match(r"^(\d*)([A-Z]+)-?(\d+)$", body)
    if match:
        digits, letters, number = match.groups()
        trimmed = number.lstrip("0").rjust(MIN_NUMBER_DIGITS, "0")
        prefixes = [f"{digits}{letters}", letters] if digits else [letters]
        for prefix in prefixes:
            for num in (number, trimmed):
                variants.extend([f"{prefix}-{num}", f"{prefix}{num}"])

    return list(dict.fromkeys(variants))


# ============================================================
# Performer names
# ============================================================


@dataclass
class ProductContext:
    """Product a cast name was found on."""

    code: str
    title: Optional[str] = None


@dataclass
class PerformerNameMerge:
    """
    Result of merging on-page and wiki names.

    ``origin`` is "wiki" when staging names replaced the on-page names,
    "page" otherwise.
    """

    names: List[str] = field(default_factory=list)
    origin: str = "page"


def merge_performer_names(on_page: List[str], staged: List[str]) -> PerformerNameMerge:
    """
    Merge cast names with wiki precedence.

    Precedence: any staged wiki name replaces every on-page name; on-page
    names are used only when the wiki has nothing for the product.
    """
    if staged:
        return PerformerNameMerge(names=list(dict.fromkeys(staged)), origin="wiki")
    return PerformerNameMerge(names=list(dict.fromkeys(on_page)), origin="page")


class IdentityResolver:
    """Resolves performers and makers to canonical identities."""

    def staged_names(self, product_code: str) -> List[str]:
        """Wiki staging names recorded for any spelling of the product code."""
        variants = product_code_variants(product_code)
        names = (
            WikiCrawlStaging.objects.annotate(code_upper=Upper("product_code"))
            .filter(code_upper__in=variants)
            .order_by("created_at")
            .values_list("performer_name", flat=True)
        )
        return list(dict.fromkeys(names))

    def _acceptable(self, name: str, context: Optional[ProductContext]) -> bool:
        if not is_valid_performer_name(name):
            return False
        if context is not None and not is_plausible_for_product(name, context.title):
            return False
        return True

    def performer_names_for_product(
        self, on_page: List[str], context: ProductContext
    ) -> PerformerNameMerge:
        """Validated cast names for a product after the wiki merge."""
        page_names = [normalize_performer_name(name) for name in on_page]
        page_names = [name for name in page_names if name and self._acceptable(name, context)]
        staged = [name for name in self.staged_names(context.code) if self._acceptable(name, context)]

        merge = merge_performer_names(page_names, staged)
        if merge.origin == "wiki" and set(page_names) - set(merge.names):
            logger.debug(f"Wiki names override on-page cast for {context.code}: {page_names} -> {merge.names}")
        return merge

    def resolve_performer(
        self,
        raw_name: str,
        context: Optional[ProductContext] = None,
        source: Optional[str] = None,
    ) -> Optional[Performer]:
        """
        Resolve one cast name to a Performer.

        Order: validity/plausibility check, exact case-insensitive name match,
        alias match, create.

        Returns:
            Performer, or None when the name is rejected
        """
        parsed = parse_performer_name(raw_name)
        if parsed is None:
            return None
        name = normalize_performer_name(parsed.name)
        if not self._acceptable(name, context):
            logger.debug(f"Rejected performer name: {raw_name!r}")
            return None

        performer = Performer.objects.filter(name__iexact=name).first()
        if performer is not None:
            return performer

        alias = PerformerAlias.objects.select_related("performer").filter(alias_name__iexact=name).first()
        if alias is not None:
            return alias.performer

        try:
            with transaction.atomic():
                performer, created = Performer.objects.get_or_create(
                    name=name,
                    defaults={"name_kana": parsed.name_kana},
                )
        except IntegrityError:
            performer = Performer.objects.get(name=name)
            created = False

        if created:
            logger.info(f"Created performer: {name}")
            for alias_name in parsed.aliases:
                self.add_alias(performer, alias_name, source)
        return performer

    def resolve_performers(
        self,
        raw_names: List[str],
        context: ProductContext,
        source: Optional[str] = None,
    ) -> List[Performer]:
        """Resolve a product's cast after the wiki merge, deduplicated."""
        merge = self.performer_names_for_product(raw_names, context)
        performers: List[Performer] = []
        for name in merge.names:
            performer = self.resolve_performer(name, context, source)
            if performer is not None and performer not in performers:
                performers.append(performer)
        return performers

    def add_alias(self, performer: Performer, alias_name: str, source: Optional[str] = None) -> bool:
        alias_name = normalize_performer_name(alias_name)
        if not is_valid_performer_name(alias_name) or alias_name == performer.name:
            return False
        try:
            with transaction.atomic():
                _, created = PerformerAlias.objects.get_or_create(
                    alias_name=alias_name,
                    defaults={"performer": performer, "source": source},
                )
        except IntegrityError:
            return False
        return created

    @staticmethod
    def resolve_maker(product_code: str) -> Optional[MakerInfo]:
        return get_maker_by_product_code(product_code)
