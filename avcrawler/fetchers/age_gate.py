"""
Age gate detection utilities.

Storefronts answer requests without the age cookie with a verification page
instead of the product. Age gates are detected by:
1. Final URL pointing at the site's age-check page
2. Age-verification phrases in a page that carries no product information
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional

from django.conf import settings

logger = logging.getLogger(__name__)


# Age gate detection patterns - common phrases on verification pages
AGE_GATE_PATTERNS = [
    re.compile(r"年齢確認"),
    re.compile(r"18歳以上"),
    re.compile(r"18歳未満"),
    re.compile(r"age[-_]?verification", re.IGNORECASE),
    re.compile(r"confirm.*age", re.IGNORECASE),
    re.compile(r"はい.*いいえ.*ボタン"),
]

# Any of these means the page carries real product data
PRODUCT_INFO_PATTERNS = [
    re.compile(r"[¥￥][\d,]+"),
    re.compile(r"円"),
    re.compile(r"出演"),
]

AGE_CHECK_URL_PATTERN = re.compile(r"/age[-_]?check|/confirm", re.IGNORECASE)


@dataclass
class AgeGateDetectionResult:
    """Result of age gate detection analysis."""

    is_age_gate: bool
    reason: str
    pattern_matched: Optional[str] = None
    content_length: int = 0


def has_product_info(content: str) -> bool:
    return any(pattern.search(content) for pattern in PRODUCT_INFO_PATTERNS)


def detect_age_gate(
    content: str,
    final_url: Optional[str] = None,
    threshold: Optional[int] = None,
) -> AgeGateDetectionResult:
    """
    Detect if content represents an age gate page.

    Product pages often repeat the 18+ notice in their footer, so a phrase
    match only counts when no price or cast information is present.

    Args:
        content: The page content to analyze
        final_url: URL the request ended on after redirects
        threshold: Content length below which an empty page counts as a gate

    Returns:
        AgeGateDetectionResult with detection status and reason
    """
    if threshold is None:
        threshold = getattr(settings, "CRAWLER_AGE_GATE_CONTENT_THRESHOLD", 500)

    content_length = len(content)

    if final_url and AGE_CHECK_URL_PATTERN.search(final_url):
        logger.debug(f"Age gate detected: redirected to {final_url}")
        return AgeGateDetectionResult(
            is_age_gate=True,
            reason=f"Redirected to age check URL: {final_url}",
            content_length=content_length,
        )

    product_info = has_product_info(content)

    if content_length < threshold and not product_info:
        return AgeGateDetectionResult(
            is_age_gate=True,
            reason=f"Content length ({content_length}) below threshold ({threshold})",
            content_length=content_length,
        )

    if not product_info:
        for pattern in AGE_GATE_PATTERNS:
            if pattern.search(content):
                logger.debug(f"Age gate detected: pattern '{pattern.pattern}' found")
                return AgeGateDetectionResult(
                    is_age_gate=True,
                    reason=f"Pattern detected: '{pattern.pattern}'",
                    pattern_matched=pattern.pattern,
                    content_length=content_length,
                )

    return AgeGateDetectionResult(
        is_age_gate=False,
        reason="No age gate indicators found",
        content_length=content_length,
    )
