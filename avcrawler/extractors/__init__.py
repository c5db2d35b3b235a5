"""
Source extractors.

- SourceExtractor: per-field strategy chains with placeholder rejection
- MgsExtractor: MGS detail pages and listing helpers
- FanzaExtractor: FANZA detail pages
- GenericExtractor: JSON-LD-first fallback for other storefronts
"""

from typing import Dict, Type

from avcrawler.sources import get_site_profile

from .base import (
    InvalidProduct,
    Page,
    ProductNotFound,
    ProductRecord,
    RatingSummaryRecord,
    ReviewRecord,
    SourceExtractor,
    first_match,
)
from .fanza import FanzaExtractor
from .generic import GenericExtractor
from .mgs import MgsExtractor

EXTRACTORS: Dict[str, Type[SourceExtractor]] = {
    "MGS": MgsExtractor,
    "FANZA": FanzaExtractor,
}


def get_extractor(source: str) -> SourceExtractor:
    """
    Extractor for a registered source.

    Raises:
        KeyError: If the source is not registered
    """
    profile = get_site_profile(source)
    extractor_class = EXTRACTORS.get(profile.name)
    if extractor_class is None:
        return GenericExtractor(profile)
    return extractor_class(profile)


__all__ = [
    "InvalidProduct",
    "Page",
    "ProductNotFound",
    "ProductRecord",
    "RatingSummaryRecord",
    "ReviewRecord",
    "SourceExtractor",
    "first_match",
    "FanzaExtractor",
    "GenericExtractor",
    "MgsExtractor",
    "get_extractor",
]
