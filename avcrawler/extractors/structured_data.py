"""
JSON-LD helpers.

Storefronts that embed schema.org data are the most reliable field source;
these helpers flatten ``@graph`` containers and pull common Product/Movie
properties out of loosely-shaped objects.
"""

import json
import logging
from typing import Any, Dict, Iterable, List, Optional

from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)


PRODUCT_TYPES = {"product", "movie", "videoobject", "creativework"}


def parse_json_ld(soup: BeautifulSoup) -> List[Dict[str, Any]]:
    """
    Parse every ``application/ld+json`` block in the document.

    Invalid blocks are skipped. ``@graph`` containers and top-level arrays are
    flattened into a single list of objects.
    """
    objects: List[Dict[str, Any]] = []
    for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
        raw = script.string or script.get_text()
        if not raw or not raw.strip():
            continue
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.debug(f"Skipping invalid JSON-LD block: {e}")
            continue
        objects.extend(_flatten(data))
    return objects


def _flatten(data: Any) -> Iterable[Dict[str, Any]]:
    if isinstance(data, list):
        for item in data:
            yield from _flatten(item)
    elif isinstance(data, dict):
        if "@graph" in data:
            yield from _flatten(data["@graph"])
        else:
            yield data


def _types(obj: Dict[str, Any]) -> List[str]:
    value = obj.get("@type", [])
    if isinstance(value, str):
        value = [value]
    return [str(item).lower() for item in value]


def find_product(objects: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """First object typed as a Product/Movie/VideoObject."""
    for obj in objects:
        if PRODUCT_TYPES.intersection(_types(obj)):
            return obj
    return None


def names_of(value: Any) -> List[str]:
    """
    Names from a Person, list of Persons or plain strings.

    >>> names_of([{"@type": "Person", "name": "Jane Doe"}, "John Roe"])
    ['Jane Doe', 'John Roe']
    """
    if value is None:
        return []
    if isinstance(value, (str, dict)):
        value = [value]
    names = []
    for item in value:
        if isinstance(item, dict):
            name = item.get("name")
        else:
            name = item
        if isinstance(name, str) and name.strip():
            names.append(name.strip())
    return names


def offer_price(product: Dict[str, Any]) -> Optional[str]:
    """Raw price string of the first offer."""
    offers = product.get("offers")
    if isinstance(offers, list):
        offers = offers[0] if offers else None
    if isinstance(offers, dict):
        price = offers.get("price") or offers.get("lowPrice")
        if price is not None:
            return str(price)
    return None


def image_urls(product: Dict[str, Any]) -> List[str]:
    image = product.get("image")
    if isinstance(image, str):
        return [image]
    if isinstance(image, dict):
        url = image.get("url") or image.get("contentUrl")
        return [url] if url else []
    if isinstance(image, list):
        urls = []
        for item in image:
            urls.extend(image_urls({"image": item}))
        return urls
    return []


def rating(product: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    aggregate = product.get("aggregateRating")
    return aggregate if isinstance(aggregate, dict) else None
