"""
Character encoding detection for pages served in legacy encodings.

Some auxiliary wiki sites still serve EUC-JP or Shift_JIS without an HTTP
charset. Detection order: forced per-domain encoding, declared <meta> charset,
UTF-8.
"""

import codecs
import logging
import re
from typing import Dict, Optional
from urllib.parse import urlparse

logger = logging.getLogger(__name__)


# Domains with a known fixed encoding
DOMAIN_ENCODINGS: Dict[str, str] = {
    "seesaawiki.jp": "euc-jp",
    "av-wiki.net": "utf-8",
}

META_CHARSET_PATTERN = re.compile(rb"<meta\s+charset=[\"']?([^\"'\s/>]+)", re.IGNORECASE)
CONTENT_TYPE_CHARSET_PATTERN = re.compile(rb"charset=([^\"'\s;/>]+)", re.IGNORECASE)

# Only the head of the document is scanned for a declaration
SNIFF_BYTES = 4096


def _is_known_encoding(name: str) -> bool:
    try:
        codecs.lookup(name)
    except LookupError:
        return False
    return True


def detect_encoding(body: bytes, url: str = "", forced: Optional[str] = None) -> str:
    """
    Pick the encoding for a raw page body.

    Args:
        body: Raw response bytes
        url: Page URL, used for per-domain rules
        forced: Encoding configured for the site, wins over everything

    Returns:
        A codec name known to Python
    """
    if forced:
        return forced

    host = urlparse(url).hostname or ""
    for domain, encoding in DOMAIN_ENCODINGS.items():
        if host == domain or host.endswith(f".{domain}"):
            return encoding

    head = body[:SNIFF_BYTES]
    for pattern in (META_CHARSET_PATTERN, CONTENT_TYPE_CHARSET_PATTERN):
        match = pattern.search(head)
        if match:
            declared = match.group(1).decode("ascii", errors="ignore").lower()
            if _is_known_encoding(declared):
                return declared
            logger.debug(f"Ignoring unknown declared charset '{declared}' on {url}")

    return "utf-8"


def decode_html(body: bytes, url: str = "", forced: Optional[str] = None) -> str:
    """Decode a page body with the detected encoding, replacing bad bytes."""
    encoding = detect_encoding(body, url, forced)
    return body.decode(encoding, errors="replace")
