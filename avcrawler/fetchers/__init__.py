"""
Polite content fetching.

- PoliteFetcher: httpx client with site etiquette, rate limiting and retry
- Proxy dispatchers: fixed, rotating pool or direct
- Age gate detection and legacy-encoding detection helpers
"""

from .age_gate import (
    AgeGateDetectionResult,
    detect_age_gate,
    AGE_GATE_PATTERNS,
)
from .encoding import decode_html, detect_encoding
from .polite import FetchResponse, NetworkError, PoliteFetcher, RateLimiter
from .proxy import get_proxy_dispatcher

__all__ = [
    "AgeGateDetectionResult",
    "detect_age_gate",
    "AGE_GATE_PATTERNS",
    "decode_html",
    "detect_encoding",
    "FetchResponse",
    "NetworkError",
    "PoliteFetcher",
    "RateLimiter",
    "get_proxy_dispatcher",
]
