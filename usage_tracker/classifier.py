from __future__ import annotations

from collections.abc import Iterable
from urllib.parse import urlsplit

UNKNOWN_DOMAIN = "unknown"

# Browser-internal and local addresses are reported as their scheme prefix so
# they can be recognized and excluded without parsing.
INTERNAL_SCHEMES = (
    "chrome://",
    "chrome-extension://",
    "edge://",
    "brave://",
    "moz-extension://",
    "about:",
    "file://",
)


def classify(address: str) -> str:
    """Map a page address to its domain, an internal-scheme sentinel, or "unknown"."""
    if not isinstance(address, str):
        return UNKNOWN_DOMAIN

    for scheme in INTERNAL_SCHEMES:
        if address.startswith(scheme):
            return scheme

    try:
        parts = urlsplit(address.strip())
        hostname = parts.hostname
    except ValueError:
        return UNKNOWN_DOMAIN

    if not parts.scheme or not hostname:
        return UNKNOWN_DOMAIN

    if hostname.startswith("www."):
        hostname = hostname[len("www."):]
    return hostname or UNKNOWN_DOMAIN


def is_internal(domain: str) -> bool:
    return domain in INTERNAL_SCHEMES


def is_excluded(domain: str, excluded: Iterable[str] = ()) -> bool:
    if not domain or is_internal(domain):
        return True
    return any(entry and entry in domain for entry in excluded)
