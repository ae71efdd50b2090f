"""
Referrer classification for traffic source analysis.

Maps a raw referrer URL and the analysed site's domain to a canonical
``{type, name, domain, url}`` record:

- Direct: No referrer, an unparseable referrer, or same-site navigation
- Registered: Any ancestor domain of the referrer found in the registry
  (search engines, social platforms, email providers, ad networks)
- Search: Unregistered hosts whose URL carries a search query parameter
- Unknown: Everything else, named after its hostname

Classification never raises. A referrer that can't be parsed degrades to
direct traffic, so the worst outcome is a misclassified row, never a
failed dashboard.
"""

import logging
import re
from collections import Counter
from dataclasses import asdict, dataclass
from enum import Enum
from urllib.parse import parse_qs, urlsplit

from .registry import ReferrerRegistry, get_default_registry

logger = logging.getLogger(__name__)


class ReferrerType(str, Enum):
    """Referrer types produced by the classifier itself.

    Registry hits carry whatever type the registry declares.
    """

    DIRECT = "direct"      # No referrer, malformed referrer, or self-referral
    SEARCH = "search"      # Unregistered host with a search query
    SOCIAL = "social"
    EMAIL = "email"
    ADS = "ads"
    UNKNOWN = "unknown"    # Unregistered host, no search query


@dataclass(frozen=True)
class ParsedReferrer:
    """
    Classified referrer information.

    Attributes:
        type: Traffic source type ("direct", "search", "social", ...)
        name: Human-readable source name (e.g., "Bing", "Direct")
        domain: The referrer's full hostname, empty for direct traffic
        url: The referrer URL as received
    """
    type: str
    name: str
    domain: str = ""
    url: str = ""

    def to_dict(self) -> dict[str, str]:
        return asdict(self)


DIRECT_NAME = "Direct"

# Query parameters that mark an unregistered referrer as a search engine
SEARCH_QUERY_PARAMS = frozenset({"q", "query", "search"})

_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.\-]*:")
_INVALID_HOST_CHARS = frozenset(" \t\r\n<>\"{}|\\^`")


def _direct(url: str = "") -> ParsedReferrer:
    return ParsedReferrer(type=ReferrerType.DIRECT.value, name=DIRECT_NAME, domain="", url=url)


def _normalize_site_domain(site_domain: str | None) -> str:
    if not site_domain:
        return ""
    return site_domain.strip().lower().rstrip(".")


def _parse_referrer(referrer: str) -> tuple[str, str] | None:
    """
    Split an absolute referrer URL into (hostname, query).

    Returns None for anything that isn't an absolute URL with a host.
    Internationalized hostnames are returned in their ASCII (punycode) form,
    encoded with IDNA 2003 rules (so "ß" becomes "ss").
    """
    candidate = referrer.strip()
    if not _SCHEME_RE.match(candidate):
        return None

    parts = urlsplit(candidate)
    hostname = parts.hostname
    if not hostname or any(c in _INVALID_HOST_CHARS for c in hostname):
        return None

    if not hostname.isascii():
        hostname = hostname.encode("idna").decode("ascii")

    return hostname.rstrip("."), parts.query


def is_self_referral(hostname: str, site_domain: str | None) -> bool:
    """Whether hostname belongs to the site being analysed."""
    site = _normalize_site_domain(site_domain)
    if not site:
        return False
    return hostname == site or hostname.endswith("." + site)


def classify_referrer(
    referrer: str | None,
    site_domain: str | None = None,
    registry: ReferrerRegistry | None = None,
) -> ParsedReferrer:
    """
    Classify a referrer URL into a traffic source.

    Registry lookups walk the hostname's ancestors from the most specific
    one towards the two-label apex, skipping the exact hostname; the first
    registered ancestor wins.

    Args:
        referrer: The raw referrer value (can be empty or None)
        site_domain: The analysed site's domain, used to detect self-referrals
        registry: Domain knowledge base (defaults to the built-in registry)

    Returns:
        ParsedReferrer with type, name, domain and url

    Examples:
        >>> classify_referrer("https://www.bing.com/?q=shoes")
        ParsedReferrer(type='search', name='Bing', domain='www.bing.com', url='https://www.bing.com/?q=shoes')

        >>> classify_referrer("not a url")
        ParsedReferrer(type='direct', name='Direct', domain='', url='not a url')
    """
    if not referrer:
        return _direct()

    if not isinstance(referrer, str):
        referrer = str(referrer)

    try:
        parsed = _parse_referrer(referrer)
    except Exception as exc:
        logger.debug(f"Could not parse referrer {referrer!r}: {exc}")
        parsed = None

    # Malformed referrers keep their raw value in url
    if parsed is None:
        return _direct(referrer)

    hostname, query = parsed

    if is_self_referral(hostname, site_domain):
        return _direct()

    if registry is None:
        registry = get_default_registry()

    labels = hostname.split(".")
    for i in range(1, len(labels) - 1):
        record = registry.lookup(".".join(labels[i:]))
        if record is not None:
            return ParsedReferrer(type=record.type, name=record.name, domain=hostname, url=referrer)

    if SEARCH_QUERY_PARAMS & parse_qs(query, keep_blank_values=True).keys():
        return ParsedReferrer(type=ReferrerType.SEARCH.value, name=hostname, domain=hostname, url=referrer)

    return ParsedReferrer(type=ReferrerType.UNKNOWN.value, name=hostname, domain=hostname, url=referrer)


def get_referrer_type_summary(referrers: list[ParsedReferrer]) -> dict[str, int]:
    """
    Get traffic breakdown by referrer type.

    Args:
        referrers: List of ParsedReferrer from classify_referrer()

    Returns:
        Dict mapping referrer type to count. The classifier's own types are
        always present; registry-defined types appear when seen.
    """
    counts: dict[str, int] = {t.value: 0 for t in ReferrerType}
    for info in referrers:
        counts[info.type] = counts.get(info.type, 0) + 1
    return counts


def get_top_referrers(
    referrers: list[ParsedReferrer],
    limit: int = 10,
    exclude_direct: bool = True,
) -> list[tuple[str, int]]:
    """
    Get the most common referrer sources by display name.

    Returns:
        List of (name, count) tuples, sorted by count
    """
    counts = Counter(
        info.name
        for info in referrers
        if not (exclude_direct and info.type == ReferrerType.DIRECT)
    )
    return counts.most_common(limit)
