"""
Result plugins: optional row transforms applied to a whole result set.

Two plugins exist, always run in this order as full passes over the rows:

1. Referrer parsing - classifies each row's referrer into a display name
   and domain, keeping the raw value under ``referrer``.
2. URL normalization - adds ``path_clean``, the bare pathname of ``path``.

Plugins never mutate their input and are safe to re-apply: a second run
over already-processed rows changes nothing.
"""

import logging
import re
from collections.abc import Callable, Iterable
from typing import Any
from urllib.parse import urljoin, urlsplit

from .core.models import QueryConfig
from .referrer import classify_referrer
from .registry import ReferrerRegistry

logger = logging.getLogger(__name__)

Row = dict[str, Any]

# Query templates whose rows are referrer-shaped, so referrer parsing runs
# without an explicit flag.
REFERRER_TEMPLATES = frozenset({
    "top_referrers",
    "referrer",
    "referrers",
    "traffic_sources",
    "referrer_types",
})

PARSE_REFERRERS = "parseReferrers"
NORMALIZE_URLS = "normalizeUrls"

# Only used to give relative paths a base for URL parsing
PLACEHOLDER_ORIGIN = "http://placeholder.invalid"

_ABSOLUTE_URL_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.\-]*://")


def coerce_query_config(config: QueryConfig | dict[str, Any] | None) -> QueryConfig:
    if isinstance(config, QueryConfig):
        return config
    if isinstance(config, dict):
        return QueryConfig.model_validate({k: v for k, v in config.items() if isinstance(k, str)})
    return QueryConfig()


def referrer_parsing_enabled(
    config: QueryConfig,
    templates: Iterable[str] = REFERRER_TEMPLATES,
) -> bool:
    """Explicit flag, or a referrer-shaped template."""
    if config.plugin_enabled(PARSE_REFERRERS):
        return True
    templates = frozenset(templates)
    return any(t in templates for t in config.template_ids)


def url_normalization_enabled(config: QueryConfig) -> bool:
    return config.plugin_enabled(NORMALIZE_URLS)


# =============================================================================
# PLUGINS
# =============================================================================

def _already_parsed(
    row: Row,
    site_domain: str | None,
    registry: ReferrerRegistry | None,
) -> bool:
    """
    True when the row's ``name`` and ``domain`` are exactly what classifying
    its ``referrer`` gives, i.e. this plugin produced them.
    """
    raw = row.get("referrer")
    if not raw or "domain" not in row:
        return False
    info = classify_referrer(raw, site_domain, registry)
    return row.get("name") == info.name and row["domain"] == info.domain


def parse_referrer_row(
    row: Row,
    site_domain: str | None = None,
    registry: ReferrerRegistry | None = None,
) -> Row:
    if _already_parsed(row, site_domain, registry):
        return dict(row)

    raw = row.get("name") or row.get("referrer")
    if not raw:
        return dict(row)

    info = classify_referrer(raw, site_domain, registry)
    return {
        **row,
        "name": info.name,
        "referrer": raw,
        "domain": info.domain,
    }


def clean_path(path: Any) -> Any:
    """
    Pathname of a page path or URL.

    Absolute URLs are parsed as they are; anything else is resolved against
    a placeholder origin. Unparseable input is returned unchanged.
    """
    if not isinstance(path, str):
        return path
    try:
        url = path if _ABSOLUTE_URL_RE.match(path) else urljoin(PLACEHOLDER_ORIGIN + "/", path)
        return urlsplit(url).path or "/"
    except ValueError as exc:
        logger.debug(f"Could not normalize path {path!r}: {exc}")
        return path


def normalize_url_row(row: Row) -> Row:
    if "path" not in row:
        return dict(row)
    return {**row, "path_clean": clean_path(row["path"])}


# =============================================================================
# PIPELINE
# =============================================================================

def apply_plugins(
    rows: list[Row],
    config: QueryConfig | dict[str, Any] | None,
    site_domain: str | None = None,
    registry: ReferrerRegistry | None = None,
    templates: Iterable[str] = REFERRER_TEMPLATES,
) -> list[Row]:
    """
    Apply the enabled plugins to a result set.

    Args:
        rows: Raw rows from the event store
        config: The request's query configuration (model or plain dict)
        site_domain: The analysed site's domain, for self-referral detection
        registry: Referrer registry (defaults to the built-in one)
        templates: Template identifiers that switch referrer parsing on

    Returns:
        New row dicts; the input list and its rows are left untouched.
        Non-dict rows pass through as they are.
    """
    config = coerce_query_config(config)

    passes: list[Callable[[Row], Row]] = []
    if referrer_parsing_enabled(config, templates):
        passes.append(lambda row: parse_referrer_row(row, site_domain, registry))
    if url_normalization_enabled(config):
        passes.append(normalize_url_row)

    result = [dict(row) if isinstance(row, dict) else row for row in rows]
    for plugin in passes:
        result = [plugin(row) if isinstance(row, dict) else row for row in result]

    logger.debug(f"Applied {len(passes)} plugin(s) to {len(result)} row(s)")
    return result
