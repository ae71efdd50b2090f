"""
Analytics result composition for dashboards.

Turns raw event-store rows plus the real-time "today" counter into the
rows a dashboard renders: referrer classification, optional row plugins,
and today/historical merging. Every function here is pure; fetching the
data is the caller's job.

Usage:
    from analytics_compose import setup_composer

    composer = setup_composer(site_domain="shop.example.com")

    rows = composer.apply_plugins(raw_rows, {"type": "top_referrers"})
    series = composer.merge_events(events_by_date, today_data, "daily")
    summary = composer.merge_summary(summary_row, today_data)
"""

from datetime import datetime
from pathlib import Path
from typing import Any

from .buckets import sort_buckets
from .config import ComposerConfig
from .core.models import Granularity, QueryConfig, TodayData
from .plugins import apply_plugins
from .referrer import ParsedReferrer, classify_referrer
from .registry import ReferrerRegistry, get_default_registry, load_registry
from .today import merge_today_data_into_summary, merge_today_into_trends, update_events_with_today_data

__version__ = "0.1.0"
__all__ = [
    "setup_composer", "ResultComposer", "ComposerConfig",
    "ParsedReferrer", "QueryConfig", "TodayData", "Granularity", "ReferrerRegistry",
    "classify_referrer", "apply_plugins",
    "merge_today_data_into_summary", "update_events_with_today_data", "merge_today_into_trends",
    "sort_buckets",
]


class ResultComposer:
    """Result composition bound to one site and one referrer registry."""

    def __init__(self, config: ComposerConfig, registry: ReferrerRegistry | None = None):
        self.config = config
        if registry is None:
            if config.registry_path:
                registry = load_registry(config.registry_path, include_builtin=config.registry_include_builtin)
            else:
                registry = get_default_registry()
        self.registry = registry

    @property
    def site_domain(self) -> str | None:
        return self.config.site_domain

    def classify(self, referrer: str | None) -> ParsedReferrer:
        return classify_referrer(referrer, self.site_domain, self.registry)

    def apply_plugins(self, rows: list[dict[str, Any]], config: QueryConfig | dict[str, Any] | None) -> list[dict[str, Any]]:
        return apply_plugins(
            rows,
            config,
            site_domain=self.site_domain,
            registry=self.registry,
            templates=self.config.referrer_templates,
        )

    def merge_summary(self, summary: dict[str, Any] | None, today_data: TodayData | dict[str, Any] | None):
        return merge_today_data_into_summary(summary, today_data)

    def merge_events(
        self,
        events: list[dict[str, Any]],
        today_data: TodayData | dict[str, Any] | None,
        granularity: Granularity | str | None = None,
        now: datetime | None = None,
    ) -> list[dict[str, Any]]:
        return update_events_with_today_data(
            events, today_data, granularity or self.config.default_granularity, now
        )

    def merge_trends(
        self,
        trends: list[dict[str, Any]],
        today_data: TodayData | dict[str, Any] | None,
        granularity: Granularity | str | None = None,
        date_field: str = "date",
        now: datetime | None = None,
    ) -> list[dict[str, Any]]:
        return merge_today_into_trends(
            trends, today_data, granularity or self.config.default_granularity, date_field, now
        )

    def compose_events(
        self,
        rows: list[dict[str, Any]],
        config: QueryConfig | dict[str, Any] | None,
        today_data: TodayData | dict[str, Any] | None,
        granularity: Granularity | str | None = None,
        now: datetime | None = None,
    ) -> list[dict[str, Any]]:
        """Run the plugins over historical rows, then fold in today's bucket."""
        return self.merge_events(self.apply_plugins(rows, config), today_data, granularity, now)


def setup_composer(
    site_domain: str | None = None,
    registry_path: str | Path | None = None,
    extra_referrer_templates: set[str] | frozenset[str] = frozenset(),
    default_granularity: Granularity | str = Granularity.DAILY,
) -> ResultComposer:
    """
    Set up result composition for a site.

    Args:
        site_domain: The analysed site's domain (e.g., "shop.example.com")
        registry_path: Optional JSON referrer registry merged over the
                       built-in one
        extra_referrer_templates: Additional template identifiers whose
                                  rows get referrer parsing automatically
        default_granularity: Granularity used when a merge call omits one

    Returns:
        ResultComposer instance
    """
    return ResultComposer(
        ComposerConfig(
            site_domain=site_domain,
            registry_path=registry_path,
            extra_referrer_templates=frozenset(extra_referrer_templates),
            default_granularity=default_granularity,
        )
    )
