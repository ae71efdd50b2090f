"""
Merge today's real-time counters into historical aggregates.

Ingestion into the durable store lags real time, so the still-open bucket
is served from a separate low-latency counter. Folding it in always
replaces the bucket's metrics, it never adds to them: the two sources
overlap and summing would double-count.

- Summary objects get a display-only ``today`` block; totals are untouched.
- Date-bucketed arrays get the current bucket replaced wholesale (or
  appended when missing).
- Flat trend rows get their five metrics overwritten in place, keeping
  every other field.

All functions return new objects and pass their input straight through
when there is no today data. None of them re-sort.
"""

import logging
from datetime import datetime
from typing import Any

from .buckets import (
    BucketKeyField,
    bucket_key_str,
    current_bucket_key,
    format_hour_key,
    is_same_utc_day,
    utc_now,
)
from .core.models import Granularity, TodayData, coerce_today_data

logger = logging.getLogger(__name__)

Row = dict[str, Any]
TodayInput = TodayData | dict[str, Any] | None


def merge_today_data_into_summary(summary: dict[str, Any] | None, today_data: TodayInput) -> dict[str, Any] | None:
    """
    Attach today's counters to a summary for display.

    The historical summary already includes the committed part of today,
    so its own totals are left as they are.
    """
    today = coerce_today_data(today_data)
    if today is None:
        return summary

    return {
        **(summary or {}),
        "today": {
            "pageviews": today.pageviews,
            "visitors": today.visitors,
            "sessions": today.sessions,
            "bounce_rate": today.bounce_rate,
        },
    }


def update_events_with_today_data(
    events: list[Row],
    today_data: TodayInput,
    granularity: Granularity | str = Granularity.DAILY,
    now: datetime | None = None,
) -> list[Row]:
    """
    Replace (or append) the current bucket of a date-indexed series.

    Args:
        events: Rows keyed by ``date``, ``date_range.date`` or a nested
                ``date_range: {date}``; the first row decides which
        today_data: Real-time counters for the open bucket
        granularity: "daily" or "hourly"
        now: Pin the current time (defaults to now, UTC)

    Returns:
        A new list. The matching bucket is swapped for a synthetic row
        built from today_data; if none matches, the synthetic row is
        appended at the end.
    """
    today = coerce_today_data(today_data)
    if today is None:
        return events

    key = current_bucket_key(granularity, now)
    field = BucketKeyField.detect(events)
    today_row = {**field.row_with_key(key), **today.metrics()}

    updated = list(events)
    for index, row in enumerate(updated):
        if isinstance(row, dict) and bucket_key_str(field.read(row), granularity) == key:
            updated[index] = today_row
            return updated

    logger.debug(f"No bucket for {key!r} among {len(events)} row(s); appending today's bucket")
    updated.append(today_row)
    return updated


def _matches_current_bucket(value: Any, granularity: Granularity, now: datetime) -> bool:
    if value is None:
        return False
    if granularity is Granularity.HOURLY:
        return str(value) == format_hour_key(now)
    return is_same_utc_day(value, now)


def merge_today_into_trends(
    trends: list[Row],
    today_data: TodayInput,
    granularity: Granularity | str = Granularity.DAILY,
    date_field: str = "date",
    now: datetime | None = None,
) -> list[Row]:
    """
    Overwrite today's metrics on flat trend rows.

    A row matches when its date falls on the current UTC day (daily), or
    when its stringified date equals the current hour key (hourly).
    Matching rows keep all their other fields. Should several rows match,
    each is overwritten the same way.
    """
    today = coerce_today_data(today_data)
    if today is None:
        return trends

    granularity = Granularity.coerce(granularity)
    now = now or utc_now()
    metrics = today.metrics()

    merged = []
    for row in trends:
        if isinstance(row, dict) and _matches_current_bucket(row.get(date_field), granularity, now):
            merged.append({**row, **metrics})
        else:
            merged.append(row)
    return merged
