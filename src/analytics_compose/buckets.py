"""
Time bucket keys for merging real-time counters into historical series.

Timezone policy: every "is this the current bucket" decision is made in
UTC. Naive timestamps found in rows are read as UTC; aware ones are
converted to UTC first.

Hourly buckets are keyed with format_hour_key() everywhere, so keys built
for the current hour compare byte-for-byte with keys on historical rows.
"""

from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any

from .core.models import Granularity

# Start-of-hour rendering used by the event store for hourly rows
HOUR_KEY_FORMAT = "%Y-%m-%d %H:00:00"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_utc(dt: datetime) -> datetime:
    """Convert to UTC, treating naive datetimes as already UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_hour_key(dt: datetime) -> str:
    """The one formatter for hourly bucket keys."""
    return to_utc(dt).strftime(HOUR_KEY_FORMAT)


def format_day_key(dt: datetime) -> str:
    return to_utc(dt).date().isoformat()


def current_bucket_key(granularity: Granularity | str, now: datetime | None = None) -> str:
    """Key of the still-open bucket: today's date, or the current hour."""
    now = now or utc_now()
    if Granularity.coerce(granularity) is Granularity.HOURLY:
        return format_hour_key(now)
    return format_day_key(now)


def bucket_key_str(value: Any, granularity: Granularity | str) -> str | None:
    """
    Render a row's bucket value the way current_bucket_key() renders keys.

    Daily values are parsed, so "2024-01-01", "2024-01-01 00:00:00" and
    "2024-01-01T00:00:00Z" all render as "2024-01-01". Hourly strings are
    kept as they are.
    """
    if value is None:
        return None
    if Granularity.coerce(granularity) is Granularity.HOURLY:
        if isinstance(value, datetime):
            return format_hour_key(value)
        return str(value)
    parsed = parse_bucket_datetime(value)
    if parsed is None:
        return str(value)
    return format_day_key(parsed)


def parse_bucket_datetime(value: Any) -> datetime | None:
    """Parse a bucket value into an aware UTC datetime, or None."""
    if isinstance(value, datetime):
        return to_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if not isinstance(value, str) or not value.strip():
        return None

    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return to_utc(datetime.fromisoformat(text))
    except ValueError:
        return None


def is_same_utc_day(value: Any, now: datetime | None = None) -> bool:
    """Whether a bucket value falls on the current UTC calendar day."""
    parsed = parse_bucket_datetime(value)
    if parsed is None:
        return False
    return parsed.date() == to_utc(now or utc_now()).date()


# =============================================================================
# BUCKET KEY FIELD RESOLUTION
# =============================================================================

class KeyShape(str, Enum):
    """Where a row keeps its bucket key."""

    FLAT = "date"                   # {"date": ...}
    DOTTED = "date_range.date"      # {"date_range.date": ...}
    NESTED = "date_range"           # {"date_range": {"date": ...}}


@dataclass(frozen=True)
class BucketKeyField:
    """
    Resolved bucket key field for one batch of rows.

    The shape is decided once, from the first row, and applied to the
    whole batch. Reads fall back to the flat ``date`` field on rows that
    don't carry the resolved field.
    """
    shape: KeyShape = KeyShape.FLAT

    @classmethod
    def detect(cls, rows: list[dict[str, Any]]) -> "BucketKeyField":
        if not rows or not isinstance(rows[0], dict):
            return cls()
        first = rows[0]
        if KeyShape.DOTTED.value in first:
            return cls(KeyShape.DOTTED)
        nested = first.get(KeyShape.NESTED.value)
        if isinstance(nested, dict) and "date" in nested:
            return cls(KeyShape.NESTED)
        return cls()

    def _read_resolved(self, row: dict[str, Any]) -> Any:
        if self.shape is KeyShape.NESTED:
            nested = row.get(KeyShape.NESTED.value)
            return nested.get("date") if isinstance(nested, dict) else None
        return row.get(self.shape.value)

    def read(self, row: dict[str, Any]) -> Any:
        value = self._read_resolved(row)
        if value is None:
            value = row.get(KeyShape.FLAT.value)
        return value

    def row_with_key(self, key: str) -> dict[str, Any]:
        """A fresh row carrying only the bucket key, in this batch's shape."""
        if self.shape is KeyShape.NESTED:
            return {KeyShape.NESTED.value: {"date": key}}
        return {self.shape.value: key}


def sort_buckets(rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """
    Return rows in chronological order of their bucket key.

    The merge functions never reorder; orchestration code that needs a
    sorted series after a today bucket was appended calls this explicitly.
    Rows without a parseable key keep their relative order at the end.
    """
    field = BucketKeyField.detect(rows)
    end = datetime.max.replace(tzinfo=timezone.utc)

    def sort_key(row: dict[str, Any]) -> datetime:
        parsed = parse_bucket_datetime(field.read(row)) if isinstance(row, dict) else None
        return parsed or end

    return sorted(rows, key=sort_key)
