"""
Pydantic models for query configuration and real-time counters.
"""
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator


class Granularity(str, Enum):
    """Bucket size of a time series."""

    DAILY = "daily"
    HOURLY = "hourly"

    @classmethod
    def coerce(cls, value: "Granularity | str | None") -> "Granularity":
        """Resolve a granularity, falling back to daily for unknown values."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return cls.DAILY


# =============================================================================
# Query Configuration
# =============================================================================

class QueryConfig(BaseModel):
    """Describes one analytics request.

    Only the template identifier and plugin flags matter here; filters,
    limits and anything else the caller sends are accepted and ignored.
    """
    model_config = ConfigDict(extra="allow")

    type: str | None = None
    name: str | None = None
    plugins: dict[str, Any] = {}

    @field_validator("type", "name", mode="before")
    @classmethod
    def coerce_template_id(cls, value: Any) -> str | None:
        return value if isinstance(value, str) else None

    @field_validator("plugins", mode="before")
    @classmethod
    def coerce_plugin_flags(cls, value: Any) -> dict[str, Any]:
        if not isinstance(value, dict):
            return {}
        return {k: v for k, v in value.items() if isinstance(k, str)}

    def plugin_enabled(self, flag: str) -> bool:
        """A plugin is on only when its flag is literally True."""
        return self.plugins.get(flag) is True

    @property
    def template_ids(self) -> tuple[str, ...]:
        return tuple(t for t in (self.type, self.name) if t)


# =============================================================================
# Real-time Counters
# =============================================================================

def _number_or_zero(value: Any) -> int | float:
    if isinstance(value, bool) or value is None:
        return 0
    if isinstance(value, (int, float)):
        return value
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    return int(number) if number.is_integer() else number


class TodayData(BaseModel):
    """Partial-period counters for the still-open bucket.

    Missing or unusable values read as 0.
    """
    model_config = ConfigDict(extra="ignore", frozen=True)

    pageviews: int | float = 0
    visitors: int | float = 0
    sessions: int | float = 0
    bounce_rate: int | float = 0
    avg_session_duration: int | float = 0

    @field_validator("*", mode="before")
    @classmethod
    def coerce_metric(cls, value: Any) -> int | float:
        return _number_or_zero(value)

    def metrics(self) -> dict[str, int | float]:
        """The five fields written into a merged bucket.

        Visitors are written under both of their aliases.
        """
        return {
            "pageviews": self.pageviews,
            "unique_visitors": self.visitors,
            "visitors": self.visitors,
            "sessions": self.sessions,
            "bounce_rate": self.bounce_rate,
        }


def coerce_today_data(today_data: "TodayData | dict[str, Any] | None") -> TodayData | None:
    """Accept a TodayData, a plain mapping, an object with counter attributes, or nothing."""
    if today_data is None:
        return None
    if isinstance(today_data, TodayData):
        return today_data
    if isinstance(today_data, dict):
        return TodayData.model_validate({k: v for k, v in today_data.items() if isinstance(k, str)})
    try:
        return TodayData.model_validate(today_data, from_attributes=True)
    except ValidationError:
        return None
