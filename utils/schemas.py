"""
Pydantic Schemas - Data Validation Models

Defines the pydantic models shared by the collector:
- Checkpoint persisted between runs
- Fetch window derived for each polling cycle

Usage:
    from utils.schemas import Checkpoint

    checkpoint = Checkpoint(**raw_data)
    window = checkpoint.window_until(now)
"""

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from utils.links import format_rfc3339


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Checkpoint(BaseModel):
    """Last successfully processed point in time.

    Serialized as:
    {
        "last_poll_timestamp": "2025-01-15T03:15:02Z"
    }

    A null timestamp means no cycle has completed yet.
    """

    last_poll_timestamp: Optional[datetime] = Field(
        default=None, description="Upper bound of the last flushed fetch window"
    )

    @field_validator("last_poll_timestamp")
    @classmethod
    def normalize_timestamp(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(v)

    def to_json_dict(self) -> dict[str, Any]:
        ts = self.last_poll_timestamp
        return {"last_poll_timestamp": format_rfc3339(ts) if ts else None}

    def window_until(self, until: datetime, default_since: Optional[datetime] = None) -> "FetchWindow":
        """Build the fetch window running from this checkpoint to `until`."""
        return FetchWindow(since=self.last_poll_timestamp or default_since, until=until)


class FetchWindow(BaseModel):
    """Time range covered by one polling cycle."""

    since: Optional[datetime] = Field(default=None, description="Lower bound, API default when unset")
    until: datetime = Field(..., description="Upper bound, captured once at cycle start")

    @field_validator("since", "until")
    @classmethod
    def normalize_bounds(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(v)
