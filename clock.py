"""Timestamp helpers shared by the claims, documents and admin packages."""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dateutil import parser

DEFAULT_TIMEZONE = "America/New_York"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def isoformat_z(dt: Optional[datetime] = None) -> str:
    """ISO-8601 UTC string with a trailing ``Z`` (the format the JSON files use)."""
    value = ensure_aware(dt or utc_now())
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def ensure_aware(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_timestamp(value) -> Optional[datetime]:
    """Parse a stored timestamp (ISO string or datetime) into an aware UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_aware(value)
    try:
        return ensure_aware(parser.isoparse(str(value)))
    except (TypeError, ValueError, OverflowError):
        return None


def parse_date(value) -> Optional[date]:
    """Parse ``YYYY-MM-DD`` (or a full ISO timestamp) into a date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value:
        return None
    try:
        return parser.isoparse(str(value)).date()
    except (TypeError, ValueError, OverflowError):
        return None


def settlement_zone(name: Optional[str]) -> ZoneInfo:
    try:
        return ZoneInfo(name or DEFAULT_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo(DEFAULT_TIMEZONE)
