"""
UTC DateTime Utilities for Sweetlease.

All timestamps are handled in UTC with timezone awareness.
"""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """
    Get current UTC time as timezone-aware datetime.

    This is the standard clock for stored records and reminder stamps.

    Example:
        from app.core.utc import utc_now

        created_at = utc_now()  # 2026-10-18 03:00:00+00:00
    """
    return datetime.now(timezone.utc)


def to_utc(dt: datetime) -> datetime:
    """
    Convert a datetime to UTC timezone-aware datetime.

    - If naive: assumes UTC and adds timezone
    - If aware: converts to UTC
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def compact_stamp(dt: datetime) -> str:
    """
    Format a datetime as a compact UTC stamp: "20261018T030000123456Z".

    Used to derive stable, unique identifiers from a generation instant.
    """
    return to_utc(dt).strftime("%Y%m%dT%H%M%S%fZ")
