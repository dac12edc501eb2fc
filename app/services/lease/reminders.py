"""
Sweetlease - Critical-Date Reminders
Builds a single all-day iCalendar event ahead of a lease critical date.

Offset arithmetic uses dateutil's relativedelta:
- weeks subtract exactly 7 or 14 days
- months subtract calendar months; when the day does not exist in the
  target month it is clamped to that month's last day
  (31 Jan 2027 - 1 month = 31 Dec 2026, 31 Mar 2026 - 1 month = 28 Feb 2026)
"""

import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Optional, Union

from dateutil.relativedelta import relativedelta
from icalendar import Calendar, Event

from app.core.utc import compact_stamp, utc_now
from app.services.lease.errors import InvalidReminderError
from app.services.lease.models import parse_lease_date

PRODID = "-//Sweetlease//AI Lease Extractor//EN"
UID_DOMAIN = "sweetlease.app"
MEDIA_TYPE = "text/calendar"


class ReminderOffset(str, Enum):
    """How long before the critical date the reminder fires."""
    ONE_WEEK = "1w"
    TWO_WEEKS = "2w"
    ONE_MONTH = "1m"
    THREE_MONTHS = "3m"
    SIX_MONTHS = "6m"

    @classmethod
    def parse(cls, value: Union[str, "ReminderOffset"]) -> "ReminderOffset":
        """Accept short tokens ("1m") and long forms ("1month", "2 weeks")."""
        if isinstance(value, ReminderOffset):
            return value
        token = re.sub(r"\s+", "", str(value or "").lower())
        token = _LONG_FORMS.get(token, token)
        try:
            return cls(token)
        except ValueError:
            allowed = ", ".join(o.value for o in cls)
            raise InvalidReminderError(f"Unknown reminder offset {value!r} (use one of {allowed})") from None

    @property
    def delta(self) -> relativedelta:
        return _DELTAS[self]

    @property
    def label(self) -> str:
        return _LABELS[self]


_LONG_FORMS = {
    "1week": "1w",
    "2weeks": "2w",
    "1month": "1m",
    "3months": "3m",
    "6months": "6m",
}

_DELTAS = {
    ReminderOffset.ONE_WEEK: relativedelta(weeks=1),
    ReminderOffset.TWO_WEEKS: relativedelta(weeks=2),
    ReminderOffset.ONE_MONTH: relativedelta(months=1),
    ReminderOffset.THREE_MONTHS: relativedelta(months=3),
    ReminderOffset.SIX_MONTHS: relativedelta(months=6),
}

_LABELS = {
    ReminderOffset.ONE_WEEK: "1 week before",
    ReminderOffset.TWO_WEEKS: "2 weeks before",
    ReminderOffset.ONE_MONTH: "1 month before",
    ReminderOffset.THREE_MONTHS: "3 months before",
    ReminderOffset.SIX_MONTHS: "6 months before",
}


@dataclass(frozen=True)
class ReminderInvite:
    """Calendar invite ready to hand to a download."""
    filename: str
    content: str
    start: date
    end: date
    uid: str
    media_type: str = MEDIA_TYPE


def reminder_start(critical_date: date, offset: Union[str, ReminderOffset]) -> date:
    """Date the reminder falls on: critical_date minus the offset."""
    return critical_date - ReminderOffset.parse(offset).delta


def reminder_filename(description: str) -> str:
    """reminder_<slug>.ics, slug lower-cased with whitespace runs as underscores."""
    slug = re.sub(r"\s+", "_", description.strip().lower())
    slug = re.sub(r"[^a-z0-9_-]", "", slug) or "critical_date"
    return f"reminder_{slug}.ics"


def build_reminder(
    date_text: str,
    description: str,
    offset: Union[str, ReminderOffset],
    now: Optional[datetime] = None,
) -> ReminderInvite:
    """
    Build an all-day reminder invite for a critical date.

    Args:
        date_text: Critical date, "DD Month YYYY" (ISO also accepted)
        description: What the date is for; becomes "Reminder: <description>"
        offset: How far ahead to remind (1w, 2w, 1m, 3m, 6m)
        now: Generation instant; defaults to the current UTC time

    Raises:
        InvalidReminderError: unparseable date or unknown offset
    """
    offset = ReminderOffset.parse(offset)
    try:
        critical = parse_lease_date(date_text)
    except ValueError as e:
        raise InvalidReminderError(str(e)) from e

    generated_at = now or utc_now()
    start = critical - offset.delta
    end = start + timedelta(days=1)
    uid = f"{compact_stamp(generated_at)}@{UID_DOMAIN}"

    event = Event()
    event.add("uid", uid)
    event.add("dtstamp", generated_at)
    event.add("dtstart", start)
    event.add("dtend", end)
    event.add("summary", f"Reminder: {description}")
    event.add(
        "description",
        f"This is a reminder for the upcoming critical date: '{description}' "
        f"scheduled for {date_text}. Please ensure necessary actions are taken.",
    )

    calendar = Calendar()
    calendar.add("prodid", PRODID)
    calendar.add("version", "2.0")
    calendar.add_component(event)

    return ReminderInvite(
        filename=reminder_filename(description),
        content=calendar.to_ical().decode("utf-8"),
        start=start,
        end=end,
        uid=uid,
    )
