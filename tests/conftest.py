"""Shared fixtures for calendar viewer tests."""
from datetime import datetime, timezone

import pytest

from processor.models import Event


def build_calendar(*vevents: str) -> str:
    """Wrap VEVENT bodies in a minimal VCALENDAR document."""
    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        "PRODID:-//Test//Calendar Viewer//EN",
    ]
    for body in vevents:
        lines.append("BEGIN:VEVENT")
        lines.extend(line.strip() for line in body.strip().splitlines())
        lines.append("END:VEVENT")
    lines.append("END:VCALENDAR")
    return "\r\n".join(lines) + "\r\n"


def make_event(event_id: str, start, end=None, title: str = None, **kwargs) -> Event:
    """Create an Event with UTC timestamps from (year, month, day[, hour]) tuples."""
    start_dt = datetime(*start, tzinfo=timezone.utc) if isinstance(start, tuple) else start
    if end is None:
        end_dt = start_dt
    else:
        end_dt = datetime(*end, tzinfo=timezone.utc) if isinstance(end, tuple) else end
    return Event(
        id=event_id,
        title=title or f"Event {event_id}",
        start=start_dt,
        end=end_dt,
        **kwargs
    )


@pytest.fixture
def calendar_text():
    """Builder for VCALENDAR documents."""
    return build_calendar


@pytest.fixture
def sample_ics(calendar_text):
    """Calendar with a timed, an all-day and a recurring event."""
    return calendar_text(
        """
        UID:standup@example.com
        SUMMARY:Team Standup
        DTSTART:20240115T093000Z
        DTEND:20240115T094500Z
        LOCATION:Room 4
        DESCRIPTION:Daily sync
        RRULE:FREQ=WEEKLY;BYDAY=MO
        """,
        """
        UID:holiday@example.com
        SUMMARY:Company Holiday
        DTSTART;VALUE=DATE:20240119
        DTEND;VALUE=DATE:20240120
        """,
        """
        UID:review@example.com
        SUMMARY:Quarterly Review
        DTSTART:20240305T140000Z
        DTEND:20240305T160000Z
        """,
    )
