"""Event normalizer turning iCalendar text into Event records."""
import logging
import uuid
from datetime import date, datetime, time, timedelta, tzinfo
from typing import List, Optional, Set
from zoneinfo import ZoneInfo

from icalendar import Calendar

from processor.errors import CalendarParseError
from processor.models import UNTITLED_EVENT, Event

logger = logging.getLogger(__name__)


class EventNormalizer:
    """Normalizer for events parsed out of an iCalendar document."""

    def __init__(self, display_tz: Optional[tzinfo] = None):
        """
        Initialize the normalizer.

        Args:
            display_tz: Zone every timestamp is converted into (default: UTC)
        """
        self.display_tz = display_tz or ZoneInfo('UTC')

    def normalize(self, raw_text: str) -> List[Event]:
        """
        Parse raw iCalendar text and normalize every VEVENT it contains.

        Args:
            raw_text: Raw file content

        Returns:
            List of Event objects in document order

        Raises:
            CalendarParseError: If the text is not a valid VCALENDAR document
        """
        calendar = self._parse_calendar(raw_text)

        events = []
        seen_ids: Set[str] = set()
        vevents = calendar.walk('VEVENT')

        for component in vevents:
            event = self._normalize_single_event(component, seen_ids)
            seen_ids.add(event.id)
            events.append(event)

        logger.info(f"Normalized {len(events)} events")
        return events

    def _parse_calendar(self, raw_text: str) -> Calendar:
        """
        Run the iCalendar parser over the raw text.

        Args:
            raw_text: Raw file content

        Returns:
            Parsed VCALENDAR component
        """
        if not raw_text or not raw_text.strip():
            raise CalendarParseError("Calendar file is empty")

        try:
            calendar = Calendar.from_ical(raw_text)
        except Exception as e:
            logger.error(f"Calendar parsing failed: {e}")
            raise CalendarParseError(f"Failed to parse calendar file: {e}") from e

        if getattr(calendar, 'name', None) != 'VCALENDAR':
            raise CalendarParseError(
                f"Expected a VCALENDAR document, found "
                f"{getattr(calendar, 'name', None) or 'nothing'}"
            )

        return calendar

    def _normalize_single_event(self, component, seen_ids: Set[str]) -> Event:
        """
        Normalize a single VEVENT component.

        Missing or malformed fields fall back to defaults; the event is
        always returned.

        Args:
            component: icalendar VEVENT component
            seen_ids: Identifiers already assigned in this document

        Returns:
            Event object
        """
        event_id = self._resolve_event_id(component, seen_ids)
        title = self._text_property(component, 'SUMMARY') or UNTITLED_EVENT

        raw_start = self._date_value(component, 'DTSTART')
        if raw_start is None:
            logger.warning(f"Event '{title}' has no usable DTSTART")

        # isinstance(datetime, date) is True, so check the narrower type
        is_all_day = isinstance(raw_start, date) and not isinstance(raw_start, datetime)

        start = self._to_timestamp(raw_start)
        end = self._resolve_end(component, raw_start, is_all_day, title)

        return Event(
            id=event_id,
            title=title,
            start=start,
            end=end,
            location=self._text_property(component, 'LOCATION'),
            description=self._text_property(component, 'DESCRIPTION'),
            is_all_day=is_all_day,
            recurrence_rule=self._recurrence_rule(component)
        )

    def _resolve_event_id(self, component, seen_ids: Set[str]) -> str:
        """
        Pick the event identifier, generating one when UID is absent.

        Args:
            component: icalendar VEVENT component
            seen_ids: Identifiers already assigned in this document

        Returns:
            Identifier unique within the document
        """
        uid = self._text_property(component, 'UID')
        if not uid:
            return self.generate_event_id()

        if uid not in seen_ids:
            return uid

        suffix = 2
        while f"{uid}#{suffix}" in seen_ids:
            suffix += 1

        logger.warning(
            f"Duplicate UID '{uid}' in calendar, keeping event as '{uid}#{suffix}'"
        )
        return f"{uid}#{suffix}"

    def _resolve_end(self, component, raw_start, is_all_day: bool, title: str) -> Optional[datetime]:
        """
        Determine the end timestamp from DTEND, DURATION or the start.

        Args:
            component: icalendar VEVENT component
            raw_start: DTSTART value as parsed, before conversion
            is_all_day: Whether the event is a date-only event
            title: Event title, for logging

        Returns:
            End timestamp or None if it cannot be determined
        """
        raw_end = self._date_value(component, 'DTEND')
        if raw_end is not None:
            return self._to_timestamp(raw_end)

        if raw_start is None:
            return None

        try:
            duration = self._duration_value(component)
            if duration is not None:
                return self._to_timestamp(raw_start + duration)

            if is_all_day:
                return self._to_timestamp(raw_start + timedelta(days=1))
        except OverflowError:
            logger.warning(f"Event '{title}' end is out of range")
            return None

        logger.debug(f"Event '{title}' has no DTEND or DURATION, ending at start")
        return self._to_timestamp(raw_start)

    def _to_timestamp(self, value) -> Optional[datetime]:
        """
        Convert a parsed date or datetime to a display-zone datetime.

        Args:
            value: date, datetime (aware or floating) or None

        Returns:
            Timezone-aware datetime or None
        """
        try:
            if isinstance(value, datetime):
                if value.tzinfo is None:
                    return value.replace(tzinfo=self.display_tz)
                return value.astimezone(self.display_tz)

            if isinstance(value, date):
                return datetime.combine(value, time.min, tzinfo=self.display_tz)
        except OverflowError:
            logger.warning(f"Timestamp {value} is out of range in {self.display_tz}")

        return None

    def _date_value(self, component, name: str):
        """
        Read a DATE or DATE-TIME property value.

        Args:
            component: icalendar VEVENT component
            name: Property name

        Returns:
            date or datetime, or None if absent or malformed
        """
        prop = self._first(component.get(name))
        if prop is None:
            return None

        value = self._decoded(prop)
        if isinstance(value, date):
            return value

        logger.warning(f"Ignoring malformed {name} value: {prop!r}")
        return None

    def _duration_value(self, component) -> Optional[timedelta]:
        prop = self._first(component.get('DURATION'))
        value = self._decoded(prop) if prop is not None else None
        return value if isinstance(value, timedelta) else None

    def _text_property(self, component, name: str) -> Optional[str]:
        """
        Read a text property, treating empty values as absent.

        Args:
            component: icalendar VEVENT component
            name: Property name

        Returns:
            Text value or None
        """
        value = self._first(component.get(name))
        if value is None:
            return None

        text = str(value)
        return text if text.strip() else None

    def _recurrence_rule(self, component) -> Optional[str]:
        """
        Read the first RRULE as raw text.

        Args:
            component: icalendar VEVENT component

        Returns:
            Rule text such as "FREQ=WEEKLY;BYDAY=MO" or None
        """
        rule = self._first(component.get('RRULE'))
        if rule is None:
            return None

        try:
            text = rule.to_ical()
        except (AttributeError, TypeError, ValueError) as e:
            logger.warning(f"Ignoring malformed RRULE: {e}")
            return None

        if isinstance(text, bytes):
            text = text.decode('utf-8', errors='replace')
        return text or None

    @staticmethod
    def _decoded(prop):
        # Properties that failed to parse raise on .dt in newer icalendar releases
        try:
            return prop.dt
        except (AttributeError, ValueError) as e:
            logger.debug(f"Property value could not be decoded: {e}")
            return None

    @staticmethod
    def _first(value):
        # Repeated properties come back as a list
        if isinstance(value, list):
            return value[0] if value else None
        return value

    @staticmethod
    def generate_event_id() -> str:
        """
        Generate a random identifier for an event without a UID.

        Returns:
            Random UUID4 string
        """
        return str(uuid.uuid4())
