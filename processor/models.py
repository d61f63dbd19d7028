"""Data models for calendar events and their projections."""
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import List, Optional, Tuple


UNTITLED_EVENT = "Untitled Event"


class ViewMode(Enum):
    """Presentation mode selected by the user."""
    GRID = "grid"
    FEED = "feed"


@dataclass(frozen=True)
class Event:
    """Normalized calendar event."""
    id: str
    title: str
    start: Optional[datetime]
    end: Optional[datetime]
    location: Optional[str] = None
    description: Optional[str] = None
    is_all_day: bool = False
    recurrence_rule: Optional[str] = None

    @property
    def has_valid_start(self) -> bool:
        """True when ``start`` can be used for date bucketing and sorting."""
        return is_valid_timestamp(self.start)

    def to_dict(self) -> dict:
        """Raw metadata view of the event, as shown by the detail view."""
        return {
            'uid': self.id,
            'title': self.title,
            'dtstart': self.start.isoformat() if is_valid_timestamp(self.start) else None,
            'dtend': self.end.isoformat() if is_valid_timestamp(self.end) else None,
            'location': self.location,
            'description': self.description,
            'rrule': self.recurrence_rule,
            'is_all_day': self.is_all_day,
        }


@dataclass(frozen=True)
class GridCell:
    """One day of the month grid."""
    day: date
    in_focused_month: bool
    is_today: bool
    events: Tuple[Event, ...]
    visible_events: Tuple[Event, ...]
    overflow_count: int


@dataclass(frozen=True)
class MonthGrid:
    """Six-week grid of day cells around a focused month."""
    focused_month: date
    first_day: date
    last_day: date
    cells: Tuple[GridCell, ...]

    @property
    def weeks(self) -> List[Tuple[GridCell, ...]]:
        return [self.cells[i:i + 7] for i in range(0, len(self.cells), 7)]


@dataclass(frozen=True)
class FeedRow:
    """A single row of the chronological feed."""
    event: Event
    row_id: str
    month: date
    in_focused_month: bool = False


def is_valid_timestamp(value) -> bool:
    """Check that a value is a usable datetime."""
    return isinstance(value, datetime)
