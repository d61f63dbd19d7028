"""View projector computing grid and feed data from the event collection."""
import logging
from collections import defaultdict
from datetime import date, timedelta
from typing import Dict, List, Optional, Sequence

from navigation.cursor import clamp, month_start, same_month
from processor.models import Event, FeedRow, GridCell, MonthGrid

logger = logging.getLogger(__name__)

ROW_ID_PREFIX = "stream-event-"


class ViewProjector:
    """Read-only projections of events for the grid and feed views."""

    GRID_CELLS = 42
    WEEK_STARTS = {'sunday': 6, 'monday': 0}

    def __init__(self, week_start: str = 'sunday', max_events_per_cell: int = 3):
        """
        Initialize the projector.

        Args:
            week_start: First day of the grid week, "sunday" or "monday"
            max_events_per_cell: Events shown in a grid cell before overflow
        """
        if week_start not in self.WEEK_STARTS:
            raise ValueError(f"Unsupported week start: {week_start}")
        if max_events_per_cell < 0:
            raise ValueError("max_events_per_cell must not be negative")

        self.week_start = week_start
        self.max_events_per_cell = max_events_per_cell

    def project_grid(self, events: Sequence[Event], focused: date,
                     today: Optional[date] = None) -> MonthGrid:
        """
        Build the six-week month grid around the focused date.

        Events are bucketed by the calendar day of their start only; an
        event spanning several days appears on its first day. A focused
        date outside the displayable range is moved to its nearest bound.

        Args:
            events: Event collection, in source order
            focused: Cursor value
            today: Date highlighted as today (default: date.today())

        Returns:
            MonthGrid with exactly 42 cells
        """
        today = today or date.today()
        focused = clamp(focused)
        first_of_month = month_start(focused)
        first_day = self.start_of_week(first_of_month)

        by_day = self._bucket_by_day(events)

        cells = []
        for offset in range(self.GRID_CELLS):
            day = first_day + timedelta(days=offset)
            day_events = tuple(by_day.get(day, ()))
            visible = day_events[:self.max_events_per_cell]
            cells.append(GridCell(
                day=day,
                in_focused_month=same_month(day, focused),
                is_today=day == today,
                events=day_events,
                visible_events=visible,
                overflow_count=len(day_events) - len(visible)
            ))

        return MonthGrid(
            focused_month=first_of_month,
            first_day=first_day,
            last_day=cells[-1].day,
            cells=tuple(cells)
        )

    def project_feed(self, events: Sequence[Event], focused: date) -> List[FeedRow]:
        """
        Build the chronological feed of every event.

        Events without a valid start are left out. The sort is stable,
        so events sharing a start keep their source order.

        Args:
            events: Event collection, in source order
            focused: Cursor value, used for the in-month flag

        Returns:
            List of FeedRow objects sorted by start
        """
        dated = [event for event in events if event.has_valid_start]
        skipped = len(events) - len(dated)
        if skipped:
            logger.debug(f"Skipped {skipped} events without a valid start from the feed")

        dated.sort(key=lambda event: event.start)

        return [
            FeedRow(
                event=event,
                row_id=self.row_id(event),
                month=month_start(event.start.date()),
                in_focused_month=same_month(event.start.date(), focused)
            )
            for event in dated
        ]

    def find_anchor_row(self, rows: Sequence[FeedRow], focused: date) -> Optional[FeedRow]:
        """
        Find the first feed row within or after the focused month.

        Args:
            rows: Feed rows sorted by start
            focused: Cursor value

        Returns:
            Matching FeedRow or None when every event is earlier
        """
        target_month = month_start(focused)
        for row in rows:
            if row.month >= target_month:
                return row
        return None

    def start_of_week(self, day: date) -> date:
        # date.weekday(): Monday is 0, Sunday is 6
        offset = (day.weekday() - self.WEEK_STARTS[self.week_start]) % 7
        return day - timedelta(days=offset)

    def _bucket_by_day(self, events: Sequence[Event]) -> Dict[date, List[Event]]:
        by_day: Dict[date, List[Event]] = defaultdict(list)
        for event in events:
            if not event.has_valid_start:
                continue
            by_day[event.start.date()].append(event)
        return by_day

    @staticmethod
    def row_id(event: Event) -> str:
        return f"{ROW_ID_PREFIX}{event.id}"
