"""Controller keeping the focused date and the feed scroll position in step."""
import logging
from datetime import date
from typing import Callable, Dict, List, Optional, Protocol, Sequence

from navigation.cursor import same_month
from processor.models import FeedRow, ViewMode
from processor.projector import ViewProjector
from storage.calendar_state import CalendarState

logger = logging.getLogger(__name__)

VisibilityCallback = Callable[[Sequence[str]], None]


class RowObserver(Protocol):
    """Intersection detection provided by the rendering layer."""

    def observe(self, row_id: str, on_visible: VisibilityCallback, root_margin: str) -> None:
        """Report the row to on_visible whenever it enters the band given by root_margin."""
        ...

    def unobserve(self, row_id: str) -> None:
        ...


class Scroller(Protocol):
    """Programmatic scrolling provided by the rendering layer."""

    def scroll_into_view(self, row_id: str, block: str = 'center') -> None:
        ...


class ViewportSyncController:
    """
    Two-way sync between the feed viewport and the calendar cursor.

    Scrolling the feed moves the cursor to the month of the row at the
    top of the viewport (scroll -> cursor). Moving the cursor scrolls the
    feed to the first row in or after the focused month (cursor -> scroll).
    A cursor change caused by scrolling must not scroll the feed again, so
    the first direction leaves a one-shot flag that the second consumes.
    """

    # Root margin of the band near the top of the viewport that decides
    # which row is current
    ACTIVE_BAND = '-10% 0px -80% 0px'

    def __init__(self, state: CalendarState, projector: ViewProjector,
                 observer: RowObserver, scroller: Scroller):
        """
        Initialize the controller and follow view switches.

        Args:
            state: Shared calendar state
            projector: Projector used to compute feed rows
            observer: Intersection observation primitive
            scroller: Programmatic scroll primitive
        """
        self.state = state
        self.projector = projector
        self.observer = observer
        self.scroller = scroller

        self._rows: List[FeedRow] = []
        self._row_index: Dict[str, int] = {}
        self._observed: List[str] = []
        self._subscriptions: List[Callable[[], None]] = []
        self._skip_next_scroll = False
        self._mounted = False

        self._unsubscribe_view: Optional[Callable[[], None]] = state.subscribe(
            'view', self._handle_view_change
        )
        if state.view is ViewMode.FEED:
            self.mount()

    @property
    def is_mounted(self) -> bool:
        return self._mounted

    @property
    def observed_rows(self) -> List[str]:
        return list(self._observed)

    def mount(self) -> None:
        """Start observing the feed rows and following cursor changes."""
        if self._mounted:
            return

        self._mounted = True
        self._subscriptions = [
            self.state.subscribe('cursor', self.handle_cursor_change),
            self.state.subscribe('events', self._handle_events_replaced),
        ]
        self._attach()
        logger.debug(f"Feed sync mounted with {len(self._rows)} rows")

        self.handle_cursor_change(self.state.focused_date)

    def unmount(self) -> None:
        """Release every observation handle and state subscription."""
        if not self._mounted:
            return

        self._detach()
        for unsubscribe in self._subscriptions:
            unsubscribe()
        self._subscriptions = []
        self._mounted = False
        logger.debug("Feed sync unmounted")

    def close(self) -> None:
        self.unmount()
        if self._unsubscribe_view is not None:
            self._unsubscribe_view()
            self._unsubscribe_view = None

    def handle_intersections(self, row_ids: Sequence[str]) -> None:
        """
        Move the cursor to the month of the topmost row in the active band.

        Args:
            row_ids: Rows currently intersecting the active band
        """
        if not self._mounted or self.state.view is not ViewMode.FEED:
            return

        # Rows from a previous mount are no longer in the index
        positions = [self._row_index[row_id] for row_id in row_ids if row_id in self._row_index]
        if not positions:
            return

        row = self._rows[min(positions)]
        if same_month(row.event.start.date(), self.state.focused_date):
            return

        logger.debug(f"Row {row.row_id} reached the top, focusing {row.month:%Y-%m}")
        self._skip_next_scroll = True
        self.state.jump_to(row.event.start)

    def handle_cursor_change(self, focused: date) -> None:
        """
        Scroll the feed to the focused month.

        The suppression flag is cleared on every call, whatever its value.

        Args:
            focused: New cursor value
        """
        skip = self._skip_next_scroll
        self._skip_next_scroll = False
        if skip:
            logger.debug("Cursor change came from scrolling, not scrolling back")
            return

        if not self._mounted or not self._rows:
            return

        anchor = self.projector.find_anchor_row(self._rows, focused)
        if anchor is None:
            logger.debug(f"No feed row in or after {focused:%Y-%m}")
            return

        self.scroller.scroll_into_view(anchor.row_id, block='center')

    def _attach(self) -> None:
        """Observe the rows of the current event collection."""
        self._detach()

        self._rows = self.projector.project_feed(self.state.events, self.state.focused_date)
        self._row_index = {row.row_id: index for index, row in enumerate(self._rows)}

        for row in self._rows:
            self.observer.observe(row.row_id, self.handle_intersections, self.ACTIVE_BAND)
            self._observed.append(row.row_id)

    def _detach(self) -> None:
        for row_id in self._observed:
            self.observer.unobserve(row_id)
        self._observed = []
        self._rows = []
        self._row_index = {}

    def _handle_events_replaced(self, events) -> None:
        logger.debug(f"Event collection replaced ({len(events)} events), re-attaching")
        self._attach()
        self.handle_cursor_change(self.state.focused_date)

    def _handle_view_change(self, view: ViewMode) -> None:
        if view is ViewMode.FEED:
            self.mount()
        else:
            self.unmount()
