"""Application-wide calendar state and its transition operations."""
import asyncio
import logging
from collections import defaultdict
from datetime import date
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

from loader.calendar_file import CalendarFileReader
from navigation import cursor
from processor.errors import CalendarError
from processor.event_normalizer import EventNormalizer
from processor.models import Event, ViewMode

logger = logging.getLogger(__name__)

Listener = Callable[..., None]


class CalendarState:
    """
    Single shared store for events, the focused date and the view mode.

    Every mutation goes through one of the named operations below; each
    operation notifies the listeners subscribed to its topic. Topics are
    "cursor", "events", "view" and "selection".
    """

    TOPICS = ('cursor', 'events', 'view', 'selection')

    def __init__(self, normalizer: Optional[EventNormalizer] = None,
                 reader: Optional[CalendarFileReader] = None,
                 today: Callable[[], date] = date.today):
        """
        Initialize an empty calendar state.

        Args:
            normalizer: Normalizer used for ingestion
            reader: File reader used by load_file
            today: Clock returning the current date
        """
        self.normalizer = normalizer or EventNormalizer()
        self.reader = reader or CalendarFileReader()
        self._today = today

        self._events: Tuple[Event, ...] = ()
        self._focused_date: date = cursor.jump_to(today())
        self._view = ViewMode.GRID
        self._selected_event_id: Optional[str] = None
        self._is_loading = False
        self._error: Optional[str] = None

        self._load_generation = 0
        self._listeners: Dict[str, List[Listener]] = defaultdict(list)

    # Read-only views

    @property
    def events(self) -> Tuple[Event, ...]:
        return self._events

    @property
    def focused_date(self) -> date:
        return self._focused_date

    @property
    def view(self) -> ViewMode:
        return self._view

    @property
    def selected_event_id(self) -> Optional[str]:
        return self._selected_event_id

    @property
    def selected_event(self) -> Optional[Event]:
        if self._selected_event_id is None:
            return None
        for event in self._events:
            if event.id == self._selected_event_id:
                return event
        return None

    @property
    def is_loading(self) -> bool:
        return self._is_loading

    @property
    def error(self) -> Optional[str]:
        return self._error

    # Subscriptions

    def subscribe(self, topic: str, listener: Listener) -> Callable[[], None]:
        """
        Register a listener for a state topic.

        Args:
            topic: One of TOPICS
            listener: Called with the new value after each change

        Returns:
            Callable removing the listener
        """
        if topic not in self.TOPICS:
            raise ValueError(f"Unknown state topic: {topic}")

        self._listeners[topic].append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners[topic]:
                self._listeners[topic].remove(listener)

        return unsubscribe

    def _notify(self, topic: str, value) -> None:
        # Copy so listeners may unsubscribe while being notified
        for listener in list(self._listeners[topic]):
            listener(value)

    # Cursor transitions

    def _set_focused_date(self, focused: date) -> None:
        self._focused_date = focused
        logger.debug(f"Focused date set to {focused}")
        self._notify('cursor', focused)

    def advance_month(self) -> None:
        self._set_focused_date(cursor.advance_month(self._focused_date))

    def retreat_month(self) -> None:
        self._set_focused_date(cursor.retreat_month(self._focused_date))

    def advance_year(self) -> None:
        self._set_focused_date(cursor.advance_year(self._focused_date))

    def retreat_year(self) -> None:
        self._set_focused_date(cursor.retreat_year(self._focused_date))

    def jump_to(self, target) -> None:
        self._set_focused_date(cursor.jump_to(target))

    def go_to_today(self) -> None:
        self.jump_to(self._today())

    # View and selection

    def set_view(self, view: Union[ViewMode, str]) -> None:
        """
        Switch the presentation mode.

        Args:
            view: ViewMode or its string value
        """
        mode = ViewMode(view)
        if mode is self._view:
            return
        self._view = mode
        logger.info(f"View switched to {mode.value}")
        self._notify('view', mode)

    def select_event(self, event_id: Optional[str]) -> None:
        """
        Select the event shown by the detail view, or clear it with None.

        Args:
            event_id: Identifier of an event in the collection, or None
        """
        if event_id is not None and not any(e.id == event_id for e in self._events):
            logger.warning(f"Ignoring selection of unknown event: {event_id}")
            return
        self._selected_event_id = event_id
        self._notify('selection', event_id)

    # Ingestion

    async def load_file(self, path: Union[str, Path]) -> bool:
        """
        Read a calendar file and replace the event collection with its events.

        Args:
            path: Location of the .ics file

        Returns:
            True if this load's result was applied successfully
        """
        generation = self._begin_load()
        logger.info(f"Loading calendar file: {path}")

        try:
            raw_text = await self.reader.read(path)
            events = await asyncio.to_thread(self.normalizer.normalize, raw_text)
        except CalendarError as e:
            return self._fail_load(generation, e)
        except Exception as e:
            return self._fail_load(generation, e, unexpected=True)

        return self._finish_load(generation, events)

    async def load_text(self, raw_text: str) -> bool:
        """
        Replace the event collection with the events of already-read text.

        Args:
            raw_text: Raw iCalendar content

        Returns:
            True if this load's result was applied successfully
        """
        generation = self._begin_load()

        try:
            events = await asyncio.to_thread(self.normalizer.normalize, raw_text)
        except CalendarError as e:
            return self._fail_load(generation, e)
        except Exception as e:
            return self._fail_load(generation, e, unexpected=True)

        return self._finish_load(generation, events)

    def _begin_load(self) -> int:
        self._load_generation += 1
        self._is_loading = True
        self._error = None
        return self._load_generation

    def _is_stale(self, generation: int) -> bool:
        if generation != self._load_generation:
            logger.debug(
                f"Discarding result of load {generation}, "
                f"load {self._load_generation} started later"
            )
            return True
        return False

    def _fail_load(self, generation: int, error: Exception, unexpected: bool = False) -> bool:
        if self._is_stale(generation):
            return False

        logger.error(f"Failed to load calendar: {error}", exc_info=True)
        if unexpected or not str(error):
            self._error = f"Failed to load calendar file: {type(error).__name__}"
        else:
            self._error = str(error)
        self._is_loading = False
        return False

    def _finish_load(self, generation: int, events: Sequence[Event]) -> bool:
        if self._is_stale(generation):
            return False

        self._events = tuple(events)
        self._is_loading = False
        logger.info(f"Loaded {len(self._events)} events")

        if self._selected_event_id is not None and self.selected_event is None:
            self._selected_event_id = None
            self._notify('selection', None)

        self._notify('events', self._events)
        return True
