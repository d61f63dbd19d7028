"""Unit tests for CalendarState."""
import asyncio
from datetime import date
from unittest.mock import Mock
from zoneinfo import ZoneInfo

import pytest

from processor.errors import CalendarFileError
from processor.event_normalizer import EventNormalizer
from processor.models import ViewMode
from storage.calendar_state import CalendarState


class GatedReader:
    """File reader fake that returns content only once its gate opens."""

    def __init__(self, contents):
        self.contents = contents
        self.gates = {}

    async def read(self, path):
        gate = self.gates.setdefault(path, asyncio.Event())
        await gate.wait()
        content = self.contents[path]
        if isinstance(content, Exception):
            raise content
        return content


@pytest.fixture
def state():
    """State pinned to a fixed today."""
    return CalendarState(today=lambda: date(2024, 1, 10))


class TestCursorOperations:
    """Test cases for cursor transitions on the shared state."""

    def test_initial_state(self, state):
        """Test the defaults of a fresh state."""
        assert state.events == ()
        assert state.focused_date == date(2024, 1, 10)
        assert state.view is ViewMode.GRID
        assert state.selected_event_id is None
        assert state.is_loading is False
        assert state.error is None

    def test_month_and_year_steps(self, state):
        """Test the stepper operations."""
        state.advance_month()
        assert state.focused_date == date(2024, 2, 10)

        state.retreat_year()
        assert state.focused_date == date(2023, 2, 10)

        state.advance_year()
        state.retreat_month()
        assert state.focused_date == date(2024, 1, 10)

    def test_cursor_listeners_notified(self, state):
        """Test that every transition notifies cursor subscribers."""
        listener = Mock()
        state.subscribe('cursor', listener)

        state.advance_month()
        state.jump_to(date(2030, 1, 1))
        state.go_to_today()

        assert [c.args[0] for c in listener.call_args_list] == [
            date(2024, 2, 10),
            date(2030, 1, 1),
            date(2024, 1, 10),
        ]

    def test_unsubscribe(self, state):
        """Test that unsubscribed listeners are not called."""
        listener = Mock()
        unsubscribe = state.subscribe('cursor', listener)

        unsubscribe()
        state.advance_month()

        listener.assert_not_called()

    def test_unknown_topic_rejected(self, state):
        """Test that only known topics can be subscribed to."""
        with pytest.raises(ValueError):
            state.subscribe('theme', Mock())


class TestViewAndSelection:
    """Test cases for view switching and event selection."""

    def test_set_view(self, state):
        """Test switching views by enum or string."""
        listener = Mock()
        state.subscribe('view', listener)

        state.set_view('feed')
        state.set_view(ViewMode.FEED)
        state.set_view(ViewMode.GRID)

        assert state.view is ViewMode.GRID
        assert [c.args[0] for c in listener.call_args_list] == [ViewMode.FEED, ViewMode.GRID]

    def test_set_view_rejects_unknown_mode(self, state):
        """Test that only known view modes are accepted."""
        with pytest.raises(ValueError):
            state.set_view('agenda')

    def test_select_event(self, state, sample_ics):
        """Test selecting and clearing the detail event."""
        asyncio.run(state.load_text(sample_ics))

        state.select_event("review@example.com")
        assert state.selected_event.title == "Quarterly Review"

        state.select_event(None)
        assert state.selected_event is None

    def test_select_unknown_event_ignored(self, state, sample_ics):
        """Test that an id outside the collection does not change the selection."""
        asyncio.run(state.load_text(sample_ics))
        state.select_event("review@example.com")

        state.select_event("missing")

        assert state.selected_event_id == "review@example.com"

    def test_reload_clears_stale_selection(self, state, sample_ics, calendar_text):
        """Test that a selection is dropped when its event disappears."""
        asyncio.run(state.load_text(sample_ics))
        state.select_event("review@example.com")

        asyncio.run(state.load_text(calendar_text("UID:other\nDTSTART:20240101T100000Z")))

        assert state.selected_event_id is None


class TestLoading:
    """Test cases for ingestion."""

    def test_load_text_replaces_events(self, state, sample_ics, calendar_text):
        """Test that each load replaces the collection wholesale."""
        listener = Mock()
        state.subscribe('events', listener)

        assert asyncio.run(state.load_text(sample_ics)) is True
        assert len(state.events) == 3

        asyncio.run(state.load_text(calendar_text("UID:only\nDTSTART:20240101T100000Z")))

        assert [event.id for event in state.events] == ["only"]
        assert listener.call_count == 2

    def test_load_does_not_move_cursor_or_view(self, state, sample_ics):
        """Test that loading leaves the cursor and view alone."""
        state.set_view('feed')

        asyncio.run(state.load_text(sample_ics))

        assert state.focused_date == date(2024, 1, 10)
        assert state.view is ViewMode.FEED

    def test_load_zero_events(self, state, calendar_text):
        """Test that a calendar without events loads without error."""
        assert asyncio.run(state.load_text(calendar_text())) is True

        assert state.events == ()
        assert state.error is None
        assert state.is_loading is False

    def test_load_invalid_text_keeps_events(self, state, sample_ics):
        """Test that a parse failure reports an error and keeps the old events."""
        asyncio.run(state.load_text(sample_ics))
        previous = state.events

        assert asyncio.run(state.load_text("not a calendar at all")) is False

        assert state.error
        assert state.events is previous
        assert state.is_loading is False

    def test_unexpected_normalizer_error_clears_loading(self, sample_ics):
        """Test that an error outside the calendar error family still ends the load."""
        normalizer = Mock()
        normalizer.normalize.side_effect = RuntimeError("boom")
        state = CalendarState(today=lambda: date(2024, 1, 10))
        asyncio.run(state.load_text(sample_ics))
        previous = state.events
        state.normalizer = normalizer
        events_listener = Mock()
        state.subscribe('events', events_listener)

        assert asyncio.run(state.load_text(sample_ics)) is False

        assert state.is_loading is False
        assert "RuntimeError" in state.error
        assert state.events is previous
        events_listener.assert_not_called()

    def test_unexpected_reader_error_clears_loading(self):
        """Test that a reader failing with a plain exception is reported as an error."""
        reader = Mock()
        reader.read.side_effect = KeyError("calendar.ics")
        state = CalendarState(reader=reader)

        assert asyncio.run(state.load_file("calendar.ics")) is False

        assert state.is_loading is False
        assert state.error

    def test_out_of_range_event_loads(self, calendar_text):
        """Test that a timestamp beyond the display zone range does not stall loading."""
        state = CalendarState(normalizer=EventNormalizer(display_tz=ZoneInfo("America/New_York")))

        assert asyncio.run(state.load_text(calendar_text("UID:ancient\nDTSTART:00010101T010000Z"))) is True

        assert state.is_loading is False
        assert state.events[0].start is None

    def test_successful_load_clears_previous_error(self, state, sample_ics):
        """Test that a new load resets the error."""
        asyncio.run(state.load_text("garbage"))
        assert state.error

        asyncio.run(state.load_text(sample_ics))

        assert state.error is None

    def test_load_file(self, tmp_path, sample_ics):
        """Test loading from disk through the reader."""
        path = tmp_path / "calendar.ics"
        path.write_text(sample_ics, encoding="utf-8")
        state = CalendarState()

        assert asyncio.run(state.load_file(path)) is True

        assert len(state.events) == 3

    def test_load_missing_file_reports_error(self, tmp_path):
        """Test that an unreadable file surfaces as an ingestion error."""
        state = CalendarState()

        assert asyncio.run(state.load_file(tmp_path / "missing.ics")) is False

        assert "missing.ics" in state.error

    def test_loading_flag_while_in_flight(self, sample_ics):
        """Test that is_loading is set until the load finishes."""
        reader = GatedReader({'a.ics': sample_ics})
        state = CalendarState(reader=reader)

        async def scenario():
            task = asyncio.create_task(state.load_file('a.ics'))
            await asyncio.sleep(0)
            assert state.is_loading is True
            reader.gates['a.ics'].set()
            await task

        asyncio.run(scenario())

        assert state.is_loading is False
        assert len(state.events) == 3

    def test_later_load_wins(self, sample_ics, calendar_text):
        """Test that a stale load finishing last never overwrites a newer one."""
        newer = calendar_text("UID:newer\nDTSTART:20240101T100000Z")
        reader = GatedReader({'old.ics': sample_ics, 'new.ics': newer})
        state = CalendarState(reader=reader)

        async def scenario():
            old_task = asyncio.create_task(state.load_file('old.ics'))
            await asyncio.sleep(0)
            new_task = asyncio.create_task(state.load_file('new.ics'))
            await asyncio.sleep(0)

            reader.gates['new.ics'].set()
            assert await new_task is True

            reader.gates['old.ics'].set()
            assert await old_task is False

        asyncio.run(scenario())

        assert [event.id for event in state.events] == ["newer"]
        assert state.is_loading is False

    def test_stale_failure_does_not_set_error(self, calendar_text):
        """Test that an older failing load cannot report over a newer success."""
        newer = calendar_text("UID:newer\nDTSTART:20240101T100000Z")
        reader = GatedReader({
            'old.ics': CalendarFileError("Could not read calendar file old.ics"),
            'new.ics': newer,
        })
        state = CalendarState(reader=reader)

        async def scenario():
            old_task = asyncio.create_task(state.load_file('old.ics'))
            await asyncio.sleep(0)
            new_task = asyncio.create_task(state.load_file('new.ics'))
            await asyncio.sleep(0)

            reader.gates['new.ics'].set()
            await new_task
            reader.gates['old.ics'].set()
            await old_task

        asyncio.run(scenario())

        assert state.error is None
        assert [event.id for event in state.events] == ["newer"]
