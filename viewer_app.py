"""Entry point wiring the calendar viewer core together."""
import asyncio
import json
import logging
import os
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from loader.calendar_file import CalendarFileReader
from processor.event_normalizer import EventNormalizer
from processor.models import FeedRow, MonthGrid
from processor.projector import ViewProjector
from storage.calendar_state import CalendarState
from sync.viewport_sync import RowObserver, Scroller, ViewportSyncController


class JsonFormatter(logging.Formatter):
    """Render log records as one JSON object per line, with load context."""

    # Attributes passed through ``extra=`` that are copied into the output
    CONTEXT_FIELDS = ('calendar_path', 'events_loaded', 'duration_seconds', 'error')

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage()
        }

        for field in self.CONTEXT_FIELDS:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(log_level: str = 'INFO', stream=None) -> logging.Handler:
    """
    Route every viewer log record to a single JSON handler.

    Args:
        log_level: Logging level name; unknown names mean INFO
        stream: Output stream for the handler (default: sys.stderr)

    Returns:
        The installed handler
    """
    root_logger = logging.getLogger()
    for existing in root_logger.handlers[:]:
        root_logger.removeHandler(existing)

    handler = logging.StreamHandler(stream)
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    return handler


logger = logging.getLogger(__name__)


@dataclass
class LoadSummary:
    """Outcome of opening a calendar file."""
    loaded: bool
    events_loaded: int
    all_day_events: int = 0
    recurring_events: int = 0
    error: Optional[str] = None
    duration_seconds: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ViewerConfig:
    """Viewer settings read from the environment."""
    log_level: str = 'INFO'
    timezone: str = 'UTC'
    week_start: str = 'sunday'
    max_events_per_cell: int = 3
    max_file_bytes: int = CalendarFileReader.DEFAULT_MAX_BYTES

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ViewerConfig":
        """
        Build a config from environment variables.

        Invalid values fall back to the defaults.

        Args:
            environ: Mapping to read from (default: os.environ)

        Returns:
            ViewerConfig object
        """
        environ = os.environ if environ is None else environ
        defaults = cls()

        timezone = environ.get('CALENDAR_TIMEZONE', defaults.timezone)
        try:
            ZoneInfo(timezone)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning(f"Unknown CALENDAR_TIMEZONE '{timezone}', using {defaults.timezone}")
            timezone = defaults.timezone

        week_start = environ.get('WEEK_START', defaults.week_start).lower()
        if week_start not in ViewProjector.WEEK_STARTS:
            logger.warning(f"Unknown WEEK_START '{week_start}', using {defaults.week_start}")
            week_start = defaults.week_start

        return cls(
            log_level=environ.get('LOG_LEVEL', defaults.log_level),
            timezone=timezone,
            week_start=week_start,
            max_events_per_cell=_int_setting(
                environ, 'MAX_EVENTS_PER_CELL', defaults.max_events_per_cell
            ),
            max_file_bytes=_int_setting(environ, 'MAX_FILE_BYTES', defaults.max_file_bytes)
        )


def _int_setting(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning(f"Invalid {name} '{raw}', using {default}")
        return default
    if value < 0:
        logger.warning(f"Negative {name} '{raw}', using {default}")
        return default
    return value


class CalendarViewer:
    """The viewer core: shared state, projections and feed sync."""

    def __init__(self, config: ViewerConfig):
        """
        Build every component from a config.

        Args:
            config: Viewer settings
        """
        self.config = config
        self.state = CalendarState(
            normalizer=EventNormalizer(display_tz=ZoneInfo(config.timezone)),
            reader=CalendarFileReader(max_bytes=config.max_file_bytes)
        )
        self.projector = ViewProjector(
            week_start=config.week_start,
            max_events_per_cell=config.max_events_per_cell
        )
        self.sync: Optional[ViewportSyncController] = None

    def attach_feed(self, observer: RowObserver, scroller: Scroller) -> ViewportSyncController:
        """
        Connect the rendering layer's observation and scroll primitives.

        Args:
            observer: Intersection observation primitive
            scroller: Programmatic scroll primitive

        Returns:
            The feed sync controller
        """
        if self.sync is not None:
            self.sync.close()
        self.sync = ViewportSyncController(self.state, self.projector, observer, scroller)
        return self.sync

    def month_grid(self) -> MonthGrid:
        return self.projector.project_grid(self.state.events, self.state.focused_date)

    def feed(self) -> list[FeedRow]:
        return self.projector.project_feed(self.state.events, self.state.focused_date)


def open_calendar(path: Union[str, Path], viewer: Optional[CalendarViewer] = None) -> LoadSummary:
    """
    Load a calendar file into a viewer and summarize the outcome.

    Args:
        path: Location of the .ics file
        viewer: Viewer to load into (default: a new one built from the environment)

    Returns:
        LoadSummary with event counts, or the error when the load failed
    """
    if viewer is None:
        config = ViewerConfig.from_env()
        setup_logging(config.log_level)
        viewer = CalendarViewer(config)

    start_time = time.time()
    logger.info(f"Opening calendar {path}", extra={'calendar_path': str(path)})

    loaded = asyncio.run(viewer.state.load_file(path))
    duration = round(time.time() - start_time, 2)
    events = viewer.state.events

    if not loaded:
        summary = LoadSummary(
            loaded=False,
            events_loaded=len(events),
            error=viewer.state.error,
            duration_seconds=duration
        )
        logger.error(f"Calendar could not be opened: {summary.error}", extra={
            'calendar_path': str(path),
            'error': summary.error,
            'duration_seconds': duration
        })
        return summary

    summary = LoadSummary(
        loaded=True,
        events_loaded=len(events),
        all_day_events=sum(1 for event in events if event.is_all_day),
        recurring_events=sum(1 for event in events if event.recurrence_rule),
        duration_seconds=duration
    )
    logger.info(f"Calendar opened with {len(events)} events", extra={
        'calendar_path': str(path),
        'events_loaded': summary.events_loaded,
        'duration_seconds': duration
    })
    return summary
