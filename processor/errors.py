"""Exceptions raised while ingesting calendar files."""


class CalendarError(Exception):
    """Base class for ingestion failures surfaced to the user."""


class CalendarParseError(CalendarError):
    """Raw text is not a structurally valid calendar document."""


class CalendarFileError(CalendarError):
    """Calendar file could not be read or decoded."""
