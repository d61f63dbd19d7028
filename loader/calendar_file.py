"""Reader for calendar files picked by the user."""
import asyncio
import logging
from pathlib import Path
from typing import Union

from processor.errors import CalendarFileError

logger = logging.getLogger(__name__)


class CalendarFileReader:
    """Reader turning a calendar file into raw text."""

    DEFAULT_MAX_BYTES = 50 * 1024 * 1024  # 50MB
    CALENDAR_SUFFIXES = ('.ics', '.ical', '.ifb', '.icalendar')

    def __init__(self, max_bytes: int = DEFAULT_MAX_BYTES):
        """
        Initialize the file reader.

        Args:
            max_bytes: Largest file accepted, in bytes (default: 50MB)
        """
        self.max_bytes = max_bytes

    async def read(self, path: Union[str, Path]) -> str:
        """
        Read a calendar file without blocking the event loop.

        Args:
            path: Location of the file

        Returns:
            Decoded file content

        Raises:
            CalendarFileError: If the file is missing, too large or not UTF-8
        """
        path = Path(path)
        if path.suffix.lower() not in self.CALENDAR_SUFFIXES:
            logger.warning(f"File {path.name} does not look like a calendar file")

        raw_bytes = await asyncio.to_thread(self._read_bytes, path)
        text = self.decode(raw_bytes, path.name)

        logger.info(f"Read {len(raw_bytes)} bytes from {path.name}")
        return text

    def _read_bytes(self, path: Path) -> bytes:
        """
        Read the file's bytes, enforcing the size limit.

        Args:
            path: Location of the file

        Returns:
            File content
        """
        try:
            size = path.stat().st_size
            if size > self.max_bytes:
                raise CalendarFileError(
                    f"Calendar file {path.name} is too large "
                    f"({size} bytes, limit {self.max_bytes})"
                )
            return path.read_bytes()
        except OSError as e:
            logger.error(f"Could not read calendar file {path}: {e}")
            raise CalendarFileError(f"Could not read calendar file {path.name}: {e}") from e

    def decode(self, raw_bytes: bytes, name: str = 'calendar') -> str:
        """
        Decode file bytes as UTF-8, dropping a leading byte order mark.

        Args:
            raw_bytes: File content
            name: File name, for error messages

        Returns:
            Decoded text
        """
        try:
            return raw_bytes.decode('utf-8-sig')
        except UnicodeDecodeError as e:
            raise CalendarFileError(f"Calendar file {name} is not valid UTF-8: {e}") from e
