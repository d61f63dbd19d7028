"""Pure month/year transitions over the focused calendar date."""
import logging
from datetime import date, datetime

from dateutil.relativedelta import relativedelta

logger = logging.getLogger(__name__)

# A six-week grid reaches up to six days before the first of the month and
# forty-one days after it, so the outer months of the date range cannot be focused.
FIRST_FOCUSABLE = date(1, 2, 1)
LAST_FOCUSABLE = date(9999, 11, 30)


def clamp(focused: date) -> date:
    """
    Keep a focused date inside the range the month grid can display.

    Args:
        focused: Candidate focused date

    Returns:
        The date, moved to the nearest focusable bound when outside it
    """
    if focused < FIRST_FOCUSABLE:
        return FIRST_FOCUSABLE
    if focused > LAST_FOCUSABLE:
        return LAST_FOCUSABLE
    return focused


def _shift(focused: date, delta: relativedelta, forward: bool) -> date:
    """
    Apply calendar arithmetic, saturating at the focusable date range.

    relativedelta clamps the day of month to the length of the target
    month, the same way in both directions.

    Args:
        focused: Current focused date
        delta: Amount to add
        forward: Direction of travel, used to pick the saturation bound

    Returns:
        Shifted date
    """
    try:
        target = focused + delta
    except (OverflowError, ValueError):
        target = date.max if forward else date.min

    shifted = clamp(target)
    if shifted != target:
        logger.debug(f"Cursor transition from {focused} saturated at {shifted}")
    return shifted


def advance_month(focused: date) -> date:
    return _shift(focused, relativedelta(months=1), forward=True)


def retreat_month(focused: date) -> date:
    return _shift(focused, relativedelta(months=-1), forward=False)


def advance_year(focused: date) -> date:
    return _shift(focused, relativedelta(years=1), forward=True)


def retreat_year(focused: date) -> date:
    return _shift(focused, relativedelta(years=-1), forward=False)


def jump_to(target) -> date:
    """
    Replace the focused date.

    Args:
        target: date or datetime to focus

    Returns:
        The target as a plain date, clamped to the focusable range
    """
    if isinstance(target, datetime):
        return clamp(target.date())
    if isinstance(target, date):
        return clamp(target)
    raise TypeError(f"Cannot focus a {type(target).__name__}")


def month_start(focused: date) -> date:
    return focused.replace(day=1)


def same_month(left: date, right: date) -> bool:
    return (left.year, left.month) == (right.year, right.month)
