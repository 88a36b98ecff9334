"""Clock abstraction supplying "today" to scheduling runs."""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone, tzinfo
from typing import Optional, Union

from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .errors import TestDateValidationError

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "Europe/Dublin"
TEST_DATE_PATTERN = re.compile(r"\d{4}-\d{2}-\d{2}(?:T\d{2}:\d{2}:\d{2})?")
INVALID_TEST_DATE_MESSAGE = (
    "Invalid test_today_date in URL.It should be a date string e.g.YYYY-MM-DD, 2016-01-29."
)


def resolve_timezone(name: Optional[str], default: str = DEFAULT_TIMEZONE) -> ZoneInfo:
    """Return the zone for ``name``, falling back to ``default`` when it is empty or unknown."""
    candidate = (name or "").strip() or default
    try:
        return ZoneInfo(candidate)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r; falling back to %s", candidate, default)
        return ZoneInfo(default)


def localize(value: datetime, tz: tzinfo) -> datetime:
    """Express an instant in ``tz``. Naive values are datastore timestamps and read as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(tz)


def parse_test_today_date(value: Union[str, datetime, None]) -> Optional[datetime]:
    """Parse a ``test_today_date`` override.

    Only ``YYYY-MM-DD`` and ``YYYY-MM-DDTHH:MM:SS`` are accepted. The result is naive
    and is read as wall-clock time in the organization's zone.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    text = value.strip()
    if not text:
        return None
    if not TEST_DATE_PATTERN.fullmatch(text):
        raise TestDateValidationError(INVALID_TEST_DATE_MESSAGE)
    fmt = "%Y-%m-%dT%H:%M:%S" if "T" in text else "%Y-%m-%d"
    try:
        return datetime.strptime(text, fmt)
    except ValueError as exc:
        raise TestDateValidationError(INVALID_TEST_DATE_MESSAGE) from exc


class Clock:
    """Wall clock. ``today`` returns the current instant in the requested zone."""

    def today(self, tz: tzinfo) -> datetime:
        return datetime.now(tz)


class TestClock(Clock):
    """Clock pinned to a fixed moment, used for test_today_date overrides."""

    __test__ = False

    def __init__(self, moment: datetime) -> None:
        self._moment = moment

    def today(self, tz: tzinfo) -> datetime:
        if self._moment.tzinfo is None:
            return self._moment.replace(tzinfo=tz)
        return self._moment.astimezone(tz)


def clock_for(test_today_date: Union[str, datetime, None], default: Optional[Clock] = None) -> Clock:
    """Pick the clock for a run; malformed overrides raise instead of using the wall clock."""
    parsed = parse_test_today_date(test_today_date)
    if parsed is None:
        return default or Clock()
    return TestClock(parsed)


__all__ = [
    "Clock",
    "DEFAULT_TIMEZONE",
    "INVALID_TEST_DATE_MESSAGE",
    "TestClock",
    "clock_for",
    "localize",
    "parse_test_today_date",
    "resolve_timezone",
]
