"""Date window helpers for the POS sync.

The upstream branch-report API rejects ranges longer than 30 days, so a
requested window is split into contiguous chunks before fetching.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import List, Optional, Union

YMD_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")

DateLike = Union[date, str, None]


@dataclass(frozen=True)
class DateChunk:
    """Inclusive sub-interval of a requested window."""

    start: date
    end: date

    @property
    def from_ymd(self) -> str:
        return self.start.isoformat()

    @property
    def to_ymd(self) -> str:
        return self.end.isoformat()

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1


@dataclass(frozen=True)
class SyncWindow:
    """Effective window of a sync run, always start <= end."""

    start: date
    end: date


def parse_ymd(value: DateLike) -> Optional[date]:
    """Parse a strict YYYY-MM-DD string (or pass a date through).

    Returns None for anything that does not match the pattern or is not a
    real calendar date.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not YMD_PATTERN.match(value):
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None


def chunk_date_range(start: DateLike, end: DateLike, max_days: int) -> List[DateChunk]:
    """Split [start, end] into contiguous chunks of at most max_days days.

    Unparsable bounds yield an empty list, which callers treat as
    "nothing to do". An inverted range also yields an empty list.
    """
    if max_days < 1:
        raise ValueError(f"max_days must be at least 1, got {max_days}")

    start_date = parse_ymd(start)
    end_date = parse_ymd(end)
    if start_date is None or end_date is None:
        return []

    chunks: List[DateChunk] = []
    current = start_date
    while current <= end_date:
        chunk_end = min(current + timedelta(days=max_days - 1), end_date)
        chunks.append(DateChunk(start=current, end=chunk_end))
        current = chunk_end + timedelta(days=1)
    return chunks


def resolve_sync_window(
    from_date: DateLike,
    to_date: DateLike,
    today: Optional[date] = None,
    lookback_days: int = 7,
) -> SyncWindow:
    """Resolve the effective window of a run.

    Invalid or missing bounds fall back to the last ``lookback_days`` days
    through today. Inverted bounds are swapped.
    """
    today = today or date.today()
    start = parse_ymd(from_date) or today - timedelta(days=lookback_days)
    end = parse_ymd(to_date) or today
    if start > end:
        start, end = end, start
    return SyncWindow(start=start, end=end)
