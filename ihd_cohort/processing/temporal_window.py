"""Temporal window relative to the patient index date."""
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union
import pandas as pd

DateLike = Union[str, datetime, pd.Timestamp, None]

# Trailing UTC offset after a clock time ("2020-03-29T10:00:00+02:00", "10:00Z")
UTC_OFFSET = re.compile(
    r"^(.*\d{2}:\d{2}(?::\d{2}(?:\.\d+)?)?)\s*(?:Z|UTC|[+-]\d{2}:?\d{2})$",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class TemporalWindow:
    """Day-count window around the index date, both bounds exclusive.

    The default keeps day 0 through day 364 after the index date.
    """

    lower_exclusive: int = -1
    upper_exclusive: int = 365

    def contains(self, days_from_index):
        """Apply the window predicate to a day count or a Series of counts.

        Missing counts (NaN) evaluate to False.
        """
        return (days_from_index > self.lower_exclusive) & (days_from_index < self.upper_exclusive)


DEFAULT_WINDOW = TemporalWindow()

# Representable calendar range of datetime64[ns]
MIN_DATE = pd.Timestamp.min.ceil("D")
MAX_DATE = pd.Timestamp.max.floor("D")


def _wall_clock(value):
    """Drop a UTC offset and keep the local clock time."""
    if isinstance(value, datetime):
        return value.replace(tzinfo=None) if value.tzinfo is not None else value
    if isinstance(value, str):
        text = value.strip()
        match = UTC_OFFSET.match(text)
        return match.group(1) if match else text
    return value


def _to_calendar_date(
    value: DateLike,
    dayfirst: bool = False,
    date_format: Optional[str] = None,
) -> Optional[pd.Timestamp]:
    parsed = to_calendar_dates(pd.Series([value], dtype=object), dayfirst, date_format).iloc[0]
    if pd.isna(parsed):
        return None
    return parsed


def days_from_index(
    event_date: DateLike,
    index_date: DateLike,
    dayfirst: bool = False,
) -> Optional[int]:
    """Calculate calendar days between event and index date.

    Args:
        event_date: Date of the event
        index_date: Patient index date
        dayfirst: Read ambiguous dd-mm / mm-dd strings day first

    Returns:
        Days relative to index (negative = before), None if either date is missing
    """
    event = _to_calendar_date(event_date, dayfirst)
    index = _to_calendar_date(index_date, dayfirst)
    if event is None or index is None:
        return None
    return (event - index).days


def in_window(
    event_date: DateLike,
    index_date: DateLike,
    lower_exclusive: int = -1,
    upper_exclusive: int = 365,
) -> bool:
    """Check whether an event falls inside the window around the index date.

    Args:
        event_date: Date of the event
        index_date: Patient index date
        lower_exclusive: Exclusive lower bound in days
        upper_exclusive: Exclusive upper bound in days

    Returns:
        True if lower_exclusive < days_from_index < upper_exclusive
    """
    diff = days_from_index(event_date, index_date)
    if diff is None:
        return False
    return bool(TemporalWindow(lower_exclusive, upper_exclusive).contains(diff))


def to_calendar_dates(
    values: pd.Series,
    dayfirst: bool = False,
    date_format: Optional[str] = None,
) -> pd.Series:
    """Parse a column to midnight-normalized timestamps (unparseable -> NaT).

    Offset-bearing values keep their local calendar date, so a column mixing
    +01:00 and +02:00 timestamps parses like naive local times. ISO dates are
    always read year-month-day; `dayfirst` only decides ambiguous formats such
    as 01-03-2020. An explicit `date_format` overrides both.

    Args:
        values: Raw date column
        dayfirst: Read ambiguous dates day first (Dutch extracts)
        date_format: strftime format every value must follow

    Returns:
        datetime64[ns] Series aligned with the input
    """
    if pd.api.types.is_datetime64_any_dtype(values):
        parsed = values
    else:
        local = values.astype(object).map(_wall_clock)
        if date_format:
            parsed = pd.to_datetime(local, format=date_format, errors="coerce")
        else:
            parsed = pd.to_datetime(local, format="mixed", dayfirst=dayfirst, errors="coerce")
    if getattr(parsed.dt, "tz", None) is not None:
        parsed = parsed.dt.tz_localize(None)
    parsed = parsed.where(parsed.between(MIN_DATE, MAX_DATE))
    return parsed.astype("datetime64[ns]").dt.normalize()


def days_from_index_series(
    event_dates: pd.Series,
    index_dates: pd.Series,
    dayfirst: bool = False,
) -> pd.Series:
    """Vectorized calendar-day difference (NaN where either date is missing)."""
    return (to_calendar_dates(event_dates, dayfirst) - to_calendar_dates(index_dates, dayfirst)).dt.days


def window_mask(
    event_dates: pd.Series,
    index_dates: pd.Series,
    window: TemporalWindow = DEFAULT_WINDOW,
) -> pd.Series:
    """Boolean mask of rows whose event date falls inside the window."""
    diff = days_from_index_series(event_dates, index_dates)
    return window.contains(diff).fillna(False).astype(bool)
