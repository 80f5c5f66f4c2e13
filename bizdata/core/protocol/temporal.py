import calendar
import re
from datetime import datetime, date, time, timedelta
from typing import Dict, List, Optional, Sequence, Tuple

from bizdata.core.schemas import Period, Timeframe, TimeWindow


# -----------------------------------------------------------------------------
# TEMPORAL MODULE
# Purpose: turn "this month" / "先月" style phrases into concrete date windows.
# Why: tools need real start/end dates, users speak in relative periods.
# -----------------------------------------------------------------------------


# One row per expression, per locale. Order matters: first match wins.
TEMPORAL_PATTERNS: Dict[str, List[Tuple[str, Period, Timeframe]]] = {
    "en": [
        (r"\b(?:this|current) month\b", Period.MONTH, Timeframe.CURRENT),
        (r"\b(?:this|current) year\b", Period.YEAR, Timeframe.CURRENT),
        (r"\b(?:this|current) quarter\b", Period.QUARTER, Timeframe.CURRENT),
        (r"\b(?:this|current) week\b", Period.WEEK, Timeframe.CURRENT),
        (r"\btoday\b", Period.DAY, Timeframe.CURRENT),
        (r"\b(?:last|previous|prior) month\b", Period.MONTH, Timeframe.PREVIOUS),
        (r"\b(?:last|previous|prior) year\b", Period.YEAR, Timeframe.PREVIOUS),
        (r"\b(?:last|previous|prior) quarter\b", Period.QUARTER, Timeframe.PREVIOUS),
        (r"\b(?:last|previous|prior) week\b", Period.WEEK, Timeframe.PREVIOUS),
        (r"\byesterday\b", Period.DAY, Timeframe.PREVIOUS),
    ],
    "ja": [
        (r"今月|このつき", Period.MONTH, Timeframe.CURRENT),
        (r"今年|ことし", Period.YEAR, Timeframe.CURRENT),
        (r"今四半期|この四半期", Period.QUARTER, Timeframe.CURRENT),
        (r"今週|こんしゅう", Period.WEEK, Timeframe.CURRENT),
        (r"今日|きょう", Period.DAY, Timeframe.CURRENT),
        (r"先月|せんげつ", Period.MONTH, Timeframe.PREVIOUS),
        (r"去年|昨年|きょねん", Period.YEAR, Timeframe.PREVIOUS),
        (r"前四半期|ぜんしはんき", Period.QUARTER, Timeframe.PREVIOUS),
        (r"先週|せんしゅう", Period.WEEK, Timeframe.PREVIOUS),
        (r"昨日|きのう", Period.DAY, Timeframe.PREVIOUS),
    ],
}


def _month_end(year: int, month: int) -> date:
    return date(year, month, calendar.monthrange(year, month)[1])


def _window(first: date, last: date) -> Tuple[datetime, datetime]:
    """Expand a day range to [first 00:00, last 23:59:59.999999]."""
    return datetime.combine(first, time.min), datetime.combine(last, time.max)


def calculate_date_range(
    period: Period, timeframe: Timeframe, reference: datetime
) -> Tuple[datetime, datetime]:
    """
    Calculate the calendar window for a (period, timeframe) pair.

    Calendar units, not rolling ranges: "this month" in the middle of May is
    May 1 to May 31, not the last 30 days.

    Args:
        period: day/week/month/quarter/year
        timeframe: current or previous
        reference: the instant treated as "now"

    Returns:
        (start, end) datetimes, both inclusive

    Example:
        calculate_date_range(Period.QUARTER, Timeframe.CURRENT, datetime(2024, 5, 15))
        -> (2024-04-01 00:00, 2024-06-30 23:59:59.999999)
    """
    today = reference.date()
    year, month = today.year, today.month

    if period == Period.MONTH:
        if timeframe == Timeframe.PREVIOUS:
            year, month = (year - 1, 12) if month == 1 else (year, month - 1)
        return _window(date(year, month, 1), _month_end(year, month))

    if period == Period.YEAR:
        if timeframe == Timeframe.PREVIOUS:
            year -= 1
        return _window(date(year, 1, 1), date(year, 12, 31))

    if period == Period.QUARTER:
        quarter = (month - 1) // 3  # 0-based
        if timeframe == Timeframe.PREVIOUS:
            quarter -= 1
            if quarter < 0:
                # Q1 looks back to Q4 of the prior year
                year, quarter = year - 1, 3
        first_month = quarter * 3 + 1
        return _window(date(year, first_month, 1), _month_end(year, first_month + 2))

    if period == Period.WEEK:
        # Weeks start on Monday; weekday() already counts Sunday as 6
        monday = today - timedelta(days=today.weekday())
        if timeframe == Timeframe.PREVIOUS:
            monday -= timedelta(days=7)
        return _window(monday, monday + timedelta(days=6))

    if period == Period.DAY:
        if timeframe == Timeframe.PREVIOUS:
            today -= timedelta(days=1)
        return _window(today, today)

    raise ValueError(f"Unsupported period: {period}")


class TemporalParser:
    """Matches an ordered table of expressions against free text."""

    def __init__(self, patterns: Sequence[Tuple[str, Period, Timeframe]]):
        self.patterns = [
            (re.compile(pattern, re.IGNORECASE), period, timeframe)
            for pattern, period, timeframe in patterns
        ]

    @classmethod
    def for_locales(cls, locales: Sequence[str]) -> "TemporalParser":
        rows: List[Tuple[str, Period, Timeframe]] = []
        for locale in locales:
            if locale not in TEMPORAL_PATTERNS:
                raise ValueError(f"No temporal patterns for locale: {locale}")
            rows.extend(TEMPORAL_PATTERNS[locale])
        return cls(rows)

    def parse(self, text: str, now: Optional[datetime] = None) -> Optional[TimeWindow]:
        """
        Find the first known time expression in `text`.

        Returns None when nothing matches; that is a normal outcome and
        callers fall back to their default period.
        """
        if not text:
            return None

        reference = now or datetime.now()
        for regex, period, timeframe in self.patterns:
            match = regex.search(text)
            if match:
                start, end = calculate_date_range(period, timeframe, reference)
                return TimeWindow(
                    period=period,
                    timeframe=timeframe,
                    start=start,
                    end=end,
                    original_expression=match.group(0),
                )
        return None


def parse(
    text: str, now: Optional[datetime] = None, locales: Sequence[str] = ("en", "ja")
) -> Optional[TimeWindow]:
    return TemporalParser.for_locales(locales).parse(text, now)
