from datetime import datetime, timedelta

import pytest

from bizdata.core.schemas import Period, Timeframe
from bizdata.core.protocol.temporal import TemporalParser, calculate_date_range, parse

REFERENCE_DATES = [
    datetime(2024, 1, 1, 0, 0),
    datetime(2024, 2, 29, 13, 30),  # leap day
    datetime(2024, 5, 15, 10, 0),
    datetime(2024, 12, 31, 23, 59),
    datetime(2023, 3, 5, 8, 0),  # Sunday
]


@pytest.mark.parametrize("reference", REFERENCE_DATES)
@pytest.mark.parametrize("period", list(Period))
@pytest.mark.parametrize("timeframe", list(Timeframe))
def test_window_stays_inside_one_calendar_unit(reference, period, timeframe):
    """end >= start and both ends fall in the same day/week/month/quarter/year"""
    start, end = calculate_date_range(period, timeframe, reference)

    assert end >= start
    assert start.time() == datetime.min.time()
    assert end.hour == 23 and end.minute == 59 and end.second == 59

    if period == Period.DAY:
        assert start.date() == end.date()
    elif period == Period.WEEK:
        assert start.weekday() == 0
        assert (end.date() - start.date()).days == 6
    elif period == Period.MONTH:
        assert (start.year, start.month) == (end.year, end.month)
        assert start.day == 1
        assert (end + timedelta(days=1)).day == 1
    elif period == Period.QUARTER:
        assert start.year == end.year
        assert (start.month - 1) // 3 == (end.month - 1) // 3
        assert start.month in (1, 4, 7, 10) and start.day == 1
    elif period == Period.YEAR:
        assert start.year == end.year
        assert (start.month, start.day, end.month, end.day) == (1, 1, 12, 31)


@pytest.mark.parametrize("reference", REFERENCE_DATES)
@pytest.mark.parametrize("period", list(Period))
def test_previous_window_ends_right_before_current(reference, period):
    current_start, _ = calculate_date_range(period, Timeframe.CURRENT, reference)
    _, previous_end = calculate_date_range(period, Timeframe.PREVIOUS, reference)

    assert previous_end < current_start
    assert current_start - previous_end < timedelta(milliseconds=1)


@pytest.mark.parametrize("month", [1, 2, 3])
def test_previous_quarter_from_q1_wraps_to_last_year_q4(month):
    start, end = calculate_date_range(
        Period.QUARTER, Timeframe.PREVIOUS, datetime(2024, month, 10)
    )
    assert (start.year, start.month, start.day) == (2023, 10, 1)
    assert (end.year, end.month, end.day) == (2023, 12, 31)


def test_this_week_on_sunday_starts_six_days_earlier():
    sunday = datetime(2024, 5, 19, 18, 0)
    assert sunday.weekday() == 6

    start, end = calculate_date_range(Period.WEEK, Timeframe.CURRENT, sunday)

    assert start.date() == (sunday - timedelta(days=6)).date()
    assert end.date() == sunday.date()


def test_previous_week_shifts_back_seven_days():
    wednesday = datetime(2024, 5, 15)
    current_start, current_end = calculate_date_range(Period.WEEK, Timeframe.CURRENT, wednesday)
    previous_start, previous_end = calculate_date_range(Period.WEEK, Timeframe.PREVIOUS, wednesday)

    assert current_start - previous_start == timedelta(days=7)
    assert current_end - previous_end == timedelta(days=7)


def test_previous_month_in_january_is_last_december():
    start, end = calculate_date_range(Period.MONTH, Timeframe.PREVIOUS, datetime(2024, 1, 20))
    assert (start.year, start.month, start.day) == (2023, 12, 1)
    assert (end.year, end.month, end.day) == (2023, 12, 31)


def test_yesterday_on_first_of_month():
    start, end = calculate_date_range(Period.DAY, Timeframe.PREVIOUS, datetime(2024, 3, 1, 9))
    assert start == datetime(2024, 2, 29)
    assert end.date() == start.date()


def test_parse_this_quarter_in_may():
    window = parse("sales overview for this quarter", now=datetime(2024, 5, 15))

    assert window is not None
    assert window.period == Period.QUARTER
    assert window.timeframe == Timeframe.CURRENT
    assert window.start == datetime(2024, 4, 1)
    assert window.end.date() == datetime(2024, 6, 30).date()
    assert window.original_expression == "this quarter"


def test_parse_returns_none_without_time_reference():
    assert parse("how many customers do we have", now=datetime(2024, 5, 15)) is None
    assert parse("", now=datetime(2024, 5, 15)) is None


def test_parse_keeps_matched_text_and_is_case_insensitive():
    window = parse("Revenue LAST MONTH please", now=datetime(2024, 5, 15))
    assert window.original_expression == "LAST MONTH"
    assert window.period == Period.MONTH
    assert window.timeframe == Timeframe.PREVIOUS
    assert window.start == datetime(2024, 4, 1)


def test_first_matching_row_wins():
    # "this month" is listed before "last year"
    window = parse("compare this month with last year", now=datetime(2024, 5, 15))
    assert window.period == Period.MONTH
    assert window.timeframe == Timeframe.CURRENT


def test_japanese_expressions():
    window = parse("先月の売上を教えて", now=datetime(2024, 5, 15))
    assert window.original_expression == "先月"
    assert window.start == datetime(2024, 4, 1)

    window = parse("前四半期の財務", now=datetime(2024, 2, 1))
    assert (window.start.year, window.start.month) == (2023, 10)


def test_locale_selection_limits_patterns():
    english_only = TemporalParser.for_locales(["en"])
    assert english_only.parse("今月の売上", now=datetime(2024, 5, 15)) is None

    with pytest.raises(ValueError):
        TemporalParser.for_locales(["xx"])


def test_window_description_and_tool_arguments():
    window = parse("profit this year", now=datetime(2024, 5, 15))

    assert window.describe() == "current year"
    arguments = window.tool_arguments()
    assert arguments["period"] == "year"
    assert arguments["startDate"] == "2024-01-01T00:00:00"
    assert arguments["endDate"].startswith("2024-12-31T23:59:59")
