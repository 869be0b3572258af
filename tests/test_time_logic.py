import pytest
from datetime import date, datetime, time

from blocker_plan.errors import InvalidInputError
from blocker_plan.utils.time import (
    day_key,
    format_duration_minutes,
    format_time,
    ms_to_minutes,
    parse_canonical_time,
    parse_day,
    parse_time_string,
)


def test_parse_time_string():
    # Test various formats
    assert parse_time_string("8pm") == time(20, 0)
    assert parse_time_string("8:30pm") == time(20, 30)
    assert parse_time_string("20:00") == time(20, 0)
    assert parse_time_string("08:00") == time(8, 0)
    assert parse_time_string("23:59:59") == time(23, 59, 59)
    assert parse_time_string("12am") == time(0, 0)

    with pytest.raises(InvalidInputError):
        parse_time_string("invalid")


@pytest.mark.parametrize("bad", ["25:00", "10:61", "", "13pm"])
def test_parse_time_string_rejects_out_of_range(bad):
    with pytest.raises(InvalidInputError):
        parse_time_string(bad)


def test_format_time_is_canonical():
    assert format_time(time(6, 5)) == "06:05:00"
    assert format_time(time(23, 59, 59)) == "23:59:59"


def test_parse_canonical_time():
    assert parse_canonical_time("06:05:00") == time(6, 5)
    assert parse_canonical_time(format_time(time(23, 59, 59))) == time(23, 59, 59)


@pytest.mark.parametrize("bad", ["8pm", "06:05", "6:05:00", "24:00:00", "06:05:00Z", None])
def test_parse_canonical_time_is_strict(bad):
    with pytest.raises(InvalidInputError):
        parse_canonical_time(bad)


def test_parse_day():
    assert parse_day("2024-03-09") == date(2024, 3, 9)
    with pytest.raises(InvalidInputError):
        parse_day("09/03/2024")


def test_day_key_requires_calendar_day():
    assert day_key(datetime(2024, 3, 9, 23, 59)) == date(2024, 3, 9)
    with pytest.raises(InvalidInputError):
        day_key(time(12, 0))


@pytest.mark.parametrize(
    "milliseconds, expected",
    [
        (0, 0),
        (59_999, 0),
        (60_000, 1),
        (185_000, 3),
    ],
)
def test_ms_to_minutes_rounds_down(milliseconds, expected):
    assert ms_to_minutes(milliseconds) == expected


def test_ms_to_minutes_rejects_negative():
    with pytest.raises(InvalidInputError):
        ms_to_minutes(-1)


@pytest.mark.parametrize(
    "minutes, expected",
    [
        (0, "<1m"),
        (45, "45m"),
        (60, "1h 0m"),
        (150, "2h 30m"),
    ],
)
def test_format_duration_minutes(minutes, expected):
    assert format_duration_minutes(minutes) == expected
