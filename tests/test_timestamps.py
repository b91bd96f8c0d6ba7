from datetime import datetime

import pytest

from fxbacktest.timestamps import parse_signal_timestamp, parse_timestamp, parse_timestamp_smart


@pytest.mark.parametrize(
    "text, expected",
    [
        ("2024-03-15 10:30:00", datetime(2024, 3, 15, 10, 30, 0)),
        ("2024.03.15 10:30:00", datetime(2024, 3, 15, 10, 30, 0)),
        ("15/03/2024 10:30:00", datetime(2024, 3, 15, 10, 30, 0)),
        ("03/15/2024 10:30:00", datetime(2024, 3, 15, 10, 30, 0)),
        ("2024-03-15T08:05:09", datetime(2024, 3, 15, 8, 5, 9)),
        ("2024-03-15", datetime(2024, 3, 15, 0, 0, 0)),
        ("24.03.15 08:00:00", datetime(2024, 3, 15, 8, 0, 0)),
    ],
)
def test_signal_timestamp_layouts(text, expected):
    assert parse_signal_timestamp(text) == expected


def test_ambiguous_date_is_day_first():
    assert parse_signal_timestamp("05/06/2024 12:00:00") == datetime(2024, 6, 5, 12, 0, 0)


def test_smart_parser_without_time():
    assert parse_timestamp_smart("15.03.2024") == datetime(2024, 3, 15)
    assert parse_timestamp_smart("20240315", "23:59:59") == datetime(2024, 3, 15, 23, 59, 59)


def test_two_digit_year_in_explicit_format():
    assert parse_timestamp("15/03/24", "09:00:00", "DD/MM/YYYY") == datetime(2024, 3, 15, 9, 0, 0)


@pytest.mark.parametrize("text", [None, "", "   "])
def test_missing_signal_timestamp(text):
    assert parse_signal_timestamp(text) is None


@pytest.mark.parametrize(
    "text",
    ["2024-13-01 10:00:00", "2024-02-30 10:00:00", "2024-03-15 25:00:00", "2024-03-15 10:61:00"],
)
def test_impossible_instant_is_none(text):
    assert parse_signal_timestamp(text) is None


def test_unreadable_components_fall_back():
    assert parse_signal_timestamp("abc") == datetime(2024, 1, 1, 0, 0, 0)
    assert parse_signal_timestamp("2023-07-xx 10:yy:00") == datetime(2023, 7, 1, 10, 0, 0)


@pytest.mark.parametrize(
    "date_str, date_format, expected",
    [
        ("2024-03-15", "YYYY-MM-DD", datetime(2024, 3, 15, 10, 0, 0)),
        ("2024.03.15", "YYYY.MM.DD", datetime(2024, 3, 15, 10, 0, 0)),
        ("2024/03/15", "YYYY/MM/DD", datetime(2024, 3, 15, 10, 0, 0)),
        ("15/03/2024", "DD/MM/YYYY", datetime(2024, 3, 15, 10, 0, 0)),
        ("15.03.2024", "DD.MM.YYYY", datetime(2024, 3, 15, 10, 0, 0)),
        ("15-03-2024", "DD-MM-YYYY", datetime(2024, 3, 15, 10, 0, 0)),
        ("03/15/2024", "MM/DD/YYYY", datetime(2024, 3, 15, 10, 0, 0)),
        ("03-15-2024", "MM-DD-YYYY", datetime(2024, 3, 15, 10, 0, 0)),
        ("20240315", "YYYYMMDD", datetime(2024, 3, 15, 10, 0, 0)),
    ],
)
def test_explicit_tick_formats(date_str, date_format, expected):
    assert parse_timestamp(date_str, "10:00:00", date_format) == expected


def test_explicit_format_does_not_guess():
    # 05/06 read as the format says, not by the day-first heuristic
    assert parse_timestamp("05/06/2024", "00:00:00", "MM/DD/YYYY") == datetime(2024, 5, 6)


def test_unknown_format_uses_heuristic():
    assert parse_timestamp("15/03/2024", "10:00:00", "whatever") == datetime(2024, 3, 15, 10, 0, 0)


def test_milliseconds_only_with_sss_format():
    with_ms = parse_timestamp("2024-03-15", "10:00:00.250", "YYYY-MM-DD", "HH:mm:ss.SSS")
    without = parse_timestamp("2024-03-15", "10:00:00.250", "YYYY-MM-DD", "HH:mm:ss")
    assert with_ms == datetime(2024, 3, 15, 10, 0, 0, 250000)
    assert without == datetime(2024, 3, 15, 10, 0, 0)


def test_invalid_tick_date_is_none():
    assert parse_timestamp("2024-02-30", "10:00:00", "YYYY-MM-DD") is None


@pytest.mark.parametrize(
    "call",
    [
        lambda: parse_signal_timestamp("99999999999999999999-01-01 10:00:00"),
        lambda: parse_signal_timestamp("2024-01-01 99999999999999999999:00:00"),
        lambda: parse_timestamp("2024-01-01", "99999999999999999999:00:00", "YYYY-MM-DD"),
        lambda: parse_timestamp("99999999999999999999-01-01", "10:00:00", "YYYY-MM-DD"),
        lambda: parse_timestamp_smart("01/01/99999999999999999999", "10:00:00"),
    ],
)
def test_oversized_numbers_are_unparseable(call):
    assert call() is None
