"""Tests for timestamp decoding and Europe/Madrid local-day arithmetic."""

from datetime import date, datetime, timedelta, timezone

import pytest

from timeclock.core.errors import ClockDecodeError
from timeclock.services.clock import (day_end, day_start, end_of_local_day,
                                      ensure_utc, format_date_es,
                                      format_duration, format_hhmm,
                                      format_time_es, local_day_length,
                                      local_range_bounds, parse_date_key,
                                      parse_instant, start_of_local_day,
                                      to_local_date_key,
                                      verify_timezone_support)

UTC = timezone.utc


def test_epoch_seconds_and_milliseconds_decode_to_same_instant():
    expected = datetime(2023, 11, 14, 22, 13, 20, tzinfo=UTC)
    assert parse_instant(1700000000) == expected
    assert parse_instant(1700000000000) == expected
    assert parse_instant(1700000000.0) == expected


def test_string_with_offset_is_converted_to_utc():
    assert parse_instant("2026-07-01T14:00:00+02:00") == datetime(2026, 7, 1, 12, 0, tzinfo=UTC)
    assert parse_instant("2026-02-25T22:01:00Z") == datetime(2026, 2, 25, 22, 1, tzinfo=UTC)


def test_naive_values_are_taken_as_utc():
    assert parse_instant("2026-03-10T08:00:00") == datetime(2026, 3, 10, 8, 0, tzinfo=UTC)
    assert parse_instant(datetime(2026, 3, 10, 8, 0)) == datetime(2026, 3, 10, 8, 0, tzinfo=UTC)


@pytest.mark.parametrize("bad", [None, "", "   ", "not a date", True, float("nan"), float("inf"), [1]])
def test_undecodable_values_raise(bad):
    with pytest.raises(ClockDecodeError):
        parse_instant(bad)


def test_ensure_utc_returns_none_instead_of_raising():
    assert ensure_utc("garbage") is None
    assert ensure_utc(None) is None
    assert ensure_utc("2026-01-01T00:00:00Z") == datetime(2026, 1, 1, tzinfo=UTC)


def test_dst_probes_render_local_wall_clock():
    assert format_time_es("2026-02-25T22:01:00Z") == "23:01"
    assert format_time_es("2026-07-01T12:00:00Z") == "14:00"
    ok, details = verify_timezone_support()
    assert ok, details


def test_local_date_key_uses_madrid_not_utc():
    # 23:30 UTC in winter is already 00:30 the next day in Madrid
    assert to_local_date_key(datetime(2026, 2, 25, 23, 30, tzinfo=UTC)) == "2026-02-26"
    # 21:59 UTC in summer is still 23:59 the same day
    assert to_local_date_key(datetime(2026, 7, 1, 21, 59, tzinfo=UTC)) == "2026-07-01"
    assert to_local_date_key(datetime(2026, 7, 1, 22, 0, tzinfo=UTC)) == "2026-07-02"


def test_start_and_end_of_local_day():
    winter = datetime(2026, 2, 25, 22, 1, tzinfo=UTC)
    assert start_of_local_day(winter) == datetime(2026, 2, 24, 23, 0, tzinfo=UTC)
    assert end_of_local_day(winter) == datetime(2026, 2, 25, 22, 59, 59, 999000, tzinfo=UTC)

    summer = datetime(2026, 7, 1, 12, 0, tzinfo=UTC)
    assert start_of_local_day(summer) == datetime(2026, 6, 30, 22, 0, tzinfo=UTC)
    assert end_of_local_day(summer) == datetime(2026, 7, 1, 21, 59, 59, 999000, tzinfo=UTC)


def test_dst_transition_days_are_23_and_25_hours():
    assert local_day_length(date(2026, 3, 29)) == timedelta(hours=23)
    assert local_day_length(date(2026, 10, 25)) == timedelta(hours=25)
    assert local_day_length(date(2026, 6, 15)) == timedelta(hours=24)


def test_day_end_is_one_millisecond_before_next_day():
    day = date(2026, 10, 25)
    assert day_start(day + timedelta(days=1)) - day_end(day) == timedelta(milliseconds=1)


def test_local_range_bounds_cover_whole_days():
    start, end = local_range_bounds(date(2026, 3, 1), date(2026, 3, 31))
    assert start == datetime(2026, 2, 28, 23, 0, tzinfo=UTC)
    # March 31 is already summer time; the end is exclusive
    assert end == datetime(2026, 3, 31, 22, 0, tzinfo=UTC)


def test_parse_date_key():
    assert parse_date_key("2026-03-10") == date(2026, 3, 10)
    with pytest.raises(ClockDecodeError):
        parse_date_key("10/03/2026")


def test_formatters():
    assert format_date_es("2026-02-25T23:30:00Z") == "26/02/2026"
    assert format_date_es(None) == "-"
    assert format_duration(45) == "45m"
    assert format_duration(185) == "3h 05m"
    assert format_duration(None) == "—"
    assert format_duration(30, in_progress=True) == "En curso"
    assert format_hhmm(570) == "09:30"
    assert format_hhmm(0) == "00:00"
