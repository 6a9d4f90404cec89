"""
Tests for the meeting calendar: next meeting date, display formatting and
the week selector.
"""
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from weeks import (
    THURSDAY, enumerate_weeks, format_for_display, is_date_key, next_meeting_date,
    parse_date_key, parse_display_date, this_weeks_meeting_date,
)

# 2024-01-01 is a Monday, so 2024-01-04 and 2024-01-11 are Thursdays


@pytest.mark.parametrize("now, expected", [
    (datetime(2024, 1, 3, 10, 0), "2024-01-04"),   # Wednesday morning
    (datetime(2024, 1, 4, 9, 0), "2024-01-04"),    # Thursday before cutoff
    (datetime(2024, 1, 4, 16, 59), "2024-01-04"),
    (datetime(2024, 1, 4, 17, 0), "2024-01-11"),   # cutoff itself rolls over
    (datetime(2024, 1, 4, 18, 0), "2024-01-11"),
    (datetime(2024, 1, 5, 0, 1), "2024-01-11"),    # Friday
    (datetime(2024, 1, 7, 23, 59), "2024-01-11"),  # Sunday
    (datetime(2023, 12, 29, 12, 0), "2024-01-04"), # across a year boundary
])
def test_next_meeting_date_examples(now, expected):
    assert next_meeting_date(now) == expected


def test_next_meeting_date_always_lands_on_thursday():
    start = datetime(2024, 2, 26, 0, 0)
    for hours in range(14 * 24):
        now = start + timedelta(hours=hours)
        result = parse_date_key(next_meeting_date(now))
        assert result.weekday() == THURSDAY
        delta = (result - now.date()).days
        assert 0 <= delta <= 7
        same_day = now.weekday() == THURSDAY and now.hour < 17
        assert (delta == 0) == same_day


def test_next_meeting_date_uses_the_given_clock():
    # 23:30 Wednesday in New York is already Thursday in UTC
    ny = datetime(2024, 1, 3, 23, 30, tzinfo=ZoneInfo("America/New_York"))
    assert next_meeting_date(ny) == "2024-01-04"
    assert next_meeting_date(ny.astimezone(ZoneInfo("UTC"))) == "2024-01-04"
    late_thursday_utc = datetime(2024, 1, 4, 21, 30, tzinfo=ZoneInfo("UTC"))
    assert next_meeting_date(late_thursday_utc) == "2024-01-11"
    assert next_meeting_date(late_thursday_utc.astimezone(ZoneInfo("America/New_York"))) == "2024-01-04"


def test_next_meeting_date_custom_weekday_and_cutoff():
    monday_noon = datetime(2024, 1, 1, 12, 0)
    assert next_meeting_date(monday_noon, weekday=0, cutoff_hour=13) == "2024-01-01"
    assert next_meeting_date(monday_noon, weekday=0, cutoff_hour=12) == "2024-01-08"


def test_this_weeks_meeting_date_ignores_cutoff():
    assert this_weeks_meeting_date(datetime(2024, 1, 4, 20, 0)) == date(2024, 1, 4)
    assert this_weeks_meeting_date(datetime(2024, 1, 5, 9, 0)) == date(2024, 1, 11)


def test_format_for_display():
    assert format_for_display("2024-01-04") == "Thursday, January 4, 2024"
    assert format_for_display("2024-12-26") == "Thursday, December 26, 2024"
    assert format_for_display("2024-01-04", locale="en_GB") == "Thursday 4 January 2024"


def test_format_for_display_rejects_unknown_locale():
    with pytest.raises(ValueError):
        format_for_display("2024-01-04", locale="xx_XX")


@pytest.mark.parametrize("key", ["2024-1-4", "2024-02-30", "04/01/2024", "", None, "2024-01-04T00:00"])
def test_parse_date_key_rejects_malformed(key):
    assert not is_date_key(key)
    with pytest.raises(ValueError):
        parse_date_key(key)


def test_display_dates_round_trip_without_drift():
    entries = enumerate_weeks(datetime(2024, 3, 1, 12, 0), ["2024-01-04"], {"2024-02-01": None})
    for entry in entries:
        assert parse_display_date(entry.formatted_date) == parse_date_key(entry.date)
        assert parse_display_date(format_for_display(entry.date, "en_GB")) == parse_date_key(entry.date)


def test_parse_display_date_checks_weekday():
    with pytest.raises(ValueError):
        parse_display_date("Friday, January 4, 2024")


def test_enumerate_weeks_without_presentations_has_only_future():
    now = datetime(2024, 1, 3, 10, 0)
    entries = enumerate_weeks(now, [], {})
    assert len(entries) == 8
    assert [e.date for e in entries][:3] == ["2024-01-04", "2024-01-11", "2024-01-18"]
    assert entries[0].is_current
    assert not any(e.is_current for e in entries[1:])
    assert not any(e.is_past for e in entries)


def test_enumerate_weeks_future_dates_are_distinct_after_cutoff():
    entries = enumerate_weeks(datetime(2024, 1, 4, 18, 0), [], {})
    dates = [e.date for e in entries]
    assert len(set(dates)) == 8
    assert dates[0] == "2024-01-11"
    assert dates[-1] == "2024-02-29"


def test_enumerate_weeks_single_old_presentation():
    entries = enumerate_weeks(datetime(2024, 3, 1, 12, 0), ["2024-01-04"], {})
    past = [e for e in entries if e.is_past]
    future = [e for e in entries if not e.is_past]
    assert [e.date for e in past] == ["2024-01-04"]
    assert len(future) == 8
    assert future[0].date == "2024-03-07"
    assert entries[0].date == "2024-01-04"


def test_enumerate_weeks_skips_empty_past_weeks_but_keeps_inactive_ones():
    now = datetime(2024, 3, 1, 12, 0)
    entries = enumerate_weeks(
        now,
        ["2024-01-04", "2024-01-04", "2024-02-08"],
        {"2024-01-25": "Holiday", "2023-12-28": "Before any talks"},
    )
    past = [e for e in entries if e.is_past]
    assert [e.date for e in past] == ["2024-01-04", "2024-01-25", "2024-02-08"]
    inactive = next(e for e in past if e.date == "2024-01-25")
    assert inactive.is_inactive and inactive.inactive_reason == "Holiday"


def test_enumerate_weeks_ordering_is_past_then_future():
    entries = enumerate_weeks(datetime(2024, 3, 1, 12, 0), ["2024-02-22", "2024-01-04", "2024-02-01"], {})
    dates = [e.date for e in entries]
    assert dates == sorted(dates)
    assert [e.is_past for e in entries] == [True] * 3 + [False] * 8


def test_enumerate_weeks_thursday_after_cutoff_skips_today():
    now = datetime(2024, 1, 11, 18, 0)
    entries = enumerate_weeks(now, ["2024-01-04", "2024-01-11"], {})
    dates = [e.date for e in entries]
    assert "2024-01-11" not in dates
    assert [e.date for e in entries if e.is_past] == ["2024-01-04"]
    assert next(e for e in entries if e.is_current).date == "2024-01-18"


def test_enumerate_weeks_thursday_before_cutoff_keeps_today_current():
    now = datetime(2024, 1, 11, 9, 0)
    entries = enumerate_weeks(now, ["2024-01-04", "2024-01-11"], {})
    assert [e.date for e in entries if e.is_past] == ["2024-01-04"]
    current = next(e for e in entries if e.is_current)
    assert current.date == "2024-01-11"


def test_enumerate_weeks_ignores_off_day_presentation_dates_for_emission():
    # A backfilled Tuesday date sets how far back to walk but is never a week itself
    entries = enumerate_weeks(datetime(2024, 1, 20, 12, 0), ["2024-01-02", "2024-01-11"], {})
    assert [e.date for e in entries if e.is_past] == ["2024-01-11"]


def test_enumerate_weeks_future_presentations_do_not_create_past_weeks():
    entries = enumerate_weeks(datetime(2024, 1, 3, 10, 0), ["2024-01-18"], {})
    assert not any(e.is_past for e in entries)


def test_enumerate_weeks_marks_future_inactive_weeks():
    entries = enumerate_weeks(datetime(2024, 1, 3, 10, 0), [], ["2024-01-11"])
    flagged = {e.date: e for e in entries if e.is_inactive}
    assert list(flagged) == ["2024-01-11"]
    assert flagged["2024-01-11"].inactive_reason is None


def test_enumerate_weeks_is_recomputed_each_call():
    now = datetime(2024, 1, 3, 10, 0)
    dates = ["2023-12-28"]
    first = enumerate_weeks(now, dates, {})
    second = enumerate_weeks(now, dates, {"2023-12-28": "Snow"})
    assert not first[0].is_inactive
    assert second[0].is_inactive


def test_week_entry_to_dict():
    entry = enumerate_weeks(datetime(2024, 1, 3, 10, 0), [], {"2024-01-04": "Offsite"})[0]
    assert entry.to_dict() == {
        "date": "2024-01-04",
        "formatted_date": "Thursday, January 4, 2024",
        "is_past": False,
        "is_current": True,
        "is_inactive": True,
        "inactive_reason": "Offsite",
    }


def test_enumerate_weeks_survives_earliest_representable_date():
    entries = enumerate_weeks(datetime(2024, 3, 1, 12, 0), ["0001-01-01", "2024-02-01"], {})
    assert [e.date for e in entries if e.is_past] == ["2024-02-01"]
    assert len([e for e in entries if not e.is_past]) == 8


def test_enumerate_weeks_with_ancient_thursday_only_visits_populated_dates():
    # 0001-01-04 is a Thursday; emitting it must not walk every week since then
    entries = enumerate_weeks(datetime(2024, 3, 1, 12, 0), ["0001-01-04"], {"1900-01-04": "Old"})
    assert [e.date for e in entries if e.is_past] == ["0001-01-04", "1900-01-04"]
