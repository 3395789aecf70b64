from datetime import datetime
from zoneinfo import ZoneInfo

import pytest

from app.services.scheduling.time_preference import parse_time_preference

LA = ZoneInfo("America/Los_Angeles")
# Wednesday
NOW = datetime(2025, 5, 7, 8, 30, tzinfo=LA)


@pytest.mark.parametrize(
    "text, expected_date, expected_hour",
    [
        ("tomorrow at 2pm", "2025-05-08", 14),
        ("today in the morning", "2025-05-07", 10),
        ("friday afternoon", "2025-05-09", 14),
        ("monday evening", "2025-05-12", 16),
        ("11 am", "2025-05-07", 11),
        ("3 p.m. on thursday", "2025-05-08", 15),
    ],
)
def test_day_and_time_phrases(text, expected_date, expected_hour):
    candidate = parse_time_preference(text, NOW)

    assert candidate.preferred.date().isoformat() == expected_date
    assert candidate.hour == expected_hour
    assert candidate.preferred.tzinfo is LA


def test_same_weekday_means_next_week():
    candidate = parse_time_preference("wednesday", NOW)

    assert candidate.preferred.date().isoformat() == "2025-05-14"
    assert candidate.day_name == "Wednesday"


def test_default_is_ten_am_today():
    candidate = parse_time_preference("whenever works", NOW)

    assert candidate.hour == 10
    assert candidate.preferred.date() == NOW.date()
    assert candidate.matched_day is False
    assert candidate.matched_time is False


def test_hours_clamped_to_business_hours():
    assert parse_time_preference("7am", NOW).hour == 9
    assert parse_time_preference("6pm", NOW).hour == 16
    assert parse_time_preference("12 am", NOW).hour == 9
    assert parse_time_preference("5pm", NOW, open_hour=8, close_hour=20).hour == 17


def test_preferred_day_hint_is_combined():
    candidate = parse_time_preference("around 1pm", NOW, preferred_day="Tuesday")

    assert candidate.preferred.date().isoformat() == "2025-05-13"
    assert candidate.hour == 13
    assert candidate.to_dict()["timeString"] == "1:00 PM"
