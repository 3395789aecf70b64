"""
Free-text time preference parsing.

Best-effort heuristics turning phrases like "next tuesday around 2pm" into a
candidate local date and hour. The result is only a starting point for a slot
search; booking correctness never depends on it.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timedelta

DEFAULT_HOUR = 10
MORNING_HOUR = 10
AFTERNOON_HOUR = 14
EVENING_HOUR = 16

WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]

_DAY_PATTERN = re.compile(
    r"\b(monday|tuesday|wednesday|thursday|friday|saturday|sunday|tomorrow|today)\b"
)
_TIME_PATTERN = re.compile(r"\b(\d{1,2})\s*(am|pm|a\.m\.?|p\.m\.?)(?=\s|$|[^a-z])")


@dataclass(frozen=True)
class CandidateDateTime:
    preferred: datetime
    hour: int
    day_name: str
    matched_day: bool
    matched_time: bool

    @property
    def time_string(self) -> str:
        return self.preferred.strftime("%I:%M %p").lstrip("0")

    def to_dict(self) -> dict:
        return {
            "preferredDateTime": self.preferred.isoformat(),
            "preferredDate": self.preferred.date().isoformat(),
            "preferredHour": self.hour,
            "dayName": self.day_name,
            "timeString": self.time_string,
        }


def _resolve_day(word: str, reference_now: datetime) -> datetime:
    if word == "today":
        return reference_now
    if word == "tomorrow":
        return reference_now + timedelta(days=1)
    # Weekday names always mean the next occurrence strictly after today
    days_ahead = (WEEKDAYS.index(word) - reference_now.weekday()) % 7 or 7
    return reference_now + timedelta(days=days_ahead)


def _resolve_hour(text: str) -> tuple[int, bool]:
    match = _TIME_PATTERN.search(text)
    if match:
        hour = int(match.group(1))
        is_pm = match.group(2).startswith("p")
        if is_pm and hour != 12:
            hour += 12
        elif not is_pm and hour == 12:
            hour = 0
        return hour, True
    if "morning" in text:
        return MORNING_HOUR, True
    if "afternoon" in text:
        return AFTERNOON_HOUR, True
    if "evening" in text:
        return EVENING_HOUR, True
    return DEFAULT_HOUR, False


def parse_time_preference(
    text: str,
    reference_now: datetime,
    preferred_day: str = "",
    open_hour: int = 9,
    close_hour: int = 17,
) -> CandidateDateTime:
    """
    Parse a caller's free-text preference relative to `reference_now`.

    `reference_now` should already be in the business timezone; the returned
    datetime keeps its tzinfo. Hours are clamped so the candidate starts no
    earlier than opening and no later than one hour before close. With no
    recognizable time the candidate falls back to 10:00.
    """
    combined = f"{text or ''} {preferred_day or ''}".lower()

    target = reference_now
    day_match = _DAY_PATTERN.search(combined)
    if day_match:
        target = _resolve_day(day_match.group(1), reference_now)

    hour, matched_time = _resolve_hour(combined)
    hour = max(open_hour, min(hour, close_hour - 1))

    preferred = target.replace(hour=hour, minute=0, second=0, microsecond=0)
    return CandidateDateTime(
        preferred=preferred,
        hour=hour,
        day_name=preferred.strftime("%A"),
        matched_day=day_match is not None,
        matched_time=matched_time,
    )
