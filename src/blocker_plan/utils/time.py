import re
from datetime import date, datetime, time

from blocker_plan.errors import InvalidInputError

CANONICAL_TIME_FORMAT = "%H:%M:%S"
CANONICAL_TIME_PATTERN = re.compile(r"\d{2}:\d{2}:\d{2}")
USER_TIME_FORMATS = ["%I%p", "%I:%M%p", "%H:%M", "%H:%M:%S"]


def parse_time_string(time_str: str) -> time:
    """Parses time strings like '8pm', '8:30pm', '20:00', '20:30:15'."""
    if not isinstance(time_str, str):
        raise InvalidInputError(f"Could not parse time: {time_str!r}")
    cleaned = time_str.lower().replace(" ", "")
    for fmt in USER_TIME_FORMATS:
        try:
            return datetime.strptime(cleaned, fmt).time()
        except ValueError:
            continue
    raise InvalidInputError(f"Could not parse time: {time_str}")


def parse_canonical_time(time_str: str) -> time:
    """Parses the stored HH:MM:SS form only."""
    if not isinstance(time_str, str) or not CANONICAL_TIME_PATTERN.fullmatch(time_str):
        raise InvalidInputError(f"Expected HH:MM:SS time, got {time_str!r}")
    try:
        return datetime.strptime(time_str, CANONICAL_TIME_FORMAT).time()
    except ValueError:
        raise InvalidInputError(f"Expected HH:MM:SS time, got {time_str!r}") from None


def format_time(value: time) -> str:
    return value.strftime(CANONICAL_TIME_FORMAT)


def parse_day(day_str: str) -> date:
    """Parses an ISO calendar day (YYYY-MM-DD)."""
    try:
        return date.fromisoformat(day_str)
    except (TypeError, ValueError):
        raise InvalidInputError(f"Expected YYYY-MM-DD day, got {day_str!r}") from None


def day_key(now: datetime) -> date:
    """Returns the local calendar day an instant belongs to."""
    if not isinstance(now, datetime):
        raise InvalidInputError(
            f"Instant must be a datetime with a calendar day, got {type(now).__name__}"
        )
    return now.date()


def ms_to_minutes(milliseconds: int) -> int:
    """Converts a foreground-time sample to whole minutes, rounding down."""
    if milliseconds < 0:
        raise InvalidInputError(f"Foreground time cannot be negative: {milliseconds}ms")
    return int(milliseconds) // 60_000


def format_duration_minutes(minutes: int) -> str:
    """
    Formats a duration in minutes into a human-readable string (e.g., '2h 30m' or '45m').
    """
    if minutes <= 0:
        return "<1m"
    if minutes < 60:
        return f"{minutes}m"
    hours = minutes // 60
    remaining_minutes = minutes % 60
    return f"{hours}h {remaining_minutes}m"
