from datetime import date, datetime, timedelta

from loguru import logger
from pydantic import ValidationError

from blocker_plan.errors import InvalidInputError
from blocker_plan.schema import AppUsage, UsageEntry, UsageSummary
from blocker_plan.utils.locks import ReadWriteLock
from blocker_plan.utils.time import ms_to_minutes

DEFAULT_RETENTION_DAYS = 7
DEFAULT_SESSION_MINUTES = 3


def _as_day(day: date) -> date:
    if isinstance(day, datetime):
        return day.date()
    if isinstance(day, date):
        return day
    raise InvalidInputError(f"Expected a calendar day, got {day!r}")


def _check_app_id(app_id: str) -> None:
    if not isinstance(app_id, str) or not app_id.strip():
        raise InvalidInputError(f"Invalid app id: {app_id!r}")


class UsageLedger:
    """
    Outside-window usage minutes per app and calendar day.

    Buckets are created on first use and never carry over to another day.
    The ledger only buckets by the day it is given; samples that span
    midnight must be split by whoever feeds it.

    Safe to share between threads: writes take an exclusive lock, reads a
    shared one.
    """

    def __init__(
        self,
        retention_days: int = DEFAULT_RETENTION_DAYS,
        assumed_session_minutes: int = DEFAULT_SESSION_MINUTES,
    ):
        if retention_days < 1:
            raise InvalidInputError("Retention must cover at least one day.")
        if assumed_session_minutes < 1:
            raise InvalidInputError("Assumed session length must be at least one minute.")
        self.retention_days = retention_days
        self.assumed_session_minutes = assumed_session_minutes
        self._minutes: dict[tuple[str, date], int] = {}
        self._lock = ReadWriteLock()

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._minutes)

    def record_usage(self, app_id: str, day: date, minutes: int) -> int:
        """Adds minutes to the app's bucket for `day` and returns the new total."""
        _check_app_id(app_id)
        day = _as_day(day)
        if isinstance(minutes, bool) or not isinstance(minutes, int):
            raise InvalidInputError(f"Minutes must be a whole number, got {minutes!r}")
        if minutes < 0:
            raise InvalidInputError(f"Usage minutes cannot be negative: {minutes}")

        with self._lock.write():
            total = self._minutes.get((app_id, day), 0) + minutes
            self._minutes[(app_id, day)] = total
        logger.debug(f"Recorded {minutes}m for {app_id} on {day} (total {total}m)")
        return total

    def record_foreground_ms(self, app_id: str, day: date, milliseconds: int) -> int:
        """
        Adds an incremental foreground-time sample, rounded down to whole minutes.

        For feeds that report only the time since their previous sample. Feeds
        that report "today so far" must use `record_foreground_total`.
        """
        return self.record_usage(app_id, day, ms_to_minutes(milliseconds))

    def record_foreground_total(self, app_id: str, day: date, milliseconds: int) -> int:
        """
        Sets the bucket from a cumulative start-of-day foreground total.

        Polling the same total twice does not count it twice. A total below
        what is already recorded leaves the bucket unchanged. Returns the
        bucket's minutes afterwards.
        """
        _check_app_id(app_id)
        day = _as_day(day)
        minutes = ms_to_minutes(milliseconds)

        with self._lock.write():
            total = max(self._minutes.get((app_id, day), 0), minutes)
            self._minutes[(app_id, day)] = total
        logger.debug(f"Foreground total for {app_id} on {day} is {total}m")
        return total

    def minutes_used_today(self, app_id: str, day: date) -> int:
        day = _as_day(day)
        with self._lock.read():
            return self._minutes.get((app_id, day), 0)

    def reset_day(self, day: date) -> int:
        """Drops every bucket for `day`. Returns how many were removed."""
        day = _as_day(day)
        with self._lock.write():
            stale = [key for key in self._minutes if key[1] == day]
            for key in stale:
                del self._minutes[key]
        if stale:
            logger.debug(f"Reset {len(stale)} usage bucket(s) for {day}")
        return len(stale)

    def prune(self, today: date, retention_days: int | None = None) -> int:
        """
        Drops buckets outside the retention window ending at `today`.

        The window includes `today` itself, so the default of 7 keeps today
        plus the six days before it. Buckets dated after `today` are dropped
        too. Returns how many were removed.
        """
        today = _as_day(today)
        days = self.retention_days if retention_days is None else retention_days
        if days < 1:
            raise InvalidInputError("Retention must cover at least one day.")
        oldest = today - timedelta(days=days - 1)

        with self._lock.write():
            stale = [key for key in self._minutes if not oldest <= key[1] <= today]
            for key in stale:
                del self._minutes[key]
        if stale:
            logger.info(f"Pruned {len(stale)} usage bucket(s) older than {oldest}")
        return len(stale)

    def entries(self) -> list[UsageEntry]:
        with self._lock.read():
            items = sorted(self._minutes.items(), key=lambda kv: (kv[0][1], kv[0][0]))
        return [
            UsageEntry(app_id=app_id, day=day, minutes_used=minutes)
            for (app_id, day), minutes in items
        ]

    def estimate_opens(self, minutes: int) -> int:
        """
        Rough number of app opens for a usage total.

        Assumes sessions of `assumed_session_minutes`. For display only, it
        is not a real launch count.
        """
        if minutes <= 0:
            return 0
        return max(1, minutes // self.assumed_session_minutes)

    def summary(self, today: date) -> UsageSummary:
        """Totals for today and for the retention window ending today."""
        today = _as_day(today)
        oldest = today - timedelta(days=self.retention_days - 1)
        result = UsageSummary()
        with self._lock.read():
            for (_, day), minutes in self._minutes.items():
                if not oldest <= day <= today:
                    continue
                opens = self.estimate_opens(minutes)
                result.week_minutes += minutes
                result.week_opens += opens
                if day == today:
                    result.today_minutes += minutes
                    result.today_opens += opens
        result.daily_average_minutes = round(result.week_minutes / self.retention_days, 1)
        return result

    def app_totals(self, today: date) -> list[AppUsage]:
        """Per-app totals over the retention window, most used first."""
        today = _as_day(today)
        oldest = today - timedelta(days=self.retention_days - 1)
        totals: dict[str, AppUsage] = {}
        with self._lock.read():
            for (app_id, day), minutes in self._minutes.items():
                if not oldest <= day <= today:
                    continue
                usage = totals.setdefault(app_id, AppUsage(app_id=app_id))
                usage.minutes += minutes
                usage.estimated_opens += self.estimate_opens(minutes)
                if minutes > 0 and (usage.last_used_day is None or day > usage.last_used_day):
                    usage.last_used_day = day
        return sorted(totals.values(), key=lambda u: (-u.minutes, u.app_id))

    def to_document(self) -> dict:
        return {"entries": [entry.model_dump(mode="json") for entry in self.entries()]}

    @classmethod
    def from_document(cls, document: dict, **kwargs) -> "UsageLedger":
        """Rebuilds a ledger from `to_document` output. Extra kwargs go to the constructor."""
        if not isinstance(document, dict) or not isinstance(document.get("entries", []), list):
            raise InvalidInputError("Usage document must be an object with an 'entries' list.")

        ledger = cls(**kwargs)
        for raw in document.get("entries", []):
            try:
                entry = UsageEntry.model_validate(raw)
            except ValidationError as e:
                raise InvalidInputError(f"Malformed usage entry {raw!r}: {e}") from e
            _check_app_id(entry.app_id)
            key = (entry.app_id, entry.day)
            if key in ledger._minutes:
                raise InvalidInputError(
                    f"Duplicate usage entry for {entry.app_id} on {entry.day}"
                )
            ledger._minutes[key] = entry.minutes_used
        return ledger
