from collections.abc import Iterable
from datetime import date, datetime, time, timedelta
from enum import Enum
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_serializer,
    field_validator,
    model_validator,
)

from blocker_plan.errors import InvalidInputError, InvalidPlanError
from blocker_plan.utils.time import format_time, parse_canonical_time, parse_time_string

SECONDS_PER_DAY = 24 * 60 * 60


def new_plan_id() -> str:
    """Returns a fresh random plan identifier."""
    return str(uuid4())


def _seconds_of_day(value: time) -> int:
    return value.hour * 3600 + value.minute * 60 + value.second


class TimeWindow(BaseModel):
    """
    A daily recurring interval.

    `start < end` is a same-day window, `start > end` wraps past midnight and
    `start == end` covers the whole day. The window is half-open: it has
    closed at exactly `end`.
    """

    model_config = ConfigDict(frozen=True)

    start: time
    end: time

    @field_validator("start", "end", mode="before")
    @classmethod
    def _coerce_time(cls, value, info):
        if isinstance(value, str):
            # Stored documents only carry HH:MM:SS, user input may be looser.
            if info.context and info.context.get("canonical_times"):
                value = parse_canonical_time(value)
            else:
                value = parse_time_string(value)
        if isinstance(value, datetime) or not isinstance(value, time):
            raise InvalidInputError(f"Expected a time of day, got {value!r}")
        # Stored as HH:MM:SS, so sub-second precision would not survive a save.
        return value.replace(microsecond=0, tzinfo=None)

    @field_serializer("start", "end", when_used="json")
    def _serialize_time(self, value: time) -> str:
        return format_time(value)

    @classmethod
    def from_strings(cls, start: str, end: str) -> "TimeWindow":
        """Builds a window from user input like '10pm' and '06:00'."""
        return cls(start=parse_time_string(start), end=parse_time_string(end))

    @property
    def is_full_day(self) -> bool:
        return self.start == self.end

    @property
    def is_overnight(self) -> bool:
        return self.start > self.end

    def duration(self) -> timedelta:
        if self.is_full_day:
            return timedelta(days=1)
        seconds = (_seconds_of_day(self.end) - _seconds_of_day(self.start)) % SECONDS_PER_DAY
        return timedelta(seconds=seconds)

    def contains(self, instant: datetime | time) -> bool:
        """Returns True if the time of day of `instant` falls inside the window."""
        if isinstance(instant, datetime):
            moment = instant.time()
        elif isinstance(instant, time):
            moment = instant
        else:
            raise InvalidInputError(f"Expected a datetime or time, got {instant!r}")
        moment = moment.replace(tzinfo=None)

        if self.is_full_day:
            return True
        if self.start < self.end:
            return self.start <= moment < self.end
        return moment >= self.start or moment < self.end

    def __str__(self) -> str:
        return f"{format_time(self.start)}-{format_time(self.end)}"


class AppRule(BaseModel):
    """Per-app policy within a plan."""

    model_config = ConfigDict(frozen=True)

    app_id: str
    display_name: str = Field(default="", validate_default=True)
    # 0 means the app is only restricted inside the window.
    daily_limit_minutes: int = 0
    blocked_in_window: bool = True

    @field_validator("display_name")
    @classmethod
    def _default_display_name(cls, value, info):
        return value or info.data.get("app_id", "")

    @model_validator(mode="after")
    def _check_rule(self):
        if not self.app_id or not self.app_id.strip():
            raise InvalidPlanError("App rule is missing an app id.")
        if self.daily_limit_minutes < 0:
            raise InvalidPlanError(
                f"Daily limit for '{self.app_id}' cannot be negative "
                f"({self.daily_limit_minutes})."
            )
        return self

    @property
    def has_daily_limit(self) -> bool:
        return self.daily_limit_minutes > 0


class BlockPlan(BaseModel):
    """A block window plus the rules for the apps it governs."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_plan_id)
    name: str
    window: TimeWindow
    rules: dict[str, AppRule] = Field(default_factory=dict)
    active: bool = True

    @model_validator(mode="after")
    def _check_plan(self):
        if not self.id or not self.id.strip():
            raise InvalidPlanError("Plan is missing its id.")
        if not self.name or not self.name.strip():
            raise InvalidPlanError("Plan name cannot be empty.")
        for key, rule in self.rules.items():
            if key != rule.app_id:
                raise InvalidPlanError(
                    f"Rule stored under '{key}' belongs to '{rule.app_id}'."
                )
        return self

    @classmethod
    def create(
        cls,
        name: str,
        window: TimeWindow,
        rules: Iterable[AppRule] = (),
        active: bool = True,
    ) -> "BlockPlan":
        """Builds a new plan with a generated id, rejecting duplicate app ids."""
        by_app: dict[str, AppRule] = {}
        for rule in rules:
            if rule.app_id in by_app:
                raise InvalidPlanError(f"Duplicate rule for app '{rule.app_id}'.")
            by_app[rule.app_id] = rule
        try:
            return cls(name=name, window=window, rules=by_app, active=active)
        except ValidationError as e:
            raise InvalidPlanError(f"Invalid plan: {e}") from e

    @classmethod
    def from_document(cls, document: dict) -> "BlockPlan":
        """Validates a stored plan document. Times must be in HH:MM:SS form."""
        if not isinstance(document, dict):
            raise InvalidPlanError(
                f"Plan document must be an object, got {type(document).__name__}."
            )
        if not document.get("id"):
            raise InvalidPlanError("Plan document is missing its id.")
        try:
            return cls.model_validate(document, context={"canonical_times": True})
        except ValidationError as e:
            raise InvalidPlanError(f"Malformed plan document: {e}") from e
        except InvalidInputError as e:
            raise InvalidPlanError(f"Malformed plan document: {e.message}") from e

    def to_document(self) -> dict:
        return self.model_dump(mode="json")

    def with_active(self, active: bool) -> "BlockPlan":
        """Returns a replacement plan with the active flag set."""
        return self.model_copy(update={"active": active})

    def rule_for(self, app_id: str) -> AppRule | None:
        return self.rules.get(app_id)


class BlockReason(str, Enum):
    IN_WINDOW = "in_window"
    DAILY_LIMIT_EXCEEDED = "daily_limit_exceeded"


class Verdict(BaseModel):
    """The decision for one app at one instant."""

    model_config = ConfigDict(frozen=True)

    blocked: bool = False
    reason: BlockReason | None = None
    # Allowance left today, only set when a daily limit applies.
    remaining_minutes: int | None = None

    @classmethod
    def allow(cls, remaining_minutes: int | None = None) -> "Verdict":
        return cls(blocked=False, remaining_minutes=remaining_minutes)

    @classmethod
    def block(cls, reason: BlockReason) -> "Verdict":
        return cls(blocked=True, reason=reason)

    @property
    def allowed(self) -> bool:
        return not self.blocked


class UsageEntry(BaseModel):
    """Outside-window minutes for one app on one calendar day."""

    app_id: str
    day: date
    minutes_used: int = Field(default=0, ge=0)


class UsageSummary(BaseModel):
    today_minutes: int = 0
    today_opens: int = 0
    week_minutes: int = 0
    week_opens: int = 0
    # week_minutes spread over the whole retention window, empty days included
    daily_average_minutes: float = 0.0


class AppUsage(BaseModel):
    app_id: str
    minutes: int = 0
    estimated_opens: int = 0
    last_used_day: date | None = None
