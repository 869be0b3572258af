from datetime import date, datetime

from loguru import logger

from blocker_plan.errors import PlanNotFoundError
from blocker_plan.ledger import UsageLedger
from blocker_plan.schema import BlockPlan, BlockReason, Verdict
from blocker_plan.store import PlanStore
from blocker_plan.utils.locks import ReadWriteLock
from blocker_plan.utils.logging import log_verdict
from blocker_plan.utils.time import day_key


def decide(
    plan: BlockPlan | None, app_id: str, now: datetime, ledger: UsageLedger
) -> Verdict:
    """
    Decides whether `app_id` should be blocked at `now`.

    Inside the window the window rule wins. The daily limit only governs
    usage outside the window, and a limit of 0 leaves the app unrestricted
    there. `now` must be a datetime since the limit is per calendar day.
    """
    today = day_key(now)

    if plan is None or not plan.active:
        return Verdict.allow()

    rule = plan.rule_for(app_id)
    if rule is None:
        return Verdict.allow()

    in_window = plan.window.contains(now)
    if in_window and rule.blocked_in_window:
        return Verdict.block(BlockReason.IN_WINDOW)

    if not in_window and rule.has_daily_limit:
        used = ledger.minutes_used_today(app_id, today)
        if used >= rule.daily_limit_minutes:
            return Verdict.block(BlockReason.DAILY_LIMIT_EXCEEDED)
        return Verdict.allow(remaining_minutes=rule.daily_limit_minutes - used)

    return Verdict.allow()


def _describe(now: datetime, verdict: Verdict) -> str:
    if verdict.blocked:
        return f"{now:%Y-%m-%d %H:%M:%S} blocked ({verdict.reason.value})"
    if verdict.remaining_minutes is not None:
        return f"{now:%Y-%m-%d %H:%M:%S} allowed ({verdict.remaining_minutes}m left)"
    return f"{now:%Y-%m-%d %H:%M:%S} allowed"


class DecisionEngine:
    """
    Holds the current plan and a usage ledger and answers block queries.

    Any number of `decide` calls may run at once. Replacing the plan waits
    for them and blocks new ones until it is done, so a decision always sees
    the last plan committed before it started.
    """

    def __init__(self, ledger: UsageLedger, plan: BlockPlan | None = None):
        self.ledger = ledger
        self._plan = plan
        self._lock = ReadWriteLock()

    @classmethod
    def from_store(cls, store: PlanStore, ledger: UsageLedger) -> "DecisionEngine":
        """Creates an engine seeded with the store's current plan, if any."""
        return cls(ledger, store.load_current())

    @property
    def plan(self) -> BlockPlan | None:
        with self._lock.read():
            return self._plan

    def require_plan(self) -> BlockPlan:
        plan = self.plan
        if plan is None:
            raise PlanNotFoundError()
        return plan

    def replace_plan(self, plan: BlockPlan) -> None:
        with self._lock.write():
            self._plan = plan
        logger.info(f"Engine now using plan '{plan.name}' ({plan.id})")

    def clear_plan(self) -> None:
        with self._lock.write():
            self._plan = None
        logger.info("Engine plan cleared")

    def record_usage(self, app_id: str, day: date, minutes: int) -> int:
        return self.ledger.record_usage(app_id, day, minutes)

    def decide(self, app_id: str, now: datetime | None = None) -> Verdict:
        if now is None:
            now = datetime.now()
        with self._lock.read():
            verdict = decide(self._plan, app_id, now, self.ledger)
        log_verdict(app_id, _describe(now, verdict))
        return verdict

    def decide_all(self, now: datetime | None = None) -> dict[str, Verdict]:
        """Verdicts for every app the current plan governs."""
        if now is None:
            now = datetime.now()
        with self._lock.read():
            if self._plan is None:
                return {}
            verdicts = {
                app_id: decide(self._plan, app_id, now, self.ledger)
                for app_id in self._plan.rules
            }
        for app_id, verdict in verdicts.items():
            log_verdict(app_id, _describe(now, verdict))
        return verdicts
