import json
import os
import threading
from pathlib import Path

from loguru import logger

from blocker_plan.errors import InvalidInputError, InvalidPlanError
from blocker_plan.ledger import UsageLedger
from blocker_plan.schema import BlockPlan, new_plan_id

CURRENT_PLAN_KEY = "current_plan"


def _reject_duplicate_keys(pairs: list[tuple[str, object]]) -> dict:
    document = {}
    for key, value in pairs:
        if key in document:
            raise InvalidPlanError(f"Duplicate key '{key}' in stored document.")
        document[key] = value
    return document


def _write_json(path: Path, data: dict) -> None:
    """Writes via a temp file and an atomic rename."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(path.name + ".tmp")
    with open(tmp_path, "w") as f:
        json.dump(data, f, indent=4)
    os.replace(tmp_path, path)


class PlanStore:
    """
    Keeps the current blocker plan in a JSON key-value document.

    The plan sits under a fixed slot so the file can hold other keys
    without disturbing it. A missing file or slot means no plan.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()
        self._last_stamp: tuple[int, int, int] | None = None
        self._cached: BlockPlan | None = None

    def _stamp(self) -> tuple[int, int, int]:
        # os.replace gives every save a new inode, so equal mtimes still differ here.
        stat = self.path.stat()
        return stat.st_mtime_ns, stat.st_size, stat.st_ino

    def _read_document(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            with open(self.path) as f:
                document = json.load(f, object_pairs_hook=_reject_duplicate_keys)
        except json.JSONDecodeError as e:
            logger.warning(f"Rejecting unreadable plan file {self.path}: {e}")
            raise InvalidPlanError(f"Plan file is not valid JSON: {e}") from e
        if not isinstance(document, dict):
            raise InvalidPlanError("Plan file must contain a JSON object.")
        return document

    def new_plan_id(self) -> str:
        return new_plan_id()

    def save(self, plan: BlockPlan) -> None:
        """Replaces the current plan."""
        if not isinstance(plan, BlockPlan):
            raise InvalidPlanError(f"Expected a BlockPlan, got {type(plan).__name__}.")
        # Plans built with model_construct have skipped validation.
        BlockPlan.from_document(plan.to_document())

        with self._lock:
            document = self._read_document()
            document[CURRENT_PLAN_KEY] = plan.to_document()
            _write_json(self.path, document)
            self._cached = plan
            self._last_stamp = self._stamp()
        logger.info(f"Saved plan '{plan.name}' ({plan.id}) to {self.path}")

    def load_current(self) -> BlockPlan | None:
        """Returns the current plan, or None if there is none."""
        with self._lock:
            if not self.path.exists():
                self._last_stamp = None
                self._cached = None
                return None

            current_stamp = self._stamp()
            if self._last_stamp == current_stamp:
                return self._cached

            raw = self._read_document().get(CURRENT_PLAN_KEY)
            if raw is None:
                plan = None
            else:
                try:
                    plan = BlockPlan.from_document(raw)
                except InvalidPlanError as e:
                    logger.warning(f"Rejecting stored plan in {self.path}: {e.message}")
                    raise

            self._cached = plan
            self._last_stamp = current_stamp
            return plan

    def exists(self) -> bool:
        """True when a plan is stored. A null slot counts as no plan."""
        with self._lock:
            return self._read_document().get(CURRENT_PLAN_KEY) is not None

    def delete_current(self) -> None:
        """Removes the current plan. Deleting when there is none is a no-op."""
        with self._lock:
            document = self._read_document()
            if CURRENT_PLAN_KEY not in document:
                return
            del document[CURRENT_PLAN_KEY]
            _write_json(self.path, document)
            self._cached = None
            self._last_stamp = self._stamp()
        logger.info(f"Deleted current plan from {self.path}")


class UsageStore:
    """Persists a UsageLedger as a JSON document between runs."""

    def __init__(self, path: Path, **ledger_options):
        self.path = Path(path)
        self.ledger_options = ledger_options

    def load(self) -> UsageLedger:
        """Returns the stored ledger, or an empty one if nothing has been saved."""
        if not self.path.exists():
            return UsageLedger(**self.ledger_options)
        try:
            with open(self.path) as f:
                document = json.load(f)
        except json.JSONDecodeError as e:
            logger.warning(f"Rejecting unreadable usage file {self.path}: {e}")
            raise InvalidInputError(f"Usage file is not valid JSON: {e}") from e
        return UsageLedger.from_document(document, **self.ledger_options)

    def save(self, ledger: UsageLedger) -> None:
        _write_json(self.path, ledger.to_document())
        logger.debug(f"Saved {len(ledger)} usage bucket(s) to {self.path}")
