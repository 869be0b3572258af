import pytest
from datetime import time

from blocker_plan.errors import InvalidPlanError
from blocker_plan.schema import AppRule, BlockPlan, TimeWindow

WINDOW = TimeWindow(start=time(22, 0), end=time(6, 0))


def test_create_generates_id():
    first = BlockPlan.create("Night", WINDOW)
    second = BlockPlan.create("Night", WINDOW)
    assert first.id and second.id
    assert first.id != second.id
    assert first.active


def test_rules_are_keyed_by_app_id():
    plan = BlockPlan.create("Night", WINDOW, [AppRule(app_id="a"), AppRule(app_id="b")])
    assert set(plan.rules) == {"a", "b"}
    assert plan.rule_for("a").display_name == "a"
    assert plan.rule_for("missing") is None


@pytest.mark.parametrize("name", ["", "   "])
def test_empty_name_is_rejected(name):
    with pytest.raises(InvalidPlanError):
        BlockPlan.create(name, WINDOW)


def test_duplicate_app_is_rejected():
    with pytest.raises(InvalidPlanError):
        BlockPlan.create("Night", WINDOW, [AppRule(app_id="a"), AppRule(app_id="a")])


def test_negative_limit_is_rejected():
    with pytest.raises(InvalidPlanError):
        AppRule(app_id="a", daily_limit_minutes=-1)


def test_plan_is_immutable():
    plan = BlockPlan.create("Night", WINDOW)
    with pytest.raises(Exception):
        plan.id = "other"
    with pytest.raises(Exception):
        plan.active = False


def test_with_active_keeps_identity():
    plan = BlockPlan.create("Night", WINDOW, [AppRule(app_id="a")])
    paused = plan.with_active(False)
    assert paused.id == plan.id
    assert paused.rules == plan.rules
    assert not paused.active
    assert plan.active


def test_document_round_trip():
    plan = BlockPlan.create(
        "Night",
        TimeWindow(start=time(21, 15, 30), end=time(6, 0)),
        [AppRule(app_id="a", display_name="App A", daily_limit_minutes=20)],
        active=False,
    )
    assert BlockPlan.from_document(plan.to_document()) == plan


def test_from_document_requires_object():
    with pytest.raises(InvalidPlanError):
        BlockPlan.from_document(["not", "a", "plan"])


@pytest.mark.parametrize("stored", ["8pm", "20:00", "8:00:00", "20:00:00.5", " 20:00:00"])
def test_from_document_requires_hh_mm_ss(stored):
    document = {
        "id": "p1",
        "name": "Night",
        "window": {"start": stored, "end": "06:00:00"},
    }
    with pytest.raises(InvalidPlanError):
        BlockPlan.from_document(document)


def test_user_input_still_accepts_loose_times():
    assert TimeWindow.from_strings("8pm", "6am").start == time(20, 0)
    assert TimeWindow(start="8:30pm", end="06:00").start == time(20, 30)
