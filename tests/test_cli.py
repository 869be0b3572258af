import pytest
from datetime import date, timedelta
from loguru import logger
from typer.testing import CliRunner

from blocker_plan.cli import app, parse_app_spec
from blocker_plan.errors import InvalidInputError, InvalidPlanError
from blocker_plan.settings import settings
from blocker_plan.store import PlanStore, UsageStore

runner = CliRunner()


@pytest.fixture(autouse=True)
def isolated_dirs(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "data_dir", tmp_path)
    monkeypatch.setattr(settings, "log_dir", tmp_path / "logs")
    yield tmp_path
    # setup_logging bound a sink to the runner's stderr
    logger.remove()


def test_parse_app_spec():
    rule = parse_app_spec("com.example.video:Video:30", set())
    assert rule.app_id == "com.example.video"
    assert rule.display_name == "Video"
    assert rule.daily_limit_minutes == 30
    assert rule.blocked_in_window

    rule = parse_app_spec("com.example.chat", {"com.example.chat"})
    assert rule.display_name == "com.example.chat"
    assert not rule.blocked_in_window

    with pytest.raises(InvalidInputError):
        parse_app_spec("a:b:c:d", set())
    with pytest.raises(InvalidInputError):
        parse_app_spec("a:b:lots", set())
    with pytest.raises(InvalidPlanError):
        parse_app_spec("a:b:-5", set())


def test_create_and_show(isolated_dirs):
    result = runner.invoke(
        app, ["create", "Night", "10pm", "6am", "--app", "com.example.video:Video:30"]
    )
    assert result.exit_code == 0, result.output

    plan = PlanStore(isolated_dirs / "plans.json").load_current()
    assert plan.name == "Night"
    assert plan.rules["com.example.video"].daily_limit_minutes == 30

    result = runner.invoke(app, ["show"])
    assert result.exit_code == 0
    assert "Night" in result.output


def test_create_refuses_to_overwrite_without_force():
    assert runner.invoke(app, ["create", "Night", "22:00", "06:00"]).exit_code == 0
    assert runner.invoke(app, ["create", "Day", "09:00", "17:00"]).exit_code == 1
    assert runner.invoke(app, ["create", "Day", "09:00", "17:00", "--force"]).exit_code == 0


def test_create_rejects_bad_time(isolated_dirs):
    result = runner.invoke(app, ["create", "Night", "late", "06:00"])
    assert result.exit_code == 1
    assert not (isolated_dirs / "plans.json").exists()


def test_show_without_plan_fails():
    result = runner.invoke(app, ["show"])
    assert result.exit_code == 1
    assert "No blocker plan" in result.output


def test_pause_resume_and_delete(isolated_dirs):
    runner.invoke(app, ["create", "Night", "22:00", "06:00", "--app", "a"])
    store_path = isolated_dirs / "plans.json"

    assert runner.invoke(app, ["pause"]).exit_code == 0
    assert PlanStore(store_path).load_current().active is False

    assert runner.invoke(app, ["resume"]).exit_code == 0
    assert PlanStore(store_path).load_current().active is True

    assert runner.invoke(app, ["delete"]).exit_code == 0
    assert PlanStore(store_path).load_current() is None
    assert runner.invoke(app, ["pause"]).exit_code == 1


def test_record_and_check(isolated_dirs):
    runner.invoke(
        app, ["create", "Night", "22:00", "06:00", "--app", "com.example.video:Video:30"]
    )
    today = date.today()

    result = runner.invoke(app, ["record", "com.example.video", "30"])
    assert result.exit_code == 0, result.output
    ledger = UsageStore(isolated_dirs / "usage.json").load()
    assert ledger.minutes_used_today("com.example.video", today) == 30

    result = runner.invoke(app, ["check", "com.example.video", "--at", "12:00"])
    assert result.exit_code == 0
    assert "Blocked" in result.output

    tomorrow = (today + timedelta(days=1)).isoformat()
    result = runner.invoke(app, ["check", "--at", "12:00", "--day", tomorrow])
    assert result.exit_code == 0
    assert "Allowed" in result.output


def test_record_milliseconds(isolated_dirs):
    yesterday = date.today() - timedelta(days=1)
    result = runner.invoke(app, ["record", "a", "125000", "--ms", "--day", yesterday.isoformat()])
    assert result.exit_code == 0
    ledger = UsageStore(isolated_dirs / "usage.json").load()
    assert ledger.minutes_used_today("a", yesterday) == 2


def test_record_cumulative_milliseconds(isolated_dirs):
    for sample in ("600000", "720000", "840000"):
        result = runner.invoke(app, ["record", "a", sample, "--ms", "--cumulative"])
        assert result.exit_code == 0, result.output
    ledger = UsageStore(isolated_dirs / "usage.json").load()
    assert ledger.minutes_used_today("a", date.today()) == 14

    # Only meaningful for raw samples
    assert runner.invoke(app, ["record", "a", "5", "--cumulative"]).exit_code == 1


def test_record_prunes_old_usage(isolated_dirs):
    today = date.today()
    store = UsageStore(isolated_dirs / "usage.json")
    ledger = store.load()
    ledger.record_usage("a", today - timedelta(days=30), 40)
    ledger.record_usage("a", today - timedelta(days=6), 5)
    store.save(ledger)

    result = runner.invoke(app, ["record", "a", "3"])
    assert result.exit_code == 0, result.output
    assert "Pruned 1" in result.output

    entries = UsageStore(isolated_dirs / "usage.json").load().entries()
    assert [(e.day, e.minutes_used) for e in entries] == [
        (today - timedelta(days=6), 5),
        (today, 3),
    ]


@pytest.mark.parametrize("offset", [7, -1])
def test_record_rejects_days_outside_usage_window(isolated_dirs, offset):
    day = (date.today() - timedelta(days=offset)).isoformat()
    result = runner.invoke(app, ["record", "a", "3", "--day", day])
    assert result.exit_code == 1
    assert "outside the usage window" in result.output
    assert not (isolated_dirs / "usage.json").exists()


def test_check_all_without_plan_fails():
    assert runner.invoke(app, ["check"]).exit_code == 1


def test_usage_summary():
    today = date.today().isoformat()
    runner.invoke(app, ["record", "com.example.video", "20", "--day", today])
    result = runner.invoke(app, ["usage"])
    assert result.exit_code == 0
    assert "Usage Overview" in result.output
    assert "Daily average" in result.output
    assert "Last Used" in result.output
