from datetime import date, datetime, timedelta
from typing import NoReturn

import typer
from rich.console import Console
from rich.table import Table

from blocker_plan.engine import DecisionEngine
from blocker_plan.errors import BlockerPlanError, InvalidInputError, PlanNotFoundError
from blocker_plan.schema import AppRule, BlockPlan, TimeWindow, Verdict
from blocker_plan.settings import load_settings, settings
from blocker_plan.store import PlanStore, UsageStore
from blocker_plan.utils.logging import setup_logging
from blocker_plan.utils.time import (
    format_duration_minutes,
    format_time,
    parse_day,
    parse_time_string,
)

app = typer.Typer(help="Blocker Plan - block apps during a daily window")
console = Console()


def plan_store() -> PlanStore:
    return PlanStore(settings.plan_file)


def usage_store() -> UsageStore:
    return UsageStore(
        settings.usage_file,
        retention_days=settings.usage_retention_days,
        assumed_session_minutes=settings.assumed_session_minutes,
    )


def fail(error: BlockerPlanError) -> NoReturn:
    console.print(f"[red]Error:[/red] {error.message}")
    raise typer.Exit(1)


def process_apps_list(apps: list[str] | None) -> list[str]:
    """Splits repeated and comma separated option values into a clean list."""
    if not apps:
        return []
    processed = []
    for a in apps:
        parts = [x.strip() for x in a.split(",") if x.strip()]
        processed.extend(parts)
    return processed


def parse_app_spec(spec: str, allowed_in_window: set[str]) -> AppRule:
    """Turns 'pkg[:name[:limit]]' into an AppRule."""
    parts = [p.strip() for p in spec.split(":")]
    if len(parts) > 3 or not parts[0]:
        raise InvalidInputError(f"Invalid app '{spec}', expected PKG[:NAME[:LIMIT]]")
    app_id = parts[0]
    display_name = parts[1] if len(parts) > 1 else ""
    limit = 0
    if len(parts) == 3 and parts[2]:
        try:
            limit = int(parts[2])
        except ValueError:
            raise InvalidInputError(f"Daily limit for '{app_id}' must be a number") from None
    return AppRule(
        app_id=app_id,
        display_name=display_name,
        daily_limit_minutes=limit,
        blocked_in_window=app_id not in allowed_in_window,
    )


def resolve_now(at: str | None, day: str | None) -> datetime:
    now = datetime.now()
    target_day = parse_day(day) if day else now.date()
    target_time = parse_time_string(at) if at else now.time()
    return datetime.combine(target_day, target_time)


def describe_verdict(verdict: Verdict) -> str:
    if verdict.blocked:
        return f"[red]Blocked[/red] ({verdict.reason.value})"
    if verdict.remaining_minutes is not None:
        return f"[green]Allowed[/green] ({verdict.remaining_minutes}m left)"
    return "[green]Allowed[/green]"


def render_plan(plan: BlockPlan) -> None:
    state = "[green]active[/green]" if plan.active else "[yellow]paused[/yellow]"
    console.print(f"[bold cyan]{plan.name}[/bold cyan] ({state})")
    console.print(
        f"Window: [magenta]{format_time(plan.window.start)} - "
        f"{format_time(plan.window.end)}[/magenta] "
        f"({format_duration_minutes(int(plan.window.duration().total_seconds()) // 60)})"
    )
    console.print(f"[dim]id: {plan.id}[/dim]")

    if not plan.rules:
        console.print("[yellow]No apps in this plan.[/yellow]")
        return

    table = Table(title="Apps")
    table.add_column("App", style="cyan")
    table.add_column("Name", style="white")
    table.add_column("In Window", style="magenta")
    table.add_column("Daily Limit", style="blue")
    for rule in plan.rules.values():
        table.add_row(
            rule.app_id,
            rule.display_name,
            "Blocked" if rule.blocked_in_window else "Allowed",
            f"{rule.daily_limit_minutes}m" if rule.has_daily_limit else "None",
        )
    console.print(table)


@app.command()
def create(
    name: str = typer.Argument(..., help="Plan name"),
    start_time: str = typer.Argument(..., help="Window start (e.g. 10pm, 22:00)"),
    end_time: str = typer.Argument(..., help="Window end (e.g. 6am, 06:00)"),
    apps: list[str] | None = typer.Option(
        None, "--app", "-a", help="App to govern as PKG[:NAME[:LIMIT]] (repeatable)"
    ),
    allow: list[str] | None = typer.Option(
        None, "--allow", help="Apps that stay usable inside the window (comma separated)"
    ),
    inactive: bool = typer.Option(False, "--inactive", help="Save the plan paused"),
    force: bool = typer.Option(False, "--force", "-f", help="Replace an existing plan"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Create the blocker plan."""
    setup_logging(verbose=verbose)
    store = plan_store()

    try:
        if store.exists() and not force:
            console.print(
                "[yellow]A plan already exists.[/yellow] Use --force to replace it."
            )
            raise typer.Exit(1)

        allowed = set(process_apps_list(allow))
        rules = [parse_app_spec(spec, allowed) for spec in apps or []]
        # --allow on its own adds a rule that only applies outside the window
        governed = {rule.app_id for rule in rules}
        rules.extend(
            AppRule(app_id=app_id, blocked_in_window=False)
            for app_id in sorted(allowed - governed)
        )

        plan = BlockPlan.create(
            name,
            TimeWindow.from_strings(start_time, end_time),
            rules,
            active=not inactive,
        )
        store.save(plan)
    except BlockerPlanError as e:
        fail(e)

    console.print(f"[green]Saved plan:[/green] {plan.name}")
    render_plan(plan)


@app.command()
def show(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Show the current plan."""
    setup_logging(verbose=verbose)
    try:
        plan = plan_store().load_current()
        if plan is None:
            raise PlanNotFoundError()
    except BlockerPlanError as e:
        fail(e)
    render_plan(plan)


@app.command()
def delete(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Delete the current plan."""
    setup_logging(verbose=verbose)
    store = plan_store()
    try:
        if not store.exists():
            console.print("[yellow]No plan to delete.[/yellow]")
            return
        store.delete_current()
    except BlockerPlanError as e:
        fail(e)
    console.print("[green]Plan deleted.[/green]")


def _set_active(active: bool) -> None:
    store = plan_store()
    try:
        plan = store.load_current()
        if plan is None:
            raise PlanNotFoundError()
        store.save(plan.with_active(active))
    except BlockerPlanError as e:
        fail(e)
    label = "resumed" if active else "paused"
    console.print(f"[green]Plan '{plan.name}' {label}.[/green]")


@app.command()
def pause(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Pause the current plan without deleting it."""
    setup_logging(verbose=verbose)
    _set_active(False)


@app.command()
def resume(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Resume a paused plan."""
    setup_logging(verbose=verbose)
    _set_active(True)


@app.command()
def record(
    app_id: str = typer.Argument(..., help="App identifier"),
    amount: int = typer.Argument(..., help="Minutes used outside the window"),
    ms: bool = typer.Option(
        False, "--ms", help="Treat AMOUNT as a raw foreground sample in milliseconds"
    ),
    cumulative: bool = typer.Option(
        False,
        "--cumulative",
        "-c",
        help="With --ms, AMOUNT is the total since the start of the day, not a delta",
    ),
    day: str | None = typer.Option(None, "--day", "-d", help="Day (YYYY-MM-DD), default today"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Record outside-window usage for an app."""
    setup_logging(verbose=verbose)
    if cumulative and not ms:
        console.print("[red]Error:[/red] --cumulative only applies to --ms samples.")
        raise typer.Exit(1)
    store = usage_store()
    today = date.today()
    try:
        target_day = parse_day(day) if day else today
        ledger = store.load()
        oldest = today - timedelta(days=ledger.retention_days - 1)
        if not oldest <= target_day <= today:
            raise InvalidInputError(
                f"{target_day} is outside the usage window ({oldest} to {today})"
            )
        if cumulative:
            total = ledger.record_foreground_total(app_id, target_day, amount)
        elif ms:
            total = ledger.record_foreground_ms(app_id, target_day, amount)
        else:
            total = ledger.record_usage(app_id, target_day, amount)
        removed = ledger.prune(today)
        store.save(ledger)
    except BlockerPlanError as e:
        fail(e)
    console.print(
        f"[green]Recorded.[/green] {app_id} has used "
        f"{format_duration_minutes(total)} on {target_day.isoformat()}"
    )
    if removed:
        console.print(f"[dim]Pruned {removed} old bucket(s).[/dim]")


@app.command()
def check(
    app_id: str | None = typer.Argument(None, help="App to check, default all in the plan"),
    at: str | None = typer.Option(None, "--at", help="Time to evaluate (e.g. 23:30)"),
    day: str | None = typer.Option(None, "--day", "-d", help="Day (YYYY-MM-DD), default today"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Show whether apps are blocked right now (or at --at)."""
    setup_logging(verbose=verbose)
    try:
        now = resolve_now(at, day)
        engine = DecisionEngine.from_store(plan_store(), usage_store().load())
        if app_id:
            verdicts = {app_id: engine.decide(app_id, now)}
        else:
            engine.require_plan()
            verdicts = engine.decide_all(now)
    except BlockerPlanError as e:
        fail(e)

    if not verdicts:
        console.print("[yellow]The plan has no apps.[/yellow]")
        return

    table = Table(title=f"Verdicts at {now:%Y-%m-%d %H:%M}")
    table.add_column("App", style="cyan")
    table.add_column("Used Today", style="blue")
    table.add_column("Verdict")
    for key, verdict in verdicts.items():
        used = engine.ledger.minutes_used_today(key, now.date())
        table.add_row(key, f"{used}m", describe_verdict(verdict))
    console.print(table)


@app.command()
def usage(
    prune: bool = typer.Option(
        False, "--prune", help="Drop usage older than the retention window"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Summarize recorded usage."""
    setup_logging(verbose=verbose)
    store = usage_store()
    today = date.today()
    try:
        ledger = store.load()
        if prune:
            removed = ledger.prune(today)
            store.save(ledger)
            console.print(f"[dim]Pruned {removed} old bucket(s).[/dim]")
    except BlockerPlanError as e:
        fail(e)

    summary = ledger.summary(today)
    overview = Table(title="Usage Overview")
    overview.add_column("Period", style="cyan")
    overview.add_column("Time", style="magenta")
    overview.add_column("Opens (est.)", style="yellow")
    overview.add_row(
        "Today", format_duration_minutes(summary.today_minutes), str(summary.today_opens)
    )
    overview.add_row(
        f"Last {ledger.retention_days} days",
        format_duration_minutes(summary.week_minutes),
        str(summary.week_opens),
    )
    console.print(overview)
    console.print(f"Daily average: [magenta]{summary.daily_average_minutes:g}m[/magenta]")

    totals = ledger.app_totals(today)
    if not totals:
        console.print("[yellow]No usage recorded.[/yellow]")
        return

    table = Table(title="Most Used Apps")
    table.add_column("#", justify="right", style="cyan", no_wrap=True)
    table.add_column("App", style="magenta")
    table.add_column("Time", style="blue")
    table.add_column("Opens (est.)", style="yellow")
    table.add_column("Last Used", style="green")
    for i, app_usage in enumerate(totals, 1):
        last_used = app_usage.last_used_day
        table.add_row(
            str(i),
            app_usage.app_id,
            format_duration_minutes(app_usage.minutes),
            str(app_usage.estimated_opens),
            last_used.isoformat() if last_used else "-",
        )
    console.print(table)


@app.command()
def config(
    retention_days: int | None = typer.Option(
        None, "--retention", "-r", help="Days of usage history to keep"
    ),
    session_minutes: int | None = typer.Option(
        None, "--session-minutes", "-s", help="Assumed session length for open estimates"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Configure usage accounting settings."""
    setup_logging(verbose=verbose)
    current_settings = load_settings()

    if retention_days is not None:
        if retention_days < 1:
            console.print("[red]Error:[/red] Retention must be at least 1 day.")
            raise typer.Exit(1)
        current_settings.usage_retention_days = retention_days
    if session_minutes is not None:
        if session_minutes < 1:
            console.print("[red]Error:[/red] Session length must be at least 1 minute.")
            raise typer.Exit(1)
        current_settings.assumed_session_minutes = session_minutes

    current_settings.save()

    table = Table(title="Current Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="magenta")
    table.add_row("Data Directory", str(current_settings.data_dir))
    table.add_row("Usage Retention (days)", str(current_settings.usage_retention_days))
    table.add_row("Session Length (m)", str(current_settings.assumed_session_minutes))
    console.print(table)
    console.print("[green]Configuration saved![/green]")
