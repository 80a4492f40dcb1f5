import asyncio
from datetime import datetime, timezone
import logging
from pathlib import Path
from typing import Optional

import typer

from reincarnate.config import SETTINGS
from reincarnate.engine import AfterbuildHandler, RestartExecutor, RestartScheduler
from reincarnate.engine.matcher import TriggerResolutionError, resolve_matcher
from reincarnate.engine.summary import format_summary
from reincarnate.engine.timegate import InvalidSchedule, schedule_fires
from reincarnate.host import Outbox, load_snapshot
from reincarnate.logger import get_log_handlers
from reincarnate.model import FailureCauseTrigger, InvalidConfig, RestartConfig, load_config
from reincarnate.worker import Worker


logging.basicConfig(
    format="%(asctime)s %(name)s %(levelname)s - %(message)s", level=logging.INFO
)
logger = logging.getLogger("reincarnate")

app = typer.Typer()


@app.callback()
def init():
    logging.getLogger().setLevel(SETTINGS.OVERRIDE_LOGGING)
    logger.setLevel(SETTINGS.OVERRIDE_LOGGING)
    logging.getLogger("reincarnate.summary").setLevel(SETTINGS.SUMMARY_LOGGING)
    get_log_handlers(logger)


def _load_config_or_exit(path: Path) -> RestartConfig:
    try:
        return load_config(path)
    except InvalidConfig as e:
        typer.echo(f"Config parsing failed for {e.source}:\n\n{e}", err=True)
        raise typer.Exit(code=1)


def _parse_at(at: Optional[str]) -> datetime:
    if at is None:
        return datetime.now(timezone.utc)
    raw = at.strip()
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    dt = datetime.fromisoformat(raw)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


@app.command()
def check(
    config: Path,
    snapshot: Path,
    at: Optional[str] = typer.Option(None, help="ISO timestamp of the tick to evaluate"),
    execute: bool = typer.Option(False, help="Record restarts in the outbox"),
    outbox: Optional[Path] = typer.Option(None, help="Append requests to this file"),
):
    """Run a single cron cycle against a snapshot and print the summary."""
    restart_config = _load_config_or_exit(config)
    host = load_snapshot(snapshot)
    box = Outbox(outbox or SETTINGS.OUTBOX_PATH)
    scheduler = RestartScheduler(
        registry=host.registry,
        executor=RestartExecutor(
            control=box, scripts=box, dry_run=SETTINGS.DRY_RUN or not execute
        ),
        config=restart_config,
        catalog=host.catalog,
        quiet_period=SETTINGS.CRON_QUIET_PERIOD,
    )
    result = scheduler.run_cycle(_parse_at(at))
    typer.echo(format_summary(result))


@app.command()
def afterbuild(
    config: Path,
    snapshot: Path,
    job: str,
    execute: bool = typer.Option(False, help="Record the restart in the outbox"),
    outbox: Optional[Path] = typer.Option(None, help="Append requests to this file"),
):
    """Handle the completion of a job's last build."""
    restart_config = _load_config_or_exit(config)
    host = load_snapshot(snapshot)
    found = host.find_job(job)
    if found is None:
        typer.echo(f"Job {job} not found in {snapshot}", err=True)
        raise typer.Exit(code=1)

    box = Outbox(outbox or SETTINGS.OUTBOX_PATH)
    handler = AfterbuildHandler(
        executor=RestartExecutor(
            control=box, scripts=box, dry_run=SETTINGS.DRY_RUN or not execute
        ),
        config=restart_config,
        catalog=host.catalog,
        quiet_period=SETTINGS.AFTERBUILD_QUIET_PERIOD,
    )
    decision = handler.on_completed(found, found.last_build())
    if decision is None:
        typer.echo(f"No restart for {job}")
    else:
        typer.echo(f"Restart {job}: {decision.cause_text}")


@app.command()
def validate(
    config: Path,
    snapshot: Optional[Path] = typer.Option(
        None, help="Resolve failure cause triggers against this snapshot"
    ),
):
    """Parse a config file and check every schedule and trigger."""
    restart_config = _load_config_or_exit(config)
    catalog = load_snapshot(snapshot).catalog if snapshot is not None else None
    now = datetime.now(timezone.utc)
    problems = []

    if restart_config.schedule is not None:
        try:
            schedule_fires(restart_config.schedule, now)
        except InvalidSchedule as e:
            problems.append(f"global: {e}")

    for idx, trigger in enumerate(restart_config.triggers, start=1):
        if trigger.schedule is not None:
            try:
                schedule_fires(trigger.schedule, now)
            except InvalidSchedule as e:
                problems.append(f"trigger #{idx}: {e}")
        if isinstance(trigger, FailureCauseTrigger) and catalog is None:
            continue
        try:
            resolve_matcher(trigger, catalog)
        except TriggerResolutionError as e:
            problems.append(f"trigger #{idx}: {e}")

    for problem in problems:
        typer.echo(problem, err=True)
    if problems:
        raise typer.Exit(code=1)
    typer.echo(f"{config}: {len(restart_config.triggers)} trigger(s) OK")


@app.command()
def worker(
    config: Path,
    snapshot: Path,
    outbox: Optional[Path] = typer.Option(None, help="Append requests to this file"),
):
    """Run the cron cycle every minute and react to completed builds."""
    runner = Worker(
        config_path=config,
        snapshot_path=snapshot,
        outbox=Outbox(outbox or SETTINGS.OUTBOX_PATH),
    )
    asyncio.run(runner.run())
