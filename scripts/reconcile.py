#!/usr/bin/env python3
"""
Reconciliation runner.

Auto-fails scheduled habits nobody logged by the cutoff. `run` does one
date and exits (cron), `schedule` keeps ticking: reconciliation,
settlement of unsettled logs, confirmation sweep, and the Sunday
summary. `resume` settles logs left unsettled.
"""

import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import logging
import os
import signal
import threading
from datetime import datetime
from typing import Optional

import typer
from dotenv import load_dotenv
from rich.console import Console

from stakeshame.core.config import Config
from stakeshame.core.errors import StakeShameError
from stakeshame.review.weekly import send_weekly_summaries
from stakeshame.service import HabitService
from stakeshame.settlement.scheduler import Scheduler

app = typer.Typer(help="Reconciliation and scheduled jobs")
console = Console()

logger = logging.getLogger("reconcile")


def _setup() -> Config:
    load_dotenv()
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO"),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    return Config.from_env()


@app.command()
def run(
    day: Optional[str] = typer.Option(None, "--date", "-d", help="Date to reconcile (YYYY-MM-DD), default today"),
):
    """Reconcile one date."""
    config = _setup()
    as_of = datetime.strptime(day, "%Y-%m-%d").date() if day else None

    service = HabitService.from_config(config, with_watcher=False)
    try:
        report = service.run_reconciliation(as_of)
    except StakeShameError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    finally:
        service.shutdown()

    console.print(f"\n[bold]Reconciliation {report['as_of']}[/bold]")
    console.print(f"Auto-failed: {report['processed'] or '-'}")
    console.print(f"Already logged: {report['already_logged'] or '-'}")
    console.print(f"Before cutoff: {report['not_due'] or '-'}")
    console.print(f"Created after cutoff: {report['not_started'] or '-'}")
    for error in report["errors"]:
        console.print(f"[red]Habit #{error['habit_id']}: {error['error']}[/red]")
    console.print()


@app.command()
def resume(
    log_id: Optional[int] = typer.Argument(None, help="Daily log ID, default every unsettled log"),
):
    """Finish settlement of logs that were written but never settled."""
    config = _setup()

    service = HabitService.from_config(config, with_watcher=False)
    try:
        outcomes = service.resume_settlement(log_id)
    except StakeShameError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    if not outcomes:
        console.print("[green]Nothing to settle.[/green]")
        return

    for outcome in outcomes:
        log = outcome["log"]
        if outcome["error"]:
            console.print(f"[yellow]Daily log #{log['id']} still unsettled: {outcome['error']}[/yellow]")
            continue
        tx = outcome["transaction"]
        detail = f", transaction #{tx['id']} {tx['status']}" if tx else ""
        console.print(f"[green]Daily log #{log['id']} settled ({log['date']}){detail}[/green]")


@app.command()
def schedule(
    poll: float = typer.Option(60.0, "--poll", "-p", help="Seconds between ticks"),
):
    """Run reconciliation, confirmation sweep and weekly summary until stopped."""
    config = _setup()
    service = HabitService.from_config(config)

    def weekly(week_ending):
        send_weekly_summaries(config, week_ending, service.notifier)

    scheduler = Scheduler(service.reconciliation, watcher=service.watcher, clock=service.clock, weekly=weekly)

    stop_event = threading.Event()

    def handle_signal(signum, frame):
        logger.info(f"Signal {signum} received, stopping")
        stop_event.set()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    console.print(f"[bold]StakeShame scheduler[/bold] (cutoff {config.reconciliation_cutoff}, tick {poll}s)")
    try:
        scheduler.run_forever(poll_seconds=poll, stop_event=stop_event)
    finally:
        service.shutdown()


if __name__ == "__main__":
    app()
