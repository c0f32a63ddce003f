#!/usr/bin/env python3
"""
Log a habit for a day.

Settlement runs immediately: a miss stakes or forfeits, a 7-day streak pays out.
"""

import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import logging
import os
from datetime import datetime
from typing import Optional

import typer
from dotenv import load_dotenv
from rich.console import Console

from stakeshame.core.config import Config
from stakeshame.core.errors import ConflictError, StakeShameError
from stakeshame.service import HabitService

app = typer.Typer(help="Log a habit completion or miss")
console = Console()


def _parse_day(value: Optional[str]):
    if not value:
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        console.print(f"[red]Invalid date: {value} (expected YYYY-MM-DD)[/red]")
        raise typer.Exit(1)


def _log(habit_id: int, completed: bool, day: Optional[str], notes: Optional[str]) -> None:
    load_dotenv()
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO"),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    service = HabitService.from_config(Config.from_env(), with_watcher=False)
    try:
        result = service.log(habit_id, completed, day=_parse_day(day), notes=notes)
    except ConflictError as e:
        console.print(f"[yellow]{e}[/yellow]")
        raise typer.Exit(1)
    except StakeShameError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    finally:
        service.shutdown()

    log = result["log"]
    mark = "[green]done[/green]" if log["completed"] else "[red]missed[/red]"
    console.print(f"\nHabit #{habit_id} {mark} for {log['date']} (streak {log['streak_at_log']})")

    tx = result["transaction"]
    if tx:
        console.print(f"Transaction #{tx['id']}: {tx['type']} {tx['amount']} {tx['currency']} [{tx['status']}]")
        if tx["external_hash"]:
            console.print(f"  Signature: {tx['external_hash']}")
        elif "submission_payload" in result:
            payload = result["submission_payload"]
            console.print(f"  Awaiting submission: {payload['from']} -> {payload['to']} ({payload['lamports']} lamports)")

    if result["error"]:
        console.print(f"[yellow]Settlement pending: {result['error']}[/yellow]")
    if result["message"]:
        console.print(f"\n[italic]{result['message']}[/italic]")
    console.print()


@app.command()
def done(
    habit_id: int = typer.Argument(..., help="Habit ID"),
    day: Optional[str] = typer.Option(None, "--date", "-d", help="Date (YYYY-MM-DD), default today"),
    notes: Optional[str] = typer.Option(None, "--notes", "-n", help="Notes"),
):
    """Mark a habit completed."""
    _log(habit_id, True, day, notes)


@app.command()
def missed(
    habit_id: int = typer.Argument(..., help="Habit ID"),
    day: Optional[str] = typer.Option(None, "--date", "-d", help="Date (YYYY-MM-DD), default today"),
    notes: Optional[str] = typer.Option(None, "--notes", "-n", help="Notes"),
):
    """Mark a habit missed."""
    _log(habit_id, False, day, notes)


if __name__ == "__main__":
    app()
