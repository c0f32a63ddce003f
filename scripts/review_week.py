#!/usr/bin/env python3
"""
Weekly review script.

Completed and missed days, streaks and balances across an owner's habits.
"""

import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from datetime import datetime
from typing import Optional

import typer
from dotenv import load_dotenv
from rich.console import Console

from stakeshame.core.config import Config
from stakeshame.core.errors import StakeShameError
from stakeshame.service import HabitService

app = typer.Typer(help="Weekly review")
console = Console()


@app.command()
def main(
    owner_id: int = typer.Argument(..., help="Owner ID"),
    week_ending: Optional[str] = typer.Option(None, "--until", "-u", help="Last day of the week (YYYY-MM-DD)"),
    telegram: bool = typer.Option(False, "--telegram", "-t", help="Send to Telegram"),
):
    """
    Generate the weekly summary for an owner.
    """
    load_dotenv()
    config = Config.from_env()
    service = HabitService.from_config(config, with_network=False)

    end = datetime.strptime(week_ending, "%Y-%m-%d").date() if week_ending else None
    try:
        summary = service.weekly_summary(owner_id, week_ending=end)
    except StakeShameError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    if telegram:
        if service.notifier is not None and service.notifier.send_message(summary["text"]):
            console.print("[green]Review sent to Telegram[/green]")
        else:
            console.print("[yellow]Telegram send failed, printing to console[/yellow]\n")
            print(summary["text"])
    else:
        print(summary["text"])


if __name__ == "__main__":
    app()
