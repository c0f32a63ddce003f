#!/usr/bin/env python3
"""
Owner and habit management.

Owners connect a wallet before they can create habits. Edits never touch
streaks or totals; deactivation keeps the history.
"""

import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import logging
import os
from typing import Optional

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.prompt import Prompt
from rich.table import Table

from stakeshame.core.config import Config
from stakeshame.core.errors import StakeShameError
from stakeshame.service import HabitService

app = typer.Typer(help="Manage owners and habits")
console = Console()


def _service() -> HabitService:
    load_dotenv()
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "WARNING"),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    return HabitService.from_config(Config.from_env(), with_network=False)


def _fail(e: StakeShameError) -> None:
    console.print(f"[red]{e}[/red]")
    raise typer.Exit(1)


@app.command()
def owner(
    username: str = typer.Argument(..., help="Username"),
    wallet: Optional[str] = typer.Option(None, "--wallet", "-w", help="Wallet public key"),
    timezone: Optional[str] = typer.Option(None, "--tz", help="IANA timezone, e.g. Asia/Jakarta"),
):
    """Create an owner."""
    try:
        created = _service().create_owner(username, wallet_address=wallet, timezone=timezone)
    except StakeShameError as e:
        _fail(e)

    console.print(f"[green]Owner #{created['id']} created: {created['username']}[/green]")


@app.command()
def wallet(
    owner_id: int = typer.Argument(..., help="Owner ID"),
    address: Optional[str] = typer.Option(None, "--address", "-a", help="Wallet public key"),
    custodial: bool = typer.Option(False, "--custodial", help="Store the private key encrypted"),
):
    """Connect an owner's wallet."""
    private_key = None
    if custodial:
        private_key = Prompt.ask("Private key (base58)", password=True, console=console)

    try:
        updated = _service().register_wallet(owner_id, wallet_address=address, private_key=private_key)
    except StakeShameError as e:
        _fail(e)

    mode = "custodial" if updated["custodial"] else "client-signed"
    console.print(f"[green]Wallet {updated['wallet_address']} connected ({mode})[/green]")


@app.command()
def create(
    owner_id: int = typer.Argument(..., help="Owner ID"),
    name: str = typer.Option(..., "--name", "-n", help="Habit name"),
    days: str = typer.Option(..., "--days", "-d", help="Scheduled weekdays, e.g. mon,wed,fri"),
    stake: str = typer.Option(..., "--stake", "-s", help="Stake amount per strike"),
    cutoff: Optional[str] = typer.Option(None, "--cutoff", "-c", help="Daily cutoff HH:MM"),
):
    """Create a habit."""
    try:
        habit = _service().create_habit(owner_id, name, days, stake, cutoff_time=cutoff)
    except StakeShameError as e:
        _fail(e)

    console.print(
        f"[green]Habit #{habit['id']} created: {habit['name']} "
        f"[{','.join(habit['schedule'])}] stake {habit['stake_amount']} {habit['currency']}[/green]"
    )


@app.command()
def edit(
    habit_id: int = typer.Argument(..., help="Habit ID"),
    name: Optional[str] = typer.Option(None, "--name", "-n", help="Habit name"),
    days: Optional[str] = typer.Option(None, "--days", "-d", help="Scheduled weekdays"),
    stake: Optional[str] = typer.Option(None, "--stake", "-s", help="Stake amount"),
    cutoff: Optional[str] = typer.Option(None, "--cutoff", "-c", help="Daily cutoff HH:MM"),
):
    """Edit a habit's name, schedule, stake or cutoff."""
    try:
        habit = _service().update_habit(habit_id, name=name, weekdays=days, stake_amount=stake, cutoff_time=cutoff)
    except StakeShameError as e:
        _fail(e)

    console.print(f"[green]Habit #{habit['id']} updated[/green]")


@app.command()
def deactivate(habit_id: int = typer.Argument(..., help="Habit ID")):
    """Deactivate a habit. History and balances are kept."""
    try:
        habit = _service().deactivate_habit(habit_id)
    except StakeShameError as e:
        _fail(e)

    console.print(f"[yellow]Habit #{habit['id']} deactivated ({habit['total_staked']} still staked)[/yellow]")


@app.command("list")
def list_habits(
    owner_id: int = typer.Argument(..., help="Owner ID"),
    all_habits: bool = typer.Option(False, "--all", "-a", help="Include inactive habits"),
):
    """List an owner's habits."""
    habits = _service().list_habits(owner_id, include_inactive=all_habits)
    if not habits:
        console.print("[yellow]No habits.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("ID", justify="right")
    table.add_column("Name")
    table.add_column("Days")
    table.add_column("Stake", justify="right")
    table.add_column("Streak", justify="right")
    table.add_column("Strikes", justify="right")
    table.add_column("Staked", justify="right")

    for habit in habits:
        name = habit["name"] if habit["is_active"] else f"[dim]{habit['name']}[/dim]"
        table.add_row(
            str(habit["id"]),
            name,
            ",".join(habit["schedule"]),
            habit["stake_amount"],
            f"{habit['current_streak']} ({habit['longest_streak']})",
            str(habit["fail_count"]),
            habit["total_staked"],
        )

    console.print(table)


@app.command()
def stats(habit_id: int = typer.Argument(..., help="Habit ID")):
    """Show habit statistics."""
    try:
        data = _service().stats(habit_id)
    except StakeShameError as e:
        _fail(e)

    currency = data["currency"]
    console.print(f"\n[bold]{data['name']}[/bold] (habit #{data['habit_id']})\n")
    console.print(f"Logs: {data['total_logs']} ({data['completed_logs']} done, {data['failed_logs']} missed)")
    console.print(f"Completion: {data['completion_rate']:.0f}% overall, {data['recent_completion_rate']:.0f}% last 30 days")
    console.print(f"Streak: {data['current_streak']} (longest {data['longest_streak']})")
    console.print(f"Strikes: {data['fail_count']}")
    console.print(f"Staked: {data['total_staked']} {currency}")
    console.print(f"Punished: {data['total_punished']} {currency}")
    console.print(f"Rewarded: {data['total_rewarded']} {currency}\n")


@app.command()
def policy():
    """Show the active policy template."""
    load_dotenv()
    console.print(Config.from_env().get_policy_summary())


if __name__ == "__main__":
    app()
