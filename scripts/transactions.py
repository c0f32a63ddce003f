#!/usr/bin/env python3
"""
Transaction ledger commands.

Report a client-side submission or confirmation, retry a failed transfer,
list a habit's transactions, summarize an owner's ledger.
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
from rich.table import Table

from stakeshame.core.config import Config
from stakeshame.core.errors import StakeShameError
from stakeshame.service import HabitService

app = typer.Typer(help="Transaction status, retry and listing")
console = Console()


def _service(with_network: bool = True) -> HabitService:
    load_dotenv()
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO"),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    return HabitService.from_config(Config.from_env(), with_network=with_network, with_watcher=False)


@app.command()
def status(
    tx_id: int = typer.Argument(..., help="Transaction ID"),
    new_status: str = typer.Argument(..., help="pending | confirmed | failed"),
    block_ref: Optional[str] = typer.Option(None, "--block", "-b", help="Block / slot reference"),
    external_hash: Optional[str] = typer.Option(None, "--hash", help="Transaction signature"),
):
    """Report a transaction's status."""
    service = _service(with_network=False)
    try:
        tx = service.transaction_status(tx_id, new_status.lower(), block_ref=block_ref, external_hash=external_hash)
    except StakeShameError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    console.print(f"[green]Transaction #{tx['id']} is {tx['status']}[/green]")


@app.command()
def retry(tx_id: int = typer.Argument(..., help="Transaction ID")):
    """Resubmit a failed transaction under the same ID."""
    service = _service()
    try:
        result = service.transaction_retry(tx_id)
    except StakeShameError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    finally:
        service.shutdown()

    tx = result["transaction"]
    console.print(f"[green]Transaction #{tx['id']} resubmitted (attempt {tx['attempts']})[/green]")
    if tx["external_hash"]:
        console.print(f"Signature: {tx['external_hash']}")
    else:
        payload = result["submission_payload"]
        console.print(f"Sign and submit: {payload['from']} -> {payload['to']} ({payload['lamports']} lamports)")


@app.command("list")
def list_transactions(
    habit_id: int = typer.Argument(..., help="Habit ID"),
    status_filter: Optional[str] = typer.Option(None, "--status", "-s", help="Filter by status"),
    limit: int = typer.Option(20, "--limit", "-l", help="Max rows"),
):
    """List a habit's transactions, newest first."""
    service = _service(with_network=False)
    try:
        rows = service.list_transactions(habit_id, status=status_filter, limit=limit)
    except StakeShameError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    if not rows:
        console.print("[yellow]No transactions.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("ID", justify="right")
    table.add_column("Type")
    table.add_column("Amount", justify="right")
    table.add_column("Status")
    table.add_column("Attempts", justify="right")
    table.add_column("Signature")
    table.add_column("Created")

    colors = {"confirmed": "green", "failed": "red", "pending": "yellow"}
    for tx in rows:
        color = colors.get(tx["status"], "white")
        table.add_row(
            str(tx["id"]),
            tx["type"],
            f"{tx['amount']} {tx['currency']}",
            f"[{color}]{tx['status']}[/{color}]",
            str(tx["attempts"]),
            (tx["external_hash"] or "-")[:16],
            tx["created_at"] or "-",
        )

    console.print(table)


@app.command()
def summary(owner_id: int = typer.Argument(..., help="Owner ID")):
    """Count, total and average per transaction type for an owner."""
    service = _service(with_network=False)
    try:
        result = service.transaction_summary(owner_id)
    except StakeShameError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    if not result["by_type"]:
        console.print("[yellow]No transactions.[/yellow]")
        return

    currency = result["currency"]
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Type")
    table.add_column("Count", justify="right")
    table.add_column("Total", justify="right")
    table.add_column("Average", justify="right")
    table.add_column("Last")

    for tx_type, entry in result["by_type"].items():
        table.add_row(
            tx_type,
            str(entry["count"]),
            f"{entry['total_amount']} {currency}",
            f"{entry['average_amount']} {currency}",
            entry["last_transaction"] or "-",
        )

    console.print(table)
    statuses = ", ".join(f"{status}: {count}" for status, count in result["by_status"].items())
    console.print(f"By status: {statuses}")


@app.command()
def analytics(
    owner_id: int = typer.Argument(..., help="Owner ID"),
    period: str = typer.Option("30d", "--period", "-p", help="7d | 30d | 90d"),
):
    """Daily transaction activity per type over a recent period."""
    service = _service(with_network=False)
    try:
        result = service.transaction_analytics(owner_id, period)
    except StakeShameError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    if not result["by_type"]:
        console.print(f"[yellow]No transactions in the last {period}.[/yellow]")
        return

    currency = result["currency"]
    for tx_type, entry in result["by_type"].items():
        console.print(
            f"\n[bold]{tx_type}[/bold]: {entry['total_count']} transactions, "
            f"{entry['total_amount']} {currency}"
        )
        for day in entry["daily"]:
            console.print(f"  {day['date']}  {day['count']:>3}  {day['total_amount']} {currency}")
    console.print()


if __name__ == "__main__":
    app()
