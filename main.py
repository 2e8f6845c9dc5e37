#!/usr/bin/env python3
"""Dossier Core CLI - operator entry point for the dossier lifecycle core.

Usage:
    # Show the status catalogue
    python main.py statuses

    # Check SMS gateway configuration
    python main.py gateways

    # Run the task deadline checks once, or daily
    python main.py deadlines
    python main.py deadlines --loop

    # Preview an SMS text
    python main.py render-template dossier_status_changed -v dossierTitle="Titre de séjour" -v statut=Accepté

    # Allocate the next dossier number for a day
    python main.py allocate-number --date 2025-01-15
"""

import sys
import logging
from datetime import datetime
from typing import Optional, Tuple

try:
    import click
    from rich.console import Console
    from rich.logging import RichHandler
    from rich.panel import Panel
    from rich.table import Table
except ImportError:
    print("Missing dependencies. Run: pip install click rich")
    sys.exit(1)

from contracts import DossierStatus, TERMINAL_STATUSES
from lifecycle import required_action, status_label
from notifications import DailyScheduler, DeadlineMonitor, SmsNotifier
from orchestrator import get_dossier_service, reset_dossier_service
from providers import ConsoleGateway, list_gateways
from store import get_store
from config import settings


console = Console()


def parse_variables(pairs: Tuple[str, ...]) -> dict:
    """Parse key=value pairs into a dict.

    Args:
        pairs: Raw `key=value` strings

    Returns:
        Mapping of variable name to value
    """
    variables = {}
    for pair in pairs:
        if "=" not in pair:
            raise click.BadParameter(f"Expected key=value, got: {pair}")
        key, value = pair.split("=", 1)
        variables[key.strip()] = value
    return variables


@click.group()
@click.option(
    "--log-level",
    default=None,
    help="Log level (DEBUG, INFO, WARNING). Defaults to settings.log_level"
)
@click.option(
    "--store", "store_backend",
    default=None,
    help="Record store backend (memory, mongo). Defaults to settings.store_backend"
)
def cli(log_level: Optional[str], store_backend: Optional[str]):
    """Dossier lifecycle core: operator commands."""
    logging.basicConfig(
        level=(log_level or settings.log_level).upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )
    if store_backend:
        reset_dossier_service(store=get_store(store_backend))


@cli.command()
def statuses():
    """List dossier statuses with their labels and required capability."""
    table = Table(title="Dossier statuses")
    table.add_column("Status")
    table.add_column("Label")
    table.add_column("Terminal", justify="center")
    table.add_column("Requires")

    for status in DossierStatus:
        table.add_row(
            status.value,
            status_label(status),
            "[red]yes[/red]" if status in TERMINAL_STATUSES else "",
            required_action(status).value,
        )
    console.print(table)


@cli.command()
def gateways():
    """Show SMS gateways and whether they are configured."""
    console.print("[bold]Available SMS gateways:[/bold]\n")
    for name, available in list_gateways().items():
        status = "[green]available[/green]" if available else "[red]not configured[/red]"
        marker = " (selected)" if name == settings.sms_provider else ""
        console.print(f"  {name:12} {status}{marker}")
    console.print("\n[dim]Configure Twilio via environment variables:[/dim]")
    console.print("  DOSSIER_CORE_TWILIO_ACCOUNT_SID, DOSSIER_CORE_TWILIO_AUTH_TOKEN, DOSSIER_CORE_TWILIO_FROM_NUMBER")


@cli.command()
@click.option("--loop", is_flag=True, help="Keep running and re-check at every midnight")
@click.option("--max-runs", type=int, default=None, help="Stop the loop after this many runs")
def deadlines(loop: bool, max_runs: Optional[int]):
    """Send task deadline reminders and overdue alerts."""
    service = get_dossier_service()
    monitor = DeadlineMonitor(service.store, service.notifications, service.dispatcher)

    if loop:
        console.print(Panel.fit("[bold]Deadline monitor[/bold]\nRunning now, then daily at midnight"))
        DailyScheduler([monitor.check_task_deadlines, monitor.check_overdue_tasks]).run_forever(max_runs)
        return

    result = monitor.run_daily()
    reminders = result["deadlines"]
    overdue = result["overdue"]
    console.print(f"[green]Reminders sent:[/green] {reminders.get('notifications_sent', 0)}")
    console.print(f"[green]Overdue tasks:[/green] {overdue.get('count', 0)}")
    console.print(f"[green]Overdue notifications:[/green] {overdue.get('notifications_sent', 0)}")
    console.print(f"[green]Overdue SMS:[/green] {overdue.get('sms_sent', 0)}")


@cli.command("render-template")
@click.argument("code")
@click.option("--var", "-v", "pairs", multiple=True, help="Template variable as key=value (repeatable)")
def render_template(code: str, pairs: Tuple[str, ...]):
    """Render the SMS text for a template code without sending it."""
    service = get_dossier_service()
    notifier = SmsNotifier(service.store, gateway=ConsoleGateway())
    template_code, name, message = notifier.render(code, parse_variables(pairs))
    console.print(Panel(message, title=f"{template_code} ({name})"))


@cli.command("allocate-number")
@click.option("--date", "for_date", default=None, help="Day as YYYY-MM-DD (defaults to today)")
def allocate_number(for_date: Optional[str]):
    """Allocate the next dossier number for a day."""
    day = datetime.now()
    if for_date:
        try:
            day = datetime.strptime(for_date, "%Y-%m-%d")
        except ValueError:
            raise click.BadParameter("Expected YYYY-MM-DD", param_hint="--date")
    number = get_dossier_service().allocator.allocate(day)
    console.print(f"[bold]{number}[/bold]")


if __name__ == "__main__":
    cli()
