"""
Payments CLI.

Operator commands for notifications and order locks.
"""

import sys
from pathlib import Path

# Add backend to path for imports
sys.path.insert(0, str(Path(__file__).parent))

import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(
    name="payments",
    help="Payments notification and order lock operations",
    add_completion=False,
)
console = Console()


def _database_mutex():
    """The database mutex backend, which is the one with inspectable rows."""
    from shared.infrastructure.db import SessionLocal
    from payments_api.services.payments.order_mutex import DatabaseOrderMutex
    from shared.config.settings import settings

    return DatabaseOrderMutex(
        SessionLocal,
        timeout=settings.order_mutex_timeout_seconds,
        poll_interval=settings.order_mutex_poll_interval,
        stale_after=settings.order_mutex_stale_after_seconds,
    )


# =============================================================================
# Notification Commands
# =============================================================================

@app.command()
def notifications_pending(
    min_age: float = typer.Option(0.0, help="Only show notifications older than this many seconds"),
    limit: int = typer.Option(50, help="Max notifications to list"),
):
    """List stored notifications that were never applied."""
    from shared.infrastructure.db import get_db_context
    from payments_api.services.payments.notification_store import NotificationStore

    with get_db_context() as db:
        pending = NotificationStore(db).list_unapplied(older_than_seconds=min_age, limit=limit)

        if not pending:
            console.print("[green]✓ No unapplied notifications[/green]")
            return

        table = Table(title="Unapplied Notifications")
        table.add_column("ID", style="cyan")
        table.add_column("Order", style="cyan")
        table.add_column("Event", style="yellow")
        table.add_column("Success")
        table.add_column("PSP Reference")
        table.add_column("Received", style="dim")

        for notification in pending:
            table.add_row(
                str(notification.id),
                notification.merchant_reference,
                notification.event_code,
                "✓" if notification.success else "✗",
                notification.psp_reference,
                str(notification.created_at),
            )

        console.print(table)


@app.command()
def notifications_reprocess(
    min_age: float = typer.Option(0.0, help="Only reprocess notifications older than this many seconds"),
    batch_size: int = typer.Option(50, help="Max notifications to reprocess"),
):
    """Apply unapplied notifications now (one sweeper pass)."""
    from shared.infrastructure.db import SessionLocal
    from shared.config.logging import setup_logging
    from shared.config.settings import settings
    from payments_api.services.payments.order_mutex import build_order_mutex
    from payments_api.services.payments.sweeper import sweep_unapplied_notifications

    setup_logging()
    result = sweep_unapplied_notifications(
        SessionLocal,
        build_order_mutex(settings),
        min_age_seconds=min_age,
        batch_size=batch_size,
    )

    table = Table(title="Reprocessing Results")
    table.add_column("Action", style="cyan")
    table.add_column("Count", style="green")

    table.add_row("Scanned", str(result.scanned))
    table.add_row("Applied", str(result.applied))
    table.add_row("Already applied", str(result.skipped))
    table.add_row("Deferred (order locked)", str(len(result.deferred)))

    console.print(table)

    if result.deferred:
        console.print(f"[yellow]Deferred notification ids: {result.deferred}[/yellow]")
        raise typer.Exit(1)


# =============================================================================
# Order Lock Commands
# =============================================================================

@app.command()
def mutex_list():
    """Show order locks held in the database."""
    rows = _database_mutex().list_held()

    if not rows:
        console.print("[green]✓ No order locks held[/green]")
        return

    table = Table(title="Held Order Locks")
    table.add_column("Order", style="cyan")
    table.add_column("Owner", style="dim")
    table.add_column("Acquired At", style="yellow")

    for row in rows:
        table.add_row(row.order_key, row.owner, str(row.acquired_at))

    console.print(table)


@app.command()
def mutex_release(
    order: str = typer.Argument(..., help="Order number whose lock should be released"),
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation"),
):
    """Release an order lock left behind by a crashed worker."""
    if not force and not typer.confirm(f"Release the lock on order {order}?"):
        raise typer.Exit(1)

    if _database_mutex().force_release(order):
        console.print(f"[green]✓ Lock on {order} released[/green]")
    else:
        console.print(f"[yellow]No lock held on {order}[/yellow]")


# =============================================================================
# Configuration Commands
# =============================================================================

@app.command()
def check_config():
    """Validate gateway and notification credentials."""
    from shared.config.settings import settings

    errors = settings.validate_production_secrets()

    table = Table(title=f"Configuration ({settings.environment})")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Database", settings.database_url.split("@")[-1])
    table.add_row("Order mutex backend", settings.order_mutex_backend)
    table.add_row("Order mutex timeout", f"{settings.order_mutex_timeout_seconds}s")
    table.add_row("Merchant account", settings.adyen_merchant_account or "-")
    table.add_row("Gateway API", settings.adyen_api_base_url)
    table.add_row("Sweeper", "enabled" if settings.notification_sweep_enabled else "disabled")

    console.print(table)

    if errors:
        for error in errors:
            console.print(f"[red]✗ {error}[/red]")
        raise typer.Exit(1)

    console.print("[green]✓ Configuration is complete[/green]")


@app.command()
def version():
    """Show version information."""
    table = Table(title="Payments Version")
    table.add_column("Component", style="cyan")
    table.add_column("Version", style="green")

    table.add_row("API", "0.1.0")
    table.add_row("Python", sys.version.split()[0])

    console.print(table)


if __name__ == "__main__":
    app()
