"""Command-line interface for teamsync maintenance tasks."""

from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from teamsync.activity.recorder import ActivityRecorder
from teamsync.admin.views import AdminViews
from teamsync.invitations.service import InvitationManager
from teamsync.logging_config import configure_logging, get_logger
from teamsync.membership.engine import MembershipEngine
from teamsync.storage.db import db

# Configure logging
configure_logging()
logger = get_logger(__name__)

# Create Typer app
app = typer.Typer(
    name="teamsync",
    help="teamsync - team membership consistency and maintenance",
    no_args_is_help=True,
)

# Rich console for pretty output
console = Console()


@app.command("init")
def init_database() -> None:
    """Initialize the database and create tables."""
    console.print("[bold blue]Initializing database...[/bold blue]")
    db.create_tables()
    console.print("[bold green]✓[/bold green] Database initialized successfully")


@app.command("purge-activity")
def purge_activity() -> None:
    """Delete activity log rows older than the retention window."""
    count = ActivityRecorder(db).purge_expired()
    console.print(f"[bold green]✓[/bold green] Purged {count} activity log entries")


@app.command("expire-invitations")
def expire_invitations() -> None:
    """Mark pending invitations older than the TTL as expired."""
    count = InvitationManager(db).expire_stale_invitations()
    console.print(f"[bold green]✓[/bold green] Expired {count} invitations")


@app.command("drain-profile-sync")
def drain_profile_sync(
    limit: Annotated[int, typer.Option("--limit", "-l", help="Maximum tasks to process")] = 100,
) -> None:
    """Retry pending profile fan-out tasks."""
    report = MembershipEngine(db).sync.drain(limit=limit)
    console.print(
        f"[bold green]✓[/bold green] Processed {report.processed}, "
        f"failed {report.failed}, remaining {report.remaining}"
    )
    if report.failed:
        raise typer.Exit(1)


@app.command("check-memberships")
def check_memberships() -> None:
    """Report user/team pairs whose membership copies disagree."""
    discrepancies = MembershipEngine(db).check_consistency()

    if not discrepancies:
        console.print("[bold green]✓[/bold green] All memberships consistent")
        return

    table = Table(title="Membership Discrepancies")
    table.add_column("Team", style="cyan", justify="right")
    table.add_column("User", style="cyan", justify="right")
    table.add_column("Kind", style="yellow")
    table.add_column("Team Role")
    table.add_column("User Role")

    for item in discrepancies:
        table.add_row(
            str(item.team_id),
            str(item.user_id),
            item.kind.value,
            item.team_role.value if item.team_role else "-",
            item.user_role.value if item.user_role else "-",
        )

    console.print(table)
    raise typer.Exit(1)


@app.command("stats")
def show_stats() -> None:
    """Show dashboard totals and the most recent users and teams."""
    stats = AdminViews(db).dashboard_stats()

    console.print(f"[bold]Users:[/bold] {stats.total_users}")
    console.print(f"[bold]Teams:[/bold] {stats.total_teams}")

    if stats.recent_users:
        table = Table(title="Recent Users")
        table.add_column("ID", style="cyan")
        table.add_column("Email", style="green")
        table.add_column("Role")
        table.add_column("Teams", justify="right")
        table.add_column("Created At")
        for user in stats.recent_users:
            table.add_row(
                str(user.id),
                user.email,
                user.role.value,
                str(len(user.team_memberships)),
                user.created_at.strftime("%Y-%m-%d %H:%M"),
            )
        console.print(table)

    if stats.recent_teams:
        table = Table(title="Recent Teams")
        table.add_column("ID", style="cyan")
        table.add_column("Name", style="green")
        table.add_column("Members", justify="right")
        table.add_column("Plan")
        table.add_column("Created At")
        for team in stats.recent_teams:
            table.add_row(
                str(team.id),
                team.name,
                str(team.member_count),
                team.plan_name or "-",
                team.created_at.strftime("%Y-%m-%d %H:%M"),
            )
        console.print(table)


if __name__ == "__main__":
    app()
