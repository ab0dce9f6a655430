"""Main CLI entry point using Typer."""

import asyncio
import logging
import sys
from typing import List, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..app import Services, build_services
from ..errors import DeletionGuardError
from ..models.actor import Actor
from ..models.deletion_request import DeletionRequest, RequestStatus
from ..utils.logging import setup_logging
from ..utils.timeutil import format_duration, format_size, utc_now
from .config import Config

logger = logging.getLogger(__name__)

# Create Typer app
app = typer.Typer(
    name="event-deletion",
    help="Event Deletion Guard - grace-period deletion, backup and recovery of events",
    add_completion=False,
)

# Create Rich console for output
console = Console()

# Global config
config: Optional[Config] = None

STATUS_STYLES = {
    RequestStatus.SCHEDULED: "yellow",
    RequestStatus.CANCELLED: "dim",
    RequestStatus.EXECUTING: "bold magenta",
    RequestStatus.COMPLETED: "green",
    RequestStatus.FAILED: "bold red",
}

# Actor options shared by commands that record who acted
ACTOR_ID = typer.Option("operator", "--actor-id", help="Identifier of the acting user")
ACTOR_NAME = typer.Option("CLI Operator", "--actor-name", help="Display name of the acting user")
ACTOR_EMAIL = typer.Option("operator@localhost", "--actor-email", help="Email of the acting user")
ACTOR_ROLE = typer.Option("admin", "--actor-role", help="Role of the acting user")


def _get_config() -> Config:
    global config
    if config is None:
        config = Config.load()
    return config


def _services() -> Services:
    return build_services(_get_config())


def _fail(message: str, code: int = 1) -> None:
    console.print(f"✗ {message}", style="bold red")
    raise typer.Exit(code=code)


def _unexpected(action: str, error: Exception) -> None:
    console.print(f"✗ Error {action}: {error}", style="bold red")
    logger.exception("Error %s", action)
    raise typer.Exit(code=2)


def _fmt_time(value) -> str:
    if value is None:
        return "-"
    return value.strftime("%Y-%m-%d %H:%M:%S UTC")


@app.callback()
def main(
    config_file: Optional[str] = typer.Option(None, "--config", help="Path to config file (default: ~/.event-deletion/config.yaml)"),
    storage_path: Optional[str] = typer.Option(
        None,
        "--storage-path",
        help="Base directory for data, backups and audit logs (default: ~/.event-deletion or $EVENT_DELETION_STORAGE_PATH)",
    ),
    profile: Optional[str] = typer.Option(None, "--profile", "-p", help="AWS profile name for the s3 backup backend"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress output except errors"),
    no_color: bool = typer.Option(False, "--no-color", help="Disable colored output"),
):
    """Event Deletion Guard - grace-period deletion, backup and recovery of events."""
    global config

    # Load configuration
    try:
        config = Config.load(config_file)
    except ValueError as e:
        _fail(f"Invalid configuration: {e}")

    # Override with CLI options
    if profile:
        config.aws_profile = profile
    if storage_path:
        config.storage_path = storage_path

    # Setup logging
    log_level = "ERROR" if quiet else ("DEBUG" if verbose else config.log_level)
    setup_logging(level=log_level, verbose=verbose)

    # Disable colors if requested
    if no_color:
        console.no_color = True


@app.command()
def version():
    """Show version information."""
    import boto3

    from .. import __version__

    console.print(f"event-deletion-guard version {__version__}")
    console.print(f"Python {sys.version.split()[0]}")
    console.print(f"boto3 {boto3.__version__}")


# ============================================================================
# Backup Commands
# ============================================================================

backup_app = typer.Typer(help="Backup listing, inspection, restore and removal")
app.add_typer(backup_app, name="backup")


@backup_app.callback()
def backup_main(
    storage_path: Optional[str] = typer.Option(None, "--storage-path", help="Base directory for data and backups"),
):
    """Backup listing, inspection, restore and removal."""
    current = _get_config()
    if storage_path:
        current.storage_path = storage_path


@backup_app.command("list")
def backup_list():
    """List backup artifacts, newest first."""
    try:
        summaries = asyncio.run(_services().recovery.list_backups())

        if not summaries:
            console.print("No backups found", style="yellow")
            return

        table = Table(title="Event Backups", show_header=True, header_style="bold cyan")
        table.add_column("Backup ID", style="cyan")
        table.add_column("Event")
        table.add_column("Event ID", style="dim")
        table.add_column("Created")
        table.add_column("Records", justify="right")
        table.add_column("Size", justify="right")

        for summary in summaries:
            table.add_row(
                summary.backup_id,
                summary.target_name,
                summary.target_id,
                _fmt_time(summary.created_at),
                str(summary.total_records),
                format_size(summary.size_bytes),
            )

        console.print(table)
        console.print(f"\nTotal: {len(summaries)} backup(s)")

    except typer.Exit:
        raise
    except DeletionGuardError as e:
        _fail(e.message)
    except Exception as e:
        _unexpected("listing backups", e)


@backup_app.command("details")
def backup_details(
    backup_id: str = typer.Argument(..., help="Backup ID (or a unique part of it)"),
):
    """Show per-collection contents of a backup."""
    try:
        details = asyncio.run(_services().recovery.details(backup_id))
        summary = details.summary

        console.print(
            Panel(
                f"[bold]Event:[/bold] {summary.target_name} ({summary.target_id})\n"
                f"[bold]Created:[/bold] {_fmt_time(summary.created_at)}\n"
                f"[bold]Size:[/bold] {format_size(summary.size_bytes)}\n"
                f"[bold]Registry version:[/bold] {details.registry_version}\n"
                f"[bold]Format version:[/bold] {details.format_version}",
                title=f"[bold cyan]{summary.backup_id}[/bold cyan]",
                border_style="cyan",
            )
        )

        table = Table(show_header=True, header_style="bold cyan")
        table.add_column("Collection", style="cyan")
        table.add_column("Records", justify="right")
        table.add_column("Sample ID", style="dim")
        for collection in details.collections:
            sample_id = str(collection.sample_record.get("id", "-")) if collection.sample_record else "-"
            table.add_row(collection.collection, str(collection.record_count), sample_id)
        console.print(table)
        console.print(f"\nTotal records: {summary.total_records}")

    except typer.Exit:
        raise
    except DeletionGuardError as e:
        _fail(e.message)
    except Exception as e:
        _unexpected("reading backup", e)


@backup_app.command("restore")
def backup_restore(
    backup_id: str = typer.Argument(..., help="Backup ID (or a unique part of it)"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show what would be restored without writing"),
    new_id: Optional[str] = typer.Option(None, "--new-id", help="Restore the event under a new ID"),
    collection: Optional[List[str]] = typer.Option(
        None, "--collection", "-c", help="Only restore this collection (repeatable)"
    ),
    overwrite: bool = typer.Option(False, "--overwrite", help="Overwrite records that already exist"),
):
    """Restore an event and its dependents from a backup."""
    try:
        result = asyncio.run(
            _services().recovery.restore(
                backup_id,
                dry_run=dry_run,
                collections=collection or None,
                new_target_id=new_id,
                skip_existing=not overwrite,
            )
        )

        prefix = "[DRY RUN] " if dry_run else ""
        console.print(f"\n{prefix}Restore of [bold]{result.backup_id}[/bold] as event [bold]{result.target_id}[/bold]")
        console.print(f"  Collections processed: {result.collections_processed}")
        console.print(f"  Records restored: {result.records_restored}")
        console.print(f"  Records skipped: {result.records_skipped}")

        if result.has_errors:
            for error in result.errors:
                console.print(f"  ✗ {error.collection}: {error.error}", style="red")
            result.raise_for_errors()

        console.print(f"✓ {prefix}Restore complete", style="green")

    except typer.Exit:
        raise
    except DeletionGuardError as e:
        _fail(e.message)
    except Exception as e:
        _unexpected("restoring backup", e)


@backup_app.command("delete")
def backup_delete(
    backup_id: str = typer.Argument(..., help="Backup ID (or a unique part of it)"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt"),
):
    """Permanently delete a backup."""
    try:
        services = _services()
        details = asyncio.run(services.recovery.details(backup_id))
        summary = details.summary

        # Confirm deletion
        if not yes:
            console.print("\n[yellow]⚠️  About to permanently delete backup:[/yellow]")
            console.print(f"  ID: {summary.backup_id}")
            console.print(f"  Event: {summary.target_name} ({summary.target_id})")
            console.print(f"  Created: {_fmt_time(summary.created_at)}")
            console.print(f"  Records: {summary.total_records}\n")

            confirm = typer.confirm("Are you sure you want to delete this backup?")
            if not confirm:
                console.print("Cancelled")
                raise typer.Exit(code=0)

        asyncio.run(services.recovery.delete(summary.backup_id))
        console.print(f"✓ Deleted backup [bold]{summary.backup_id}[/bold]", style="green")

    except typer.Exit:
        raise
    except DeletionGuardError as e:
        _fail(e.message)
    except Exception as e:
        _unexpected("deleting backup", e)


# ============================================================================
# Deletion Commands
# ============================================================================

deletion_app = typer.Typer(help="Scheduled event deletion commands")
app.add_typer(deletion_app, name="deletion")


def _print_request(request: DeletionRequest) -> None:
    now = utc_now()
    style = STATUS_STYLES[request.status]
    lines = [
        f"[bold]Request:[/bold] {request.request_id}",
        f"[bold]Event:[/bold] {request.target.name} ({request.target_id})",
        f"[bold]Status:[/bold] [{style}]{request.status.value}[/{style}]",
        f"[bold]Scheduled:[/bold] {_fmt_time(request.scheduled_at)} by {request.initiator.email}",
        f"[bold]Executes:[/bold] {_fmt_time(request.execute_at)}",
    ]
    if request.status == RequestStatus.SCHEDULED:
        lines.append(f"[bold]Remaining:[/bold] {request.remaining_time_formatted(now)}")
    if request.cancelled_at:
        by = request.cancelled_by.email if request.cancelled_by else "unknown"
        lines.append(f"[bold]Cancelled:[/bold] {_fmt_time(request.cancelled_at)} by {by}")
        if request.cancellation_reason:
            lines.append(f"[bold]Reason:[/bold] {request.cancellation_reason}")
    if request.statistics:
        lines.append(
            f"[bold]Records deleted:[/bold] {request.statistics.total_records} "
            f"in {len(request.statistics.collections_deleted)} collection(s)"
        )
    if request.backup_id:
        lines.append(f"[bold]Backup:[/bold] {request.backup_id}")
    if request.execution_error:
        lines.append(f"[bold red]Error:[/bold red] {request.execution_error.get('message')}")

    console.print(Panel("\n".join(lines), title="[bold cyan]Deletion Request[/bold cyan]", border_style="cyan"))

    if request.security_checks and request.security_checks.warnings:
        for warning in request.security_checks.warnings:
            console.print(f"  ⚠️  {warning}", style="yellow")


@deletion_app.command("schedule")
def deletion_schedule(
    target_id: str = typer.Argument(..., help="Event ID to delete"),
    grace_hours: Optional[float] = typer.Option(None, "--grace-hours", "-g", help="Grace period in hours (default: from config)"),
    skip_backup: bool = typer.Option(False, "--skip-backup", help="Do not back up the event before deleting it"),
    actor_id: str = ACTOR_ID,
    actor_name: str = ACTOR_NAME,
    actor_email: str = ACTOR_EMAIL,
    actor_role: str = ACTOR_ROLE,
):
    """Schedule deletion of an event after a grace period."""
    try:
        current = _get_config()
        hours = grace_hours if grace_hours is not None else current.default_grace_hours
        actor = Actor(id=actor_id, name=actor_name, email=actor_email, role=actor_role)

        request = asyncio.run(_services().requests.schedule(target_id, actor, hours, skip_backup=skip_backup))

        console.print(f"✓ Deletion of [bold]{request.target.name}[/bold] scheduled", style="green")
        _print_request(request)
        console.print(f"\nCancel with: event-deletion deletion cancel {request.request_id}")

    except typer.Exit:
        raise
    except (DeletionGuardError, ValueError) as e:
        _fail(getattr(e, "message", str(e)))
    except Exception as e:
        _unexpected("scheduling deletion", e)


@deletion_app.command("cancel")
def deletion_cancel(
    request_id: str = typer.Argument(..., help="Deletion request ID"),
    reason: Optional[str] = typer.Option(None, "--reason", "-r", help="Why the deletion is cancelled"),
    actor_id: str = ACTOR_ID,
    actor_name: str = ACTOR_NAME,
    actor_email: str = ACTOR_EMAIL,
    actor_role: str = ACTOR_ROLE,
):
    """Cancel a scheduled deletion during its grace period."""
    try:
        actor = Actor(id=actor_id, name=actor_name, email=actor_email, role=actor_role)
        request = asyncio.run(_services().requests.cancel(request_id, actor, reason))
        console.print(f"✓ Deletion of [bold]{request.target.name}[/bold] cancelled", style="green")

    except typer.Exit:
        raise
    except DeletionGuardError as e:
        _fail(e.message)
    except Exception as e:
        _unexpected("cancelling deletion", e)


@deletion_app.command("status")
def deletion_status(
    target_id: str = typer.Argument(..., help="Event ID"),
    actor_id: str = ACTOR_ID,
    actor_name: str = ACTOR_NAME,
    actor_email: str = ACTOR_EMAIL,
    actor_role: str = ACTOR_ROLE,
):
    """Show the latest deletion request for an event."""
    try:
        actor = Actor(id=actor_id, name=actor_name, email=actor_email, role=actor_role)
        request = asyncio.run(_services().manager.deletion_status(target_id, actor))

        if request is None:
            console.print(f"No deletion requests for event {target_id}", style="yellow")
            return
        _print_request(request)

    except typer.Exit:
        raise
    except DeletionGuardError as e:
        _fail(e.message)
    except Exception as e:
        _unexpected("reading deletion status", e)


@deletion_app.command("list")
def deletion_list(
    status: Optional[str] = typer.Option(None, "--status", "-s", help="Only requests with this status"),
    limit: int = typer.Option(100, "--limit", "-n", help="Maximum number of requests"),
):
    """List deletion requests, newest first."""
    try:
        status_filter = None
        if status:
            try:
                status_filter = RequestStatus(status)
            except ValueError:
                valid = ", ".join(s.value for s in RequestStatus)
                _fail(f"Invalid status '{status}'. Use one of: {valid}")

        services = _services()
        requests = asyncio.run(services.requests.list_requests(limit=limit, status=status_filter))

        if not requests:
            console.print("No deletion requests found", style="yellow")
            return

        now = utc_now()
        table = Table(title="Deletion Requests", show_header=True, header_style="bold cyan")
        table.add_column("Request ID", style="dim")
        table.add_column("Event")
        table.add_column("Status")
        table.add_column("Scheduled")
        table.add_column("Executes")
        table.add_column("Remaining", justify="right")
        table.add_column("Initiator")

        for request in requests:
            style = STATUS_STYLES[request.status]
            remaining = format_duration(request.remaining_time(now)) if request.status == RequestStatus.SCHEDULED else "-"
            table.add_row(
                request.request_id,
                f"{request.target.name} ({request.target_id})",
                f"[{style}]{request.status.value}[/{style}]",
                _fmt_time(request.scheduled_at),
                _fmt_time(request.execute_at),
                remaining,
                request.initiator.email,
            )

        console.print(table)

    except typer.Exit:
        raise
    except DeletionGuardError as e:
        _fail(e.message)
    except Exception as e:
        _unexpected("listing deletion requests", e)


@deletion_app.command("preview")
def deletion_preview(
    target_id: str = typer.Argument(..., help="Event ID"),
):
    """Show what deleting an event would remove, without deleting anything."""
    try:
        preview = asyncio.run(_services().manager.preview(target_id))
        checks = preview.security_checks

        risk_style = {"HIGH": "bold red", "MEDIUM": "yellow", "LOW": "green"}[checks.risk_level]
        console.print(
            Panel(
                f"[bold]Event:[/bold] {preview.target_name} ({preview.target_id})\n"
                f"[bold]Risk level:[/bold] [{risk_style}]{checks.risk_level}[/{risk_style}]\n"
                f"[bold]Registrations:[/bold] {checks.dependent_count if checks.dependent_count is not None else 'unknown'}\n"
                f"[bold]Recent payments:[/bold] {checks.recent_payment_count if checks.recent_payment_count is not None else 'unknown'}\n"
                f"[bold]Live:[/bold] {'Yes' if checks.is_live else 'No'}",
                title="[bold cyan]DRY RUN - Deletion Preview[/bold cyan]",
                border_style="cyan",
            )
        )

        for warning in checks.warnings:
            console.print(f"  ⚠️  {warning}", style="yellow")

        if preview.statistics.record_counts:
            table = Table(show_header=True, header_style="bold cyan")
            table.add_column("Collection", style="cyan")
            table.add_column("Records", justify="right")
            for name, count in preview.statistics.record_counts.items():
                table.add_row(name, str(count))
            console.print(table)
        console.print(f"\nTotal records: {preview.statistics.total_records}")

        if preview.active_request:
            console.print(
                f"\nDeletion already {preview.active_request.status.value}: {preview.active_request.request_id}",
                style="yellow",
            )

    except typer.Exit:
        raise
    except DeletionGuardError as e:
        _fail(e.message)
    except Exception as e:
        _unexpected("previewing deletion", e)


@deletion_app.command("force-delete")
def deletion_force_delete(
    target_id: str = typer.Argument(..., help="Event ID to delete immediately"),
    skip_backup: bool = typer.Option(False, "--skip-backup", help="Do not back up the event before deleting it"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt"),
    actor_id: str = ACTOR_ID,
    actor_name: str = ACTOR_NAME,
    actor_email: str = ACTOR_EMAIL,
    actor_role: str = ACTOR_ROLE,
):
    """Delete an event immediately, bypassing the grace period (admin only)."""
    try:
        if not yes:
            console.print(f"\n[bold red]⚠️  Event {target_id} will be deleted IMMEDIATELY with no grace period.[/bold red]")
            confirm = typer.confirm("Are you sure?")
            if not confirm:
                console.print("Cancelled")
                raise typer.Exit(code=0)

        actor = Actor(id=actor_id, name=actor_name, email=actor_email, role=actor_role)
        result = asyncio.run(_services().manager.force_delete(target_id, actor, skip_backup=skip_backup))

        console.print(
            f"✓ Event [bold]{result.target_name}[/bold] deleted: {result.statistics.total_records} records",
            style="green",
        )
        if result.backup_id:
            console.print(f"  Backup: {result.backup_id}")

    except typer.Exit:
        raise
    except DeletionGuardError as e:
        _fail(e.message)
    except Exception as e:
        _unexpected("force-deleting event", e)


@deletion_app.command("force-process")
def deletion_force_process(
    request_id: str = typer.Argument(..., help="Scheduled deletion request ID"),
):
    """Execute a scheduled deletion now instead of waiting for its grace period."""
    try:
        request = asyncio.run(_services().executor.force_process(request_id))
        if request is None:
            _fail(f"Deletion request {request_id} was not executed")
        _print_request(request)
        if request.status == RequestStatus.FAILED:
            raise typer.Exit(code=1)

    except typer.Exit:
        raise
    except DeletionGuardError as e:
        _fail(e.message)
    except Exception as e:
        _unexpected("processing deletion", e)


@deletion_app.command("mark-failed")
def deletion_mark_failed(
    request_id: str = typer.Argument(..., help="Deletion request stuck in executing"),
    reason: str = typer.Option(..., "--reason", "-r", help="Why the request is being marked failed"),
    actor_id: str = ACTOR_ID,
    actor_name: str = ACTOR_NAME,
    actor_email: str = ACTOR_EMAIL,
    actor_role: str = ACTOR_ROLE,
):
    """Mark a request left in executing by a crashed worker as failed."""
    try:
        actor = Actor(id=actor_id, name=actor_name, email=actor_email, role=actor_role)
        request = asyncio.run(_services().requests.resolve_stuck(request_id, actor, reason))
        console.print(f"✓ Deletion request {request.request_id} marked failed", style="green")

    except typer.Exit:
        raise
    except DeletionGuardError as e:
        _fail(e.message)
    except Exception as e:
        _unexpected("resolving deletion request", e)


# ============================================================================
# Audit Commands
# ============================================================================

audit_app = typer.Typer(help="Audit trail queries")
app.add_typer(audit_app, name="audit")


@audit_app.command("trail")
def audit_trail(
    target_id: str = typer.Argument(..., help="Event ID"),
    limit: int = typer.Option(50, "--limit", "-n", help="Maximum number of entries"),
):
    """Show the audit trail for an event, newest first."""
    try:
        entries = asyncio.run(_services().audit.audit_trail(target_id, limit=limit))

        if not entries:
            console.print(f"No audit entries for event {target_id}", style="yellow")
            return

        severity_styles = {"CRITICAL": "bold red", "HIGH": "red", "MEDIUM": "yellow", "LOW": "dim"}
        table = Table(title=f"Audit Trail: {target_id}", show_header=True, header_style="bold cyan")
        table.add_column("Time")
        table.add_column("Action", style="cyan")
        table.add_column("Severity")
        table.add_column("Category")
        table.add_column("Actor")

        for entry in entries:
            style = severity_styles[entry.severity.value]
            table.add_row(
                _fmt_time(entry.timestamp),
                entry.action.value,
                f"[{style}]{entry.severity.value}[/{style}]",
                entry.category.value,
                entry.actor_key,
            )
        console.print(table)

    except typer.Exit:
        raise
    except DeletionGuardError as e:
        _fail(e.message)
    except Exception as e:
        _unexpected("reading audit trail", e)


@audit_app.command("summary")
def audit_summary(
    days: int = typer.Option(30, "--days", "-d", help="Timeframe in days"),
):
    """Summarize deletion activity by action."""
    try:
        summary = asyncio.run(_services().audit.summary(timeframe_days=days))

        table = Table(title=f"Deletion Activity (last {days} days)", show_header=True, header_style="bold cyan")
        table.add_column("Action", style="cyan")
        table.add_column("Count", justify="right")
        table.add_column("Last Occurrence")
        for action, stats in summary["actions"].items():
            table.add_row(action, str(stats["count"]), _fmt_time(stats["last_occurrence"]))
        console.print(table)
        console.print(f"\nTotal activities: {summary['total']}")

    except typer.Exit:
        raise
    except DeletionGuardError as e:
        _fail(e.message)
    except Exception as e:
        _unexpected("summarizing audit log", e)


@audit_app.command("alerts")
def audit_alerts(
    hours: int = typer.Option(24, "--hours", help="Timeframe in hours"),
    threshold: int = typer.Option(3, "--threshold", help="Deletions per actor that raise an alert"),
):
    """Detect actors with an unusual number of deletions."""
    try:
        alerts = asyncio.run(_services().audit.detect_suspicious_activity(timeframe_hours=hours, threshold=threshold))

        if not alerts:
            console.print("✓ No suspicious deletion activity", style="green")
            return

        for alert in alerts:
            console.print(
                f"🚨 {alert.alert_type} [{alert.severity}]: {alert.actor} performed {alert.count} deletions "
                f"in {alert.timeframe_hours} hours",
                style="bold red",
            )
            for target in alert.targets:
                console.print(f"    - {target}")

    except typer.Exit:
        raise
    except DeletionGuardError as e:
        _fail(e.message)
    except Exception as e:
        _unexpected("detecting suspicious activity", e)


# ============================================================================
# Worker Commands
# ============================================================================

worker_app = typer.Typer(help="Background deletion executor")
app.add_typer(worker_app, name="worker")


async def _run_worker(services: Services) -> bool:
    executor = services.executor
    if not executor.start():
        return False
    try:
        await asyncio.Event().wait()
    finally:
        await executor.stop()
    return True


@worker_app.command("run")
def worker_run(
    once: bool = typer.Option(False, "--once", help="Run a single deletion and reminder tick, then exit"),
):
    """Run the grace-period executor."""
    try:
        services = _services()

        if once:
            counts = asyncio.run(services.executor.run_once())
            console.print(
                f"✓ Processed {counts['processed']} deletion(s), sent {counts['reminders']} reminder(s)",
                style="green",
            )
            return

        current = _get_config()
        console.print(
            f"Starting deletion executor (worker {current.worker_index}, "
            f"polling every {current.poll_interval_seconds:g}s). Press Ctrl+C to stop."
        )
        if not asyncio.run(_run_worker(services)):
            console.print(
                f"Worker {current.worker_index} is not the designated executor "
                f"(primary is {current.primary_worker_index}); nothing to do",
                style="yellow",
            )

    except KeyboardInterrupt:
        console.print("\nExecutor stopped")
    except typer.Exit:
        raise
    except DeletionGuardError as e:
        _fail(e.message)
    except Exception as e:
        _unexpected("running executor", e)


def cli_main():
    """Entry point for console script."""
    app()


def backups_main():
    """Entry point for the standalone backup console script."""
    backup_app()


if __name__ == "__main__":
    cli_main()
