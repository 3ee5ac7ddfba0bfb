"""Sync CLI commands."""

import asyncio
import sys

import click
from rich.console import Console
from rich.table import Table

from cli.utils import format_ts, get_components, run_async
from sync.errors import SyncError

console = Console()

PHASE_STYLE = {
    "idle": "dim",
    "syncing": "cyan",
    "synced": "green",
    "error": "red",
    "offline": "yellow",
}


def _print_status(status) -> None:
    style = PHASE_STYLE.get(status.phase.value, "white")
    table = Table(show_header=False, box=None)
    table.add_column(style="bold")
    table.add_column()
    table.add_row("Phase", f"[{style}]{status.phase.value}[/]")
    table.add_row("Last synced", format_ts(status.last_synced_at))
    table.add_row("Pulled / applied", f"{status.pulled} / {status.applied_remote}")
    table.add_row("Queued conflicts", str(status.queued_conflicts))
    table.add_row("Pending decisions", str(status.pending_decisions))
    table.add_row("Pending push", str(status.pending_push))
    if status.last_error:
        table.add_row("Last error", f"[red]{status.last_error}[/]")
    console.print(table)


@click.group()
def sync():
    """Synchronize history with the remote service."""
    pass


@sync.command("run")
def sync_run():
    """Run one sync step now."""
    c = get_components()
    try:
        status = run_async(c, lambda o: o.step(raise_errors=True))
    except SyncError as e:
        console.print(f"[red]Sync failed:[/] {e}")
        sys.exit(1)
    _print_status(status)
    if status.conflicts:
        console.print(f"\n[yellow]{status.conflicts} conflict(s) need a decision.[/] Run [bold]moodsync conflicts list[/]")


@sync.command("status")
def sync_status():
    """Show sync state without touching the network."""
    c = get_components()
    _print_status(c["orchestrator"].status())


@sync.command("push")
@click.option("--all", "push_all", is_flag=True, help="Re-send every record, not just pending ones")
def sync_push(push_all: bool):
    """Push local changes to the remote service."""
    c = get_components()
    try:
        report = run_async(c, lambda o: o.push_all() if push_all else o.push_pending())
    except SyncError as e:
        console.print(f"[red]Push failed:[/] {e}")
        sys.exit(1)

    if not report.attempted:
        console.print("[dim]Nothing to push.[/]")
        return
    console.print(f"[green]Accepted[/] {len(report.accepted_ids)}/{report.attempted}")
    if report.rejected_ids:
        console.print(f"[yellow]Not acknowledged:[/] {', '.join(report.rejected_ids)}")


@sync.command("pending")
def sync_pending():
    """List records not yet acknowledged by the remote."""
    c = get_components()
    pending = c["orchestrator"].pending()
    if not pending:
        console.print("[green]Everything is pushed.[/]")
        return

    table = Table(show_header=True, title=f"Pending push - {len(pending)}")
    table.add_column("ID", style="dim")
    table.add_column("Rev", justify="right")
    table.add_column("Updated")
    table.add_column("State")
    for r in pending:
        table.add_row(r.id, str(r.rev), format_ts(r.updated_at), "deleted" if r.deleted else r.emotion)
    console.print(table)


@sync.command("reset-token")
def sync_reset_token():
    """Forget the pull cursor so the next sync re-reads everything."""
    c = get_components()
    c["orchestrator"].reset_sync_token()
    console.print("[green]Sync token cleared.[/] Next sync performs a full pull.")


@sync.command("clear-ledger")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
def sync_clear_ledger(yes: bool):
    """Mark every record as pending again."""
    if not yes and not click.confirm("Clear push ledger?"):
        return
    c = get_components()
    c["ledger"].clear()
    console.print("[green]Push ledger cleared.[/]")


@sync.command("watch")
@click.option("--interval", type=float, help="Seconds between syncs (0 disables the timer)")
def sync_watch(interval: float):
    """Keep syncing in the foreground until Ctrl+C."""
    from observability import log_run_summary
    from sync.scheduler import SyncScheduler

    c = get_components()
    cfg = c["config"].sync
    interval = cfg.interval_seconds if interval is None else interval

    async def _watch():
        scheduler = SyncScheduler(
            c["orchestrator"],
            interval_seconds=interval,
            visibility_delay_seconds=cfg.visibility_delay_seconds,
            run_on_start=cfg.run_on_start,
        )
        scheduler.start()
        try:
            while True:
                await asyncio.sleep(3600)
        finally:
            await scheduler.shutdown()
            await c["gateway"].close()
            log_run_summary()

    console.print(f"[green]Watching[/] every {interval:g}s. Press Ctrl+C to stop")
    try:
        asyncio.run(_watch())
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopped[/]")
