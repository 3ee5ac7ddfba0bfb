"""Conflict review and resolution CLI commands."""

import sys

import click
from rich.console import Console
from rich.table import Table

from cli.utils import format_ts, get_components, run_async
from shared_types import KeepSide, ResolutionPolicy

console = Console()


@click.group()
def conflicts():
    """Review and resolve sync conflicts."""
    pass


@conflicts.command("list")
def conflicts_list():
    """Show unresolved conflicts, oldest first."""
    c = get_components()
    entries = c["conflicts"].all()
    if not entries:
        console.print("[green]No conflicts.[/]")
        return

    table = Table(show_header=True, title=f"Conflicts - {len(entries)}")
    table.add_column("ID", style="dim")
    table.add_column("Reason")
    table.add_column("Fields")
    table.add_column("Queued", style="dim")
    for e in entries:
        table.add_row(e.id, e.reason.value, ", ".join(e.diffs) or "-", format_ts(e.queued_at))
    console.print(table)

    pending = len(c["decisions"])
    if pending:
        console.print(f"\n[yellow]{pending} decision(s) waiting to be applied.[/] Run [bold]moodsync conflicts retry[/]")


@conflicts.command("show")
@click.argument("record_id")
def conflicts_show(record_id: str):
    """Compare both versions of a conflicting record."""
    c = get_components()
    entry = c["conflicts"].get(record_id)
    if entry is None:
        console.print(f"[red]No conflict queued for[/] {record_id}")
        sys.exit(1)

    table = Table(show_header=True, title=f"{entry.id} - {entry.summary}")
    table.add_column("Field", style="bold")
    table.add_column("Local")
    table.add_column("Remote")
    for field in ("message", "emotion", "intensity", "deleted", "rev"):
        lv, rv = getattr(entry.local, field), getattr(entry.remote, field)
        style = "yellow" if field in entry.diffs else ""
        table.add_row(field, f"[{style}]{lv}[/]" if style else str(lv), f"[{style}]{rv}[/]" if style else str(rv))
    table.add_row("updated", format_ts(entry.local.updated_at), format_ts(entry.remote.updated_at))
    console.print(table)


@conflicts.command("resolve")
@click.argument("record_id")
@click.option("--keep", type=click.Choice([k.value for k in KeepSide]), required=True, help="Side to keep")
def conflicts_resolve(record_id: str, keep: str):
    """Resolve one conflict by keeping the local or remote version."""
    c = get_components()
    try:
        resolved = run_async(c, lambda o: o.resolve(record_id, keep))
    except KeyError:
        console.print(f"[red]Nothing to keep for[/] {record_id} [dim](no queued conflict or local record)[/]")
        sys.exit(1)
    if resolved:
        console.print(f"[green]Resolved[/] {record_id} (kept {keep})")
    else:
        console.print(f"[yellow]Decision saved but not applied[/] for {record_id}")


@conflicts.command("retry")
@click.option(
    "--policy",
    type=click.Choice([p.value for p in ResolutionPolicy]),
    help="Fallback when no explicit decisions are pending",
)
def conflicts_retry(policy: str):
    """Apply saved decisions, or resolve remaining conflicts by policy."""
    c = get_components()
    policy = policy or c["config"].sync.default_policy
    report = run_async(c, lambda o: o.retry_queued_conflicts(policy))
    console.print(f"[green]Applied[/] {report.applied}  |  Remaining: {report.remaining}")
