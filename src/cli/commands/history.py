"""Emotion history CLI commands."""

import sys
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from cli.utils import format_ts, get_components

console = Console()

EMOTION_COLOR = {
    "joy": "green",
    "surprise": "cyan",
    "neutral": "dim",
    "sadness": "blue",
    "fear": "magenta",
    "anger": "red",
    "disgust": "yellow",
}


@click.group()
def history():
    """Manage local emotion history."""
    pass


@history.command("add")
@click.argument("message")
@click.option("-e", "--emotion", default="neutral", help="Emotion label")
@click.option("-i", "--intensity", default=0.5, type=float, help="Intensity 0-1")
@click.option("--source", default="local", help="Provenance tag")
def history_add(message: str, emotion: str, intensity: float, source: str):
    """Record a new emotion entry."""
    c = get_components()
    record = c["records"].create(message, emotion=emotion, intensity=intensity, source=source)
    console.print(f"[green]Added[/] {record.id} ({record.emotion}, {record.intensity:.2f})")


@history.command("list")
@click.option("-n", "--limit", default=20, help="Max entries to show")
@click.option("--all", "show_all", is_flag=True, help="Include deleted entries")
def history_list(limit: int, show_all: bool):
    """List recent entries, newest first."""
    c = get_components()
    records = c["records"].all() if show_all else c["records"].visible()
    if show_all:
        records = sorted(records, key=lambda r: r.updated_at, reverse=True)

    if not records:
        console.print("[yellow]No history yet.[/]")
        return

    table = Table(show_header=True)
    table.add_column("Updated", style="dim")
    table.add_column("ID", style="dim")
    table.add_column("Emotion")
    table.add_column("Int.", justify="right")
    table.add_column("Rev", justify="right")
    table.add_column("Message")

    for r in records[:limit]:
        color = EMOTION_COLOR.get(r.emotion, "white")
        emotion = f"[{color}]{r.emotion}[/]" + (" [red](deleted)[/]" if r.deleted else "")
        table.add_row(format_ts(r.updated_at), r.id[:8], emotion, f"{r.intensity:.2f}", str(r.rev), r.message[:50])

    console.print(table)


@history.command("edit")
@click.argument("record_id")
@click.option("-m", "--message", help="New message text")
@click.option("-e", "--emotion", help="New emotion label")
@click.option("-i", "--intensity", type=float, help="New intensity 0-1")
def history_edit(record_id: str, message: str, emotion: str, intensity: float):
    """Edit an entry (bumps its revision)."""
    changes = {
        k: v
        for k, v in {"message": message, "emotion": emotion, "intensity": intensity}.items()
        if v is not None
    }
    if not changes:
        console.print("[yellow]Nothing to change.[/]")
        return

    c = get_components()
    try:
        record = c["records"].patch(record_id, **changes)
    except KeyError:
        console.print(f"[red]Not found:[/] {record_id}")
        sys.exit(1)
    console.print(f"[green]Updated[/] {record.id} (rev {record.rev})")


@history.command("delete")
@click.argument("record_id")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
def history_delete(record_id: str, yes: bool):
    """Tombstone an entry; the deletion syncs like any edit."""
    if not yes and not click.confirm(f"Delete {record_id}?"):
        return
    c = get_components()
    try:
        c["records"].delete(record_id)
    except KeyError:
        console.print(f"[red]Not found:[/] {record_id}")
        sys.exit(1)
    console.print(f"[green]Deleted[/] {record_id}")


@history.command("summary")
def history_summary():
    """Show emotion frequency and the 7-day intensity trend."""
    from history.store import now_ms
    from history.summary import compute_emotion_summary

    c = get_components()
    summary = compute_emotion_summary(c["records"].all(), now=now_ms())

    if not summary.total:
        console.print("[yellow]No history yet.[/]")
        return

    table = Table(show_header=True, title=f"Emotions - {summary.total} entries")
    table.add_column("Emotion")
    table.add_column("Count", justify="right")
    table.add_column("Share", justify="right")
    for emotion, count in sorted(summary.frequency.items(), key=lambda kv: -kv[1]):
        if count:
            table.add_row(emotion, str(count), f"{count / summary.total:.0%}")
    console.print(table)

    series = "  ".join(f"{v:.2f}" for v in summary.last7d_series)
    console.print(f"\n[bold]Dominant:[/] {summary.dominant_emotion}")
    console.print(f"[bold]Avg intensity:[/] {summary.avg_intensity:.2f}  |  last 7d: {summary.last7d_avg_intensity:.2f}")
    console.print(f"[bold]7-day series:[/] {series}")


@history.command("export")
@click.argument("fmt", type=click.Choice(["json", "csv"]))
@click.option("-o", "--output", type=click.Path(path_type=Path), help="Output file")
@click.option("--include-deleted", is_flag=True, help="Export tombstoned entries too")
def history_export(fmt: str, output: Path, include_deleted: bool):
    """Export history to JSON or CSV."""
    from history.export import HistoryExporter

    c = get_components()
    exporter = HistoryExporter(c["records"])
    output = output or Path(f"emotion-history.{fmt}")
    if fmt == "json":
        count = exporter.export_json(output, include_deleted=include_deleted)
    else:
        count = exporter.export_csv(output, include_deleted=include_deleted)
    console.print(f"[green]Exported[/] {count} entries to {output}")
