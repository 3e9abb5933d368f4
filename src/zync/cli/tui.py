"""Terminal rendering of persisted sync state."""

from __future__ import annotations

from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from zync.core.models import SyncState
from zync.engine.pending import pending_summary

console = Console()

ACTION_COLORS = {
    "create": "green",
    "update": "yellow",
    "remove": "red",
}


def render_status(state: SyncState, collections: dict[str, int], store_name: str) -> None:
    """Panel with first-load flag, queue size, watermarks and record counts."""
    summary = pending_summary(state.pending_changes)

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Metric", style="bright_black")
    table.add_column("Value", style="bold")
    table.add_row("First load", "[green]done[/green]" if state.first_load_done else "pending")
    table.add_row("Pending changes", f"[cyan]{summary['total']:,}[/cyan]")
    for action, count in sorted(summary["by_action"].items()):
        color = ACTION_COLORS.get(action, "white")
        table.add_row(f"  {action}", f"[{color}]{count:,}[/{color}]")
    table.add_row("Conflicts", f"[red]{len(state.conflicts)}[/red]" if state.conflicts else "0")
    console.print(Panel(table, title=f"zync: {store_name}", border_style="cyan"))

    if not collections and not state.last_pulled:
        return
    coll_table = Table(title="Collections")
    coll_table.add_column("Collection", style="cyan")
    coll_table.add_column("Records", justify="right")
    coll_table.add_column("Last pulled", style="bright_black")
    for name in sorted(set(collections) | set(state.last_pulled)):
        coll_table.add_row(
            name, str(collections.get(name, 0)), state.last_pulled.get(name, "never")
        )
    console.print(coll_table)


def render_pending(state: SyncState) -> None:
    if not state.pending_changes:
        console.print("[green]No pending changes[/green]")
        return
    table = Table(title=f"Pending changes ({len(state.pending_changes)})")
    table.add_column("Action")
    table.add_column("Collection", style="cyan")
    table.add_column("Local id", style="bright_black")
    table.add_column("Server id")
    table.add_column("Version", justify="right")
    table.add_column("Fields")
    for change in state.pending_changes:
        color = ACTION_COLORS.get(change.action.value, "white")
        table.add_row(
            f"[{color}]{change.action.value}[/{color}]",
            change.collection,
            change.local_id,
            "" if change.id is None else str(change.id),
            str(change.version),
            ", ".join(sorted(change.changes)),
        )
    console.print(table)


def render_conflicts(state: SyncState) -> None:
    if not state.conflicts:
        console.print("[green]No conflicts[/green]")
        return
    table = Table(title=f"Conflicts ({len(state.conflicts)})")
    table.add_column("Local id", style="bright_black")
    table.add_column("Collection", style="cyan")
    table.add_column("Field")
    table.add_column("Local", style="yellow")
    table.add_column("Remote", style="magenta")
    for local_id, conflict in state.conflicts.items():
        for f in conflict.fields:
            table.add_row(
                local_id, conflict.collection, f.key, _short(f.local_value), _short(f.remote_value)
            )
    console.print(table)


def _short(value: Any, limit: int = 40) -> str:
    text = repr(value)
    return text if len(text) <= limit else text[: limit - 3] + "..."
