"""history command: display audit events from the configured sink."""

from __future__ import annotations

import json

import click
from rich.console import Console
from rich.table import Table

console = Console()

_EVENT_STYLE = {
    "pr_created": "green",
    "pr_exists": "cyan",
    "pr_error": "red",
    "error": "red",
    "run_start": "bold",
    "run_end": "bold",
}


@click.command("history")
@click.option("--run-id", default=None, help="Only show events from this run.")
@click.option("--limit", default=50, show_default=True, help="Maximum number of events to show.")
@click.pass_context
def history_cmd(ctx, run_id: str | None, limit: int):
    """Show recorded audit events, most recent first.

    Requires ``audit.enabled: true`` with ``storage: file`` or ``sqlite``.
    """
    from ice_audit.noop import NoOpSink

    sink = ctx.obj.get("sink") if ctx.obj else None
    if sink is None or isinstance(sink, NoOpSink):
        raise click.UsageError(
            "No audit sink configured. Set 'audit.enabled: true' and 'audit.storage: file' or 'sqlite' in .ice.yml."
        )

    events = sink.list_events(run_id=run_id)
    if not events:
        console.print("[yellow]No audit events found.[/yellow]")
        return

    events = list(reversed(events))[:limit]

    title = f"Audit history: run {run_id}" if run_id else "Audit history"
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("Time", width=20)
    table.add_column("Run", width=12)
    table.add_column("Event", width=16)
    table.add_column("Message", max_width=50)
    table.add_column("Details", max_width=40)

    for e in events:
        style = _EVENT_STYLE.get(e.event_type, "white")
        detail = e.error or (json.dumps(e.details, default=str) if e.details else "")
        table.add_row(
            e.timestamp[:19].replace("T", " "),
            e.run_id,
            f"[{style}]{e.event_type}[/{style}]",
            e.message,
            detail[:120],
        )

    console.print(table)
