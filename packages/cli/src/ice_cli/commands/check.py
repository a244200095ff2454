"""check command: print recertification verdicts without opening pull requests."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

from ice_core.engine import Engine, get_provider
from ice_core.errors import ConfigError, PluginError, ProviderError

console = Console()

_PRIORITY_STYLE = {
    "Low": "green",
    "Medium": "yellow",
    "High": "bold yellow",
    "Critical": "bold red",
}


@click.command("check")
@click.option("--path", "repo_root", default=".", show_default=True, help="Local working tree to scan.")
@click.option("--all", "show_all", is_flag=True, help="Show every evaluated file, not just stale ones.")
@click.pass_context
def check_cmd(ctx, repo_root: str, show_all: bool):
    """Evaluate every policy-matched file and show which need recertification."""
    from ice_core.config import validate_config
    from ice_cli.auth import resolve_token

    config = ctx.obj["config"]
    try:
        validate_config(config)
    except ConfigError as e:
        raise click.UsageError(str(e)) from e

    provider = None
    token = resolve_token(config)
    if token:
        try:
            provider = get_provider(config, token)
        except ConfigError as e:
            raise click.UsageError(str(e)) from e
        except ProviderError as e:
            raise click.ClickException(str(e)) from e
    else:
        console.print("[yellow]No API token found; files without history are treated as never reviewed.[/yellow]")

    try:
        engine = Engine(config, provider, repo_root=repo_root)
        _, verdicts = engine.evaluate()
    except (ConfigError, PluginError) as e:
        raise click.UsageError(str(e)) from e
    except FileNotFoundError as e:
        raise click.UsageError(str(e)) from e

    stale = [v for v in verdicts if v.needs_recertification]
    shown = verdicts if show_all else stale
    if not shown:
        console.print(f"[green]All {len(verdicts)} file(s) are within their recertification window.[/green]")
        return

    table = Table(title="Recertification status", show_header=True, header_style="bold cyan")
    table.add_column("File", style="bold", max_width=60)
    table.add_column("Policy")
    table.add_column("Days", justify="right", width=6)
    table.add_column("Threshold", justify="right", width=9)
    table.add_column("Priority", width=10)
    table.add_column("Due", width=10)

    for v in sorted(shown, key=lambda v: (-v.priority.rank, v.file.path)):
        style = _PRIORITY_STYLE.get(v.priority.value, "white")
        table.add_row(
            v.file.path,
            v.policy_name,
            str(v.days_since),
            str(v.threshold),
            f"[{style}]{v.priority.value}[/{style}]",
            v.next_due_date.strftime("%Y-%m-%d"),
        )

    console.print(table)
    console.print(f"{len(stale)} of {len(verdicts)} file(s) need recertification.")
