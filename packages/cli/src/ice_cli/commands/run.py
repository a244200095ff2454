"""run command: the full recertification pipeline."""

from __future__ import annotations

import copy
import signal
import threading

import click
from rich.console import Console
from rich.table import Table

from ice_audit.auditor import Auditor
from ice_core.engine import Engine, get_provider
from ice_core.errors import ConfigError, PluginError, ProviderError

console = Console()

_STATUS_STYLE = {
    "created": "green",
    "exists": "cyan",
    "dry_run": "yellow",
    "skipped": "dim",
    "failed": "red",
}


def _print_summary(summary) -> None:
    table = Table(title=f"Recertification run {summary.run_id}", show_header=True, header_style="bold cyan")
    table.add_column("Unit", style="bold", max_width=40)
    table.add_column("Branch", max_width=48)
    table.add_column("Files", justify="right", width=6)
    table.add_column("Status", width=10)
    table.add_column("Pull request / error", max_width=60)

    for r in summary.results:
        style = _STATUS_STYLE.get(r.status, "white")
        table.add_row(
            r.unit_id,
            r.branch,
            str(r.files),
            f"[{style}]{r.status}[/{style}]",
            r.pr_url or (r.error or ""),
        )

    console.print(table)
    console.print(f"Scanned [bold]{summary.scanned}[/bold] file(s), [bold]{summary.stale}[/bold] need recertification.")
    console.print(f"Processed {summary.processed}, failed {summary.failed}, skipped {summary.skipped}.")


@click.command("run")
@click.option("--path", "repo_root", default=".", show_default=True, help="Local working tree to scan.")
@click.option("--dry-run", is_flag=True, help="Run every stage but make no remote calls.")
@click.option("--repo-url", default=None, help="Repository URL. Overrides config file.")
@click.option("--yes", "-y", is_flag=True, help="Skip the confirmation prompt.")
@click.pass_context
def run_cmd(ctx, repo_root: str, dry_run: bool, repo_url: str | None, yes: bool):
    """Scan the repository and open recertification pull requests.

    Files whose last change is older than their policy's interval are
    grouped into review units; each unit gets a branch, a decorator commit
    and a pull request. Re-running is safe: existing branches and pull
    requests are detected and left alone.

    \b
    Token environment variables (override with auth.token_env):
      GITHUB_TOKEN          GitHub (or use gh CLI)
      AZURE_DEVOPS_TOKEN    Azure DevOps personal access token
      GITLAB_TOKEN          GitLab personal access token
    """
    from ice_core.config import validate_config
    from ice_cli.auth import resolve_token

    config = copy.deepcopy(ctx.obj["config"])
    if dry_run:
        config["global"]["dry_run"] = True
    if repo_url:
        config["repository"]["url"] = repo_url

    try:
        validate_config(config)
    except ConfigError as e:
        raise click.UsageError(str(e)) from e

    dry = bool(config["global"]["dry_run"])
    token = resolve_token(config)
    if not token and not dry:
        raise click.UsageError(
            f"No API token found. Set {config['auth']['token_env']}"
            + (" or run `gh auth login` first." if config["auth"]["provider"] == "github" else ".")
        )

    provider = None
    if token:
        try:
            provider = get_provider(config, token)
        except ConfigError as e:
            raise click.UsageError(str(e)) from e
        except ProviderError as e:
            raise click.ClickException(str(e)) from e
    else:
        console.print("[yellow]No API token found; running without commit history.[/yellow]")

    auditor = Auditor(ctx.obj["sink"], repository=config["repository"]["url"])
    try:
        engine = Engine(config, provider, repo_root=repo_root, on_event=auditor.log_event)
    except (ConfigError, PluginError) as e:
        raise click.UsageError(str(e)) from e

    if not dry and not yes:
        click.confirm(
            f"Open recertification pull requests against {config['repository']['url']}?",
            abort=True,
        )

    # Ctrl-C stops new units from starting; units in flight finish.
    cancel = threading.Event()

    def _on_interrupt(signum, frame):
        console.print("[yellow]Interrupted: finishing in-flight units, skipping the rest.[/yellow]")
        cancel.set()

    previous = signal.signal(signal.SIGINT, _on_interrupt)
    try:
        summary = engine.run(cancel=cancel)
    except FileNotFoundError as e:
        raise click.UsageError(str(e)) from e
    finally:
        signal.signal(signal.SIGINT, previous)

    _print_summary(summary)
    if summary.failed:
        ctx.exit(1)
