"""CLI entry point for ice.

Commands:
  run      scan, evaluate and open recertification pull requests
  check    print recertification verdicts without touching the remote
  history  display audit events from the configured sink
"""

from __future__ import annotations

import importlib.metadata
import logging

import click
from rich.console import Console
from rich.logging import RichHandler

from ice_cli.commands.check import check_cmd
from ice_cli.commands.history import history_cmd
from ice_cli.commands.run import run_cmd

console = Console()


def _build_sink(config: dict):
    """Instantiate the configured audit sink from the ``audit`` section.

      enabled: false  → NoOpSink (default)
      storage: file   → FileSink   (config.directory, default ./audit)
      storage: sqlite → SQLiteSink (config.path, default .ice-audit.db)

    This factory lives in cli.py so neither ice_core nor ice_audit know
    about the config file format.
    """
    from ice_audit.noop import NoOpSink

    audit = config.get("audit") or {}
    if not audit.get("enabled"):
        return NoOpSink()

    storage = audit.get("storage", "noop")
    options = audit.get("config") or {}

    if storage == "file":
        from ice_audit.file import FileSink

        return FileSink(directory=options.get("directory", "./audit"))

    if storage == "sqlite":
        from ice_audit.sqlite import SQLiteSink

        return SQLiteSink(db_path=options.get("path", ".ice-audit.db"))

    return NoOpSink()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )
    # Keep HTTP client chatter out of verbose output.
    logging.getLogger("urllib3").setLevel(logging.WARNING)


@click.group()
@click.version_option(
    version=importlib.metadata.version("ice-recert"),
    prog_name="ice",
)
@click.option(
    "--config",
    "config_path",
    default=".ice.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="ICE_CONFIG_PATH",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def main(ctx: click.Context, config_path: str, verbose: bool):
    """Infrastructure-as-code recertification engine."""
    from ice_core.config import load_config
    from ice_core.errors import ConfigError

    ctx.ensure_object(dict)

    try:
        config = load_config(config_path)
    except ConfigError as e:
        raise click.UsageError(str(e)) from e

    _configure_logging(verbose or bool(config["global"].get("verbose_logging")))

    sink = _build_sink(config)
    ctx.obj["config"] = config
    ctx.obj["config_path"] = config_path
    ctx.obj["sink"] = sink
    ctx.call_on_close(sink.close)


main.add_command(run_cmd)
main.add_command(check_cmd)
main.add_command(history_cmd)
