"""
gitfetch — CLI Entry Point

Usage:
    gitfetch                 fetch every registered repository
    gitfetch add PATH        add a repository to be fetched
    gitfetch remove PATH     remove a repository
    gitfetch list            list repositories
    gitfetch workers NUMBER  set the number of workers
    gitfetch help            print this help
"""

from __future__ import annotations

from typing import Optional

import click

from .cli.fetch import run_fetch
from .cli.registry import add_repository, list_repositories, remove_repository, set_workers
from .config.settings import GitfetchSettings
from .logging_config import setup_logging


@click.group(invoke_without_command=True)
@click.option("--log-level", default=None, help="DEBUG, INFO, WARNING or ERROR")
@click.option("--log-format", type=click.Choice(["text", "json"]), default=None)
@click.pass_context
def cli(ctx: click.Context, log_level: Optional[str], log_format: Optional[str]) -> None:
    """gitfetch — Fetch every registered git repository in parallel."""
    setup_logging(log_level, log_format)
    ctx.ensure_object(dict)
    if "settings" not in ctx.obj:
        ctx.obj["settings"] = GitfetchSettings.from_env()

    if ctx.invoked_subcommand is None:
        ctx.invoke(run_fetch)


@cli.command("help")
@click.pass_context
def help_cmd(ctx: click.Context) -> None:
    """Print this help."""
    click.echo(ctx.parent.get_help())


cli.add_command(run_fetch)
cli.add_command(add_repository)
cli.add_command(remove_repository)
cli.add_command(list_repositories)
cli.add_command(set_workers)


if __name__ == "__main__":
    cli()
