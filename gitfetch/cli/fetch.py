"""
CLI fetch command — fetch every registered repository once.

Usage:
    gitfetch
    gitfetch run [--timeout SECONDS] [--workers N] [--json] [--no-prune]
"""

from __future__ import annotations

import json
import logging
import signal
import threading
from typing import Callable, List

import click

from ..errors import DispatcherConfigError
from ..models.outcome import FetchStatus, RepositoryOutcome
from .registry import load_registry, save_registry

logger = logging.getLogger(__name__)

STATUS_DISPLAY = {
    FetchStatus.FETCHED: ("✅", "green", "fetched"),
    FetchStatus.UP_TO_DATE: ("✅", "green", "already up to date"),
    FetchStatus.NOT_FETCHED: ("❌", "red", "not fetched"),
    FetchStatus.INVALID_REPOSITORY: ("⚠️", "yellow", "invalid repository"),
    FetchStatus.NOT_ATTEMPTED: ("⏳", "yellow", "not attempted"),
}


def install_signal_handlers(cancel: threading.Event) -> Callable[[], None]:
    """
    Set the cancel event on SIGINT / SIGTERM.

    Returns a function that restores the previous handlers.
    """
    if threading.current_thread() is not threading.main_thread():
        return lambda: None

    def handler(signum, frame):
        click.echo(f"\nSignal {signal.Signals(signum).name} received, finishing running jobs", err=True)
        cancel.set()

    previous = {
        sig: signal.signal(sig, handler)
        for sig in (signal.SIGINT, signal.SIGTERM)
    }

    def restore() -> None:
        for sig, old in previous.items():
            signal.signal(sig, old)

    return restore


def render_outcomes(outcomes: List[RepositoryOutcome]) -> None:
    click.echo()
    for outcome in outcomes:
        icon, color, label = STATUS_DISPLAY[outcome.status]
        click.echo(f"  {icon} ", nl=False)
        click.secho(outcome.path, fg=color, bold=True, nl=False)
        line = f": {label}"
        if outcome.reason:
            line += f" ({outcome.reason})"
        click.echo(line)
        for branch in outcome.branches:
            b_icon, _, b_label = STATUS_DISPLAY[branch.status]
            detail = f" — {branch.reason}" if branch.reason else ""
            click.echo(f"      {b_icon} {branch.branch} ← {branch.upstream}: {b_label}{detail}")
    click.echo()


@click.command("run")
@click.option("--timeout", type=float, default=None, help="Overall deadline in seconds")
@click.option("--workers", type=int, default=None, help="Override the configured worker count")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.option("--prune/--no-prune", default=True, help="Unregister invalid repositories")
@click.option("--allow-failures", is_flag=True, help="Exit 0 even if some fetches failed")
@click.pass_context
def run_fetch(
    ctx: click.Context,
    timeout: float,
    workers: int,
    as_json: bool,
    prune: bool,
    allow_failures: bool,
) -> None:
    """Fetch all registered repositories."""
    from ..sync.dispatcher import FetchDispatcher
    from ..sync.fetcher import RepositoryFetcher

    settings = ctx.obj["settings"]
    registry = load_registry(ctx)
    paths = registry.list()

    if not paths:
        if as_json:
            click.echo(json.dumps({"outcomes": []}, indent=2))
        else:
            click.echo("No repositories")
        return

    worker_count = workers if workers is not None else registry.worker_count()
    deadline_seconds = timeout if timeout is not None else settings.timeout_seconds

    try:
        dispatcher = FetchDispatcher(RepositoryFetcher(settings), worker_count)
    except DispatcherConfigError as e:
        click.secho(f"❌ {e}", fg="red", err=True)
        raise SystemExit(1)

    cancel = threading.Event()
    deadline = threading.Timer(deadline_seconds, cancel.set)
    deadline.daemon = True
    deadline.start()
    restore_signals = install_signal_handlers(cancel)

    try:
        outcomes = dispatcher.fetch_all(paths, cancel=cancel)
    finally:
        deadline.cancel()
        restore_signals()

    if cancel.is_set():
        logger.warning("[fetch] Run cancelled before all repositories finished")

    if as_json:
        click.echo(json.dumps(
            {
                "outcomes": [
                    dict(o.model_dump(mode="json"), fetch_attempts=o.fetch_attempts)
                    for o in outcomes
                ],
            },
            indent=2,
        ))
    else:
        render_outcomes(outcomes)

    invalid = [o.path for o in outcomes if o.status == FetchStatus.INVALID_REPOSITORY]
    if invalid and prune:
        for path in invalid:
            registry.remove(path)
        save_registry(registry)
        if not as_json:
            click.secho(f"Removed {len(invalid)} invalid repositories from the registry", fg="yellow")

    failed = [o for o in outcomes if o.status == FetchStatus.NOT_FETCHED]
    if failed and not allow_failures:
        raise SystemExit(1)
