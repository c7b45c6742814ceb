"""
CLI registry commands — manage the list of repositories to fetch.

Usage:
    gitfetch add PATH
    gitfetch remove PATH
    gitfetch list
    gitfetch workers N
"""

from __future__ import annotations

import os

import click

from ..errors import InvalidRepositoryError, RegistryError
from ..persistence.registry import RepositoryRegistry


def load_registry(ctx: click.Context) -> RepositoryRegistry:
    """Load the registry for the current settings or exit with an error."""
    try:
        return RepositoryRegistry.load(ctx.obj["settings"])
    except RegistryError as e:
        click.secho(f"❌ {e}", fg="red", err=True)
        raise SystemExit(1)


def save_registry(registry: RepositoryRegistry) -> None:
    try:
        registry.save()
    except RegistryError as e:
        click.secho(f"❌ {e}", fg="red", err=True)
        raise SystemExit(1)


@click.command("add")
@click.argument("path", type=click.Path())
@click.pass_context
def add_repository(ctx: click.Context, path: str) -> None:
    """Add a repository to be fetched."""
    from ..sync.branches import open_repository

    try:
        open_repository(path)
    except InvalidRepositoryError:
        click.secho(f"{path} is not a valid repository", fg="red", err=True)
        raise SystemExit(1)

    registry = load_registry(ctx)
    repo_path = os.path.abspath(path)
    if not registry.add(repo_path):
        click.echo(f"{repo_path} is already registered")
        return

    save_registry(registry)
    click.secho(f"✓ Added {repo_path}", fg="green")


@click.command("remove")
@click.argument("path", type=click.Path())
@click.pass_context
def remove_repository(ctx: click.Context, path: str) -> None:
    """Remove a repository."""
    registry = load_registry(ctx)

    removed = registry.remove(path) or registry.remove(os.path.abspath(path))
    if not removed:
        click.echo(f"{path} not found")
        raise SystemExit(1)

    save_registry(registry)
    click.secho(f"✓ Removed {path}", fg="green")


@click.command("list")
@click.pass_context
def list_repositories(ctx: click.Context) -> None:
    """List repositories."""
    registry = load_registry(ctx)
    repositories = registry.list()

    if not repositories:
        click.echo("No repositories")
        return

    click.echo("\n".join(repositories))


@click.command("workers")
@click.argument("count", type=int)
@click.pass_context
def set_workers(ctx: click.Context, count: int) -> None:
    """Set the number of workers."""
    registry = load_registry(ctx)

    try:
        registry.set_worker_count(count)
    except RegistryError as e:
        click.secho(f"❌ {e}", fg="red", err=True)
        raise SystemExit(1)

    save_registry(registry)
    click.echo(f"Workers set to {count}")
