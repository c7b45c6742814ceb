"""
Shared fixtures for gitfetch tests.

Provides real pygit2 repositories under tmp_path: an "origin" repository
with one commit on main, and helpers to create local repositories that
track it over the local file transport (no network, no callbacks beyond
progress).
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import pygit2
import pytest

from gitfetch.config.settings import GitfetchSettings

SIGNATURE = pygit2.Signature("Test", "test@example.com")


def commit_file(
    repo: pygit2.Repository,
    filename: str,
    content: str,
    message: str = "update",
    ref: str = "refs/heads/main",
) -> pygit2.Oid:
    """Write a file into the work tree and commit it on ref."""
    workdir = Path(repo.workdir)
    (workdir / filename).write_text(content, encoding="utf-8")
    repo.index.add(filename)
    repo.index.write()
    tree = repo.index.write_tree()

    parents = []
    existing = repo.references.get(ref)
    if existing is not None:
        parents = [existing.target]

    return repo.create_commit(ref, SIGNATURE, SIGNATURE, message, tree, parents)


def make_local_repo(
    root: Path,
    name: str,
    origin: Optional[Path] = None,
    track: bool = True,
) -> Path:
    """
    Create a local repository.

    With origin, adds it as remote "origin", fetches it, and creates a local
    main branch at origin/main (tracking it when track is True). Without
    origin, creates a main branch with a local commit and no upstream.
    """
    path = root / name
    repo = pygit2.init_repository(str(path), initial_head="main")

    if origin is None:
        commit_file(repo, "README", f"{name}\n", "initial")
        return path

    remote = repo.remotes.create("origin", str(origin))
    remote.fetch()

    target = repo.references["refs/remotes/origin/main"].target
    repo.branches.local.create("main", repo[target])
    repo.set_head("refs/heads/main")

    if track:
        repo.config["branch.main.remote"] = "origin"
        repo.config["branch.main.merge"] = "refs/heads/main"

    return path


@pytest.fixture
def origin(tmp_path: Path) -> Path:
    """An upstream repository with one commit on main."""
    path = tmp_path / "origin"
    repo = pygit2.init_repository(str(path), initial_head="main")
    commit_file(repo, "README", "origin\n", "initial")
    return path


@pytest.fixture
def settings(tmp_path: Path) -> GitfetchSettings:
    """Settings pointing at a temporary config directory."""
    return GitfetchSettings(
        config_dir=tmp_path / "config" / "gitfetch",
        timeout_seconds=30,
        connect_timeout_seconds=2,
        known_hosts=None,
    )
