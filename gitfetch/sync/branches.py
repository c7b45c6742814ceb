"""
Branch Resolver — Map local branches to their remote-tracking upstreams.

Upstreams are read from branch.<name>.remote / branch.<name>.merge and
mapped through the remote's fetch refspecs, the same way `git fetch`
decides where a branch lands. A branch whose remote-tracking ref has not
been fetched yet still resolves, so its first fetch can create it.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Iterator, Optional

import pygit2
from pygit2.enums import RepositoryOpenFlag

from ..errors import InvalidRepositoryError, UpstreamResolutionError

logger = logging.getLogger(__name__)

REMOTE_REFS_PREFIX = "refs/remotes/"


@dataclass(frozen=True)
class BranchUpstreamPair:
    """A local branch and the remote-tracking ref it follows."""

    branch: str
    upstream: str  # refs/remotes/<remote>/<name>
    remote: str
    merge: str  # ref on the remote side, e.g. refs/heads/main


def open_repository(path: str) -> pygit2.Repository:
    """
    Open path as a git repository without searching parent directories.

    Raises:
        InvalidRepositoryError: If path is missing or not a repository
    """
    if not os.path.isdir(path):
        raise InvalidRepositoryError(path, "directory does not exist")
    try:
        return pygit2.Repository(path, RepositoryOpenFlag.NO_SEARCH)
    except (pygit2.GitError, KeyError) as e:
        raise InvalidRepositoryError(path, str(e)) from e


def _config_value(config: pygit2.Config, key: str) -> Optional[str]:
    try:
        return config[key]
    except KeyError:
        return None


def map_through_refspec(refspec: str, ref: str) -> Optional[str]:
    """
    Map a remote ref to its local destination under one fetch refspec.

    "+refs/heads/*:refs/remotes/origin/*" maps refs/heads/main to
    refs/remotes/origin/main. Returns None if the refspec does not match.
    """
    spec = refspec.lstrip("+")
    if ":" not in spec:
        return None
    src, dst = spec.split(":", 1)

    if "*" not in src:
        return dst if src == ref else None

    prefix, suffix = src.split("*", 1)
    if not ref.startswith(prefix) or not ref.endswith(suffix):
        return None
    middle = ref[len(prefix):len(ref) - len(suffix)]
    if not middle:
        return None
    return dst.replace("*", middle, 1)


def resolve_branch(repo: pygit2.Repository, branch: str) -> Optional[BranchUpstreamPair]:
    """
    Resolve one local branch.

    Returns None when the branch has no upstream or follows something that
    is not a remote-tracking ref.

    Raises:
        UpstreamResolutionError: If the upstream configuration is broken
    """
    try:
        config = repo.config
        remote_name = _config_value(config, f"branch.{branch}.remote")
        if remote_name is None:
            return None

        if remote_name == ".":
            logger.debug(f"[fetch] {branch}: upstream is a local branch, skipping")
            return None

        merge = _config_value(config, f"branch.{branch}.merge")
        if not merge:
            raise UpstreamResolutionError(branch, f"branch.{branch}.merge is not set")

        try:
            remote = repo.remotes[remote_name]
        except (KeyError, ValueError):
            raise UpstreamResolutionError(branch, f"remote {remote_name!r} does not exist")

        upstream = None
        for refspec in remote.fetch_refspecs:
            upstream = map_through_refspec(refspec, merge)
            if upstream is not None:
                break
    except pygit2.GitError as e:
        raise UpstreamResolutionError(branch, str(e)) from e

    if upstream is None:
        raise UpstreamResolutionError(
            branch, f"{merge} is not fetched by any refspec of {remote_name}"
        )

    if not upstream.startswith(REMOTE_REFS_PREFIX):
        logger.debug(f"[fetch] {branch}: upstream {upstream} is not remote, skipping")
        return None

    return BranchUpstreamPair(
        branch=branch,
        upstream=upstream,
        remote=remote_name,
        merge=merge,
    )


def resolve_upstreams(repo: pygit2.Repository) -> Iterator[BranchUpstreamPair]:
    """
    Yield a BranchUpstreamPair for every local branch with a remote upstream.

    A broken branch is logged and skipped; the rest are still resolved.
    """
    for branch in repo.branches.local:
        try:
            pair = resolve_branch(repo, branch)
        except UpstreamResolutionError as e:
            logger.warning(f"[fetch] {e}", extra={"branch": branch})
            continue
        if pair is not None:
            yield pair
