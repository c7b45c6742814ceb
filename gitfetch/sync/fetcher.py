"""
Repository Fetcher — One dispatcher job.

Opens the repository, resolves branch upstreams, and fetches each
remote-tracking branch in turn through pygit2 with trust and credential
callbacks attached. Every failure below the repository level is turned into
an outcome; nothing raised here escapes to sibling jobs.
"""

from __future__ import annotations

import logging
import threading
from typing import Optional

import pygit2

from ..config.settings import GitfetchSettings
from ..errors import FetchAborted, InvalidRepositoryError
from ..models.outcome import BranchOutcome, FetchStatus, RepositoryOutcome
from ..transport.callbacks import FetchCallbacks
from ..transport.probe import TrustProbe
from ..trust.credentials import SshAgent
from .branches import BranchUpstreamPair, open_repository, resolve_upstreams

logger = logging.getLogger(__name__)

TAGS_REFSPEC = "+refs/tags/*:refs/tags/*"


def _ref_target(repo: pygit2.Repository, name: str) -> Optional[str]:
    ref = repo.references.get(name)
    if ref is None:
        return None
    return str(ref.target)


class RepositoryFetcher:
    """Fetches every tracked branch of one repository."""

    def __init__(
        self,
        settings: GitfetchSettings,
        probe: Optional[TrustProbe] = None,
        agent: Optional[SshAgent] = None,
    ):
        self.settings = settings
        self.probe = probe or TrustProbe(
            known_hosts=settings.known_hosts,
            timeout=settings.connect_timeout_seconds,
        )
        self.agent = agent

    def __call__(self, path: str, cancel: Optional[threading.Event] = None) -> RepositoryOutcome:
        return self.fetch_repository(path, cancel)

    def fetch_repository(
        self, path: str, cancel: Optional[threading.Event] = None
    ) -> RepositoryOutcome:
        logger.info(f"[fetch] Fetching {path}", extra={"repository": path})

        try:
            repo = open_repository(path)
        except InvalidRepositoryError as e:
            logger.warning(f"[fetch] {e}", extra={"repository": path})
            return RepositoryOutcome.invalid(path, e.detail or str(e))

        branches = []
        for pair in resolve_upstreams(repo):
            if cancel is not None and cancel.is_set():
                branches.append(
                    BranchOutcome(
                        branch=pair.branch,
                        upstream=pair.upstream,
                        status=FetchStatus.NOT_ATTEMPTED,
                        reason="cancelled",
                    )
                )
                continue
            branches.append(self.fetch_branch(repo, path, pair, cancel))

        outcome = RepositoryOutcome.from_branches(path, branches)
        if not branches:
            logger.info(f"[fetch] {path}: no tracked branches", extra={"repository": path})
        else:
            logger.info(
                f"[fetch] {path}: {outcome.status.value}", extra={"repository": path}
            )
        return outcome

    def fetch_branch(
        self,
        repo: pygit2.Repository,
        path: str,
        pair: BranchUpstreamPair,
        cancel: Optional[threading.Event] = None,
    ) -> BranchOutcome:
        """Fetch one branch's upstream. Always returns an outcome."""
        log_extra = {"repository": path, "branch": pair.branch, "remote": pair.remote}

        def not_fetched(reason: str) -> BranchOutcome:
            logger.error(
                f"[fetch] {path} {pair.branch} ← {pair.upstream}: {reason}",
                extra=log_extra,
            )
            return BranchOutcome(
                branch=pair.branch,
                upstream=pair.upstream,
                status=FetchStatus.NOT_FETCHED,
                reason=reason,
            )

        try:
            remote = repo.remotes[pair.remote]
        except (KeyError, ValueError):
            return not_fetched(f"remote {pair.remote} disappeared")

        refspecs = [f"+{pair.merge}:{pair.upstream}"]
        if self.settings.fetch_tags:
            refspecs.append(TAGS_REFSPEC)

        callbacks = FetchCallbacks(
            url=remote.url or "",
            username=self.settings.default_username,
            probe=self.probe,
            cancel=cancel,
            max_credential_rounds=self.settings.max_credential_rounds,
            agent=self.agent,
        )

        before = _ref_target(repo, pair.upstream)
        try:
            stats = remote.fetch(refspecs, callbacks=callbacks)
        except FetchAborted as e:
            return not_fetched(f"{e.reason}: {e}")
        except pygit2.GitError as e:
            # libgit2 may report a callback abort as its own error
            if callbacks.abort_error is not None:
                error = callbacks.abort_error
                return not_fetched(f"{error.reason}: {error}")
            return not_fetched(str(e))
        except Exception as e:
            # Later branches of this repository still run
            logger.exception(
                f"[fetch] {path} {pair.branch}: unexpected error during fetch",
                extra=log_extra,
            )
            return not_fetched(f"unexpected error: {e}")

        after = _ref_target(repo, pair.upstream)
        received = getattr(stats, "received_objects", 0) or 0

        if after != before or received > 0:
            status = FetchStatus.FETCHED
            logger.info(
                f"[fetch] {path} {pair.upstream}: {before or 'none'} → {after}",
                extra=log_extra,
            )
        else:
            status = FetchStatus.UP_TO_DATE
            logger.info(f"[fetch] {path} {pair.upstream}: already up to date", extra=log_extra)

        return BranchOutcome(
            branch=pair.branch,
            upstream=pair.upstream,
            status=status,
            received_objects=received,
        )
