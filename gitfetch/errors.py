"""
Errors — Exception hierarchy for gitfetch.

Per-branch and per-repository errors are caught by the fetcher and turned
into outcomes; only DispatcherConfigError stops a run from starting.
"""

from __future__ import annotations


class GitfetchError(Exception):
    """Base class for all gitfetch errors."""


class DispatcherConfigError(GitfetchError, ValueError):
    """The dispatcher was configured with an unusable worker count."""


class RegistryError(GitfetchError):
    """The repository registry could not be read or written."""


class InvalidRepositoryError(GitfetchError):
    """A registered path no longer opens as a git repository."""

    def __init__(self, path: str, detail: str = ""):
        self.path = path
        self.detail = detail
        message = f"{path} is not a valid repository"
        if detail:
            message += f": {detail}"
        super().__init__(message)


class UpstreamResolutionError(GitfetchError):
    """A branch has a broken upstream configuration."""

    def __init__(self, branch: str, detail: str):
        self.branch = branch
        self.detail = detail
        super().__init__(f"cannot resolve upstream of {branch}: {detail}")


class FetchAborted(GitfetchError):
    """Base for errors raised from inside transport callbacks."""

    reason = "fetch aborted"


class TrustRejected(FetchAborted):
    """The presented certificate or host key was not trusted."""

    reason = "trust rejected"


class CredentialsDeclined(FetchAborted):
    """The credential negotiator declined to offer credentials."""

    reason = "authentication failed"


class CredentialsExhausted(CredentialsDeclined):
    """The transport kept asking for credentials past the round limit."""


class FetchCancelled(FetchAborted):
    """The run was cancelled while a transfer was in progress."""

    reason = "cancelled"
