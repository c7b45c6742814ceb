"""
Outcome Models — Results of a fetch-all run.

Every submitted repository path produces exactly one RepositoryOutcome,
whatever happened to it. Branch-level detail is kept on the outcome so the
caller can report why a repository was not fetched.
"""

from __future__ import annotations

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class FetchStatus(str, Enum):
    """Result of a single repository or branch fetch."""
    FETCHED = "fetched"
    UP_TO_DATE = "up_to_date"
    NOT_FETCHED = "not_fetched"
    INVALID_REPOSITORY = "invalid_repository"
    NOT_ATTEMPTED = "not_attempted"


class BranchOutcome(BaseModel):
    """Result of fetching one local branch's upstream."""

    branch: str
    upstream: str
    status: FetchStatus
    reason: Optional[str] = None
    received_objects: int = 0


class RepositoryOutcome(BaseModel):
    """Result of one repository job."""

    path: str
    status: FetchStatus
    reason: Optional[str] = None
    branches: List[BranchOutcome] = Field(default_factory=list)

    @property
    def fetch_attempts(self) -> int:
        """Number of branch fetches that were actually started."""
        return sum(1 for b in self.branches if b.status != FetchStatus.NOT_ATTEMPTED)

    @classmethod
    def invalid(cls, path: str, reason: str) -> "RepositoryOutcome":
        return cls(path=path, status=FetchStatus.INVALID_REPOSITORY, reason=reason)

    @classmethod
    def not_attempted(cls, path: str, reason: str = "cancelled") -> "RepositoryOutcome":
        return cls(path=path, status=FetchStatus.NOT_ATTEMPTED, reason=reason)

    @classmethod
    def failed(cls, path: str, reason: str) -> "RepositoryOutcome":
        return cls(path=path, status=FetchStatus.NOT_FETCHED, reason=reason)

    @classmethod
    def from_branches(cls, path: str, branches: List[BranchOutcome]) -> "RepositoryOutcome":
        """
        Fold branch results into a repository result.

        Any failed or skipped branch makes the repository not_fetched;
        otherwise it is fetched if anything arrived, else up to date
        (including a repository with no tracked branches).
        """
        failed = [
            b for b in branches
            if b.status in (FetchStatus.NOT_FETCHED, FetchStatus.NOT_ATTEMPTED)
        ]
        if failed:
            reason = "; ".join(f"{b.branch}: {b.reason}" for b in failed)
            return cls(path=path, status=FetchStatus.NOT_FETCHED, reason=reason, branches=branches)

        if any(b.status == FetchStatus.FETCHED for b in branches):
            return cls(path=path, status=FetchStatus.FETCHED, branches=branches)

        return cls(path=path, status=FetchStatus.UP_TO_DATE, branches=branches)
