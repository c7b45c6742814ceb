"""
Sync — Branch resolution, per-repository fetching and the worker pool.
"""

from .branches import BranchUpstreamPair, open_repository, resolve_branch, resolve_upstreams
from .dispatcher import FetchDispatcher, Job, WorkerPoolState, fetch_all
from .fetcher import RepositoryFetcher

__all__ = [
    "BranchUpstreamPair",
    "FetchDispatcher",
    "Job",
    "RepositoryFetcher",
    "WorkerPoolState",
    "fetch_all",
    "open_repository",
    "resolve_branch",
    "resolve_upstreams",
]
