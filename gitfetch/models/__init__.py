"""
Models — Registry document and run outcomes.
"""

from .outcome import BranchOutcome, FetchStatus, RepositoryOutcome
from .registry import RegistryDocument

__all__ = [
    "BranchOutcome",
    "FetchStatus",
    "RegistryDocument",
    "RepositoryOutcome",
]
