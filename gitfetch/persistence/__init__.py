"""
Persistence — Registry storage.
"""

from .registry import RepositoryRegistry

__all__ = ["RepositoryRegistry"]
