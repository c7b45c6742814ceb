"""
Registry Models — Pydantic schema for the repository registry file.

The registry file (~/.config/gitfetch/gitfetch.json) holds the worker count
and the ordered list of repositories to fetch.
"""

from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field

from ..config.settings import DEFAULT_WORKERS


class RegistryDocument(BaseModel):
    """On-disk registry document."""

    workers: int = DEFAULT_WORKERS
    repositories: List[str] = Field(default_factory=list)
