"""
Repository Registry — JSON-backed list of repositories to fetch.

The registry is read once at the start of a run and written back by the
top-level command after the run (e.g. to prune invalid paths). Workers
never touch it.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import List

from pydantic import ValidationError

from ..config.settings import GitfetchSettings
from ..errors import RegistryError
from ..models.registry import RegistryDocument

logger = logging.getLogger(__name__)


class RepositoryRegistry:
    """Registered repository paths plus the configured worker count."""

    def __init__(self, path: Path, document: RegistryDocument):
        self.path = path
        self._document = document

    @classmethod
    def load(cls, settings: GitfetchSettings) -> "RepositoryRegistry":
        """
        Load the registry from the settings' registry file.

        A missing file yields an empty registry with the default worker count.

        Raises:
            RegistryError: If the file exists but cannot be parsed
        """
        path = settings.registry_file
        if not path.exists():
            logger.debug(f"No registry at {path}, starting empty")
            return cls(path, RegistryDocument())

        logger.debug(f"Loading registry from {path}")
        try:
            with path.open("r", encoding="utf-8") as f:
                data = json.load(f)
            document = RegistryDocument(**data)
        except (OSError, ValueError, TypeError, ValidationError) as e:
            raise RegistryError(f"Cannot read registry {path}: {e}") from e

        return cls(path, document)

    def list(self) -> List[str]:
        """Registered repository paths, in registration order."""
        return list(self._document.repositories)

    def worker_count(self) -> int:
        return self._document.workers

    def set_worker_count(self, workers: int) -> None:
        if workers <= 0:
            raise RegistryError(f"Worker count must be positive, got {workers}")
        self._document.workers = workers

    def add(self, repo: str) -> bool:
        """Register a path. Returns False if it was already registered."""
        if repo in self._document.repositories:
            return False
        self._document.repositories.append(repo)
        logger.info(f"Registered {repo}")
        return True

    def remove(self, repo: str) -> bool:
        """Unregister a path. Returns False and changes nothing if absent."""
        try:
            self._document.repositories.remove(repo)
        except ValueError:
            return False
        logger.info(f"Removed {repo}")
        return True

    def save(self) -> None:
        """
        Write the registry back to disk.

        Uses atomic write (write to temp, then rename) to prevent corruption.
        """
        try:
            if not self.path.parent.exists():
                self.path.parent.mkdir(parents=True, mode=0o700)

            temp_path = self.path.with_suffix(".tmp")
            with temp_path.open("w", encoding="utf-8") as f:
                json.dump(self._document.model_dump(), f, indent=4)
                f.write("\n")

            os.replace(temp_path, self.path)
        except OSError as e:
            raise RegistryError(f"Cannot write registry {self.path}: {e}") from e

        logger.debug(
            f"Registry saved: {len(self._document.repositories)} repositories → {self.path}"
        )
